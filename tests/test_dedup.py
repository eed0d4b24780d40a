"""Unit tests for the dedup session and historical duplicate search."""
import pytest

from extractor.json_recovery import parse_event_array
from processor.dedup import DedupSession, find_duplicate_groups, is_non_event_name
from processor.event_processor import EventProcessor
from processor.fingerprints import content_fingerprint
from processor.models import (
    Accepted,
    CandidateEvent,
    PersistedEvent,
    RejectedDuplicate,
    RejectedInvalid,
)


def candidate(**overrides):
    fields = {'name': 'ETHDenver', 'event_date': '2026-02-23', 'city': 'Denver'}
    fields.update(overrides)
    return CandidateEvent(**fields)


def stored(event_id, created_at, **overrides):
    fields = {
        'name': 'ETHDenver',
        'event_date': '2026-02-23',
        'city': 'Denver',
        'source': 'firecrawl',
        'status': 'draft',
    }
    fields.update(overrides)
    return PersistedEvent(id=event_id, created_at=created_at, **fields)


class TestDedupSession:
    """Test cases for DedupSession.admit."""

    def test_accepts_new_record_with_source_id(self):
        session = DedupSession()

        decision = session.admit(
            candidate(), 'cryptonomads', source_url='https://cryptonomads.org/'
        )

        assert isinstance(decision, Accepted)
        record = decision.record
        assert record.source_id == 'cryptonomads-ethdenver-2026-02-23'
        assert record.source == 'firecrawl'
        assert record.source_url == 'https://cryptonomads.org/'
        assert record.status == 'draft'
        assert record.id is None
        assert 'ethdenver|2026-02-23|denver' in session.existing_fingerprints
        assert 'cryptonomads-ethdenver-2026-02-23' in session.existing_source_ids

    def test_same_content_twice_in_session(self):
        session = DedupSession()

        first = session.admit(candidate(name='ETHDenver!!'), 'cryptonomads')
        second = session.admit(candidate(name='ethdenver'), 'lu-ethdenver')

        assert isinstance(first, Accepted)
        assert isinstance(second, RejectedDuplicate)
        assert second.matched_key == 'ethdenver|2026-02-23|denver'
        assert (session.accepted, session.duplicates) == (1, 1)

    def test_source_id_checked_before_fingerprints(self):
        session = DedupSession(
            existing_fingerprints={'ethdenver|2026-02-23|denver'},
            existing_source_ids={'cryptonomads-ethdenver-2026-02-23'},
        )

        decision = session.admit(candidate(), 'cryptonomads')

        assert decision == RejectedDuplicate('cryptonomads-ethdenver-2026-02-23')

    def test_url_fingerprint_catches_renamed_event(self):
        session = DedupSession()
        session.admit(candidate(event_url='https://www.ethdenver.com/'), 'cryptonomads')

        decision = session.admit(
            candidate(name='ETHDenver 2026 BUIDLathon', event_url='https://ethdenver.com'),
            'cryptonomads',
        )

        assert decision == RejectedDuplicate('url:ethdenver.com')

    def test_rsvp_fingerprint_across_sources(self):
        session = DedupSession()
        session.admit(candidate(rsvp_url='https://lu.ma/campbuidl'), 'cryptonomads')

        decision = session.admit(
            candidate(name='Camp BUIDL', city='Boulder', rsvp_url='https://lu.ma/campbuidl/'),
            'lu',
        )

        assert decision == RejectedDuplicate('rsvp:lu.ma/campbuidl')

    @pytest.mark.parametrize('record, reason', [
        (candidate(name=None), 'missing name'),
        (candidate(name='   '), 'missing name'),
        (candidate(event_date=None), 'missing event_date'),
        (candidate(name='EF'), 'name too short'),
        (candidate(name='CNC Member Discount'), 'not an event'),
        (candidate(name='RSVP'), 'not an event'),
        (candidate(name='Register'), 'not an event'),
    ])
    def test_invalid_records(self, record, reason):
        session = DedupSession()

        decision = session.admit(record, 'cryptonomads')

        assert decision == RejectedInvalid(reason)
        assert session.invalid == 1
        assert not session.existing_fingerprints

    def test_from_events_seeds_state(self):
        history = [
            stored('1', '2026-01-01T00:00:00', source_id='cryptonomads-ethdenver-2026-02-23',
                   event_url='https://ethdenver.com'),
        ]

        session = DedupSession.from_events(history)

        assert session.existing_source_ids == {'cryptonomads-ethdenver-2026-02-23'}
        assert session.existing_fingerprints == {
            'ethdenver|2026-02-23|denver', 'url:ethdenver.com',
        }

    def test_end_to_end_scenario(self):
        response = (
            'Here are the events:\n```json\n'
            '[{"name":"ETHDenver","event_date":"2026-02-23","city":"Denver"}]\n```'
        )

        objects = parse_event_array(response)
        assert len(objects) == 1

        record = EventProcessor().process_events(objects)[0]
        assert content_fingerprint(record) == 'ethdenver|2026-02-23|denver'

        decision = DedupSession(set(), set()).admit(record, 'cryptonomads')
        assert isinstance(decision, Accepted)
        assert decision.record.source_id == 'cryptonomads-ethdenver-2026-02-23'


class TestNonEventNames:
    """Test cases for promotional title detection."""

    @pytest.mark.parametrize('name', [
        'Member Discount', 'CNC Member tix', 'rsvp', 'Register Now', 'Get Tickets', 'Book now!',
    ])
    def test_promotional_titles(self, name):
        assert is_non_event_name(name)

    @pytest.mark.parametrize('name', ['ETHDenver', 'Register Your DAO Workshop', 'RSVP Party Night'])
    def test_real_events(self, name):
        assert not is_non_event_name(name)


class TestFindDuplicateGroups:
    """Test cases for historical duplicate search."""

    def test_no_duplicates(self):
        events = [
            stored('1', '2026-01-01', source_id='a'),
            stored('2', '2026-01-02', name='Devcon', source_id='b'),
        ]
        assert find_duplicate_groups(events) == []

    def test_source_id_group_keeps_earliest(self):
        events = [
            stored('new', '2026-01-03', source_id='dup'),
            stored('old', '2026-01-01', source_id='dup'),
        ]

        groups = find_duplicate_groups(events)

        assert len(groups) == 1
        assert groups[0].reason == 'source_id'
        assert groups[0].keep.id == 'old'
        assert [event.id for event in groups[0].duplicates] == ['new']

    def test_url_pass_matches_rsvp_against_event_url(self):
        events = [
            stored('1', '2026-01-01', source_id='a', name='ETHDenver',
                   event_url='https://lu.ma/ethdenver'),
            stored('2', '2026-01-02', source_id='b', name='ETHDenver Main Stage',
                   city='Boulder', rsvp_url='https://www.lu.ma/ethdenver/'),
        ]

        groups = find_duplicate_groups(events)

        assert [(group.reason, group.keep.id) for group in groups] == [('url', '1')]
        assert groups[0].key == 'lu.ma/ethdenver'

    def test_fingerprint_pass_and_priority(self):
        events = [
            stored('1', '2026-01-01', source_id='a'),
            stored('2', '2026-01-02', source_id='a'),
            stored('3', '2026-01-03', source_id='c', name='ETHDenver!!'),
            stored('4', '2026-01-04', source_id='d', name='Devcon', city='Mumbai'),
        ]

        groups = find_duplicate_groups(events)

        assert [(group.reason, group.keep.id, [e.id for e in group.duplicates]) for group in groups] == [
            ('source_id', '1', ['2']),
            ('fingerprint', '1', ['3']),
        ]
