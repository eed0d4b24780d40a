"""Duplicate detection for extracted and stored events."""
import logging
import re
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Set

from processor.fingerprints import (
    build_source_id,
    ordered_fingerprints,
)
from processor.models import (
    Accepted,
    CandidateEvent,
    Decision,
    DuplicateGroup,
    PersistedEvent,
    RejectedDuplicate,
    RejectedInvalid,
)
from processor.normalize import normalize_name, normalize_url

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = 'firecrawl'
MIN_NAME_LENGTH = 3

# Promotional or navigation text that extraction sometimes returns as a title.
NON_EVENT_PATTERNS = [
    re.compile(pattern) for pattern in (
        r'^(\w+ )?member (discount|discounts|tix|tickets?|perks?|pricing)$',
        r'^discount( code)?$',
        r'^rsvp( here| now)?$',
        r'^register( here| now| today)?$',
        r'^registration$',
        r'^(get|buy) (your )?tickets?$',
        r'^tickets?$',
        r'^sign up( now)?$',
        r'^book now$',
        r'^apply( now)?$',
        r'^learn more$',
        r'^(see|view) (all|more)( events)?$',
    )
]


def is_non_event_name(name: str) -> bool:
    normalized = normalize_name(name)
    return any(pattern.match(normalized) for pattern in NON_EVENT_PATTERNS)


def validate_candidate(record: CandidateEvent) -> Optional[str]:
    """
    Check a candidate against the admission rules.

    Returns:
        Reason string if the record is invalid, otherwise None
    """
    if not record.name or not record.name.strip():
        return 'missing name'
    if not record.event_date:
        return 'missing event_date'
    if len(record.name.strip()) < MIN_NAME_LENGTH:
        return 'name too short'
    if is_non_event_name(record.name):
        return 'not an event'
    return None


class DedupSession:
    """
    Running duplicate state for one ingestion run.

    Seeded from the event store, then updated as candidates are admitted so
    records found on different pages of the same run dedupe against each
    other as well as against history.
    """

    def __init__(
        self,
        existing_fingerprints: Optional[Set[str]] = None,
        existing_source_ids: Optional[Set[str]] = None,
        source: str = DEFAULT_SOURCE
    ):
        self.existing_fingerprints = (
            existing_fingerprints if existing_fingerprints is not None else set()
        )
        self.existing_source_ids = (
            existing_source_ids if existing_source_ids is not None else set()
        )
        self.source = source
        self.accepted = 0
        self.duplicates = 0
        self.invalid = 0

    @classmethod
    def from_events(
        cls,
        events: Iterable[PersistedEvent],
        source: str = DEFAULT_SOURCE
    ) -> 'DedupSession':
        """Build a session from records already in the store."""
        fingerprints: Set[str] = set()
        source_ids: Set[str] = set()
        for event in events:
            if event.source_id:
                source_ids.add(event.source_id)
            if event.is_valid():
                fingerprints.update(ordered_fingerprints(event))

        logger.info(
            f"Seeded dedup session with {len(fingerprints)} fingerprints "
            f"and {len(source_ids)} source ids"
        )
        return cls(fingerprints, source_ids, source=source)

    def admit(
        self,
        record: CandidateEvent,
        source_prefix: str,
        source_url: Optional[str] = None
    ) -> Decision:
        """
        Decide whether a candidate is new.

        Checks run in order: validity, source_id, then every fingerprint.
        Accepted records have their keys registered in the session.

        Args:
            record: Extracted candidate
            source_prefix: Tag for the page the record came from
            source_url: Page URL stored with the record

        Returns:
            Accepted, RejectedDuplicate or RejectedInvalid
        """
        reason = validate_candidate(record)
        if reason:
            self.invalid += 1
            logger.debug(f"Rejected invalid event '{record.name}': {reason}")
            return RejectedInvalid(reason)

        source_id = build_source_id(source_prefix, record.name, record.event_date)
        if source_id in self.existing_source_ids:
            self.duplicates += 1
            logger.debug(f"Duplicate source_id for '{record.name}': {source_id}")
            return RejectedDuplicate(source_id)

        keys = ordered_fingerprints(record)
        for key in keys:
            if key in self.existing_fingerprints:
                self.duplicates += 1
                logger.debug(f"Duplicate fingerprint for '{record.name}': {key}")
                return RejectedDuplicate(key)

        self.existing_source_ids.add(source_id)
        self.existing_fingerprints.update(keys)
        self.accepted += 1

        return Accepted(self._to_persisted(record, source_id, source_url))

    def _to_persisted(
        self,
        record: CandidateEvent,
        source_id: str,
        source_url: Optional[str]
    ) -> PersistedEvent:
        return PersistedEvent(
            name=record.name.strip(),
            event_date=record.event_date,
            event_type=record.event_type,
            start_time=record.start_time,
            end_time=record.end_time,
            venue=record.venue,
            city=record.city,
            country=record.country,
            organizer=record.organizer,
            event_url=record.event_url,
            rsvp_url=record.rsvp_url,
            image_url=record.image_url,
            description=record.description,
            tags=list(record.tags),
            blockchain_focus=list(record.blockchain_focus),
            source=self.source,
            source_url=source_url or record.event_url,
            source_id=source_id,
            status='draft',
        )


def find_duplicate_groups(events: List[PersistedEvent]) -> List[DuplicateGroup]:
    """
    Find duplicates across a full historical set of events.

    Events are grouped by (source, source_id), then by normalized event or
    RSVP URL, then by fingerprint. Within a group the earliest created
    record is kept; records marked in an earlier pass are not considered
    again.

    Args:
        events: All stored events

    Returns:
        Duplicate groups in discovery order
    """
    marked: Set[str] = set()
    groups: List[DuplicateGroup] = []

    by_source_id: Dict[str, List[PersistedEvent]] = OrderedDict()
    for event in events:
        if event.source and event.source_id:
            key = f"{event.source}|{event.source_id}"
            by_source_id.setdefault(key, []).append(event)
    groups.extend(_collect_groups(by_source_id, 'source_id', marked))

    by_url: Dict[str, List[PersistedEvent]] = OrderedDict()
    for event in events:
        if event.id in marked:
            continue
        event_url = normalize_url(event.event_url)
        if event_url:
            by_url.setdefault(event_url, []).append(event)
        rsvp_url = normalize_url(event.rsvp_url)
        if rsvp_url and rsvp_url != event_url:
            by_url.setdefault(rsvp_url, []).append(event)
    groups.extend(_collect_groups(by_url, 'url', marked))

    by_fingerprint: Dict[str, List[PersistedEvent]] = OrderedDict()
    for event in events:
        if event.id in marked or not event.is_valid():
            continue
        for key in ordered_fingerprints(event):
            by_fingerprint.setdefault(key, []).append(event)
    groups.extend(_collect_groups(by_fingerprint, 'fingerprint', marked))

    logger.info(
        f"Found {len(groups)} duplicate groups covering {len(marked)} "
        f"removable events out of {len(events)}"
    )
    return groups


def _collect_groups(
    buckets: Dict[str, List[PersistedEvent]],
    reason: str,
    marked: Set[str]
) -> List[DuplicateGroup]:
    groups = []
    for key, bucket in buckets.items():
        unique = _unique_unmarked(bucket, marked)
        if len(unique) < 2:
            continue
        unique.sort(key=_creation_order)
        keep, duplicates = unique[0], unique[1:]
        for duplicate in duplicates:
            marked.add(duplicate.id)
            logger.info(
                f"Duplicate ({reason}): '{duplicate.name}' "
                f"({duplicate.event_date}) - keeping '{keep.name}'"
            )
        groups.append(DuplicateGroup(key, reason, keep, duplicates))
    return groups


def _unique_unmarked(
    bucket: List[PersistedEvent],
    marked: Set[str]
) -> List[PersistedEvent]:
    seen = set()
    unique = []
    for event in bucket:
        if event.id in marked or event.id in seen:
            continue
        seen.add(event.id)
        unique.append(event)
    return unique


def _creation_order(event: PersistedEvent):
    return (event.created_at or '', event.id or '')
