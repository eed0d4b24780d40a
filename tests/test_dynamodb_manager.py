"""Unit tests for DynamoDB manager."""
from unittest.mock import patch

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from processor.models import MergeGroup, PersistedEvent
from processor.multiday import apply_merge
from storage.dynamodb_manager import DynamoDBManager


@pytest.fixture
def dynamodb_table():
    """Create a mock DynamoDB table for testing."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')

        table = dynamodb.create_table(
            TableName='test-crypto-events',
            KeySchema=[
                {'AttributeName': 'id', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        yield table


@pytest.fixture
def dynamodb_manager(dynamodb_table):
    """Create DynamoDBManager instance with mock table."""
    return DynamoDBManager('test-crypto-events')


@pytest.fixture
def sources_manager(dynamodb_table):
    """Create DynamoDBManager with a mock source hash table."""
    boto3.resource('dynamodb', region_name='us-east-1').create_table(
        TableName='test-event-sources',
        KeySchema=[
            {'AttributeName': 'url', 'KeyType': 'HASH'}
        ],
        AttributeDefinitions=[
            {'AttributeName': 'url', 'AttributeType': 'S'}
        ],
        BillingMode='PAY_PER_REQUEST'
    )
    return DynamoDBManager('test-crypto-events', sources_table_name='test-event-sources')

def make_event(name='ETHDenver', event_date='2026-02-23', **overrides):
    fields = {
        'city': 'Denver',
        'source': 'firecrawl',
        'source_url': 'https://cryptonomads.org/',
        'source_id': f"cryptonomads-{name.lower().replace(' ', '-')}-{event_date}",
        'tags': ['ethereum'],
    }
    fields.update(overrides)
    return PersistedEvent(name=name, event_date=event_date, **fields)


def test_get_all_events_empty_table(dynamodb_manager):
    """Test get_all_events returns empty list for empty table."""
    assert dynamodb_manager.get_all_events() == []


def test_insert_events_round_trip(dynamodb_manager):
    """Test inserted events come back with id and created_at set."""
    event = make_event(
        rsvp_url='https://lu.ma/ethdenver',
        blockchain_focus=['ethereum'],
        start_time='09:00',
    )

    result = dynamodb_manager.insert_events([event])

    assert (result.inserted, result.duplicates, result.failed) == (1, 0, 0)

    stored = dynamodb_manager.get_all_events()
    assert len(stored) == 1
    retrieved = stored[0]
    assert retrieved.id == DynamoDBManager.generate_event_id('firecrawl', event.source_id)
    assert retrieved.created_at is not None
    assert retrieved.name == 'ETHDenver'
    assert retrieved.rsvp_url == 'https://lu.ma/ethdenver'
    assert retrieved.tags == ['ethereum']
    assert retrieved.start_time == '09:00'
    assert retrieved.end_time is None
    assert retrieved.status == 'draft'
    assert retrieved.is_multi_day is False


def test_insert_events_multiple_batches(dynamodb_manager):
    """Test inserting more events than one batch holds."""
    events = [make_event(name=f"Meetup {i}") for i in range(30)]

    result = dynamodb_manager.insert_events(events)

    assert result.inserted == 30
    assert len(dynamodb_manager.get_all_events()) == 30


def test_insert_existing_event_falls_back_to_single_inserts(dynamodb_manager):
    """Test a batch containing an already-stored record only skips that record."""
    dynamodb_manager.insert_events([make_event()])

    result = dynamodb_manager.insert_events([
        make_event(),
        make_event(name='Camp BUIDL', event_date='2026-02-14'),
    ])

    assert (result.inserted, result.duplicates, result.failed) == (1, 1, 0)
    names = sorted(event.name for event in dynamodb_manager.get_all_events())
    assert names == ['Camp BUIDL', 'ETHDenver']


def test_insert_single_failure_isolated(dynamodb_manager):
    """Test a record rejected for another reason is counted as failed."""
    events = [make_event(), make_event(name='Devcon')]
    original_put = dynamodb_manager.table.put_item
    error = ClientError(
        {'Error': {'Code': 'ValidationException', 'Message': 'bad item'}}, 'PutItem'
    )

    def put_item(**kwargs):
        if kwargs['Item']['name'] == 'Devcon':
            raise error
        return original_put(**kwargs)

    transact_error = ClientError(
        {'Error': {'Code': 'TransactionCanceledException', 'Message': 'cancelled'}},
        'TransactWriteItems'
    )
    with patch.object(dynamodb_manager.client, 'transact_write_items', side_effect=transact_error), \
            patch.object(dynamodb_manager.table, 'put_item', side_effect=put_item):
        result = dynamodb_manager.insert_events(events)

    assert (result.inserted, result.duplicates, result.failed) == (1, 0, 1)
    assert len(result.errors) == 1


def test_insert_events_empty(dynamodb_manager):
    result = dynamodb_manager.insert_events([])
    assert result.inserted == 0


def test_delete_events(dynamodb_manager):
    """Test deleting stored events by id."""
    dynamodb_manager.insert_events([make_event(name=f"Party {i}") for i in range(3)])
    ids = [event.id for event in dynamodb_manager.get_all_events()]

    deleted = dynamodb_manager.delete_events(ids[:2])

    assert deleted == 2
    assert [event.id for event in dynamodb_manager.get_all_events()] == [ids[2]]


def test_delete_events_empty_list(dynamodb_manager):
    assert dynamodb_manager.delete_events([]) == 0


def test_update_multi_day(dynamodb_manager):
    """Test merge update sets the date range on the kept record."""
    dynamodb_manager.insert_events([make_event(name='Camp BUIDL', event_date='2026-02-15')])
    keep = dynamodb_manager.get_all_events()[0]
    merged = apply_merge(
        MergeGroup(keep=keep, absorbed=[], start_date='2026-02-14', end_date='2026-02-16')
    )

    assert dynamodb_manager.update_multi_day(merged) is True

    updated = dynamodb_manager.get_all_events()[0]
    assert updated.event_date == '2026-02-14'
    assert updated.end_date == '2026-02-16'
    assert updated.is_multi_day is True
    assert updated.created_at == keep.created_at


def test_update_multi_day_missing_record(dynamodb_manager):
    """Test updating a record that no longer exists fails cleanly."""
    ghost = make_event()
    ghost.id = 'missing'
    ghost.end_date = '2026-02-24'
    ghost.is_multi_day = True

    assert dynamodb_manager.update_multi_day(ghost) is False
    assert dynamodb_manager.get_all_events() == []


def test_save_and_read_source_hash(sources_manager):
    url = 'https://cryptonomads.org/'
    assert sources_manager.get_source_hash(url) is None

    assert sources_manager.save_source(url, 'abc123', events_found=4) is True
    assert sources_manager.get_source_hash(url) == 'abc123'

    assert sources_manager.save_source(url, 'def456', events_found=5) is True
    assert sources_manager.get_source_hash(url) == 'def456'

    item = sources_manager.sources_table.get_item(Key={'url': url})['Item']
    assert item['events_found'] == 5
    assert item['last_scraped_at']


def test_source_hash_without_sources_table(dynamodb_manager):
    """Test hash tracking is off when no sources table is configured."""
    assert dynamodb_manager.get_source_hash('https://cryptonomads.org/') is None
    assert dynamodb_manager.save_source('https://cryptonomads.org/', 'abc123', 1) is False


def test_source_hash_missing_table(dynamodb_table):
    """Test an unreachable sources table is logged, not raised."""
    manager = DynamoDBManager('test-crypto-events', sources_table_name='no-such-table')

    assert manager.get_source_hash('https://cryptonomads.org/') is None
    assert manager.save_source('https://cryptonomads.org/', 'abc123', 1) is False


def test_generate_event_id_stable():
    first = DynamoDBManager.generate_event_id('firecrawl', 'cryptonomads-ethdenver-2026-02-23')
    second = DynamoDBManager.generate_event_id('firecrawl', 'cryptonomads-ethdenver-2026-02-23')
    other = DynamoDBManager.generate_event_id('luma', 'cryptonomads-ethdenver-2026-02-23')

    assert first == second
    assert first != other
    assert len(first) == 64
