"""DynamoDB manager for event storage operations."""
import hashlib
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

import boto3
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from processor.errors import DuplicateRecord, PersistenceBatchError
from processor.models import InsertResult, PersistedEvent

logger = logging.getLogger(__name__)


class DynamoDBManager:
    """Manager for DynamoDB operations."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit

    OPTIONAL_FIELDS = (
        'start_time', 'end_time', 'venue', 'city', 'country', 'organizer',
        'event_url', 'rsvp_url', 'image_url', 'description', 'source_url',
        'source_id', 'end_date',
    )

    def __init__(self, table_name: str, sources_table_name: Optional[str] = None):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
            sources_table_name: Table holding the last content hash per
                source URL, keyed on url. Without it no hashes are kept.
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        self.sources_table = (
            self.dynamodb.Table(sources_table_name) if sources_table_name else None
        )
        self.client = self.dynamodb.meta.client
        self.serializer = TypeSerializer()
        logger.info(f"Initialized DynamoDBManager for table: {table_name}")

    def get_all_events(self) -> List[PersistedEvent]:
        """
        Retrieve all events from DynamoDB using Scan operation.

        Returns:
            List of PersistedEvent objects ordered by created_at

        Raises:
            ClientError: If the table cannot be read
        """
        logger.info("Scanning DynamoDB table for all events")

        try:
            response = self.table.scan()
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))

        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise

        events = []
        for item in items:
            event = self._item_to_event(item)
            if event:
                events.append(event)

        events.sort(key=lambda event: event.created_at or '')
        logger.info(f"Retrieved {len(events)} events from DynamoDB")
        return events

    def insert_events(self, events: List[PersistedEvent]) -> InsertResult:
        """
        Insert new events in batches of 25.

        Each batch is written as one transaction that only succeeds if none
        of its ids exist yet. A rejected batch is retried record by record
        so a single bad or duplicate record does not drop the whole batch.

        Args:
            events: Accepted events without id/created_at

        Returns:
            InsertResult with inserted, duplicate and failed counts
        """
        result = InsertResult()
        if not events:
            return result

        logger.info(f"Inserting {len(events)} events into DynamoDB")

        for i in range(0, len(events), self.BATCH_SIZE):
            batch = events[i:i + self.BATCH_SIZE]
            batch_number = i // self.BATCH_SIZE + 1
            items = [self._event_to_item(self._stamp(event)) for event in batch]

            try:
                self._transact_insert(items)
                result.inserted += len(items)
                logger.info(f"Inserted batch {batch_number}: {len(items)} events")
            except PersistenceBatchError as e:
                logger.warning(
                    f"Batch {batch_number} rejected, inserting individually: {e}"
                )
                for event, item in zip(batch, items):
                    self._insert_single(event, item, result)

        logger.info(
            f"Insert complete: {result.inserted} inserted, "
            f"{result.duplicates} duplicates, {result.failed} failed"
        )
        return result

    def delete_events(self, event_ids: List[str]) -> int:
        """
        Delete events from DynamoDB in batches of 25 items.

        Args:
            event_ids: List of event IDs to delete

        Returns:
            Count of successfully deleted events
        """
        if not event_ids:
            return 0

        logger.info(f"Deleting {len(event_ids)} events from DynamoDB")
        success_count = 0

        for i in range(0, len(event_ids), self.BATCH_SIZE):
            batch = event_ids[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer() as writer:
                    for event_id in batch:
                        writer.delete_item(Key={'id': event_id})
                success_count += len(batch)

            except ClientError as e:
                logger.error(
                    f"Error deleting batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                continue

        logger.info(f"Successfully deleted {success_count} events")
        return success_count

    def update_multi_day(self, event: PersistedEvent) -> bool:
        """
        Write the merged date range of a multi-day event.

        Args:
            event: Kept record after apply_merge

        Returns:
            True if the update succeeded
        """
        try:
            self.table.update_item(
                Key={'id': event.id},
                UpdateExpression=(
                    'SET event_date = :start, end_date = :end, '
                    'is_multi_day = :multi, updated_at = :now'
                ),
                ExpressionAttributeValues={
                    ':start': event.event_date,
                    ':end': event.end_date,
                    ':multi': event.is_multi_day,
                    ':now': self._now(),
                },
                ConditionExpression='attribute_exists(id)',
            )
            return True
        except ClientError as e:
            logger.error(f"Failed to update {event.id}: {e}")
            return False

    def get_source_hash(self, url: str) -> Optional[str]:
        """
        Look up the content hash stored for a source page.

        Args:
            url: Source page URL

        Returns:
            Hash from the last scrape, or None if unknown or unreadable
        """
        if self.sources_table is None:
            return None

        try:
            response = self.sources_table.get_item(Key={'url': url})
        except ClientError as e:
            logger.error(f"Error reading source {url}: {e}")
            return None

        return response.get('Item', {}).get('content_hash')

    def save_source(self, url: str, content_hash: str, events_found: int) -> bool:
        """
        Record the content hash and event count of the latest scrape.

        Args:
            url: Source page URL
            content_hash: Hash of the scraped page text
            events_found: Records extracted from the page

        Returns:
            True if the source row was written
        """
        if self.sources_table is None:
            return False

        try:
            self.sources_table.put_item(Item={
                'url': url,
                'content_hash': content_hash,
                'events_found': events_found,
                'last_scraped_at': self._now(),
            })
            return True
        except ClientError as e:
            logger.error(f"Error saving source {url}: {e}")
            return False

    @staticmethod
    def generate_event_id(source: str, source_id: str) -> str:
        """
        Generate a stable id from (source, source_id).

        Concurrent runs inserting the same record compute the same id, so
        the conditional insert rejects the second write.
        """
        composite = f"{source}|{source_id}"
        return hashlib.sha256(composite.encode('utf-8')).hexdigest()

    def _transact_insert(self, items: List[dict]) -> None:
        try:
            self.client.transact_write_items(
                TransactItems=[
                    {
                        'Put': {
                            'TableName': self.table_name,
                            'Item': self._serialize(item),
                            'ConditionExpression': 'attribute_not_exists(id)',
                        }
                    }
                    for item in items
                ]
            )
        except ClientError as e:
            raise PersistenceBatchError(str(e)) from e

    def _insert_single(
        self,
        event: PersistedEvent,
        item: dict,
        result: InsertResult
    ) -> None:
        try:
            self._put_new(item)
            result.inserted += 1
        except DuplicateRecord:
            result.duplicates += 1
            logger.info(f"Event already stored: '{event.name}' ({event.source_id})")
        except ClientError as e:
            result.failed += 1
            error_msg = f"Error inserting '{event.name}': {e}"
            logger.error(error_msg)
            result.errors.append(error_msg)

    def _put_new(self, item: dict) -> None:
        """
        Put an item only if its id is not stored yet.

        Raises:
            DuplicateRecord: If an item with the same id exists
            ClientError: For any other rejection
        """
        try:
            self.table.put_item(
                Item=item,
                ConditionExpression='attribute_not_exists(id)'
            )
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException':
                raise DuplicateRecord(item['id']) from e
            raise

    def _stamp(self, event: PersistedEvent) -> PersistedEvent:
        if not event.id:
            event.id = self.generate_event_id(event.source, event.source_id or event.name)
        if not event.created_at:
            event.created_at = self._now()
        return event

    def _serialize(self, item: dict) -> Dict[str, dict]:
        return {key: self.serializer.serialize(value) for key, value in item.items()}

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def _item_to_event(self, item: dict) -> PersistedEvent:
        """
        Convert DynamoDB item to PersistedEvent object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            PersistedEvent object or None if conversion fails
        """
        try:
            return PersistedEvent(
                id=item['id'],
                name=item['name'],
                event_date=item['event_date'],
                event_type=item.get('event_type', 'other'),
                start_time=item.get('start_time'),
                end_time=item.get('end_time'),
                venue=item.get('venue'),
                city=item.get('city'),
                country=item.get('country'),
                organizer=item.get('organizer'),
                event_url=item.get('event_url'),
                rsvp_url=item.get('rsvp_url'),
                image_url=item.get('image_url'),
                description=item.get('description'),
                tags=list(item.get('tags', [])),
                blockchain_focus=list(item.get('blockchain_focus', [])),
                source=item.get('source', ''),
                source_url=item.get('source_url'),
                source_id=item.get('source_id'),
                status=item.get('status', 'draft'),
                created_at=item.get('created_at'),
                end_date=item.get('end_date'),
                is_multi_day=bool(item.get('is_multi_day', False)),
            )
        except KeyError as e:
            logger.warning(f"Failed to convert item to PersistedEvent: {e}")
            return None

    def _event_to_item(self, event: PersistedEvent) -> dict:
        """
        Convert PersistedEvent object to DynamoDB item.

        Args:
            event: PersistedEvent object

        Returns:
            DynamoDB item dictionary
        """
        item = {
            'id': event.id,
            'name': event.name,
            'event_date': event.event_date,
            'event_type': event.event_type,
            'tags': list(event.tags),
            'blockchain_focus': list(event.blockchain_focus),
            'source': event.source,
            'status': event.status,
            'created_at': event.created_at,
            'is_multi_day': event.is_multi_day,
        }

        # Add optional fields if present
        for key in self.OPTIONAL_FIELDS:
            value = getattr(event, key)
            if value:
                item[key] = value

        return item
