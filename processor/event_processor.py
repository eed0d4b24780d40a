"""Event processor for coercing extracted records into candidate events."""
import logging
from datetime import date, datetime
from typing import Iterable, List, Optional

from processor.errors import InvalidRecord
from processor.models import EVENT_TYPES, CandidateEvent

logger = logging.getLogger(__name__)


class EventProcessor:
    """Processor for normalizing raw extraction output."""

    MAX_NAME_LENGTH = 200
    MAX_DESCRIPTION_LENGTH = 2000

    TEXT_FIELDS = (
        'venue', 'city', 'country', 'organizer',
        'event_url', 'rsvp_url', 'image_url',
    )

    def process_events(self, raw_events: Iterable) -> List[CandidateEvent]:
        """
        Convert raw extracted objects into CandidateEvent records.

        Records missing a name or a parseable date are still returned (with
        the field set to None) so callers can count them as invalid.

        Args:
            raw_events: Objects recovered from an extraction response

        Returns:
            List of CandidateEvent objects
        """
        candidates = []

        for raw in raw_events:
            try:
                candidates.append(self._process_single_event(raw))
            except InvalidRecord as e:
                logger.warning(f"Skipping record: {e}")
                continue

        return candidates

    def _process_single_event(self, raw: dict) -> CandidateEvent:
        """
        Process a single extracted object.

        Args:
            raw: Dictionary as returned by the model

        Returns:
            CandidateEvent object

        Raises:
            InvalidRecord: If the entry is not a JSON object
        """
        if not isinstance(raw, dict):
            raise InvalidRecord(f"expected an object, got {type(raw).__name__}")

        name = self._clean_text(raw.get('name'))
        if name:
            name = name[:self.MAX_NAME_LENGTH]

        event_date = None
        raw_date = self._clean_text(raw.get('event_date'))
        if raw_date:
            event_date = self._normalize_date(raw_date)
            if not event_date:
                logger.warning(
                    f"Invalid date format for event '{name}': {raw_date}"
                )

        description = self._clean_text(raw.get('description'))
        if description:
            description = description[:self.MAX_DESCRIPTION_LENGTH]

        fields = {key: self._clean_text(raw.get(key)) for key in self.TEXT_FIELDS}

        return CandidateEvent(
            name=name,
            event_date=event_date,
            event_type=self._normalize_event_type(raw.get('event_type')),
            start_time=self._normalize_time(raw.get('start_time')),
            end_time=self._normalize_time(raw.get('end_time')),
            description=description,
            tags=self._clean_list(raw.get('tags')),
            blockchain_focus=self._clean_list(raw.get('blockchain_focus')),
            **fields
        )

    def is_past(self, event: CandidateEvent, today: Optional[date] = None) -> bool:
        """Return True if the event date lies before today."""
        today = today or date.today()
        try:
            event_day = datetime.strptime(event.event_date, '%Y-%m-%d').date()
        except (TypeError, ValueError):
            return False
        return event_day < today

    def _normalize_date(self, date_str: str) -> Optional[str]:
        """
        Normalize date to ISO 8601 format (YYYY-MM-DD).

        Args:
            date_str: Date string in various formats

        Returns:
            ISO 8601 formatted date string or None if parsing fails
        """
        date_formats = [
            '%Y-%m-%d',      # ISO 8601
            '%Y-%m-%dT%H:%M:%S',
            '%m/%d/%Y',      # US format
            '%B %d, %Y',     # Full month name
            '%b %d, %Y',     # Abbreviated month name
            '%d %B %Y',
            '%Y/%m/%d',
        ]

        for fmt in date_formats:
            try:
                date_obj = datetime.strptime(date_str.strip(), fmt)
                return date_obj.strftime('%Y-%m-%d')
            except ValueError:
                continue

        return None

    def _normalize_time(self, time_str) -> Optional[str]:
        """
        Normalize time to 24-hour format (HH:MM).

        Args:
            time_str: Time string in various formats

        Returns:
            24-hour formatted time string or None if missing or unparseable
        """
        time_str = self._clean_text(time_str)
        if not time_str:
            return None

        time_formats = [
            '%H:%M',         # 24-hour format
            '%I:%M %p',      # 12-hour format with AM/PM
            '%I:%M%p',       # 12-hour format without space
            '%I %p',
            '%H:%M:%S',      # 24-hour with seconds
        ]

        for fmt in time_formats:
            try:
                time_obj = datetime.strptime(time_str, fmt)
                return time_obj.strftime('%H:%M')
            except ValueError:
                continue

        return None

    def _normalize_event_type(self, value) -> str:
        event_type = (self._clean_text(value) or '').lower()
        return event_type if event_type in EVENT_TYPES else 'other'

    @staticmethod
    def _clean_text(value) -> Optional[str]:
        if value is None:
            return None
        if not isinstance(value, str):
            value = str(value)
        value = value.strip()
        return value or None

    @staticmethod
    def _clean_list(value) -> List[str]:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            return []
        return [str(item).strip() for item in value
                if item is not None and str(item).strip()]
