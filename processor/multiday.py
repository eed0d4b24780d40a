"""Collapse single-day rows of the same event into one ranged event."""
import logging
import re
from collections import OrderedDict
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from processor.models import MergeGroup, PersistedEvent
from processor.normalize import normalize_location, normalize_name

logger = logging.getLogger(__name__)

DEFAULT_MAX_DAYS_APART = 14

_TRAILING_EVENTS = re.compile(r'\s+events?\s*$', re.IGNORECASE)
_TRAILING_YEAR = re.compile(r'\s+\d{4}\s*$')


def merge_name_key(name: str) -> str:
    """
    Name key for multi-day grouping.

    Drops a trailing "event"/"events" word and then a trailing year, so
    "ETHDenver 2026" and "ETHDenver Events" share a key.
    """
    if not isinstance(name, str):
        return ''
    name = _TRAILING_EVENTS.sub('', name)
    name = _TRAILING_YEAR.sub('', name)
    return normalize_name(name)


def location_key(event: PersistedEvent) -> str:
    city = normalize_location(event.city)
    if city:
        return city
    venue = normalize_location(event.venue)
    return f"venue:{venue}" if venue else ''


def find_merge_groups(
    events: List[PersistedEvent],
    max_days_apart: int = DEFAULT_MAX_DAYS_APART
) -> List[MergeGroup]:
    """
    Find stored events that are days of one multi-day event.

    Events are grouped by merge name key and location. A group of two or
    more whose dates span at most max_days_apart days becomes one event:
    the earliest created record is kept and given the full date range, the
    others are absorbed.

    Args:
        events: Stored events
        max_days_apart: Largest span, in days, treated as one event

    Returns:
        List of MergeGroup objects
    """
    buckets: Dict[Tuple[str, str], List[Tuple[PersistedEvent, date, date]]] = OrderedDict()

    for event in events:
        start = _parse_date(event.event_date)
        if start is None:
            continue
        end = _parse_date(event.end_date) or start
        key = (merge_name_key(event.name), location_key(event))
        if not key[0]:
            continue
        buckets.setdefault(key, []).append((event, start, max(start, end)))

    groups = []
    for key, members in buckets.items():
        if len(members) < 2:
            continue

        first = min(start for _, start, _ in members)
        last = max(end for _, _, end in members)
        span = (last - first).days
        if span > max_days_apart:
            logger.debug(f"Group {key} spans {span} days, not merging")
            continue

        ordered = sorted(
            members,
            key=lambda member: (
                member[0].created_at or '', member[1], member[0].id or ''
            )
        )
        keep = ordered[0][0]
        absorbed = [event for event, _, _ in ordered[1:]]
        groups.append(MergeGroup(
            keep=keep,
            absorbed=absorbed,
            start_date=first.isoformat(),
            end_date=last.isoformat(),
        ))
        logger.info(
            f"Merge group '{keep.name}' ({keep.city or keep.venue or '-'}): "
            f"keep {keep.id}, absorb {len(absorbed)}, "
            f"{first.isoformat()} to {last.isoformat()}"
        )

    return groups


def apply_merge(group: MergeGroup) -> PersistedEvent:
    """Set the merged date range on the kept record and return it."""
    keep = group.keep
    keep.event_date = group.start_date
    keep.end_date = group.end_date
    keep.is_multi_day = True
    return keep


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value[:10], '%Y-%m-%d').date()
    except ValueError:
        return None
