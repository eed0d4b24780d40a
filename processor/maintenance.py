"""Batch passes over stored events: multi-day merge and duplicate cleanup."""
import logging
from collections import Counter
from typing import Any, Dict

from processor.dedup import find_duplicate_groups
from processor.multiday import DEFAULT_MAX_DAYS_APART, apply_merge, find_merge_groups

logger = logging.getLogger(__name__)


def run_multiday_merge(
    store,
    max_days_apart: int = DEFAULT_MAX_DAYS_APART,
    apply: bool = False
) -> Dict[str, Any]:
    """
    Merge split multi-day events.

    Args:
        store: Event store with get_all_events, update_multi_day, delete_events
        max_days_apart: Largest date span merged into one event
        apply: Write the merge; otherwise only report it

    Returns:
        Report dict with the planned groups and, when applied, write counts
    """
    events = store.get_all_events()
    groups = find_merge_groups(events, max_days_apart=max_days_apart)

    report = {
        'total_events': len(events),
        'groups': [
            {
                'name': group.keep.name,
                'keep_id': group.keep.id,
                'start_date': group.start_date,
                'end_date': group.end_date,
                'absorbed_ids': [event.id for event in group.absorbed],
            }
            for group in groups
        ],
        'applied': False,
        'updated': 0,
        'deleted': 0,
    }

    if not groups:
        logger.info("No split multi-day groups found")
        return report

    if not apply:
        logger.info(f"Dry run: {len(groups)} merge groups found, set MERGE=true to apply")
        return report

    absorbed_ids = []
    for group in groups:
        merged = apply_merge(group)
        if store.update_multi_day(merged):
            report['updated'] += 1
            absorbed_ids.extend(event.id for event in group.absorbed)
        else:
            logger.warning(f"Skipping deletes for group kept as {merged.id}")

    report['deleted'] = store.delete_events(absorbed_ids)
    report['applied'] = True
    logger.info(
        f"Merge applied: {report['updated']} updated, {report['deleted']} deleted"
    )
    return report


def run_duplicate_cleanup(store, apply: bool = False) -> Dict[str, Any]:
    """
    Remove duplicate events from the full stored history.

    Args:
        store: Event store with get_all_events and delete_events
        apply: Delete duplicates; otherwise only report them

    Returns:
        Report dict with group and status breakdowns
    """
    events = store.get_all_events()
    groups = find_duplicate_groups(events)
    duplicates = [event for group in groups for event in group.duplicates]

    report = {
        'total_events': len(events),
        'duplicate_groups': len(groups),
        'to_delete': [event.id for event in duplicates],
        'by_reason': dict(Counter(group.reason for group in groups)),
        'by_status': dict(Counter(event.status for event in duplicates)),
        'applied': False,
        'deleted': 0,
    }

    if not duplicates:
        logger.info("No duplicates found")
        return report

    if not apply:
        logger.info(
            f"Dry run: {len(duplicates)} duplicates found, set DELETE=true to delete"
        )
        return report

    report['deleted'] = store.delete_events(report['to_delete'])
    report['applied'] = True
    return report
