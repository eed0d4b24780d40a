"""Identity keys used to recognize the same event across sources and runs."""
import re
from typing import List, Optional, Set
from urllib.parse import urlsplit

from processor.models import CandidateEvent
from processor.normalize import normalize_location, normalize_name, normalize_url

MAX_SOURCE_ID_LENGTH = 200
FALLBACK_SOURCE_PREFIX = 'preview'

_SOURCE_ID_UNSAFE = re.compile(r'[^a-zA-Z0-9-]')


def content_fingerprint(record: CandidateEvent) -> str:
    """Name + date + city key, present for every valid record."""
    _require_identity(record)
    return (
        f"{normalize_name(record.name)}|{record.event_date}|"
        f"{normalize_location(record.city)}"
    )


def ordered_fingerprints(record: CandidateEvent) -> List[str]:
    """
    Compute every identity key for a record, most specific content key first.

    Args:
        record: Validated candidate (name and event_date present)

    Returns:
        List of 1-4 keys: content, content_venue, url:, rsvp:
    """
    keys = [content_fingerprint(record)]

    city = normalize_location(record.city)
    venue = normalize_location(record.venue)
    if not city and venue:
        keys.append(
            f"{normalize_name(record.name)}|{record.event_date}|venue:{venue}"
        )

    event_url = normalize_url(record.event_url)
    if event_url:
        keys.append(f"url:{event_url}")

    rsvp_url = normalize_url(record.rsvp_url)
    if rsvp_url and rsvp_url != event_url:
        keys.append(f"rsvp:{rsvp_url}")

    return keys


def fingerprints(record: CandidateEvent) -> Set[str]:
    return set(ordered_fingerprints(record))


def build_source_id(source_prefix: str, name: str, event_date: str) -> str:
    """
    Build the per-origin identifier stored alongside an event.

    Args:
        source_prefix: Tag for the origin page or site
        name: Event name (normalized here)
        event_date: ISO event date

    Returns:
        Identifier restricted to [a-zA-Z0-9-], at most 200 characters
    """
    raw = f"{source_prefix}-{normalize_name(name)}-{event_date}"
    return _SOURCE_ID_UNSAFE.sub('-', raw)[:MAX_SOURCE_ID_LENGTH]


def source_prefix_for_url(url: Optional[str]) -> str:
    """
    Derive the source prefix for a page URL.

    The site's main listing maps to the bare site name
    ("https://cryptonomads.org/" -> "cryptonomads"); a sub-page appends
    its last path segment ("https://cryptonomads.org/ethdenver" ->
    "cryptonomads-ethdenver").
    """
    if not url:
        return FALLBACK_SOURCE_PREFIX

    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
    except ValueError:
        return FALLBACK_SOURCE_PREFIX
    if not hostname:
        return FALLBACK_SOURCE_PREFIX

    if hostname.startswith('www.'):
        hostname = hostname[4:]
    labels = hostname.split('.')
    site = '-'.join(labels[:-1]) if len(labels) > 1 else labels[0]

    segments = [segment for segment in parts.path.split('/') if segment]
    prefix = f"{site}-{segments[-1]}" if segments else site
    return _SOURCE_ID_UNSAFE.sub('-', prefix.lower())


def _require_identity(record: CandidateEvent) -> None:
    if not record.name or not record.event_date:
        raise ValueError(
            "Fingerprints require a record with name and event_date"
        )
