"""Split oversized documents into overlapping windows for extraction."""
import logging
from typing import Callable, List, Tuple

from processor.fingerprints import content_fingerprint
from processor.models import CandidateEvent

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 50000
DEFAULT_OVERLAP = 2000

ExtractFn = Callable[[str, str], List[CandidateEvent]]


def split_windows(text: str, chunk_size: int, overlap: int) -> List[Tuple[int, int]]:
    """
    Compute window bounds covering the text.

    Window i starts at i * (chunk_size - overlap) and spans chunk_size
    characters; the final window may be shorter.

    Args:
        text: Document text
        chunk_size: Maximum window length in characters
        overlap: Characters shared by consecutive windows

    Returns:
        List of (start, end) offsets
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError(
            f"overlap must be in [0, chunk_size), got {overlap} "
            f"for chunk_size {chunk_size}"
        )

    step = chunk_size - overlap
    windows = []
    start = 0
    while True:
        end = min(start + chunk_size, len(text))
        windows.append((start, end))
        if end >= len(text):
            break
        start += step
    return windows


def extract_long_document(
    text: str,
    extract_fn: ExtractFn,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP
) -> List[CandidateEvent]:
    """
    Run extraction over a document, one call per overlapping window.

    Windows are processed in order. A record is kept only the first time
    its content fingerprint is seen, which drops the copies produced by
    window overlap. A failing window is skipped; if every window fails
    the last error is raised.

    Args:
        text: Document text
        extract_fn: Callable taking (chunk_text, chunk_label)
        chunk_size: Maximum window length in characters
        overlap: Characters shared by consecutive windows

    Returns:
        Valid CandidateEvents in window order
    """
    if len(text) <= chunk_size:
        return [record for record in extract_fn(text, 'part 1 of 1')
                if record.is_valid()]

    windows = split_windows(text, chunk_size, overlap)
    total = len(windows)
    logger.info(
        f"Splitting {len(text)} characters into {total} windows "
        f"(chunk_size={chunk_size}, overlap={overlap})"
    )

    seen = set()
    kept: List[CandidateEvent] = []
    failures = 0
    last_error = None

    for number, (start, end) in enumerate(windows, start=1):
        label = f"part {number} of {total}"
        try:
            records = extract_fn(text[start:end], label)
        except Exception as e:
            failures += 1
            last_error = e
            logger.warning(f"Extraction failed for {label}: {e}")
            continue

        added = 0
        for record in records:
            if not record.is_valid():
                continue
            fingerprint = content_fingerprint(record)
            if fingerprint in seen:
                continue
            seen.add(fingerprint)
            kept.append(record)
            added += 1

        logger.info(
            f"Window {label}: {len(records)} extracted, {added} kept"
        )

    if failures == total and last_error is not None:
        raise last_error

    return kept
