"""Ingestion run: fetch pages, extract events, dedupe and store them."""
import hashlib
import logging
from typing import List, Optional

from extractor.chunking import DEFAULT_CHUNK_SIZE, DEFAULT_OVERLAP, extract_long_document
from extractor.json_recovery import parse_event_array
from processor.dedup import DEFAULT_SOURCE, DedupSession
from processor.event_processor import EventProcessor
from processor.fingerprints import source_prefix_for_url
from processor.models import (
    Accepted,
    CandidateEvent,
    PersistedEvent,
    RejectedDuplicate,
    RunSummary,
    SourceResult,
)

logger = logging.getLogger(__name__)

MAX_DOCUMENT_CHARS = 200000


class IngestionRunner:
    """Runs one ingestion pass over a list of source pages."""

    def __init__(
        self,
        fetcher,
        extractor,
        store,
        processor: Optional[EventProcessor] = None,
        source: str = DEFAULT_SOURCE,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        overlap: int = DEFAULT_OVERLAP,
        skip_past_events: bool = False,
        skip_if_unchanged: bool = False
    ):
        """
        Args:
            fetcher: Object with fetch_text(url) -> str
            extractor: Object with extract(text, chunk_label) -> str
            store: Object with get_all_events(), insert_events(events),
                get_source_hash(url) and save_source(url, content_hash, events_found)
            processor: Record coercion (default EventProcessor())
            source: Source name stored on inserted events
            chunk_size: Window size for oversized pages
            overlap: Overlap between consecutive windows
            skip_past_events: Drop candidates dated before today
            skip_if_unchanged: Skip extraction when a page hashes the same as
                on its last scrape
        """
        self.fetcher = fetcher
        self.extractor = extractor
        self.store = store
        self.processor = processor or EventProcessor()
        self.source = source
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.skip_past_events = skip_past_events
        self.skip_if_unchanged = skip_if_unchanged

    def run(self, urls: List[str], dry_run: bool = False) -> RunSummary:
        """
        Ingest events from every URL.

        The dedup session is seeded once from the store and shared across
        all pages. A page that cannot be fetched or extracted is recorded
        as failed and the run continues.

        Args:
            urls: Source page URLs
            dry_run: Skip inserts, only report what would be inserted

        Returns:
            RunSummary with per-source counts

        Raises:
            Exception: If the event store cannot be read
        """
        summary = RunSummary(dry_run=dry_run)
        session = DedupSession.from_events(self.store.get_all_events(), source=self.source)

        for url in urls:
            result = self.ingest_source(url, session, dry_run=dry_run)
            summary.sources.append(result)

        totals = summary.totals()
        logger.info(
            f"Ingestion run complete: {totals['extracted']} extracted, "
            f"{totals['invalid']} invalid, {totals['duplicates']} duplicates, "
            f"{totals['inserted']} inserted, {len(summary.failed_sources)} failed sources",
            extra={'totals': totals, 'failed_sources': summary.failed_sources}
        )
        return summary

    def ingest_source(
        self,
        url: str,
        session: DedupSession,
        dry_run: bool = False
    ) -> SourceResult:
        """
        Ingest one page against a shared dedup session.

        Args:
            url: Source page URL
            session: Dedup state for the current run
            dry_run: Skip inserts

        Returns:
            SourceResult for the page
        """
        result = SourceResult(url=url)

        try:
            text = self.fetcher.fetch_text(url)
        except Exception as e:
            result.error = f"Failed to fetch page: {e}"
            logger.error(f"Failed to fetch {url}: {e}", extra={'error_type': type(e).__name__})
            return result

        content_hash = content_hash_of(text)
        if (
            self.skip_if_unchanged
            and not dry_run
            and self.store.get_source_hash(url) == content_hash
        ):
            result.unchanged = True
            logger.info(f"{url} unchanged since last scrape, skipping extraction")
            return result

        if len(text) > MAX_DOCUMENT_CHARS:
            logger.warning(
                f"Truncating {url} from {len(text)} to {MAX_DOCUMENT_CHARS} characters"
            )
            text = text[:MAX_DOCUMENT_CHARS]

        counts = {'extracted': 0, 'invalid': 0}

        def extract_window(chunk_text: str, chunk_label: str) -> List[CandidateEvent]:
            raw_text = self.extractor.extract(chunk_text, chunk_label)
            records = self.processor.process_events(parse_event_array(raw_text))
            counts['extracted'] += len(records)
            counts['invalid'] += sum(1 for record in records if not record.is_valid())
            return records

        try:
            candidates = extract_long_document(
                text, extract_window, chunk_size=self.chunk_size, overlap=self.overlap
            )
        except Exception as e:
            result.error = f"Extraction failed: {e}"
            logger.error(
                f"Extraction failed for {url}: {e}",
                extra={'error_type': type(e).__name__}
            )
            return result

        result.extracted = counts['extracted']
        result.invalid = counts['invalid']
        # Overlapping windows re-extract the same events; count them as duplicates
        result.duplicates = counts['extracted'] - counts['invalid'] - len(candidates)

        source_prefix = source_prefix_for_url(url)
        accepted: List[PersistedEvent] = []

        for candidate in candidates:
            if self.skip_past_events and self.processor.is_past(candidate):
                result.skipped_past += 1
                continue

            decision = session.admit(candidate, source_prefix, source_url=url)
            if isinstance(decision, Accepted):
                accepted.append(decision.record)
            elif isinstance(decision, RejectedDuplicate):
                result.duplicates += 1
            else:
                result.invalid += 1

        result.accepted = len(accepted)
        logger.info(
            f"{url}: {result.extracted} extracted, {result.accepted} new, "
            f"{result.duplicates} duplicates, {result.invalid} invalid, "
            f"{result.skipped_past} past"
        )

        if dry_run:
            return result

        if accepted:
            insert_result = self.store.insert_events(accepted)
            result.inserted = insert_result.inserted
            result.duplicates += insert_result.duplicates
            if insert_result.failed:
                logger.warning(f"{insert_result.failed} events from {url} failed to insert")

        if not self.store.save_source(url, content_hash, events_found=result.extracted):
            logger.warning(f"Could not record content hash for {url}")

        return result


def content_hash_of(text: str) -> str:
    """MD5 hex digest of page text, used to detect unchanged pages."""
    return hashlib.md5(text.encode('utf-8')).hexdigest()
