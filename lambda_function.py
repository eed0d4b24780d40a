"""AWS Lambda handler for the event ingestion pipeline."""
import json
import logging
import os
import time
from typing import Any, Dict, List

from extractor.chunking import DEFAULT_CHUNK_SIZE, DEFAULT_OVERLAP
from extractor.gemini_client import GeminiExtractor
from processor.dedup import DEFAULT_SOURCE
from processor.ingestion import IngestionRunner
from processor.maintenance import run_duplicate_cleanup, run_multiday_merge
from processor.multiday import DEFAULT_MAX_DAYS_APART
from scraper.page_fetcher import PageFetcher
from storage.dynamodb_manager import DynamoDBManager

MODES = ('ingest', 'merge', 'cleanup')

# Attributes every LogRecord carries; anything else came in through `extra`
_RESERVED_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message'}


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def parse_flag(value: Any) -> bool:
    """Read a true/false switch from an env var or payload value."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes')


def env_flag(name: str, default: str = 'false') -> bool:
    return parse_flag(os.environ.get(name, default))


def env_list(name: str) -> List[str]:
    raw = os.environ.get(name, '')
    return [item.strip() for item in raw.split(',') if item.strip()]


def source_urls_from_env() -> List[str]:
    return env_list('SOURCE_URLS')


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def _error_response(message: str, error: Exception, start_time: float) -> Dict[str, Any]:
    return _response(500, {
        'message': message,
        'error': str(error),
        'error_type': type(error).__name__,
        'duration_seconds': round(time.time() - start_time, 2)
    })


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for event ingestion and maintenance.

    Args:
        event: Invocation payload. "mode" selects ingest (default), merge
            or cleanup; "url" restricts ingestion to one page; "dry_run"
            skips inserts during ingestion and accepts true/false strings.
        context: Lambda context object

    Returns:
        Response dict with statusCode and summary statistics
    """
    event = event or {}

    # Read configuration from environment variables
    table_name = os.environ.get('TABLE_NAME', 'crypto-events')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    mode = event.get('mode', 'ingest')
    start_time = time.time()
    logger.info(
        "Lambda execution started",
        extra={'table_name': table_name, 'mode': mode}
    )

    if mode not in MODES:
        return _response(400, {
            'message': f"Unknown mode '{mode}'",
            'allowed_modes': list(MODES)
        })

    if mode == 'ingest':
        api_key = os.environ.get('GEMINI_API_KEY')
        if not api_key:
            return _response(500, {'message': 'GEMINI_API_KEY is not configured'})
        urls = [event['url']] if event.get('url') else source_urls_from_env()
        if not urls:
            return _response(400, {'message': 'No source URLs configured'})

    try:
        store = DynamoDBManager(
            table_name=table_name,
            sources_table_name=os.environ.get('SOURCES_TABLE_NAME')
        )

        if mode == 'merge':
            apply = env_flag('MERGE')
            max_days_apart = int(os.environ.get('MAX_DAYS_APART', str(DEFAULT_MAX_DAYS_APART)))
            report = run_multiday_merge(store, max_days_apart=max_days_apart, apply=apply)
        elif mode == 'cleanup':
            report = run_duplicate_cleanup(store, apply=env_flag('DELETE'))
        else:
            report = _run_ingestion(
                store, api_key, urls, dry_run=parse_flag(event.get('dry_run', False))
            )

    except Exception as e:
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _error_response(f"{mode.capitalize()} failed", e, start_time)

    duration = time.time() - start_time
    logger.info(
        "Lambda execution completed successfully",
        extra={'mode': mode, 'duration_seconds': round(duration, 2)}
    )

    return _response(200, {
        'message': f"{mode.capitalize()} completed successfully",
        'mode': mode,
        'statistics': report,
        'duration_seconds': round(duration, 2)
    })


def _run_ingestion(
    store: DynamoDBManager,
    api_key: str,
    urls: List[str],
    dry_run: bool = False
) -> Dict[str, Any]:
    """Build the ingestion pipeline from the environment and run it."""
    logger = logging.getLogger(__name__)

    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    runner = IngestionRunner(
        fetcher=PageFetcher(timeout=timeout_seconds),
        extractor=GeminiExtractor(
            api_key=api_key,
            model=os.environ.get('GEMINI_MODEL', 'gemini-2.0-flash'),
            event_types=env_list('EVENT_TYPES'),
            blockchain_focus=env_list('BLOCKCHAIN_FOCUS')
        ),
        store=store,
        source=os.environ.get('EVENT_SOURCE', DEFAULT_SOURCE),
        chunk_size=int(os.environ.get('CHUNK_SIZE', str(DEFAULT_CHUNK_SIZE))),
        overlap=int(os.environ.get('CHUNK_OVERLAP', str(DEFAULT_OVERLAP))),
        skip_past_events=env_flag('SKIP_PAST_EVENTS'),
        skip_if_unchanged=env_flag('SKIP_IF_UNCHANGED')
    )

    logger.info(f"Ingesting {len(urls)} source pages")
    summary = runner.run(urls, dry_run=dry_run)

    return {
        'dry_run': summary.dry_run,
        'totals': summary.totals(),
        'sources': [
            {
                'url': result.url,
                'success': result.success,
                'extracted': result.extracted,
                'invalid': result.invalid,
                'duplicates': result.duplicates,
                'skipped_past': result.skipped_past,
                'accepted': result.accepted,
                'inserted': result.inserted,
                'unchanged': result.unchanged,
                'error': result.error
            }
            for result in summary.sources
        ],
        'failed_sources': summary.failed_sources
    }
