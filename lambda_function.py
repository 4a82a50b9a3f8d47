"""AWS Lambda handler for merged stay calendar refresh."""
import hashlib
import json
import logging
import os
import time
from typing import Any, Dict, List

from processor.calendar_exporter import CalendarExporter
from processor.conflict_detector import ConflictDetector
from processor.merge_orchestrator import MergeOrchestrator
from processor.models import ConflictPair, Source, SourceKind
from scraper.feed_fetcher import FeedFetcher
from storage.calendar_publisher import S3CalendarPublisher


# Configure JSON logging
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

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


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


def load_sources(raw: Any) -> List[Source]:
    """
    Build sources from configuration.

    Args:
        raw: JSON string or already-decoded list of
            {"id"?, "name", "kind"?, "url"} objects

    Returns:
        List of Source objects; ids missing from configuration are derived
        from name and url so they stay stable between runs

    Raises:
        ValueError: If the configuration is not a list of named sources
    """
    if isinstance(raw, str):
        raw = json.loads(raw) if raw.strip() else []

    if not isinstance(raw, list):
        raise ValueError("Source configuration must be a list")

    sources = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict) or not entry.get('name'):
            raise ValueError(f"Source #{index + 1} must be an object with a name")

        name = str(entry['name'])
        url = entry.get('url') or None
        source_id = entry.get('id') or hashlib.sha256(
            f"{name}|{url or ''}".encode('utf-8')
        ).hexdigest()[:16]

        sources.append(Source(
            id=str(source_id),
            display_name=name,
            kind=SourceKind.from_value(entry.get('kind')),
            locator=url
        ))

    return sources


def conflict_report(conflict: ConflictPair) -> Dict[str, Any]:
    """Summarize a conflict pair for the response body."""
    return {
        'titles': [conflict.earlier.title, conflict.later.title],
        'sources': conflict.involves_sources(),
        'overlap_start': conflict.overlap_start.isoformat(),
        'overlap_end': conflict.overlap_end.isoformat()
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for the scheduled calendar merge.

    Args:
        event: EventBridge event payload; may carry a "sources" list that
            overrides the SOURCES environment variable
        context: Lambda context object

    Returns:
        Response dict with statusCode and merge summary
    """
    # Read configuration from environment variables
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    max_retries = int(os.environ.get('MAX_RETRIES', '3'))
    max_workers = int(os.environ.get('MAX_WORKERS', '8'))
    proxies = [p.strip() for p in os.environ.get('CORS_PROXIES', '').split(',') if p.strip()]
    output_bucket = os.environ.get('OUTPUT_BUCKET')
    output_key = os.environ.get('OUTPUT_KEY', 'merged-bnb-calendar.ics')

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    logger.info(
        "Lambda execution started",
        extra={
            'timeout_seconds': timeout_seconds,
            'max_workers': max_workers,
            'output_bucket': output_bucket
        }
    )

    try:
        try:
            raw_sources = (event or {}).get('sources', os.environ.get('SOURCES', '[]'))
            sources = load_sources(raw_sources)
        except ValueError as e:
            logger.error(f"Invalid source configuration: {str(e)}")
            return {
                'statusCode': 400,
                'body': json.dumps({
                    'message': 'Invalid source configuration',
                    'error': str(e),
                    'error_type': type(e).__name__
                })
            }

        fetcher = FeedFetcher(
            timeout=timeout_seconds,
            max_retries=max_retries,
            proxy_prefixes=proxies
        )
        orchestrator = MergeOrchestrator(fetcher=fetcher, max_workers=max_workers)
        detector = ConflictDetector()
        exporter = CalendarExporter()

        logger.info(f"Merging {len(sources)} calendar sources")
        result = orchestrator.merge([(source, None) for source in sources])
        for failure in result.failures:
            logger.warning(
                f"Source failed: {failure.describe()}",
                extra={'source_id': failure.source_id, 'error_type': failure.error_type}
            )

        logger.info("Detecting conflicting bookings")
        conflicts = detector.detect_conflicts(result.events)

        logger.info("Exporting merged calendar")
        document = exporter.export(result.events)

        published_to = None
        if output_bucket:
            try:
                logger.info("Publishing merged calendar to S3")
                published_to = S3CalendarPublisher(output_bucket, output_key).publish(document)
            except Exception as e:
                logger.error(
                    f"Error publishing merged calendar: {str(e)}",
                    extra={'error_type': type(e).__name__},
                    exc_info=True
                )
                duration = time.time() - start_time
                return {
                    'statusCode': 500,
                    'body': json.dumps({
                        'message': 'Failed to publish merged calendar',
                        'error': str(e),
                        'error_type': type(e).__name__,
                        'note': 'Previously published calendar remains in place',
                        'duration_seconds': round(duration, 2)
                    })
                }

        duration = time.time() - start_time

        logger.info(
            "Lambda execution completed successfully",
            extra={
                'duration_seconds': round(duration, 2),
                'events_merged': len(result.events),
                'conflicts': len(conflicts),
                'failed_sources': len(result.failures)
            }
        )

        body = {
            'message': 'Merge completed successfully',
            'statistics': {
                'sources': len(sources),
                'failed_sources': len(result.failures),
                'events_merged': len(result.events),
                'conflicts': len(conflicts),
                'duration_seconds': round(duration, 2)
            },
            'failures': [
                {
                    'source_id': failure.source_id,
                    'source_name': failure.source_name,
                    'error_type': failure.error_type,
                    'error': failure.message
                }
                for failure in result.failures
            ],
            'conflicts': [conflict_report(conflict) for conflict in conflicts]
        }
        if published_to:
            body['published_to'] = published_to
        else:
            body['calendar'] = document

        return {
            'statusCode': 200,
            'body': json.dumps(body)
        }

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return {
            'statusCode': 500,
            'body': json.dumps({
                'message': 'Merge failed',
                'error': str(e),
                'error_type': type(e).__name__,
                'duration_seconds': round(duration, 2)
            })
        }
