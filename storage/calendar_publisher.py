"""Publishing of the merged calendar document."""
import logging
from pathlib import Path
from typing import Union

import boto3
from botocore.exceptions import ClientError

from processor.calendar_exporter import CALENDAR_FILENAME, CALENDAR_MEDIA_TYPE

logger = logging.getLogger(__name__)


class S3CalendarPublisher:
    """Publishes the merged .ics document to an S3 bucket."""

    def __init__(self, bucket: str, key: str = CALENDAR_FILENAME):
        """
        Initialize S3 client and target location.

        Args:
            bucket: Name of the S3 bucket
            key: Object key of the published calendar
        """
        self.bucket = bucket
        self.key = key
        self.s3 = boto3.client('s3')
        logger.info(f"Initialized S3CalendarPublisher for s3://{bucket}/{key}")

    def publish(self, document: str) -> str:
        """
        Upload the calendar document, replacing any previous version.

        Args:
            document: iCalendar text

        Returns:
            s3:// URI of the published object

        Raises:
            ClientError: If the upload fails
        """
        body = document.encode('utf-8')
        filename = Path(self.key).name or CALENDAR_FILENAME

        try:
            self.s3.put_object(
                Bucket=self.bucket,
                Key=self.key,
                Body=body,
                ContentType=CALENDAR_MEDIA_TYPE,
                ContentDisposition=f'attachment; filename="{filename}"'
            )
        except ClientError as e:
            logger.error(f"Error publishing calendar to s3://{self.bucket}/{self.key}: {e}")
            raise

        logger.info(f"Published {len(body)} bytes to s3://{self.bucket}/{self.key}")
        return f"s3://{self.bucket}/{self.key}"


def write_calendar_file(document: str, path: Union[str, Path]) -> Path:
    """
    Write the calendar document to disk without newline translation.

    Args:
        document: iCalendar text
        path: Target file path

    Returns:
        Path written
    """
    path = Path(path)
    path.write_bytes(document.encode('utf-8'))
    logger.info(f"Wrote merged calendar to {path}")
    return path
