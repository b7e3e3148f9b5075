"""
Object storage access for invoice files.

WHAT: Reads invoice and timesheet files from an S3-compatible bucket
(Cloudflare R2 in production, any S3 endpoint works).

WHY: Attachments are fetched at send time from the same bucket the upload
handlers write to.

HOW: boto3 is synchronous, so each call runs in a worker thread via
asyncio.to_thread and concurrent fetches do not block the event loop.
A missing key is reported as None so the caller decides whether that is
an error.
"""

import asyncio
import logging
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from invoice_mailer.core.config import settings
from invoice_mailer.core.exceptions import StorageError

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


class ObjectStorage:
    """
    Read-only view of the invoice file bucket.

    Example:
        storage = ObjectStorage()
        content = await storage.get_file("invoices/42/invoice.pdf")
    """

    def __init__(self, s3_client=None, bucket_name: Optional[str] = None):
        """
        Initialize ObjectStorage.

        Args:
            s3_client: Pre-built boto3 S3 client (tests inject a stub)
            bucket_name: Bucket to read from (defaults to settings.S3_BUCKET)
        """
        self.s3_client = s3_client or boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT,
            aws_access_key_id=settings.S3_ACCESS_KEY,
            aws_secret_access_key=settings.S3_SECRET_KEY,
            region_name=settings.S3_REGION,
        )
        self.bucket_name = bucket_name or settings.S3_BUCKET

    async def get_file(self, file_key: str) -> Optional[bytes]:
        """
        Fetch a file's bytes.

        Args:
            file_key: Object key

        Returns:
            File content, or None if the key does not exist

        Raises:
            StorageError: For any storage failure other than a missing key
        """
        return await asyncio.to_thread(self._get_file_sync, file_key)

    def _get_file_sync(self, file_key: str) -> Optional[bytes]:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=file_key)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_KEY_CODES:
                logger.info(f"Storage key not found: {file_key}")
                return None
            logger.error(f"Storage read failed for {file_key}: {code}")
            raise StorageError(
                message="Failed to read file from storage",
                file_key=file_key,
                error=code or str(e),
            )

        body = response["Body"]
        try:
            return body.read()
        finally:
            body.close()
