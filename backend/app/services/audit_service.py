"""
Audit trail of raw ingestion payloads, written to S3 or a local directory.
"""
import os
import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import boto3

from common.security import sanitize_log_data

logger = logging.getLogger(__name__)


class AuditTrailService:
    """Writes dated JSON copies of incoming requests."""

    def __init__(
        self,
        bucket_name: Optional[str] = None,
        directory: Optional[str] = None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None
    ):
        """
        Initialize the audit trail.

        Args:
            bucket_name: S3 bucket; when unset (and AUDIT_S3_BUCKET is unset) files go to `directory`
            directory: Local audit directory (default: AUDIT_DIR or ./audit)
            region: AWS region (default: AWS_REGION or us-west-2)
            endpoint_url: Optional endpoint URL for local testing (e.g., LocalStack)
        """
        self.bucket_name = bucket_name or os.getenv("AUDIT_S3_BUCKET")
        self.directory = Path(directory or os.getenv("AUDIT_DIR", "audit"))
        self.s3_client = None

        if self.bucket_name:
            self.s3_client = boto3.client(
                's3',
                region_name=region or os.getenv("AWS_REGION", "us-west-2"),
                endpoint_url=endpoint_url
            )
            logger.info(f"Audit trail writes to bucket: {self.bucket_name}")
        else:
            logger.info(f"Audit trail writes to directory: {self.directory}")

    def audit_key(self, satellite_id: str, when: datetime) -> str:
        """Relative path: <satelliteId>/<YYYY-MM-DD>/<timestamp>_<suffix>.json"""
        stamp = when.strftime("%Y%m%dT%H%M%S%fZ")
        return f"{satellite_id}/{when:%Y-%m-%d}/{stamp}_{uuid.uuid4().hex[:8]}.json"

    def write(self, satellite_id: str, payload: Dict[str, Any], when: Optional[datetime] = None) -> str:
        """
        Write one payload to the audit trail.

        Args:
            satellite_id: Satellite the payload belongs to
            payload: Raw request body
            when: Timestamp used for the path (default: now, UTC)

        Returns:
            Location of the written copy (s3:// URL or local path)

        Raises:
            ClientError / OSError: if the write fails
        """
        when = when or datetime.now(timezone.utc)
        key = self.audit_key(satellite_id or "unknown", when)
        body = json.dumps(sanitize_log_data(payload), indent=2, default=str)

        if self.s3_client is not None:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=f"audit/{key}",
                Body=body.encode("utf-8"),
                ContentType="application/json"
            )
            location = f"s3://{self.bucket_name}/audit/{key}"
        else:
            path = self.directory / key
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(body, encoding="utf-8")
            location = str(path)

        logger.debug(f"Wrote audit copy to {location}")
        return location
