"""
Audit trail service tests
"""
import json
import pytest
from datetime import datetime, timezone
from unittest.mock import Mock, patch

from botocore.exceptions import ClientError

from app.services.audit_service import AuditTrailService

WHEN = datetime(2025, 4, 3, 6, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def local_trail(tmp_path, monkeypatch):
    monkeypatch.delenv("AUDIT_S3_BUCKET", raising=False)
    return AuditTrailService(directory=str(tmp_path))


class TestLocalAuditTrail:

    def test_audit_key_layout(self, local_trail):
        key = local_trail.audit_key("3R", WHEN)
        assert key.startswith("3R/2025-04-03/20250403T060000000000Z_")
        assert key.endswith(".json")

    def test_write_creates_dated_file(self, local_trail, tmp_path):
        location = local_trail.write("3R", {"satelliteId": "3R", "password": "x"}, when=WHEN)

        written = list((tmp_path / "3R" / "2025-04-03").glob("*.json"))
        assert [str(path) for path in written] == [location]
        body = json.loads(written[0].read_text(encoding="utf-8"))
        assert body["satelliteId"] == "3R"
        assert body["password"] == "***REDACTED***"

    def test_missing_satellite_id(self, local_trail, tmp_path):
        local_trail.write("", {"type": "VIS"}, when=WHEN)
        assert list((tmp_path / "unknown").rglob("*.json"))


class TestS3AuditTrail:

    @pytest.fixture
    def mock_s3_client(self):
        return Mock()

    @pytest.fixture
    def s3_trail(self, mock_s3_client):
        with patch("boto3.client", return_value=mock_s3_client) as client:
            trail = AuditTrailService(bucket_name="audit-bucket", region="us-west-2")
        client.assert_called_once_with("s3", region_name="us-west-2", endpoint_url=None)
        return trail

    def test_put_object(self, s3_trail, mock_s3_client):
        location = s3_trail.write("3R", {"satelliteId": "3R"}, when=WHEN)

        kwargs = mock_s3_client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "audit-bucket"
        assert kwargs["Key"].startswith("audit/3R/2025-04-03/")
        assert kwargs["ContentType"] == "application/json"
        assert json.loads(kwargs["Body"].decode("utf-8")) == {"satelliteId": "3R"}
        assert location == f"s3://audit-bucket/{kwargs['Key']}"

    def test_upload_error_propagates(self, s3_trail, mock_s3_client):
        mock_s3_client.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject"
        )

        with pytest.raises(ClientError):
            s3_trail.write("3R", {"satelliteId": "3R"}, when=WHEN)
