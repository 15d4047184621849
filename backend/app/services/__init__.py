"""
Catalog services
"""
from .metadata_repository import (
    MetadataStore,
    MetadataStoreError,
    RecordNotFoundError,
    DuplicateRecordError,
    DatabaseConnectionError,
)
from .audit_service import AuditTrailService
from .ingestion_service import IngestionService, SatelliteNotDefinedError
from .purge_service import PurgeService, PurgeResult
from .query_composer import CogQuery, DEFAULT_FRAME_COUNT, VALID_FRAME_COUNTS

__all__ = [
    "MetadataStore",
    "MetadataStoreError",
    "RecordNotFoundError",
    "DuplicateRecordError",
    "DatabaseConnectionError",
    "AuditTrailService",
    "IngestionService",
    "SatelliteNotDefinedError",
    "PurgeService",
    "PurgeResult",
    "CogQuery",
    "DEFAULT_FRAME_COUNT",
    "VALID_FRAME_COUNTS",
]
