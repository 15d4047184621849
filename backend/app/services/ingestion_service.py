"""
COG metadata ingestion

Validates and persists a new COG record, lazily creating its parent product
and maintaining the satellite/product reference sets.
"""
import logging
from pathlib import PurePosixPath
from typing import Any, Dict, Optional

from app.models.cog import Cog, CogIngestRequest
from app.models.product import Product
from app.models.satellite import Satellite
from app.services.audit_service import AuditTrailService
from app.services.band_normalizer import normalize_band_name
from app.services.metadata_repository import (
    DuplicateRecordError,
    MetadataStore,
    new_id,
)

logger = logging.getLogger(__name__)


class SatelliteNotDefinedError(ValueError):
    """Ingestion referenced a satelliteId with no Satellite record"""
    pass


class IngestionService:
    """
    Ingestion handler

    Store failures propagate to the caller; nothing written before the
    failure is rolled back.
    """

    def __init__(self, store: MetadataStore, audit_trail: Optional[AuditTrailService] = None):
        self.store = store
        self.audit_trail = audit_trail

    def ingest(self, request: CogIngestRequest, raw_payload: Optional[Dict[str, Any]] = None) -> Cog:
        """
        Persist one COG

        Args:
            request: Validated ingestion request (acquisition time already in epoch ms)
            raw_payload: Original request body for the audit trail

        Returns:
            Cog: the stored record

        Raises:
            SatelliteNotDefinedError: unknown satelliteId
        """
        satellite = self.store.find_satellite(request.satellite_id)
        if satellite is None:
            raise SatelliteNotDefinedError(f"Satellite {request.satellite_id} not defined")

        product_code = normalize_band_name(request.product_code)
        product = self.find_or_create_product(
            satellite,
            product_code,
            request.processing_level,
            request.product_display_name
        )

        bands = [
            band.model_copy(update={"description": normalize_band_name(band.description)})
            if band.description else band
            for band in request.bands
        ]

        cog = Cog(
            id=new_id(),
            satellite=satellite.id,
            satellite_id=satellite.satellite_id,
            filename=request.filename or PurePosixPath(request.filepath).name,
            filepath=request.filepath,
            aquisition_datetime=request.aquisition_datetime,
            coverage=request.coverage,
            coordinate_system=request.coordinate_system,
            size=request.size,
            corner_coords=request.corner_coords,
            bands=bands,
            processing_level=request.processing_level,
            version=request.version,
            revision=request.revision,
            resolution=request.resolution,
            type=request.type,
            product_code=product_code,
            product=product.id,
        )
        cog = self.store.create_cog(cog)
        self.store.add_to_satellite_sets(satellite.id, cogs=[cog.id])
        self.store.add_product_cogs(product.id, [cog.id])

        logger.info(
            f"Ingested cog {cog.id} for {satellite.satellite_id}/{request.processing_level}/"
            f"{product_code} at {cog.aquisition_datetime}"
        )

        self.record_audit(satellite.satellite_id, raw_payload)
        return cog

    def find_or_create_product(
        self,
        satellite: Satellite,
        product_code: str,
        processing_level: str,
        display_name: Optional[str] = None
    ) -> Product:
        """
        Product for the (productCode, satelliteId, processingLevel) triple, created if unseen

        A missing productDisplayName is backfilled from the request. Creation is
        a conditional put; a writer that loses the race re-reads the winner.
        """
        product = self.store.find_product(product_code, satellite.satellite_id, processing_level)

        if product is None:
            try:
                product = self.store.create_product(Product(
                    id="",
                    product_id=product_code,
                    satellite_id=satellite.satellite_id,
                    processing_level=processing_level,
                    is_visible=True,
                    product_display_name=display_name,
                ))
                self.store.add_to_satellite_sets(satellite.id, products=[product.id])
                return product
            except DuplicateRecordError:
                logger.info(f"Product {product_code} created concurrently, reusing it")
                product = self.store.find_product(product_code, satellite.satellite_id, processing_level)
                if product is None:
                    raise

        if display_name and not product.product_display_name:
            product = self.store.update_product(product.id, {"productDisplayName": display_name})

        return product

    def record_audit(self, satellite_id: str, raw_payload: Optional[Dict[str, Any]]) -> None:
        """Best-effort audit copy; failures are logged and swallowed"""
        if self.audit_trail is None or raw_payload is None:
            return
        try:
            self.audit_trail.write(satellite_id, raw_payload)
        except Exception as e:
            logger.error(f"Failed to write audit copy for {satellite_id}: {e}")
