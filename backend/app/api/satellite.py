"""
Satellite API endpoints
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query, status

from app.models import (
    ProductAttachRequest,
    Satellite,
    SatelliteCreate,
    SatelliteStats,
    SatelliteUpdate,
)
from app.api.dependencies import as_document, get_store, raise_for_error
from app.services.band_normalizer import collect_bands
from app.services.metadata_repository import MetadataStore, RecordNotFoundError
from app.services.query_composer import CogQuery, execute_cog_query
from app.services.visibility_resolver import product_predicate
from common.validators import InvalidQueryError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/satellite",
    tags=["satellites"]
)


def _find_satellite(store: MetadataStore, satellite_id: str) -> Satellite:
    satellite = store.find_satellite(satellite_id)
    if satellite is None:
        raise RecordNotFoundError("Satellite not found!")
    return satellite


@router.post("", status_code=status.HTTP_201_CREATED)
def create_satellite(request: SatelliteCreate, store: MetadataStore = Depends(get_store)) -> Dict[str, Any]:
    """
    Create a satellite

    Raises:
        HTTPException: 400 when the satelliteId is taken
    """
    try:
        satellite = store.create_satellite(Satellite(id="", **request.model_dump()))
        return {"message": "Satellite created successfully!", "satellite": as_document(satellite)}
    except Exception as e:
        raise_for_error(e, "create satellite")


@router.get("")
def list_satellites(store: MetadataStore = Depends(get_store)) -> Dict[str, Any]:
    try:
        satellites = sorted(store.list_satellites(), key=lambda satellite: satellite.satellite_id)
        return {
            "message": "All satellites fetched successfully!",
            "satellites": [as_document(satellite) for satellite in satellites],
        }
    except Exception as e:
        raise_for_error(e, "list satellites")


@router.get("/{satellite_id}")
def get_satellite(satellite_id: str, store: MetadataStore = Depends(get_store)) -> Dict[str, Any]:
    try:
        satellite = _find_satellite(store, satellite_id)
        return {"message": "Satellite fetched successfully!", "satellite": as_document(satellite)}
    except Exception as e:
        raise_for_error(e, "get satellite")


@router.put("/{satellite_id}")
def update_satellite(
    satellite_id: str,
    request: SatelliteUpdate,
    store: MetadataStore = Depends(get_store)
) -> Dict[str, Any]:
    """Update name, manufacturer or orbit; satelliteId is immutable"""
    try:
        fields = request.model_dump(by_alias=True, exclude_none=True)
        if not fields:
            raise InvalidQueryError("No fields to update")
        satellite = store.update_satellite(_find_satellite(store, satellite_id).id, fields)
        return {"message": "Satellite updated successfully!", "satellite": as_document(satellite)}
    except Exception as e:
        raise_for_error(e, "update satellite")


@router.delete("/{satellite_id}")
def delete_satellite(satellite_id: str, store: MetadataStore = Depends(get_store)) -> Dict[str, str]:
    """Delete the satellite record; its products and COGs are left in place"""
    try:
        store.delete_satellite(_find_satellite(store, satellite_id).id)
        return {"message": "Satellite deleted successfully!"}
    except Exception as e:
        raise_for_error(e, "delete satellite")


@router.get("/{satellite_id}/products")
def list_products(
    satellite_id: str,
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> Dict[str, Any]:
    try:
        satellite = _find_satellite(store, satellite_id)
        products = store.find_products(product_predicate(satellite.satellite_id, show_hidden=show_hidden))
        products.sort(key=lambda product: (product.processing_level, product.product_id))
        return {
            "satelliteId": satellite.satellite_id,
            "products": [as_document(product) for product in products],
        }
    except Exception as e:
        raise_for_error(e, "list satellite products")


@router.post("/{satellite_id}/products")
def attach_products(
    satellite_id: str,
    request: ProductAttachRequest,
    store: MetadataStore = Depends(get_store)
) -> Dict[str, Any]:
    """
    Add existing products to the satellite's products set

    Raises:
        HTTPException: 404 when the satellite or any product is unknown
    """
    try:
        satellite = _find_satellite(store, satellite_id)
        for product_id in request.product_ids:
            store.get_product(product_id)
        store.add_to_satellite_sets(satellite.id, products=request.product_ids)
        logger.info(f"Attached {len(request.product_ids)} products to {satellite.satellite_id}")
        return {
            "message": "Products attached successfully!",
            "satellite": as_document(store.get_satellite(satellite.id)),
        }
    except Exception as e:
        raise_for_error(e, "attach products")


@router.get("/{satellite_id}/stats", response_model=SatelliteStats)
def get_stats(
    satellite_id: str,
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> SatelliteStats:
    """Product and COG counts, processing levels, bands and acquisition extremes"""
    try:
        satellite = _find_satellite(store, satellite_id)
        products = store.find_products(product_predicate(satellite.satellite_id, show_hidden=show_hidden))
        cogs = execute_cog_query(store, CogQuery(satellite_id=satellite.satellite_id, show_hidden=show_hidden))

        return SatelliteStats(
            satellite_id=satellite.satellite_id,
            name=satellite.name,
            product_count=len(products),
            cog_count=len(cogs),
            processing_levels=sorted({product.processing_level for product in products}),
            bands=collect_bands(cogs),
            earliest_acquisition=cogs[0].aquisition_datetime if cogs else None,
            latest_acquisition=cogs[-1].aquisition_datetime if cogs else None,
        )
    except Exception as e:
        raise_for_error(e, "compute satellite stats")
