"""
Product API endpoints
"""
import math
import logging
from datetime import timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from app.models import (
    Product,
    ProductCompareRequest,
    ProductCreate,
    ProductSearchRequest,
    ProductUpdate,
    StorePredicate,
    VisibilityBatchRequest,
)
from app.api.dependencies import as_document, get_store, raise_for_error
from app.services.aggregation_engine import INTERVALS, temporal_distribution
from app.services.band_normalizer import effective_bands, normalize_band_name
from app.services.metadata_repository import MetadataStore, RecordNotFoundError
from app.services.query_composer import CogQuery, execute_cog_query
from app.services.visibility_resolver import product_predicate
from common.timeutils import millis_to_iso
from common.validators import InvalidQueryError, parse_timestamp

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/product",
    tags=["products"]
)

SORTABLE_FIELDS = ("createdAt", "updatedAt", "productId", "satelliteId", "processingLevel", "productDisplayName")


def _product_cogs(store: MetadataStore, product_id: str):
    return store.find_cogs(StorePredicate(equals={"product": product_id}))


def _as_utc(value):
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


# ----------------------------------------------------------------------
# Fixed paths
# ----------------------------------------------------------------------

@router.post("", status_code=status.HTTP_201_CREATED)
def create_product(request: ProductCreate, store: MetadataStore = Depends(get_store)) -> Dict[str, Any]:
    """
    Create a product

    Raises:
        HTTPException: 400 when the (productId, satelliteId, processingLevel) triple exists
    """
    try:
        product = store.create_product(Product(
            id="",
            product_id=normalize_band_name(request.product_id),
            satellite_id=request.satellite_id,
            processing_level=request.processing_level,
            is_visible=request.is_visible,
            product_display_name=request.product_display_name,
        ))

        satellite = store.find_satellite(request.satellite_id)
        if satellite is not None:
            store.add_to_satellite_sets(satellite.id, products=[product.id])
        else:
            logger.warning(f"Product {product.id} created for undefined satellite {request.satellite_id}")

        return {"message": "Product created successfully!", "product": as_document(product)}
    except Exception as e:
        raise_for_error(e, "create product")


@router.post("/batch/set-visibility")
def set_visibility_batch(
    payload: Dict[str, Any] = Body(...),
    store: MetadataStore = Depends(get_store)
) -> Dict[str, Any]:
    """
    Set isVisible on many products at once

    Body: {"productIds": [...], "isVisible": bool}; anything else is a 400.
    """
    try:
        request = VisibilityBatchRequest.model_validate(payload)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid request. Please provide productIds array and isVisible boolean"
        )

    try:
        updated = store.set_visibility(request.product_ids, request.is_visible)
        return {
            "message": f"Updated visibility for {updated} products",
            "updatedCount": updated,
        }
    except Exception as e:
        raise_for_error(e, "set product visibility")


@router.post("/advanced-search")
def advanced_search(request: ProductSearchRequest, store: MetadataStore = Depends(get_store)) -> Dict[str, Any]:
    """
    Product search with pagination and sorting

    Returns:
        dict: products, totalCount, page, totalPages
    """
    try:
        if request.sort_by not in SORTABLE_FIELDS:
            raise InvalidQueryError(f"Invalid sortBy '{request.sort_by}'. Must be one of: {', '.join(SORTABLE_FIELDS)}")

        predicate = StorePredicate()
        if request.satellite_ids:
            predicate.members["satelliteId"] = set(request.satellite_ids)
        if request.processing_levels:
            predicate.members["processingLevel"] = set(request.processing_levels)
        if request.product_codes:
            predicate.members["productId"] = {normalize_band_name(code) for code in request.product_codes}
        if not request.show_hidden:
            predicate.equals["isVisible"] = True

        products = store.find_products(predicate)

        if request.date_range is not None:
            start = _as_utc(request.date_range.start_date)
            end = _as_utc(request.date_range.end_date)
            products = [
                product for product in products
                if product.created_at is not None and start <= _as_utc(product.created_at) <= end
            ]

        documents = [as_document(product) for product in products]
        present = [doc for doc in documents if doc.get(request.sort_by) is not None]
        missing = [doc for doc in documents if doc.get(request.sort_by) is None]
        present.sort(key=lambda doc: (doc[request.sort_by], doc["id"]), reverse=request.sort_order == "desc")
        documents = present + missing

        total = len(documents)
        return {
            "products": documents[request.skip:request.skip + request.limit],
            "totalCount": total,
            "page": request.skip // request.limit + 1,
            "totalPages": math.ceil(total / request.limit),
        }
    except Exception as e:
        raise_for_error(e, "search products")


@router.post("/compare")
def compare_products(request: ProductCompareRequest, store: MetadataStore = Depends(get_store)) -> Dict[str, Any]:
    """
    Compare products by COG count, bands and latest acquisition

    Raises:
        HTTPException: 400 on an empty id list, 404 when no visible product matches
    """
    if not request.product_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No product IDs provided for comparison"
        )

    try:
        products: List[Product] = []
        for product_id in dict.fromkeys(request.product_ids):
            try:
                product = store.get_product(product_id)
            except RecordNotFoundError:
                logger.debug(f"Skipping unknown product in comparison: {product_id}")
                continue
            if product.is_visible or request.include_hidden:
                products.append(product)

        if not products:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No matching products found")

        band_sets: Dict[str, set] = {}
        cog_counts: Dict[str, int] = {}
        latest: Dict[str, Optional[str]] = {}
        cog_metadata: Dict[str, List[Dict[str, Any]]] = {}

        for product in products:
            cogs = _product_cogs(store, product.id)
            bands = set()
            for cog in cogs:
                bands |= effective_bands(cog)
            band_sets[product.id] = bands
            cog_counts[product.id] = len(cogs)
            latest[product.id] = (
                millis_to_iso(max(cog.aquisition_datetime for cog in cogs)) if cogs else None
            )
            if request.include_cog_metadata:
                cog_metadata[product.id] = [
                    {
                        "id": cog.id,
                        "type": cog.type,
                        "aquisition_datetime": cog.aquisition_datetime,
                        "bands": [
                            normalize_band_name(band.description) if band.description else band.description
                            for band in cog.bands
                        ],
                    }
                    for cog in sorted(cogs, key=lambda cog: cog.aquisition_datetime)
                ]

        common = set.intersection(*band_sets.values())
        response = {
            "products": [as_document(product) for product in products],
            "cogCounts": cog_counts,
            "latestAcquisitions": latest,
            "comparison": {
                "commonBands": sorted(common),
                "uniqueBands": {
                    product_id: sorted(bands - common) for product_id, bands in band_sets.items()
                },
            },
        }
        if request.include_cog_metadata:
            response["cogMetadata"] = cog_metadata
        return response
    except Exception as e:
        raise_for_error(e, "compare products")


@router.get("/analytics/temporal-distribution")
def get_temporal_distribution(
    satellite_id: Optional[str] = Query(None, alias="satelliteId"),
    processing_level: Optional[str] = Query(None, alias="processingLevel"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    interval: str = Query("daily", description="hourly, daily, weekly or monthly"),
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> Dict[str, Any]:
    """COG counts per interval with a per-processing-level breakdown"""
    try:
        if interval not in INTERVALS:
            raise InvalidQueryError(f"Invalid interval '{interval}'. Must be one of: {', '.join(INTERVALS)}")
        cogs = execute_cog_query(store, CogQuery(
            satellite_id=satellite_id,
            processing_level=processing_level,
            start=parse_timestamp(start_date, "startDate"),
            end=parse_timestamp(end_date, "endDate"),
            show_hidden=show_hidden,
        ))
        return {
            "distribution": temporal_distribution(cogs, interval),
            "total": len(cogs),
        }
    except Exception as e:
        raise_for_error(e, "compute temporal distribution")


@router.get("/satellite/{satellite_id}")
def list_products_of_satellite(
    satellite_id: str,
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> Dict[str, Any]:
    try:
        products = store.find_products(product_predicate(satellite_id, show_hidden=show_hidden))
        if not products:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No products found for this satellite"
            )
        return {
            "message": "Products retrieved successfully!",
            "products": [as_document(product) for product in products],
        }
    except Exception as e:
        raise_for_error(e, "list products")


# ----------------------------------------------------------------------
# Satellite scoped enumeration
# ----------------------------------------------------------------------

@router.get("/{sat_id}/processing-levels")
def list_processing_levels(
    sat_id: str,
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> Dict[str, List[str]]:
    try:
        products = store.find_products(product_predicate(sat_id, show_hidden=show_hidden))
        return {"processingLevels": sorted({product.processing_level for product in products})}
    except Exception as e:
        raise_for_error(e, "list processing levels")


@router.get("/{sat_id}/{processing_level}/product-codes")
def list_product_codes(
    sat_id: str,
    processing_level: str,
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> Dict[str, List[str]]:
    """Codes of the products that actually have COGs"""
    try:
        cogs = execute_cog_query(store, CogQuery(
            satellite_id=sat_id,
            processing_level=processing_level,
            show_hidden=show_hidden,
        ))
        return {"productCodes": sorted({cog.product_code for cog in cogs if cog.product_code})}
    except Exception as e:
        raise_for_error(e, "list product codes")


@router.get("/{sat_id}/products")
def list_satellite_products(
    sat_id: str,
    processing_level: Optional[str] = Query(None, alias="processingLevel"),
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> Dict[str, Any]:
    try:
        products = store.find_products(product_predicate(sat_id, processing_level, show_hidden=show_hidden))
        products.sort(key=lambda product: (product.processing_level, product.product_id))
        return {"products": [as_document(product) for product in products]}
    except Exception as e:
        raise_for_error(e, "list products")


# ----------------------------------------------------------------------
# Single product
# ----------------------------------------------------------------------

@router.get("/{product_id}")
def get_product(product_id: str, store: MetadataStore = Depends(get_store)) -> Dict[str, Any]:
    try:
        return {"product": as_document(store.get_product(product_id))}
    except Exception as e:
        raise_for_error(e, "get product")


@router.put("/{product_id}")
def update_product(
    product_id: str,
    request: ProductUpdate,
    store: MetadataStore = Depends(get_store)
) -> Dict[str, Any]:
    """Update productDisplayName and/or isVisible"""
    try:
        fields = request.model_dump(by_alias=True, exclude_none=True)
        if not fields:
            raise InvalidQueryError("No fields to update")
        product = store.update_product(product_id, fields)
        logger.info(f"Updated product {product_id}: {list(fields)}")
        return {"message": "Product updated successfully!", "product": as_document(product)}
    except Exception as e:
        raise_for_error(e, "update product")


@router.delete("/{product_id}")
def delete_product(product_id: str, store: MetadataStore = Depends(get_store)) -> Dict[str, Any]:
    """
    Delete a product and its COGs

    The product and COG ids are also pulled out of the owning satellite's sets.
    """
    try:
        product = store.get_product(product_id)
        cog_ids = [cog.id for cog in _product_cogs(store, product.id)]
        deleted = store.delete_cogs(cog_ids) if cog_ids else 0

        satellite = store.find_satellite(product.satellite_id)
        if satellite is not None:
            store.remove_from_satellite_sets(satellite.id, products=[product.id], cogs=cog_ids)

        store.delete_product(product.id)
        logger.info(f"Deleted product {product.id} with {deleted} cogs")
        return {"message": "Product deleted successfully!", "deletedCogs": deleted}
    except Exception as e:
        raise_for_error(e, "delete product")


@router.patch("/{product_id}/toggle-visibility")
def toggle_visibility(product_id: str, store: MetadataStore = Depends(get_store)) -> Dict[str, Any]:
    try:
        product = store.get_product(product_id)
        product = store.update_product(product.id, {"isVisible": not product.is_visible})
        logger.info(f"Product {product.id} visibility set to {product.is_visible}")
        return {
            "message": f"Product is now {'visible' if product.is_visible else 'hidden'}",
            "product": as_document(product),
            "isVisible": product.is_visible,
        }
    except Exception as e:
        raise_for_error(e, "toggle product visibility")


@router.get("/{product_id}/satellite")
def get_product_satellite(product_id: str, store: MetadataStore = Depends(get_store)) -> Dict[str, str]:
    """Owning satellite of a product"""
    try:
        product = store.get_product(product_id)
        satellite = store.find_satellite(product.satellite_id)
        if satellite is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Satellite not found")
        return {"satelliteId": satellite.satellite_id, "satelliteName": satellite.name}
    except Exception as e:
        raise_for_error(e, "get product satellite")
