"""
COG metadata API endpoints
"""
import math
import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app.models import (
    Cog,
    CogIngestRequest,
    CogSearchRequest,
    ComparativeAnalysisRequest,
    StorePredicate,
)
from app.api.dependencies import as_document, get_audit_trail, get_store, raise_for_error
from app.services.aggregation_engine import (
    INTERVALS,
    band_distribution,
    comparative_analysis,
    geographic_coverage,
    time_series,
)
from app.services.audit_service import AuditTrailService
from app.services.band_normalizer import collect_bands, pick_band_representatives, pick_type_representatives
from app.services.ingestion_service import IngestionService
from app.services.metadata_repository import MetadataStore, RecordNotFoundError
from app.services.purge_service import PurgeService
from app.services.query_composer import (
    CogQuery,
    available_dates,
    available_times,
    execute_cog_query,
    last_cogs,
    show_cog,
)
from app.services.visibility_resolver import is_cog_visible
from common.validators import (
    InvalidQueryError,
    parse_bbox,
    parse_timestamp,
    validate_bbox,
    validate_grid_size,
    validate_time_range,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/metadata",
    tags=["metadata"]
)


def get_ingestion_service(
    store: MetadataStore = Depends(get_store),
    audit_trail: Optional[AuditTrailService] = Depends(get_audit_trail)
) -> IngestionService:
    return IngestionService(store, audit_trail)


async def get_raw_body(request: Request) -> Dict[str, Any]:
    """Request body exactly as the client sent it"""
    return await request.json()


def _required_range(start: Optional[str], end: Optional[str]) -> Tuple[int, int]:
    """Parse and validate a mandatory inclusive [start, end] pair"""
    start_ms = parse_timestamp(start, "start")
    end_ms = parse_timestamp(end, "end")
    is_valid, error = validate_time_range(start_ms, end_ms)
    if not is_valid:
        raise InvalidQueryError(error)
    return start_ms, end_ms


def _optional_range(start: Optional[str], end: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    start_ms = parse_timestamp(start, "start")
    end_ms = parse_timestamp(end, "end")
    if start_ms is not None and end_ms is not None and start_ms > end_ms:
        raise InvalidQueryError("Start must be before end")
    return start_ms, end_ms


def _check_interval(interval: str) -> None:
    if interval not in INTERVALS:
        raise InvalidQueryError(f"Invalid interval '{interval}'. Must be one of: {', '.join(INTERVALS)}")


# ----------------------------------------------------------------------
# Ingestion and single-record lookup
# ----------------------------------------------------------------------

@router.post("/save", response_model=Cog)
def save_metadata(
    request: CogIngestRequest,
    raw_body: Dict[str, Any] = Depends(get_raw_body),
    service: IngestionService = Depends(get_ingestion_service)
) -> Cog:
    """
    Ingest the metadata of one COG

    The owning product is created on first sight of its
    (productCode, satelliteId, processingLevel) triple.

    Returns:
        Cog: the stored record

    Raises:
        HTTPException: 400 when the satellite is not defined
    """
    try:
        logger.info(f"Received metadata for {request.satellite_id}: {request.filepath}")
        return service.ingest(request, raw_body)
    except Exception as e:
        raise_for_error(e, "save metadata")


@router.get("/cog/all", response_model=List[Cog])
def list_all_cogs(
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> List[Cog]:
    """All COGs of visible products, oldest first"""
    try:
        return execute_cog_query(store, CogQuery(show_hidden=show_hidden))
    except Exception as e:
        raise_for_error(e, "list cogs")


@router.get("/cog/{cog_id}", response_model=Cog)
def get_cog(
    cog_id: str,
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> Cog:
    """Single COG by store id; a COG of a hidden product is reported as missing"""
    try:
        cog = store.get_cog(cog_id)
        if not is_cog_visible(store, cog.product, show_hidden):
            raise RecordNotFoundError(f"Cog not found: {cog_id}")
        return cog
    except Exception as e:
        raise_for_error(e, "get cog")


@router.post("/cog/search")
def search_cogs(request: CogSearchRequest, store: MetadataStore = Depends(get_store)) -> Dict[str, Any]:
    """
    Multi-value COG search

    Lists combine as OR within a field and AND across fields. bbox and point
    are matched against each COG's corner coordinates.

    Returns:
        dict: cogs, totalCount, page, totalPages
    """
    try:
        start, end = _optional_range(request.start_date, request.end_date)
        if request.bbox is not None:
            is_valid, error = validate_bbox(request.bbox)
            if not is_valid:
                raise InvalidQueryError(error)

        query = CogQuery(
            satellite_ids=request.satellite_ids,
            processing_levels=request.processing_levels,
            product_codes=request.product_codes,
            types=request.types,
            bands=request.bands,
            start=start,
            end=end,
            bbox=request.bbox,
            point=(request.point.lat, request.point.lon) if request.point else None,
            show_hidden=request.show_hidden,
        )
        cogs = execute_cog_query(store, query, descending=request.sort_order == "desc")
        total = len(cogs)

        return {
            "cogs": [as_document(cog) for cog in cogs[request.skip:request.skip + request.limit]],
            "totalCount": total,
            "page": request.skip // request.limit + 1,
            "totalPages": math.ceil(total / request.limit),
        }
    except Exception as e:
        raise_for_error(e, "search cogs")


# ----------------------------------------------------------------------
# Aggregations
# ----------------------------------------------------------------------

@router.get("/time-series")
def get_time_series(
    satellite_id: Optional[str] = Query(None, alias="satelliteId"),
    processing_level: Optional[str] = Query(None, alias="processingLevel"),
    product_code: Optional[str] = Query(None, alias="productCode"),
    band: Optional[str] = Query(None),
    start: Optional[str] = Query(None, description="Epoch ms or ISO-8601"),
    end: Optional[str] = Query(None, description="Epoch ms or ISO-8601"),
    interval: str = Query("daily", description="hourly, daily, weekly or monthly"),
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> Dict[str, Any]:
    """
    COG counts bucketed by acquisition interval

    Args:
        band: Only count COGs carrying this band/type token
        interval: Bucket granularity

    Returns:
        dict: interval, series (timestamp, count, products) and total
    """
    try:
        _check_interval(interval)
        start_ms, end_ms = _optional_range(start, end)
        cogs = execute_cog_query(store, CogQuery(
            satellite_id=satellite_id,
            processing_level=processing_level,
            product_code=product_code,
            start=start_ms,
            end=end_ms,
            band=band,
            show_hidden=show_hidden,
        ))

        product_ids = {cog.product for cog in cogs if cog.product}
        products = {
            product.id: product
            for product in store.find_products(StorePredicate(members={"id": product_ids}))
        }
        series = time_series(cogs, interval, products=products)

        return {
            "interval": interval,
            "series": series,
            "total": sum(bucket["count"] for bucket in series),
        }
    except Exception as e:
        raise_for_error(e, "build time series")


@router.get("/analytics/band-distribution")
def get_band_distribution(
    satellite_id: Optional[str] = Query(None, alias="satelliteId"),
    processing_level: Optional[str] = Query(None, alias="processingLevel"),
    product_code: Optional[str] = Query(None, alias="productCode"),
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> Dict[str, Any]:
    """Occurrences of each band/type token, most frequent first"""
    try:
        start_ms, end_ms = _optional_range(start, end)
        cogs = execute_cog_query(store, CogQuery(
            satellite_id=satellite_id,
            processing_level=processing_level,
            product_code=product_code,
            start=start_ms,
            end=end_ms,
            show_hidden=show_hidden,
        ))
        return band_distribution(cogs)
    except Exception as e:
        raise_for_error(e, "compute band distribution")


@router.get("/geographic-coverage")
def get_geographic_coverage(
    satellite_id: Optional[str] = Query(None, alias="satelliteId"),
    processing_level: Optional[str] = Query(None, alias="processingLevel"),
    product_code: Optional[str] = Query(None, alias="productCode"),
    type: Optional[str] = Query(None),
    band: Optional[str] = Query(None),
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    bbox: Optional[str] = Query(None, description="west,south,east,north"),
    grid_size: float = Query(1.0, alias="gridSize", description="Cell size in degrees"),
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> Dict[str, Any]:
    """
    Grid cells touched by COG footprints

    Returns:
        dict: gridSize, cells, cellsCovered, totalCells, coveragePercentage,
        bounds and cogsWithCoordinates
    """
    try:
        is_valid, error = validate_grid_size(grid_size)
        if not is_valid:
            raise InvalidQueryError(error)
        start_ms, end_ms = _optional_range(start, end)

        cogs = execute_cog_query(store, CogQuery(
            satellite_id=satellite_id,
            processing_level=processing_level,
            product_code=product_code,
            type=type,
            band=band,
            start=start_ms,
            end=end_ms,
            bbox=parse_bbox(bbox),
            show_hidden=show_hidden,
        ))
        return geographic_coverage(cogs, grid_size)
    except Exception as e:
        raise_for_error(e, "compute geographic coverage")


@router.post("/comparative-analysis")
def compare_periods(
    request: ComparativeAnalysisRequest,
    store: MetadataStore = Depends(get_store)
) -> Dict[str, Any]:
    """
    Compare COG activity in two disjoint windows

    Raises:
        HTTPException: 400 when a window is inverted or the windows overlap
    """
    try:
        first = _required_range(request.period1.start, request.period1.end)
        second = _required_range(request.period2.start, request.period2.end)
        if first[0] <= second[1] and second[0] <= first[1]:
            raise InvalidQueryError("period1 and period2 must not overlap")

        def window_cogs(window: Tuple[int, int]) -> List[Cog]:
            return execute_cog_query(store, CogQuery(
                satellite_ids=request.satellite_ids,
                processing_levels=request.processing_levels,
                product_codes=request.product_codes,
                start=window[0],
                end=window[1],
                show_hidden=request.show_hidden,
            ))

        return comparative_analysis(
            window_cogs(first),
            window_cogs(second),
            first,
            second,
            request.metrics
        )
    except Exception as e:
        raise_for_error(e, "run comparative analysis")


# ----------------------------------------------------------------------
# Purge
# ----------------------------------------------------------------------

@router.delete("/delete-cogs-before")
def delete_cogs_before(
    date: Optional[str] = Query(None, description="Cutoff, epoch ms or ISO-8601"),
    store: MetadataStore = Depends(get_store)
) -> Dict[str, Any]:
    """Delete every COG acquired strictly before `date`"""
    try:
        cutoff = parse_timestamp(date, "date")
        if cutoff is None:
            raise InvalidQueryError("date is required")
        result = PurgeService(store).purge_before(cutoff)
        return {"message": f"Deleted {result.deleted_cogs} cogs", **result.to_dict()}
    except Exception as e:
        raise_for_error(e, "delete cogs")


@router.delete("/delete-cogs")
def delete_old_cogs(
    days: int = Query(0, ge=0),
    months: int = Query(0, ge=0),
    years: int = Query(0, ge=0),
    store: MetadataStore = Depends(get_store)
) -> Dict[str, Any]:
    """Delete every COG older than the given days/months/years"""
    try:
        result = PurgeService(store).purge_older_than(days=days, months=months, years=years)
        return {"message": f"Deleted {result.deleted_cogs} cogs", **result.to_dict()}
    except Exception as e:
        raise_for_error(e, "delete cogs")


# ----------------------------------------------------------------------
# Satellite scoped listings
# ----------------------------------------------------------------------

@router.get("/{sat_id}/cog/all", response_model=List[Cog])
def list_satellite_cogs(
    sat_id: str,
    processing_level: Optional[str] = Query(None, alias="processingLevel"),
    product_code: Optional[str] = Query(None, alias="productCode"),
    type: Optional[str] = Query(None),
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> List[Cog]:
    try:
        return execute_cog_query(store, CogQuery(
            satellite_id=sat_id,
            processing_level=processing_level,
            product_code=product_code,
            type=type,
            show_hidden=show_hidden,
        ))
    except Exception as e:
        raise_for_error(e, "list cogs")


@router.get("/{sat_id}/cog/range", response_model=List[Cog])
def list_cogs_in_range(
    sat_id: str,
    start: Optional[str] = Query(None, description="Epoch ms or ISO-8601, inclusive"),
    end: Optional[str] = Query(None, description="Epoch ms or ISO-8601, inclusive"),
    processing_level: Optional[str] = Query(None, alias="processingLevel"),
    product_code: Optional[str] = Query(None, alias="productCode"),
    type: Optional[str] = Query(None),
    band: Optional[str] = Query(None),
    bbox: Optional[str] = Query(None, description="west,south,east,north"),
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> List[Cog]:
    """
    COGs acquired within [start, end], oldest first

    Raises:
        HTTPException: 400 when start or end is missing or malformed
    """
    try:
        start_ms, end_ms = _required_range(start, end)
        return execute_cog_query(store, CogQuery(
            satellite_id=sat_id,
            processing_level=processing_level,
            product_code=product_code,
            type=type,
            band=band,
            bbox=parse_bbox(bbox),
            start=start_ms,
            end=end_ms,
            show_hidden=show_hidden,
        ))
    except Exception as e:
        raise_for_error(e, "list cogs in range")


@router.get("/{sat_id}/cog/last", response_model=List[Cog])
def list_last_cogs(
    sat_id: str,
    timestamp: Optional[str] = Query(None, description="Only COGs acquired at or before this instant"),
    count: Optional[int] = Query(None, description="Frame count"),
    processing_level: Optional[str] = Query(None, alias="processingLevel"),
    product_code: Optional[str] = Query(None, alias="productCode"),
    type: Optional[str] = Query(None),
    band: Optional[str] = Query(None),
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> List[Cog]:
    """
    Most recent COGs, latest first

    Raises:
        HTTPException: 400 when count is not an allowed frame count
    """
    try:
        return last_cogs(
            store,
            CogQuery(
                satellite_id=sat_id,
                processing_level=processing_level,
                product_code=product_code,
                type=type,
                band=band,
                show_hidden=show_hidden,
            ),
            count=count,
            timestamp=parse_timestamp(timestamp, "timestamp")
        )
    except Exception as e:
        raise_for_error(e, "list last cogs")


@router.get("/{sat_id}/cog/show", response_model=Cog)
def show_satellite_cog(
    sat_id: str,
    datetime: Optional[str] = Query(None, description="Exact acquisition instant; latest when omitted"),
    processing_level: Optional[str] = Query(None, alias="processingLevel"),
    product_code: Optional[str] = Query(None, alias="productCode"),
    type: Optional[str] = Query(None),
    band: Optional[str] = Query(None),
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> Cog:
    try:
        cog = show_cog(
            store,
            CogQuery(
                satellite_id=sat_id,
                processing_level=processing_level,
                product_code=product_code,
                type=type,
                band=band,
                show_hidden=show_hidden,
            ),
            at=parse_timestamp(datetime, "datetime")
        )
        if cog is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cog not found")
        return cog
    except Exception as e:
        raise_for_error(e, "show cog")


@router.get("/{sat_id}/cog/available-times")
def list_available_times(
    sat_id: str,
    processing_level: Optional[str] = Query(None, alias="processingLevel"),
    product_code: Optional[str] = Query(None, alias="productCode"),
    type: Optional[str] = Query(None),
    band: Optional[str] = Query(None),
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> List[int]:
    """Distinct acquisition instants (epoch ms), ascending"""
    try:
        start_ms, end_ms = _optional_range(start, end)
        return available_times(store, CogQuery(
            satellite_id=sat_id,
            processing_level=processing_level,
            product_code=product_code,
            type=type,
            band=band,
            start=start_ms,
            end=end_ms,
            show_hidden=show_hidden,
        ))
    except Exception as e:
        raise_for_error(e, "list available times")


@router.get("/{sat_id}/cog/available-dates")
def list_available_dates(
    sat_id: str,
    processing_level: Optional[str] = Query(None, alias="processingLevel"),
    product_code: Optional[str] = Query(None, alias="productCode"),
    type: Optional[str] = Query(None),
    band: Optional[str] = Query(None),
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> List[str]:
    """Distinct UTC acquisition days (YYYY-MM-DD), ascending"""
    try:
        start_ms, end_ms = _optional_range(start, end)
        return available_dates(store, CogQuery(
            satellite_id=sat_id,
            processing_level=processing_level,
            product_code=product_code,
            type=type,
            band=band,
            start=start_ms,
            end=end_ms,
            show_hidden=show_hidden,
        ))
    except Exception as e:
        raise_for_error(e, "list available dates")


# ----------------------------------------------------------------------
# Band and type enumeration
# ----------------------------------------------------------------------

def _latest_first(
    store: MetadataStore,
    sat_id: str,
    processing_level: str,
    product_code: Optional[str],
    show_hidden: bool,
    until: Optional[int] = None
) -> List[Cog]:
    return execute_cog_query(
        store,
        CogQuery(
            satellite_id=sat_id,
            processing_level=processing_level,
            product_code=product_code,
            end=until,
            show_hidden=show_hidden,
        ),
        descending=True
    )


@router.get("/{sat_id}/{processing_level}/types")
def list_types(
    sat_id: str,
    processing_level: str,
    product_code: Optional[str] = Query(None, alias="productCode"),
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> List[str]:
    """Distinct stored COG types, sorted"""
    try:
        cogs = _latest_first(store, sat_id, processing_level, product_code, show_hidden)
        return sorted(pick_type_representatives(cogs))
    except Exception as e:
        raise_for_error(e, "list types")


@router.get("/{sat_id}/{processing_level}/types-with-latest")
def list_types_with_latest(
    sat_id: str,
    processing_level: str,
    product_code: Optional[str] = Query(None, alias="productCode"),
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> List[Dict[str, Any]]:
    """Latest COG of every stored type"""
    try:
        cogs = _latest_first(store, sat_id, processing_level, product_code, show_hidden)
        representatives = pick_type_representatives(cogs)
        return [
            {"type": cog_type, "cog": as_document(representatives[cog_type])}
            for cog_type in sorted(representatives)
        ]
    except Exception as e:
        raise_for_error(e, "list types with latest")


@router.get("/{sat_id}/{processing_level}/all-bands")
def list_all_bands(
    sat_id: str,
    processing_level: str,
    product_code: Optional[str] = Query(None, alias="productCode"),
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> List[str]:
    """Every band/type token carried by the matching COGs, sorted"""
    try:
        cogs = _latest_first(store, sat_id, processing_level, product_code, show_hidden)
        return collect_bands(cogs)
    except Exception as e:
        raise_for_error(e, "list bands")


@router.get("/{sat_id}/{processing_level}/all-bands-with-latest-data")
def list_bands_with_latest_data(
    sat_id: str,
    processing_level: str,
    product_code: Optional[str] = Query(None, alias="productCode"),
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> List[Dict[str, Any]]:
    """
    Latest representative COG per band

    A COG whose type is the band wins over a MULTI COG listing it in its
    bands array, even when the MULTI COG is more recent.
    """
    try:
        cogs = _latest_first(store, sat_id, processing_level, product_code, show_hidden)
        representatives = pick_band_representatives(cogs)
        return [{"band": band, "cog": as_document(representatives[band])} for band in sorted(representatives)]
    except Exception as e:
        raise_for_error(e, "list bands with latest data")


@router.get("/{sat_id}/{processing_level}/all-bands-with-datetime")
def list_bands_with_datetime(
    sat_id: str,
    processing_level: str,
    datetime: Optional[str] = Query(None, description="Epoch ms or ISO-8601"),
    product_code: Optional[str] = Query(None, alias="productCode"),
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> List[Dict[str, Any]]:
    """Representative COG per band among those acquired at or before `datetime`"""
    try:
        until = parse_timestamp(datetime, "datetime")
        if until is None:
            raise InvalidQueryError("datetime is required")
        cogs = _latest_first(store, sat_id, processing_level, product_code, show_hidden, until=until)
        representatives = pick_band_representatives(cogs)
        return [
            {
                "band": band,
                "aquisition_datetime": representatives[band].aquisition_datetime,
                "cog": as_document(representatives[band]),
            }
            for band in sorted(representatives)
        ]
    except Exception as e:
        raise_for_error(e, "list bands with datetime")


@router.get("/{sat_id}/{processing_level}/{product_code}/cog/all", response_model=List[Cog])
def list_product_cogs(
    sat_id: str,
    processing_level: str,
    product_code: str,
    type: Optional[str] = Query(None),
    show_hidden: bool = Query(False, alias="showHidden"),
    store: MetadataStore = Depends(get_store)
) -> List[Cog]:
    try:
        return execute_cog_query(store, CogQuery(
            satellite_id=sat_id,
            processing_level=processing_level,
            product_code=product_code,
            type=type,
            show_hidden=show_hidden,
        ))
    except Exception as e:
        raise_for_error(e, "list product cogs")
