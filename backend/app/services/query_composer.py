"""
COG query composition

A CogQuery is turned into a StorePredicate the store evaluates natively plus
post-filters for what the store cannot express (band matching inside the
nested bands array, spatial tests against corner coordinates). Execution
resolves product visibility first, then fetches, filters and sorts.
"""
import logging
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional, Sequence, Set, Tuple

from app.models.cog import Cog
from app.models.query import StorePredicate
from app.services.band_normalizer import effective_bands, matches_band, normalize_band_name
from app.services.metadata_repository import MetadataStore
from app.services.visibility_resolver import apply_visibility, resolve_visible_product_ids
from common.timeutils import day_key
from common.validators import InvalidFrameCountError, validate_frame_count

logger = logging.getLogger(__name__)

DEFAULT_FRAME_COUNT = 10
VALID_FRAME_COUNTS = (1, 5, 10, 15, 20, 30, 50)

Bounds = Tuple[float, float, float, float]  # west, south, east, north
PostFilter = Callable[[Cog], bool]


@dataclass
class CogQuery:
    """Structured COG filter request; every field is optional"""
    satellite_id: Optional[str] = None
    processing_level: Optional[str] = None
    product_code: Optional[str] = None
    start: Optional[int] = None  # epoch ms, inclusive
    end: Optional[int] = None  # epoch ms, inclusive
    type: Optional[str] = None
    band: Optional[str] = None
    bbox: Optional[Sequence[float]] = None  # west, south, east, north
    point: Optional[Tuple[float, float]] = None  # lat, lon
    satellite_ids: Optional[Sequence[str]] = None
    processing_levels: Optional[Sequence[str]] = None
    product_codes: Optional[Sequence[str]] = None
    types: Optional[Sequence[str]] = None
    bands: Optional[Sequence[str]] = None
    show_hidden: bool = False


@dataclass
class ComposedQuery:
    predicate: StorePredicate
    post_filters: List[PostFilter] = field(default_factory=list)

    def accepts(self, cog: Cog) -> bool:
        return all(post_filter(cog) for post_filter in self.post_filters)


def cog_bounds(cog: Cog) -> Optional[Bounds]:
    """
    Bounding box of a COG from its four corner coordinates

    Returns:
        (west, south, east, north), or None when corners are missing
    """
    if cog.corner_coords is None:
        return None
    corners = cog.corner_coords.corners()
    if not corners:
        return None
    lons = [corner[0] for corner in corners]
    lats = [corner[1] for corner in corners]
    return min(lons), min(lats), max(lons), max(lats)


def boxes_overlap(box: Sequence[float], other: Sequence[float]) -> bool:
    """Overlap test for two [west, south, east, north] boxes; touching edges overlap"""
    west, south, east, north = box
    other_west, other_south, other_east, other_north = other
    return not (
        other_west > east
        or other_east < west
        or other_south > north
        or other_north < south
    )


def point_in_box(lat: float, lon: float, box: Sequence[float]) -> bool:
    west, south, east, north = box
    return south <= lat <= north and west <= lon <= east


def _bbox_filter(bbox: Sequence[float]) -> PostFilter:
    def accept(cog: Cog) -> bool:
        bounds = cog_bounds(cog)
        return bounds is not None and boxes_overlap(bbox, bounds)
    return accept


def _point_filter(lat: float, lon: float) -> PostFilter:
    def accept(cog: Cog) -> bool:
        bounds = cog_bounds(cog)
        return bounds is not None and point_in_box(lat, lon, bounds)
    return accept


def _bands_filter(bands: Sequence[str]) -> PostFilter:
    wanted = {normalize_band_name(band) for band in bands}

    def accept(cog: Cog) -> bool:
        return bool(effective_bands(cog) & wanted)
    return accept


def compose_cog_query(query: CogQuery, visible_product_ids: Optional[Set[str]] = None) -> ComposedQuery:
    """
    Build the store predicate and in-memory post-filters for a COG query

    Args:
        query: Structured filter request
        visible_product_ids: Result of visibility resolution, None for no restriction

    Returns:
        ComposedQuery
    """
    predicate = StorePredicate()

    if query.satellite_id:
        predicate.equals["satelliteId"] = query.satellite_id
    if query.processing_level:
        predicate.equals["processingLevel"] = query.processing_level
    if query.product_code:
        predicate.equals["productCode"] = normalize_band_name(query.product_code)
    if query.type:
        predicate.equals["type"] = query.type

    if query.satellite_ids:
        predicate.members["satelliteId"] = set(query.satellite_ids)
    if query.processing_levels:
        predicate.members["processingLevel"] = set(query.processing_levels)
    if query.product_codes:
        predicate.members["productCode"] = {normalize_band_name(code) for code in query.product_codes}
    if query.types:
        predicate.members["type"] = set(query.types)

    if query.start is not None or query.end is not None:
        predicate.ranges["aquisition_datetime"] = (query.start, query.end)

    apply_visibility(predicate, visible_product_ids)

    post_filters: List[PostFilter] = []
    if query.band:
        band = query.band
        post_filters.append(lambda cog: matches_band(cog, band))
    if query.bands:
        post_filters.append(_bands_filter(query.bands))
    if query.bbox is not None:
        post_filters.append(_bbox_filter(query.bbox))
    if query.point is not None:
        lat, lon = query.point
        post_filters.append(_point_filter(lat, lon))

    return ComposedQuery(predicate=predicate, post_filters=post_filters)


def execute_cog_query(
    store: MetadataStore,
    query: CogQuery,
    descending: bool = False,
    limit: Optional[int] = None,
    skip: int = 0
) -> List[Cog]:
    """
    Resolve visibility, run the store query, apply post-filters and sort

    Args:
        store: Metadata store
        query: Structured filter request
        descending: Sort by aquisition_datetime descending (latest first)
        limit: Maximum number of records to return
        skip: Number of sorted records to skip

    Returns:
        List of matching COGs
    """
    visible_product_ids = resolve_visible_product_ids(
        store,
        satellite_id=query.satellite_id,
        processing_level=query.processing_level,
        product_code=normalize_band_name(query.product_code) if query.product_code else None,
        show_hidden=query.show_hidden
    )
    composed = compose_cog_query(query, visible_product_ids)
    if composed.predicate.matches_nothing:
        logger.debug("No visible products for query, returning no cogs")
        return []

    cogs = [cog for cog in store.find_cogs(composed.predicate) if composed.accepts(cog)]
    cogs.sort(key=lambda cog: (cog.aquisition_datetime, cog.id), reverse=descending)

    if skip:
        cogs = cogs[skip:]
    if limit is not None:
        cogs = cogs[:limit]
    return cogs


def last_cogs(
    store: MetadataStore,
    query: CogQuery,
    count: Optional[int] = None,
    timestamp: Optional[int] = None
) -> List[Cog]:
    """
    Most recent COGs, latest first

    Args:
        count: Frame count, DEFAULT_FRAME_COUNT when omitted
        timestamp: Only COGs acquired at or before this instant

    Raises:
        InvalidFrameCountError: count not in VALID_FRAME_COUNTS (no query is issued)
    """
    count = DEFAULT_FRAME_COUNT if count is None else count
    is_valid, error = validate_frame_count(count, VALID_FRAME_COUNTS)
    if not is_valid:
        raise InvalidFrameCountError(error)

    if timestamp is not None:
        query = replace(query, end=timestamp)
    return execute_cog_query(store, query, descending=True, limit=count)


def show_cog(store: MetadataStore, query: CogQuery, at: Optional[int] = None) -> Optional[Cog]:
    """The COG acquired exactly at `at`, or the latest one when `at` is omitted"""
    if at is not None:
        query = replace(query, start=at, end=at)
    cogs = execute_cog_query(store, query, descending=True, limit=1)
    return cogs[0] if cogs else None


def available_times(store: MetadataStore, query: CogQuery) -> List[int]:
    """Distinct acquisition instants, ascending"""
    cogs = execute_cog_query(store, query)
    return list(dict.fromkeys(cog.aquisition_datetime for cog in cogs))


def available_dates(store: MetadataStore, query: CogQuery) -> List[str]:
    """Distinct UTC acquisition days, ascending"""
    cogs = execute_cog_query(store, query)
    return list(dict.fromkeys(day_key(cog.aquisition_datetime) for cog in cogs))
