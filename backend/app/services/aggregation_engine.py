"""
In-memory aggregation over COG result sets

Time-series bucketing, temporal distribution, band distribution, geographic
grid coverage and comparative period analysis. Every function works on an
already fetched, visibility-filtered list of COGs.
"""
import math
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from app.models.cog import Cog
from app.models.product import Product
from app.services.band_normalizer import effective_bands, matches_band
from app.services.query_composer import cog_bounds
from common.timeutils import day_key, millis_to_datetime, millis_to_iso
from common.validators import InvalidQueryError

INTERVALS = ("hourly", "daily", "weekly", "monthly")
DAY_MILLIS = 86400000

# Upper bound on grid cells a coverage request may enumerate
MAX_GRID_CELLS = 100000


def bucket_start(millis: int, interval: str) -> datetime:
    """
    Truncate an acquisition time to the start of its UTC interval bucket

    Weekly buckets start on Sunday.
    """
    value = millis_to_datetime(millis)
    if interval == "hourly":
        return value.replace(minute=0, second=0, microsecond=0)
    if interval == "monthly":
        return value.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    day = value.replace(hour=0, minute=0, second=0, microsecond=0)
    if interval == "weekly":
        # weekday(): Monday == 0 ... Sunday == 6
        return day - timedelta(days=(day.weekday() + 1) % 7)
    if interval == "daily":
        return day
    raise InvalidQueryError(f"Invalid interval '{interval}'. Must be one of: {', '.join(INTERVALS)}")


def bucket_key(millis: int, interval: str) -> str:
    return bucket_start(millis, interval).strftime("%Y-%m-%dT%H:%M:%SZ")


def calculate_percent_change(old: float, new: float) -> float:
    """
    Percent change from old to new

    A zero baseline yields 0 when the new value is also zero and 100 otherwise,
    so the result is always a finite number.
    """
    if old == 0:
        return 0.0 if new == 0 else 100.0
    return round((new - old) / old * 100, 2)


def _sorted_counts(counter: Counter) -> Dict[str, int]:
    return dict(sorted(counter.items(), key=lambda kv: (-kv[1], kv[0])))


def time_series(
    cogs: Iterable[Cog],
    interval: str = "daily",
    band: Optional[str] = None,
    products: Optional[Dict[str, Product]] = None
) -> List[Dict[str, Any]]:
    """
    Bucket COGs by acquisition interval

    Args:
        cogs: COGs to bucket
        interval: hourly, daily, weekly or monthly
        band: Only count COGs carrying this band/type token
        products: Product store id -> Product, used to label product summaries

    Returns:
        Buckets sorted by time, each with its count and per-product counts
    """
    products = products or {}
    buckets: Dict[str, Dict[str, Any]] = {}

    for cog in cogs:
        if band and not matches_band(cog, band):
            continue
        key = bucket_key(cog.aquisition_datetime, interval)
        bucket = buckets.setdefault(key, {"timestamp": key, "count": 0, "products": {}})
        bucket["count"] += 1

        product_ref = cog.product or f"{cog.satellite_id}/{cog.processing_level}/{cog.product_code}"
        summary = bucket["products"].get(product_ref)
        if summary is None:
            product = products.get(cog.product) if cog.product else None
            summary = {
                "product": cog.product,
                "productCode": cog.product_code,
                "productDisplayName": product.product_display_name if product else None,
                "satelliteId": cog.satellite_id,
                "processingLevel": cog.processing_level,
                "count": 0,
            }
            bucket["products"][product_ref] = summary
        summary["count"] += 1

    series = []
    for key in sorted(buckets):
        bucket = buckets[key]
        bucket["products"] = sorted(
            bucket["products"].values(),
            key=lambda summary: (-summary["count"], summary["productCode"] or "")
        )
        series.append(bucket)
    return series


def temporal_distribution(cogs: Iterable[Cog], interval: str = "daily") -> List[Dict[str, Any]]:
    """COG counts per interval bucket with a per-processing-level breakdown"""
    buckets: Dict[str, Dict[str, Any]] = {}
    for cog in cogs:
        key = bucket_key(cog.aquisition_datetime, interval)
        bucket = buckets.setdefault(key, {"interval": key, "count": 0, "processingLevels": Counter()})
        bucket["count"] += 1
        if cog.processing_level:
            bucket["processingLevels"][cog.processing_level] += 1

    return [
        {**buckets[key], "processingLevels": dict(buckets[key]["processingLevels"])}
        for key in sorted(buckets)
    ]


def band_distribution(cogs: Sequence[Cog]) -> Dict[str, Any]:
    """
    Occurrences of every band/type token, most frequent first

    Each entry carries the per-satellite and per-processing-level breakdown.
    """
    counts: Counter = Counter()
    by_satellite: Dict[str, Counter] = defaultdict(Counter)
    by_level: Dict[str, Counter] = defaultdict(Counter)

    for cog in cogs:
        for token in effective_bands(cog):
            counts[token] += 1
            by_satellite[token][cog.satellite_id] += 1
            by_level[token][cog.processing_level] += 1

    bands = [
        {
            "band": token,
            "count": count,
            "satellites": _sorted_counts(by_satellite[token]),
            "processingLevels": _sorted_counts(by_level[token]),
        }
        for token, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]
    return {"bands": bands, "totalCogs": len(cogs), "uniqueBands": len(bands)}


def _cell_range(low: float, high: float, grid_size: float) -> range:
    """Indices of grid cells of size grid_size intersecting [low, high]"""
    start = math.floor(low / grid_size)
    end = max(start, math.ceil(high / grid_size) - 1)
    return range(start, end + 1)


def geographic_coverage(cogs: Iterable[Cog], grid_size: float = 1.0) -> Dict[str, Any]:
    """
    Approximate spatial coverage on a lat/lon grid

    Every COG's corner bounding box is rasterized onto cells aligned to
    multiples of grid_size. Coverage percentage is the share of cells touched
    within the overall observed bounds.
    """
    located_cogs = []
    overall: Optional[List[float]] = None

    for cog in cogs:
        bounds = cog_bounds(cog)
        if bounds is None:
            continue
        located_cogs.append((cog, bounds))
        west, south, east, north = bounds
        if overall is None:
            overall = [west, south, east, north]
        else:
            overall = [min(overall[0], west), min(overall[1], south), max(overall[2], east), max(overall[3], north)]

    total_cells = 0
    if overall is not None:
        total_cells = (
            len(_cell_range(overall[1], overall[3], grid_size))
            * len(_cell_range(overall[0], overall[2], grid_size))
        )
    if total_cells > MAX_GRID_CELLS:
        raise InvalidQueryError(
            f"gridSize {grid_size} is too fine for the covered area: "
            f"{total_cells} cells exceeds the limit of {MAX_GRID_CELLS}"
        )

    cells: Dict[Tuple[int, int], Dict[str, Any]] = {}
    for cog, (west, south, east, north) in located_cogs:
        for lat_index in _cell_range(south, north, grid_size):
            for lon_index in _cell_range(west, east, grid_size):
                cell = cells.setdefault((lat_index, lon_index), {
                    "lat": round(lat_index * grid_size, 6),
                    "lon": round(lon_index * grid_size, 6),
                    "count": 0,
                    "latestAcquisition": None,
                    "satellites": set(),
                })
                cell["count"] += 1
                if cell["latestAcquisition"] is None or cog.aquisition_datetime > cell["latestAcquisition"]:
                    cell["latestAcquisition"] = cog.aquisition_datetime
                cell["satellites"].add(cog.satellite_id)

    grid = []
    for key in sorted(cells):
        cell = cells[key]
        grid.append({
            **cell,
            "latestAcquisition": millis_to_iso(cell["latestAcquisition"]),
            "satellites": sorted(cell["satellites"]),
        })

    return {
        "gridSize": grid_size,
        "cells": grid,
        "cellsCovered": len(grid),
        "totalCells": total_cells,
        "coveragePercentage": round(len(grid) / total_cells * 100, 2) if total_cells else 0.0,
        "bounds": dict(zip(("west", "south", "east", "north"), overall)) if overall else None,
        "cogsWithCoordinates": len(located_cogs),
    }


def period_summary(cogs: Sequence[Cog], metrics: Iterable[str]) -> Dict[str, Any]:
    """Totals and breakdowns for one analysis window"""
    metrics = set(metrics)
    summary: Dict[str, Any] = {"total": len(cogs)}
    if "satellites" in metrics:
        summary["satellites"] = _sorted_counts(Counter(cog.satellite_id for cog in cogs))
    if "processingLevels" in metrics:
        summary["processingLevels"] = _sorted_counts(Counter(cog.processing_level for cog in cogs))
    if "bands" in metrics:
        summary["bands"] = _sorted_counts(Counter(token for cog in cogs for token in effective_bands(cog)))
    if "temporal" in metrics:
        days = Counter(day_key(cog.aquisition_datetime) for cog in cogs)
        summary["temporal"] = dict(sorted(days.items()))
    return summary


def _dimension_changes(first: Dict[str, int], second: Dict[str, int]) -> Dict[str, Dict[str, Any]]:
    changes = {}
    for key in sorted(set(first) | set(second)):
        old, new = first.get(key, 0), second.get(key, 0)
        changes[key] = {
            "period1": old,
            "period2": new,
            "percentChange": calculate_percent_change(old, new),
        }
    return changes


def _window_days(window: Tuple[int, int]) -> int:
    start, end = window
    return max(1, math.ceil((end - start + 1) / DAY_MILLIS))


def comparative_analysis(
    first_cogs: Sequence[Cog],
    second_cogs: Sequence[Cog],
    first_window: Tuple[int, int],
    second_window: Tuple[int, int],
    metrics: Iterable[str]
) -> Dict[str, Any]:
    """
    Compare two acquisition windows

    Returns:
        Per-window summaries plus percent changes per requested dimension.
        Temporal change compares the average number of COGs per day.
    """
    metrics = list(metrics)
    first = period_summary(first_cogs, metrics)
    second = period_summary(second_cogs, metrics)

    changes: Dict[str, Any] = {
        "total": {
            "period1": first["total"],
            "period2": second["total"],
            "percentChange": calculate_percent_change(first["total"], second["total"]),
        }
    }
    for dimension in ("satellites", "processingLevels", "bands"):
        if dimension in metrics:
            changes[dimension] = _dimension_changes(first[dimension], second[dimension])
    if "temporal" in metrics:
        first_avg = round(first["total"] / _window_days(first_window), 4)
        second_avg = round(second["total"] / _window_days(second_window), 4)
        changes["dailyAverage"] = {
            "period1": first_avg,
            "period2": second_avg,
            "percentChange": calculate_percent_change(first_avg, second_avg),
        }

    return {
        "period1": {"start": millis_to_iso(first_window[0]), "end": millis_to_iso(first_window[1]), **first},
        "period2": {"start": millis_to_iso(second_window[0]), "end": millis_to_iso(second_window[1]), **second},
        "changes": changes,
    }
