"""
Aggregation request models
"""
from typing import List, Literal, Optional, Union

from pydantic import Field

from .cog import CatalogModel

Interval = Literal["hourly", "daily", "weekly", "monthly"]
Metric = Literal["count", "satellites", "processingLevels", "bands", "temporal"]

ALL_METRICS: List[str] = ["count", "satellites", "processingLevels", "bands", "temporal"]


class Period(CatalogModel):
    """Time window, bounds inclusive; epoch ms or ISO-8601"""
    start: Union[int, str]
    end: Union[int, str]


class ComparativeAnalysisRequest(CatalogModel):
    """Body of POST /api/metadata/comparative-analysis"""
    period1: Period
    period2: Period
    satellite_ids: Optional[List[str]] = None
    processing_levels: Optional[List[str]] = None
    product_codes: Optional[List[str]] = None
    metrics: List[Metric] = Field(default_factory=lambda: list(ALL_METRICS))
    show_hidden: bool = False
