"""
Satellite models
"""
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .cog import CatalogModel


class Satellite(CatalogModel):
    """Stored satellite record"""
    id: str
    satellite_id: str  # external short code, e.g. "3R"
    name: str
    manufacturer: Optional[str] = None
    orbit: Optional[str] = None
    products: List[str] = Field(default_factory=list)  # Product store ids
    cogs: List[str] = Field(default_factory=list)  # Cog store ids
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SatelliteCreate(CatalogModel):
    """Body of POST /api/satellite"""
    satellite_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    manufacturer: Optional[str] = None
    orbit: Optional[str] = None


class SatelliteUpdate(CatalogModel):
    """Body of PUT /api/satellite/{satelliteId}"""
    name: Optional[str] = Field(None, min_length=1)
    manufacturer: Optional[str] = None
    orbit: Optional[str] = None


class ProductAttachRequest(CatalogModel):
    """Body of POST /api/satellite/{satelliteId}/products"""
    product_ids: List[str] = Field(..., min_length=1)


class SatelliteStats(CatalogModel):
    """Per-satellite rollup"""
    satellite_id: str
    name: str
    product_count: int
    cog_count: int
    processing_levels: List[str]
    bands: List[str]
    earliest_acquisition: Optional[int] = None
    latest_acquisition: Optional[int] = None
