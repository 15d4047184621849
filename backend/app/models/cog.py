"""
COG (Cloud-Optimized GeoTIFF) metadata models
"""
from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from common.validators import parse_acquisition_datetime


class CatalogModel(BaseModel):
    """Base model: snake_case attributes, camelCase on the wire and in the store"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Coverage(CatalogModel):
    """Geographic extent as declared by the ingestion pipeline"""
    lat1: Optional[float] = None
    lat2: Optional[float] = None
    lon1: Optional[float] = None
    lon2: Optional[float] = None


class CornerCoords(CatalogModel):
    """Corner coordinates, each a [lon, lat] pair (gdalinfo order)"""
    upper_left: Optional[List[float]] = None
    upper_right: Optional[List[float]] = None
    lower_left: Optional[List[float]] = None
    lower_right: Optional[List[float]] = None
    center: Optional[List[float]] = None

    def corners(self) -> List[List[float]]:
        """The four corners that are present and well-formed"""
        return [
            corner for corner in (
                self.upper_left,
                self.upper_right,
                self.lower_left,
                self.lower_right,
            )
            if corner is not None and len(corner) >= 2
        ]


class RasterSize(CatalogModel):
    width: Optional[int] = None
    height: Optional[int] = None


class Band(CatalogModel):
    """Band descriptor with raster statistics"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    band_id: Optional[int] = None
    description: Optional[str] = None
    type: Optional[str] = None
    color_interpretation: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    mean: Optional[float] = None
    std_dev: Optional[float] = None
    no_data_value: Optional[float] = None


class Cog(CatalogModel):
    """Stored COG metadata record"""
    id: str
    satellite: str  # store id of the owning Satellite
    satellite_id: str  # denormalized Satellite.satelliteId
    filename: Optional[str] = None
    filepath: str
    aquisition_datetime: int = Field(alias="aquisition_datetime")  # epoch ms
    coverage: Optional[Coverage] = None
    coordinate_system: Optional[Any] = None
    size: Optional[RasterSize] = None
    corner_coords: Optional[CornerCoords] = None
    bands: List[Band] = Field(default_factory=list)
    processing_level: str
    version: Optional[str] = None
    revision: Optional[str] = None
    resolution: Optional[str] = None
    type: Optional[str] = None
    product_code: Optional[str] = None
    product: Optional[str] = None  # store id of the owning Product
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CogIngestRequest(CatalogModel):
    """Body of POST /api/metadata/save"""
    satellite_id: str = Field(..., min_length=1)
    processing_level: str = Field(..., min_length=1)
    product_code: str = Field(..., min_length=1)
    product_display_name: Optional[str] = None
    version: Optional[str] = None
    revision: Optional[str] = None
    resolution: Optional[str] = None
    filename: Optional[str] = None
    filepath: str = Field(..., min_length=1)
    aquisition_datetime: Union[int, str] = Field(alias="aquisition_datetime")
    coverage: Optional[Coverage] = None
    coordinate_system: Optional[Any] = None
    size: Optional[RasterSize] = None
    corner_coords: Optional[CornerCoords] = None
    bands: List[Band] = Field(default_factory=list)
    type: str = Field(..., min_length=1)

    @field_validator("aquisition_datetime")
    @classmethod
    def to_epoch_millis(cls, v: Union[int, str]) -> int:
        """Normalize ISO-8601 or epoch-millisecond input to epoch milliseconds"""
        return parse_acquisition_datetime(v)


class GeoPoint(CatalogModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class CogSearchRequest(CatalogModel):
    """Body of POST /api/metadata/cog/search"""
    satellite_ids: Optional[List[str]] = None
    processing_levels: Optional[List[str]] = None
    product_codes: Optional[List[str]] = None
    types: Optional[List[str]] = None
    bands: Optional[List[str]] = None
    start_date: Optional[Union[int, str]] = None
    end_date: Optional[Union[int, str]] = None
    bbox: Optional[List[float]] = None  # [west, south, east, north]
    point: Optional[GeoPoint] = None
    show_hidden: bool = False
    limit: int = Field(100, ge=1, le=1000)
    skip: int = Field(0, ge=0)
    sort_order: str = Field("desc", pattern="^(asc|desc)$")

