"""
Product models
"""
from datetime import datetime
from typing import List, Optional

from pydantic import Field, model_validator

from .cog import CatalogModel


class Product(CatalogModel):
    """Stored product record, unique per (productId, satelliteId, processingLevel)"""
    id: str
    product_id: str  # product code, e.g. "HMK"
    satellite_id: str
    processing_level: str
    is_visible: bool = True
    product_display_name: Optional[str] = None
    cogs: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProductCreate(CatalogModel):
    """Body of POST /api/product"""
    product_id: str = Field(..., min_length=1)
    satellite_id: str = Field(..., min_length=1)
    processing_level: str = Field(..., min_length=1)
    product_display_name: Optional[str] = None
    is_visible: bool = True


class ProductUpdate(CatalogModel):
    """Body of PUT /api/product/{id}; the identity triple is immutable"""
    product_display_name: Optional[str] = None
    is_visible: Optional[bool] = None


class VisibilityBatchRequest(CatalogModel):
    """Body of POST /api/product/batch/set-visibility"""
    product_ids: List[str]
    is_visible: bool


class DateRangeFilter(CatalogModel):
    start_date: datetime
    end_date: datetime

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end_date < self.start_date:
            raise ValueError("endDate must be after startDate")
        return self


class ProductSearchRequest(CatalogModel):
    """Body of POST /api/product/advanced-search"""
    satellite_ids: Optional[List[str]] = None
    processing_levels: Optional[List[str]] = None
    product_codes: Optional[List[str]] = None
    date_range: Optional[DateRangeFilter] = None
    show_hidden: bool = False
    limit: int = Field(100, ge=1, le=1000)
    skip: int = Field(0, ge=0)
    sort_by: str = "createdAt"
    sort_order: str = Field("desc", pattern="^(asc|desc)$")


class ProductCompareRequest(CatalogModel):
    """Body of POST /api/product/compare"""
    product_ids: List[str] = Field(default_factory=list)
    include_hidden: bool = False
    include_cog_metadata: bool = False
