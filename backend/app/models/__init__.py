"""
Data models
"""
from .cog import (
    CatalogModel,
    Band,
    Cog,
    CogIngestRequest,
    CogSearchRequest,
    CornerCoords,
    Coverage,
    GeoPoint,
    RasterSize,
)
from .product import (
    Product,
    ProductCreate,
    ProductUpdate,
    ProductSearchRequest,
    ProductCompareRequest,
    VisibilityBatchRequest,
)
from .satellite import (
    Satellite,
    SatelliteCreate,
    SatelliteUpdate,
    SatelliteStats,
    ProductAttachRequest,
)
from .user import User, UserPublic, RegisterRequest, LoginRequest
from .analytics import ComparativeAnalysisRequest, Period, ALL_METRICS
from .query import StorePredicate

__all__ = [
    "CatalogModel",
    "Band",
    "Cog",
    "CogIngestRequest",
    "CogSearchRequest",
    "CornerCoords",
    "Coverage",
    "GeoPoint",
    "RasterSize",
    "Product",
    "ProductCreate",
    "ProductUpdate",
    "ProductSearchRequest",
    "ProductCompareRequest",
    "VisibilityBatchRequest",
    "Satellite",
    "SatelliteCreate",
    "SatelliteUpdate",
    "SatelliteStats",
    "ProductAttachRequest",
    "User",
    "UserPublic",
    "RegisterRequest",
    "LoginRequest",
    "ComparativeAnalysisRequest",
    "Period",
    "ALL_METRICS",
    "StorePredicate",
]
