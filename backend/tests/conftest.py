"""
Shared fixtures: an in-memory metadata store and COG/product builders
"""
import copy
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import get_audit_trail, get_secret_key, get_store
from app.models import Band, Cog, CornerCoords, Product, Satellite, StorePredicate, User
from app.services.metadata_repository import (
    DuplicateRecordError,
    RecordNotFoundError,
    new_id,
    product_key,
)
from main import app

TEST_SECRET = "test-secret-key"


class FakeMetadataStore:
    """
    In-memory stand-in for MetadataStore

    Records are kept as camelCase documents, the way the DynamoDB store keeps
    them, and predicates are evaluated with StorePredicate.matches.
    """

    def __init__(self):
        self.satellites: Dict[str, Dict[str, Any]] = {}
        self.products: Dict[str, Dict[str, Any]] = {}
        self.cogs: Dict[str, Dict[str, Any]] = {}
        self.users: Dict[str, Dict[str, Any]] = {}
        self.cog_queries: List[Optional[StorePredicate]] = []

    # Satellites

    def create_satellite(self, satellite: Satellite) -> Satellite:
        if self.find_satellite(satellite.satellite_id) is not None:
            raise DuplicateRecordError(f"Satellite already exists: {satellite.satellite_id}")
        satellite.id = satellite.id or new_id()
        return self._insert(self.satellites, satellite, Satellite)

    def get_satellite(self, record_id: str) -> Satellite:
        return self._get(self.satellites, record_id, Satellite)

    def find_satellite(self, satellite_id: str) -> Optional[Satellite]:
        found = self._find(self.satellites, StorePredicate(equals={"satelliteId": satellite_id}), Satellite)
        return found[0] if found else None

    def list_satellites(self) -> List[Satellite]:
        return self._find(self.satellites, None, Satellite)

    def update_satellite(self, record_id: str, fields: Dict[str, Any]) -> Satellite:
        return self._update(self.satellites, record_id, fields, Satellite)

    def delete_satellite(self, record_id: str) -> bool:
        self._delete(self.satellites, record_id, "Satellite")
        return True

    def add_to_satellite_sets(self, record_id: str, products: Iterable[str] = (), cogs: Iterable[str] = ()) -> None:
        self._update_sets(self.satellites, record_id, add=True, products=products, cogs=cogs)

    def remove_from_satellite_sets(self, record_id: str, products: Iterable[str] = (), cogs: Iterable[str] = ()) -> None:
        self._update_sets(self.satellites, record_id, add=False, products=products, cogs=cogs)

    # Products

    def create_product(self, product: Product) -> Product:
        product.id = product_key(product.product_id, product.satellite_id, product.processing_level)
        if product.id in self.products:
            raise DuplicateRecordError(f"Product already exists: {product.product_id}")
        return self._insert(self.products, product, Product)

    def get_product(self, record_id: str) -> Product:
        return self._get(self.products, record_id, Product)

    def find_product(self, product_code: str, satellite_id: str, processing_level: str) -> Optional[Product]:
        doc = self.products.get(product_key(product_code, satellite_id, processing_level))
        return Product.model_validate(copy.deepcopy(doc)) if doc else None

    def find_products(self, predicate: Optional[StorePredicate] = None) -> List[Product]:
        return self._find(self.products, predicate, Product)

    def update_product(self, record_id: str, fields: Dict[str, Any]) -> Product:
        return self._update(self.products, record_id, fields, Product)

    def set_visibility(self, record_ids: Iterable[str], is_visible: bool) -> int:
        modified = 0
        for record_id in set(record_ids):
            doc = self.products.get(record_id)
            if doc is not None and doc.get("isVisible") != is_visible:
                doc["isVisible"] = is_visible
                modified += 1
        return modified

    def delete_product(self, record_id: str) -> bool:
        self._delete(self.products, record_id, "Product")
        return True

    def add_product_cogs(self, record_id: str, cog_ids: Iterable[str]) -> None:
        self._update_sets(self.products, record_id, add=True, cogs=cog_ids)

    def remove_product_cogs(self, record_id: str, cog_ids: Iterable[str]) -> None:
        self._update_sets(self.products, record_id, add=False, cogs=cog_ids)

    # COGs

    def create_cog(self, cog: Cog) -> Cog:
        cog.id = cog.id or new_id()
        return self._insert(self.cogs, cog, Cog)

    def get_cog(self, record_id: str) -> Cog:
        return self._get(self.cogs, record_id, Cog)

    def find_cogs(self, predicate: Optional[StorePredicate] = None) -> List[Cog]:
        self.cog_queries.append(predicate)
        return self._find(self.cogs, predicate, Cog)

    def delete_cogs(self, record_ids: Iterable[str]) -> int:
        record_ids = list(dict.fromkeys(record_ids))
        for record_id in record_ids:
            self.cogs.pop(record_id, None)
        return len(record_ids)

    # Users

    def create_user(self, user: User) -> User:
        if self.find_user_by_email(user.email) is not None:
            raise DuplicateRecordError(f"User already exists: {user.email}")
        user.id = user.id or new_id()
        return self._insert(self.users, user, User)

    def find_user_by_email(self, email: str) -> Optional[User]:
        found = self._find(self.users, StorePredicate(equals={"email": email}), User)
        return found[0] if found else None

    def get_user(self, record_id: str) -> User:
        return self._get(self.users, record_id, User)

    # Helpers

    def _insert(self, table, model, model_type):
        now = datetime.now(timezone.utc).isoformat()
        doc = model.model_dump(by_alias=True, exclude_none=True, mode="json")
        doc["createdAt"] = now
        doc["updatedAt"] = now
        table[doc["id"]] = doc
        return model_type.model_validate(copy.deepcopy(doc))

    def _get(self, table, record_id, model_type):
        doc = table.get(record_id)
        if doc is None:
            raise RecordNotFoundError(f"{model_type.__name__} not found: {record_id}")
        return model_type.model_validate(copy.deepcopy(doc))

    def _find(self, table, predicate, model_type):
        if predicate is not None and predicate.matches_nothing:
            return []
        return [
            model_type.model_validate(copy.deepcopy(doc))
            for doc in table.values()
            if predicate is None or predicate.matches(doc)
        ]

    def _update(self, table, record_id, fields, model_type):
        doc = table.get(record_id)
        if doc is None:
            raise RecordNotFoundError(f"{model_type.__name__} not found: {record_id}")
        doc.update(copy.deepcopy(fields))
        doc["updatedAt"] = datetime.now(timezone.utc).isoformat()
        return model_type.model_validate(copy.deepcopy(doc))

    def _delete(self, table, record_id, kind):
        if table.pop(record_id, None) is None:
            raise RecordNotFoundError(f"{kind} not found: {record_id}")

    def _update_sets(self, table, record_id, add, **sets):
        sets = {name: {i for i in ids if i} for name, ids in sets.items()}
        if not any(sets.values()):
            return
        doc = table.get(record_id)
        if doc is None:
            raise RecordNotFoundError(f"Record not found: {record_id}")
        for name, ids in sets.items():
            current = set(doc.get(name, []))
            current = current | ids if add else current - ids
            doc[name] = sorted(current)


@pytest.fixture
def store():
    return FakeMetadataStore()


@pytest.fixture
def client(store):
    """TestClient wired to the in-memory store, no audit trail"""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_audit_trail] = lambda: None
    app.dependency_overrides[get_secret_key] = lambda: TEST_SECRET
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_cog():
    """Build an unsaved Cog with sensible defaults"""
    def _make_cog(
        aquisition_datetime: int = 1743660000000,
        type: str = "VIS",
        bands: Optional[List[str]] = None,
        satellite_id: str = "3R",
        processing_level: str = "L1B",
        product_code: str = "HMK",
        product: Optional[str] = "product-1",
        corners: Optional[List[List[float]]] = None,
        **extra
    ) -> Cog:
        corner_coords = None
        if corners is not None:
            upper_left, upper_right, lower_left, lower_right = corners
            corner_coords = CornerCoords(
                upper_left=upper_left,
                upper_right=upper_right,
                lower_left=lower_left,
                lower_right=lower_right,
            )
        return Cog(
            id=extra.pop("id", new_id()),
            satellite=extra.pop("satellite", "satellite-1"),
            satellite_id=satellite_id,
            filepath=extra.pop("filepath", f"/data/{satellite_id}/{aquisition_datetime}.tif"),
            aquisition_datetime=aquisition_datetime,
            processing_level=processing_level,
            product_code=product_code,
            product=product,
            type=type,
            bands=[Band(description=description) for description in bands or []],
            corner_coords=corner_coords,
            **extra
        )
    return _make_cog


def box_corners(west: float, south: float, east: float, north: float) -> List[List[float]]:
    """[lon, lat] corners in upperLeft, upperRight, lowerLeft, lowerRight order"""
    return [[west, north], [east, north], [west, south], [east, south]]


@pytest.fixture
def box():
    return box_corners


@pytest.fixture
def seed(store):
    """
    Populate the store directly

    seed.satellite("3R") creates a satellite; seed.product(...) a product
    registered on it; seed.cog(product, ...) a COG linked into both sets.
    """
    class Seeder:
        def satellite(self, satellite_id: str = "3R", name: Optional[str] = None) -> Satellite:
            existing = store.find_satellite(satellite_id)
            if existing is not None:
                return existing
            return store.create_satellite(Satellite(id="", satellite_id=satellite_id, name=name or f"Satellite {satellite_id}"))

        def product(
            self,
            product_code: str = "HMK",
            satellite_id: str = "3R",
            processing_level: str = "L1B",
            is_visible: bool = True,
            display_name: Optional[str] = None
        ) -> Product:
            satellite = self.satellite(satellite_id)
            product = store.create_product(Product(
                id="",
                product_id=product_code,
                satellite_id=satellite_id,
                processing_level=processing_level,
                is_visible=is_visible,
                product_display_name=display_name,
            ))
            store.add_to_satellite_sets(satellite.id, products=[product.id])
            return product

        def cog(self, product: Product, aquisition_datetime: int, type: str = "VIS", bands=None, corners=None) -> Cog:
            satellite = self.satellite(product.satellite_id)
            cog = Cog(
                id="",
                satellite=satellite.id,
                satellite_id=product.satellite_id,
                filepath=f"/data/{product.product_id}/{aquisition_datetime}.tif",
                aquisition_datetime=aquisition_datetime,
                processing_level=product.processing_level,
                product_code=product.product_id,
                product=product.id,
                type=type,
                bands=[Band(description=description) for description in bands or []],
                corner_coords=(
                    CornerCoords(
                        upper_left=corners[0],
                        upper_right=corners[1],
                        lower_left=corners[2],
                        lower_right=corners[3],
                    )
                    if corners else None
                ),
            )
            cog = store.create_cog(cog)
            store.add_to_satellite_sets(satellite.id, cogs=[cog.id])
            store.add_product_cogs(product.id, [cog.id])
            return cog

    return Seeder()
