"""
Product API endpoint tests
"""
import pytest

from app.services.metadata_repository import product_key

DAY = 86400000
APRIL_3 = 1743638400000  # 2025-04-03T00:00:00Z


class TestCreateProduct:

    def test_create(self, client, seed, store):
        satellite = seed.satellite("3R")

        response = client.post("/api/product", json={
            "productId": "IMG_HMK",
            "satelliteId": "3R",
            "processingLevel": "L1B",
            "productDisplayName": "Hydro",
        })

        assert response.status_code == 201
        data = response.json()
        assert data["message"] == "Product created successfully!"
        product = data["product"]
        assert product["productId"] == "HMK"
        assert product["isVisible"] is True
        assert product["id"] == product_key("HMK", "3R", "L1B")
        assert store.get_satellite(satellite.id).products == [product["id"]]

    def test_duplicate_triple(self, client, seed):
        seed.product("HMK")

        response = client.post("/api/product", json={
            "productId": "HMK",
            "satelliteId": "3R",
            "processingLevel": "L1B",
        })

        assert response.status_code == 400

    def test_missing_fields(self, client):
        assert client.post("/api/product", json={"productId": "HMK"}).status_code == 422


class TestSingleProduct:

    def test_get(self, client, seed):
        product = seed.product(display_name="Hydro")

        response = client.get(f"/api/product/{product.id}")

        assert response.status_code == 200
        assert response.json()["product"]["productDisplayName"] == "Hydro"

    def test_get_missing(self, client):
        assert client.get("/api/product/nope").status_code == 404

    def test_update(self, client, seed):
        product = seed.product()

        response = client.put(f"/api/product/{product.id}", json={"productDisplayName": "Renamed"})

        assert response.status_code == 200
        assert response.json()["product"]["productDisplayName"] == "Renamed"
        assert response.json()["product"]["productId"] == "HMK"

    def test_update_without_fields(self, client, seed):
        product = seed.product()
        assert client.put(f"/api/product/{product.id}", json={}).status_code == 400

    def test_toggle_visibility(self, client, seed):
        product = seed.product()

        first = client.patch(f"/api/product/{product.id}/toggle-visibility")
        second = client.patch(f"/api/product/{product.id}/toggle-visibility")

        assert first.json()["isVisible"] is False
        assert second.json()["isVisible"] is True

    def test_delete_cascades(self, client, seed, store):
        product = seed.product()
        other = seed.product("SST")
        seed.cog(product, APRIL_3)
        seed.cog(product, APRIL_3 + DAY)
        kept = seed.cog(other, APRIL_3)

        response = client.delete(f"/api/product/{product.id}")

        assert response.status_code == 200
        assert response.json()["deletedCogs"] == 2
        assert list(store.cogs) == [kept.id]
        satellite = store.find_satellite("3R")
        assert satellite.products == [other.id]
        assert satellite.cogs == [kept.id]

    def test_delete_missing(self, client):
        assert client.delete("/api/product/nope").status_code == 404

    def test_owning_satellite(self, client, seed):
        product = seed.product()

        response = client.get(f"/api/product/{product.id}/satellite")

        assert response.json() == {"satelliteId": "3R", "satelliteName": "Satellite 3R"}


class TestVisibilityBatch:

    def test_set_visibility(self, client, seed, store):
        first = seed.product("HMK")
        second = seed.product("SST")
        hidden = seed.product("TIR", is_visible=False)

        response = client.post("/api/product/batch/set-visibility", json={
            "productIds": [first.id, second.id, hidden.id],
            "isVisible": False,
        })

        assert response.status_code == 200
        assert response.json()["updatedCount"] == 2
        assert not store.get_product(first.id).is_visible

    @pytest.mark.parametrize("body", [
        {"productIds": "p1", "isVisible": True},
        {"productIds": ["p1"]},
        {"isVisible": False},
    ])
    def test_malformed_body(self, client, body):
        response = client.post("/api/product/batch/set-visibility", json=body)

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid request. Please provide productIds array and isVisible boolean"


class TestListings:

    def test_products_of_satellite(self, client, seed):
        seed.product("HMK")
        seed.product("SST", is_visible=False)

        visible = client.get("/api/product/satellite/3R").json()["products"]
        everything = client.get("/api/product/satellite/3R", params={"showHidden": "true"}).json()["products"]

        assert [product["productId"] for product in visible] == ["HMK"]
        assert len(everything) == 2

    def test_products_of_unknown_satellite(self, client):
        assert client.get("/api/product/satellite/9Z").status_code == 404

    def test_processing_levels(self, client, seed):
        seed.product("HMK", processing_level="L1C")
        seed.product("HMK", processing_level="L1B")
        seed.product("SST", processing_level="L2", is_visible=False)

        response = client.get("/api/product/3R/processing-levels")

        assert response.json() == {"processingLevels": ["L1B", "L1C"]}

    def test_product_codes_from_cogs(self, client, seed):
        seed.cog(seed.product("HMK"), APRIL_3)
        seed.product("SST")

        response = client.get("/api/product/3R/L1B/product-codes")

        assert response.json() == {"productCodes": ["HMK"]}

    def test_satellite_products_sorted(self, client, seed):
        seed.product("SST")
        seed.product("HMK")

        response = client.get("/api/product/3R/products")

        assert [product["productId"] for product in response.json()["products"]] == ["HMK", "SST"]


class TestAdvancedSearch:

    def test_filters_and_pagination(self, client, seed):
        for code in ("A", "B", "C"):
            seed.product(code)
        seed.product("D", satellite_id="3S")

        response = client.post("/api/product/advanced-search", json={
            "satelliteIds": ["3R"],
            "sortBy": "productId",
            "sortOrder": "asc",
            "limit": 2,
        })

        data = response.json()
        assert data["totalCount"] == 3
        assert data["totalPages"] == 2
        assert [product["productId"] for product in data["products"]] == ["A", "B"]

    def test_hidden_excluded(self, client, seed):
        seed.product("A", is_visible=False)
        data = client.post("/api/product/advanced-search", json={}).json()
        assert data["totalCount"] == 0

    def test_invalid_sort_field(self, client):
        response = client.post("/api/product/advanced-search", json={"sortBy": "cogs"})
        assert response.status_code == 400


class TestCompare:

    def test_compare_bands(self, client, seed):
        first = seed.product("HMK")
        second = seed.product("SST")
        seed.cog(first, APRIL_3, type="VIS")
        seed.cog(first, APRIL_3 + DAY, type="MULTI", bands=["IMG_TIR1"])
        seed.cog(second, APRIL_3, type="VIS")

        response = client.post("/api/product/compare", json={
            "productIds": [first.id, second.id],
            "includeCogMetadata": True,
        })

        data = response.json()
        assert data["cogCounts"] == {first.id: 2, second.id: 1}
        assert data["comparison"]["commonBands"] == ["VIS"]
        assert data["comparison"]["uniqueBands"] == {first.id: ["TIR1"], second.id: []}
        assert data["latestAcquisitions"][first.id] == "2025-04-04T00:00:00Z"
        assert data["cogMetadata"][first.id][1]["bands"] == ["TIR1"]

    def test_empty_list(self, client):
        response = client.post("/api/product/compare", json={"productIds": []})
        assert response.status_code == 400

    def test_nothing_found(self, client, seed):
        hidden = seed.product(is_visible=False)
        response = client.post("/api/product/compare", json={"productIds": ["nope", hidden.id]})
        assert response.status_code == 404


def test_temporal_distribution(client, seed):
    seed.cog(seed.product("HMK", processing_level="L1B"), APRIL_3)
    seed.cog(seed.product("HMK", processing_level="L1C"), APRIL_3 + DAY)

    response = client.get("/api/product/analytics/temporal-distribution", params={"interval": "monthly"})

    assert response.json() == {
        "distribution": [
            {"interval": "2025-04-01T00:00:00Z", "count": 2, "processingLevels": {"L1B": 1, "L1C": 1}},
        ],
        "total": 2,
    }
