"""
Ingestion service unit tests
"""
import pytest
from unittest.mock import Mock

from app.models import CogIngestRequest
from app.services.ingestion_service import IngestionService, SatelliteNotDefinedError
from app.services.metadata_repository import DuplicateRecordError, product_key


def ingest_request(**overrides) -> CogIngestRequest:
    payload = {
        "satelliteId": "3R",
        "processingLevel": "L1B",
        "productCode": "IMG_HMK",
        "filepath": "/data/3R/3RIMG_03APR2025_0600_L1B_HMK.tif",
        "aquisition_datetime": "2025-04-03T06:00:00Z",
        "type": "VIS",
        "bands": [{"bandId": 1, "description": "IMG_VIS", "mean": 120.5}],
    }
    payload.update(overrides)
    return CogIngestRequest.model_validate(payload)


@pytest.fixture
def service(store):
    return IngestionService(store)


class TestIngest:

    def test_unknown_satellite(self, store, service):
        with pytest.raises(SatelliteNotDefinedError) as exc_info:
            service.ingest(ingest_request(satelliteId="9Z"))

        assert "9Z" in str(exc_info.value)
        assert store.cogs == {}
        assert store.products == {}

    def test_creates_product_and_links_references(self, store, seed, service):
        satellite = seed.satellite("3R")

        cog = service.ingest(ingest_request(productDisplayName="Hydro"))

        assert cog.aquisition_datetime == 1743660000000
        assert cog.product_code == "HMK"
        assert cog.filename == "3RIMG_03APR2025_0600_L1B_HMK.tif"
        assert cog.bands[0].description == "VIS"
        assert cog.bands[0].mean == 120.5
        assert cog.satellite == satellite.id

        product = store.get_product(cog.product)
        assert product.id == product_key("HMK", "3R", "L1B")
        assert product.is_visible is True
        assert product.product_display_name == "Hydro"
        assert product.cogs == [cog.id]

        satellite = store.get_satellite(satellite.id)
        assert satellite.products == [product.id]
        assert satellite.cogs == [cog.id]

    def test_reuses_existing_product(self, store, seed, service):
        seed.satellite("3R")

        first = service.ingest(ingest_request())
        second = service.ingest(ingest_request(aquisition_datetime="2025-04-03T06:30:00Z"))

        assert first.product == second.product
        assert len(store.products) == 1
        assert sorted(store.get_product(first.product).cogs) == sorted([first.id, second.id])

    def test_backfills_missing_display_name(self, store, seed, service):
        existing = seed.product("HMK")

        service.ingest(ingest_request(productDisplayName="Hydro"))

        assert store.get_product(existing.id).product_display_name == "Hydro"

    def test_keeps_existing_display_name(self, store, seed, service):
        existing = seed.product("HMK", display_name="Original")

        service.ingest(ingest_request(productDisplayName="Other"))

        assert store.get_product(existing.id).product_display_name == "Original"

    def test_epoch_millis_accepted(self, seed, service):
        seed.satellite("3R")
        cog = service.ingest(ingest_request(aquisition_datetime=1743660000000))
        assert cog.aquisition_datetime == 1743660000000


def test_compact_datetime_rejected():
    with pytest.raises(ValueError):
        ingest_request(aquisition_datetime="030420250600")


def test_lost_creation_race_reuses_winner(store, seed):
    satellite = seed.satellite("3R")
    winner = seed.product("HMK")

    racing_store = Mock(wraps=store)
    racing_store.find_product.side_effect = [None, winner]
    racing_store.create_product.side_effect = DuplicateRecordError("exists")

    product = IngestionService(racing_store).find_or_create_product(satellite, "HMK", "L1B")

    assert product.id == winner.id
    assert racing_store.find_product.call_count == 2


class TestAudit:

    def test_audit_copy_written(self, seed, store):
        seed.satellite("3R")
        audit_trail = Mock()
        payload = {"satelliteId": "3R"}

        IngestionService(store, audit_trail).ingest(ingest_request(), payload)

        audit_trail.write.assert_called_once_with("3R", payload)

    def test_audit_failure_does_not_fail_ingest(self, seed, store):
        seed.satellite("3R")
        audit_trail = Mock()
        audit_trail.write.side_effect = OSError("disk full")

        cog = IngestionService(store, audit_trail).ingest(ingest_request(), {"satelliteId": "3R"})

        assert cog.id in store.cogs

    def test_no_payload_no_audit(self, seed, store):
        seed.satellite("3R")
        audit_trail = Mock()

        IngestionService(store, audit_trail).ingest(ingest_request())

        audit_trail.write.assert_not_called()
