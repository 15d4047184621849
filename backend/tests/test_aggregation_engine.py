"""
Aggregation engine unit tests
"""
import pytest

from app.models import Product
from app.services.aggregation_engine import (
    band_distribution,
    bucket_key,
    calculate_percent_change,
    comparative_analysis,
    geographic_coverage,
    period_summary,
    temporal_distribution,
    time_series,
)
from common.validators import InvalidQueryError

HOUR = 3600000
DAY = 24 * HOUR
APRIL_3_0630 = 1743661800000  # 2025-04-03T06:30:00Z, a Thursday


class TestPercentChange:

    def test_zero_to_zero(self):
        assert calculate_percent_change(0, 0) == 0

    def test_zero_baseline_is_one_hundred(self):
        assert calculate_percent_change(0, 5) == 100

    def test_decrease(self):
        assert calculate_percent_change(10, 5) == -50

    def test_rounded_to_two_decimals(self):
        assert calculate_percent_change(3, 4) == 33.33


class TestBucketing:

    @pytest.mark.parametrize("interval,expected", [
        ("hourly", "2025-04-03T06:00:00Z"),
        ("daily", "2025-04-03T00:00:00Z"),
        ("weekly", "2025-03-30T00:00:00Z"),
        ("monthly", "2025-04-01T00:00:00Z"),
    ])
    def test_bucket_key(self, interval, expected):
        assert bucket_key(APRIL_3_0630, interval) == expected

    def test_sunday_starts_its_own_week(self):
        sunday = 1743292800000  # 2025-03-30T00:00:00Z
        assert bucket_key(sunday + HOUR, "weekly") == "2025-03-30T00:00:00Z"
        assert bucket_key(sunday - HOUR, "weekly") == "2025-03-23T00:00:00Z"

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            bucket_key(APRIL_3_0630, "yearly")


class TestTimeSeries:

    def test_counts_per_bucket_and_product(self, make_cog):
        cogs = [
            make_cog(aquisition_datetime=APRIL_3_0630, product="p1", product_code="HMK"),
            make_cog(aquisition_datetime=APRIL_3_0630 + HOUR, product="p1", product_code="HMK"),
            make_cog(aquisition_datetime=APRIL_3_0630 + HOUR, product="p2", product_code="SST"),
            make_cog(aquisition_datetime=APRIL_3_0630 + DAY, product="p2", product_code="SST"),
        ]
        products = {
            "p1": Product(id="p1", product_id="HMK", satellite_id="3R", processing_level="L1B",
                          product_display_name="Hydro"),
        }

        series = time_series(cogs, "daily", products=products)

        assert [bucket["timestamp"] for bucket in series] == ["2025-04-03T00:00:00Z", "2025-04-04T00:00:00Z"]
        assert [bucket["count"] for bucket in series] == [3, 1]
        first_products = series[0]["products"]
        assert first_products[0]["product"] == "p1"
        assert first_products[0]["count"] == 2
        assert first_products[0]["productDisplayName"] == "Hydro"
        assert first_products[1]["productCode"] == "SST"
        assert first_products[1]["productDisplayName"] is None

    def test_band_filter(self, make_cog):
        cogs = [
            make_cog(aquisition_datetime=APRIL_3_0630, type="VIS"),
            make_cog(aquisition_datetime=APRIL_3_0630, type="MULTI", bands=["IMG_VIS"]),
            make_cog(aquisition_datetime=APRIL_3_0630, type="TIR1"),
        ]
        series = time_series(cogs, "hourly", band="VIS")
        assert series[0]["count"] == 2

    def test_empty(self):
        assert time_series([], "daily") == []


def test_temporal_distribution_breaks_down_processing_levels(make_cog):
    cogs = [
        make_cog(aquisition_datetime=APRIL_3_0630, processing_level="L1B"),
        make_cog(aquisition_datetime=APRIL_3_0630, processing_level="L1C"),
        make_cog(aquisition_datetime=APRIL_3_0630 + DAY, processing_level="L1B"),
    ]

    distribution = temporal_distribution(cogs, "monthly")

    assert distribution == [
        {"interval": "2025-04-01T00:00:00Z", "count": 3, "processingLevels": {"L1B": 2, "L1C": 1}},
    ]


def test_band_distribution_sorted_by_count(make_cog):
    cogs = [
        make_cog(type="VIS", satellite_id="3R"),
        make_cog(type="MULTI", bands=["IMG_VIS", "SWIR"], satellite_id="3S", processing_level="L2"),
        make_cog(type="TIR1"),
    ]

    result = band_distribution(cogs)

    assert result["totalCogs"] == 3
    assert result["uniqueBands"] == 3
    assert [entry["band"] for entry in result["bands"]] == ["VIS", "SWIR", "TIR1"]
    vis = result["bands"][0]
    assert vis["count"] == 2
    assert vis["satellites"] == {"3R": 1, "3S": 1}
    assert vis["processingLevels"] == {"L1B": 1, "L2": 1}


class TestGeographicCoverage:

    def test_cells_touched(self, make_cog, box):
        cogs = [
            make_cog(aquisition_datetime=1000, corners=box(0.5, 0.5, 1.5, 0.9), satellite_id="3R"),
            make_cog(aquisition_datetime=2000, corners=box(0.2, 0.2, 0.4, 0.4), satellite_id="3S"),
        ]

        result = geographic_coverage(cogs, grid_size=1.0)

        assert result["cellsCovered"] == 2
        cells = {(cell["lat"], cell["lon"]): cell for cell in result["cells"]}
        assert set(cells) == {(0.0, 0.0), (0.0, 1.0)}
        assert cells[(0.0, 0.0)]["count"] == 2
        assert cells[(0.0, 0.0)]["satellites"] == ["3R", "3S"]
        assert cells[(0.0, 0.0)]["latestAcquisition"] == "1970-01-01T00:00:02Z"
        assert result["totalCells"] == 2
        assert result["coveragePercentage"] == 100.0
        assert result["bounds"] == {"west": 0.2, "south": 0.2, "east": 1.5, "north": 0.9}

    def test_partial_coverage(self, make_cog, box):
        cogs = [
            make_cog(corners=box(0.1, 0.1, 0.9, 0.9)),
            make_cog(corners=box(1.1, 1.1, 1.9, 1.9)),
        ]

        result = geographic_coverage(cogs, grid_size=1.0)

        assert result["cellsCovered"] == 2
        assert result["totalCells"] == 4
        assert result["coveragePercentage"] == 50.0

    def test_cogs_without_corners_are_skipped(self, make_cog):
        result = geographic_coverage([make_cog()], grid_size=1.0)

        assert result["cells"] == []
        assert result["cogsWithCoordinates"] == 0
        assert result["coveragePercentage"] == 0.0
        assert result["bounds"] is None

    def test_grid_too_fine_for_overall_bounds(self, make_cog, box):
        cogs = [
            make_cog(corners=box(0.001, 0.001, 0.002, 0.002)),
            make_cog(corners=box(9.998, 9.998, 9.999, 9.999)),
        ]

        with pytest.raises(InvalidQueryError):
            geographic_coverage(cogs, grid_size=0.01)


class TestComparativeAnalysis:

    def test_changes_per_dimension(self, make_cog):
        first = [make_cog(type="VIS", satellite_id="3R")] * 2
        second = [make_cog(type="VIS", satellite_id="3R"), make_cog(type="TIR1", satellite_id="3S")] * 2
        first_window = (0, DAY - 1)
        second_window = (DAY, 2 * DAY - 1)

        result = comparative_analysis(
            first, second, first_window, second_window,
            ["count", "satellites", "bands", "temporal"]
        )

        assert result["period1"]["total"] == 2
        assert result["period2"]["total"] == 4
        assert result["changes"]["total"]["percentChange"] == 100
        assert result["changes"]["satellites"]["3R"]["percentChange"] == 0
        assert result["changes"]["satellites"]["3S"] == {"period1": 0, "period2": 2, "percentChange": 100.0}
        assert result["changes"]["bands"]["TIR1"]["period1"] == 0
        assert result["changes"]["dailyAverage"]["period1"] == 2
        assert "processingLevels" not in result["changes"]
        assert result["period1"]["start"] == "1970-01-01T00:00:00Z"

    def test_empty_periods_give_zero_changes(self):
        result = comparative_analysis([], [], (0, DAY - 1), (DAY, 2 * DAY - 1), ["count"])
        assert result["changes"]["total"] == {"period1": 0, "period2": 0, "percentChange": 0.0}


def test_period_summary_temporal_by_day(make_cog):
    cogs = [
        make_cog(aquisition_datetime=APRIL_3_0630),
        make_cog(aquisition_datetime=APRIL_3_0630 + HOUR),
        make_cog(aquisition_datetime=APRIL_3_0630 + DAY),
    ]
    summary = period_summary(cogs, ["temporal"])
    assert summary["temporal"] == {"2025-04-03": 2, "2025-04-04": 1}
