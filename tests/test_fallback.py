"""Tests for the deterministic fallback reporter."""

import random

import pytest

from conftest import build_snapshot, make_poi
from placelens.fallback import (
    HIGHLIGHT_COUNT,
    ITEMS_PER_CATEGORY,
    QUALITATIVE_NOTE,
    build_fallback_report,
    density_label,
)
from placelens.models import CATEGORY_ORDER, PoiCategory, RiskLayer, RiskStatus
from placelens.validation import validate_report


@pytest.mark.parametrize("total, label", [(0, "low"), (11, "low"), (12, "medium"), (29, "medium"), (30, "high")])
def test_density_thresholds(total, label):
    assert density_label(total) == label


class TestEmptySnapshot:
    def test_passes_validation(self):
        snapshot = build_snapshot()
        report = build_fallback_report(snapshot)

        assert validate_report(report.model_dump(mode="json"), snapshot) == report
        assert report.insufficient_data is True
        assert report.nearby_highlights == ()
        assert report.categories == {}

    def test_limitations_explain_the_gaps(self):
        report = build_fallback_report(build_snapshot())
        assert "No POIs within the radius." in report.limitations
        assert "The official air quality service was unavailable." in report.limitations
        assert report.limitations[-1] == QUALITATIVE_NOTE
        assert "low density" in report.summary


class TestContent:
    def test_highlights_nearest_first_with_tie_breaks(self):
        snapshot = build_snapshot([
            make_poi("Zeta Bar", PoiCategory.BAR, 100),
            make_poi("Casa Lucio", PoiCategory.RESTAURANT, 100),
            make_poi("Alfa Bar", PoiCategory.BAR, 100),
            make_poi("Museo", PoiCategory.MUSEUM, 20),
        ])
        names = [item.name for item in build_fallback_report(snapshot).nearby_highlights]
        assert names == ["Museo", "Casa Lucio", "Alfa Bar", "Zeta Bar"]

    def test_caps_highlights_and_category_lists(self):
        pois = [make_poi(f"Cafe {i:02d}", PoiCategory.CAFE, 10 * i) for i in range(1, 9)]
        pois += [make_poi(f"Bar {i}", PoiCategory.BAR, 500 + i) for i in range(3)]
        report = build_fallback_report(build_snapshot(pois))

        assert len(report.nearby_highlights) == HIGHLIGHT_COUNT
        assert len(report.categories[PoiCategory.CAFE]) == ITEMS_PER_CATEGORY
        assert [i.name for i in report.categories[PoiCategory.CAFE]][:2] == ["Cafe 01", "Cafe 02"]
        assert len(report.categories[PoiCategory.BAR]) == 3
        assert report.insufficient_data is False
        assert "Cafe 01" in report.recommendation

    def test_sources_match_snapshot(self):
        snapshot = build_snapshot()
        report = build_fallback_report(snapshot)
        assert list(report.sources) == snapshot.sources_used.labels()

    def test_reason_goes_before_qualitative_note(self):
        report = build_fallback_report(build_snapshot(), "The report generator timed out.")
        assert report.limitations[-2:] == ("The report generator timed out.", QUALITATIVE_NOTE)

    def test_visual_only_layers(self):
        visual = RiskLayer(ok=True, status=RiskStatus.VISUAL_ONLY, source="Copernicus CAMS")
        report = build_fallback_report(build_snapshot(air=visual))
        assert "only a visual map layer" in report.risks
        assert "Air quality is visual-only: no numeric or point reading could be obtained." in report.limitations

    def test_numeric_air_reading(self):
        air = RiskLayer(ok=True, status=RiskStatus.OK, source="Copernicus CAMS", level="PM2.5", value=9.0, unit="µg/m³")
        report = build_fallback_report(build_snapshot(air=air))
        assert "Air quality: PM2.5 9 µg/m³ (Copernicus CAMS)." in report.risks

    @pytest.mark.parametrize("details, expected", [
        ("", "Flood risk: no level reported (MITECO)."),
        ("No mapped flood zone at this point.", "Flood risk: No mapped flood zone at this point (MITECO)."),
        ("OSM proxy: nearest water feature Canal at 300 m.", "Flood risk: no level reported (MITECO)."),
    ])
    def test_flood_reading_without_level(self, details, expected):
        flood = RiskLayer(ok=True, status=RiskStatus.OK, source="MITECO", details=details)
        report = build_fallback_report(build_snapshot(flood=flood))
        assert expected in report.risks
        assert "None" not in report.risks

    def test_is_deterministic(self):
        pois = [make_poi("Casa Lucio", PoiCategory.RESTAURANT, 120), make_poi("Farmacia", PoiCategory.PHARMACY, 80)]
        assert build_fallback_report(build_snapshot(pois)) == build_fallback_report(build_snapshot(pois))


def test_random_snapshots_always_validate():
    rng = random.Random(17)
    for _ in range(50):
        pois = []
        for category in rng.sample(CATEGORY_ORDER, rng.randint(0, len(CATEGORY_ORDER))):
            for i in range(rng.randint(1, 9)):
                pois.append(make_poi(f"{category.value} {i}", category, rng.randint(0, 1200)))
        snapshot = build_snapshot(pois)
        report = build_fallback_report(snapshot, rng.choice([None, "reason"]))
        validate_report(report.model_dump(mode="json"), snapshot)
