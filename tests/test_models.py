"""Tests for the typed snapshot and report records."""

import pytest
from pydantic import ValidationError

from conftest import build_snapshot, make_poi
from placelens.models import (
    PoiCategory,
    Report,
    RiskLayer,
    RiskStatus,
    SourcesUsed,
)


class TestRiskLayer:
    def test_down_requires_not_ok(self):
        with pytest.raises(ValidationError):
            RiskLayer(ok=True, status=RiskStatus.DOWN, source="MITECO")

    def test_ok_requires_ok_flag(self):
        with pytest.raises(ValidationError):
            RiskLayer(ok=False, status=RiskStatus.OK, source="MITECO")

    def test_visual_only_carries_no_value(self):
        with pytest.raises(ValidationError):
            RiskLayer(ok=True, status=RiskStatus.VISUAL_ONLY, source="CAMS", value=12.0)
        layer = RiskLayer(ok=True, status=RiskStatus.VISUAL_ONLY, source="CAMS")
        assert not layer.usable

    def test_down_helper(self):
        layer = RiskLayer.down("MITECO", "timeout")
        assert layer.ok is False
        assert layer.status is RiskStatus.DOWN
        assert layer.details == "timeout"


def test_source_labels_follow_declaration_order():
    sources = SourcesUsed(weather=True, reverse_geocoder=True, alt_places=True)
    assert sources.labels() == ["OpenStreetMap Nominatim", "Geoapify", "Open-Meteo"]


class TestSnapshot:
    def test_reduced_keeps_nearest(self):
        pois = [make_poi(f"Bar {i}", PoiCategory.BAR, 100 + i) for i in range(10)]
        pois.append(make_poi("Cafe 1", PoiCategory.CAFE, 40))
        snapshot = build_snapshot(pois)

        small = snapshot.reduced(3)
        assert [p.name for p in small.pois(PoiCategory.BAR)] == ["Bar 0", "Bar 1", "Bar 2"]
        assert small.pois(PoiCategory.CAFE) == snapshot.pois(PoiCategory.CAFE)
        assert small.poi_summary == snapshot.poi_summary
        assert len(snapshot.pois(PoiCategory.BAR)) == 10

    def test_all_pois_in_category_order(self):
        snapshot = build_snapshot([
            make_poi("Museo", PoiCategory.MUSEUM, 10),
            make_poi("Casa Lucio", PoiCategory.RESTAURANT, 500),
        ])
        assert [p.name for p in snapshot.all_pois()] == ["Casa Lucio", "Museo"]

    def test_frozen(self):
        snapshot = build_snapshot()
        with pytest.raises(ValidationError):
            snapshot.radius_m = 50


def test_report_rejects_empty_summary():
    with pytest.raises(ValidationError):
        Report(
            summary="   ",
            nearby_highlights=(),
            categories={},
            risks="Low.",
            land_use="Urban.",
            recommendation="Go.",
            sources=(),
            limitations=(),
            insufficient_data=True,
        )
