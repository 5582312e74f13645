"""Tests for the report validator."""

import json
import random

import pytest

from conftest import build_snapshot, make_poi
from placelens.errors import ValidationFailed
from placelens.fallback import build_fallback_report
from placelens.models import PoiCategory
from placelens.validation import validate_report


@pytest.fixture
def snapshot():
    return build_snapshot([
        make_poi("Casa Lucio", PoiCategory.RESTAURANT, 120),
        make_poi("Taberna La Bola", PoiCategory.RESTAURANT, 300),
        make_poi("Bar Pepe", PoiCategory.BAR, 90),
    ])


@pytest.fixture
def candidate(snapshot):
    return build_fallback_report(snapshot).model_dump(mode="json")


def _reasons(data, snapshot):
    with pytest.raises(ValidationFailed) as info:
        validate_report(data, snapshot)
    return info.value.reasons


class TestAccepts:
    def test_grounded_report(self, candidate, snapshot):
        report = validate_report(candidate, snapshot)
        assert report.categories[PoiCategory.RESTAURANT][0].name == "Casa Lucio"

    def test_fenced_json_string(self, candidate, snapshot):
        text = "Here you go:\n```json\n" + json.dumps(candidate) + "\n```"
        assert validate_report(text, snapshot).summary == candidate["summary"]

    def test_item_category_filled_from_key(self, candidate, snapshot):
        for item in candidate["categories"]["restaurant"]:
            del item["category"]
        validate_report(candidate, snapshot)

    def test_source_case_is_ignored(self, candidate, snapshot):
        candidate["sources"] = ["openstreetmap nominatim"]
        validate_report(candidate, snapshot)

    def test_caller_data_is_not_mutated(self, candidate, snapshot):
        del candidate["categories"]["bar"][0]["category"]
        validate_report(candidate, snapshot)
        assert "category" not in candidate["categories"]["bar"][0]


class TestRejects:
    def test_hallucinated_restaurant(self, candidate, snapshot):
        candidate["categories"]["restaurant"].append({"name": "El Invento", "category": "restaurant", "distance_m": 50})
        assert any("El Invento" in r for r in _reasons(candidate, snapshot))

    def test_hallucinated_highlight(self, candidate, snapshot):
        candidate["nearby_highlights"].append({"name": "Casa Lucio", "category": "bar"})
        assert any("highlight" in r for r in _reasons(candidate, snapshot))

    def test_category_mismatch(self, candidate, snapshot):
        candidate["categories"]["bar"][0]["category"] = "restaurant"
        assert any("under 'bar'" in r for r in _reasons(candidate, snapshot))

    def test_unknown_category(self, candidate, snapshot):
        candidate["categories"]["bakery"] = []
        assert _reasons(candidate, snapshot) == ["unknown category 'bakery'"]

    def test_insufficient_data_must_match(self, candidate, snapshot):
        candidate["insufficient_data"] = True
        assert any("insufficient_data" in r for r in _reasons(candidate, snapshot))

    def test_empty_lists_require_insufficient_data(self, snapshot):
        candidate = build_fallback_report(build_snapshot()).model_dump(mode="json")
        candidate["insufficient_data"] = False
        assert any("insufficient_data" in r for r in _reasons(candidate, snapshot))

    def test_unused_source(self, candidate, snapshot):
        candidate["sources"] = ["Google Maps"]
        assert any("Google Maps" in r for r in _reasons(candidate, snapshot))

    @pytest.mark.parametrize("limitations", [[], ["   "]])
    def test_no_limitations(self, candidate, snapshot, limitations):
        candidate["limitations"] = limitations
        assert any(r.startswith("limitations") for r in _reasons(candidate, snapshot))

    def test_empty_summary(self, candidate, snapshot):
        candidate["summary"] = "  "
        assert any(r.startswith("summary") for r in _reasons(candidate, snapshot))

    def test_missing_field(self, candidate, snapshot):
        del candidate["risks"]
        assert any(r.startswith("risks") for r in _reasons(candidate, snapshot))

    def test_not_json(self, snapshot):
        assert _reasons("Sorry, I cannot do that.", snapshot)[0].startswith("not a JSON object")

    def test_json_array(self, snapshot):
        assert _reasons("[1, 2]", snapshot)[0].startswith("not a JSON object")


def test_only_snapshot_names_pass():
    rng = random.Random(23)
    pool = [f"Place {i}" for i in range(40)]
    for _ in range(30):
        present = rng.sample(pool, rng.randint(1, 10))
        snapshot = build_snapshot([make_poi(name, PoiCategory.CAFE, 100 + i) for i, name in enumerate(present)])
        candidate = build_fallback_report(snapshot).model_dump(mode="json")
        name = rng.choice(pool)
        candidate["categories"]["cafe"] = [{"name": name, "category": "cafe"}]
        if name in present:
            validate_report(candidate, snapshot)
        else:
            with pytest.raises(ValidationFailed):
                validate_report(candidate, snapshot)
