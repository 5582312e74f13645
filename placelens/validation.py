"""
Report validator.

A candidate report is accepted only if every entity it names can be found in
the snapshot it was generated from, and it cites no source the snapshot did
not actually use.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from pydantic import ValidationError

from placelens.errors import ValidationFailed
from placelens.llm import parse_json_object
from placelens.models import ContextSnapshot, PoiCategory, Report

logger = logging.getLogger(__name__)

_CATEGORY_VALUES = {c.value for c in PoiCategory}


def _normalize_categories(data: dict[str, Any], reasons: list[str]) -> None:
    """Check category keys and stamp each item with its bucket's category."""
    categories = data.get("categories")
    if categories is None:
        return
    if not isinstance(categories, dict):
        reasons.append("categories must be an object")
        return
    for key, items in categories.items():
        if key not in _CATEGORY_VALUES:
            reasons.append(f"unknown category {key!r}")
            continue
        if not isinstance(items, list):
            continue
        for item in items:
            if not isinstance(item, dict):
                continue
            given = item.setdefault("category", key)
            if given != key:
                reasons.append(f"item {item.get('name')!r} has category {given!r} under {key!r}")


def _schema_errors(exc: ValidationError) -> list[str]:
    out = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        out.append(f"{loc}: {err['msg']}")
    return out


def validate_report(candidate: str | dict[str, Any], snapshot: ContextSnapshot) -> Report:
    if isinstance(candidate, dict):
        data = copy.deepcopy(candidate)
    else:
        try:
            data = parse_json_object(candidate)
        except ValueError as exc:
            raise ValidationFailed([f"not a JSON object: {exc}"]) from exc

    reasons: list[str] = []
    _normalize_categories(data, reasons)
    if reasons:
        raise ValidationFailed(reasons)

    try:
        report = Report.model_validate(data)
    except ValidationError as exc:
        raise ValidationFailed(_schema_errors(exc)) from exc

    # ---- grounding: every named entity must exist in the snapshot ---- #
    for item in report.nearby_highlights:
        if item.name not in snapshot.names(item.category):
            reasons.append(f"highlight {item.name!r} ({item.category.value}) is not in the snapshot")
    for category, items in report.categories.items():
        known = snapshot.names(category)
        for item in items:
            if item.name not in known:
                reasons.append(f"{category.value} item {item.name!r} is not in the snapshot")

    all_empty = all(not items for items in report.categories.values())
    if report.insufficient_data != all_empty:
        reasons.append(
            "insufficient_data must be true exactly when every category list is empty"
        )

    if not any(text.strip() for text in report.limitations):
        reasons.append("limitations must name at least one gap in the data")

    allowed = {label.casefold() for label in snapshot.sources_used.labels()}
    for source in report.sources:
        if source.strip().casefold() not in allowed:
            reasons.append(f"source {source!r} was not used for this snapshot")

    if reasons:
        logger.info("Report rejected: %s", "; ".join(reasons))
        raise ValidationFailed(reasons)
    return report
