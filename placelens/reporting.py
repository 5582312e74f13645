"""
Report generation: generative agent first, deterministic fallback always.

``generate_report`` never raises. Whatever happens upstream, the caller gets
a report that passed validation against the snapshot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from placelens.agent import ReportingAgent
from placelens.fallback import build_fallback_report
from placelens.models import ContextSnapshot, Report
from placelens.report_log import ReportLog, ReportRecord

logger = logging.getLogger(__name__)

_REASON_TEXT = {
    "validation": "The generated report could not be verified against the collected data, so a standard report is shown.",
    "round_limit": "The report generator did not finish in time, so a standard report is shown.",
    "timeout": "The report generator timed out, so a standard report is shown.",
    "backend": "The report generator was unavailable, so a standard report is shown.",
}


@dataclass(frozen=True)
class ReportResult:
    report: Report
    used_generative: bool
    warnings: tuple[str, ...] = ()


async def generate_report(
    snapshot: ContextSnapshot,
    place_name: str,
    *,
    agent: ReportingAgent | None = None,
    report_log: ReportLog | None = None,
) -> ReportResult:
    warnings: list[str] = []
    report: Report | None = None
    reason: str | None = None

    if agent is not None:
        try:
            outcome = await agent.run(snapshot, place_name)
        except Exception as exc:
            logger.error("Reporting agent crashed: %s", exc)
            reason = _REASON_TEXT["backend"]
        else:
            if outcome.accepted and outcome.report is not None:
                report = outcome.report
            else:
                key = outcome.reason.value if outcome.reason else "backend"
                reason = _REASON_TEXT.get(key, _REASON_TEXT["backend"])
                logger.info("Falling back to deterministic report (%s): %s", key, outcome.detail)
        if reason:
            warnings.append(reason)

    used_generative = report is not None
    if report is None:
        report = build_fallback_report(snapshot, reason)

    if report_log is not None:
        report_log.submit(ReportRecord(
            place_name=place_name,
            lat=snapshot.center.lat,
            lon=snapshot.center.lon,
            category=snapshot.place.category,
            report=report.model_dump(mode="json"),
        ))

    return ReportResult(report=report, used_generative=used_generative, warnings=tuple(warnings))
