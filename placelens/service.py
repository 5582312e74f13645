"""
PlaceLens service facade: context build, report and chat wired together.

Run as a script for a one-off analysis:

    python -m placelens.service 40.4168 -3.7038 --radius 800
    python -m placelens.service 40.4168 -3.7038 --question "panaderías cerca"
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace

import httpx

from placelens import config
from placelens.adapters import AddressSearch
from placelens.agent import ReportingAgent
from placelens.cache import ResilienceCache, cache_key
from placelens.chat import ChatAnswer, ChatEngine
from placelens.context_builder import AdapterSet, ContextBuilder
from placelens.errors import NoViableSnapshot
from placelens.llm import backend_from_env
from placelens.models import ContextSnapshot, Coordinate, Report
from placelens.report_log import JsonlReportStore, ReportLog
from placelens.reporting import generate_report
from placelens.session import SessionRegistry
from placelens.tools import ToolExecutor

logger = logging.getLogger(__name__)

NO_SNAPSHOT_ANSWER = "Right now this place cannot be analysed because map data is unavailable."


@dataclass(frozen=True)
class AnalysisResult:
    request_id: int
    snapshot: ContextSnapshot
    report: Report
    used_generative: bool
    warnings: tuple[str, ...]
    from_cache: bool = False
    stale: bool = False


class PlaceIntelService:
    def __init__(
        self,
        builder: ContextBuilder,
        *,
        agent: ReportingAgent | None = None,
        chat: ChatEngine | None = None,
        report_log: ReportLog | None = None,
        sessions: SessionRegistry | None = None,
    ):
        self.builder = builder
        self.agent = agent
        self.chat = chat or ChatEngine()
        self.report_log = report_log
        self.sessions = sessions or SessionRegistry()

    @property
    def cache(self) -> ResilienceCache | None:
        return self.builder.cache

    @classmethod
    def from_env(cls, client: httpx.AsyncClient | None = None) -> PlaceIntelService:
        adapters = AdapterSet.from_config(client)
        backend = backend_from_env()
        agent = None
        if backend is not None:
            address_search = AddressSearch(client=client)
            agent = ReportingAgent(
                backend,
                tools=lambda: ToolExecutor(
                    address_search=address_search,
                    land_cover=adapters.land_cover,
                    flood=adapters.flood,
                ),
            )
        return cls(
            ContextBuilder(adapters, ResilienceCache()),
            agent=agent,
            chat=ChatEngine(backend, adapters.places),
            report_log=ReportLog(JsonlReportStore()),
        )

    async def analyze(
        self,
        center: Coordinate,
        radius_m: int = config.DEFAULT_RADIUS_M,
        *,
        session_id: str | None = None,
        allow_stale: bool = False,
    ) -> AnalysisResult | None:
        """Snapshot plus report for a point.

        The last-known-good snapshot of another point is only served when
        ``allow_stale`` is set.

        With a ``session_id`` the call supersedes any analysis still running
        for that session, and returns None if it is itself superseded.
        Raises ``NoViableSnapshot`` when no snapshot at all can be produced.
        """
        if session_id is None:
            return await self._analyze(center, radius_m, allow_stale)
        session = self.sessions.get(session_id)
        request_id, result = await session.run(lambda: self._analyze(center, radius_m, allow_stale))
        if result is None:
            return None
        return replace(result, request_id=request_id)

    async def _analyze(self, center: Coordinate, radius_m: int, allow_stale: bool) -> AnalysisResult:
        built = await self.builder.build(center, radius_m, allow_stale=allow_stale)
        snapshot = built.snapshot
        key = cache_key(center, radius_m)

        entry = self.cache.get(key) if built.from_cache and self.cache is not None else None
        if entry is not None and entry.report is not None:
            logger.info("Reusing cached report for %s", key)
            return AnalysisResult(0, snapshot, entry.report, entry.used_generative, built.warnings, from_cache=True)

        result = await generate_report(snapshot, snapshot.place.name, agent=self.agent, report_log=self.report_log)
        if self.cache is not None and not built.stale:
            self.cache.attach_report(key, result.report, result.used_generative)
        return AnalysisResult(
            0,
            snapshot,
            result.report,
            result.used_generative,
            built.warnings + result.warnings,
            from_cache=built.from_cache,
            stale=built.stale,
        )

    async def answer(
        self,
        question: str,
        center: Coordinate,
        radius_m: int = config.DEFAULT_RADIUS_M,
        prior_report: Report | None = None,
        *,
        allow_stale: bool = False,
    ) -> ChatAnswer:
        try:
            built = await self.builder.build(center, radius_m, allow_stale=allow_stale)
        except NoViableSnapshot as exc:
            logger.warning("Chat without snapshot: %s", exc)
            return ChatAnswer(
                answer=NO_SNAPSHOT_ANSWER,
                limitations=["Places index and geocoder unavailable."],
            )
        return await self.chat.answer(question, built.snapshot, prior_report, center=center, radius_m=radius_m)

    def recent_reports(self, limit: int = 20) -> list[dict]:
        sink = self.report_log.sink if self.report_log is not None else None
        if not isinstance(sink, JsonlReportStore):
            return []
        return sink.recent(limit)

    async def aclose(self) -> None:
        if self.report_log is not None:
            await self.report_log.close()


# ====================================================================== #
#  CLI                                                                    #
# ====================================================================== #

async def _main(args) -> dict:
    service = PlaceIntelService.from_env()
    center = Coordinate(lat=args.lat, lon=args.lon)
    try:
        if args.question:
            chat = await service.answer(args.question, center, args.radius, allow_stale=args.allow_stale)
            return {
                "intent": chat.intent,
                "answer": chat.answer,
                "limitations": chat.limitations,
                "sources_used": chat.sources_used,
            }
        result = await service.analyze(center, args.radius, allow_stale=args.allow_stale)
        return {
            "place": result.snapshot.place.model_dump(),
            "poi_summary": result.snapshot.poi_summary.model_dump(mode="json"),
            "sources": result.snapshot.sources_used.labels(),
            "used_generative": result.used_generative,
            "warnings": list(result.warnings),
            "report": result.report.model_dump(mode="json"),
        }
    finally:
        await service.aclose()


if __name__ == "__main__":
    import argparse
    import json
    import sys

    parser = argparse.ArgumentParser(description="Describe what a geographic point is like")
    parser.add_argument("lat", type=float, help="Latitude")
    parser.add_argument("lon", type=float, help="Longitude")
    parser.add_argument("--radius", type=int, default=config.DEFAULT_RADIUS_M, help="Search radius in metres")
    parser.add_argument("--question", help="Ask a question about the place instead of printing the report")
    parser.add_argument("--allow-stale", action="store_true", help="Serve the last good snapshot if the places index is down")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(name)s - %(message)s",
    )

    try:
        output = asyncio.run(_main(args))
    except NoViableSnapshot as exc:
        print(f"No data for ({args.lat}, {args.lon}): {exc}", file=sys.stderr)
        sys.exit(1)
    print(json.dumps(output, indent=2, ensure_ascii=False))
