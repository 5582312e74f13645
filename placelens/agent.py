"""
Reporting agent: a bounded tool-calling loop around the generative backend.

    AWAITING_MODEL -> (TOOL_CALL_REQUESTED -> TOOL_EXECUTED -> AWAITING_MODEL)*
                   -> FINAL_CANDIDATE -> ACCEPTED | REJECTED

A rejected run carries a reason; the caller then falls back to the
deterministic reporter. Validation failures get exactly one retry with a
stricter prompt and a smaller POI list.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from placelens import config
from placelens.errors import BackendUnavailable, ValidationFailed
from placelens.llm import GenerativeBackend, RawToolCall
from placelens.models import CATEGORY_ORDER, ContextSnapshot, Report
from placelens.tools import ToolDecodeError, ToolExecutor, decode_tool_call, tool_schemas
from placelens.validation import validate_report

logger = logging.getLogger(__name__)


class AgentState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    TOOL_CALL_REQUESTED = "tool_call_requested"
    TOOL_EXECUTED = "tool_executed"
    FINAL_CANDIDATE = "final_candidate"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class RejectReason(str, Enum):
    VALIDATION = "validation"
    ROUND_LIMIT = "round_limit"
    BACKEND = "backend"
    TIMEOUT = "timeout"


@dataclass
class AgentOutcome:
    state: AgentState = AgentState.AWAITING_MODEL
    report: Report | None = None
    reason: RejectReason | None = None
    detail: str = ""
    transitions: list[AgentState] = field(default_factory=list)
    attempts: int = 0

    def enter(self, state: AgentState) -> None:
        self.state = state
        self.transitions.append(state)

    @property
    def accepted(self) -> bool:
        return self.state is AgentState.ACCEPTED


class _RoundLimitExceeded(Exception):
    pass


SYSTEM_PROMPT = """You are a location analyst. You describe what a place is like using ONLY the
context data you are given. You may call the tools to look up an address, the land cover
or the official flood risk at a coordinate.

Rules:
- Mention a point of interest only if it appears in the context, with its exact name and
  the category it is listed under.
- Cite in "sources" only names from the context's "available_sources" list.
- Never invent ratings, prices, opening hours or risks.
- When data is missing, say so in "limitations".

Reply with a single JSON object with exactly these keys:
{
  "summary": "2-3 sentences",
  "nearby_highlights": [{"name": "...", "category": "...", "distance_m": 0}],
  "categories": {"<category>": [{"name": "...", "category": "<category>", "distance_m": 0}]},
  "risks": "flood and air quality in one or two sentences",
  "land_use": "one or two sentences",
  "recommendation": "one or two sentences",
  "sources": ["..."],
  "limitations": ["..."],
  "insufficient_data": false
}
"insufficient_data" is true only when every category list is empty."""

STRICT_SUFFIX = """

Your previous answer was rejected for these reasons:
{reasons}
Fix them. Copy names character for character from the context. If unsure about an item,
leave it out. Return only the JSON object."""


def snapshot_context(snapshot: ContextSnapshot, place_name: str) -> dict[str, Any]:
    """The subset of a snapshot the model sees, as plain JSON."""
    pois = {
        category.value: [
            {
                k: v
                for k, v in {
                    "name": p.name,
                    "distance_m": p.distance_m,
                    "cuisine": p.cuisine,
                    "rating": p.rating,
                }.items()
                if v is not None
            }
            for p in snapshot.pois(category)
        ]
        for category in CATEGORY_ORDER
        if snapshot.pois(category)
    }
    env = snapshot.environment
    return {
        "place": place_name,
        "center": {"lat": snapshot.center.lat, "lon": snapshot.center.lon},
        "radius_m": snapshot.radius_m,
        "admin": snapshot.admin.model_dump(exclude_none=True),
        "poi_counts": {c.value: n for c, n in snapshot.poi_summary.counts.items()},
        "pois": pois,
        "flood_risk": snapshot.flood_risk.model_dump(mode="json", exclude={"raw_evidence"}),
        "air_quality": snapshot.air_quality.model_dump(mode="json", exclude={"raw_evidence"}),
        "land_use": env.land_use_summary,
        "is_coastal": env.is_coastal,
        "elevation_m": env.elevation_m,
        "weather": env.weather.model_dump(exclude_none=True) if env.weather else None,
        "facts": list(snapshot.knowledge.facts) if snapshot.knowledge else [],
        "articles": [a.title for a in snapshot.articles],
        "available_sources": snapshot.sources_used.labels(),
        "warnings": list(snapshot.warnings),
    }


class ReportingAgent:
    def __init__(
        self,
        backend: GenerativeBackend,
        tools: Callable[[], ToolExecutor] = ToolExecutor,
        *,
        max_rounds: int = config.AGENT_MAX_ROUNDS,
        timeout_s: float = config.AGENT_TIMEOUT_S,
        prompt_items: int = config.PROMPT_ITEMS_PER_CATEGORY,
        retry_items: int = config.RETRY_ITEMS_PER_CATEGORY,
    ):
        self.backend = backend
        self.tools = tools
        self.max_rounds = max_rounds
        self.timeout_s = timeout_s
        self.prompt_items = prompt_items
        self.retry_items = retry_items
        self.tool_specs = tool_schemas()

    async def run(self, snapshot: ContextSnapshot, place_name: str) -> AgentOutcome:
        outcome = AgentOutcome()
        try:
            await asyncio.wait_for(self._run(snapshot, place_name, outcome), self.timeout_s)
        except asyncio.TimeoutError:
            self._reject(outcome, RejectReason.TIMEOUT, f"no accepted report within {self.timeout_s:g}s")
        logger.info(
            "Agent finished %s (%s) after %d attempt(s), %d transitions",
            outcome.state.value,
            outcome.reason.value if outcome.reason else "-",
            outcome.attempts,
            len(outcome.transitions),
        )
        return outcome

    def _reject(self, outcome: AgentOutcome, reason: RejectReason, detail: str) -> None:
        outcome.reason = reason
        outcome.detail = detail
        outcome.enter(AgentState.REJECTED)

    async def _run(self, snapshot: ContextSnapshot, place_name: str, outcome: AgentOutcome) -> None:
        executor = self.tools()
        feedback: list[str] = []
        for attempt in (1, 2):
            outcome.attempts = attempt
            view = snapshot.reduced(self.prompt_items if attempt == 1 else self.retry_items)
            messages = self._messages(view, place_name, feedback)
            try:
                candidate = await self._converse(messages, executor, outcome)
            except BackendUnavailable as exc:
                self._reject(outcome, RejectReason.BACKEND, str(exc))
                return
            except _RoundLimitExceeded:
                self._reject(outcome, RejectReason.ROUND_LIMIT, f"no final answer after {self.max_rounds} rounds")
                return

            try:
                # always checked against the full snapshot, not the prompt view
                outcome.report = validate_report(candidate, snapshot)
            except ValidationFailed as exc:
                feedback = exc.reasons
                logger.info("Attempt %d rejected: %s", attempt, "; ".join(exc.reasons))
                continue
            outcome.enter(AgentState.ACCEPTED)
            return

        self._reject(outcome, RejectReason.VALIDATION, "; ".join(feedback))

    def _messages(self, view: ContextSnapshot, place_name: str, feedback: list[str]) -> list[dict[str, Any]]:
        system = SYSTEM_PROMPT
        if feedback:
            system += STRICT_SUFFIX.format(reasons="\n".join(f"- {r}" for r in feedback[:10]))
        context = json.dumps(snapshot_context(view, place_name), ensure_ascii=False)
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": f"Context for {place_name}:\n{context}"},
        ]

    async def _converse(
        self,
        messages: list[dict[str, Any]],
        executor: ToolExecutor,
        outcome: AgentOutcome,
    ) -> str:
        for _ in range(self.max_rounds):
            outcome.enter(AgentState.AWAITING_MODEL)
            turn = await self.backend.complete(messages, tools=self.tool_specs, json_mode=True)

            if not turn.tool_calls:
                outcome.enter(AgentState.FINAL_CANDIDATE)
                return turn.content or ""

            outcome.enter(AgentState.TOOL_CALL_REQUESTED)
            messages.append({
                "role": "assistant",
                "content": turn.content or "",
                "tool_calls": [
                    {"id": c.id, "type": "function", "function": {"name": c.name, "arguments": c.arguments}}
                    for c in turn.tool_calls
                ],
            })
            results = await asyncio.gather(*(self._execute(executor, c) for c in turn.tool_calls))
            for call, result in zip(turn.tool_calls, results):
                messages.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": json.dumps(result, ensure_ascii=False),
                })
            outcome.enter(AgentState.TOOL_EXECUTED)

        raise _RoundLimitExceeded()

    async def _execute(self, executor: ToolExecutor, call: RawToolCall) -> dict[str, Any]:
        try:
            decoded = decode_tool_call(call.name, call.arguments)
        except ToolDecodeError as exc:
            logger.info("Rejected tool call: %s", exc)
            return {"error": str(exc)}
        return await executor.execute(decoded)
