"""Tests for the reporting agent state machine and its fallback path."""

import json

import pytest

from conftest import FakeAdapter, ScriptedBackend, build_snapshot, make_poi
from placelens.agent import AgentState, RejectReason, ReportingAgent
from placelens.errors import BackendUnavailable
from placelens.fallback import build_fallback_report
from placelens.llm import ModelTurn, RawToolCall
from placelens.models import LandCover, PoiCategory
from placelens.reporting import generate_report
from placelens.tools import ToolExecutor

S = AgentState


@pytest.fixture
def snapshot():
    return build_snapshot([
        make_poi("Casa Lucio", PoiCategory.RESTAURANT, 120),
        make_poi("Bar Pepe", PoiCategory.BAR, 90),
        make_poi("Farmacia Sol", PoiCategory.PHARMACY, 60),
    ])


@pytest.fixture
def good(snapshot):
    return json.dumps(build_fallback_report(snapshot).model_dump(mode="json"))


@pytest.fixture
def hallucinated(snapshot):
    data = build_fallback_report(snapshot).model_dump(mode="json")
    data["categories"]["restaurant"].append({"name": "El Invento", "category": "restaurant", "distance_m": 40})
    return json.dumps(data)


def _tool_turn(call_id, name, arguments):
    return ModelTurn(content=None, tool_calls=(RawToolCall(id=call_id, name=name, arguments=arguments),))


class TestAccepted:
    @pytest.mark.asyncio
    async def test_first_answer_accepted(self, snapshot, good):
        outcome = await ReportingAgent(ScriptedBackend(good)).run(snapshot, "Puerta del Sol")

        assert outcome.accepted
        assert outcome.attempts == 1
        assert outcome.transitions == [S.AWAITING_MODEL, S.FINAL_CANDIDATE, S.ACCEPTED]
        assert outcome.report == build_fallback_report(snapshot)

    @pytest.mark.asyncio
    async def test_retry_after_hallucination(self, snapshot, good, hallucinated):
        backend = ScriptedBackend(hallucinated, good)
        outcome = await ReportingAgent(backend).run(snapshot, "Puerta del Sol")

        assert outcome.accepted
        assert outcome.attempts == 2
        assert "El Invento" in backend.calls[1][0]["content"]

    @pytest.mark.asyncio
    async def test_prompt_context_is_plain_json(self, snapshot, good):
        backend = ScriptedBackend(good)
        await ReportingAgent(backend).run(snapshot, "Puerta del Sol")

        user = backend.calls[0][1]["content"]
        context = json.loads(user.split("\n", 1)[1])
        assert context["pois"]["restaurant"][0]["name"] == "Casa Lucio"
        assert context["available_sources"] == snapshot.sources_used.labels()


class TestRejected:
    @pytest.mark.asyncio
    async def test_hallucination_twice_falls_back(self, snapshot, hallucinated):
        backend = ScriptedBackend(hallucinated)
        agent = ReportingAgent(backend)
        outcome = await agent.run(snapshot, "Puerta del Sol")

        assert outcome.state is S.REJECTED
        assert outcome.reason is RejectReason.VALIDATION
        assert outcome.attempts == 2
        assert "rejected" in backend.calls[1][0]["content"]
        assert "rejected" not in backend.calls[0][0]["content"]

        result = await generate_report(snapshot, "Puerta del Sol", agent=ReportingAgent(ScriptedBackend(hallucinated)))
        assert result.used_generative is False
        assert result.warnings
        assert result.warnings[0] in result.report.limitations
        names = [i.name for i in result.report.categories[PoiCategory.RESTAURANT]]
        assert "El Invento" not in names

    @pytest.mark.asyncio
    async def test_backend_failure_is_not_retried(self, snapshot):
        backend = ScriptedBackend(BackendUnavailable("503"))
        outcome = await ReportingAgent(backend).run(snapshot, "Puerta del Sol")

        assert outcome.reason is RejectReason.BACKEND
        assert outcome.transitions == [S.AWAITING_MODEL, S.REJECTED]
        assert len(backend.calls) == 1

    @pytest.mark.asyncio
    async def test_round_limit(self, snapshot):
        backend = ScriptedBackend(_tool_turn("c1", "land_cover_at", '{"lat": 40.4, "lon": -3.7}'))
        outcome = await ReportingAgent(backend, max_rounds=3).run(snapshot, "Puerta del Sol")

        assert outcome.reason is RejectReason.ROUND_LIMIT
        assert len(backend.calls) == 3

    @pytest.mark.asyncio
    async def test_timeout(self, snapshot, good):
        agent = ReportingAgent(ScriptedBackend(good, delay=0.5), timeout_s=0.05)
        outcome = await agent.run(snapshot, "Puerta del Sol")
        assert outcome.reason is RejectReason.TIMEOUT
        assert outcome.state is S.REJECTED

    @pytest.mark.asyncio
    async def test_crashing_backend_still_yields_report(self, snapshot):
        agent = ReportingAgent(ScriptedBackend(RuntimeError("bug")))
        result = await generate_report(snapshot, "Puerta del Sol", agent=agent)
        assert result.used_generative is False
        assert result.report.summary


class TestTools:
    @pytest.mark.asyncio
    async def test_repeated_tool_call_is_cached(self, snapshot, good):
        land_cover = FakeAdapter("land_cover", LandCover(code="112", label="Discontinuous urban fabric", source="CORINE"))
        args = '{"lat": 40.4168, "lon": -3.7038}'
        backend = ScriptedBackend(
            _tool_turn("c1", "land_cover_at", args),
            _tool_turn("c2", "land_cover_at", args),
            good,
        )
        agent = ReportingAgent(backend, tools=lambda: ToolExecutor(land_cover=land_cover))
        outcome = await agent.run(snapshot, "Puerta del Sol")

        assert outcome.accepted
        assert land_cover.calls == 1
        assert outcome.transitions == [
            S.AWAITING_MODEL, S.TOOL_CALL_REQUESTED, S.TOOL_EXECUTED,
            S.AWAITING_MODEL, S.TOOL_CALL_REQUESTED, S.TOOL_EXECUTED,
            S.AWAITING_MODEL, S.FINAL_CANDIDATE, S.ACCEPTED,
        ]
        tool_messages = [m for m in backend.calls[2] if m["role"] == "tool"]
        assert [m["tool_call_id"] for m in tool_messages] == ["c1", "c2"]
        assert "Discontinuous urban fabric" in tool_messages[0]["content"]

    @pytest.mark.asyncio
    async def test_unknown_tool_gets_error_result(self, snapshot, good):
        backend = ScriptedBackend(_tool_turn("c1", "delete_everything", "{}"), good)
        outcome = await ReportingAgent(backend).run(snapshot, "Puerta del Sol")

        assert outcome.accepted
        tool_message = [m for m in backend.calls[1] if m["role"] == "tool"][0]
        assert "error" in json.loads(tool_message["content"])
