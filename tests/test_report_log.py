"""Tests for fire-and-forget report persistence."""

import pytest

from conftest import build_snapshot
from placelens.report_log import JsonlReportStore, ReportLog, ReportRecord
from placelens.reporting import generate_report


def _record(name="Puerta del Sol", **kw):
    return ReportRecord(place_name=name, lat=40.4168, lon=-3.7038, category="highway", report={"summary": name}, **kw)


class MemorySink:
    def __init__(self):
        self.records = []

    async def write(self, record):
        self.records.append(record)


class BrokenSink:
    async def write(self, record):
        raise OSError("disk full")


class TestJsonlStore:
    @pytest.mark.asyncio
    async def test_write_then_recent_newest_first(self, tmp_path):
        store = JsonlReportStore(str(tmp_path / "logs" / "reports.jsonl"))
        await store.write(_record("Sol"))
        await store.write(_record("Retiro"))

        recent = store.recent(10)
        assert [r["place_name"] for r in recent] == ["Retiro", "Sol"]
        assert recent[0]["report"] == {"summary": "Retiro"}
        assert store.recent(1)[0]["place_name"] == "Retiro"

    def test_missing_file_and_corrupt_lines(self, tmp_path):
        path = tmp_path / "reports.jsonl"
        store = JsonlReportStore(str(path))
        assert store.recent() == []

        path.write_text('{"place_name": "Sol"}\nnot json\n\n', encoding="utf-8")
        assert store.recent() == [{"place_name": "Sol"}]


class TestReportLog:
    @pytest.mark.asyncio
    async def test_submit_does_not_wait_for_sink(self):
        sink = MemorySink()
        log = ReportLog(sink)

        assert log.submit(_record("Sol")) is True
        assert log.submit(_record("Retiro")) is True
        await log.close()

        assert [r.place_name for r in sink.records] == ["Sol", "Retiro"]

    @pytest.mark.asyncio
    async def test_sink_failure_is_swallowed(self):
        log = ReportLog(BrokenSink())
        assert log.submit(_record()) is True
        await log.drain()
        await log.close()

    @pytest.mark.asyncio
    async def test_full_queue_drops(self):
        log = ReportLog(MemorySink(), maxsize=1)
        assert log.submit(_record("a")) is True
        assert log.submit(_record("b")) is False
        assert log.dropped == 1
        await log.close()

    def test_submit_without_loop_drops(self):
        log = ReportLog(MemorySink())
        assert log.submit(_record()) is False
        assert log.dropped == 1


@pytest.mark.asyncio
async def test_generate_report_persists_a_record():
    sink = MemorySink()
    log = ReportLog(sink)
    snapshot = build_snapshot()

    result = await generate_report(snapshot, "Puerta del Sol", report_log=log)
    await log.close()

    assert len(sink.records) == 1
    record = sink.records[0]
    assert record.place_name == "Puerta del Sol"
    assert record.report["summary"] == result.report.summary
