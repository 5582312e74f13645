"""
Fire-and-forget report persistence.

``ReportLog.submit`` only enqueues; a background task drains the queue into a
sink. Sink failures are logged and dropped, they never reach the caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from placelens import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportRecord:
    place_name: str
    lat: float
    lon: float
    category: str | None
    report: dict[str, Any]
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class ReportSink(Protocol):
    async def write(self, record: ReportRecord) -> None: ...


class JsonlReportStore:
    """Appends one JSON object per line to a local file."""

    def __init__(self, path: str = config.REPORT_LOG_PATH):
        self.path = path

    def _append(self, line: str) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    async def write(self, record: ReportRecord) -> None:
        line = json.dumps(asdict(record), ensure_ascii=False)
        await asyncio.to_thread(self._append, line)

    def recent(self, limit: int = 20) -> list[dict[str, Any]]:
        """Newest entries first; unreadable lines are skipped."""
        if limit <= 0 or not os.path.exists(self.path):
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            lines = f.readlines()
        out: list[dict[str, Any]] = []
        for line in reversed(lines):
            if len(out) >= limit:
                break
            line = line.strip()
            if not line:
                continue
            try:
                out.append(json.loads(line))
            except json.JSONDecodeError:
                logger.debug("Skipping corrupt report log line")
        return out


class ReportLog:
    def __init__(self, sink: ReportSink, maxsize: int = 256):
        self.sink = sink
        self._queue: asyncio.Queue[ReportRecord] | None = None
        self._maxsize = maxsize
        self._worker: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self.dropped = 0

    def submit(self, record: ReportRecord) -> bool:
        """Queue a record without waiting. Returns False when it was dropped."""
        try:
            loop = asyncio.get_running_loop()
            if self._loop is not loop:
                # queues and tasks are bound to the loop that created them
                self._queue = asyncio.Queue(maxsize=self._maxsize)
                self._worker = None
                self._loop = loop
            if self._worker is None or self._worker.done():
                self._worker = loop.create_task(self._drain_forever(self._queue))
            self._queue.put_nowait(record)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Report log queue full; dropping report for %s", record.place_name)
            return False
        except RuntimeError as exc:
            self.dropped += 1
            logger.warning("Report log needs a running event loop: %s", exc)
            return False
        return True

    async def _drain_forever(self, queue: asyncio.Queue[ReportRecord]) -> None:
        while True:
            record = await queue.get()
            try:
                await self.sink.write(record)
            except Exception as exc:
                logger.warning("Report log write failed for %s: %s", record.place_name, exc)
            finally:
                queue.task_done()

    async def drain(self) -> None:
        """Wait until everything submitted so far has been handed to the sink."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        await self.drain()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
