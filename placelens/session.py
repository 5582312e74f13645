"""
Per-session request supersession.

Each new query for a session gets a higher request id and cancels the query
still in flight for that session; a result whose id is no longer the latest
is dropped and ``None`` is returned in its place.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Awaitable, Callable, Iterator, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class QuerySession:
    def __init__(self, session_id: str = "default", ids: Iterator[int] | None = None):
        self.session_id = session_id
        self._ids = ids if ids is not None else itertools.count(1)
        self._latest = 0
        self._task: asyncio.Task | None = None

    @property
    def latest(self) -> int:
        return self._latest

    @property
    def finished(self) -> bool:
        """True once a query has run and none is in flight."""
        return self._task is not None and self._task.done()

    def issue(self) -> int:
        self._latest = next(self._ids)
        return self._latest

    def is_current(self, request_id: int) -> bool:
        return request_id == self._latest

    async def run(self, factory: Callable[[], Awaitable[T]]) -> tuple[int, T | None]:
        """Run ``factory()`` as the session's current query.

        Returns ``(request_id, result)``; ``result`` is None when a newer query
        superseded this one.
        """
        request_id = self.issue()
        previous = self._task
        if previous is not None and not previous.done():
            logger.debug("Session %s: cancelling request superseded by #%d", self.session_id, request_id)
            previous.cancel()

        task = asyncio.ensure_future(factory())
        self._task = task
        try:
            result = await task
        except asyncio.CancelledError:
            if not self.is_current(request_id):
                logger.debug("Session %s: request #%d dropped", self.session_id, request_id)
                return request_id, None
            raise

        if not self.is_current(request_id):
            logger.debug("Session %s: stale response #%d discarded", self.session_id, request_id)
            return request_id, None
        return request_id, result


class SessionRegistry:
    """Sessions by client id. Finished sessions are dropped on the next lookup
    of a different id; request ids come from one registry-wide counter so they
    keep increasing when a dropped session id comes back.
    """

    def __init__(self):
        self._sessions: dict[str, QuerySession] = {}
        self._ids = itertools.count(1)

    def get(self, session_id: str) -> QuerySession:
        self._drop_finished(keep=session_id)
        session = self._sessions.get(session_id)
        if session is None:
            session = self._sessions.setdefault(session_id, QuerySession(session_id, self._ids))
        return session

    def _drop_finished(self, keep: str) -> None:
        finished = [sid for sid, s in self._sessions.items() if sid != keep and s.finished]
        for sid in finished:
            del self._sessions[sid]
        if finished:
            logger.debug("Dropped %d finished sessions", len(finished))

    def __len__(self) -> int:
        return len(self._sessions)
