from __future__ import annotations

import logging
import time
import uuid
from collections import OrderedDict
from typing import Callable, Dict, Optional

import httpx

from clinical_ner.config import Settings
from clinical_ner.controller import AnnotationController


logger = logging.getLogger(__name__)

DEFAULT_MAX_SESSIONS = 1000
DEFAULT_IDLE_SECONDS = 3600.0


class SessionStore:
    """In-memory registry of mounted views, keyed by a random session id.

    A page normally closes its own session on ``pagehide``. When that never
    arrives (tab killed, connection lost) the session is dropped after
    ``idle_seconds`` without use, and ``open`` evicts the least recently used
    sessions once ``max_sessions`` is reached.

    Notes
    -----
    Process-local, like the metrics. Sessions disappear on restart.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        idle_seconds: float = DEFAULT_IDLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.transport = transport
        self.max_sessions = max_sessions
        self.idle_seconds = idle_seconds
        self._clock = clock
        # least recently used first
        self._sessions: OrderedDict[str, AnnotationController] = OrderedDict()
        self._last_used: Dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def _touch(self, session_id: str) -> None:
        self._last_used[session_id] = self._clock()
        self._sessions.move_to_end(session_id)

    def expire_idle(self) -> int:
        """Close every session unused for longer than ``idle_seconds``."""
        cutoff = self._clock() - self.idle_seconds
        stale = [sid for sid in self._sessions if self._last_used[sid] < cutoff]
        for session_id in stale:
            logger.info("Session %s idle for more than %.0fs", session_id, self.idle_seconds)
            self.close(session_id)
        return len(stale)

    def open(self, settings: Settings) -> str:
        self.expire_idle()
        while len(self._sessions) >= self.max_sessions:
            oldest = next(iter(self._sessions))
            logger.warning("Session limit %d reached; evicting %s", self.max_sessions, oldest)
            self.close(oldest)

        session_id = uuid.uuid4().hex
        self._sessions[session_id] = AnnotationController(settings, transport=self.transport)
        self._touch(session_id)
        logger.info("Opened session %s (%d active)", session_id, len(self._sessions))
        return session_id

    def get(self, session_id: str) -> Optional[AnnotationController]:
        controller = self._sessions.get(session_id)
        if controller is None:
            return None
        if self._last_used[session_id] < self._clock() - self.idle_seconds:
            self.close(session_id)
            return None
        self._touch(session_id)
        return controller

    def close(self, session_id: str) -> bool:
        controller = self._sessions.pop(session_id, None)
        self._last_used.pop(session_id, None)
        if controller is None:
            return False
        controller.close()
        logger.info("Closed session %s (%d active)", session_id, len(self._sessions))
        return True

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close(session_id)
