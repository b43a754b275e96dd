from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from core.enums import Step
from core.models import Session

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT_SEC = 30 * 60
DEFAULT_SWEEP_INTERVAL_SEC = 5 * 60


class SessionStore:
    """In-memory, per-user conversation sessions with sliding idle expiry.

    Each session owns an idle timer on the running event loop. A periodic
    sweep removes anything the timers missed. Every path that removes a
    session goes through ``destroy`` so timers are always cancelled.
    """

    def __init__(
        self,
        idle_timeout_sec: float = DEFAULT_IDLE_TIMEOUT_SEC,
        sweep_interval_sec: float = DEFAULT_SWEEP_INTERVAL_SEC,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.idle_timeout_sec = max(1.0, float(idle_timeout_sec))
        self.sweep_interval_sec = max(1.0, float(sweep_interval_sec))
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._sweeper: asyncio.Task[None] | None = None

    def create(
        self,
        user_id: str,
        *,
        channel_id: str,
        step: Step = Step.START,
        data: dict[str, Any] | None = None,
    ) -> Session:
        self.destroy(user_id)
        now = self._clock()
        session = Session(
            user_id=user_id,
            channel_id=channel_id,
            step=step,
            data=dict(data or {}),
            created_at=now,
            last_activity_at=now,
        )
        self._sessions[user_id] = session
        self._arm_timer(session)
        logger.info("session-created user_id=%s step=%s", user_id, step.value)
        return session

    def get(self, user_id: str) -> Session | None:
        session = self._sessions.get(user_id)
        if session is None:
            return None
        now = self._clock()
        if session.idle_seconds(now) > self.idle_timeout_sec:
            self._expire(user_id)
            return None
        session.last_activity_at = now
        self._arm_timer(session)
        return session

    def update(
        self,
        user_id: str,
        *,
        step: Step | None = None,
        data: dict[str, Any] | None = None,
    ) -> Session | None:
        session = self.get(user_id)
        if session is None:
            return None
        if data:
            session.data.update(data)
        if step is not None:
            session.step = step
        return session

    def destroy(self, user_id: str) -> bool:
        session = self._sessions.pop(user_id, None)
        if session is None:
            return False
        self._cancel_timer(session)
        logger.info("session-destroyed user_id=%s step=%s", user_id, session.step.value)
        return True

    def sweep(self) -> int:
        now = self._clock()
        expired = [
            user_id
            for user_id, session in self._sessions.items()
            if session.idle_seconds(now) > self.idle_timeout_sec
        ]
        for user_id in expired:
            self._expire(user_id)
        if expired:
            logger.info("session-sweep removed=%d remaining=%d", len(expired), len(self._sessions))
        return len(expired)

    def active_count(self) -> int:
        return len(self._sessions)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._sessions

    def start_sweeper(self) -> None:
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())

    async def aclose(self) -> None:
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is not None:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass
        for user_id in list(self._sessions):
            self.destroy(user_id)

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_sec)
            try:
                self.sweep()
            except Exception:  # noqa: BLE001
                logger.exception("session-sweep-failed")

    def _expire(self, user_id: str) -> None:
        if self.destroy(user_id):
            logger.info("session-expired user_id=%s", user_id)

    def _on_timer(self, user_id: str, session: Session) -> None:
        current = self._sessions.get(user_id)
        if current is not session:
            return
        session.expiry_handle = None
        if session.idle_seconds(self._clock()) >= self.idle_timeout_sec:
            self._expire(user_id)
        else:
            self._arm_timer(session)

    def _arm_timer(self, session: Session) -> None:
        self._cancel_timer(session)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        remaining = self.idle_timeout_sec - session.idle_seconds(self._clock())
        session.expiry_handle = loop.call_later(
            max(0.0, remaining), self._on_timer, session.user_id, session
        )

    @staticmethod
    def _cancel_timer(session: Session) -> None:
        handle = session.expiry_handle
        if handle is not None:
            handle.cancel()
            session.expiry_handle = None
