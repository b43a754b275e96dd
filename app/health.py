from __future__ import annotations

import logging
from typing import Any

from intake.interfaces import BoardClientProtocol, EnrichmentClientProtocol
from intake.session_store import SessionStore

logger = logging.getLogger(__name__)

HEALTHY_STATUSES = {"healthy", "disabled"}


class HealthService:
    def __init__(
        self,
        enrichment: EnrichmentClientProtocol,
        board: BoardClientProtocol,
        store: SessionStore,
    ) -> None:
        self.enrichment = enrichment
        self.board = board
        self.store = store

    def check(self) -> dict[str, Any]:
        enrichment = self._check_service("enrichment", self.enrichment.ping)
        board = self._check_service("board", self.board.ping)
        ok = enrichment.get("status") in HEALTHY_STATUSES and board.get("status") in HEALTHY_STATUSES
        return {
            "ok": ok,
            "enrichment": enrichment,
            "board": board,
            "active_sessions": self.store.active_count(),
        }

    @staticmethod
    def _check_service(name: str, ping: Any) -> dict[str, Any]:
        try:
            result = ping()
        except Exception as exc:  # noqa: BLE001
            logger.warning("health-check-failed service=%s error=%s", name, exc)
            return {"status": "unhealthy", "error": str(exc)}
        return result if isinstance(result, dict) else {"status": "unknown"}
