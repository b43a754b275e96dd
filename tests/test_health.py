from __future__ import annotations

import unittest
from typing import Any

from app.health import HealthService
from intake.session_store import SessionStore


class _DummyProbe:
    def __init__(self, result: Any = None, error: Exception | None = None) -> None:
        self.result = result
        self.error = error

    def ping(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.result


class HealthServiceTest(unittest.TestCase):
    def test_disabled_enrichment_counts_as_ok(self) -> None:
        store = SessionStore()
        store.create("U1", channel_id="D1")
        service = HealthService(
            _DummyProbe({"status": "disabled"}), _DummyProbe({"status": "healthy"}), store
        )
        payload = service.check()
        self.assertTrue(payload["ok"])
        self.assertEqual(payload["active_sessions"], 1)

    def test_failing_service_is_reported_unhealthy(self) -> None:
        service = HealthService(
            _DummyProbe({"status": "healthy"}), _DummyProbe(error=RuntimeError("boom")), SessionStore()
        )
        payload = service.check()
        self.assertFalse(payload["ok"])
        self.assertEqual(payload["board"], {"status": "unhealthy", "error": "boom"})


if __name__ == "__main__":
    unittest.main()
