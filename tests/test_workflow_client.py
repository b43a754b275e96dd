from __future__ import annotations

import json
import unittest
from typing import Any
from unittest import mock
from urllib import error

from enrichment.workflow_client import WorkflowApiError, WorkflowClient


class _FakeResponse:
    def __init__(self, payload: Any, status: int = 200) -> None:
        self._body = json.dumps(payload).encode("utf-8")
        self.status = status

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> "_FakeResponse":
        return self

    def __exit__(self, *_: Any) -> None:
        return None


class WorkflowClientTest(unittest.TestCase):
    def setUp(self) -> None:
        self.client = WorkflowClient(url="https://workflow.example.com/run/", token="hub-token")

    def test_run_posts_inputs_and_filters_outputs(self) -> None:
        response = _FakeResponse(
            {"outputs": {"request_type": "Content Edit", "urgency_level": "", "feature_name": "Pricing", "extra": 1}}
        )
        with mock.patch("enrichment.workflow_client.request.urlopen", return_value=response) as urlopen:
            outputs = self.client.run("Subject: Update pricing page", "U123")

        self.assertEqual(outputs, {"request_type": "Content Edit", "feature_name": "Pricing"})
        req = urlopen.call_args.args[0]
        self.assertEqual(req.full_url, "https://workflow.example.com/run")
        self.assertEqual(req.get_header("Authorization"), "Bearer hub-token")
        self.assertEqual(
            json.loads(req.data.decode("utf-8")),
            {"inputs": {"pm_message": "Subject: Update pricing page", "user_id": "U123"}},
        )

    def test_missing_outputs_raise(self) -> None:
        with mock.patch("enrichment.workflow_client.request.urlopen", return_value=_FakeResponse({"status": "ok"})):
            with self.assertRaises(WorkflowApiError):
                self.client.run("msg", "U123")

    def test_unconfigured_client_is_disabled(self) -> None:
        client = WorkflowClient(url="")
        self.assertFalse(client.enabled)
        self.assertEqual(client.ping()["status"], "disabled")
        with self.assertRaises(WorkflowApiError) as ctx:
            client.run("msg", "U123")
        self.assertTrue(ctx.exception.is_client_error)

    def test_ping_uses_health_path(self) -> None:
        with mock.patch(
            "enrichment.workflow_client.request.urlopen", return_value=_FakeResponse({})
        ) as urlopen:
            self.assertEqual(self.client.ping(), {"status": "healthy"})
        self.assertEqual(urlopen.call_args.args[0].full_url, "https://workflow.example.com/run/health")

        with mock.patch("enrichment.workflow_client.request.urlopen", side_effect=error.URLError("refused")):
            self.assertEqual(self.client.ping()["status"], "unhealthy")


if __name__ == "__main__":
    unittest.main()
