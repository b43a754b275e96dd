from __future__ import annotations

import json
from typing import Any
from urllib import error, request

from core.errors import ExternalApiError

SERVICE_NAME = "enrichment"

OUTPUT_KEYS = (
    "request_type",
    "change_description",
    "article_link",
    "urgency_level",
    "feature_name",
)


class WorkflowApiError(ExternalApiError):
    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(SERVICE_NAME, message, status)


class WorkflowClient:
    """Client for the inference workflow that classifies a KB request."""

    def __init__(
        self,
        url: str | None,
        token: str | None = None,
        timeout_sec: float = 30.0,
        health_path: str = "/health",
        health_timeout_sec: float = 5.0,
        enabled: bool = True,
    ) -> None:
        self.url = (url or "").strip().rstrip("/")
        self.token = (token or "").strip()
        self.timeout_sec = float(timeout_sec)
        self.health_path = health_path or "/health"
        self.health_timeout_sec = float(health_timeout_sec)
        self.enabled = bool(enabled) and bool(self.url)

    def run(self, message: str, user_id: str) -> dict[str, Any]:
        if not self.enabled:
            raise WorkflowApiError("enrichment.url is not configured", status=400)
        payload = {"inputs": {"pm_message": message, "user_id": user_id}}
        data = self._post_json(payload)
        outputs = data.get("outputs")
        if not isinstance(outputs, dict):
            raise WorkflowApiError("workflow response has no outputs")
        return {key: outputs.get(key) for key in OUTPUT_KEYS if outputs.get(key) not in (None, "")}

    def ping(self) -> dict[str, Any]:
        if not self.enabled:
            return {"status": "disabled", "message": "enrichment.url is not configured"}
        req = request.Request(url=f"{self.url}{self.health_path}", method="GET")
        self._authorize(req)
        try:
            with request.urlopen(req, timeout=self.health_timeout_sec) as resp:
                status = int(getattr(resp, "status", 200))
        except error.HTTPError as exc:
            return {"status": "unhealthy", "error": f"status={exc.code}"}
        except error.URLError as exc:
            return {"status": "unhealthy", "error": str(exc.reason)}
        if status >= 400:
            return {"status": "unhealthy", "error": f"status={status}"}
        return {"status": "healthy"}

    def _post_json(self, payload: dict[str, Any]) -> dict[str, Any]:
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        req = request.Request(url=self.url, data=data, method="POST")
        req.add_header("Content-Type", "application/json; charset=utf-8")
        self._authorize(req)
        try:
            with request.urlopen(req, timeout=self.timeout_sec) as resp:
                body = resp.read().decode("utf-8", errors="ignore")
        except error.HTTPError as exc:
            body = ""
            try:
                body = exc.read().decode("utf-8", errors="ignore")
            except Exception:
                pass
            raise WorkflowApiError(f"workflow api error: status={exc.code} body={body[:500]}", status=exc.code) from exc
        except error.URLError as exc:
            raise WorkflowApiError(f"workflow api connection error: {exc}") from exc
        except TimeoutError as exc:
            raise WorkflowApiError(f"workflow api timed out after {self.timeout_sec}s") from exc

        try:
            parsed = json.loads(body)
        except Exception as exc:
            raise WorkflowApiError("workflow api returned invalid json") from exc
        if not isinstance(parsed, dict):
            raise WorkflowApiError("workflow api returned unexpected payload")
        return parsed

    def _authorize(self, req: request.Request) -> None:
        if self.token:
            req.add_header("Authorization", f"Bearer {self.token}")
