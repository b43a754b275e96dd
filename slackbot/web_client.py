from __future__ import annotations

import json
from typing import Any
from urllib import error, parse, request

from core.errors import ExternalApiError

SERVICE_NAME = "slack"


class SlackApiError(ExternalApiError):
    def __init__(self, message: str, status: int | None = None, code: str | None = None) -> None:
        super().__init__(SERVICE_NAME, message, status)
        self.code = code


# Web API error codes that mean the request itself is wrong and will not
# succeed on retry.
CLIENT_ERROR_CODES = {
    "channel_not_found",
    "file_not_found",
    "file_deleted",
    "invalid_arguments",
    "invalid_auth",
    "invalid_blocks",
    "msg_too_long",
    "missing_scope",
    "not_authed",
    "not_in_channel",
    "user_not_found",
    "account_inactive",
    "token_revoked",
}


class SlackWebClient:
    def __init__(
        self,
        bot_token: str,
        api_base_url: str = "https://slack.com/api",
        timeout_sec: float = 10.0,
        file_timeout_sec: float = 120.0,
    ) -> None:
        self.bot_token = (bot_token or "").strip()
        self.api_base_url = (api_base_url or "https://slack.com/api").rstrip("/")
        self.timeout_sec = float(timeout_sec)
        self.file_timeout_sec = float(file_timeout_sec)

    def open_direct_channel(self, user_id: str) -> str:
        target = (user_id or "").strip()
        if not target:
            raise SlackApiError("user id is empty", status=400)
        data = self._call("conversations.open", {"users": target})
        channel_id = str(data.get("channel", {}).get("id", "") or "").strip()
        if not channel_id:
            raise SlackApiError("conversations.open returned no channel id")
        return channel_id

    def post_message(self, channel_id: str, text: str, blocks: list[dict[str, Any]] | None = None) -> None:
        channel = (channel_id or "").strip()
        if not channel:
            raise SlackApiError("channel id is empty", status=400)
        payload: dict[str, Any] = {"channel": channel, "text": text[:40000]}
        if blocks:
            payload["blocks"] = blocks[:50]
        self._call("chat.postMessage", payload)

    def file_info(self, file_id: str) -> dict[str, Any]:
        target = (file_id or "").strip()
        if not target:
            raise SlackApiError("file id is empty", status=400)
        data = self._call("files.info", {"file": target}, method="GET")
        info = data.get("file", {})
        return info if isinstance(info, dict) else {}

    def download_file(self, url: str, timeout_sec: float | None = None) -> bytes:
        if not self.bot_token:
            raise SlackApiError("slack.bot_token is required", status=401)
        req = request.Request(url=url, method="GET")
        req.add_header("Authorization", f"Bearer {self.bot_token}")
        timeout = float(timeout_sec) if timeout_sec is not None else self.file_timeout_sec
        try:
            with request.urlopen(req, timeout=timeout) as resp:
                content_type = str(resp.headers.get("Content-Type", "") or "")
                content = resp.read()
        except error.HTTPError as exc:
            raise SlackApiError(f"slack file download error: status={exc.code}", status=exc.code) from exc
        except error.URLError as exc:
            raise SlackApiError(f"slack file download connection error: {exc}") from exc
        if content_type.startswith("text/html"):
            # Slack serves its login page instead of the file when the token lacks files:read.
            raise SlackApiError("slack file download returned html; check files:read scope", status=403)
        return content

    def _call(self, api_method: str, payload: dict[str, Any], method: str = "POST") -> dict[str, Any]:
        if not self.bot_token:
            raise SlackApiError("slack.bot_token is required", status=401)
        url = f"{self.api_base_url}/{api_method}"
        if method == "GET":
            url = f"{url}?{parse.urlencode(payload)}"
            req = request.Request(url=url, method="GET")
        else:
            data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
            req = request.Request(url=url, data=data, method="POST")
            req.add_header("Content-Type", "application/json; charset=utf-8")
        req.add_header("Authorization", f"Bearer {self.bot_token}")
        try:
            with request.urlopen(req, timeout=self.timeout_sec) as resp:
                body = resp.read().decode("utf-8", errors="ignore")
        except error.HTTPError as exc:
            body = ""
            try:
                body = exc.read().decode("utf-8", errors="ignore")
            except Exception:
                pass
            raise SlackApiError(f"slack api error: method={api_method} status={exc.code} body={body}", status=exc.code) from exc
        except error.URLError as exc:
            raise SlackApiError(f"slack api connection error: method={api_method} {exc}") from exc

        try:
            data = json.loads(body)
        except Exception as exc:
            raise SlackApiError(f"slack api returned invalid json: method={api_method}") from exc
        if not isinstance(data, dict):
            raise SlackApiError(f"slack api returned unexpected payload: method={api_method}")
        if not data.get("ok", False):
            code = str(data.get("error", "unknown_error"))
            status = 400 if code in CLIENT_ERROR_CODES else None
            if code == "ratelimited":
                status = 429
            raise SlackApiError(f"slack api error: method={api_method} error={code}", status=status, code=code)
        return data
