from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable
from urllib.parse import parse_qs

from core.errors import ValidationError, WorkflowFailure
from intake.conversation_service import ConversationService
from slackbot import message_templates
from slackbot.event_ids import EventDeduper, build_slack_event_id
from slackbot.signature import DEFAULT_TOLERANCE_SEC, verify_slack_signature

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]
HandlerResponse = tuple[int, dict[str, Any], Job | None]

ACCEPTED_MESSAGE_SUBTYPES = {"", "file_share"}


class SlackWebhookHandler:
    """Verifies and parses Slack HTTP callbacks.

    Each ``handle_*`` method answers synchronously with the status and body
    Slack should receive, plus an optional job that carries out the
    conversation work after the acknowledgement.
    """

    def __init__(
        self,
        config: dict[str, Any],
        conversation_service: ConversationService,
        deduper: EventDeduper | None = None,
    ) -> None:
        self.slack_conf = config.get("slack", {})
        self.enabled = bool(self.slack_conf.get("enabled", True))
        self.signing_secret = str(self.slack_conf.get("signing_secret", "") or "").strip()
        self.command = str(self.slack_conf.get("command", "/kb-request") or "/kb-request")
        self.tolerance_sec = float(self.slack_conf.get("signature_tolerance_sec", DEFAULT_TOLERANCE_SEC))
        allowed = self.slack_conf.get("allowed_user_ids", [])
        self.allowed_user_ids = {
            str(user_id).strip()
            for user_id in (allowed if isinstance(allowed, list) else [])
            if str(user_id).strip()
        }
        self.conversation_service = conversation_service
        self.deduper = deduper or EventDeduper()

    def handle_events(self, body: bytes, timestamp: str | None, signature: str | None) -> HandlerResponse:
        rejected = self._reject(body, timestamp, signature)
        if rejected is not None:
            return rejected
        try:
            payload = json.loads(body.decode("utf-8"))
        except Exception:
            return 400, {"ok": False, "error": "invalid json payload"}, None
        if not isinstance(payload, dict):
            return 400, {"ok": False, "error": "payload must be an object"}, None

        payload_type = str(payload.get("type", "") or "")
        if payload_type == "url_verification":
            return 200, {"challenge": str(payload.get("challenge", ""))}, None
        if payload_type != "event_callback":
            return 200, {"ok": True, "skipped": 1}, None

        event_id = build_slack_event_id(payload)
        if event_id and not self.deduper.mark_processed(event_id):
            return 200, {"ok": True, "skipped": 1, "reason": "duplicate"}, None

        event = payload.get("event") or {}
        if not isinstance(event, dict):
            return 400, {"ok": False, "error": "event must be an object"}, None
        job = self._message_job(event)
        if job is None:
            return 200, {"ok": True, "skipped": 1}, None
        return 200, {"ok": True, "handled": 1}, job

    def handle_command(self, body: bytes, timestamp: str | None, signature: str | None) -> HandlerResponse:
        rejected = self._reject(body, timestamp, signature)
        if rejected is not None:
            return rejected
        form = _parse_form(body)
        command = form.get("command", "")
        user_id = form.get("user_id", "").strip()
        if command != self.command:
            return 200, {"response_type": "ephemeral", "text": f"Unknown command {command}"}, None
        if not user_id:
            return 400, {"ok": False, "error": "user_id is required"}, None
        if not self._user_allowed(user_id):
            return 200, {"response_type": "ephemeral", "text": "This bot is not available for your account."}, None

        async def job() -> None:
            await self._run("start", user_id, lambda: self.conversation_service.start(user_id))

        return 200, message_templates.build_dm_opened_message(), job

    def handle_interaction(self, body: bytes, timestamp: str | None, signature: str | None) -> HandlerResponse:
        rejected = self._reject(body, timestamp, signature)
        if rejected is not None:
            return rejected
        form = _parse_form(body)
        try:
            payload = json.loads(form.get("payload", ""))
        except Exception:
            return 400, {"ok": False, "error": "invalid interaction payload"}, None
        if not isinstance(payload, dict) or payload.get("type") != "block_actions":
            return 200, {"ok": True, "skipped": 1}, None

        user_id = str((payload.get("user") or {}).get("id", "") or "").strip()
        action_list = payload.get("actions", [])
        if not user_id or not isinstance(action_list, list) or not action_list:
            return 200, {"ok": True, "skipped": 1}, None
        if not self._user_allowed(user_id):
            return 200, {"ok": True, "skipped": 1}, None

        action = action_list[0] if isinstance(action_list[0], dict) else {}
        action_id = str(action.get("action_id", "") or "")
        value = action.get("value")
        if value is None:
            value = (action.get("selected_option") or {}).get("value")

        async def job() -> None:
            await self._run(
                "action",
                user_id,
                lambda: self.conversation_service.handle_action(user_id, action_id, value),
            )

        return 200, {"ok": True, "handled": 1}, job

    def _message_job(self, event: dict[str, Any]) -> Job | None:
        if str(event.get("type", "") or "") != "message":
            return None
        if str(event.get("channel_type", "") or "") != "im" or event.get("bot_id"):
            return None
        if str(event.get("subtype", "") or "") not in ACCEPTED_MESSAGE_SUBTYPES:
            return None
        user_id = str(event.get("user", "") or "").strip()
        channel_id = str(event.get("channel", "") or "").strip()
        if not user_id or not channel_id or not self._user_allowed(user_id):
            return None

        text = str(event.get("text", "") or "")
        raw_files = event.get("files", [])
        files = [
            str(item.get("id", "") or "").strip()
            for item in (raw_files if isinstance(raw_files, list) else [])
            if isinstance(item, dict) and str(item.get("id", "") or "").strip()
        ]

        async def job() -> None:
            await self._run(
                "message",
                user_id,
                lambda: self.conversation_service.handle_message(user_id, channel_id, text, files),
            )

        return job

    async def _run(self, kind: str, user_id: str, operation: Callable[[], Awaitable[Any]]) -> None:
        try:
            await operation()
        except (ValidationError, WorkflowFailure) as exc:
            logger.warning("slack-%s-failed user_id=%s error=%s", kind, user_id, exc)
        except Exception:  # noqa: BLE001
            logger.exception("slack-%s-crashed user_id=%s", kind, user_id)

    def _reject(self, body: bytes, timestamp: str | None, signature: str | None) -> HandlerResponse | None:
        if not self.enabled:
            return 503, {"ok": False, "error": "slack.enabled is false"}, None
        if not verify_slack_signature(
            self.signing_secret,
            body,
            timestamp,
            signature,
            tolerance_sec=self.tolerance_sec,
        ):
            return 401, {"ok": False, "error": "invalid signature"}, None
        return None

    def _user_allowed(self, user_id: str) -> bool:
        return not self.allowed_user_ids or user_id in self.allowed_user_ids


def _parse_form(body: bytes) -> dict[str, str]:
    parsed = parse_qs(body.decode("utf-8", errors="ignore"), keep_blank_values=True)
    output: dict[str, str] = {}
    for key, values in parsed.items():
        if not values:
            continue
        output[key] = values[0]
    return output
