from __future__ import annotations

import asyncio
import logging
from typing import Any

from core.enums import DEFAULT_URGENCY, FieldName
from core.errors import FileAttachmentError
from core.models import Session, SubmissionResult
from intake.error_policy import RetryPolicy, SleepFunc, call_external
from intake.interfaces import BoardClientProtocol, EnrichmentClientProtocol, FileSourceProtocol
from intake.session_store import SessionStore
from intake.validator import validate_request

logger = logging.getLogger(__name__)

ENRICHMENT_SERVICE = "AI Workflow Service"
BOARD_SERVICE = "Board API"
FILE_SERVICE = "Slack Files"


def build_enrichment_message(validated: dict[str, Any]) -> str:
    parts = [
        f"Subject: {validated[FieldName.SUBJECT]}",
        f"Product: {validated[FieldName.PRODUCT]}",
        f"Description: {validated[FieldName.DESCRIPTION]}",
    ]
    if validated.get(FieldName.KB_URLS):
        parts.append(f"KB URLs: {validated[FieldName.KB_URLS]}")
    if validated.get(FieldName.SUPPORTING_MATERIALS):
        parts.append(f"Supporting Materials: {validated[FieldName.SUPPORTING_MATERIALS]}")
    return "\n\n".join(parts)


def merge_result(
    validated: dict[str, Any],
    outputs: dict[str, Any] | None,
    user_id: str,
    enrichment_enabled: bool,
) -> SubmissionResult:
    """Combine validated answers with enrichment outputs.

    Any enrichment field that is missing or empty falls back to the user's
    answer or a fixed default.
    """
    data = outputs if isinstance(outputs, dict) else {}

    def pick(key: str, fallback: str) -> str:
        value = data.get(key)
        text = str(value).strip() if value is not None else ""
        return text or fallback

    return SubmissionResult(
        subject=validated[FieldName.SUBJECT],
        task_type=validated[FieldName.TASK_TYPE],
        priority=validated[FieldName.PRIORITY],
        product=validated[FieldName.PRODUCT],
        description=validated[FieldName.DESCRIPTION],
        kb_urls=validated.get(FieldName.KB_URLS, ""),
        supporting_materials=validated.get(FieldName.SUPPORTING_MATERIALS, ""),
        files=list(validated.get(FieldName.FILES, [])),
        user_id=user_id,
        article_link=pick("article_link", validated.get(FieldName.KB_URLS, "")),
        request_type=pick("request_type", validated[FieldName.TASK_TYPE]),
        urgency_level=pick("urgency_level", DEFAULT_URGENCY),
        feature_name=pick("feature_name", validated[FieldName.SUBJECT]),
        change_description=pick("change_description", validated[FieldName.DESCRIPTION]),
        enrichment_enabled=enrichment_enabled,
        enrichment_succeeded=outputs is not None,
    )


class SubmissionOrchestrator:
    def __init__(
        self,
        enrichment: EnrichmentClientProtocol,
        board: BoardClientProtocol,
        file_source: FileSourceProtocol,
        store: SessionStore,
        retry_policy: RetryPolicy | None = None,
        file_timeout_sec: float = 120.0,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.enrichment = enrichment
        self.board = board
        self.file_source = file_source
        self.store = store
        self.retry_policy = retry_policy or RetryPolicy()
        self.file_timeout_sec = float(file_timeout_sec)
        self._sleep = sleep

    async def submit(self, session: Session) -> SubmissionResult:
        user_id = session.user_id
        validated = validate_request(session.data)
        result = await self._enrich(validated, user_id)

        item_name = result.subject
        board_fields = result.to_dict()
        item = await call_external(
            lambda: self.board.create_item(item_name, board_fields),
            BOARD_SERVICE,
            self.retry_policy,
            context={"user_id": user_id},
            sleep=self._sleep,
        )
        result.item_id = item.item_id
        result.item_url = item.url
        logger.info("board-item-created user_id=%s item_id=%s", user_id, item.item_id)

        await self._attach_files(result)
        self.store.destroy(user_id)
        logger.info(
            "submission-completed user_id=%s item_id=%s files=%d failed_files=%d degraded=%s",
            user_id,
            result.item_id,
            len(result.attached_files),
            len(result.failed_files),
            result.degraded,
        )
        return result

    async def _enrich(self, validated: dict[str, Any], user_id: str) -> SubmissionResult:
        enabled = bool(getattr(self.enrichment, "enabled", True))
        if not enabled:
            logger.info("enrichment-disabled user_id=%s", user_id)
            return merge_result(validated, None, user_id, enrichment_enabled=False)

        message = build_enrichment_message(validated)
        try:
            outputs = await call_external(
                lambda: self.enrichment.run(message, user_id),
                ENRICHMENT_SERVICE,
                self.retry_policy,
                context={"user_id": user_id},
                sleep=self._sleep,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("enrichment-degraded user_id=%s error_type=%s error=%s", user_id, type(exc).__name__, exc)
            return merge_result(validated, None, user_id, enrichment_enabled=True)
        if not isinstance(outputs, dict):
            logger.warning("enrichment-degraded user_id=%s error=outputs missing", user_id)
            outputs = None
        return merge_result(validated, outputs, user_id, enrichment_enabled=True)

    async def _attach_files(self, result: SubmissionResult) -> None:
        if not result.item_id:
            return
        for file_id in result.files:
            try:
                await self._attach_file(result.item_id, file_id, result.user_id)
            except FileAttachmentError as exc:
                logger.warning(
                    "file-attach-failed user_id=%s item_id=%s file_id=%s reason=%s",
                    result.user_id,
                    result.item_id,
                    exc.file_id,
                    exc.reason,
                )
                result.failed_files[file_id] = exc.reason
                continue
            result.attached_files.append(file_id)

    async def _attach_file(self, item_id: str, file_id: str, user_id: str) -> None:
        context = {"user_id": user_id, "file_id": file_id}
        try:
            info = await call_external(
                lambda: self.file_source.file_info(file_id),
                FILE_SERVICE,
                self.retry_policy,
                context=context,
                sleep=self._sleep,
            )
            url = str(info.get("url_private_download") or info.get("url_private") or "").strip()
            if not url:
                raise FileAttachmentError(file_id, "file has no download url")
            filename = str(info.get("name") or info.get("title") or file_id)
            mime_type = info.get("mimetype")
            content = await call_external(
                lambda: self.file_source.download_file(url, self.file_timeout_sec),
                FILE_SERVICE,
                self.retry_policy,
                context=context,
                sleep=self._sleep,
            )
            await call_external(
                lambda: self.board.add_file_to_column(item_id, filename, content, mime_type),
                BOARD_SERVICE,
                self.retry_policy,
                context=context,
                sleep=self._sleep,
            )
        except FileAttachmentError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise FileAttachmentError(file_id, str(exc) or type(exc).__name__) from exc
