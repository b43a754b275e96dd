from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable

from core.enums import FieldName, InputKind, Step
from core.errors import ValidationError
from core.models import Answer, Session, SubmissionResult
from intake import state_machine
from intake.error_policy import ErrorPolicy
from intake.interfaces import MessengerProtocol
from intake.session_store import SessionStore
from intake.submission import SubmissionOrchestrator
from intake.validator import (
    is_none_sentinel,
    validate_field,
    validate_file_reference_list,
    validate_identifier_format,
)
from slackbot import message_templates
from slackbot.blocks import parse_action_id

logger = logging.getLogger(__name__)


class ConversationService:
    """Turn-by-turn driver of the KB request conversation.

    Each inbound event becomes an ``Answer``; the transition table in
    ``intake.state_machine`` decides which field it fills and where the
    conversation goes next.
    """

    def __init__(
        self,
        store: SessionStore,
        messenger: MessengerProtocol,
        orchestrator: SubmissionOrchestrator,
        error_policy: ErrorPolicy | None = None,
        command: str = "/kb-request",
    ) -> None:
        self.store = store
        self.messenger = messenger
        self.orchestrator = orchestrator
        self.command = command
        self.error_policy = error_policy or ErrorPolicy(store, messenger, command=command)
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    async def start(self, user_id: str) -> Session:
        async def operation() -> Session:
            checked = validate_identifier_format(user_id)
            channel_id = await asyncio.to_thread(self.messenger.open_direct_channel, checked)
            session = self.store.create(checked, channel_id=channel_id, step=Step.START)
            next_step = state_machine.next_step(Step.START, session.data)
            self.store.update(checked, step=next_step)
            await self._post(channel_id, message_templates.build_welcome_message(session.data))
            return session

        async with self._user_lock(user_id):
            return await self.error_policy.guard(user_id, operation)

    async def handle_message(
        self,
        user_id: str,
        channel_id: str,
        text: str | None,
        files: Iterable[str] | None = None,
    ) -> bool:
        session = self.store.get(user_id)
        if session is None:
            self._discard_lock(user_id)
            return False
        if session.channel_id != channel_id:
            return False

        normalized = (text or "").strip()
        file_ids = tuple(str(item) for item in (files or ()) if item)
        lowered = normalized.lower()
        if lowered == message_templates.CANCEL_TEXT:
            return await self.cancel(user_id)
        if lowered == message_templates.SUBMIT_TEXT and not file_ids:
            answer = Answer(kind=InputKind.SUBMIT)
        elif file_ids and session.step in state_machine.FILE_STEPS:
            answer = Answer(kind=InputKind.FILES, files=file_ids)
        elif session.step in state_machine.OPTIONAL_STEPS and is_none_sentinel(normalized):
            answer = Answer(kind=InputKind.SKIP)
        elif session.step == Step.FILES and (lowered == message_templates.DONE_TEXT or is_none_sentinel(normalized)):
            answer = Answer(kind=InputKind.SKIP)
        elif file_ids and not normalized:
            answer = Answer(kind=InputKind.FILES, files=file_ids)
        else:
            answer = Answer(kind=InputKind.TEXT, value=normalized)
        return await self.handle_answer(user_id, answer)

    async def handle_action(self, user_id: str, action: str, value: str | None) -> bool:
        parsed = parse_action_id(action)
        if parsed is None:
            return False
        kind, step_token = parsed
        step: Step | None = None
        if step_token:
            try:
                step = Step(step_token)
            except ValueError:
                return False

        if kind == "cancel":
            return await self.cancel(user_id)
        if kind == "submit":
            return await self.handle_answer(user_id, Answer(kind=InputKind.SUBMIT))
        if kind == "select":
            return await self.handle_answer(user_id, Answer(kind=InputKind.SELECTION, value=str(value or ""), step=step))
        if kind == "skip":
            return await self.handle_answer(user_id, Answer(kind=InputKind.SKIP, step=step))
        return False

    async def handle_answer(self, user_id: str, answer: Answer) -> bool:
        async with self._user_lock(user_id):
            session = self.store.get(user_id)
            if session is None:
                return False
            if answer.step is not None and answer.step != session.step:
                logger.info(
                    "answer-ignored user_id=%s reason=step_mismatch current=%s claimed=%s",
                    user_id,
                    session.step.value,
                    answer.step.value,
                )
                return False
            if not state_machine.has_handler(session.step):
                logger.info("answer-ignored user_id=%s reason=inert_step step=%s", user_id, session.step.value)
                return False

            channel_id = session.channel_id
            if answer.kind == InputKind.SUBMIT:
                return await self.error_policy.guard(
                    user_id,
                    lambda: self._submit(session),
                    channel_id=channel_id,
                )
            return await self.error_policy.guard(
                user_id,
                lambda: self._apply(session, answer),
                channel_id=channel_id,
            )

    async def cancel(self, user_id: str) -> bool:
        session = self.store.get(user_id)
        if session is None:
            return False
        self.store.destroy(user_id)
        self._discard_lock(user_id)
        await self._post(session.channel_id, message_templates.build_cancelled_message(self.command))
        return True

    async def _apply(self, session: Session, answer: Answer) -> bool:
        step = session.step
        transition = state_machine.transition_for(step, answer.kind)
        if transition is None:
            await self._post(
                session.channel_id,
                message_templates.build_unexpected_input_message(step, session.data, self._can_submit(session)),
            )
            return False

        updates: dict[str, Any] = {}
        if transition.field is not None:
            try:
                updates[transition.field] = self._validated_value(session, transition.field, answer, transition.append)
            except ValidationError as exc:
                logger.info("answer-rejected user_id=%s step=%s field=%s error=%s", session.user_id, step.value, exc.field, exc)
                await self._post(
                    session.channel_id,
                    message_templates.build_invalid_answer_message(
                        exc.message, step, session.data, self._can_submit(session)
                    ),
                )
                return False

        if not transition.advance:
            self.store.update(session.user_id, data=updates)
            if transition.append:
                total = len(updates.get(FieldName.FILES, []))
                await self._post(
                    session.channel_id,
                    message_templates.build_files_captured_message(len(answer.files), total),
                )
            return True

        merged = {**session.data, **updates}
        target = state_machine.next_step(step, merged)
        self.store.update(session.user_id, step=target, data=updates)
        logger.info("step-advanced user_id=%s from=%s to=%s", session.user_id, step.value, target.value)
        await self._post(
            session.channel_id,
            message_templates.build_step_prompt(target, merged, state_machine.can_submit(target, merged)),
        )
        return True

    async def _submit(self, session: Session) -> bool:
        if not self._can_submit(session):
            await self._post(
                session.channel_id,
                message_templates.build_unexpected_input_message(session.step, session.data, False),
            )
            return False
        await self._post(session.channel_id, message_templates.build_submitting_message())
        result: SubmissionResult = await self.orchestrator.submit(session)
        await self._post(session.channel_id, message_templates.build_submitted_message(result))
        return True

    @staticmethod
    def _validated_value(session: Session, field: str, answer: Answer, append: bool) -> Any:
        if field == FieldName.FILES:
            incoming = validate_file_reference_list(list(answer.files))
            if not append:
                return incoming
            existing = list(session.data.get(FieldName.FILES) or [])
            return existing + [file_id for file_id in incoming if file_id not in existing]
        if answer.kind == InputKind.SKIP:
            return ""
        return validate_field(field, answer.value)

    @staticmethod
    def _can_submit(session: Session) -> bool:
        return state_machine.can_submit(session.step, session.data)

    async def _post(self, channel_id: str, messages: list[dict[str, Any]]) -> None:
        for item in messages:
            await asyncio.to_thread(self.messenger.post_message, channel_id, item["text"], item.get("blocks"))

    @asynccontextmanager
    async def _user_lock(self, user_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            self._discard_lock(user_id)

    def _discard_lock(self, user_id: str) -> None:
        # waiters still hold a reference, so only idle locks of ended sessions go
        if self._lock_users.get(user_id, 0) > 0 or user_id in self.store:
            return
        self._locks.pop(user_id, None)
        self._lock_users.pop(user_id, None)
