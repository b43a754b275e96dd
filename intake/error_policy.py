from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, RetryError, retry_if_exception, stop_after_attempt, wait_exponential

from core.errors import (
    ExternalApiError,
    IncompleteRequest,
    ServiceUnavailable,
    ValidationError,
    WorkflowFailure,
)
from intake.interfaces import MessengerProtocol
from intake.session_store import SessionStore
from slackbot import message_templates

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


def is_retryable_error(exc: BaseException) -> bool:
    if isinstance(exc, (ValidationError, IncompleteRequest)):
        return False
    if isinstance(exc, ExternalApiError):
        return not exc.is_client_error
    return True


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_sec: float = 1.0
    max_delay_sec: float = 30.0
    is_retryable: Callable[[BaseException], bool] = field(default=is_retryable_error)

    @classmethod
    def from_config(cls, retry_conf: dict[str, Any]) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, int(retry_conf.get("max_attempts", 3))),
            base_delay_sec=max(0.0, float(retry_conf.get("base_delay_sec", 1.0))),
            max_delay_sec=max(0.0, float(retry_conf.get("max_delay_sec", 30.0))),
        )

    def delay_for(self, attempt: int) -> float:
        return min(self.max_delay_sec, self.base_delay_sec * 2 ** (attempt - 1))


async def call_external(
    operation: Callable[[], T],
    service_name: str,
    policy: RetryPolicy | None = None,
    *,
    context: dict[str, Any] | None = None,
    sleep: SleepFunc = asyncio.sleep,
) -> T:
    """Run a blocking client call off the event loop with bounded retry.

    Client-input failures are raised after the first attempt. Anything else
    is retried with exponential backoff and reported as ``ServiceUnavailable``
    once ``policy.max_attempts`` attempts have failed.
    """
    resolved = policy or RetryPolicy()
    extra = " ".join(f"{key}={value}" for key, value in (context or {}).items())
    retrying = AsyncRetrying(
        stop=stop_after_attempt(resolved.max_attempts),
        wait=wait_exponential(multiplier=resolved.base_delay_sec, max=resolved.max_delay_sec),
        retry=retry_if_exception(resolved.is_retryable),
        sleep=sleep,
    )
    try:
        async for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                try:
                    return await asyncio.to_thread(operation)
                except Exception as exc:
                    logger.warning(
                        "external-call-failed service=%s attempt=%d max_attempts=%d status=%s error=%s %s",
                        service_name,
                        number,
                        resolved.max_attempts,
                        getattr(exc, "status", None),
                        exc,
                        extra,
                    )
                    raise
    except RetryError as exc:
        last = exc.last_attempt.exception()
        raise ServiceUnavailable(service_name, resolved.max_attempts) from last
    raise ServiceUnavailable(service_name, resolved.max_attempts)


def retrying(service_name: str, policy: RetryPolicy | None = None) -> Callable[[Callable[..., T]], Callable[..., Awaitable[T]]]:
    """Decorator form of ``call_external`` for blocking client methods."""

    def decorator(func: Callable[..., T]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await call_external(functools.partial(func, *args, **kwargs), service_name, policy)

        return wrapper

    return decorator


class ErrorPolicy:
    """Failure boundary around one user-facing conversation step."""

    def __init__(self, store: SessionStore, messenger: MessengerProtocol, command: str = "/kb-request") -> None:
        self.store = store
        self.messenger = messenger
        self.command = command

    async def guard(
        self,
        user_id: str,
        operation: Callable[[], Awaitable[T]],
        *,
        channel_id: str | None = None,
    ) -> T:
        try:
            return await operation()
        except Exception as exc:
            session = self.store.get(user_id)
            channel = channel_id or (session.channel_id if session is not None else None)
            logger.error(
                "step-failed user_id=%s channel_id=%s error_type=%s error=%s",
                user_id,
                channel,
                type(exc).__name__,
                exc,
                exc_info=not isinstance(exc, (ValidationError, IncompleteRequest, ServiceUnavailable)),
            )
            self.store.destroy(user_id)
            await self._notify(channel, self._user_message(exc))
            if isinstance(exc, ValidationError):
                raise
            raise WorkflowFailure(f"conversation step failed for {user_id}") from exc

    def _user_message(self, exc: Exception) -> dict[str, Any]:
        if isinstance(exc, ValidationError):
            return message_templates.build_validation_restart_message(exc.message, self.command)
        if isinstance(exc, IncompleteRequest):
            return message_templates.build_validation_restart_message(str(exc), self.command)
        if isinstance(exc, ServiceUnavailable):
            return message_templates.build_service_unavailable_message(self.command)
        return message_templates.build_generic_error_message(self.command)

    async def _notify(self, channel_id: str | None, message: dict[str, Any]) -> None:
        if not channel_id:
            return
        try:
            await asyncio.to_thread(
                self.messenger.post_message,
                channel_id,
                message["text"],
                message.get("blocks"),
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("error-notify-failed channel_id=%s error=%s", channel_id, exc)
