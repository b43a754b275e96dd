from __future__ import annotations

import unittest
from typing import Any

from core.errors import ExternalApiError, ServiceUnavailable, ValidationError, WorkflowFailure
from intake.error_policy import ErrorPolicy, RetryPolicy, call_external, is_retryable_error, retrying
from intake.session_store import SessionStore


class _DummyMessenger:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.posts: list[tuple[str, str, Any]] = []

    def open_direct_channel(self, user_id: str) -> str:
        return f"D-{user_id}"

    def post_message(self, channel_id: str, text: str, blocks: Any = None) -> dict[str, Any]:
        if self.fail:
            raise RuntimeError("slack down")
        self.posts.append((channel_id, text, blocks))
        return {"ok": True}


class _FlakyOperation:
    def __init__(self, errors: list[Exception], result: Any = "ok") -> None:
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    def __call__(self) -> Any:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RetryPolicyTest(unittest.TestCase):
    def test_delays_double_and_are_capped(self) -> None:
        policy = RetryPolicy(max_attempts=6, base_delay_sec=1.0, max_delay_sec=5.0)
        self.assertEqual([policy.delay_for(n) for n in range(1, 5)], [1.0, 2.0, 4.0, 5.0])

    def test_from_config_clamps_values(self) -> None:
        policy = RetryPolicy.from_config({"max_attempts": 0, "base_delay_sec": -1})
        self.assertEqual(policy.max_attempts, 1)
        self.assertEqual(policy.base_delay_sec, 0.0)

    def test_retryable_classification(self) -> None:
        self.assertFalse(is_retryable_error(ValidationError("Subject", "bad")))
        self.assertFalse(is_retryable_error(ExternalApiError("Board API", "bad request", status=400)))
        self.assertTrue(is_retryable_error(ExternalApiError("Board API", "rate limited", status=429)))
        self.assertTrue(is_retryable_error(ExternalApiError("Board API", "oops", status=503)))
        self.assertTrue(is_retryable_error(ExternalApiError("Board API", "timeout")))
        self.assertTrue(is_retryable_error(ConnectionError("reset")))


class CallExternalTest(unittest.IsolatedAsyncioTestCase):
    async def test_exhausted_retries_raise_service_unavailable(self) -> None:
        sleep = _RecordingSleep()
        operation = _FlakyOperation([ExternalApiError("Board API", "down", status=503)] * 3)

        with self.assertRaises(ServiceUnavailable) as ctx:
            await call_external(operation, "Board API", RetryPolicy(max_attempts=3), sleep=sleep)

        self.assertEqual(operation.calls, 3)
        self.assertEqual(sleep.delays, [1.0, 2.0])
        self.assertEqual(str(ctx.exception), "Board API service unavailable after 3 attempts")
        self.assertIsInstance(ctx.exception.__cause__, ExternalApiError)

    async def test_client_error_is_not_retried(self) -> None:
        sleep = _RecordingSleep()
        operation = _FlakyOperation([ExternalApiError("Board API", "invalid column", status=400)])

        with self.assertRaises(ExternalApiError):
            await call_external(operation, "Board API", RetryPolicy(max_attempts=3), sleep=sleep)

        self.assertEqual(operation.calls, 1)
        self.assertEqual(sleep.delays, [])

    async def test_recovers_after_transient_failure(self) -> None:
        sleep = _RecordingSleep()
        operation = _FlakyOperation([TimeoutError("slow")], result={"id": "1"})

        result = await call_external(operation, "AI Workflow Service", RetryPolicy(), sleep=sleep)

        self.assertEqual(result, {"id": "1"})
        self.assertEqual(operation.calls, 2)
        self.assertEqual(sleep.delays, [1.0])

    async def test_retrying_decorator_wraps_blocking_call(self) -> None:
        calls: list[tuple[int, int]] = []

        @retrying("Adder", RetryPolicy(max_attempts=1))
        def add(a: int, b: int) -> int:
            calls.append((a, b))
            return a + b

        self.assertEqual(await add(2, 3), 5)
        self.assertEqual(calls, [(2, 3)])


class ErrorPolicyGuardTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.store = SessionStore()
        self.messenger = _DummyMessenger()
        self.policy = ErrorPolicy(self.store, self.messenger, command="/kb-request")
        self.store.create("U1", channel_id="D1")

    async def test_success_passes_through(self) -> None:
        async def operation() -> str:
            return "done"

        self.assertEqual(await self.policy.guard("U1", operation), "done")
        self.assertIn("U1", self.store)
        self.assertEqual(self.messenger.posts, [])

    async def test_validation_error_destroys_session_and_is_reraised(self) -> None:
        async def operation() -> None:
            raise ValidationError("User ID", "User ID has invalid format")

        with self.assertRaises(ValidationError):
            await self.policy.guard("U1", operation)

        self.assertNotIn("U1", self.store)
        channel, text, _ = self.messenger.posts[0]
        self.assertEqual(channel, "D1")
        self.assertIn("User ID has invalid format", text)
        self.assertIn("/kb-request", text)

    async def test_service_unavailable_becomes_workflow_failure(self) -> None:
        async def operation() -> None:
            raise ServiceUnavailable("Board API", 3)

        with self.assertRaises(WorkflowFailure) as ctx:
            await self.policy.guard("U1", operation)

        self.assertIsInstance(ctx.exception.__cause__, ServiceUnavailable)
        self.assertNotIn("U1", self.store)
        self.assertIn("temporarily unavailable", self.messenger.posts[0][1])

    async def test_unexpected_error_gets_generic_message(self) -> None:
        async def operation() -> None:
            raise KeyError("boom")

        with self.assertRaises(WorkflowFailure):
            await self.policy.guard("U1", operation, channel_id="D9")

        self.assertEqual(self.messenger.posts[0][0], "D9")
        self.assertIn("something went wrong", self.messenger.posts[0][1])

    async def test_notification_failure_does_not_mask_error(self) -> None:
        policy = ErrorPolicy(self.store, _DummyMessenger(fail=True))

        async def operation() -> None:
            raise RuntimeError("boom")

        with self.assertRaises(WorkflowFailure):
            await policy.guard("U1", operation)
        self.assertNotIn("U1", self.store)


if __name__ == "__main__":
    unittest.main()
