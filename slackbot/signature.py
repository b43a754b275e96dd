from __future__ import annotations

import hashlib
import hmac
import time

SIGNATURE_VERSION = "v0"
DEFAULT_TOLERANCE_SEC = 5 * 60


def compute_slack_signature(signing_secret: str, timestamp: str, body: bytes) -> str:
    base = f"{SIGNATURE_VERSION}:{timestamp}:".encode("utf-8") + body
    digest = hmac.new(signing_secret.encode("utf-8"), base, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def verify_slack_signature(
    signing_secret: str,
    body: bytes,
    timestamp: str | None,
    signature: str | None,
    tolerance_sec: float = DEFAULT_TOLERANCE_SEC,
    now: float | None = None,
) -> bool:
    secret = (signing_secret or "").strip()
    received = (signature or "").strip()
    ts = (timestamp or "").strip()
    if not secret or not received or not ts:
        return False

    try:
        ts_value = int(ts)
    except ValueError:
        return False
    current = time.time() if now is None else now
    if abs(current - ts_value) > tolerance_sec:
        return False

    expected = compute_slack_signature(secret, ts, body)
    return hmac.compare_digest(expected, received)
