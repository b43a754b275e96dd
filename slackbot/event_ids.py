from __future__ import annotations

import time
from collections import OrderedDict
from typing import Any, Callable


def build_slack_event_id(envelope: dict[str, Any]) -> str:
    event_id = str(envelope.get("event_id", "") or "").strip()
    if event_id:
        return event_id
    event = envelope.get("event", {})
    if not isinstance(event, dict):
        return ""
    channel = str(event.get("channel", "") or "").strip()
    ts = str(event.get("event_ts", "") or event.get("ts", "") or "").strip()
    event_type = str(event.get("type", "") or "").strip()
    return ":".join(part for part in (event_type, channel, ts) if part)


class EventDeduper:
    """Remembers recently seen event ids so Slack retries are handled once."""

    def __init__(
        self,
        ttl_sec: float = 60 * 60,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_sec = float(ttl_sec)
        self.max_entries = max(1, int(max_entries))
        self._clock = clock
        self._seen: OrderedDict[str, float] = OrderedDict()

    def mark_processed(self, event_id: str) -> bool:
        now = self._clock()
        self._evict(now)
        if event_id in self._seen:
            return False
        self._seen[event_id] = now
        while len(self._seen) > self.max_entries:
            self._seen.popitem(last=False)
        return True

    def _evict(self, now: float) -> None:
        threshold = now - self.ttl_sec
        while self._seen:
            oldest_id, seen_at = next(iter(self._seen.items()))
            if seen_at >= threshold:
                break
            self._seen.pop(oldest_id)
