from __future__ import annotations

from asyncio import TimerHandle
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from core.enums import InputKind, Step


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _serialize(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value):
        return {k: _serialize(v) for k, v in asdict(value).items()}
    if isinstance(value, tuple):
        return [_serialize(v) for v in value]
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


@dataclass(slots=True)
class Session:
    user_id: str
    channel_id: str
    step: Step
    data: dict[str, Any]
    created_at: float
    last_activity_at: float
    expiry_handle: Optional[TimerHandle] = field(default=None, repr=False, compare=False)

    def idle_seconds(self, now: float) -> float:
        return max(0.0, now - self.last_activity_at)


@dataclass(slots=True, frozen=True)
class Answer:
    kind: InputKind
    value: str = ""
    files: tuple[str, ...] = ()
    # Step the answer source addresses; None for free-text messages.
    step: Optional[Step] = None


@dataclass(slots=True)
class BoardItem:
    item_id: str
    url: str


@dataclass(slots=True)
class SubmissionResult:
    subject: str
    task_type: str
    priority: str
    product: str
    description: str
    kb_urls: str
    supporting_materials: str
    files: list[str]
    user_id: str

    article_link: str
    request_type: str
    urgency_level: str
    feature_name: str
    change_description: str

    enrichment_enabled: bool
    enrichment_succeeded: bool
    processed_at: str = field(default_factory=utc_now_iso)

    item_id: str | None = None
    item_url: str | None = None
    attached_files: list[str] = field(default_factory=list)
    failed_files: dict[str, str] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return not self.enrichment_succeeded

    def to_dict(self) -> dict[str, Any]:
        payload = _serialize(self)
        payload["degraded"] = self.degraded
        return payload
