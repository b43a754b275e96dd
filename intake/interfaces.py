from __future__ import annotations

from typing import Any, Protocol

from core.models import BoardItem


class MessengerProtocol(Protocol):
    def open_direct_channel(self, user_id: str) -> str: ...

    def post_message(self, channel_id: str, text: str, blocks: list[dict[str, Any]] | None = None) -> None: ...


class FileSourceProtocol(Protocol):
    def file_info(self, file_id: str) -> dict[str, Any]: ...

    def download_file(self, url: str, timeout_sec: float | None = None) -> bytes: ...


class EnrichmentClientProtocol(Protocol):
    enabled: bool

    def run(self, message: str, user_id: str) -> dict[str, Any]: ...

    def ping(self) -> dict[str, Any]: ...


class BoardClientProtocol(Protocol):
    def create_item(self, item_name: str, fields: dict[str, Any]) -> BoardItem: ...

    def add_file_to_column(self, item_id: str, filename: str, content: bytes, mime_type: str | None = None) -> str: ...

    def ping(self) -> dict[str, Any]: ...
