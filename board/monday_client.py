from __future__ import annotations

import html
import json
import mimetypes
import re
from typing import Any
from urllib import error, request
from uuid import uuid4

from core.errors import ExternalApiError
from core.models import BoardItem

SERVICE_NAME = "board"

CREATE_ITEM_MUTATION = """
mutation ($boardId: ID!, $itemName: String!, $columnValues: JSON!) {
  create_item(board_id: $boardId, item_name: $itemName, column_values: $columnValues) {
    id
  }
}
""".strip()

ADD_FILE_MUTATION = """
mutation ($itemId: ID!, $columnId: String!, $file: File!) {
  add_file_to_column(item_id: $itemId, column_id: $columnId, file: $file) {
    id
  }
}
""".strip()

PING_QUERY = "query { me { id } }"

# GraphQL error codes that are worth retrying; everything else is a bad request.
RETRYABLE_ERROR_CODES = {
    "ComplexityException",
    "RateLimitExceeded",
    "ResourceLockedException",
    "INTERNAL_SERVER_ERROR",
}

_URL_RE = re.compile(r"https?://\S+", re.IGNORECASE)


class MondayApiError(ExternalApiError):
    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(SERVICE_NAME, message, status)


def build_column_values(fields: dict[str, Any], columns: dict[str, Any]) -> dict[str, Any]:
    """Map request fields to monday column values using the configured columns.

    ``columns`` maps a field name to ``{"id": <column id>, "type": <column type>}``.
    Empty values are left out so the board keeps its column defaults.
    """
    values: dict[str, Any] = {}
    for field_name, column_conf in columns.items():
        if not isinstance(column_conf, dict):
            continue
        column_id = str(column_conf.get("id", "") or "").strip()
        column_type = str(column_conf.get("type", "text") or "text").strip().lower()
        raw = fields.get(field_name)
        if not column_id or raw in (None, "", []):
            continue
        text = ", ".join(str(item) for item in raw) if isinstance(raw, list) else str(raw)
        if column_type == "long_text":
            values[column_id] = {"text": text}
        elif column_type in {"status", "color"}:
            values[column_id] = {"label": text}
        elif column_type == "dropdown":
            values[column_id] = {"labels": [text]}
        elif column_type == "link":
            match = _URL_RE.search(html.unescape(text))
            if match is None:
                continue
            values[column_id] = {"url": match.group(0), "text": str(column_conf.get("label", "KB Article"))}
        elif column_type == "date":
            values[column_id] = {"date": text[:10]}
        else:
            values[column_id] = text
    return values


class MondayClient:
    def __init__(
        self,
        api_token: str,
        board_id: str | int | None,
        columns: dict[str, Any] | None = None,
        files_column_id: str = "files",
        api_url: str = "https://api.monday.com/v2",
        file_api_url: str = "https://api.monday.com/v2/file",
        api_version: str | None = None,
        item_url_template: str = "https://monday.com/boards/{board_id}/pulses/{item_id}",
        timeout_sec: float = 30.0,
        file_timeout_sec: float = 120.0,
    ) -> None:
        self.api_token = (api_token or "").strip()
        self.board_id = str(board_id or "").strip()
        self.columns = dict(columns or {})
        self.files_column_id = (files_column_id or "files").strip()
        self.api_url = api_url.rstrip("/")
        self.file_api_url = file_api_url.rstrip("/")
        self.api_version = (api_version or "").strip()
        self.item_url_template = item_url_template
        self.timeout_sec = float(timeout_sec)
        self.file_timeout_sec = float(file_timeout_sec)

    def create_item(self, item_name: str, fields: dict[str, Any]) -> BoardItem:
        if not self.board_id:
            raise MondayApiError("board.board_id is required", status=400)
        name = (item_name or "").strip() or "KB Request"
        column_values = build_column_values(fields, self.columns)
        data = self._graphql(
            CREATE_ITEM_MUTATION,
            {
                "boardId": self.board_id,
                "itemName": name[:255],
                "columnValues": json.dumps(column_values, ensure_ascii=False),
            },
        )
        item_id = str(data.get("create_item", {}).get("id", "") or "").strip()
        if not item_id:
            raise MondayApiError("create_item returned no id")
        url = self.item_url_template.format(board_id=self.board_id, item_id=item_id)
        return BoardItem(item_id=item_id, url=url)

    def add_file_to_column(
        self,
        item_id: str,
        filename: str,
        content: bytes,
        mime_type: str | None = None,
    ) -> str:
        if not content:
            raise MondayApiError(f"file {filename} is empty", status=400)
        resolved_type = mime_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
        body, content_type = encode_multipart(
            fields={
                "query": ADD_FILE_MUTATION,
                "variables": json.dumps({"itemId": str(item_id), "columnId": self.files_column_id}),
                "map": json.dumps({"file": "variables.file"}),
            },
            files=[("file", filename, content, resolved_type)],
        )
        req = request.Request(url=self.file_api_url, data=body, method="POST")
        req.add_header("Content-Type", content_type)
        parsed = self._send(req, self.file_timeout_sec)
        asset_id = str(parsed.get("add_file_to_column", {}).get("id", "") or "").strip()
        if not asset_id:
            raise MondayApiError("add_file_to_column returned no id")
        return asset_id

    def ping(self) -> dict[str, Any]:
        try:
            self._graphql(PING_QUERY, {})
        except MondayApiError as exc:
            return {"status": "unhealthy", "error": str(exc)}
        return {"status": "healthy"}

    def _graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        payload = json.dumps({"query": query, "variables": variables}, ensure_ascii=False).encode("utf-8")
        req = request.Request(url=self.api_url, data=payload, method="POST")
        req.add_header("Content-Type", "application/json; charset=utf-8")
        return self._send(req, self.timeout_sec)

    def _send(self, req: request.Request, timeout_sec: float) -> dict[str, Any]:
        if not self.api_token:
            raise MondayApiError("board.api_token is required", status=401)
        req.add_header("Authorization", self.api_token)
        if self.api_version:
            req.add_header("API-Version", self.api_version)
        try:
            with request.urlopen(req, timeout=timeout_sec) as resp:
                body = resp.read().decode("utf-8", errors="ignore")
        except error.HTTPError as exc:
            body = ""
            try:
                body = exc.read().decode("utf-8", errors="ignore")
            except Exception:
                pass
            raise MondayApiError(f"monday api error: status={exc.code} body={body[:500]}", status=exc.code) from exc
        except error.URLError as exc:
            raise MondayApiError(f"monday api connection error: {exc}") from exc
        except TimeoutError as exc:
            raise MondayApiError(f"monday api timed out after {timeout_sec}s") from exc

        try:
            parsed = json.loads(body)
        except Exception as exc:
            raise MondayApiError("monday api returned invalid json") from exc
        if not isinstance(parsed, dict):
            raise MondayApiError("monday api returned unexpected payload")
        errors = parsed.get("errors") or ([parsed] if parsed.get("error_code") else [])
        if errors:
            raise _graphql_error(errors)
        data = parsed.get("data")
        return data if isinstance(data, dict) else {}


def _graphql_error(errors: list[Any]) -> MondayApiError:
    codes: list[str] = []
    messages: list[str] = []
    for item in errors:
        if not isinstance(item, dict):
            messages.append(str(item))
            continue
        code = str(item.get("extensions", {}).get("code", "") or item.get("error_code", "") or "")
        if code:
            codes.append(code)
        messages.append(str(item.get("message", "") or item.get("error_message", "") or code))
    retryable = any(code in RETRYABLE_ERROR_CODES for code in codes)
    status = 429 if retryable else 400
    return MondayApiError(f"monday graphql error: codes={','.join(codes) or '-'} {'; '.join(messages)}", status=status)


def encode_multipart(
    fields: dict[str, str],
    files: list[tuple[str, str, bytes, str]],
) -> tuple[bytes, str]:
    boundary = f"----kbbot{uuid4().hex}"
    chunks: list[bytes] = []
    for name, value in fields.items():
        chunks.append(f"--{boundary}\r\n".encode("utf-8"))
        chunks.append(f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode("utf-8"))
        chunks.append(value.encode("utf-8"))
        chunks.append(b"\r\n")
    for name, filename, content, mime_type in files:
        safe_name = filename.replace('"', "'").replace("\r", " ").replace("\n", " ")
        chunks.append(f"--{boundary}\r\n".encode("utf-8"))
        chunks.append(
            f'Content-Disposition: form-data; name="{name}"; filename="{safe_name}"\r\n'.encode("utf-8")
        )
        chunks.append(f"Content-Type: {mime_type}\r\n\r\n".encode("utf-8"))
        chunks.append(content)
        chunks.append(b"\r\n")
    chunks.append(f"--{boundary}--\r\n".encode("utf-8"))
    return b"".join(chunks), f"multipart/form-data; boundary={boundary}"
