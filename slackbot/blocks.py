from __future__ import annotations

from typing import Any

MAX_SECTION_TEXT = 3000
MAX_ELEMENT_TEXT = 75
MAX_SELECT_OPTIONS = 100
MAX_ACTION_ELEMENTS = 25

ACTION_PREFIX = "kb"


def action_id(kind: str, step: str | None = None, suffix: str | None = None) -> str:
    # Slack requires action ids to be unique within a block.
    if step and suffix:
        return f"{ACTION_PREFIX}:{kind}:{step}:{suffix}"
    if step:
        return f"{ACTION_PREFIX}:{kind}:{step}"
    return f"{ACTION_PREFIX}:{kind}"


def parse_action_id(value: str) -> tuple[str, str | None] | None:
    parts = str(value or "").split(":")
    if len(parts) < 2 or parts[0] != ACTION_PREFIX:
        return None
    step = parts[2] if len(parts) > 2 and parts[2] else None
    return parts[1], step


def plain_text(text: str) -> dict[str, Any]:
    return {"type": "plain_text", "text": text[:MAX_ELEMENT_TEXT], "emoji": True}


def section(text: str) -> dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text[:MAX_SECTION_TEXT]}}


def context(text: str) -> dict[str, Any]:
    return {"type": "context", "elements": [{"type": "mrkdwn", "text": text[:MAX_SECTION_TEXT]}]}


def button(label: str, action: str, value: str = "", style: str | None = None) -> dict[str, Any]:
    element: dict[str, Any] = {
        "type": "button",
        "text": plain_text(label),
        "action_id": action,
        "value": (value or label)[:2000],
    }
    if style in {"primary", "danger"}:
        element["style"] = style
    return element


def static_select(placeholder: str, action: str, options: list[str]) -> dict[str, Any]:
    return {
        "type": "static_select",
        "placeholder": plain_text(placeholder),
        "action_id": action,
        "options": [
            {"text": plain_text(option), "value": option[:150]} for option in options[:MAX_SELECT_OPTIONS]
        ],
    }


def actions(elements: list[dict[str, Any]]) -> dict[str, Any]:
    return {"type": "actions", "elements": elements[:MAX_ACTION_ELEMENTS]}


def message(text: str, blocks: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    output: dict[str, Any] = {"text": text}
    if blocks:
        output["blocks"] = blocks
    return output
