from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Any, Iterable

from core.enums import PRIORITIES, TASK_TYPES, FieldName
from core.errors import IncompleteRequest, ValidationError

USER_ID_PATTERN = re.compile(r"^[UW][A-Z0-9]+$", re.IGNORECASE)

NONE_SENTINELS = {"none", "n/a", "na", "-", "skip", "no", "nothing"}


@dataclass(slots=True, frozen=True)
class TextRule:
    label: str
    min_length: int = 1
    max_length: int = 1000
    required: bool = True


FIELD_RULES: dict[str, TextRule] = {
    FieldName.SUBJECT: TextRule("Subject", min_length=3, max_length=200),
    FieldName.PRODUCT: TextRule("Product", min_length=2, max_length=100),
    FieldName.DESCRIPTION: TextRule("Description", min_length=10, max_length=5000),
    FieldName.KB_URLS: TextRule("KB URLs", min_length=0, max_length=2000, required=False),
    FieldName.SUPPORTING_MATERIALS: TextRule(
        "Supporting Materials", min_length=0, max_length=2000, required=False
    ),
}

ENUM_RULES: dict[str, tuple[str, tuple[str, ...]]] = {
    FieldName.TASK_TYPE: ("Task Type", TASK_TYPES),
    FieldName.PRIORITY: ("Priority", PRIORITIES),
}


def validate_text(
    value: Any,
    field_name: str,
    *,
    min_length: int = 1,
    max_length: int = 1000,
    required: bool = True,
    field: str | None = None,
) -> str:
    key = field or field_name
    if value is None or not isinstance(value, str):
        if required:
            raise ValidationError(key, f"{field_name} is required and must be a string")
        return ""

    trimmed = value.strip()
    if not trimmed:
        if required:
            raise ValidationError(key, f"{field_name} cannot be empty")
        return ""
    if len(trimmed) < min_length:
        raise ValidationError(key, f"{field_name} must be at least {min_length} characters long")
    if len(trimmed) > max_length:
        raise ValidationError(key, f"{field_name} cannot exceed {max_length} characters")
    return html.escape(trimmed, quote=True)


def validate_enum(
    value: Any,
    allowed: Iterable[str],
    field_name: str = "Value",
    field: str | None = None,
) -> str:
    key = field or field_name
    options = list(allowed)
    text = str(value or "").strip()
    if not text:
        raise ValidationError(key, f"{field_name} is required")
    for option in options:
        if text == option or text.lower() == option.lower():
            return option
    raise ValidationError(key, f"{field_name} must be one of: {', '.join(options)}")


def validate_identifier_format(value: Any, field_name: str = "User ID") -> str:
    if not value or not isinstance(value, str):
        raise ValidationError("user_id", f"{field_name} is required and must be a string")
    trimmed = value.strip()
    if not USER_ID_PATTERN.match(trimmed):
        raise ValidationError("user_id", f"{field_name} has invalid format")
    return trimmed


def validate_file_reference_list(values: Any, field_name: str = "Files") -> list[str]:
    if not values:
        return []
    if not isinstance(values, (list, tuple)):
        raise ValidationError(FieldName.FILES, f"{field_name} must be a list")

    output: list[str] = []
    for index, file_id in enumerate(values):
        if not isinstance(file_id, str) or not file_id.strip():
            raise ValidationError(FieldName.FILES, f"File {index + 1} ID must be a non-empty string")
        output.append(file_id.strip())
    return output


def validate_field(field: str, value: Any) -> Any:
    """Validate a single answer for ``field`` with the rule registered for it."""
    if field in ENUM_RULES:
        label, allowed = ENUM_RULES[field]
        return validate_enum(value, allowed, label, field=field)
    if field == FieldName.FILES:
        return validate_file_reference_list(value)
    rule = FIELD_RULES.get(field)
    if rule is None:
        return validate_text(value, field, field=field)
    return validate_text(
        value,
        rule.label,
        min_length=rule.min_length,
        max_length=rule.max_length,
        required=rule.required,
        field=field,
    )


def validate_request(data: dict[str, Any]) -> dict[str, Any]:
    """Check an accumulated request against the full schema.

    Values in ``data`` were escaped when accepted, so text fields are
    re-checked for bounds on the unescaped content and kept as stored.
    """
    missing = [
        FIELD_RULES[field].label if field in FIELD_RULES else ENUM_RULES[field][0]
        for field in FieldName.REQUIRED_FIELDS
        if not str(data.get(field) or "").strip()
    ]
    if missing:
        raise IncompleteRequest(missing)

    validated: dict[str, Any] = {}
    for field in FieldName.REQUIRED_FIELDS + FieldName.OPTIONAL_FIELDS:
        raw = data.get(field)
        if field in ENUM_RULES:
            validated[field] = validate_field(field, raw)
            continue
        text = raw if isinstance(raw, str) else ""
        validate_field(field, html.unescape(text))
        validated[field] = text.strip()
    validated[FieldName.FILES] = validate_file_reference_list(data.get(FieldName.FILES))
    return validated


def is_none_sentinel(text: str | None) -> bool:
    return str(text or "").strip().lower() in NONE_SENTINELS
