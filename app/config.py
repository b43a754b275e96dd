from __future__ import annotations

import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

DEFAULT_CONFIG: dict[str, Any] = {
    "slack": {
        "enabled": True,
        "bot_token": None,
        "signing_secret": None,
        "command": "/kb-request",
        "api_base_url": "https://slack.com/api",
        "timeout_sec": 10,
        "file_timeout_sec": 120,
        "signature_tolerance_sec": 300,
        "allowed_user_ids": [],
        "event_dedupe_ttl_sec": 3600,
    },
    "enrichment": {
        "enabled": True,
        "url": None,
        "token": None,
        "timeout_sec": 30,
        "health_path": "/health",
        "health_timeout_sec": 5,
    },
    "board": {
        "api_url": "https://api.monday.com/v2",
        "file_api_url": "https://api.monday.com/v2/file",
        "api_version": None,
        "api_token": None,
        "board_id": None,
        "item_url_template": "https://monday.com/boards/{board_id}/pulses/{item_id}",
        "timeout_sec": 30,
        "file_timeout_sec": 120,
        "files_column_id": "files",
        "columns": {
            "task_type": {"id": "status_1", "type": "status"},
            "priority": {"id": "priority", "type": "status"},
            "product": {"id": "text_product", "type": "text"},
            "description": {"id": "long_text", "type": "long_text"},
            "article_link": {"id": "link", "type": "link", "label": "KB Article"},
            "kb_urls": {"id": "long_text_kb_urls", "type": "long_text"},
            "supporting_materials": {"id": "long_text_materials", "type": "long_text"},
            "request_type": {"id": "text_request_type", "type": "text"},
            "urgency_level": {"id": "status_urgency", "type": "status"},
            "feature_name": {"id": "text_feature", "type": "text"},
            "change_description": {"id": "long_text_change", "type": "long_text"},
            "user_id": {"id": "text_requestor", "type": "text"},
        },
    },
    "session": {
        "idle_timeout_minutes": 30,
        "sweep_interval_minutes": 5,
    },
    "retry": {
        "max_attempts": 3,
        "base_delay_sec": 1.0,
        "max_delay_sec": 30.0,
    },
    "logging": {
        "level": "INFO",
    },
}

# Environment variables that override config values, mostly for secrets.
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "SLACK_BOT_TOKEN": ("slack", "bot_token"),
    "SLACK_SIGNING_SECRET": ("slack", "signing_secret"),
    "MONDAY_API_TOKEN": ("board", "api_token"),
    "MONDAY_BOARD_ID": ("board", "board_id"),
    "WORKFLOW_URL": ("enrichment", "url"),
    "MODEL_HUB_TOKEN": ("enrichment", "token"),
    "LOG_LEVEL": ("logging", "level"),
}

SECRET_KEYS = {"bot_token", "signing_secret", "api_token", "token"}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def apply_env_overrides(config: dict[str, Any], environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    env = os.environ if environ is None else environ
    result = deepcopy(config)
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = str(env.get(env_name, "") or "").strip()
        if not value:
            continue
        result.setdefault(section, {})[key] = value
    return result


def load_config(config_path: str | None = None, environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    return apply_env_overrides(_load_file_config(config_path), environ)


def masked_config(config: dict[str, Any]) -> dict[str, Any]:
    output: dict[str, Any] = {}
    for key, value in config.items():
        if isinstance(value, dict):
            output[key] = masked_config(value)
        elif key in SECRET_KEYS and value:
            output[key] = "***"
        else:
            output[key] = value
    return output


def _load_file_config(config_path: str | None) -> dict[str, Any]:
    if not config_path:
        return deepcopy(DEFAULT_CONFIG)

    path = Path(config_path)
    if not path.exists():
        return deepcopy(DEFAULT_CONFIG)

    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return deepcopy(DEFAULT_CONFIG)

    data: dict[str, Any] | None = None
    if path.suffix.lower() == ".json":
        import json

        loaded = json.loads(text)
        data = loaded if isinstance(loaded, dict) else {}
    else:
        import yaml

        loaded = yaml.safe_load(text)
        data = loaded if isinstance(loaded, dict) else {}

    return deep_merge(DEFAULT_CONFIG, data)
