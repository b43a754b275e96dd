from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from app.bootstrap import BotRuntime
from app.config import load_config, masked_config
from app.logging_setup import configure_logging

DEFAULT_CONFIG_PATH = "config.yaml"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="KB request Slack bot")
    subparsers = parser.add_subparsers(dest="command", required=True)

    health_parser = subparsers.add_parser("healthcheck", help="Check enrichment and board availability")
    health_parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to config.yaml or config.json")
    health_parser.add_argument("--output", default=None, help="Optional output JSON path")

    show_parser = subparsers.add_parser("show-config", help="Print the effective configuration")
    show_parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to config.yaml or config.json")

    return parser


def cmd_healthcheck(args: argparse.Namespace, config: dict[str, Any]) -> int:
    runtime = BotRuntime(config)
    payload = runtime.health.check()
    text = json.dumps(payload, ensure_ascii=False, indent=2)
    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(text, encoding="utf-8")
        print(f"saved: {output_path}")
    else:
        print(text)
    return 0 if payload.get("ok") else 1


def cmd_show_config(config: dict[str, Any]) -> int:
    print(json.dumps(masked_config(config), ensure_ascii=False, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config(args.config)
    configure_logging(config)

    if args.command == "healthcheck":
        return cmd_healthcheck(args, config)
    if args.command == "show-config":
        return cmd_show_config(config)

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
