from __future__ import annotations

from typing import Any

from app.health import HealthService
from board.monday_client import MondayClient
from enrichment.workflow_client import WorkflowClient
from intake.conversation_service import ConversationService
from intake.error_policy import ErrorPolicy, RetryPolicy
from intake.interfaces import BoardClientProtocol, EnrichmentClientProtocol
from intake.session_store import SessionStore
from intake.submission import SubmissionOrchestrator
from slackbot.event_ids import EventDeduper
from slackbot.web_client import SlackWebClient
from slackbot.webhook_handler import SlackWebhookHandler


class BotRuntime:
    """Object graph of the bot, built from one config dict.

    Collaborators can be injected for tests; anything left out is built
    from the matching config section.
    """

    def __init__(
        self,
        config: dict[str, Any],
        slack_client: SlackWebClient | None = None,
        enrichment: EnrichmentClientProtocol | None = None,
        board: BoardClientProtocol | None = None,
        store: SessionStore | None = None,
    ) -> None:
        self.config = config
        slack_conf = config.get("slack", {})
        enrichment_conf = config.get("enrichment", {})
        board_conf = config.get("board", {})
        session_conf = config.get("session", {})

        self.slack_client = slack_client or SlackWebClient(
            bot_token=str(slack_conf.get("bot_token", "") or ""),
            api_base_url=str(slack_conf.get("api_base_url", "https://slack.com/api")),
            timeout_sec=float(slack_conf.get("timeout_sec", 10)),
            file_timeout_sec=float(slack_conf.get("file_timeout_sec", 120)),
        )
        self.enrichment = enrichment or WorkflowClient(
            url=enrichment_conf.get("url"),
            token=enrichment_conf.get("token"),
            timeout_sec=float(enrichment_conf.get("timeout_sec", 30)),
            health_path=str(enrichment_conf.get("health_path", "/health")),
            health_timeout_sec=float(enrichment_conf.get("health_timeout_sec", 5)),
            enabled=bool(enrichment_conf.get("enabled", True)),
        )
        self.board = board or MondayClient(
            api_token=str(board_conf.get("api_token", "") or ""),
            board_id=board_conf.get("board_id"),
            columns=board_conf.get("columns", {}),
            files_column_id=str(board_conf.get("files_column_id", "files")),
            api_url=str(board_conf.get("api_url", "https://api.monday.com/v2")),
            file_api_url=str(board_conf.get("file_api_url", "https://api.monday.com/v2/file")),
            api_version=board_conf.get("api_version"),
            item_url_template=str(
                board_conf.get("item_url_template", "https://monday.com/boards/{board_id}/pulses/{item_id}")
            ),
            timeout_sec=float(board_conf.get("timeout_sec", 30)),
            file_timeout_sec=float(board_conf.get("file_timeout_sec", 120)),
        )
        self.store = store or SessionStore(
            idle_timeout_sec=float(session_conf.get("idle_timeout_minutes", 30)) * 60,
            sweep_interval_sec=float(session_conf.get("sweep_interval_minutes", 5)) * 60,
        )

        command = str(slack_conf.get("command", "/kb-request") or "/kb-request")
        self.retry_policy = RetryPolicy.from_config(config.get("retry", {}))
        self.orchestrator = SubmissionOrchestrator(
            enrichment=self.enrichment,
            board=self.board,
            file_source=self.slack_client,
            store=self.store,
            retry_policy=self.retry_policy,
            file_timeout_sec=float(slack_conf.get("file_timeout_sec", 120)),
        )
        self.conversation_service = ConversationService(
            store=self.store,
            messenger=self.slack_client,
            orchestrator=self.orchestrator,
            error_policy=ErrorPolicy(self.store, self.slack_client, command=command),
            command=command,
        )
        self.webhook_handler = SlackWebhookHandler(
            config=config,
            conversation_service=self.conversation_service,
            deduper=EventDeduper(ttl_sec=float(slack_conf.get("event_dedupe_ttl_sec", 3600))),
        )
        self.health = HealthService(enrichment=self.enrichment, board=self.board, store=self.store)
