"""Slack webhook routing - classify inbound bodies and acknowledge fast.

Slack retries deliveries it does not see acknowledged within a few
seconds, so mention handling is spawned as a background task and the
caller gets ``{"ok": true}`` straight away.
"""

import asyncio
import json
import os
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import parse_qs

from src.models.slack_event import (
    BotMessage,
    InboundEvent,
    MentionEvent,
    OtherEvent,
    PlainMessage,
    SlashCommand,
    Unclassified,
    UrlVerification,
)
from src.services.answer_generator import AnswerGenerator
from src.services.mention_parser import contains_mention
from src.services.slack_client import SlackClient
from src.services.slack_dedup import EventDeduplicator, event_identity
from src.utils.errors import MalformedRequestError
from src.utils.logging import get_structured_logger, mask_user_id, sanitize_message_text

logger = get_structured_logger(__name__)

SETUP_COMMAND = "/setup-agent"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


@dataclass
class RouterResponse:
    status: int = 200
    body: dict[str, Any] = field(default_factory=lambda: {"ok": True})


def get_public_url() -> str:
    return (os.environ.get("PUBLIC_URL") or os.environ.get("NEXT_PUBLIC_URL") or "").rstrip("/")


def parse_request_body(content_type: str, raw_body: str) -> dict:
    """
    Parse a webhook body. Slash commands arrive form-encoded; everything
    else is JSON. Raises MalformedRequestError on bad JSON.
    """
    if FORM_CONTENT_TYPE in (content_type or "").lower():
        return {key: values[0] for key, values in parse_qs(raw_body or "", keep_blank_values=True).items()}

    try:
        body = json.loads(raw_body) if raw_body else {}
    except json.JSONDecodeError as e:
        raise MalformedRequestError(f"Invalid JSON body: {e}") from e
    if not isinstance(body, dict):
        raise MalformedRequestError("JSON body must be an object")
    return body


def _bot_user_id(payload: dict) -> Optional[str]:
    authorizations = payload.get("authorizations")
    if isinstance(authorizations, list) and authorizations:
        first = authorizations[0]
        if isinstance(first, dict):
            return first.get("user_id")
    return None


def decode_inbound_event(payload: dict) -> InboundEvent:
    """Classify a parsed webhook body; first matching rule wins."""
    if payload.get("type") == "url_verification":
        return UrlVerification(challenge=str(payload.get("challenge", "")))

    if payload.get("command"):
        return SlashCommand(
            command=str(payload.get("command")),
            user_id=str(payload.get("user_id") or ""),
            channel_id=str(payload.get("channel_id") or ""),
        )

    event = payload.get("event")
    if isinstance(event, dict) and "type" in event:
        if event.get("bot_id") or event.get("subtype") == "bot_message":
            return BotMessage(bot_id=event.get("bot_id"), subtype=event.get("subtype"))

        event_type = event.get("type")
        text = event.get("text") if isinstance(event.get("text"), str) else ""
        fields = dict(
            text=text,
            channel_id=str(event.get("channel") or ""),
            message_ts=str(event.get("ts") or ""),
            author_user_id=event.get("user"),
        )

        if event_type == "app_mention":
            return MentionEvent(event_type=event_type, **fields)

        if event_type == "message":
            bot_user_id = _bot_user_id(payload)
            if bot_user_id and contains_mention(text, bot_user_id):
                return MentionEvent(event_type=event_type, **fields)
            return PlainMessage(**fields)

        return OtherEvent(event_type=event_type)

    return Unclassified(raw_payload=payload)


def build_setup_blocks(setup_url: str) -> list[dict]:
    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    "*🤖 Set Up Your AI Agent*\n\n"
                    "Connect your accounts so teammates can ask your agent questions while you're offline."
                ),
            },
        },
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "🚀 Set Up Now", "emoji": True},
                    "url": setup_url,
                    "style": "primary",
                }
            ],
        },
        {
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": "💡 Your agent will answer questions based on your Calendar, Slack, Jira, and more!",
                }
            ],
        },
    ]


class SlackEventRouter:
    """Top-level webhook dispatcher."""

    def __init__(self, answer_generator: AnswerGenerator, slack: SlackClient, deduplicator: EventDeduplicator):
        self.answer_generator = answer_generator
        self.slack = slack
        self.deduplicator = deduplicator
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending_tasks(self) -> set[asyncio.Task]:
        return set(self._tasks)

    async def dispatch(self, content_type: str, raw_body: str) -> RouterResponse:
        try:
            payload = parse_request_body(content_type, raw_body)
        except MalformedRequestError as e:
            logger.error("Failed to parse request body", error=str(e))
            return RouterResponse(status=400, body={"error": "Invalid request body"})

        event = decode_inbound_event(payload)
        return await self.route(event)

    async def route(self, event: InboundEvent) -> RouterResponse:
        if isinstance(event, UrlVerification):
            logger.info("URL verification challenge")
            return RouterResponse(body={"challenge": event.challenge})

        if isinstance(event, SlashCommand):
            if event.command == SETUP_COMMAND:
                logger.info("Slash command detected", command=event.command)
                await self._send_setup_prompt(event)
            else:
                logger.info("Ignoring unknown slash command", command=event.command)
            return RouterResponse()

        if isinstance(event, BotMessage):
            logger.debug("Ignoring bot message", bot_id=event.bot_id, subtype=event.subtype)
            return RouterResponse()

        if isinstance(event, MentionEvent):
            self._accept_mention(event)
            return RouterResponse()

        if isinstance(event, PlainMessage):
            logger.debug(
                "Ignoring regular message event (no bot mention)",
                message_preview=sanitize_message_text(event.text, max_length=100)
            )
            return RouterResponse()

        if isinstance(event, OtherEvent):
            logger.debug("Received unhandled event type", event_type=event.event_type)
            return RouterResponse()

        logger.warning(
            "Unhandled request type",
            body_keys=sorted(event.raw_payload.keys()) if isinstance(event, Unclassified) else None
        )
        return RouterResponse()

    def _accept_mention(self, event: MentionEvent) -> None:
        key = event_identity(event)
        if self.deduplicator.is_processed(key):
            logger.info("Duplicate event detected, ignoring", event_key=str(key))
            return
        self.deduplicator.mark_processed(key)

        logger.info(
            "Bot mention detected",
            event_type=event.event_type,
            channel_id=event.channel_id,
            message_ts=event.message_ts,
            slack_user_id=mask_user_id(event.author_user_id)
        )
        task = asyncio.create_task(self.answer_generator.handle(event), name=f"mention-{key}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Mention task cancelled", task_name=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Error in mention task",
                task_name=task.get_name(),
                error=str(exc),
                exc_info=exc
            )

    async def _send_setup_prompt(self, command: SlashCommand) -> None:
        setup_url = f"{get_public_url()}/setup?user={command.user_id}"
        try:
            await self.slack.post_ephemeral(
                channel=command.channel_id,
                user=command.user_id,
                text="🤖 Set up your AI agent",
                blocks=build_setup_blocks(setup_url),
            )
        except Exception as e:
            logger.error(
                "Failed to send setup prompt",
                slack_user_id=mask_user_id(command.user_id),
                channel_id=command.channel_id,
                error=str(e)
            )


# Global router instance
_router: Optional[SlackEventRouter] = None


def get_slack_event_router() -> SlackEventRouter:
    """Get or create the process-wide router with its collaborators."""
    global _router
    if _router is None:
        from src.services.agent_directory import AgentDirectory
        from src.services.llm_client import get_llm_client
        from src.services.slack_client import get_slack_client
        from src.services.slack_dedup import get_event_deduplicator

        slack = get_slack_client()
        _router = SlackEventRouter(
            answer_generator=AnswerGenerator(slack=slack, llm=get_llm_client(), agents=AgentDirectory()),
            slack=slack,
            deduplicator=get_event_deduplicator(),
        )
    return _router
