"""Slack inbound event models.

Every webhook body is decoded once into one of the variants of
``InboundEvent``; the router matches on the concrete class.
"""

from typing import Any, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


class _InboundEventBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class UrlVerification(_InboundEventBase):
    """Events API handshake."""
    kind: Literal["url_verification"] = "url_verification"
    challenge: str = Field("", description="Challenge token to echo back")


class SlashCommand(_InboundEventBase):
    """Form-encoded slash command invocation."""
    kind: Literal["slash_command"] = "slash_command"
    command: str = Field(..., description="Command name, e.g. /setup-agent")
    user_id: str = Field("", description="Invoking Slack user ID")
    channel_id: str = Field("", description="Channel the command was typed in")


class MentionEvent(_InboundEventBase):
    """Message addressed to the bot (app_mention or message containing the bot token)."""
    kind: Literal["mention"] = "mention"
    text: str = Field("", description="Raw message text")
    channel_id: str = Field("", description="Slack channel ID")
    message_ts: str = Field("", description="Message timestamp, used as thread parent")
    author_user_id: Optional[str] = Field(None, description="Slack user ID of the author")
    event_type: str = Field("app_mention", description="Original Slack event type")


class PlainMessage(_InboundEventBase):
    """Channel message that does not mention the bot."""
    kind: Literal["plain_message"] = "plain_message"
    text: str = ""
    channel_id: str = ""
    message_ts: str = ""
    author_user_id: Optional[str] = None


class BotMessage(_InboundEventBase):
    """Event authored by a bot, including this one."""
    kind: Literal["bot_message"] = "bot_message"
    bot_id: Optional[str] = None
    subtype: Optional[str] = None


class OtherEvent(_InboundEventBase):
    """Event callback of a type this service does not act on."""
    kind: Literal["other_event"] = "other_event"
    event_type: Optional[str] = None


class Unclassified(_InboundEventBase):
    """Body that matches no known shape."""
    kind: Literal["unclassified"] = "unclassified"
    raw_payload: dict[str, Any] = Field(default_factory=dict)


InboundEvent = Union[
    UrlVerification,
    SlashCommand,
    MentionEvent,
    PlainMessage,
    BotMessage,
    OtherEvent,
    Unclassified,
]


class EventIdentity(BaseModel):
    """Composite key identifying one platform-delivered event."""
    model_config = ConfigDict(frozen=True)

    channel_id: str
    message_ts: str
    author_user_id: str = "unknown"

    def __str__(self) -> str:
        return f"{self.channel_id}-{self.message_ts}-{self.author_user_id}"


class ParsedMention(BaseModel):
    """Target user and residual question extracted from mention text."""
    target_user_id: Optional[str] = Field(None, description="Slack user ID the question is about")
    question: str = Field("", description="Question with mentions and filler words removed")

    @property
    def is_actionable(self) -> bool:
        return bool(self.target_user_id) and bool(self.question.strip())
