"""Slack Web API adapter - the messaging operations the bot needs."""

import asyncio
import os
from typing import Optional

import aiohttp
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from src.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)


class SlackClient:
    """Thin async wrapper around AsyncWebClient."""

    def __init__(self, client: Optional[AsyncWebClient] = None, token: Optional[str] = None):
        if client is None:
            client = AsyncWebClient(token=token or os.environ.get("SLACK_BOT_TOKEN", "").strip())
        self.client = client

    async def post_ephemeral(self, channel: str, user: str, text: str, blocks: Optional[list[dict]] = None) -> None:
        await self.client.chat_postEphemeral(channel=channel, user=user, text=text, blocks=blocks)

    async def post_message(self, channel: str, thread_ts: Optional[str], text: str) -> Optional[str]:
        """Post into a thread and return the new message's ts."""
        response = await self.client.chat_postMessage(channel=channel, thread_ts=thread_ts, text=text)
        return response.get("ts")

    async def update_message(self, channel: str, ts: str, text: str, blocks: Optional[list[dict]] = None) -> None:
        if blocks is None:
            await self.client.chat_update(channel=channel, ts=ts, text=text)
        else:
            await self.client.chat_update(channel=channel, ts=ts, text=text, blocks=blocks)

    async def get_user_name(self, user_id: str) -> Optional[str]:
        """Look up a user's handle; None if Slack does not know them or cannot be reached."""
        try:
            response = await self.client.users_info(user=user_id)
        except (SlackApiError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "Slack user lookup failed",
                slack_user_id=mask_user_id(user_id),
                error=str(e)
            )
            return None
        user = response.get("user") or {}
        return user.get("name") or user.get("real_name")


# Global client instance
_slack_client: Optional[SlackClient] = None


def get_slack_client() -> SlackClient:
    """Get or create the Slack client singleton."""
    global _slack_client
    if _slack_client is None:
        _slack_client = SlackClient()
    return _slack_client
