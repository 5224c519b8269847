"""Supabase client wrapper with async context manager support."""

import os
from typing import Optional
from supabase import create_client, Client
from supabase.client import ClientOptions
from src.utils.errors import SupabaseError
import logging

logger = logging.getLogger(__name__)

AGENT_PROFILES_TABLE = "agent_profiles"

# Global client instance (singleton pattern)
_client: Optional[Client] = None


def is_supabase_configured() -> bool:
    """True when Supabase credentials are present in the environment."""
    return bool(os.environ.get("SUPABASE_URL") and os.environ.get("SUPABASE_SERVICE_ROLE_KEY"))


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        if not url or not key:
            raise SupabaseError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", extra={"url": url})

    return _client


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                extra={"error": str(exc_val), "type": exc_type.__name__}
            )
        return False


async def get_agent_profile(slack_user_id: str) -> Optional[dict]:
    """Fetch the aggregated agent profile row for a Slack user."""
    async with SupabaseClient() as client:
        try:
            result = (
                client.table(AGENT_PROFILES_TABLE)
                .select("*")
                .eq("slack_user_id", slack_user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to fetch agent profile: {e}")

        if result.data and len(result.data) > 0:
            return result.data[0]
        return None
