"""Agent data lookup - map a Slack user ID to that teammate's aggregated tool data."""

import os
from typing import Optional

from src.models.agent import AgentData, AgentSources
from src.services.demo_agents import DEMO_AGENTS, get_demo_agent
from src.services.supabase_client import get_agent_profile, is_supabase_configured
from src.utils.errors import SupabaseError
from src.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)


def is_demo_mode() -> bool:
    return os.environ.get("DEMO_MODE", "true").lower() == "true"


def agent_data_from_row(row: dict) -> AgentData:
    """Convert an agent_profiles row into AgentData."""
    return AgentData(
        name=row.get("name") or row.get("slack_user_id", ""),
        display_name=row.get("display_name") or row.get("name") or row.get("slack_user_id", ""),
        sources=AgentSources(
            calendar=list(row.get("calendar") or []),
            messaging=list(row.get("messaging") or []),
            issue_tracker=list(row.get("issue_tracker") or []),
        ),
    )


def get_all_agent_ids() -> list[str]:
    """Demo agent IDs, for diagnostics when a lookup misses."""
    return list(DEMO_AGENTS.keys())


async def get_agent_data(user_id: str) -> Optional[AgentData]:
    """
    Resolve a Slack user to their agent data.

    Reads the agent_profiles table when Supabase is configured; falls back
    to the bundled demo agents when demo mode is on. Returns None when the
    user has not set up an agent.
    """
    if not user_id:
        return None

    if is_supabase_configured():
        try:
            row = await get_agent_profile(user_id)
        except SupabaseError as e:
            logger.error(
                "Agent profile lookup failed",
                slack_user_id=mask_user_id(user_id),
                error=str(e)
            )
            row = None
        if row:
            logger.info("Resolved agent profile", slack_user_id=mask_user_id(user_id))
            return agent_data_from_row(row)

    if is_demo_mode():
        return get_demo_agent(user_id)

    return None


class AgentDirectory:
    """Injectable facade over get_agent_data."""

    async def get(self, user_id: str) -> Optional[AgentData]:
        return await get_agent_data(user_id)

    def known_ids(self) -> list[str]:
        return get_all_agent_ids()
