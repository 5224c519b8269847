"""Connection broker operations behind the /api/composio endpoints."""

import asyncio
import os
import time
from typing import Optional
from urllib.parse import urlencode

from src.models.connection import ConnectionInitiation, ConnectionRecord, ConnectionStatus
from src.services.composio_client import ComposioClient, ComposioError
from src.utils.errors import ConnectionBrokerError, MultipleActiveConnectionsError, UnknownToolError
from src.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

# Tool name -> env var holding its Composio auth config id
TOOL_AUTH_CONFIG_ENV = {
    "Google Calendar": "GOOGLECALENDAR_AUTH_CONFIG_ID",
    "Slack": "SLACK_AUTH_CONFIG_ID",
    "Linear": "LINEAR_AUTH_CONFIG_ID",
    "GitHub": "GITHUB_AUTH_CONFIG_ID",
}

CALLBACK_WAIT_SECONDS = 60.0
CALLBACK_POLL_INTERVAL_SECONDS = 2.0


def get_tool_auth_config_ids() -> dict[str, str]:
    """Tool name -> auth config id, skipping tools with no id configured."""
    mapping = {}
    for tool, env_name in TOOL_AUTH_CONFIG_ENV.items():
        value = os.environ.get(f"NEXT_PUBLIC_{env_name}") or os.environ.get(env_name) or ""
        if value.strip():
            mapping[tool] = value.strip()
    return mapping


def get_auth_config_to_tool() -> dict[str, str]:
    return {auth_config_id: tool for tool, auth_config_id in get_tool_auth_config_ids().items()}


def build_callback_url(user_id: str, tool: str) -> Optional[str]:
    public_url = (os.environ.get("PUBLIC_URL") or os.environ.get("NEXT_PUBLIC_URL") or "").rstrip("/")
    if not public_url:
        return None
    return f"{public_url}/api/composio/callback?{urlencode({'user': user_id, 'tool': tool})}"


def _already_connected(connection_id: str) -> ConnectionInitiation:
    return ConnectionInitiation(
        redirect_url=None,
        connection_request_id=connection_id,
        already_connected=True,
        message="Connection already exists",
    )


class ConnectionService:
    """Status / initiate / disconnect / callback completion for one broker."""

    def __init__(self, composio: ComposioClient, clock=time.monotonic, sleep=asyncio.sleep):
        self.composio = composio
        self._clock = clock
        self._sleep = sleep

    async def _resolve_auth_config_id(self, record: ConnectionRecord) -> Optional[str]:
        # The list endpoint may omit the auth config; the full record has it
        try:
            full = await self.composio.get(record.id)
        except ComposioError as e:
            logger.debug("Full connection lookup failed", connection_id=record.id, error=str(e))
            full = None
        if full is not None and full.auth_config_id:
            return full.auth_config_id
        return record.auth_config_id

    async def get_connection_status(self, user_id: str) -> ConnectionStatus:
        """Tools with an ACTIVE connection for the user, and their connection ids."""
        try:
            records = await self.composio.list(user_id)
        except ComposioError as e:
            raise ConnectionBrokerError(f"Failed to fetch connection status: {e}") from e

        auth_config_to_tool = get_auth_config_to_tool()
        status = ConnectionStatus()

        for record in records:
            if not record.is_active:
                continue
            auth_config_id = await self._resolve_auth_config_id(record)
            tool = auth_config_to_tool.get(auth_config_id) if auth_config_id else None
            if tool is None:
                continue
            if tool not in status.connected_tools:
                status.connected_tools.append(tool)
            status.connection_ids[tool] = record.id

        logger.info(
            "Connection status check",
            slack_user_id=mask_user_id(user_id),
            total_connections=len(records),
            connected_tools=status.connected_tools
        )
        return status

    async def find_active_connection(self, user_id: str, auth_config_id: str) -> Optional[str]:
        """Id of the user's ACTIVE connection for an auth config, if any."""
        records = await self.composio.list(user_id)
        for record in records:
            if not record.is_active:
                continue
            if await self._resolve_auth_config_id(record) == auth_config_id:
                return record.id
        return None

    async def _existing_connection(self, user_id: str, auth_config_id: str) -> Optional[str]:
        try:
            return await self.find_active_connection(user_id, auth_config_id)
        except ComposioError as e:
            raise ConnectionBrokerError(f"Failed to list existing connections: {e}") from e

    async def _initiate(self, tool: str, user_id: str, auth_config_id: str) -> dict:
        try:
            return await self.composio.initiate(user_id, auth_config_id, build_callback_url(user_id, tool))
        except ComposioError as e:
            if e.is_multiple_accounts:
                raise MultipleActiveConnectionsError(str(e), code=e.code) from e
            raise ConnectionBrokerError(f"Failed to initiate connection: {e}") from e

    async def initiate_connection(self, tool: str, user_id: str) -> ConnectionInitiation:
        auth_config_id = get_tool_auth_config_ids().get(tool)
        if not auth_config_id:
            raise UnknownToolError(tool)

        # The REST API happily creates a second account; look first
        existing_id = await self._existing_connection(user_id, auth_config_id)
        if existing_id is not None:
            logger.info(
                "Active connection already exists",
                tool=tool,
                slack_user_id=mask_user_id(user_id),
                connection_id=existing_id
            )
            return _already_connected(existing_id)

        try:
            request = await self._initiate(tool, user_id, auth_config_id)
        except MultipleActiveConnectionsError:
            logger.info(
                "Multiple connections detected, finding existing connection",
                tool=tool,
                slack_user_id=mask_user_id(user_id)
            )
            existing_id = await self._existing_connection(user_id, auth_config_id)
            if existing_id is None:
                raise ConnectionBrokerError(
                    "Multiple connections exist but could not locate the active one. Please contact support."
                )
            return _already_connected(existing_id)

        if not request.get("redirect_url"):
            raise ConnectionBrokerError("No redirect URL received from Composio")

        return ConnectionInitiation(
            redirect_url=request["redirect_url"],
            connection_request_id=request.get("id"),
        )

    async def disconnect_connection(self, connection_id: str) -> dict:
        try:
            await self.composio.delete(connection_id)
        except ComposioError as e:
            raise ConnectionBrokerError(f"Failed to delete connection: {e}") from e
        return {"success": True, "message": "Connection deleted successfully"}

    async def wait_for_connection(self, connection_request_id: str, timeout: float = CALLBACK_WAIT_SECONDS) -> bool:
        """Poll a pending connection until it is ACTIVE or the timeout passes."""
        deadline = self._clock() + timeout
        while True:
            record = await self.composio.get(connection_request_id)
            if record is not None and record.is_active:
                return True
            if record is not None and record.status in ("FAILED", "EXPIRED"):
                return False
            if self._clock() >= deadline:
                return False
            await self._sleep(CALLBACK_POLL_INTERVAL_SECONDS)

    async def complete_connection(
        self, user_id: str, tool: str, connection_request_id: Optional[str], timeout: float = CALLBACK_WAIT_SECONDS
    ) -> bool:
        """Decide whether the OAuth round trip that just returned succeeded."""
        if connection_request_id:
            try:
                if await self.wait_for_connection(connection_request_id, timeout=timeout):
                    return True
            except ComposioError as e:
                logger.error("Error waiting for connection", connection_id=connection_request_id, error=str(e))

        # Fallback: any connection at all for this user counts
        try:
            records = await self.composio.list(user_id)
        except ComposioError as e:
            logger.error("Error listing connections", slack_user_id=mask_user_id(user_id), error=str(e))
            return False
        return len(records) > 0


# Global service instance
_connection_service: Optional[ConnectionService] = None


def get_connection_service() -> ConnectionService:
    """Get or create the connection service singleton."""
    global _connection_service
    if _connection_service is None:
        from src.services.composio_client import get_composio_client
        _connection_service = ConnectionService(get_composio_client())
    return _connection_service
