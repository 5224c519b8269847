"""Client-side coordinator for one popup-based OAuth connection per tool.

A session is a small state machine:

    idle -> connecting -> awaiting_popup_result -> polling_status -> connected
                                                \\-> failed
    connected -> disconnecting -> idle | connected

Three event sources feed it: the connection-initiate response, the
completion message posted by the popup, and the popup's closed flag. The
last two are merged into one wait loop; the post-success status check is
a bounded retry loop.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Protocol

import httpx

from src.models.connection import (
    OAUTH_COMPLETE_MESSAGE_TYPE,
    ConnectionInitiation,
    ConnectionStatus,
    OAuthCompletionMessage,
    SessionState,
)
from src.utils.errors import ConnectionBrokerError, PopupBlockedError, UserClosedPopupError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

STATUS_POLL_ATTEMPTS = 5
STATUS_POLL_INTERVAL_SECONDS = 1.0
POPUP_CHECK_INTERVAL_SECONDS = 0.5

POPUP_BLOCKED_NOTICE = "Popup blocked. Please allow popups for this site and try again."
POPUP_CLOSED_NOTICE = "The authorization window was closed before the connection finished."


class ConnectionApi(Protocol):
    async def initiate(self, tool: str, user_id: str) -> ConnectionInitiation: ...

    async def status(self, user_id: str) -> ConnectionStatus: ...

    async def disconnect(self, connection_id: str) -> dict: ...


class PopupWindow(Protocol):
    @property
    def closed(self) -> bool: ...


class PopupOpener(Protocol):
    def open(self, url: str) -> Optional[PopupWindow]: ...


class HttpConnectionApi:
    """ConnectionApi backed by this service's /api/composio endpoints."""

    def __init__(self, base_url: str, http_client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self._http_client = http_client

    async def _request(self, method: str, path: str, params: dict) -> dict:
        url = f"{self.base_url}{path}"
        try:
            if self._http_client is not None:
                response = await self._http_client.request(method, url, params=params)
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    response = await client.request(method, url, params=params)
        except httpx.HTTPError as e:
            raise ConnectionBrokerError(f"Request to {path} failed: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if response.status_code >= 400 or (isinstance(payload, dict) and payload.get("error")):
            message = payload.get("error") if isinstance(payload, dict) else None
            raise ConnectionBrokerError(message or f"HTTP {response.status_code}", status_code=response.status_code)
        return payload

    async def initiate(self, tool: str, user_id: str) -> ConnectionInitiation:
        payload = await self._request("GET", "/api/composio/connect", {"tool": tool, "user": user_id})
        return ConnectionInitiation.model_validate(payload)

    async def status(self, user_id: str) -> ConnectionStatus:
        payload = await self._request("GET", "/api/composio/status", {"user": user_id})
        return ConnectionStatus.model_validate(payload)

    async def disconnect(self, connection_id: str) -> dict:
        return await self._request("DELETE", "/api/composio/disconnect", {"connectionId": connection_id})


async def _decline(_: str) -> bool:
    return False


def _log_notice(message: str) -> None:
    logger.info("Connection notice", notice=message)


class ConnectionSession:
    """Connection state for one (tool, user) pair."""

    def __init__(
        self,
        tool: str,
        user_id: str,
        api: ConnectionApi,
        opener: PopupOpener,
        confirm: Callable[[str], Awaitable[bool]] = _decline,
        notify: Callable[[str], None] = _log_notice,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        poll_attempts: int = STATUS_POLL_ATTEMPTS,
        poll_interval: float = STATUS_POLL_INTERVAL_SECONDS,
        popup_check_interval: float = POPUP_CHECK_INTERVAL_SECONDS,
    ):
        self.tool = tool
        self.user_id = user_id
        self.api = api
        self.opener = opener
        self.confirm = confirm
        self.notify = notify
        self._sleep = sleep
        self.poll_attempts = poll_attempts
        self.poll_interval = poll_interval
        self.popup_check_interval = popup_check_interval

        self.state = SessionState.IDLE
        self.connection_id: Optional[str] = None
        self.last_error: Optional[str] = None
        self._messages: asyncio.Queue = asyncio.Queue()

    @property
    def is_connected(self) -> bool:
        return self.state == SessionState.CONNECTED

    @property
    def is_busy(self) -> bool:
        return self.state in (
            SessionState.CONNECTING,
            SessionState.AWAITING_POPUP_RESULT,
            SessionState.POLLING_STATUS,
            SessionState.DISCONNECTING,
        )

    def _transition(self, state: SessionState) -> None:
        logger.debug("Connection session transition", tool=self.tool, from_state=self.state.value, to_state=state.value)
        self.state = state

    def _fail(self, message: str) -> SessionState:
        self.last_error = message
        self._transition(SessionState.FAILED)
        self.notify(message)
        return self.state

    def deliver_message(self, message: Any) -> None:
        """Feed a message posted to this window; unrelated messages are dropped."""
        if isinstance(message, OAuthCompletionMessage):
            parsed = message
        elif isinstance(message, dict) and message.get("type") == OAUTH_COMPLETE_MESSAGE_TYPE:
            try:
                parsed = OAuthCompletionMessage.model_validate(message)
            except ValueError:
                return
        else:
            return
        if parsed.tool != self.tool:
            return
        self._messages.put_nowait(parsed)

    def _drain_messages(self) -> None:
        while not self._messages.empty():
            self._messages.get_nowait()

    def _apply_status(self, status: ConnectionStatus) -> bool:
        connection_id = status.connection_ids.get(self.tool)
        if status.is_connected(self.tool) and connection_id:
            self.connection_id = connection_id
            self._transition(SessionState.CONNECTED)
            return True
        return False

    async def refresh(self) -> SessionState:
        """Read the current status once (page load)."""
        if self.is_busy:
            return self.state
        try:
            status = await self.api.status(self.user_id)
        except ConnectionBrokerError as e:
            logger.warning("Connection status refresh failed", tool=self.tool, error=str(e))
            return self.state
        if not self._apply_status(status):
            self.connection_id = None
            self._transition(SessionState.IDLE)
        return self.state

    async def connect(self) -> SessionState:
        if self.is_busy:
            self.notify(f"{self.tool} connection is already in progress.")
            return self.state

        self.last_error = None
        self._drain_messages()
        self._transition(SessionState.CONNECTING)

        try:
            initiation = await self.api.initiate(self.tool, self.user_id)
        except ConnectionBrokerError as e:
            return self._fail(f"Failed to connect {self.tool}: {e}")

        if initiation.already_connected:
            self.connection_id = initiation.connection_request_id
            self._transition(SessionState.CONNECTED)
            self.notify(f"{self.tool} is already connected.")
            return self.state

        if not initiation.redirect_url:
            return self._fail(f"Failed to connect {self.tool}: no authorization URL was returned.")

        try:
            popup = self._open_popup(initiation.redirect_url)
            self._transition(SessionState.AWAITING_POPUP_RESULT)
            await self._await_popup_result(popup)
        except (PopupBlockedError, UserClosedPopupError, ConnectionBrokerError) as e:
            return self._fail(str(e))

        self._transition(SessionState.POLLING_STATUS)
        return await self._reconcile()

    def _open_popup(self, url: str) -> PopupWindow:
        popup = self.opener.open(url)
        if popup is None:
            logger.warning("Authorization popup blocked", tool=self.tool)
            raise PopupBlockedError(POPUP_BLOCKED_NOTICE)
        return popup

    async def _await_popup_result(self, popup: PopupWindow) -> None:
        """Return on a success message; raise on failure or close-without-message."""
        while True:
            try:
                message = await asyncio.wait_for(self._messages.get(), timeout=self.popup_check_interval)
            except asyncio.TimeoutError:
                if popup.closed:
                    # One last look: the message may have raced the close
                    if self._messages.empty():
                        raise UserClosedPopupError(POPUP_CLOSED_NOTICE)
                continue

            if message.success:
                return
            raise ConnectionBrokerError(f"Failed to connect {self.tool}. Please try again.")

    async def _reconcile(self) -> SessionState:
        """Status read plus up to poll_attempts retries; the last read is final."""
        for attempt in range(self.poll_attempts + 1):
            if attempt:
                await self._sleep(self.poll_interval)
            try:
                status = await self.api.status(self.user_id)
            except ConnectionBrokerError as e:
                logger.warning("Status poll failed", tool=self.tool, attempt=attempt, error=str(e))
                continue
            if self._apply_status(status):
                logger.info("Connection confirmed", tool=self.tool, attempt=attempt)
                return self.state

        self.connection_id = None
        self._transition(SessionState.IDLE)
        self.notify(f"{self.tool} is still finalizing. Refresh in a moment to see it connected.")
        return self.state

    async def disconnect(self) -> SessionState:
        if self.is_busy:
            self.notify(f"{self.tool} connection is already in progress.")
            return self.state
        if not self.connection_id:
            self.notify(f"No connection ID found for {self.tool}.")
            return self.state

        if not await self.confirm(f"Are you sure you want to disconnect {self.tool}?"):
            return self.state

        self._transition(SessionState.DISCONNECTING)
        try:
            await self.api.disconnect(self.connection_id)
        except ConnectionBrokerError as e:
            self.last_error = str(e)
            self._transition(SessionState.CONNECTED)
            self.notify(f"Failed to disconnect {self.tool}: {e}")
            return self.state

        self.connection_id = None
        self._transition(SessionState.IDLE)
        return self.state
