"""Tests for the popup-based connection state machine."""

import pytest
from unittest.mock import AsyncMock, Mock

from src.models.connection import ConnectionInitiation, ConnectionStatus, SessionState
from src.services.connection_session import POPUP_BLOCKED_NOTICE, POPUP_CLOSED_NOTICE, ConnectionSession
from src.utils.errors import ConnectionBrokerError

TOOL = "Google Calendar"


class FakePopup:
    def __init__(self, closed: bool = False):
        self.closed = closed


class FakeOpener:
    def __init__(self, popup=None, on_open=None):
        self.popup = popup
        self.on_open = on_open
        self.opened_urls = []

    def open(self, url):
        self.opened_urls.append(url)
        if self.on_open is not None:
            self.on_open()
        return self.popup


def connected(connection_id="ca_1") -> ConnectionStatus:
    return ConnectionStatus(connected_tools=[TOOL], connection_ids={TOOL: connection_id})


@pytest.fixture
def api():
    api = Mock()
    api.initiate = AsyncMock(return_value=ConnectionInitiation(redirect_url="https://auth.example.com/oauth"))
    api.status = AsyncMock(return_value=ConnectionStatus())
    api.disconnect = AsyncMock(return_value={"success": True})
    return api


@pytest.fixture
def notices():
    return []


def make_session(api, opener, notices, confirm=None):
    async def no_sleep(_):
        return None

    kwargs = {}
    if confirm is not None:
        kwargs["confirm"] = confirm
    return ConnectionSession(
        TOOL,
        "U1",
        api=api,
        opener=opener,
        notify=notices.append,
        sleep=no_sleep,
        popup_check_interval=0.01,
        **kwargs,
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_popup_blocked_fails_with_notice(api, notices):
    session = make_session(api, FakeOpener(popup=None), notices)

    state = await session.connect()

    assert state == SessionState.FAILED
    assert notices == [POPUP_BLOCKED_NOTICE]
    api.status.assert_not_awaited()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_popup_closed_without_message_fails(api, notices):
    session = make_session(api, FakeOpener(popup=FakePopup(closed=True)), notices)

    state = await session.connect()

    assert state == SessionState.FAILED
    assert session.last_error == POPUP_CLOSED_NOTICE


@pytest.mark.unit
@pytest.mark.asyncio
async def test_success_message_then_status_retry_connects(api, notices):
    """Test a status read lagging behind the popup is retried until connected."""
    popup = FakePopup()
    session = None

    def deliver():
        session.deliver_message({"type": "composio-oauth-complete", "success": True, "tool": TOOL, "userId": "U1"})

    api.status.side_effect = [ConnectionStatus(), ConnectionStatus(), connected("ca_42")]
    session = make_session(api, FakeOpener(popup=popup, on_open=deliver), notices)

    state = await session.connect()

    assert state == SessionState.CONNECTED
    assert session.connection_id == "ca_42"
    assert api.status.await_count == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_status_never_confirms_goes_idle_with_notice(api, notices):
    session = None

    def deliver():
        session.deliver_message({"type": "composio-oauth-complete", "success": True, "tool": TOOL})

    session = make_session(api, FakeOpener(popup=FakePopup(), on_open=deliver), notices)

    state = await session.connect()

    assert state == SessionState.IDLE
    assert api.status.await_count == 6
    assert "still finalizing" in notices[-1]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failure_message_fails(api, notices):
    session = None

    def deliver():
        session.deliver_message({"type": "composio-oauth-complete", "success": False, "tool": TOOL, "error": "denied"})

    session = make_session(api, FakeOpener(popup=FakePopup(), on_open=deliver), notices)

    assert await session.connect() == SessionState.FAILED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_messages_for_other_tools_ignored(api, notices):
    session = None

    def deliver():
        session.deliver_message({"type": "composio-oauth-complete", "success": True, "tool": "Slack"})
        session.deliver_message({"type": "something-else", "success": True, "tool": TOOL})
        popup.closed = True

    popup = FakePopup()
    session = make_session(api, FakeOpener(popup=popup, on_open=deliver), notices)

    assert await session.connect() == SessionState.FAILED
    assert session.last_error == POPUP_CLOSED_NOTICE


@pytest.mark.unit
@pytest.mark.asyncio
async def test_already_connected_skips_popup(api, notices):
    api.initiate.return_value = ConnectionInitiation(already_connected=True, connection_request_id="ca_old")
    opener = FakeOpener(popup=FakePopup())
    session = make_session(api, opener, notices)

    assert await session.connect() == SessionState.CONNECTED
    assert session.connection_id == "ca_old"
    assert opener.opened_urls == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_initiate_error_fails(api, notices):
    api.initiate.side_effect = ConnectionBrokerError("No auth config found for tool: Google Calendar", status_code=400)
    session = make_session(api, FakeOpener(popup=FakePopup()), notices)

    assert await session.connect() == SessionState.FAILED
    assert "No auth config found" in notices[-1]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_refresh_reads_status_once(api, notices):
    api.status.return_value = connected("ca_7")
    session = make_session(api, FakeOpener(), notices)

    assert await session.refresh() == SessionState.CONNECTED
    assert session.connection_id == "ca_7"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_disconnect_declined_stays_connected(api, notices):
    api.status.return_value = connected()
    session = make_session(api, FakeOpener(), notices, confirm=AsyncMock(return_value=False))
    await session.refresh()

    assert await session.disconnect() == SessionState.CONNECTED
    api.disconnect.assert_not_awaited()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_disconnect_confirmed_goes_idle(api, notices):
    api.status.return_value = connected("ca_1")
    session = make_session(api, FakeOpener(), notices, confirm=AsyncMock(return_value=True))
    await session.refresh()

    assert await session.disconnect() == SessionState.IDLE
    api.disconnect.assert_awaited_once_with("ca_1")
    assert session.connection_id is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_disconnect_error_returns_to_connected(api, notices):
    api.status.return_value = connected("ca_1")
    api.disconnect.side_effect = ConnectionBrokerError("Failed to delete connection")
    session = make_session(api, FakeOpener(), notices, confirm=AsyncMock(return_value=True))
    await session.refresh()

    assert await session.disconnect() == SessionState.CONNECTED
    assert session.connection_id == "ca_1"
    assert notices[-1].startswith("Failed to disconnect Google Calendar")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_disconnect_without_connection_id(api, notices):
    session = make_session(api, FakeOpener(), notices, confirm=AsyncMock(return_value=True))

    assert await session.disconnect() == SessionState.IDLE
    assert notices == [f"No connection ID found for {TOOL}."]
