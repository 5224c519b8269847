"""Tests for the connection broker endpoints."""

import json

import pytest
from unittest.mock import AsyncMock, Mock, patch

from api.composio import callback, connect, disconnect, status
from src.models.connection import ConnectionInitiation, ConnectionStatus
from src.utils.errors import ConnectionBrokerError, UnknownToolError
from tests.utils.helpers import build_handler, response_header, response_json, response_status, response_text


@pytest.fixture
def service():
    service = Mock()
    service.get_connection_status = AsyncMock(
        return_value=ConnectionStatus(connected_tools=["Slack"], connection_ids={"Slack": "ca_1"})
    )
    service.initiate_connection = AsyncMock(
        return_value=ConnectionInitiation(redirect_url="https://auth.example.com", connection_request_id="ca_2")
    )
    service.disconnect_connection = AsyncMock(
        return_value={"success": True, "message": "Connection deleted successfully"}
    )
    service.complete_connection = AsyncMock(return_value=True)
    with patch("api.composio.status.get_connection_service", return_value=service), \
         patch("api.composio.connect.get_connection_service", return_value=service), \
         patch("api.composio.disconnect.get_connection_service", return_value=service), \
         patch("api.composio.callback.get_connection_service", return_value=service):
        yield service


@pytest.mark.unit
def test_status_endpoint(service):
    h = build_handler(status.handler, "GET", "/api/composio/status?user=U1")

    h.do_GET()

    assert response_status(h) == 200
    assert response_json(h) == {"connectedTools": ["Slack"], "connectionIds": {"Slack": "ca_1"}}
    service.get_connection_status.assert_awaited_once_with("U1")


@pytest.mark.unit
def test_status_endpoint_requires_user(service):
    h = build_handler(status.handler, "GET", "/api/composio/status")

    h.do_GET()

    assert response_status(h) == 400


@pytest.mark.unit
def test_connect_endpoint(service):
    h = build_handler(connect.handler, "GET", "/api/composio/connect?tool=Google%20Calendar&user=U1")

    h.do_GET()

    assert response_status(h) == 200
    assert response_json(h) == {
        "redirectUrl": "https://auth.example.com",
        "connectionRequestId": "ca_2",
        "alreadyConnected": False,
    }
    service.initiate_connection.assert_awaited_once_with("Google Calendar", "U1")


@pytest.mark.unit
def test_connect_endpoint_unknown_tool(service):
    service.initiate_connection.side_effect = UnknownToolError("Notion")
    h = build_handler(connect.handler, "GET", "/api/composio/connect?tool=Notion&user=U1")

    h.do_GET()

    assert response_status(h) == 400
    assert response_json(h) == {"error": "No auth config found for tool: Notion"}


@pytest.mark.unit
def test_disconnect_endpoint(service):
    h = build_handler(disconnect.handler, "DELETE", "/api/composio/disconnect?connectionId=ca_1")

    h.do_DELETE()

    assert response_status(h) == 200
    assert response_json(h)["success"] is True
    service.disconnect_connection.assert_awaited_once_with("ca_1")


@pytest.mark.unit
def test_disconnect_endpoint_failure(service):
    service.disconnect_connection.side_effect = ConnectionBrokerError("down")
    h = build_handler(disconnect.handler, "DELETE", "/api/composio/disconnect?connectionId=ca_1")

    h.do_DELETE()

    assert response_status(h) == 500
    assert response_json(h) == {"error": "Failed to delete connection"}


@pytest.mark.unit
def test_callback_missing_params_redirects(service):
    h = build_handler(callback.handler, "GET", "/api/composio/callback?user=U1")

    h.do_GET()

    assert response_status(h) == 302
    assert response_header(h, "Location") == "/setup?user=U1&error=missing_params"
    service.complete_connection.assert_not_awaited()


@pytest.mark.unit
def test_callback_posts_completion_message(service):
    h = build_handler(
        callback.handler, "GET", "/api/composio/callback?user=U1&tool=Slack&connectionRequestId=ca_2"
    )

    h.do_GET()

    assert response_status(h) == 200
    html = response_text(h)
    assert "window.opener.postMessage" in html
    assert '"type": "composio-oauth-complete"' in html
    assert '"success": true' in html
    service.complete_connection.assert_awaited_once_with("U1", "Slack", "ca_2")


@pytest.mark.unit
def test_callback_page_escapes_values():
    html = callback.render_callback_page("U1", "</script><script>alert(1)</script>", success=False, error="x")

    assert "</script><script>" not in html
    payload = html.split("postMessage(")[1].split(", '*')")[0]
    assert json.loads(payload)["tool"] == "</script><script>alert(1)</script>"
