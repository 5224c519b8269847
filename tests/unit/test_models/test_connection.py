"""Tests for connection models."""

import pytest

from src.models.connection import ConnectionInitiation, ConnectionRecord, ConnectionStatus, OAuthCompletionMessage


@pytest.mark.unit
def test_connection_record_only_active_counts():
    assert ConnectionRecord(id="ca_1", status="ACTIVE").is_active
    assert not ConnectionRecord(id="ca_1", status="INITIATED").is_active
    assert not ConnectionRecord(id="ca_1").is_active


@pytest.mark.unit
def test_connection_status_accepts_camel_case():
    status = ConnectionStatus.model_validate({"connectedTools": ["Slack"], "connectionIds": {"Slack": "ca_1"}})

    assert status.is_connected("Slack")
    assert not status.is_connected("Linear")


@pytest.mark.unit
def test_connection_initiation_aliases():
    initiation = ConnectionInitiation.model_validate({"redirectUrl": "https://x", "connectionRequestId": "ca_1"})

    assert initiation.redirect_url == "https://x"
    assert initiation.model_dump(by_alias=True, exclude_none=True) == {
        "redirectUrl": "https://x",
        "connectionRequestId": "ca_1",
        "alreadyConnected": False,
    }


@pytest.mark.unit
def test_oauth_completion_message_serialization():
    message = OAuthCompletionMessage(tool="Slack", user_id="U1", success=True)

    assert message.model_dump(by_alias=True, exclude_none=True) == {
        "type": "composio-oauth-complete",
        "success": True,
        "tool": "Slack",
        "userId": "U1",
    }
