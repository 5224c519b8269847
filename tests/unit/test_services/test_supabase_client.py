"""Tests for the Supabase agent profile query."""

import pytest
from unittest.mock import MagicMock, patch

from src.services.supabase_client import get_agent_profile, is_supabase_configured
from src.utils.errors import SupabaseError


def mock_client_with(data=None, error=None):
    mock_client = MagicMock()
    mock_query = MagicMock()
    mock_query.select.return_value = mock_query
    mock_query.eq.return_value = mock_query
    mock_query.limit.return_value = mock_query
    if error is not None:
        mock_query.execute.side_effect = error
    else:
        mock_query.execute.return_value = MagicMock(data=data)
    mock_client.table.return_value = mock_query
    return mock_client, mock_query


@pytest.mark.unit
def test_is_supabase_configured(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    assert is_supabase_configured() is False

    monkeypatch.setenv("SUPABASE_URL", "https://test.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "test-key")
    assert is_supabase_configured() is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_agent_profile_found():
    row = {"slack_user_id": "U1", "name": "john"}
    mock_client, mock_query = mock_client_with(data=[row])

    with patch('src.services.supabase_client.get_supabase_client', return_value=mock_client):
        result = await get_agent_profile("U1")

    assert result == row
    mock_client.table.assert_called_once_with("agent_profiles")
    mock_query.eq.assert_called_once_with("slack_user_id", "U1")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_agent_profile_missing():
    mock_client, _ = mock_client_with(data=[])

    with patch('src.services.supabase_client.get_supabase_client', return_value=mock_client):
        assert await get_agent_profile("U1") is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_agent_profile_error():
    mock_client, _ = mock_client_with(error=RuntimeError("boom"))

    with patch('src.services.supabase_client.get_supabase_client', return_value=mock_client):
        with pytest.raises(SupabaseError):
            await get_agent_profile("U1")
