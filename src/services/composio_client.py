"""Composio connected-accounts adapter over the REST API."""

import os
from typing import Any, Optional

import httpx

from src.models.connection import ConnectionRecord
from src.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

DEFAULT_BASE_URL = "https://backend.composio.dev/api/v3"
DEFAULT_TIMEOUT_SECONDS = 15.0

MULTIPLE_ACCOUNTS_CODES = ("TS-SDK::MULTIPLE_CONNECTED_ACCOUNTS", "MULTIPLE_CONNECTED_ACCOUNTS")


class ComposioError(Exception):
    """Composio API call failed."""

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code

    @property
    def is_multiple_accounts(self) -> bool:
        if self.code and any(marker in self.code.upper() for marker in MULTIPLE_ACCOUNTS_CODES):
            return True
        return "multiple connected accounts" in str(self).lower()


def extract_auth_config_id(record: dict) -> Optional[str]:
    """Auth config id appears under different keys depending on the endpoint."""
    auth_config = record.get("auth_config")
    nested = auth_config.get("id") if isinstance(auth_config, dict) else None
    return record.get("authConfigId") or record.get("auth_config_id") or nested


def to_connection_record(record: dict) -> Optional[ConnectionRecord]:
    connection_id = record.get("id") or record.get("nanoid") or record.get("connected_account_id")
    if not connection_id:
        return None
    return ConnectionRecord(
        id=str(connection_id),
        status=record.get("status"),
        auth_config_id=extract_auth_config_id(record),
    )


class ComposioClient:
    """Async client for initiate / list / get / delete of connected accounts."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key or os.environ.get("COMPOSIO_API_KEY", "").strip()
        self.base_url = (base_url or os.environ.get("COMPOSIO_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")
        self._http_client = http_client

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if not self.api_key:
            raise ComposioError("COMPOSIO_API_KEY not set")

        headers = {"x-api-key": self.api_key, "Accept": "application/json"}
        url = f"{self.base_url}{path}"
        try:
            if self._http_client is not None:
                response = await self._http_client.request(method, url, headers=headers, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT_SECONDS) as client:
                    response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise ComposioError(f"Composio request failed: {e}") from e

        if response.status_code >= 400:
            raise self._error_from_response(response)

        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _error_from_response(response: httpx.Response) -> ComposioError:
        message = f"Composio returned HTTP {response.status_code}"
        code = None
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            error = payload.get("error", payload)
            if isinstance(error, dict):
                message = error.get("message") or message
                code = error.get("slug") or error.get("code")
            elif isinstance(error, str):
                message = error
        return ComposioError(message, code=str(code) if code else None, status_code=response.status_code)

    async def initiate(self, user_id: str, auth_config_id: str, callback_url: Optional[str] = None) -> dict:
        """Start an OAuth connection; returns {"id", "redirect_url"}."""
        connection: dict[str, Any] = {"user_id": user_id}
        if callback_url:
            connection["callback_url"] = callback_url
        payload = await self._request(
            "POST",
            "/connected_accounts",
            json={"auth_config": {"id": auth_config_id}, "connection": connection},
        )
        logger.info(
            "Composio connection initiated",
            slack_user_id=mask_user_id(user_id),
            auth_config_id=auth_config_id,
            connection_id=payload.get("id")
        )
        return {
            "id": payload.get("id") or payload.get("connectionRequestId"),
            "redirect_url": payload.get("redirect_url") or payload.get("redirectUrl") or payload.get("redirect_uri"),
        }

    async def list(self, user_id: str) -> list[ConnectionRecord]:
        payload = await self._request("GET", "/connected_accounts", params={"user_ids": user_id})
        items = payload if isinstance(payload, list) else (payload or {}).get("items") or []
        records = []
        for item in items:
            if not isinstance(item, dict):
                continue
            record = to_connection_record(item)
            if record is not None:
                records.append(record)
        return records

    async def get(self, connection_id: str) -> Optional[ConnectionRecord]:
        payload = await self._request("GET", f"/connected_accounts/{connection_id}")
        return to_connection_record(payload) if isinstance(payload, dict) else None

    async def delete(self, connection_id: str) -> None:
        await self._request("DELETE", f"/connected_accounts/{connection_id}")
        logger.info("Composio connection deleted", connection_id=connection_id)


# Global client instance
_composio_client: Optional[ComposioClient] = None


def get_composio_client() -> ComposioClient:
    """Get or create the Composio client singleton."""
    global _composio_client
    if _composio_client is None:
        _composio_client = ComposioClient()
    return _composio_client
