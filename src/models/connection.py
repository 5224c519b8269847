"""Connection broker models (Composio connected accounts)."""

from enum import Enum
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


OAUTH_COMPLETE_MESSAGE_TYPE = "composio-oauth-complete"


class ConnectionRecord(BaseModel):
    """One connected account as reported by the broker."""
    id: str = Field(..., description="Connected account ID")
    status: Optional[str] = Field(None, description="Broker status, e.g. ACTIVE or INITIATED")
    auth_config_id: Optional[str] = Field(None, description="Auth config the account belongs to")

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"


class ConnectionStatus(BaseModel):
    """Payload of the connection-status endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    connected_tools: list[str] = Field(default_factory=list, alias="connectedTools")
    connection_ids: dict[str, str] = Field(default_factory=dict, alias="connectionIds")

    def is_connected(self, tool: str) -> bool:
        return tool in self.connected_tools


class ConnectionInitiation(BaseModel):
    """Payload of the connection-initiate endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    redirect_url: Optional[str] = Field(None, alias="redirectUrl")
    connection_request_id: Optional[str] = Field(None, alias="connectionRequestId")
    already_connected: bool = Field(False, alias="alreadyConnected")
    message: Optional[str] = None


class OAuthCompletionMessage(BaseModel):
    """Message the authorization popup posts back to its opener."""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["composio-oauth-complete"] = OAUTH_COMPLETE_MESSAGE_TYPE
    success: bool = False
    tool: str
    user_id: Optional[str] = Field(None, alias="userId")
    error: Optional[str] = None


class SessionState(str, Enum):
    """Lifecycle of one client-side connection attempt."""
    IDLE = "idle"
    CONNECTING = "connecting"
    AWAITING_POPUP_RESULT = "awaiting_popup_result"
    POLLING_STATUS = "polling_status"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    FAILED = "failed"
