"""Error handling utilities."""

from typing import Optional


class DoppelError(Exception):
    """Base exception for the Doppel backend."""
    pass


class SlackVerificationError(DoppelError):
    """Slack signature verification failed."""
    pass


class MalformedRequestError(DoppelError):
    """Inbound webhook body could not be parsed."""
    pass


class UnresolvedMentionError(DoppelError):
    """Mention text did not name a target user and a question."""
    pass


class UnknownTargetUserError(DoppelError):
    """Target user has no agent data."""

    def __init__(self, user_id: str):
        super().__init__(f"No agent data for user {user_id}")
        self.user_id = user_id


class LLMError(DoppelError):
    """Language model call failed or returned nothing usable."""
    pass


class FormatFailureError(DoppelError):
    """Rich-format Slack update was rejected."""
    pass


class ConnectionBrokerError(DoppelError):
    """Connection broker (Composio) operation failed."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class UnknownToolError(ConnectionBrokerError):
    """Tool name has no auth config mapping."""

    def __init__(self, tool: str):
        super().__init__(f"No auth config found for tool: {tool}", status_code=400)
        self.tool = tool


class MultipleActiveConnectionsError(ConnectionBrokerError):
    """Broker refused to initiate because accounts already exist."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message, status_code=409)
        self.code = code


class PopupBlockedError(DoppelError):
    """Authorization window could not be opened."""
    pass


class UserClosedPopupError(DoppelError):
    """Authorization window closed without reporting a result."""
    pass


class SupabaseError(DoppelError):
    """Supabase operation error."""
    pass
