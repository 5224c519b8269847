"""Agent data model - the per-teammate bundle the context builder consumes."""

from pydantic import BaseModel, Field


class AgentSources(BaseModel):
    """Raw lines pulled from each connected tool, newest first."""
    calendar: list[str] = Field(default_factory=list, description="Calendar event lines")
    messaging: list[str] = Field(default_factory=list, description="Recent Slack message lines")
    issue_tracker: list[str] = Field(default_factory=list, description="Jira ticket lines")


class AgentData(BaseModel):
    """Aggregated tool data for one Slack user."""
    name: str = Field(..., description="Short handle, e.g. john")
    display_name: str = Field(..., description="Full display name")
    sources: AgentSources = Field(default_factory=AgentSources)
    is_demo: bool = Field(False, description="True when served from bundled demo data")
