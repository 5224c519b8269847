"""Prompt assembly for the answering model."""

from src.models.agent import AgentData

# (attribute on AgentSources, section header, footer label), in render order
SOURCE_SECTIONS = (
    ("calendar", "Calendar Events", "Calendar"),
    ("messaging", "Recent Slack Messages", "Slack"),
    ("issue_tracker", "Jira Tickets", "Jira"),
)


def build_system_prompt(display_name: str) -> str:
    return (
        f"You are an AI assistant representing {display_name}. "
        "Answer questions based on the provided data about their work. "
        "Be helpful and concise. If you don't have enough information, say so."
    )


def build_context(agent_data: AgentData, question: str) -> str:
    """
    Render the user prompt: a framing sentence followed by one bulleted
    section per non-empty data source, in calendar, Slack, Jira order.
    """
    context = (
        f"Based on the following information about {agent_data.display_name}, "
        f"answer this question: \"{question}\"\n\n"
    )

    for attr, header, _ in SOURCE_SECTIONS:
        items = getattr(agent_data.sources, attr)
        if not items:
            continue
        bullets = "\n".join(f"- {item}" for item in items)
        context += f"**{header}:**\n{bullets}\n\n"

    return context


def active_source_labels(agent_data: AgentData) -> list[str]:
    """Labels of the non-empty sources, for the answer footer."""
    return [
        label
        for attr, _, label in SOURCE_SECTIONS
        if getattr(agent_data.sources, attr)
    ]
