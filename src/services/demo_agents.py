"""Bundled demo agents, used until a teammate's tools are really connected.

Replace the keys with real Slack member IDs (profile -> More -> Copy member ID).
"""

from typing import Optional

from src.models.agent import AgentData, AgentSources


DEMO_AGENTS: dict[str, AgentData] = {
    "U12345": AgentData(
        name="john",
        display_name="John Smith",
        is_demo=True,
        sources=AgentSources(
            calendar=[
                "Mon 2pm: Sprint Planning Meeting",
                "Tue 10am: Client Demo - Acme Corp",
                "Wed 3pm: 1-on-1 with Sarah",
                "Thu 11am: Architecture Review",
                "Fri 3pm: Team Retrospective",
            ],
            messaging=[
                "[#engineering] Working on the new authentication API",
                "[#project-alpha] Status update: 80% complete, shipping Friday",
                "[#general] Out of office tomorrow afternoon",
                "[#backend] Fixed the performance issue in production",
            ],
            issue_tracker=[
                "PROJ-123: Implement OAuth 2.0 authentication (In Progress)",
                "PROJ-124: Fix mobile responsiveness on login page (Done)",
                "PROJ-125: Add rate limiting to API endpoints (To Do)",
                "PROJ-126: Update user profile UI (In Review)",
            ],
        ),
    ),
    "U67890": AgentData(
        name="sarah",
        display_name="Sarah Johnson",
        is_demo=True,
        sources=AgentSources(
            calendar=[
                "Mon 9am: Design Review",
                "Tue 11am: Design Review with Product",
                "Wed 2pm: User Research Session",
                "Thu 3pm: 1-on-1 with CEO",
                "Fri 10am: Design System Workshop",
            ],
            messaging=[
                "[#design] New mockups ready for the dashboard redesign",
                "[#product] User feedback from last week's interviews",
                "[#general] Working from home today",
            ],
            issue_tracker=[
                "PROJ-200: Homepage redesign (In Review)",
                "PROJ-201: Mobile app icon refresh (Done)",
                "PROJ-202: Design system documentation (In Progress)",
            ],
        ),
    ),
}


def get_demo_agent(user_id: str) -> Optional[AgentData]:
    return DEMO_AGENTS.get(user_id)
