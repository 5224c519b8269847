"""Answer generation for bot mentions.

One invocation walks a fixed sequence of states:

    parsing -> rejected | resolving
    resolving -> user_unknown | found
    found -> thinking -> answered | failed

A placeholder ("thinking") message is posted once and then updated exactly
once with either the answer or an apology. Nothing escapes ``handle``.
"""

import re
from typing import Optional

from src.models.agent import AgentData
from src.models.slack_event import MentionEvent, ParsedMention
from src.services.agent_directory import AgentDirectory
from src.services.context_builder import active_source_labels, build_context, build_system_prompt
from src.services.llm_client import LLMClient
from src.services.mention_parser import parse_mention
from src.services.slack_client import SlackClient
from src.utils.errors import FormatFailureError, UnknownTargetUserError, UnresolvedMentionError
from src.utils.logging import get_structured_logger, log_timing, mask_user_id, sanitize_message_text

logger = get_structured_logger(__name__)

HELP_TEXT = (
    "❓ I couldn't understand that. Try:\n"
    "`@Team Agent Bot ask @john what is he working on?`"
)
ERROR_TEXT = "❌ Sorry, I encountered an error. Please try again."

# Slack rejects section text over 3000 chars; the header and marker need room
ANSWER_CHAR_BUDGET = 2800
TRUNCATION_MARKER = "… _(truncated)_"

CODE_FENCE_PATTERN = re.compile(r"```(?:[A-Za-z0-9_+-]*\n)?(.*?)```", re.DOTALL)


def truncate_answer(answer: str, budget: int = ANSWER_CHAR_BUDGET) -> str:
    if len(answer) <= budget:
        return answer
    keep = max(budget - len(TRUNCATION_MARKER), 0)
    return answer[:keep].rstrip() + TRUNCATION_MARKER


def _inline_code(match: re.Match) -> str:
    body = " ".join(line.strip() for line in match.group(1).strip().splitlines() if line.strip())
    return f"`{body}`" if body else ""


def neutralize_code_fences(answer: str) -> str:
    """Turn ```fenced``` blocks into `inline` code; drop any unmatched fences."""
    answer = CODE_FENCE_PATTERN.sub(_inline_code, answer)
    return answer.replace("```", "`")


def format_answer(answer: str) -> str:
    # Fences first, so a cut never strands half a fence
    return truncate_answer(neutralize_code_fences(answer.strip()))


def not_set_up_text(user_name: str) -> str:
    return (
        f"😕 {user_name} hasn't set up their agent yet. "
        "They can use `/setup-agent` to get started!"
    )


def thinking_text(display_name: str) -> str:
    return f"Asking {display_name}'s agent..."


def sources_footer(agent_data: AgentData) -> str:
    footer = f"📎 Sources: {', '.join(active_source_labels(agent_data))}"
    if agent_data.is_demo:
        footer = f"📊 Demo Mode | {footer}"
    return footer


def build_answer_blocks(agent_data: AgentData, answer: str) -> list[dict]:
    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"🤖 *{agent_data.display_name}'s Agent:*\n\n{answer}",
            },
        },
        {
            "type": "context",
            "elements": [
                {"type": "mrkdwn", "text": sources_footer(agent_data)},
            ],
        },
    ]


def build_plain_answer(agent_data: AgentData, answer: str) -> str:
    return (
        f"{agent_data.display_name}'s Agent:\n\n{answer}\n\n"
        f"Sources: {', '.join(active_source_labels(agent_data))}"
    )


class AnswerGenerator:
    """Answers "@bot ask @teammate <question>" mentions in-thread."""

    def __init__(self, slack: SlackClient, llm: LLMClient, agents: AgentDirectory):
        self.slack = slack
        self.llm = llm
        self.agents = agents

    async def handle(self, event: MentionEvent) -> None:
        """Run one mention through to a visible thread reply. Never raises."""
        try:
            await self._handle(event)
        except Exception as e:
            # Failures before a placeholder exists have nothing to update
            logger.error(
                "Error handling mention before placeholder was posted",
                channel_id=event.channel_id,
                message_ts=event.message_ts,
                error=str(e),
                exc_info=True
            )

    async def _handle(self, event: MentionEvent) -> None:
        channel = event.channel_id
        thread_ts = event.message_ts

        logger.info(
            "Handling mention",
            state="parsing",
            channel_id=channel,
            message_ts=thread_ts,
            message_preview=sanitize_message_text(event.text, max_length=100)
        )
        try:
            parsed, agent_data = await self._resolve(event)
        except UnresolvedMentionError as e:
            logger.warning("Mention missing target user or question", state="rejected", reason=str(e))
            await self.slack.post_message(channel, thread_ts, HELP_TEXT)
            return
        except UnknownTargetUserError as e:
            logger.warning(
                "No agent data found",
                state="user_unknown",
                target_user_id=mask_user_id(e.user_id),
                available_agent_ids=self.agents.known_ids()
            )
            user_name = await self._lookup_user_name(e.user_id)
            display = f"@{user_name}" if user_name else f"<@{e.user_id}>"
            await self.slack.post_message(channel, thread_ts, not_set_up_text(display))
            return

        target_user_id = parsed.target_user_id
        logger.info(
            "Found agent data",
            state="found",
            target_user_id=mask_user_id(target_user_id),
            sources=active_source_labels(agent_data)
        )

        placeholder_ts = await self.slack.post_message(channel, thread_ts, thinking_text(agent_data.display_name))
        logger.debug("Posted thinking message", state="thinking", placeholder_ts=placeholder_ts)

        try:
            await self._answer(channel, placeholder_ts, agent_data, parsed.question)
        except Exception as e:
            logger.error(
                "Error generating answer",
                state="failed",
                channel_id=channel,
                target_user_id=mask_user_id(target_user_id),
                question=sanitize_message_text(parsed.question, max_length=200),
                error=str(e),
                exc_info=True
            )
            await self._report_failure(channel, placeholder_ts)

    async def _resolve(self, event: MentionEvent) -> tuple[ParsedMention, AgentData]:
        parsed = parse_mention(event.text)
        if not parsed.target_user_id:
            raise UnresolvedMentionError("no target user mentioned")
        if not parsed.question:
            raise UnresolvedMentionError("no question after the mention")

        agent_data = await self.agents.get(parsed.target_user_id)
        if agent_data is None:
            raise UnknownTargetUserError(parsed.target_user_id)
        return parsed, agent_data

    async def _lookup_user_name(self, user_id: str) -> Optional[str]:
        # The nudge goes out with a raw mention if the lookup fails
        try:
            return await self.slack.get_user_name(user_id)
        except Exception as e:
            logger.warning("User name lookup failed", target_user_id=mask_user_id(user_id), error=str(e))
            return None

    async def _answer(self, channel: str, placeholder_ts: str, agent_data: AgentData, question: str) -> None:
        context = build_context(agent_data, question)
        logger.debug("Context built", context_length=len(context))

        raw_answer = await self.llm.generate(build_system_prompt(agent_data.display_name), context)
        answer = format_answer(raw_answer)

        try:
            await self._update_rich(channel, placeholder_ts, agent_data, answer)
        except FormatFailureError as e:
            logger.warning("Rich answer update failed, falling back to plain text", error=str(e))
            await self.slack.update_message(channel, placeholder_ts, build_plain_answer(agent_data, answer))

        logger.info("Answered mention", state="answered", channel_id=channel, placeholder_ts=placeholder_ts)

    async def _update_rich(self, channel: str, placeholder_ts: str, agent_data: AgentData, answer: str) -> None:
        try:
            with log_timing("slack_update_answer", logger=logger, channel_id=channel):
                await self.slack.update_message(
                    channel,
                    placeholder_ts,
                    answer,
                    blocks=build_answer_blocks(agent_data, answer),
                )
        except Exception as e:
            raise FormatFailureError(str(e)) from e

    async def _report_failure(self, channel: str, placeholder_ts: Optional[str]) -> None:
        if not placeholder_ts:
            logger.error("No placeholder to update with error text", channel_id=channel)
            return
        try:
            await self.slack.update_message(channel, placeholder_ts, ERROR_TEXT)
        except Exception as e:
            # Placeholder stays as "thinking"; nothing else to do
            logger.error(
                "Failed to post error update",
                channel_id=channel,
                placeholder_ts=placeholder_ts,
                error=str(e)
            )
