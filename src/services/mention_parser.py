"""Mention parsing - pull the target teammate and question out of mention text."""

import re

from src.models.slack_event import ParsedMention
from src.utils.logging import get_structured_logger, sanitize_message_text

logger = get_structured_logger(__name__)

# <@U12345> or <@U12345|john>
USER_MENTION_PATTERN = re.compile(r"<@([UW][A-Z0-9]+)(?:\|[^>]*)?>")
ANY_MENTION_PATTERN = re.compile(r"<@[^>]+>")
FILLER_WORDS_PATTERN = re.compile(r"\b(?:agent|ask)\b", re.IGNORECASE)
WHITESPACE_PATTERN = re.compile(r"\s+")


def extract_mentions(text: str) -> list[str]:
    """Return the bare user IDs mentioned in text, in order of appearance."""
    if not text:
        return []
    return USER_MENTION_PATTERN.findall(text)


def contains_mention(text: str, user_id: str) -> bool:
    """True if text mentions the given user ID."""
    if not text or not user_id:
        return False
    return user_id in extract_mentions(text)


def parse_mention(text: str) -> ParsedMention:
    """
    Parse bot mention text into target user and question.

    The first mention is taken to be the bot and the second the target,
    by position. "@bot ask @john what is he working on?" yields
    target=john's ID and question="what is he working on?".
    """
    mentions = extract_mentions(text or "")

    target_user_id = mentions[1] if len(mentions) > 1 else None

    question = ANY_MENTION_PATTERN.sub("", text or "")
    question = FILLER_WORDS_PATTERN.sub("", question)
    question = WHITESPACE_PATTERN.sub(" ", question).strip()

    logger.info(
        "Message parsed",
        target_user_id=target_user_id,
        mention_count=len(mentions),
        question_preview=sanitize_message_text(question, max_length=100),
    )

    return ParsedMention(target_user_id=target_user_id, question=question)
