"""Timeline bookmarks: one per topic segment, plus a few notable key moments."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from .classifier import (
    categorize,
    extract_code_title,
    extract_decision_title,
    extract_question_title,
)
from .config import LONG_ANSWER_CHARS, MAX_KEY_MOMENTS, QUESTION_MOMENT_CHARS
from .generation import Generator
from .models import EnhancedBookmark, KeyMoment, Message
from .segmenter import TopicSegmenter

logger = logging.getLogger(__name__)

QUESTION_DEPTH_WORDS = ("complex", "detailed", "specific", "technical")
DECISION_PATTERNS: list[tuple[str, tuple[str, ...]]] = [
    ("conclusion", ("therefore", "final")),
    ("recommend", ("should",)),
    ("solution", ("implement",)),
    ("decision", ("choose",)),
]
NOVELTY_WORDS = ("new", "create", "build", "implement")


def _describe(content: str, limit: int = 100) -> str:
    content = content.strip()
    return content[:limit] + ("..." if len(content) > limit else "")


def _progress(position: int, total: int) -> float:
    return position / max(total - 1, 1)


def is_question_moment(message: Message) -> bool:
    lowered = message.content.lower()
    return (
        message.role == "user"
        and "?" in message.content
        and len(message.content) > QUESTION_MOMENT_CHARS
        and any(w in lowered for w in QUESTION_DEPTH_WORDS)
    )


def is_decision_moment(message: Message) -> bool:
    if message.role != "assistant" or len(message.content) <= LONG_ANSWER_CHARS:
        return False
    lowered = message.content.lower()
    return any(
        term in lowered and any(c in lowered for c in context)
        for term, context in DECISION_PATTERNS
    )


def is_code_moment(message: Message) -> bool:
    lowered = message.content.lower()
    return (
        ("```" in message.content or "implementation" in lowered)
        and len(message.content) > LONG_ANSWER_CHARS
        and any(w in lowered for w in NOVELTY_WORDS)
    )


def _is_repeat_decision(title: str, seen: set[str]) -> bool:
    lowered = title.lower()
    return any(lowered in s or s in lowered for s in seen)


async def _decision_or_code(message: Message, generator: Generator | None,
                            decision_titles: set[str]) -> tuple[str, str | None]:
    """Classify a non-question message; a repeated decision may still count as code."""
    if is_decision_moment(message):
        title = await extract_decision_title(message.content, generator)
        if not _is_repeat_decision(title, decision_titles):
            decision_titles.add(title.lower())
            return title, "decision"
        logger.debug("Repeated decision %r, checking for code instead", title)
    if is_code_moment(message):
        return extract_code_title(message.content), "code"
    return "", None


async def detect_key_moments(messages: list[Message], exclude: set[str] | None = None,
                             generator: Generator | None = None,
                             limit: int = MAX_KEY_MOMENTS) -> list[KeyMoment]:
    """Scan once for substantial questions, decisions and new code.

    Each message yields at most one moment. Messages in ``exclude`` are
    skipped. A decision whose title overlaps an earlier one only counts if
    the message also qualifies as new code.
    """
    exclude = exclude or set()
    moments: list[KeyMoment] = []
    decision_titles: set[str] = set()

    for index, message in enumerate(messages):
        if len(moments) >= limit:
            break
        if message.id in exclude:
            continue

        if is_question_moment(message):
            title = extract_question_title(message.content) or "Important Question"
            kind = "question"
        else:
            title, kind = await _decision_or_code(message, generator, decision_titles)
            if kind is None:
                continue

        moments.append(KeyMoment(
            kind=kind,
            message_id=message.id,
            message_index=index,
            title=title,
            description=_describe(message.content),
        ))

    return moments


class EnhancedBookmarkSynthesizer:
    """Builds the timeline view of a conversation.

    Nothing here is persisted; the result is rebuilt from the messages on
    every call, ordered by position in the conversation.
    """

    def __init__(self, segmenter: TopicSegmenter, generator: Generator | None = None,
                 max_key_moments: int = MAX_KEY_MOMENTS):
        self.segmenter = segmenter
        self.generator = generator
        self.max_key_moments = max_key_moments

    async def generate_enhanced_bookmarks(self, chat_session_id: str, messages: list[Message],
                                          user_id: str = "") -> list[EnhancedBookmark]:
        if len(messages) < 2:
            return []

        try:
            segments = await self.segmenter.detect_topic_segments(messages)
        except Exception:
            logger.warning("Topic segmentation failed for %s", chat_session_id, exc_info=True)
            return []

        total = len(messages)
        index = {m.id: i for i, m in enumerate(messages)}
        now = datetime.now(timezone.utc)
        bookmarks: list[EnhancedBookmark] = []
        used: set[str] = set()

        for n, segment in enumerate(segments):
            position = index.get(segment.start_message_id)
            if position is None:
                logger.warning("Segment %s starts at unknown message %s, skipping",
                               segment.id, segment.start_message_id)
                continue
            # A message anchors at most one timeline entry
            if segment.start_message_id in used:
                logger.debug("Segment %s starts at already bookmarked message %s, skipping",
                             segment.id, segment.start_message_id)
                continue
            used.add(segment.start_message_id)

            related = [m.id for m in messages[position : position + segment.message_count]]
            bookmarks.append(EnhancedBookmark(
                id=f"enhanced-bookmark-{n + 1}",
                chat_session_id=chat_session_id,
                user_id=user_id,
                title=segment.title,
                description=segment.summary,
                category=categorize(segment.title, segment.summary),
                message_ids=[segment.start_message_id],
                created_at=(now - timedelta(minutes=len(segments) - n)).isoformat(),
                topic_segment_id=segment.id,
                message_position=position,
                conversation_progress=_progress(position, total),
                segment_context=segment,
                related_messages=related,
            ))

        try:
            moments = await detect_key_moments(
                messages, exclude=used, generator=self.generator, limit=self.max_key_moments
            )
        except Exception:
            logger.warning("Key moment detection failed for %s", chat_session_id, exc_info=True)
            moments = []

        for n, moment in enumerate(moments):
            bookmarks.append(EnhancedBookmark(
                id=f"key-moment-{n + 1}",
                chat_session_id=chat_session_id,
                user_id=user_id,
                title=moment.title,
                description=moment.description,
                category="key-moment",
                keywords=[moment.kind],
                message_ids=[moment.message_id],
                created_at=(now - timedelta(seconds=30 * (len(moments) - n))).isoformat(),
                message_position=moment.message_index,
                conversation_progress=_progress(moment.message_index, total),
                related_messages=[moment.message_id],
            ))

        return sorted(bookmarks, key=lambda b: b.message_position)
