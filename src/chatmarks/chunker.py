"""Rule-based segmentation: split a conversation into fixed-size chronological chunks."""

from __future__ import annotations

from .classifier import extract_title, top_content_words
from .config import MAX_CHUNK_SIZE, MIN_CHUNK_SIZE, RULE_SEGMENT_SCORE, SUMMARY_CHARS
from .models import Message, TopicSegment


def chunk_size(total: int) -> int:
    return max(MIN_CHUNK_SIZE, min(MAX_CHUNK_SIZE, total // 3))


def _segment_title(chunk: list[Message], part: int) -> str:
    """Title a chunk, preferring its first user message, then first assistant message."""
    first_user = next((m for m in chunk if m.role == "user"), None)
    first_assistant = next((m for m in chunk if m.role == "assistant"), None)
    ordered = [m for m in (first_user, first_assistant) if m is not None]
    ordered += [m for m in chunk if m not in ordered]

    for msg in ordered:
        title = extract_title(msg.content)
        if title:
            return title

    words = top_content_words([m.content for m in chunk])
    if words:
        return "Discussion: " + ", ".join(w.capitalize() for w in words)
    return f"Conversation Part {part}"


def _segment_summary(chunk: list[Message]) -> str:
    first_user = next((m for m in chunk if m.role == "user"), None)
    if first_user is not None:
        content = first_user.content.strip()
        return content[:SUMMARY_CHARS] + ("..." if len(content) > SUMMARY_CHARS else "")
    return f"Discussion covering {len(chunk)} messages"


def segment_by_rules(messages: list[Message]) -> list[TopicSegment]:
    """Partition messages into contiguous chunks and title each one.

    Always succeeds and never calls out. Chunks with fewer than two messages
    (a trailing remainder) are not turned into segments.
    """
    if len(messages) < 2:
        return []

    size = chunk_size(len(messages))
    segments: list[TopicSegment] = []

    for start in range(0, len(messages), size):
        chunk = messages[start : start + size]
        if len(chunk) < 2:
            continue

        part = len(segments) + 1
        segments.append(
            TopicSegment(
                id=f"segment-{part}",
                chat_session_id=chunk[0].chat_session_id,
                start_message_id=chunk[0].id,
                end_message_id=chunk[-1].id,
                title=_segment_title(chunk, part),
                summary=_segment_summary(chunk),
                topic_score=RULE_SEGMENT_SCORE,
                message_count=len(chunk),
                created_at=chunk[0].created_at,
            )
        )

    return segments
