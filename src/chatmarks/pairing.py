"""Conversation pairing: expand messages to their request/response partners."""

from __future__ import annotations

from .config import LLM_CONTEXT_MESSAGES
from .models import Bookmark, Message


def pair_message_ids(message_ids: list[str], messages: list[Message]) -> list[str]:
    """Expand each target ID with its adjacent user/assistant partner.

    A user message pulls in the assistant reply directly after it; an assistant
    message pulls in the user message directly before it. IDs not present in
    ``messages`` are skipped. The result is deduplicated, in first-seen order.
    """
    index = {msg.id: i for i, msg in enumerate(messages)}
    paired: dict[str, None] = {}

    for msg_id in message_ids:
        i = index.get(msg_id)
        if i is None:
            continue
        msg = messages[i]
        paired[msg.id] = None

        if msg.role == "user" and i + 1 < len(messages) and messages[i + 1].role == "assistant":
            paired[messages[i + 1].id] = None
        if msg.role == "assistant" and i > 0 and messages[i - 1].role == "user":
            paired[messages[i - 1].id] = None

    return list(paired)


def get_messages_for_bookmark(bookmark: Bookmark, messages: list[Message]) -> list[Message]:
    """Messages a bookmark points to, with conversation partners, in chronological order.

    Bookmarks without message IDs fall back to messages mentioning any word of
    the bookmark's category.
    """
    if bookmark.message_ids:
        wanted = set(pair_message_ids(bookmark.message_ids, messages))
        return sorted((m for m in messages if m.id in wanted), key=lambda m: m.created_at)

    keywords = (bookmark.category or "").lower().replace("_", " ").split()
    if not keywords:
        return list(messages)
    return [m for m in messages if any(kw in m.content.lower() for kw in keywords)]


def build_llm_context(messages: list[Message], limit: int = LLM_CONTEXT_MESSAGES) -> str:
    """Format the last ``limit`` messages as a plain transcript for a chat model."""
    return "\n\n".join(
        f"{'User' if m.role == 'user' else 'Assistant'}: {m.content}"
        for m in messages[-limit:]
    )


def generate_chat_summary(first_message: str) -> str:
    """Short folder-style summary of a chat's opening message."""
    if len(first_message) <= 50:
        return first_message

    summary = ""
    for word in first_message.split(" "):
        if len(summary + word) > 47:
            break
        summary += (" " if summary else "") + word
    return f"{summary}..."
