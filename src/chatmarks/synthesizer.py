"""Keyword-tag bookmarks: one short topic keyword per significant user message.

New messages either join an existing bookmark (fuzzy title/description match,
or an identical keyword) or start a new one. Re-running over the same messages
is a no-op because every processed message ends up in some bookmark's
``message_ids``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone

from .classifier import KEYWORD_SCHEMA, is_significant
from .config import (
    MATCH_DESCRIPTION_IN_MESSAGE,
    MATCH_MESSAGE_IN_DESCRIPTION,
    MATCH_MESSAGE_IN_TITLE,
    MATCH_THRESHOLD,
    MATCH_TITLE_IN_MESSAGE,
    MATCH_WORD_OVERLAP,
)
from .generation import Generator
from .models import Bookmark, Message
from .pairing import pair_message_ids
from .storage import RecordStore

logger = logging.getLogger(__name__)

KEYWORD_PROMPT = """You are an assistant that extracts a concise topic keyword from a single message.
Given the message below, return a single short keyword or phrase (1-3 words) that best represents the topic discussed.
Return JSON only with a top-level key named "keyword" (string).
Do NOT return any extra explanation or text.

Message:
{content}

Respond with JSON only."""


def score_bookmark_match(content: str, bookmark: Bookmark) -> int:
    """Relevance of a bookmark to a message; 0 unless title or description containment holds."""
    message = content.lower()
    title = bookmark.title.lower()
    description = (bookmark.description or "").lower()

    title_in_message = bool(title) and title in message
    message_in_title = bool(message) and message in title
    description_in_message = bool(description) and description in message
    message_in_description = bool(description) and bool(message) and message in description

    if not (title_in_message or message_in_title or description_in_message or message_in_description):
        return 0

    score = 0
    if title_in_message:
        score += MATCH_TITLE_IN_MESSAGE
    if message_in_title:
        score += MATCH_MESSAGE_IN_TITLE
    if description_in_message:
        score += MATCH_DESCRIPTION_IN_MESSAGE
    if message_in_description:
        score += MATCH_MESSAGE_IN_DESCRIPTION

    title_words = title.split()
    for word in message.split():
        if len(word) > 2 and any(tw in word or word in tw for tw in title_words):
            score += MATCH_WORD_OVERLAP

    return score


def find_best_bookmark(content: str, candidates: list[Bookmark]) -> Bookmark | None:
    """Highest-scoring candidate at or above the match threshold, first one on ties."""
    best: Bookmark | None = None
    best_score = 0
    for bookmark in candidates:
        score = score_bookmark_match(content, bookmark)
        if score > best_score:
            best, best_score = bookmark, score
    if best is not None and best_score >= MATCH_THRESHOLD:
        return best
    return None


def slugify(keyword: str) -> str:
    return "_".join(keyword.lower().split())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BookmarkSynthesizer:
    """Creates and extends keyword bookmarks for a chat session."""

    def __init__(self, store: RecordStore, generator: Generator):
        self.store = store
        self.generator = generator
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    def _lock(self, chat_session_id: str, user_id: str) -> asyncio.Lock:
        key = (chat_session_id, user_id)
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def generate_bookmarks(self, chat_session_id: str, user_id: str,
                                 messages: list[Message]) -> list[Bookmark]:
        """Bookmark every new significant user message; returns bookmarks created or updated."""
        if not messages:
            return []

        # Create-vs-merge decisions for one session must not interleave
        async with self._lock(chat_session_id, user_id):
            try:
                existing = await load_bookmarks(self.store, chat_session_id, user_id)
            except Exception:
                logger.warning("Could not load bookmarks for session %s", chat_session_id, exc_info=True)
                return []

            covered = {msg_id for b in existing for msg_id in b.message_ids}
            pending = [
                m for m in messages
                if m.role == "user" and m.id not in covered and is_significant(m.content)
            ]
            if not pending:
                logger.debug("No new significant messages in session %s", chat_session_id)
                return []

            logger.info("Processing %d new messages for bookmarks in session %s",
                        len(pending), chat_session_id)

            # Fuzzy matching runs against the bookmarks that existed when the batch
            # started; keyword dedup also sees bookmarks created in this batch.
            snapshot = list(existing)
            known = list(existing)
            changed: dict[str, Bookmark] = {}

            for message in pending:
                try:
                    bookmark = await self._process_message(
                        message, messages, snapshot, known, chat_session_id, user_id
                    )
                except Exception:
                    logger.warning("Failed to bookmark message %s", message.id, exc_info=True)
                    continue
                if bookmark is not None:
                    changed[bookmark.id] = bookmark

            return list(changed.values())

    async def _process_message(self, message: Message, messages: list[Message],
                               snapshot: list[Bookmark], known: list[Bookmark],
                               chat_session_id: str, user_id: str) -> Bookmark | None:
        match = find_best_bookmark(message.content, snapshot)
        if match is not None:
            logger.debug("Message %s matches bookmark %r", message.id, match.title)
            return await self._merge(match, message, messages)

        result = await self.generator.generate_object(
            KEYWORD_PROMPT.format(content=message.content), KEYWORD_SCHEMA
        )
        keyword = result.get("keyword") if isinstance(result, dict) else None
        if not isinstance(keyword, str) or not keyword.strip():
            logger.debug("No keyword for message %s, leaving it for a later pass", message.id)
            return None
        keyword = keyword.strip()

        duplicate = next((b for b in known if b.title.lower() == keyword.lower()), None)
        if duplicate is not None:
            return await self._merge(duplicate, message, messages)

        bookmark = Bookmark(
            id=f"bookmark_{uuid.uuid4().hex}",
            chat_session_id=chat_session_id,
            user_id=user_id,
            title=keyword,
            description=f"Auto-generated topic: {keyword}",
            category=slugify(keyword),
            keywords=[keyword],
            message_ids=pair_message_ids([message.id], messages),
            created_at=_now(),
        )
        await self.store.create("bookmarks", bookmark.to_record())
        known.append(bookmark)
        logger.info("Created bookmark %r for message %s", keyword, message.id)
        return bookmark

    async def _merge(self, bookmark: Bookmark, message: Message,
                     messages: list[Message]) -> Bookmark | None:
        """Append the message (and its partner) to a bookmark; None if nothing new."""
        new_ids = [
            i for i in pair_message_ids([message.id], messages) if i not in bookmark.message_ids
        ]
        if not new_ids:
            return None

        merged = bookmark.message_ids + new_ids
        await self.store.update("bookmarks", bookmark.id, {"message_ids": ",".join(merged)})
        bookmark.message_ids = merged
        logger.info("Added message %s to bookmark %r", message.id, bookmark.title)
        return bookmark.model_copy()

    async def cleanup_bookmarks(self, chat_session_id: str, user_id: str) -> int:
        return await cleanup_bookmarks(self.store, chat_session_id, user_id)


async def load_bookmarks(store: RecordStore, chat_session_id: str, user_id: str) -> list[Bookmark]:
    records = await store.list(
        "bookmarks", where={"chat_session_id": chat_session_id, "user_id": user_id}
    )
    return [Bookmark.from_record(r) for r in records]


async def cleanup_bookmarks(store: RecordStore, chat_session_id: str, user_id: str) -> int:
    """Merge bookmarks sharing a case-insensitive title into the first one loaded.

    Returns the number of rows deleted. A second run with no writes in between
    finds nothing to merge.
    """
    try:
        bookmarks = await load_bookmarks(store, chat_session_id, user_id)
    except Exception:
        logger.warning("Could not load bookmarks for cleanup of %s", chat_session_id, exc_info=True)
        return 0
    if len(bookmarks) <= 1:
        return 0

    groups: dict[str, list[Bookmark]] = {}
    for bookmark in bookmarks:
        groups.setdefault(bookmark.title.lower(), []).append(bookmark)

    deleted = 0
    for title, group in groups.items():
        if len(group) == 1:
            continue
        logger.info("Merging %d bookmarks titled %r", len(group), title)

        primary = group[0]
        merged = list(dict.fromkeys(msg_id for b in group for msg_id in b.message_ids))
        try:
            await store.update("bookmarks", primary.id, {"message_ids": ",".join(merged)})
            for duplicate in group[1:]:
                await store.delete("bookmarks", duplicate.id)
                deleted += 1
        except Exception:
            logger.warning("Failed to merge bookmarks titled %r", title, exc_info=True)

    return deleted
