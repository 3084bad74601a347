"""FastMCP server exposing bookmark and timeline tools."""

from __future__ import annotations

import logging
import sys

from mcp.server.fastmcp import FastMCP

from .cache import SegmentCache
from .config import LLM_CONTEXT_MESSAGES, SQLITE_PATH
from .enhanced import EnhancedBookmarkSynthesizer
from .generation import LiteLLMGenerator
from .importer import load_messages
from .models import Bookmark
from .pairing import build_llm_context, generate_chat_summary, get_messages_for_bookmark
from .segmenter import TopicSegmenter
from .storage import SQLiteRecordStore
from .synthesizer import BookmarkSynthesizer, cleanup_bookmarks, load_bookmarks

# Logging goes to stderr; stdout carries the MCP JSON-RPC transport
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
)

mcp = FastMCP(
    "chatmarks",
    instructions=(
        "Organize chat conversations into bookmarks and topic timelines. "
        "Use generate_bookmarks after new messages arrive to tag them with topic keywords. "
        "Use get_timeline for topic segments and key moments of a conversation. "
        "Use list_bookmarks and get_bookmark_messages to browse what was bookmarked. "
        "Use get_chat_context for a summary and the recent transcript of a conversation. "
        "Use search_bookmarks to find bookmarks by keyword."
    ),
)

# Singletons reused across tool calls
_store: SQLiteRecordStore | None = None
_generator: LiteLLMGenerator | None = None
_synthesizer: BookmarkSynthesizer | None = None
_segment_cache = SegmentCache()


def _get_store() -> SQLiteRecordStore:
    global _store
    if _store is None:
        _store = SQLiteRecordStore(SQLITE_PATH)
    return _store


def _get_generator() -> LiteLLMGenerator:
    global _generator
    if _generator is None:
        _generator = LiteLLMGenerator()
    return _generator


def _get_synthesizer() -> BookmarkSynthesizer:
    global _synthesizer
    if _synthesizer is None:
        _synthesizer = BookmarkSynthesizer(_get_store(), _get_generator())
    return _synthesizer


def _check_data_exists() -> str | None:
    """Return an error message if no data has been imported."""
    if not SQLITE_PATH.exists():
        return (
            "No chat data found. Please import messages first:\n"
            "  chatmarks import ~/Downloads/messages.json"
        )
    return None


@mcp.tool()
async def generate_bookmarks(chat_session_id: str, user_id: str) -> str:
    """Tag new significant messages of a conversation with topic keyword bookmarks.

    Args:
        chat_session_id: The conversation to process
        user_id: Owner of the conversation
    """
    err = _check_data_exists()
    if err:
        return err

    messages = await load_messages(_get_store(), chat_session_id, user_id)
    if not messages:
        return f"No messages found for conversation {chat_session_id}."

    changed = await _get_synthesizer().generate_bookmarks(chat_session_id, user_id, messages)
    if not changed:
        return "No new bookmarks: every significant message is already bookmarked."

    lines = [f"Created or updated {len(changed)} bookmarks:\n"]
    for b in changed:
        lines.append(f"- **{b.title}** ({len(b.message_ids)} messages) `{b.id}`")
    return "\n".join(lines)


@mcp.tool()
async def get_timeline(chat_session_id: str) -> str:
    """Get the topic segments and key moments of a conversation, in message order.

    Args:
        chat_session_id: The conversation to analyze
    """
    err = _check_data_exists()
    if err:
        return err

    messages = await load_messages(_get_store(), chat_session_id)
    generator = _get_generator()
    synthesizer = EnhancedBookmarkSynthesizer(
        TopicSegmenter(generator, cache=_segment_cache), generator
    )
    bookmarks = await synthesizer.generate_enhanced_bookmarks(chat_session_id, messages)
    if not bookmarks:
        return "Not enough messages to build a timeline."

    lines = [f"Timeline of {len(messages)} messages:\n"]
    for b in bookmarks:
        lines.append(
            f"- [{b.conversation_progress:.0%}] **{b.title}** ({b.category}): "
            f"message {b.message_position + 1}"
        )
        if b.description:
            lines.append(f"  {b.description}")
    return "\n".join(lines)


@mcp.tool()
async def list_bookmarks(chat_session_id: str, user_id: str) -> str:
    """List the keyword bookmarks of a conversation.

    Args:
        chat_session_id: The conversation
        user_id: Owner of the conversation
    """
    err = _check_data_exists()
    if err:
        return err

    bookmarks = await load_bookmarks(_get_store(), chat_session_id, user_id)
    if not bookmarks:
        return "No bookmarks yet."

    lines = []
    for b in bookmarks:
        lines.append(f"- **{b.title}** [{b.category or 'uncategorized'}] `{b.id}`: {len(b.message_ids)} messages")
    return "\n".join(lines)


@mcp.tool()
async def get_bookmark_messages(bookmark_id: str) -> str:
    """Read the messages a bookmark points to, with their question/answer partners.

    Args:
        bookmark_id: The bookmark ID (from list_bookmarks or generate_bookmarks)
    """
    err = _check_data_exists()
    if err:
        return err

    store = _get_store()
    records = await store.list("bookmarks", where={"id": bookmark_id})
    if not records:
        return f"Bookmark not found: {bookmark_id}"

    bookmark = Bookmark.from_record(records[0])
    messages = await load_messages(store, bookmark.chat_session_id, bookmark.user_id)
    selected = get_messages_for_bookmark(bookmark, messages)

    lines = [f"# {bookmark.title}\n"]
    for m in selected:
        role = "**User**" if m.role == "user" else "**Assistant**"
        lines.append(f"{role} ({m.created_at}):\n{m.content}\n")
    return "\n".join(lines)


@mcp.tool()
async def get_chat_context(chat_session_id: str, limit: int = LLM_CONTEXT_MESSAGES) -> str:
    """Get a short summary and the recent transcript of a conversation.

    Args:
        chat_session_id: The conversation
        limit: Number of recent messages to include (default 15)
    """
    err = _check_data_exists()
    if err:
        return err

    messages = await load_messages(_get_store(), chat_session_id)
    if not messages:
        return f"No messages found for conversation {chat_session_id}."

    first_user = next((m for m in messages if m.role == "user"), messages[0])
    return f"# {generate_chat_summary(first_user.content)}\n\n{build_llm_context(messages, limit=limit)}"


@mcp.tool()
async def cleanup_duplicate_bookmarks(chat_session_id: str, user_id: str) -> str:
    """Merge bookmarks of a conversation that share the same title.

    Args:
        chat_session_id: The conversation
        user_id: Owner of the conversation
    """
    err = _check_data_exists()
    if err:
        return err

    deleted = await cleanup_bookmarks(_get_store(), chat_session_id, user_id)
    return f"Removed {deleted} duplicate bookmarks."


@mcp.tool()
def search_bookmarks(query: str, limit: int = 20) -> str:
    """Search bookmark titles and descriptions by keyword.

    Args:
        query: Keywords to search for
        limit: Maximum number of results (default 20)
    """
    err = _check_data_exists()
    if err:
        return err

    rows = _get_store().search_bookmarks(query, limit=limit)
    if not rows:
        return f"No bookmarks found for: {query}"

    lines = [f"Found {len(rows)} bookmarks for: **{query}**\n"]
    for r in rows:
        lines.append(f"- **{r['title']}** (conversation `{r['chat_session_id']}`, bookmark `{r['id']}`)")
    return "\n".join(lines)
