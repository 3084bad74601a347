"""CLI interface for chatmarks."""

from __future__ import annotations

import asyncio
import logging
import shutil
import sys

import click

from . import __version__
from .config import DATA_DIR, LLM_CONTEXT_MESSAGES, LLM_MODEL, SQLITE_PATH


def _open_store():
    from .storage import SQLiteRecordStore

    return SQLiteRecordStore(SQLITE_PATH)


def _session_messages(store, session_id: str, user_id: str | None = None):
    from .importer import load_messages

    messages = asyncio.run(load_messages(store, session_id, user_id))
    if not messages:
        raise click.ClickException(f"No messages found for session {session_id}")
    return messages


@click.group()
@click.version_option(version=__version__, prog_name="chatmarks")
@click.option("-v", "--verbose", count=True, help="Log progress (-v) or debug output (-vv)")
def cli(verbose: int):
    """chatmarks: bookmarks and topic timelines for chat conversations.

    Import chat messages, then generate keyword bookmarks and topic
    segments for a session, or serve them over MCP.
    """
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


@cli.command("import")
@click.argument("json_path", type=click.Path(exists=True))
def import_cmd(json_path: str):
    """Import a JSON array of chat messages.

    Each message needs id, chatSessionId, userId, role, content and
    createdAt (camelCase or snake_case keys).

    Example:
        chatmarks import ~/Downloads/messages.json
    """
    from .importer import import_messages

    store = _open_store()
    try:
        asyncio.run(import_messages(json_path, store))
    finally:
        store.close()


@cli.command()
@click.argument("session_id")
@click.option("--user-id", required=True, help="Owner of the session")
@click.option("--model", default=LLM_MODEL, show_default=True, help="Model used for keyword extraction")
def bookmarks(session_id: str, user_id: str, model: str):
    """Generate keyword bookmarks for new messages in a session."""
    from .generation import LiteLLMGenerator
    from .synthesizer import BookmarkSynthesizer

    store = _open_store()
    try:
        messages = _session_messages(store, session_id, user_id)
        synthesizer = BookmarkSynthesizer(store, LiteLLMGenerator(model=model))
        changed = asyncio.run(synthesizer.generate_bookmarks(session_id, user_id, messages))
    finally:
        store.close()

    if not changed:
        click.echo("No new bookmarks.")
        return
    for b in changed:
        click.echo(f"  {click.style(b.title, bold=True)}  ({len(b.message_ids)} messages)")


@cli.command()
@click.argument("session_id")
@click.option("--rules-only", is_flag=True, help="Skip the model and use fixed-size chunks")
@click.option("--model", default=LLM_MODEL, show_default=True)
def segments(session_id: str, rules_only: bool, model: str):
    """Show the topic segments of a session."""
    from .chunker import segment_by_rules

    store = _open_store()
    try:
        messages = _session_messages(store, session_id)
    finally:
        store.close()

    if rules_only:
        result = segment_by_rules(messages)
    else:
        from .generation import LiteLLMGenerator
        from .segmenter import TopicSegmenter

        segmenter = TopicSegmenter(LiteLLMGenerator(model=model), model=model)
        result = asyncio.run(segmenter.detect_topic_segments(messages))

    if not result:
        click.echo("No segments.")
        return
    for s in result:
        click.echo(f"{click.style(s.title, bold=True)}  [{s.message_count} msgs, score {s.topic_score:.2f}]")
        click.echo(f"  {s.summary}")


@cli.command()
@click.argument("session_id")
@click.option("--model", default=LLM_MODEL, show_default=True)
def timeline(session_id: str, model: str):
    """Show the segment and key-moment timeline of a session."""
    from .enhanced import EnhancedBookmarkSynthesizer
    from .generation import LiteLLMGenerator
    from .segmenter import TopicSegmenter

    store = _open_store()
    try:
        messages = _session_messages(store, session_id)
    finally:
        store.close()

    generator = LiteLLMGenerator(model=model)
    synthesizer = EnhancedBookmarkSynthesizer(TopicSegmenter(generator, model=model), generator)
    result = asyncio.run(synthesizer.generate_enhanced_bookmarks(session_id, messages))

    for b in result:
        click.echo(f"  {b.conversation_progress:4.0%}  {click.style(b.title, bold=True)}  ({b.category})")


@cli.command()
@click.argument("session_id")
@click.option("--limit", default=LLM_CONTEXT_MESSAGES, show_default=True, help="Number of recent messages")
def context(session_id: str, limit: int):
    """Print the recent transcript of a session, ready to paste into a chat model."""
    from .pairing import build_llm_context, generate_chat_summary

    store = _open_store()
    try:
        messages = _session_messages(store, session_id)
    finally:
        store.close()

    first_user = next((m for m in messages if m.role == "user"), messages[0])
    click.echo(click.style(generate_chat_summary(first_user.content), bold=True))
    click.echo()
    click.echo(build_llm_context(messages, limit=limit))


@cli.command()
@click.argument("session_id")
@click.option("--user-id", required=True)
def cleanup(session_id: str, user_id: str):
    """Merge bookmarks that share a title."""
    from .synthesizer import cleanup_bookmarks

    store = _open_store()
    try:
        deleted = asyncio.run(cleanup_bookmarks(store, session_id, user_id))
    finally:
        store.close()
    click.echo(f"Removed {deleted} duplicate bookmarks.")


@cli.command()
@click.argument("query")
@click.option("--user-id", default=None)
@click.option("--limit", default=20, show_default=True)
def search(query: str, user_id: str | None, limit: int):
    """Full-text search over bookmark titles and descriptions."""
    store = _open_store()
    try:
        rows = store.search_bookmarks(query, user_id=user_id, limit=limit)
    finally:
        store.close()

    if not rows:
        click.echo("No matching bookmarks.")
        return
    for r in rows:
        click.echo(f"{click.style(r['title'], bold=True)}  (session {r['chat_session_id']})")
        if r.get("snippet"):
            click.echo(f"  {r['snippet']}")


@cli.command()
def stats():
    """Show statistics about stored messages and bookmarks."""
    if not SQLITE_PATH.exists():
        click.echo("No data found. Import some messages first:")
        click.echo("  chatmarks import ~/Downloads/messages.json")
        return

    store = _open_store()
    s = store.get_stats()
    store.close()

    click.echo()
    click.echo(click.style("chatmarks Statistics", bold=True))
    click.echo(f"  Sessions:       {s['total_sessions']:,}")
    click.echo(f"  Messages:       {s['total_messages']:,}")
    click.echo(f"  Bookmarks:      {s['total_bookmarks']:,}")
    click.echo(f"  Avg bm/session: {s['avg_bookmarks_per_session']}")
    if s["top_categories"]:
        click.echo("  Top categories:")
        for c in s["top_categories"]:
            click.echo(f"    {c['category']}: {c['count']:,}")
    click.echo(f"  Location:       {DATA_DIR}")
    click.echo()


@cli.command()
def serve():
    """Start the MCP server (stdio transport)."""
    if not SQLITE_PATH.exists():
        click.echo(
            "Warning: No data imported yet. Import messages first:",
            err=True,
        )
        click.echo("  chatmarks import ~/Downloads/messages.json", err=True)

    from .server import mcp

    mcp.run(transport="stdio")


@cli.command()
@click.confirmation_option(prompt="This will delete all stored messages and bookmarks. Are you sure?")
def reset():
    """Delete all stored data and start fresh."""
    if DATA_DIR.exists():
        shutil.rmtree(DATA_DIR)
        click.echo(f"Deleted {DATA_DIR}")
    else:
        click.echo("No data to delete.")
