"""Import pipeline: JSON message export → validation → record store."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import click
from pydantic import ValidationError

from .models import Message
from .storage import RecordStore, SQLiteRecordStore

logger = logging.getLogger(__name__)


def parse_messages(data: object) -> list[Message]:
    """Validate exported message records, skipping the ones that do not parse."""
    if isinstance(data, dict):
        data = data.get("messages")
    if not isinstance(data, list):
        raise click.ClickException("Expected a JSON array of messages (or {\"messages\": [...]}).")

    messages: list[Message] = []
    for item in data:
        try:
            messages.append(Message.model_validate(item))
        except ValidationError:
            msg_id = item.get("id", "unknown") if isinstance(item, dict) else "unknown"
            logger.warning("Skipping invalid message '%s'", msg_id, exc_info=True)
    return messages


async def import_messages(json_path: str, store: SQLiteRecordStore) -> dict:
    """Import a JSON export of chat messages.

    Returns a summary dict with import statistics.
    """
    path = Path(json_path)
    if not path.exists():
        raise click.ClickException(f"File not found: {json_path}")

    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Not valid JSON: {e}") from e

    messages = parse_messages(data)
    click.echo(f"Found {len(messages)} valid messages.")
    if not messages:
        return {"imported": 0, "sessions": 0}

    with click.progressbar(messages, label="Importing messages", show_pos=True) as progress:
        for msg in progress:
            await store.create("messages", msg.model_dump())

    sessions = {m.chat_session_id for m in messages}
    summary = {"imported": len(messages), "sessions": len(sessions)}

    click.echo()
    click.echo(click.style("Import complete!", fg="green", bold=True))
    click.echo(f"  Imported: {len(messages)} messages across {len(sessions)} sessions")
    return summary


async def load_messages(store: RecordStore, chat_session_id: str,
                        user_id: str | None = None) -> list[Message]:
    """Messages of a session in chronological order."""
    where = {"chat_session_id": chat_session_id}
    if user_id:
        where["user_id"] = user_id
    records = await store.list("messages", where=where, order_by="created_at ASC")
    return [Message.model_validate(r) for r in records]
