"""Shared pytest fixtures: in-memory record store, scripted generator, message factories."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from chatmarks.models import Bookmark, Message

BASE_TIME = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


class InMemoryRecordStore:
    """Record store kept in dicts; counts every write so tests can assert on it."""

    def __init__(self):
        self.tables = {"messages": {}, "bookmarks": {}}
        self.mutations = 0
        self.fail_on: set[str] = set()

    def _maybe_fail(self, op):
        if op in self.fail_on:
            raise RuntimeError(f"store {op} unavailable")

    async def list(self, entity, where=None, order_by=None, limit=None):
        self._maybe_fail("list")
        where = where or {}
        rows = [
            dict(r) for r in self.tables[entity].values()
            if all(r.get(k) == v for k, v in where.items())
        ]
        if order_by:
            field, _, direction = order_by.partition(" ")
            rows.sort(key=lambda r: r[field], reverse=direction.strip().upper() == "DESC")
        return rows[:limit] if limit is not None else rows

    async def create(self, entity, record):
        self._maybe_fail("create")
        self.tables[entity][record["id"]] = dict(record)
        self.mutations += 1
        return dict(record)

    async def update(self, entity, record_id, fields):
        self._maybe_fail("update")
        self.tables[entity][record_id].update(fields)
        self.mutations += 1

    async def delete(self, entity, record_id):
        self._maybe_fail("delete")
        self.tables[entity].pop(record_id, None)
        self.mutations += 1

    def bookmarks(self):
        return [Bookmark.from_record(r) for r in self.tables["bookmarks"].values()]

    def add_bookmark(self, bookmark: Bookmark):
        self.tables["bookmarks"][bookmark.id] = bookmark.to_record()


class FakeGenerator:
    """Generator that answers from a script instead of a model.

    ``keywords`` maps a substring of the prompt to the keyword returned for it.
    ``stream_payload`` is streamed back in small fragments.
    """

    def __init__(self, keywords=None, stream_payload="", stream_error=None, object_error=None):
        self.keywords = keywords or {}
        self.stream_payload = stream_payload
        self.stream_error = stream_error
        self.object_error = object_error
        self.object_calls = []
        self.stream_calls = []

    async def generate_object(self, prompt, schema):
        self.object_calls.append(prompt)
        await asyncio.sleep(0)
        if self.object_error is not None:
            raise self.object_error
        for needle, keyword in self.keywords.items():
            if needle in prompt:
                return {"keyword": keyword}
        return {}

    async def stream_text(self, prompt, on_chunk, model=None, max_tokens=None):
        self.stream_calls.append(prompt)
        await asyncio.sleep(0)
        if self.stream_error is not None:
            raise self.stream_error
        payload = self.stream_payload
        for i in range(0, len(payload), 7):
            on_chunk(payload[i : i + 7])


def _build_message(msg_id, role, content, index, session="chat-1", user="user-1"):
    return Message(
        id=msg_id,
        chat_session_id=session,
        user_id=user,
        role=role,
        content=content,
        created_at=(BASE_TIME + timedelta(minutes=index)).isoformat(),
    )


@pytest.fixture
def make_message():
    """Factory for a single message; ``index`` sets its minute offset."""
    return _build_message


@pytest.fixture
def make_conversation():
    """Factory turning [(role, content), ...] into messages m1, m2, ..."""

    def build(turns, session="chat-1", user="user-1"):
        return [
            _build_message(f"m{i + 1}", role, content, i, session=session, user=user)
            for i, (role, content) in enumerate(turns)
        ]

    return build


@pytest.fixture
def alternating_conversation(make_conversation):
    """Factory for n alternating user/assistant messages with distinct content."""

    def build(n, session="chat-1"):
        turns = [
            ("user" if i % 2 == 0 else "assistant", f"Message number {i} about topic {i // 2}")
            for i in range(n)
        ]
        return make_conversation(turns, session=session)

    return build


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def css_session(make_conversation):
    """The CSS/flexbox conversation with a filler message in the middle."""
    return make_conversation([
        ("user", "How do I center a div in CSS?"),
        ("assistant", "Use display: flex on the parent with justify-content and align-items set to center."),
        ("user", "thanks"),
        ("user", "Why does my flexbox wrap unexpectedly when I add a fourth complex technical child element?"),
        ("assistant", "flex-wrap defaults to nowrap, but your container sets wrap and the children have a min-width."),
    ])
