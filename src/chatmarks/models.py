"""Data models for messages, bookmarks and topic segments."""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _split_ids(value: Any) -> list[str]:
    """Normalize a comma-joined string or list of IDs into an ordered set."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return list(dict.fromkeys(str(v).strip() for v in value if str(v).strip()))


class Record(BaseModel):
    # Accept both snake_case and the camelCase keys used by exported records
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Message(Record):
    id: str
    chat_session_id: str
    user_id: str
    role: Literal["user", "assistant"]
    content: str
    model: str | None = None
    created_at: str


class Bookmark(Record):
    id: str
    chat_session_id: str
    user_id: str
    title: str
    description: str | None = None
    category: str | None = None
    keywords: list[str] = []
    message_ids: list[str] = []
    created_at: str

    @field_validator("message_ids", mode="before")
    @classmethod
    def _parse_message_ids(cls, value: Any) -> list[str]:
        return _split_ids(value)

    @field_validator("keywords", mode="before")
    @classmethod
    def _parse_keywords(cls, value: Any) -> list[str]:
        if not value:
            return []
        if isinstance(value, str):
            if value.startswith("["):
                return json.loads(value)
            return [k.strip() for k in value.split(",") if k.strip()]
        return list(value)

    def to_record(self) -> dict[str, Any]:
        """Serialize for the record store (message IDs comma-joined)."""
        return {
            "id": self.id,
            "chat_session_id": self.chat_session_id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "keywords": json.dumps(self.keywords),
            "message_ids": ",".join(self.message_ids),
            "created_at": self.created_at,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Bookmark:
        return cls.model_validate(record)


class TopicSegment(Record):
    id: str
    chat_session_id: str
    start_message_id: str
    end_message_id: str
    title: str
    summary: str
    topic_score: float = Field(ge=0.0, le=1.0)
    message_count: int
    created_at: str


class EnhancedBookmark(Bookmark):
    topic_segment_id: str | None = None
    message_position: int
    conversation_progress: float
    segment_context: TopicSegment | None = None
    related_messages: list[str] = []


class KeyMoment(BaseModel):
    kind: Literal["question", "decision", "code"]
    message_id: str
    message_index: int
    title: str
    description: str
