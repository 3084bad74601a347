"""LLM-assisted topic segmentation with a deterministic fallback."""

from __future__ import annotations

import logging

from .cache import SegmentCache
from .chunker import segment_by_rules
from .config import (
    DEFAULT_SEGMENT_CONFIDENCE,
    LLM_MODEL,
    SEGMENT_MAX_TOKENS,
    SEGMENT_WINDOW,
    TRANSCRIPT_LINE_CHARS,
)
from .generation import Generator
from .models import Message, TopicSegment
from .parser import DecodeStatus, RawSegment, decode_segment_payload, parse_raw_segment

logger = logging.getLogger(__name__)

SEGMENT_PROMPT = """You segment chat conversations into topics.

Below is a transcript of {size} messages, numbered 0 to {last}.

{transcript}

Split the transcript into contiguous topic segments.
Return ONLY a JSON object, with no explanation before or after it, in exactly this shape:
{{"segments": [{{"startIndex": 0, "endIndex": 3, "title": "...", "summary": "...", "confidence": 0.8}}]}}

Rules:
- startIndex and endIndex are message numbers from the transcript (0 to {last}), startIndex <= endIndex.
- title: 2-6 words using the concrete vocabulary of the conversation (libraries, errors, product names).
  Never use generic titles such as "General Discussion", "Q&A Session" or "Technical Implementation".
- summary: 8-20 words describing what was discussed.
- confidence: a number between 0 and 1.
- Any transcript of 4 or more messages must produce at least one segment.
"""


def _format_transcript(window: list[Message]) -> str:
    lines = []
    for i, msg in enumerate(window):
        content = " ".join(msg.content.split())
        if len(content) > TRANSCRIPT_LINE_CHARS:
            content = content[:TRANSCRIPT_LINE_CHARS] + "..."
        lines.append(f"[{i}] {msg.role.upper()}: {content}")
    return "\n".join(lines)


class TopicSegmenter:
    """Segments a conversation by asking the generation service for topic boundaries.

    Any service, parse or shape failure falls back wholesale to
    ``segment_by_rules``. A valid response with zero usable segments is
    returned as an empty list, not treated as failure.
    """

    def __init__(self, generator: Generator, cache: SegmentCache | None = None,
                 window_size: int = SEGMENT_WINDOW, model: str = LLM_MODEL,
                 max_tokens: int = SEGMENT_MAX_TOKENS):
        self.generator = generator
        self.cache = cache if cache is not None else SegmentCache()
        self.window_size = window_size
        self.model = model
        self.max_tokens = max_tokens

    async def detect_topic_segments(self, messages: list[Message]) -> list[TopicSegment]:
        if len(messages) < 2:
            return []

        cache_key = f"{messages[0].chat_session_id}:{len(messages)}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Segment cache hit for %s", cache_key)
            return cached

        window = messages[-self.window_size:]
        offset = len(messages) - len(window)

        prompt = SEGMENT_PROMPT.format(
            size=len(window),
            last=len(window) - 1,
            transcript=_format_transcript(window),
        )

        chunks: list[str] = []
        try:
            await self.generator.stream_text(
                prompt, chunks.append, model=self.model, max_tokens=self.max_tokens
            )
        except Exception:
            logger.warning("Segmentation request failed, using rule-based segments", exc_info=True)
            return segment_by_rules(messages)

        result = decode_segment_payload("".join(chunks))
        if result.status is DecodeStatus.MALFORMED:
            logger.warning("Malformed segmentation response (%s), using rule-based segments", result.error)
            return segment_by_rules(messages)
        if result.status is DecodeStatus.SCHEMA_MISMATCH:
            logger.warning("Unexpected segmentation response shape (%s), using rule-based segments", result.error)
            return segment_by_rules(messages)

        segments: list[TopicSegment] = []
        for item in result.segments:
            raw = parse_raw_segment(item)
            if raw is None:
                continue
            segment = self._resolve(raw, window, offset, messages, len(segments) + 1)
            if segment is not None:
                segments.append(segment)

        if not segments:
            logger.info("Segmentation returned no usable segments for %d messages", len(messages))

        self.cache.put(cache_key, segments)
        return segments

    def _resolve(self, raw: RawSegment, window: list[Message], offset: int,
                 messages: list[Message], number: int) -> TopicSegment | None:
        """Clamp window-relative indices and map them back onto ``messages``."""
        last = len(window) - 1
        start = min(max(raw.start_index, 0), last) + offset
        end = min(max(raw.end_index, 0), last) + offset

        if not (0 <= start <= end < len(messages)):
            logger.warning("Dropping segment outside the conversation: %d..%d", start, end)
            return None

        first = messages[start]
        return TopicSegment(
            id=f"segment-{number}",
            chat_session_id=first.chat_session_id,
            start_message_id=first.id,
            end_message_id=messages[end].id,
            title=raw.title,
            summary=raw.summary,
            topic_score=raw.confidence if raw.confidence is not None else DEFAULT_SEGMENT_CONFIDENCE,
            message_count=end - start + 1,
            created_at=first.created_at,
        )
