"""Decode untrusted segmentation payloads returned by the generation service."""

from __future__ import annotations

import enum
import json
import logging
import math
import re
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class DecodeStatus(enum.Enum):
    OK = "ok"
    MALFORMED = "malformed"
    SCHEMA_MISMATCH = "schema_mismatch"


class DecodeResult(BaseModel):
    status: DecodeStatus
    segments: list[Any] = []
    error: str = ""


class RawSegment(BaseModel):
    """A segment whose indices passed the shape checks, before clamping."""

    start_index: int
    end_index: int
    title: str
    summary: str
    confidence: float | None


def _extract_json_object(raw: str) -> str:
    """Strip fences and surrounding prose, keeping the outermost {...} span."""
    text = raw.strip()
    text = re.sub(r"^```(?:json)?\s*", "", text)
    text = re.sub(r"\s*```$", "", text)
    if text.startswith("{") and text.endswith("}"):
        return text
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return ""
    return text[start : end + 1]


def decode_segment_payload(raw: str) -> DecodeResult:
    """Parse the raw model text into a list of segment dicts.

    ``MALFORMED`` means the text is not a JSON object at all;
    ``SCHEMA_MISMATCH`` means it parsed but has no ``segments`` array.
    """
    text = _extract_json_object(raw)
    if not text:
        return DecodeResult(status=DecodeStatus.MALFORMED, error="no JSON object in response")

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        return DecodeResult(status=DecodeStatus.MALFORMED, error=f"invalid JSON: {e}")

    if not isinstance(data, dict):
        return DecodeResult(status=DecodeStatus.SCHEMA_MISMATCH, error="top level is not an object")
    segments = data.get("segments")
    if not isinstance(segments, list):
        return DecodeResult(status=DecodeStatus.SCHEMA_MISMATCH, error="'segments' missing or not an array")

    return DecodeResult(status=DecodeStatus.OK, segments=segments)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def parse_raw_segment(item: Any) -> RawSegment | None:
    """Shape-check a single segment item; returns None to drop it.

    Indices must be numbers with start <= end. Negative or too-large values are
    kept here and clamped later against the window.
    """
    if not isinstance(item, dict):
        return None

    start, end = item.get("startIndex"), item.get("endIndex")
    if not (_is_number(start) and _is_number(end)) or start > end:
        logger.debug("Dropping segment with bad indices: %r..%r", start, end)
        return None

    title, summary = item.get("title"), item.get("summary")
    if not isinstance(title, str) or not title.strip():
        return None
    if not isinstance(summary, str) or not summary.strip():
        return None

    confidence = item.get("confidence")
    if _is_number(confidence):
        confidence = min(1.0, max(0.0, float(confidence)))
    else:
        confidence = None

    return RawSegment(
        start_index=int(start),
        end_index=int(end),
        title=title.strip(),
        summary=summary.strip(),
        confidence=confidence,
    )
