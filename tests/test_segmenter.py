"""Tests for the LLM-assisted segmenter: validation, clamping, fallback and caching."""

import asyncio
import json

from chatmarks.cache import NullSegmentCache, SegmentCache
from chatmarks.chunker import segment_by_rules
from chatmarks.segmenter import TopicSegmenter

from conftest import FakeGenerator


def _payload(*segments):
    return json.dumps({"segments": list(segments)})


def _segment(start, end, title="Flexbox wrapping bug", summary="Why the fourth flex child wraps onto a new line", **extra):
    return {"startIndex": start, "endIndex": end, "title": title, "summary": summary, **extra}


def _detect(segmenter, messages):
    return asyncio.run(segmenter.detect_topic_segments(messages))


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestDetectTopicSegments:

    def test_fewer_than_two_messages(self, alternating_conversation):
        generator = FakeGenerator(stream_payload=_payload(_segment(0, 0)))
        segmenter = TopicSegmenter(generator, cache=NullSegmentCache())
        assert _detect(segmenter, alternating_conversation(1)) == []
        assert generator.stream_calls == []

    def test_accepts_valid_segments(self, alternating_conversation):
        messages = alternating_conversation(6)
        generator = FakeGenerator(stream_payload=_payload(
            _segment(0, 2, confidence=0.9),
            _segment(3, 5, title="Grid layout"),
        ))
        segments = _detect(TopicSegmenter(generator, cache=NullSegmentCache()), messages)

        assert [(s.start_message_id, s.end_message_id) for s in segments] == [("m1", "m3"), ("m4", "m6")]
        assert [s.message_count for s in segments] == [3, 3]
        assert segments[0].topic_score == 0.9
        assert segments[1].topic_score == 0.7
        assert segments[1].title == "Grid layout"

    def test_clamps_out_of_range_indices(self, alternating_conversation):
        messages = alternating_conversation(20)
        generator = FakeGenerator(stream_payload=_payload(_segment(-1, 25)))
        segments = _detect(TopicSegmenter(generator, cache=NullSegmentCache()), messages)

        assert len(segments) == 1
        assert segments[0].start_message_id == "m1"
        assert segments[0].end_message_id == "m20"
        assert segments[0].message_count == 20

    def test_window_indices_are_offset(self, alternating_conversation):
        # 25 messages -> window is the last 20, offset 5
        messages = alternating_conversation(25)
        generator = FakeGenerator(stream_payload=_payload(_segment(0, 4)))
        segments = _detect(TopicSegmenter(generator, cache=NullSegmentCache()), messages)

        assert segments[0].start_message_id == "m6"
        assert segments[0].end_message_id == "m10"
        assert "[0] ASSISTANT: Message number 5" in generator.stream_calls[0]
        assert "Message number 4 " not in generator.stream_calls[0]

    def test_segments_resolve_in_order(self, alternating_conversation):
        messages = alternating_conversation(10)
        generator = FakeGenerator(stream_payload=_payload(
            _segment(0, 3), _segment(4, 9), _segment(7, 100), _segment(-5, -2),
        ))
        segments = _detect(TopicSegmenter(generator, cache=NullSegmentCache()), messages)
        positions = {m.id: i for i, m in enumerate(messages)}

        assert len(segments) == 4
        for s in segments:
            assert positions[s.start_message_id] <= positions[s.end_message_id]

    def test_bad_items_dropped_individually(self, alternating_conversation):
        messages = alternating_conversation(6)
        generator = FakeGenerator(stream_payload=_payload(
            _segment(4, 1),
            _segment(0, 1, title=""),
            "not a segment",
            _segment(2, 5),
        ))
        segments = _detect(TopicSegmenter(generator, cache=NullSegmentCache()), messages)
        assert [s.start_message_id for s in segments] == ["m3"]

    def test_prose_wrapped_response(self, alternating_conversation):
        messages = alternating_conversation(4)
        payload = "Here is the segmentation you asked for:\n" + _payload(_segment(0, 3)) + "\nHope it helps!"
        generator = FakeGenerator(stream_payload=payload)
        segments = _detect(TopicSegmenter(generator, cache=NullSegmentCache()), messages)
        assert len(segments) == 1

    def test_zero_valid_segments_is_not_a_failure(self, alternating_conversation):
        messages = alternating_conversation(6)
        generator = FakeGenerator(stream_payload=_payload())
        assert _detect(TopicSegmenter(generator, cache=NullSegmentCache()), messages) == []


class TestFallback:

    def test_service_error_matches_rule_based(self, alternating_conversation):
        messages = alternating_conversation(9)
        generator = FakeGenerator(stream_error=ConnectionError("service down"))
        segments = _detect(TopicSegmenter(generator, cache=NullSegmentCache()), messages)
        assert segments == segment_by_rules(messages)

    def test_malformed_json_falls_back(self, alternating_conversation):
        messages = alternating_conversation(6)
        generator = FakeGenerator(stream_payload='{"segments": [{"startIndex": 0,')
        segments = _detect(TopicSegmenter(generator, cache=NullSegmentCache()), messages)
        assert segments == segment_by_rules(messages)

    def test_missing_segments_array_falls_back(self, alternating_conversation):
        messages = alternating_conversation(6)
        generator = FakeGenerator(stream_payload='{"topics": []}')
        segments = _detect(TopicSegmenter(generator, cache=NullSegmentCache()), messages)
        assert segments == segment_by_rules(messages)
        assert all(s.topic_score == 0.6 for s in segments)


class TestCaching:

    def test_repeat_call_served_from_cache(self, alternating_conversation):
        messages = alternating_conversation(6)
        generator = FakeGenerator(stream_payload=_payload(_segment(0, 5)))
        segmenter = TopicSegmenter(generator, cache=SegmentCache())

        first = _detect(segmenter, messages)
        second = _detect(segmenter, messages)
        assert first == second
        assert len(generator.stream_calls) == 1

    def test_new_message_invalidates(self, alternating_conversation):
        generator = FakeGenerator(stream_payload=_payload(_segment(0, 3)))
        segmenter = TopicSegmenter(generator, cache=SegmentCache())

        _detect(segmenter, alternating_conversation(6))
        _detect(segmenter, alternating_conversation(7))
        assert len(generator.stream_calls) == 2

    def test_expires_after_ttl(self, alternating_conversation):
        messages = alternating_conversation(6)
        clock = FakeClock()
        generator = FakeGenerator(stream_payload=_payload(_segment(0, 5)))
        segmenter = TopicSegmenter(generator, cache=SegmentCache(ttl=30, clock=clock))

        _detect(segmenter, messages)
        clock.now += 29
        _detect(segmenter, messages)
        assert len(generator.stream_calls) == 1
        clock.now += 2
        _detect(segmenter, messages)
        assert len(generator.stream_calls) == 2

    def test_sessions_do_not_share_entries(self, alternating_conversation):
        generator = FakeGenerator(stream_payload=_payload(_segment(0, 3)))
        segmenter = TopicSegmenter(generator, cache=SegmentCache())

        _detect(segmenter, alternating_conversation(4, session="chat-a"))
        _detect(segmenter, alternating_conversation(4, session="chat-b"))
        assert len(generator.stream_calls) == 2

    def test_null_cache_always_calls(self, alternating_conversation):
        messages = alternating_conversation(6)
        generator = FakeGenerator(stream_payload=_payload(_segment(0, 5)))
        segmenter = TopicSegmenter(generator, cache=NullSegmentCache())

        _detect(segmenter, messages)
        _detect(segmenter, messages)
        assert len(generator.stream_calls) == 2

    def test_fallback_results_are_not_cached(self, alternating_conversation):
        messages = alternating_conversation(6)
        generator = FakeGenerator(stream_error=TimeoutError())
        segmenter = TopicSegmenter(generator, cache=SegmentCache())

        _detect(segmenter, messages)
        _detect(segmenter, messages)
        assert len(generator.stream_calls) == 2
