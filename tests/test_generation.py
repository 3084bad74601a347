"""Tests for the litellm-backed generator, with litellm.acompletion patched out."""

import asyncio
from types import SimpleNamespace

import litellm

from chatmarks.classifier import KEYWORD_SCHEMA
from chatmarks.generation import LiteLLMGenerator


def _delta_chunk(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


async def _stream(chunks):
    for chunk in chunks:
        yield chunk


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class TestStreamText:

    def test_joins_deltas_and_skips_empty_chunks(self, monkeypatch):
        chunks = [
            _delta_chunk('{"segments": '),
            _delta_chunk(None),
            _delta_chunk("[]}"),
            # usage-only trailer some providers send after the last delta
            SimpleNamespace(choices=[], usage={"total_tokens": 42}),
        ]

        async def fake_acompletion(**kwargs):
            assert kwargs["stream"] is True
            assert kwargs["max_tokens"] == 100
            return _stream(chunks)

        monkeypatch.setattr(litellm, "acompletion", fake_acompletion)
        received = []
        asyncio.run(LiteLLMGenerator(model="test-model").stream_text("prompt", received.append, max_tokens=100))
        assert "".join(received) == '{"segments": []}'


class TestGenerateObject:

    def _patch(self, monkeypatch, content):
        async def fake_acompletion(**kwargs):
            assert kwargs["response_format"] == {"type": "json_object"}
            return _completion(content)

        monkeypatch.setattr(litellm, "acompletion", fake_acompletion)

    def test_returns_declared_fields(self, monkeypatch):
        self._patch(monkeypatch, '{"keyword": "CSS centering", "extra": 1}')
        result = asyncio.run(LiteLLMGenerator().generate_object("prompt", KEYWORD_SCHEMA))
        assert result == {"keyword": "CSS centering"}

    def test_wrong_type_counts_as_no_answer(self, monkeypatch):
        self._patch(monkeypatch, '{"keyword": 7}')
        assert asyncio.run(LiteLLMGenerator().generate_object("prompt", KEYWORD_SCHEMA)) == {}

    def test_non_json_counts_as_no_answer(self, monkeypatch):
        self._patch(monkeypatch, "CSS centering")
        assert asyncio.run(LiteLLMGenerator().generate_object("prompt", KEYWORD_SCHEMA)) == {}
