"""Text-generation collaborators: structured objects and streamed completions."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Protocol

import litellm

from .config import LLM_MODEL

logger = logging.getLogger(__name__)


class Generator(Protocol):
    """What the bookmarking core needs from a text-generation service."""

    async def generate_object(self, prompt: str, schema: dict[str, Any]) -> dict[str, Any]:
        """Return an object shaped by ``schema``; missing fields mean "no answer"."""
        ...

    async def stream_text(
        self,
        prompt: str,
        on_chunk: Callable[[str], None],
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> None:
        """Stream a completion, handing each text fragment to ``on_chunk``."""
        ...


class LiteLLMGenerator:
    """Generator backed by litellm, so any provider litellm supports can be used."""

    def __init__(self, model: str = LLM_MODEL, api_key: str | None = None,
                 api_base: str | None = None):
        self.model = model
        self.api_key = api_key
        self.api_base = api_base

    def _request_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        return kwargs

    async def generate_object(self, prompt: str, schema: dict[str, Any]) -> dict[str, Any]:
        system = (
            "Respond with a single JSON object matching this JSON schema, "
            f"and nothing else:\n{json.dumps(schema)}"
        )
        resp = await litellm.acompletion(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
            **self._request_kwargs(),
        )
        content = resp.choices[0].message.content or ""
        try:
            obj = json.loads(content)
        except json.JSONDecodeError:
            logger.warning("Structured generation returned non-JSON: %s", content[:200])
            return {}
        if not isinstance(obj, dict):
            return {}

        # Keep only declared string fields; anything else counts as "no answer"
        properties = schema.get("properties", {})
        return {
            key: value for key, value in obj.items()
            if key in properties and (properties[key].get("type") != "string" or isinstance(value, str))
        }

    async def stream_text(
        self,
        prompt: str,
        on_chunk: Callable[[str], None],
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> None:
        response = await litellm.acompletion(
            model=model or self.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            stream=True,
            **self._request_kwargs(),
        )
        async for chunk in response:
            if chunk.choices and chunk.choices[0].delta.content:
                on_chunk(chunk.choices[0].delta.content)
