"""Gemini reply backend.

Without an API key the backend answers with a deterministic mock reply so the
routing can be exercised end to end. With a key it calls the Generative
Language API ``generateContent`` endpoint.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from messenger_relay.backends.base import NOT_UNDERSTOOD_TEXT, BackendResult
from messenger_relay.webhook.models import BackendName, ReplyRequest

logger = logging.getLogger(__name__)

GEMINI_MOCK_MARKER = "**Gemini Mock Reply**"
GEMINI_FALLBACK_TEXT = "Sorry, there's an error calling Gemini API."
_GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


class GeminiBackend:
    """Generative text backend selected by the router keyword."""

    name = BackendName.GEMINI
    fallback_text = GEMINI_FALLBACK_TEXT
    empty_text = NOT_UNDERSTOOD_TEXT

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gemini-2.0-flash",
        api_base: str = _GEMINI_API_BASE,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._api_base = api_base

    @property
    def is_mock(self) -> bool:
        return not self._api_key

    async def generate(self, request: ReplyRequest) -> BackendResult:
        if self.is_mock:
            return BackendResult.success(mock_reply(request.text))
        return await self._generate_content(request.text)

    async def _generate_content(self, prompt: str) -> BackendResult:
        url = f"{self._api_base.rstrip('/')}/models/{self._model}:generateContent"
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        headers = {"x-goog-api-key": self._api_key or ""}

        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(url, json=payload, headers=headers, timeout=30.0)
        except httpx.HTTPError as exc:
            logger.error("Gemini API request failed: %s", exc)
            return BackendResult.failure(str(exc))

        if resp.status_code >= 400:
            logger.error("Gemini API returned %d: %s", resp.status_code, resp.text)
            return BackendResult.failure(f"HTTP {resp.status_code}")

        try:
            return BackendResult.success(_first_candidate_text(resp.json()))
        except (json.JSONDecodeError, IndexError, KeyError, TypeError) as exc:
            logger.error("Malformed Gemini API response: %r", exc)
            return BackendResult.failure("malformed response")


def mock_reply(prompt: str) -> str:
    return f"{GEMINI_MOCK_MARKER}: analysis of the text [{prompt}]"


def _first_candidate_text(body: dict[str, Any]) -> str:
    parts = body["candidates"][0]["content"]["parts"]
    return "".join(part.get("text", "") for part in parts)
