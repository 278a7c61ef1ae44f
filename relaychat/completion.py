"""
Upstream completion clients.

``CompletionClient.complete`` takes the assembled message sequence
(``[{"role": ..., "content": ...}]``) and returns the answer text. Two
variants exist and one is picked at startup by ``build_completion_client``:

``MockCompletionClient``   - deterministic echo of the last user message,
                             no network.
``GeminiCompletionClient`` - a single Gemini call with a fixed model,
                             temperature and hard timeout.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from .config import Settings


logger = logging.getLogger("relaychat")

DEFAULT_TEMPERATURE = 0.7
REQUEST_TIMEOUT_SECONDS = 30.0
MOCK_PREFIX = "Mock answer: "


class UpstreamError(Exception):
    """The completion call failed or returned no usable answer."""

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    def __str__(self) -> str:
        base = super().__str__()
        if self.status is not None:
            return f"{base} (status {self.status})"
        return base


class CompletionClient(ABC):
    @abstractmethod
    async def complete(self, messages: List[Dict[str, str]]) -> str:
        """Return the answer for the given conversation or raise ``UpstreamError``."""


def last_user_content(messages: List[Dict[str, str]]) -> str:
    for m in reversed(messages):
        if m.get("role") == "user":
            return m.get("content", "") or ""
    return ""


class MockCompletionClient(CompletionClient):
    async def complete(self, messages: List[Dict[str, str]]) -> str:
        # answer on the next loop iteration, like a real call would
        await asyncio.sleep(0)
        return MOCK_PREFIX + last_user_content(messages)


def _to_gemini_contents(messages: List[Dict[str, str]]):
    contents = []
    for msg in messages:
        if msg["role"] == "system":
            continue
        role = "user" if msg["role"] == "user" else "model"
        content = msg.get("content", "")
        if content:
            contents.append({"role": role, "parts": [content]})
    return contents


class GeminiCompletionClient(CompletionClient):
    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-1.5-flash",
        temperature: float = DEFAULT_TEMPERATURE,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        genai.configure(api_key=api_key)
        self.model_name = model_name
        self.temperature = temperature
        self.timeout = timeout

    def _model(self, system_instruction: Optional[str]):
        return genai.GenerativeModel(
            self.model_name,
            system_instruction=system_instruction or None,
            generation_config=genai.GenerationConfig(temperature=self.temperature),
        )

    async def complete(self, messages: List[Dict[str, str]]) -> str:
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system" and m.get("content"))
        model = self._model(system)
        contents = _to_gemini_contents(messages)

        try:
            response = await asyncio.wait_for(
                model.generate_content_async(contents, request_options={"timeout": self.timeout}),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamError("request timeout") from e
        except google_exceptions.GoogleAPICallError as e:
            raise UpstreamError("Gemini API error", status=e.code, body=e.message) from e
        except Exception as e:
            raise UpstreamError(f"Gemini call failed: {e}") from e

        try:
            answer = response.text
        except ValueError as e:
            # blocked or empty candidates
            raise UpstreamError("Gemini response has no text", body=str(e)) from e
        if not answer:
            raise UpstreamError("Gemini response has no text")
        return answer


def build_completion_client(settings: Settings) -> CompletionClient:
    if settings.debug_mock:
        logger.info("Completion backend: mock")
        return MockCompletionClient()
    if not settings.gemini_api_key:
        raise RuntimeError("Missing GEMINI_API_KEY. Set environment variable GEMINI_API_KEY or DEBUG_MOCK=1.")
    logger.info("Completion backend: gemini model=%s", settings.gemini_model)
    return GeminiCompletionClient(settings.gemini_api_key, model_name=settings.gemini_model)
