"""
LLM Service

Local language model integration via the Ollama chat API.
Provides the generation step of the retrieval-augmented query engine.

Design:
    - Async HTTP calls via httpx (non-blocking), bounded by a timeout.
    - No mock fallback: unreachable or failing servers raise
      ``ServiceUnavailable``, blank or malformed output raises
      ``EmptyResponse``, so callers can tell the two apart.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from notia.core.errors import EmptyResponse, ServiceUnavailable
from notia.services.base import ConversationTurn

logger = logging.getLogger(__name__)

SERVICE_NAME = "generation"


class LLMService:
    """
    Async chat generation backed by Ollama.

    Usage::

        service = LLMService("http://localhost:11434", "mistral")
        answer = await service.generate(
            system_prompt="Answer from the notes below...",
            history=memory.snapshot(),
            user_message="Where did I go in spring?",
        )
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        *,
        temperature: float = 0.7,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the LLM service.

        Args:
            base_url: Ollama API base URL.
            model: Model name to use.
            temperature: Sampling temperature (0.0 deterministic, 1.0 creative).
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._temperature = temperature
        self._timeout = timeout
        self._transport = transport

    async def generate(
        self,
        system_prompt: str,
        history: Sequence[ConversationTurn],
        user_message: str,
    ) -> str:
        """
        Generate the assistant reply for ``user_message``.

        Returns:
            Non-empty reply text.

        Raises:
            ServiceUnavailable: Ollama unreachable, timed out or returned an
                error status.
            EmptyResponse: Reply missing, malformed or blank.
        """
        payload = {
            "model": self._model,
            "messages": self._build_messages(system_prompt, history, user_message),
            "stream": False,
            "options": {"temperature": self._temperature},
        }

        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post("/api/chat", json=payload)
                response.raise_for_status()
                data = response.json()
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            logger.warning("Ollama unreachable (%s): %s", type(e).__name__, e)
            raise ServiceUnavailable(SERVICE_NAME, type(e).__name__) from e
        except httpx.HTTPStatusError as e:
            logger.error("Ollama API error: %s", e.response.text[:200])
            raise ServiceUnavailable(
                SERVICE_NAME, f"HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Ollama request failed: %s", e)
            raise ServiceUnavailable(SERVICE_NAME, str(e)) from e
        except ValueError as e:
            raise EmptyResponse("generation returned invalid JSON") from e

        content = self._extract_content(data)
        if not content:
            raise EmptyResponse("generation returned no text")

        logger.info(
            "Ollama response generated (model=%s, length=%d)",
            self._model,
            len(content),
        )
        return content

    @staticmethod
    def _build_messages(
        system_prompt: str,
        history: Sequence[ConversationTurn],
        user_message: str,
    ) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": t.role, "content": t.content} for t in history)
        messages.append({"role": "user", "content": user_message})
        return messages

    @staticmethod
    def _extract_content(data: Any) -> str:
        if not isinstance(data, dict):
            return ""
        message = data.get("message")
        if not isinstance(message, dict):
            return ""
        content = message.get("content")
        return content.strip() if isinstance(content, str) else ""
