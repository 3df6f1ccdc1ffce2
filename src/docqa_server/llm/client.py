from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx

from ..core.errors import ProviderError
from ..prompts import build_context_message
from ..providers import (
    GeminiProviderConfig,
    OpenAIProviderConfig,
    check_provider_response,
    require_api_key,
    translate_transport_error,
)

logger = logging.getLogger("docqa.llm")


class LLMClient:
    """
    Answer generator gateway.

    No automatic retry: a failure surfaces to the caller as an UpstreamError
    subclass for that request only.
    """

    def __init__(
        self,
        config: Union[OpenAIProviderConfig, GeminiProviderConfig],
        timeout: float = 60.0,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._transport = transport

    @property
    def model(self) -> str:
        return self.config.model

    async def generate(
        self,
        messages: Sequence[Dict[str, str]],
        context_text: str = "",
        summary: Optional[str] = None,
    ) -> str:
        """
        Produce the assistant answer for a dialogue.

        When ``context_text`` is non-empty a context system message (with the
        optional document summary) is placed after the prior messages, just
        before the current question.
        """
        prepared = list(messages)
        if context_text:
            insert_at = len(prepared)
            if prepared and prepared[-1]["role"] == "user":
                insert_at -= 1
            prepared.insert(
                insert_at,
                {"role": "system", "content": build_context_message(context_text, summary)},
            )
        return await self._chat(prepared)

    async def complete(self, prompt: str) -> str:
        """Single-turn completion, used for document summaries."""
        return await self._chat([{"role": "user", "content": prompt}])

    # ------------------------------------------------------------------

    async def _chat(self, messages: List[Dict[str, str]]) -> str:
        api_key = require_api_key(self.config)
        url, payload, headers = self._build_request(messages, api_key)

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                resp = await client.post(url, json=payload, headers=headers)
            except httpx.HTTPError as exc:
                logger.error("Chat request to %s failed: %s", self.model, type(exc).__name__)
                raise translate_transport_error(exc, self.config) from exc

        check_provider_response(resp, self.config)

        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError("Chat response is not valid JSON.") from exc

        return self._extract_text(data)

    def _build_request(self, messages: List[Dict[str, str]], api_key: str):
        config = self.config
        if isinstance(config, OpenAIProviderConfig):
            payload: Dict[str, Any] = {
                "model": config.model,
                "messages": messages,
                "temperature": self.temperature,
                "max_tokens": self.max_tokens,
            }
            return (
                f"{config.base_url}/chat/completions",
                payload,
                {"Authorization": f"Bearer {api_key}"},
            )

        if isinstance(config, GeminiProviderConfig):
            system_parts = [
                {"text": m["content"]} for m in messages if m["role"] == "system"
            ]
            contents = [
                {
                    "role": "model" if m["role"] == "assistant" else "user",
                    "parts": [{"text": m["content"]}],
                }
                for m in messages
                if m["role"] != "system"
            ]
            payload = {
                "contents": contents,
                "generationConfig": {
                    "temperature": self.temperature,
                    "maxOutputTokens": self.max_tokens,
                },
            }
            if system_parts:
                payload["systemInstruction"] = {"parts": system_parts}
            return (
                f"{config.base_url}/models/{config.model}:generateContent",
                payload,
                {"x-goog-api-key": api_key},
            )

        raise TypeError(f"Unsupported provider config: {type(config).__name__}")

    def _extract_text(self, data: Dict[str, Any]) -> str:
        try:
            if isinstance(self.config, OpenAIProviderConfig):
                return data["choices"][0]["message"]["content"] or ""
            if isinstance(self.config, GeminiProviderConfig):
                parts = data["candidates"][0]["content"]["parts"]
                return "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError(f"Malformed chat response from {self.model}.") from exc

        raise TypeError(f"Unsupported provider config: {type(self.config).__name__}")
