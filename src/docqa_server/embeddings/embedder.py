"""
Embedding Client

This module implements the embedding gateway used both at ingestion time (one
call per chunk) and at query time (one call per question). It is responsible
for:

- Building the provider-specific request for the configured model
- Bounded timeouts on every outbound call
- Classifying failures into the upstream error taxonomy
- Retrying transient failures a bounded number of times with backoff
- Strict response validation (fixed dimensionality per instance)

The same instance must serve ingestion and retrieval so both sides share one
vector space.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Union

import httpx

from ..core.errors import ProviderError
from ..providers import (
    GeminiProviderConfig,
    OpenAIProviderConfig,
    check_provider_response,
    require_api_key,
    translate_transport_error,
)

logger = logging.getLogger("docqa.embedder")


class Embedder:
    """
    Asynchronous embedding generator for single texts.

    The instance performs no caching. An optional ``transport`` lets tests
    substitute ``httpx.MockTransport`` for the network.
    """

    def __init__(
        self,
        config: Union[OpenAIProviderConfig, GeminiProviderConfig],
        timeout: float = 60.0,
        max_retries: int = 2,
        backoff_seconds: float = 0.5,
        dimensions: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        config : OpenAIProviderConfig | GeminiProviderConfig
            Provider, model and credentials.

        timeout : float
            HTTP timeout for each request.

        max_retries : int
            How many times a transient ``ProviderError`` is retried.

        backoff_seconds : float
            Base delay; attempt ``n`` waits ``backoff_seconds * 2**n``.

        dimensions : Optional[int]
            If given, vectors of any other length are rejected.
        """
        self.config = config
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.backoff_seconds = backoff_seconds
        self.dimensions = dimensions
        self._transport = transport

    @property
    def model(self) -> str:
        return self.config.model

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> List[float]:
        """
        Generate the embedding vector for one text.

        Raises
        ------
        ProviderUnavailableError
            Missing/invalid credentials or unreachable provider. Not retried.
        RateLimitedError, QuotaExceededError
            Provider throttling. Not retried.
        ProviderError
            Transient failure that persisted after all retries.
        """
        attempt = 0
        while True:
            try:
                return await self._embed_once(text)
            except ProviderError as exc:
                if attempt >= self.max_retries:
                    raise
                delay = self.backoff_seconds * (2 ** attempt)
                attempt += 1
                logger.warning(
                    "Embedding attempt %d/%d failed (%s); retrying in %.2fs",
                    attempt,
                    self.max_retries + 1,
                    exc,
                    delay,
                )
                await asyncio.sleep(delay)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _embed_once(self, text: str) -> List[float]:
        api_key = require_api_key(self.config)
        url, payload, headers = self._build_request(text, api_key)

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.post(url, json=payload, headers=headers)
            except httpx.HTTPError as exc:
                logger.error(
                    "Embedding request failed (%s): text length=%d",
                    type(exc).__name__,
                    len(text),
                )
                raise translate_transport_error(exc, self.config) from exc

        check_provider_response(response, self.config)

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError("Embedding response is not valid JSON.") from exc

        return self._validate_vector(self._extract_vector(data))

    def _build_request(self, text: str, api_key: str):
        config = self.config
        if isinstance(config, OpenAIProviderConfig):
            return (
                f"{config.base_url}/embeddings",
                {"model": config.model, "input": text},
                {"Authorization": f"Bearer {api_key}"},
            )
        if isinstance(config, GeminiProviderConfig):
            return (
                f"{config.base_url}/models/{config.model}:embedContent",
                {
                    "model": f"models/{config.model}",
                    "content": {"parts": [{"text": text}]},
                },
                {"x-goog-api-key": api_key},
            )
        raise TypeError(f"Unsupported provider config: {type(config).__name__}")

    def _extract_vector(self, data: dict) -> list:
        """
        Pull the raw vector out of the provider payload.

        OpenAI returns ``{"data": [{"embedding": [...]}]}``;
        Gemini returns ``{"embedding": {"values": [...]}}``.
        """
        if not isinstance(data, dict):
            raise ProviderError("Embedding response must be a JSON object.")

        if isinstance(self.config, OpenAIProviderConfig):
            records = data.get("data")
            if not isinstance(records, list) or not records:
                raise ProviderError("Embedding response missing 'data' records.")
            record = records[0]
            if not isinstance(record, dict) or "embedding" not in record:
                raise ProviderError(f"Malformed embedding record: {record!r}")
            return record["embedding"]

        if isinstance(self.config, GeminiProviderConfig):
            embedding = data.get("embedding")
            if not isinstance(embedding, dict) or "values" not in embedding:
                raise ProviderError("Embedding response missing 'embedding.values'.")
            return embedding["values"]

        raise TypeError(f"Unsupported provider config: {type(self.config).__name__}")

    def _validate_vector(self, emb: list) -> List[float]:
        if not isinstance(emb, list) or not emb or not all(
            isinstance(x, (float, int)) for x in emb
        ):
            raise ProviderError("Invalid embedding vector: must be a non-empty float list.")

        if self.dimensions is not None and len(emb) != self.dimensions:
            raise ProviderError(
                f"Embedding has {len(emb)} dimensions; expected {self.dimensions}."
            )

        return [float(x) for x in emb]
