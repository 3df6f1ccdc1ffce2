"""
Provider Configuration

Embedding and chat providers are described by a closed, tagged set of
configuration models discriminated on ``provider``. Gateways branch on the
concrete type and raise ``TypeError`` for anything else, so adding a provider
means adding a variant here and a branch in each gateway.
"""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, SecretStr, TypeAdapter

from .config import Settings, settings as default_settings
from .core.errors import (
    ProviderError,
    ProviderUnavailableError,
    QuotaExceededError,
    RateLimitedError,
    UpstreamError,
)


class OpenAIProviderConfig(BaseModel):
    """OpenAI-compatible REST API."""

    provider: Literal["openai"] = "openai"
    model: str = Field(..., min_length=1)
    api_key: Optional[SecretStr] = None
    base_url: str = "https://api.openai.com/v1"

    model_config = ConfigDict(frozen=True, extra="forbid")


class GeminiProviderConfig(BaseModel):
    """Google Generative Language REST API."""

    provider: Literal["gemini"] = "gemini"
    model: str = Field(..., min_length=1)
    api_key: Optional[SecretStr] = None
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    model_config = ConfigDict(frozen=True, extra="forbid")


ProviderConfig = Annotated[
    Union[OpenAIProviderConfig, GeminiProviderConfig],
    Field(discriminator="provider"),
]

_provider_adapter: TypeAdapter = TypeAdapter(ProviderConfig)


def build_provider_config(
    provider: str,
    model: str,
    settings: Settings | None = None,
) -> Union[OpenAIProviderConfig, GeminiProviderConfig]:
    """
    Build a provider config, pulling the matching API key from settings.

    Raises
    ------
    pydantic.ValidationError
        If ``provider`` is not one of the supported tags.
    """
    settings = settings or default_settings
    api_key = {
        "openai": settings.openai_api_key,
        "gemini": settings.gemini_api_key,
    }.get(provider)

    return _provider_adapter.validate_python(
        {"provider": provider, "model": model, "api_key": api_key}
    )


def parse_model_spec(
    spec: str,
    settings: Settings | None = None,
) -> Union[OpenAIProviderConfig, GeminiProviderConfig]:
    """Parse a ``provider:model`` entry, e.g. ``gemini:gemini-2.0-flash``."""
    provider, sep, model = spec.partition(":")
    if not sep or not model:
        raise ValueError(f"Invalid model spec '{spec}': expected 'provider:model'")
    return build_provider_config(provider.strip(), model.strip(), settings)


def summary_provider_configs(
    settings: Settings | None = None,
) -> List[Union[OpenAIProviderConfig, GeminiProviderConfig]]:
    settings = settings or default_settings
    return [parse_model_spec(spec, settings) for spec in settings.summary_model_specs()]


# ---------------------------------------------------------------------
# HTTP Failure Classification
# ---------------------------------------------------------------------

_QUOTA_MARKERS = ("insufficient_quota", "quota", "resource_exhausted")


def require_api_key(config: Union[OpenAIProviderConfig, GeminiProviderConfig]) -> str:
    """Return the configured API key or fail as a non-retryable outage."""
    if config.api_key is None or not config.api_key.get_secret_value():
        raise ProviderUnavailableError(
            f"{config.provider} API key is not configured"
        )
    return config.api_key.get_secret_value()


def check_provider_response(
    response: httpx.Response,
    config: Union[OpenAIProviderConfig, GeminiProviderConfig],
) -> None:
    """
    Map a non-2xx provider response onto the upstream error taxonomy.

    - 429, or 403 mentioning quota -> QuotaExceededError / RateLimitedError
    - 401 / 403                    -> ProviderUnavailableError
    - anything else                -> ProviderError (transient)
    """
    if response.is_success:
        return

    body = response.text[:500]
    lowered = body.lower()
    label = f"{config.provider}:{config.model} returned HTTP {response.status_code}"
    mentions_quota = any(marker in lowered for marker in _QUOTA_MARKERS)

    if response.status_code == 429 or (response.status_code == 403 and mentions_quota):
        if mentions_quota:
            raise QuotaExceededError(f"{label}: quota exceeded")
        raise RateLimitedError(f"{label}: rate limited")

    if response.status_code in (401, 403):
        raise ProviderUnavailableError(f"{label}: credentials rejected")

    raise ProviderError(f"{label}: {body}")


def translate_transport_error(
    exc: httpx.HTTPError,
    config: Union[OpenAIProviderConfig, GeminiProviderConfig],
) -> UpstreamError:
    """Map an httpx transport failure onto the upstream error taxonomy."""
    label = f"{config.provider}:{config.model}"
    if isinstance(exc, httpx.ConnectError):
        return ProviderUnavailableError(f"{label} unreachable: {exc}")
    return ProviderError(f"{label} request failed ({type(exc).__name__})")
