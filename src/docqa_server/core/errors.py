"""
Error Taxonomy and Global Error Handling

This module defines the application-wide exception hierarchy and the FastAPI
exception handlers that translate it into HTTP responses.

Design Goals
------------
- Caller-fixable errors (auth, validation, not found) are rejected before any
  persistence or external call
- Upstream provider failures are distinguishable by type so ingestion can
  decide between a hard stop and a soft skip
- Never leak internal exception details to clients on unexpected errors
- Always return deterministic, machine-readable error responses
"""

from __future__ import annotations

import logging
from typing import Dict, Any, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger("docqa.errors")


# ---------------------------------------------------------------------
# Exception Hierarchy
# ---------------------------------------------------------------------

class DocQAError(Exception):
    """Base class for all domain errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"
    headers: Optional[Dict[str, str]] = None


class UnauthorizedError(DocQAError):
    """Missing or invalid identity."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"
    headers = {"WWW-Authenticate": "Bearer"}


class ValidationError(DocQAError):
    """Missing required field or unsupported input."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class UnsupportedFormatError(ValidationError):
    """The declared MIME type has no text extractor."""

    code = "unsupported_format"


class NotFoundError(DocQAError):
    """Referenced resource is absent or not owned by the caller."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ExtractionError(DocQAError):
    """The file bytes could not be parsed into text."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "extraction_failed"


class UpstreamError(DocQAError):
    """Base class for embedding/generation provider failures."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "upstream_error"


class ProviderUnavailableError(UpstreamError):
    """Provider unreachable or misconfigured (missing/invalid credentials)."""

    code = "upstream_unavailable"


class RateLimitedError(UpstreamError):
    """Provider rejected the call because of rate limiting."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "upstream_rate_limited"


class QuotaExceededError(RateLimitedError):
    """Provider quota is exhausted; further calls will fail too."""

    code = "upstream_quota_exceeded"


class ProviderError(UpstreamError):
    """Transient provider failure (timeout, 5xx, malformed response)."""


class OperationTimeoutError(DocQAError):
    """A bounded external call did not finish in time."""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    code = "timeout"


class ProcessingFailure(DocQAError):
    """Ingestion ended without usable output; recorded on the document."""

    code = "processing_failed"


class FailureNotRecorded(DocQAError):
    """Ingestion failed and the failure could not be stored on the document."""

    code = "failure_not_recorded"


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def domain_exception_handler(
    request: Request,
    exc: DocQAError,
) -> JSONResponse:
    """
    Translate a DocQAError into its HTTP representation.

    Upstream failures get a generic message so provider details stay in the
    logs; every other domain error is caller-facing and carries its message.
    """
    if isinstance(exc, UpstreamError):
        logger.warning(
            "Upstream failure during %s %s: %s",
            request.method,
            request.url.path,
            exc,
        )
        detail = "The AI provider could not process this request. Please try again later."
    else:
        detail = str(exc) or exc.code

    payload: Dict[str, Any] = {
        "error": exc.code,
        "detail": detail,
    }

    return JSONResponse(
        status_code=exc.status_code,
        content=payload,
        headers=exc.headers,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
