"""
Authentication Models

This module defines the strongly-typed identity used throughout the server
after JWT verification.
"""

from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class UserContext(BaseModel):
    """
    Authenticated user context derived from a verified JWT.

    Every document, conversation and chunk search is scoped to ``user_id``.
    """

    user_id: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Stable user identifier (the token's 'sub' claim).",
    )

    email: Optional[str] = Field(
        default=None,
        description="Email address, when the identity provider includes it.",
    )

    model_config = ConfigDict(
        frozen=True,                # Makes UserContext immutable after creation
        arbitrary_types_allowed=False,
        extra="forbid",             # Prevents claim injection via unexpected fields
    )
