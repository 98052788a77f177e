"""
Authentication Models

Strongly-typed identity passed to routes after JWT verification.
"""

from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict


class UserContext(BaseModel):
    """
    Authenticated user context derived from a verified JWT.

    `user_id` is the owner key for sessions and cache entries.
    """

    user_id: str = Field(
        ...,
        min_length=1,
        description="Stable user identifier taken from the 'sub' claim.",
    )

    email: Optional[str] = Field(
        default=None,
        description="Email address, when the token carries one.",
    )

    roles: List[str] = Field(
        default_factory=list,
        description="Roles granted to the user.",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",             # Prevents claim injection via unexpected fields
    )
