"""Permission decision models.

A decision is a closed variant discriminated by ``behavior``::

    {"behavior": "allow", "updated_input": {...}, "persist": true}
    {"behavior": "deny", "reason": "Not in this repo"}

``persist`` on an allow decision grants the request's permission key for the
remainder of the session.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

DEFAULT_DENY_REASON = "User denied the request"
ABORTED_REASON = "Session aborted"


class Allow(BaseModel):
    behavior: Literal["allow"] = "allow"
    updated_input: dict[str, Any] | None = None
    persist: bool = Field(default=False, description="Allow this permission key for the rest of the session.")


class Deny(BaseModel):
    behavior: Literal["deny"] = "deny"
    reason: str = DEFAULT_DENY_REASON


PermissionDecision = Annotated[Allow | Deny, Field(discriminator="behavior")]


class PermissionRequest(BaseModel):
    """An outstanding authorization request as seen by observers."""

    tool_use_id: str
    tool_name: str
    input: Any = None
