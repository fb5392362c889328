"""
Run state — what first-time setup and ``deploy`` produced.

Stored inside the runtime subtree so that a reset discards it together
with everything else the stack created while running.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class DeployedContract(BaseModel):
    """A contract (or chaincode) deployed onto the stack's chain."""

    name: str
    location: dict[str, Any] = Field(default_factory=dict)
    deployed_at: str = Field(default_factory=_now_iso)


class StackState(BaseModel):
    deployed_contracts: list[DeployedContract] = Field(default_factory=list)
    first_start_completed_at: str | None = None
