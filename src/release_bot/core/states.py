"""
Release evaluation state machine.

  IDLE → EVALUATING → AWAITING_CI → RELEASING → DONE

with the early exit EVALUATING → IDLE (no bump needed) and the terminal
failures AWAITING_CI → FAILED and AWAITING_CI → TIMED_OUT.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ReleaseState(str, Enum):
    """States of a single push-event evaluation."""

    IDLE = "idle"
    EVALUATING = "evaluating"
    AWAITING_CI = "awaiting_ci"
    RELEASING = "releasing"
    DONE = "done"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


VALID_TRANSITIONS: dict[ReleaseState, list[ReleaseState]] = {
    ReleaseState.IDLE: [ReleaseState.EVALUATING],
    ReleaseState.EVALUATING: [ReleaseState.IDLE, ReleaseState.AWAITING_CI],
    ReleaseState.AWAITING_CI: [
        ReleaseState.RELEASING,
        ReleaseState.FAILED,
        ReleaseState.TIMED_OUT,
    ],
    ReleaseState.RELEASING: [ReleaseState.DONE],
    ReleaseState.DONE: [],
    ReleaseState.FAILED: [],
    ReleaseState.TIMED_OUT: [],
}


@dataclass(frozen=True)
class ReleaseResult:
    """A created release, handed to the release-creation call."""

    tag_name: str
    name: str
    body: str
    current_version: str
    next_version: str


def _now() -> str:
    """UTC timestamp in ISO 8601 format."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class StateTransition(BaseModel):
    """Record of a single state transition."""

    from_state: ReleaseState
    to_state: ReleaseState
    trigger: str
    timestamp: str = Field(default_factory=_now)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ReleaseEvaluation(BaseModel):
    """Tracks one push event from delivery to its terminal state."""

    key: str = Field(..., description="Idempotency key (owner/repo@sha)")
    repository: str
    sha: str
    state: ReleaseState = ReleaseState.IDLE
    increment: str | None = None
    release: ReleaseResult | None = None
    error: str | None = None
    transitions: list[StateTransition] = Field(default_factory=list)

    def can_transition_to(self, new_state: ReleaseState) -> bool:
        return new_state in VALID_TRANSITIONS.get(self.state, [])

    def transition_to(
        self,
        new_state: ReleaseState,
        trigger: str,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """
        Transition to a new state if valid.

        Returns True if the transition succeeded, False if invalid.
        """
        if not self.can_transition_to(new_state):
            return False

        self.transitions.append(
            StateTransition(
                from_state=self.state,
                to_state=new_state,
                trigger=trigger,
                metadata=metadata or {},
            )
        )
        self.state = new_state
        return True
