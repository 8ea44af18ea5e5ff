"""CI status convergence.

Polls a commit's statuses until the relevant CI contexts settle. Every poll
fetches the full status list; what has been seen is accumulated across polls,
so a context that once passed stays passed even if a later response omits it.
A failure of any relevant context ends the run immediately.

Two pass policies are supported:

- ``any``: at least one relevant context succeeded and none failed.
- ``all``: additionally, every relevant context ever seen pending has since
  succeeded.

The loop is bounded by ``max_attempts`` polls and sleeps ``interval`` seconds
between polls with an injectable awaitable sleep, so concurrent evaluations
in the same event loop keep running while one of them waits.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Literal

from release_bot.exceptions import StatusFetchError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)

StatusState = Literal["success", "pending", "failure", "error"]
ConvergencePolicy = Literal["any", "all"]


@dataclass(frozen=True)
class StatusCheck:
    """One status reported for a commit."""

    context: str
    state: StatusState


class Outcome(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    TIMEOUT = "timeout"


@dataclass
class ConvergenceState:
    """Bookkeeping for a single convergence run."""

    passed: set[str] = field(default_factory=set)
    pending: set[str] = field(default_factory=set)
    failed: str | None = None
    attempt: int = 0

    def record(self, statuses: Iterable[StatusCheck]) -> None:
        for status in statuses:
            if status.state in ("failure", "error"):
                self.failed = status.context
                return
            if status.state == "success":
                self.passed.add(status.context)
            elif status.state == "pending":
                self.pending.add(status.context)

    def is_passing(self, policy: ConvergencePolicy) -> bool:
        if self.failed is not None or not self.passed:
            return False
        if policy == "all":
            return self.pending <= self.passed
        return True


@dataclass(frozen=True)
class ConvergenceResult:
    """Terminal outcome of a convergence run."""

    outcome: Outcome
    attempts: int
    passed: frozenset[str] = frozenset()
    pending: frozenset[str] = frozenset()
    failed_context: str | None = None


async def await_statuses(
    fetch: Callable[[], Awaitable[Iterable[StatusCheck]]],
    is_relevant: Callable[[str], bool],
    *,
    interval: float,
    max_attempts: int,
    policy: ConvergencePolicy = "any",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> ConvergenceResult:
    """Poll until the relevant statuses pass, fail, or the budget runs out.

    Args:
        fetch: Returns the full current status list for the commit
        is_relevant: Selects the CI contexts that count
        interval: Seconds to wait between polls
        max_attempts: Maximum number of polls
        policy: ``any`` or ``all`` pass policy
        sleep: Awaitable sleep, replaced in tests

    Returns:
        The terminal :class:`ConvergenceResult`. Fetch errors
        (:class:`StatusFetchError`) consume an attempt and are retried; when
        they exhaust the budget the outcome is ``TIMEOUT``.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    state = ConvergenceState()

    while state.attempt < max_attempts:
        if state.attempt:
            await sleep(interval)
        state.attempt += 1

        try:
            statuses = await fetch()
        except StatusFetchError as e:
            logger.warning(
                "Status fetch failed (attempt %d/%d): %s", state.attempt, max_attempts, e
            )
            continue

        state.record(s for s in statuses if is_relevant(s.context))

        if state.failed is not None:
            return _result(Outcome.FAIL, state)
        if state.is_passing(policy):
            return _result(Outcome.PASS, state)

        logger.debug(
            "CI not settled (attempt %d/%d): passed=%s pending=%s",
            state.attempt,
            max_attempts,
            sorted(state.passed),
            sorted(state.pending),
        )

    return _result(Outcome.TIMEOUT, state)


def _result(outcome: Outcome, state: ConvergenceState) -> ConvergenceResult:
    return ConvergenceResult(
        outcome=outcome,
        attempts=state.attempt,
        passed=frozenset(state.passed),
        pending=frozenset(state.pending),
        failed_context=state.failed,
    )
