"""Tests for CI status convergence."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from release_bot.core.status import ConvergenceState, Outcome, StatusCheck, await_statuses
from release_bot.exceptions import StatusFetchError


def _fetcher(*responses):
    """Fetch that returns one response per call; exceptions are raised."""
    return AsyncMock(side_effect=list(responses))


def _is_ci(context: str) -> bool:
    return "ci" in context


class TestConvergenceState:
    """Tests for ConvergenceState bookkeeping."""

    def test_failure_short_circuits(self):
        """A failure stops recording the rest of the batch."""
        state = ConvergenceState()

        state.record([StatusCheck("ci/a", "error"), StatusCheck("ci/b", "success")])

        assert state.failed == "ci/a"
        assert state.passed == set()

    def test_all_policy_needs_pending_to_pass(self):
        """Under ``all`` every pending context must have passed."""
        state = ConvergenceState()
        state.record([StatusCheck("ci/a", "success"), StatusCheck("ci/b", "pending")])

        assert state.is_passing("any")
        assert not state.is_passing("all")

        state.record([StatusCheck("ci/b", "success")])
        assert state.is_passing("all")


class TestAwaitStatuses:
    """Tests for await_statuses()."""

    async def test_pending_then_success(self):
        """Pending then success passes after exactly two polls."""
        fetch = _fetcher([StatusCheck("ci", "pending")], [StatusCheck("ci", "success")])
        sleep = AsyncMock()

        result = await await_statuses(fetch, _is_ci, interval=5, max_attempts=10, sleep=sleep)

        assert result.outcome is Outcome.PASS
        assert result.attempts == 2
        assert fetch.await_count == 2
        sleep.assert_awaited_once_with(5)

    async def test_failure_first_poll(self):
        """A failure on the first poll fails after exactly one poll."""
        fetch = _fetcher([StatusCheck("ci", "failure")])
        sleep = AsyncMock()

        result = await await_statuses(fetch, _is_ci, interval=5, max_attempts=10, sleep=sleep)

        assert result.outcome is Outcome.FAIL
        assert result.attempts == 1
        assert result.failed_context == "ci"
        sleep.assert_not_awaited()

    async def test_timeout(self):
        """All-pending responses for max_attempts polls time out."""
        fetch = AsyncMock(return_value=[StatusCheck("ci", "pending")])
        sleep = AsyncMock()

        result = await await_statuses(fetch, _is_ci, interval=1, max_attempts=4, sleep=sleep)

        assert result.outcome is Outcome.TIMEOUT
        assert result.attempts == 4
        assert fetch.await_count == 4
        assert sleep.await_count == 3

    async def test_irrelevant_contexts_ignored(self):
        """Non-CI contexts neither pass nor fail the run."""
        fetch = AsyncMock(
            return_value=[StatusCheck("codecov/patch", "failure"), StatusCheck("lint", "success")]
        )

        result = await await_statuses(
            fetch, _is_ci, interval=1, max_attempts=2, sleep=AsyncMock()
        )

        assert result.outcome is Outcome.TIMEOUT

    async def test_no_statuses_yet(self):
        """An empty status list keeps polling."""
        fetch = _fetcher([], [StatusCheck("ci", "success")])

        result = await await_statuses(
            fetch, _is_ci, interval=1, max_attempts=3, sleep=AsyncMock()
        )

        assert result.outcome is Outcome.PASS
        assert result.attempts == 2

    async def test_passed_is_monotonic(self):
        """A context that passed stays passed when a later poll omits it."""
        fetch = _fetcher(
            [StatusCheck("ci/a", "success"), StatusCheck("ci/b", "pending")],
            [StatusCheck("ci/b", "success")],
        )

        result = await await_statuses(
            fetch, _is_ci, interval=1, max_attempts=5, policy="all", sleep=AsyncMock()
        )

        assert result.outcome is Outcome.PASS
        assert result.passed == frozenset({"ci/a", "ci/b"})

    async def test_all_policy_waits_for_pending(self):
        """Under ``all`` a lingering pending context prevents a pass."""
        fetch = AsyncMock(
            return_value=[StatusCheck("ci/a", "success"), StatusCheck("ci/b", "pending")]
        )

        result = await await_statuses(
            fetch, _is_ci, interval=1, max_attempts=3, policy="all", sleep=AsyncMock()
        )

        assert result.outcome is Outcome.TIMEOUT
        assert result.pending == frozenset({"ci/b"})

    async def test_fetch_errors_consume_attempts(self):
        """A failed fetch is retried and counts against the budget."""
        fetch = _fetcher(StatusFetchError("boom"), [StatusCheck("ci", "success")])

        result = await await_statuses(
            fetch, _is_ci, interval=1, max_attempts=3, sleep=AsyncMock()
        )

        assert result.outcome is Outcome.PASS
        assert result.attempts == 2

    async def test_fetch_errors_exhaust_budget(self):
        """Only fetch errors ends in a timeout."""
        fetch = AsyncMock(side_effect=StatusFetchError("down"))

        result = await await_statuses(
            fetch, _is_ci, interval=1, max_attempts=2, sleep=AsyncMock()
        )

        assert result.outcome is Outcome.TIMEOUT
        assert result.attempts == 2

    async def test_invalid_budget(self):
        """max_attempts below one is rejected."""
        with pytest.raises(ValueError, match="max_attempts"):
            await await_statuses(AsyncMock(), _is_ci, interval=1, max_attempts=0)
