"""Core business logic for release-bot.

This module contains the decision logic:
- Version parsing and manipulation
- Conventional commit classification and bump aggregation
- CI status convergence
- Release notes rendering

The push-event state machine lives in :mod:`release_bot.core.orchestrator`.
"""

from __future__ import annotations

from release_bot.core.changelog import (
    ReleaseMetadata,
    render_changelog,
    render_release_notes,
    render_template,
)
from release_bot.core.commits import (
    BumpDecision,
    CommitInput,
    ParsedCommit,
    calculate_bump,
    filter_skip_release_commits,
    group_commits_by_bump,
    parse_commit,
    parse_commits,
)
from release_bot.core.status import (
    ConvergenceResult,
    Outcome,
    StatusCheck,
    await_statuses,
)
from release_bot.core.version import BumpType, Version

__all__ = [
    # Version
    "BumpType",
    # Commits
    "BumpDecision",
    "CommitInput",
    # Status
    "ConvergenceResult",
    "Outcome",
    "ParsedCommit",
    # Changelog
    "ReleaseMetadata",
    "StatusCheck",
    "Version",
    "await_statuses",
    "calculate_bump",
    "filter_skip_release_commits",
    "group_commits_by_bump",
    "parse_commit",
    "parse_commits",
    "render_changelog",
    "render_release_notes",
    "render_template",
]
