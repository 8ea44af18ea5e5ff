"""Shared test fixtures."""

from __future__ import annotations

import pytest

from release_bot.config.models import ReleaseBotConfig
from release_bot.core.commits import CommitInput


@pytest.fixture
def config() -> ReleaseBotConfig:
    """Default configuration."""
    return ReleaseBotConfig()


@pytest.fixture
def feat_commit() -> CommitInput:
    return CommitInput(
        sha="a1b2c3d4e5f6a7b8c9d0",
        message="feat(api): add pagination",
        author="octocat",
    )


@pytest.fixture
def fix_commit() -> CommitInput:
    return CommitInput(
        sha="b2c3d4e5f6a7b8c9d0e1",
        message="fix: handle empty response\n\nSigned-off-by: Mona <mona@example.com>",
        author="mona",
    )


@pytest.fixture
def breaking_commit() -> CommitInput:
    return CommitInput(
        sha="abcdef1234567890abcd",
        message="feat(core): drop support\n\nBREAKING CHANGE: node 14 is no longer supported",
        author="hubot",
    )


@pytest.fixture
def sample_commits(
    feat_commit: CommitInput,
    fix_commit: CommitInput,
) -> list[CommitInput]:
    """A push with a feature, a fix and a non-conventional commit."""
    return [
        fix_commit,
        feat_commit,
        CommitInput(sha="c3d4e5f6a7b8c9d0e1f2", message="Update README", author="octocat"),
    ]
