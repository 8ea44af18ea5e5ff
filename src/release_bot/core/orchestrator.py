"""Push-event release orchestration.

One :class:`ReleaseOrchestrator` serves every push delivered to the process.
Each call to :meth:`ReleaseOrchestrator.handle_push` owns its own
configuration, convergence state and :class:`ReleaseEvaluation`; the only
state shared between evaluations is the :class:`ReleaseGuard`, keyed by
repository and head commit so a redelivered event cannot publish twice.

Steps run strictly in order: classify, wait for CI, look up the current
version, render the notes, create the release.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from release_bot.clients.npm import NpmRegistryClient
from release_bot.config.loader import load_repository_config
from release_bot.core.changelog import ReleaseMetadata, render_changelog
from release_bot.core.commits import (
    BumpDecision,
    CommitInput,
    calculate_bump,
    filter_skip_release_commits,
    group_commits_by_bump,
    parse_commits,
)
from release_bot.core.states import ReleaseEvaluation, ReleaseResult, ReleaseState
from release_bot.core.status import Outcome, StatusCheck, await_statuses
from release_bot.core.version import Version
from release_bot.exceptions import (
    CIFailureError,
    CITimeoutError,
    GitHubAPIError,
    ProjectError,
    ReleaseCreationError,
    StatusFetchError,
    VersionLookupError,
    VersionParseError,
)
from release_bot.project.package_json import package_name_from_text
from release_bot.utils.logging import step_timer

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from release_bot.clients.github import GitHubClient
    from release_bot.config.models import ReleaseBotConfig

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "refs/heads/"


@dataclass(frozen=True)
class PushEvent:
    """The parts of a GitHub ``push`` payload the bot uses."""

    ref: str
    head_sha: str
    head_message: str
    timestamp: str
    repository: str
    author: str | None = None
    commits: tuple[CommitInput, ...] = ()

    @property
    def owner(self) -> str:
        return self.repository.split("/", 1)[0]

    @property
    def repo(self) -> str:
        return self.repository.split("/", 1)[1]

    @property
    def branch(self) -> str:
        if self.ref.startswith(BRANCH_PREFIX):
            return self.ref[len(BRANCH_PREFIX) :]
        return self.ref

    @property
    def key(self) -> str:
        """Idempotency key for this event."""
        return f"{self.repository}@{self.head_sha}"

    @property
    def date(self) -> str:
        if self.timestamp:
            return self.timestamp.split("T", 1)[0]
        return datetime.now(timezone.utc).strftime("%Y-%m-%d")

    def commit_inputs(self) -> list[CommitInput]:
        """Commits of the push, or just the head commit when the list is absent."""
        if self.commits:
            return list(self.commits)
        return [CommitInput(sha=self.head_sha, message=self.head_message, author=self.author)]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> PushEvent | None:
        """Build an event from a webhook payload.

        Returns ``None`` for branch deletions and pushes without a head commit.

        Raises:
            ValueError: If the payload lacks the repository name
        """
        if payload.get("deleted") or not payload.get("head_commit"):
            return None

        head = payload["head_commit"]
        try:
            repository = payload["repository"]["full_name"]
        except (KeyError, TypeError) as e:
            raise ValueError("push payload has no repository.full_name") from e

        def _author(commit: Mapping[str, Any]) -> str | None:
            author = commit.get("author") or {}
            return author.get("username") or None

        commits = tuple(
            CommitInput(sha=c.get("id", ""), message=c.get("message", ""), author=_author(c))
            for c in payload.get("commits") or []
        )
        sender = (payload.get("sender") or {}).get("login")
        return cls(
            ref=payload.get("ref", ""),
            head_sha=head.get("id", ""),
            head_message=head.get("message", ""),
            timestamp=head.get("timestamp", ""),
            repository=repository,
            author=_author(head) or sender,
            commits=commits,
        )


class ReleaseGuard:
    """Per-event "already handled" flags, bounded in size.

    A key is claimed while its evaluation runs and becomes published once a
    release exists. Published keys are evicted least-recently-used first.
    """

    def __init__(self, max_size: int = 1024) -> None:
        self.max_size = max_size
        self._in_flight: set[str] = set()
        self._published: OrderedDict[str, None] = OrderedDict()

    def is_published(self, key: str) -> bool:
        return key in self._published

    def claim(self, key: str) -> bool:
        """Claim ``key`` for evaluation; False if running or already published."""
        if key in self._in_flight or key in self._published:
            if key in self._published:
                self._published.move_to_end(key)
            return False
        self._in_flight.add(key)
        return True

    def release(self, key: str) -> None:
        """Drop a claim without publishing, so a redelivery can retry."""
        self._in_flight.discard(key)

    def mark_published(self, key: str) -> None:
        self._in_flight.discard(key)
        self._published[key] = None
        self._published.move_to_end(key)
        while len(self._published) > self.max_size:
            self._published.popitem(last=False)


class ReleaseOrchestrator:
    """Runs the release state machine for push events.

    Args:
        github: GitHub API client shared by all evaluations
        guard: Idempotency guard; a fresh one is created when omitted
        config_loader: Loads the repository configuration for an event
        npm_factory: Builds a registry client from a registry URL
        sleep: Awaitable sleep used for CI polling
    """

    def __init__(
        self,
        github: GitHubClient,
        *,
        guard: ReleaseGuard | None = None,
        config_loader: Callable[..., Awaitable[ReleaseBotConfig]] = load_repository_config,
        npm_factory: Callable[[str], NpmRegistryClient] = NpmRegistryClient,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.github = github
        self.guard = guard or ReleaseGuard()
        self._config_loader = config_loader
        self._npm_factory = npm_factory
        self._sleep = sleep

    async def handle_push(self, event: PushEvent) -> ReleaseEvaluation | None:
        """Evaluate a push and publish a release when warranted.

        Returns:
            The evaluation record, or ``None`` when the push is ignored
            (other branch, or a duplicate of an event already handled)

        Raises:
            ConfigLoadError: Configuration could not be fetched
            CIFailureError: A CI context failed
            CITimeoutError: CI did not settle in time
            VersionLookupError: The current version is unknown
            ReleaseCreationError: GitHub rejected the release
        """
        # Read from the default branch: the pushed commit must not configure its own gate.
        config = await self._config_loader(self.github, event.owner, event.repo)

        if event.branch != config.default_branch:
            logger.debug(
                "Ignoring push to %s in %s (default branch is %s)",
                event.branch,
                event.repository,
                config.default_branch,
            )
            return None

        if not self.guard.claim(event.key):
            logger.info("[%s] Already handled, skipping duplicate delivery", event.key)
            return None

        evaluation = ReleaseEvaluation(
            key=event.key,
            repository=event.repository,
            sha=event.head_sha,
        )
        try:
            await self._evaluate(event, config, evaluation)
        except Exception as e:
            evaluation.error = str(e)
            raise
        finally:
            if evaluation.state is not ReleaseState.DONE:
                self.guard.release(event.key)
        return evaluation

    async def _evaluate(
        self,
        event: PushEvent,
        config: ReleaseBotConfig,
        evaluation: ReleaseEvaluation,
    ) -> None:
        evaluation.transition_to(ReleaseState.EVALUATING, "push")

        commits = filter_skip_release_commits(
            event.commit_inputs(), config.skip_release_patterns
        )
        parsed = parse_commits(commits, config, repository=event.repository)
        decision = calculate_bump(parsed, config)
        evaluation.increment = decision.increment.value

        if not decision.needs_release:
            logger.info("[%s] No need for release publishing", event.key)
            evaluation.transition_to(ReleaseState.IDLE, "no-bump")
            return

        logger.info("[%s] %s bump detected, waiting for CI", event.key, decision.increment)
        evaluation.transition_to(
            ReleaseState.AWAITING_CI, "bump-detected", {"increment": decision.increment.value}
        )

        with step_timer("await CI", event.key):
            await self._await_ci(event, config, evaluation)

        evaluation.transition_to(ReleaseState.RELEASING, "ci-passed")
        with step_timer("create release", event.key):
            result = await self._release(event, config, decision)

        evaluation.release = result
        evaluation.transition_to(ReleaseState.DONE, "release-created", {"tag": result.tag_name})
        self.guard.mark_published(event.key)
        logger.info("[%s] Published %s", event.key, result.tag_name)

    async def _await_ci(
        self,
        event: PushEvent,
        config: ReleaseBotConfig,
        evaluation: ReleaseEvaluation,
    ) -> None:
        if config.initial_delay_seconds:
            await self._sleep(config.initial_delay_seconds)

        async def fetch() -> list[StatusCheck]:
            try:
                combined = await self.github.get_combined_status(
                    event.owner, event.repo, event.head_sha
                )
            except GitHubAPIError as e:
                raise StatusFetchError(str(e)) from e
            return combined.statuses

        result = await await_statuses(
            fetch,
            config.is_ci_context,
            interval=config.poll_interval_seconds,
            max_attempts=config.max_poll_attempts,
            policy=config.ci_policy,
            sleep=self._sleep,
        )

        if result.outcome is Outcome.FAIL:
            context = result.failed_context or "unknown"
            evaluation.transition_to(ReleaseState.FAILED, "ci-failed", {"context": context})
            logger.error("[%s] CI context %s failed, not releasing", event.key, context)
            raise CIFailureError(context, ref=event.head_sha)

        if result.outcome is Outcome.TIMEOUT:
            evaluation.transition_to(
                ReleaseState.TIMED_OUT, "ci-timeout", {"attempts": result.attempts}
            )
            logger.error(
                "[%s] CI did not settle after %d polls, not releasing",
                event.key,
                result.attempts,
            )
            raise CITimeoutError(result.attempts, ref=event.head_sha)

    async def current_version(self, event: PushEvent, config: ReleaseBotConfig) -> Version:
        """Latest published version, from tags or the npm registry.

        Raises:
            VersionLookupError: If no valid version can be determined
        """
        if config.version_source == "npm":
            latest = await self._npm_version(event, config)
        else:
            try:
                latest = await self.github.get_latest_version_tag(event.owner, event.repo)
            except GitHubAPIError as e:
                raise VersionLookupError(f"Could not list tags of {event.repository}: {e}") from e
            if latest is None:
                raise VersionLookupError(
                    f"{event.repository} has no vX.Y.Z tag",
                    hint="tag the current release, e.g. v0.1.0",
                )

        try:
            return Version.parse(latest)
        except VersionParseError as e:
            raise VersionLookupError(f"Latest version of {event.repository}: {e}") from e

    async def _npm_version(self, event: PushEvent, config: ReleaseBotConfig) -> str:
        try:
            text = await self.github.get_file_content(
                event.owner, event.repo, "package.json", ref=event.head_sha
            )
            name = package_name_from_text(text)
        except (GitHubAPIError, ProjectError) as e:
            raise VersionLookupError(
                f"Could not read the package name of {event.repository}: {e}"
            ) from e

        async with self._npm_factory(config.npm_registry) as npm:
            return await npm.get_latest_version(name)

    async def _release(
        self,
        event: PushEvent,
        config: ReleaseBotConfig,
        decision: BumpDecision,
    ) -> ReleaseResult:
        current = await self.current_version(event, config)
        next_version = current.bump(decision.increment)

        metadata = ReleaseMetadata(
            owner=event.owner,
            repo=event.repo,
            last_version=str(current),
            next_version=str(next_version),
            date=event.date,
        )
        body = render_changelog(group_commits_by_bump(decision.commits), metadata, config)
        result = ReleaseResult(
            tag_name=next_version.tag,
            name=next_version.tag,
            body=body,
            current_version=str(current),
            next_version=str(next_version),
        )

        try:
            await self.github.create_release(
                event.owner,
                event.repo,
                tag_name=result.tag_name,
                name=result.name,
                body=result.body,
                draft=False,
                prerelease=False,
                target_commitish=event.head_sha,
            )
        except GitHubAPIError as e:
            raise ReleaseCreationError(
                f"Could not create release {result.tag_name} in {event.repository}: {e}"
            ) from e
        return result
