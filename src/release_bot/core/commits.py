"""Conventional commit parsing and bump classification.

A commit header has the shape ``type(scope): subject``. The type token is
matched against three synonym sets to decide the version bump:

- major: ``break``, ``breaking``, ``major``
- minor: ``feat``, ``feature``, ``minor``
- patch: ``fix``, ``bugfix``, ``patch``

Matching is a case-sensitive regex search, so ``bugfix`` and ``hotfix`` both
count as patch. A ``BREAKING CHANGE`` marker anywhere in the message forces
a major bump whatever the type token says.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from release_bot.core.version import BumpType, max_bump
from release_bot.exceptions import MalformedHeaderError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from release_bot.config.models import ReleaseBotConfig

DEFAULT_BREAKING_MARKER = "BREAKING CHANGE"
DEFAULT_TYPES_MAJOR = ("break", "breaking", "major")
DEFAULT_TYPES_MINOR = ("feat", "feature", "minor")
DEFAULT_TYPES_PATCH = ("fix", "bugfix", "patch")

NO_SCOPE = frozenset({"", "*"})
SIGN_OFF_TOKEN = "Signed-off-by:"

_HEADER_RE = re.compile(r"^(?P<type>\w+)(?:\((?P<scope>[^)]*)\))?(?P<bang>!)?: (?P<subject>.+)$")
_TRAILER_RE = re.compile(r"^(?:BREAKING[ -]CHANGE|[\w-]+): |^[\w-]+ #")
_MENTION_RE = re.compile(r"(?<![\w@])@([A-Za-z\d](?:[A-Za-z\d-]*[A-Za-z\d])?)")


@dataclass(frozen=True)
class CommitInput:
    """Raw commit as delivered by the push payload."""

    sha: str
    message: str
    author: str | None = None


@dataclass(frozen=True)
class ParsedCommit:
    """A classified commit.

    Attributes:
        sha: Commit id
        type: Header type token (``feat``, ``fix``, ...)
        scope: Header scope, ``""`` when absent
        subject: Remainder of the header line
        body: Descriptive text after the header, sign-offs removed
        footer: Trailer paragraph, sign-offs removed
        is_breaking: Breaking marker present or ``!`` before the colon
        bump: Bump implied by this commit alone
        mentions: ``@handle`` references, in order of appearance
        author: Author handle, if known
        html_url: Web URL of the commit
        is_conventional: Whether the header matched
    """

    sha: str
    type: str
    scope: str
    subject: str
    body: str = ""
    footer: str = ""
    is_breaking: bool = False
    bump: BumpType = BumpType.NONE
    mentions: tuple[str, ...] = ()
    author: str | None = None
    html_url: str = ""
    is_conventional: bool = True

    @property
    def has_scope(self) -> bool:
        return self.scope not in NO_SCOPE

    @property
    def short_sha(self) -> str:
        return self.sha[:7]

    @property
    def header(self) -> str:
        """Scope-prefixed subject as shown in release notes."""
        if self.has_scope:
            return f"**{self.scope}:** {self.subject}"
        return self.subject


@dataclass(frozen=True)
class BumpDecision:
    """Aggregated bump for a push."""

    increment: BumpType
    heading: str = ""
    commits: tuple[ParsedCommit, ...] = ()

    @property
    def needs_release(self) -> bool:
        return self.increment is not BumpType.NONE


def _synonym_pattern(types: Iterable[str]) -> re.Pattern[str] | None:
    words = [re.escape(t) for t in types if t]
    if not words:
        return None
    return re.compile("|".join(words))


def exclude_sign_off(text: str) -> str:
    """Drop lines that start with ``Signed-off-by:``."""
    lines = [line for line in text.split("\n") if not line.startswith(SIGN_OFF_TOKEN)]
    return "\n".join(lines).strip()


def commit_url(repository: str, sha: str) -> str:
    """Web URL of a commit in ``owner/repo``."""
    return f"https://github.com/{repository}/commit/{sha}"


def _split_body_footer(lines: list[str]) -> tuple[str, str]:
    paragraphs: list[list[str]] = [[]]
    for line in lines:
        if line.strip():
            paragraphs[-1].append(line)
        elif paragraphs[-1]:
            paragraphs.append([])
    paragraphs = [p for p in paragraphs if p]
    if not paragraphs:
        return "", ""

    last = paragraphs[-1]
    if all(_TRAILER_RE.match(line) or line.startswith(" ") for line in last):
        body = "\n\n".join("\n".join(p) for p in paragraphs[:-1])
        footer = "\n".join(last)
    else:
        body = "\n\n".join("\n".join(p) for p in paragraphs)
        footer = ""
    return exclude_sign_off(body), exclude_sign_off(footer)


def classify_type(
    commit_type: str,
    is_breaking: bool,
    types_major: Iterable[str] = DEFAULT_TYPES_MAJOR,
    types_minor: Iterable[str] = DEFAULT_TYPES_MINOR,
    types_patch: Iterable[str] = DEFAULT_TYPES_PATCH,
) -> BumpType:
    """Bump implied by a single type token.

    The major set and the breaking flag are checked first, then patch, then
    minor. A token matching none of the sets yields ``NONE``.
    """
    major = _synonym_pattern(types_major)
    if is_breaking or (major is not None and major.search(commit_type)):
        return BumpType.MAJOR
    patch = _synonym_pattern(types_patch)
    if patch is not None and patch.search(commit_type):
        return BumpType.PATCH
    minor = _synonym_pattern(types_minor)
    if minor is not None and minor.search(commit_type):
        return BumpType.MINOR
    return BumpType.NONE


def parse_commit(
    message: str,
    breaking_marker: str = DEFAULT_BREAKING_MARKER,
    *,
    sha: str = "",
    author: str | None = None,
    repository: str | None = None,
    mentions: Sequence[str] | None = None,
    config: ReleaseBotConfig | None = None,
) -> ParsedCommit:
    """Classify a raw commit message.

    Args:
        message: Full commit message
        breaking_marker: Literal text that flags a breaking change
        sha: Commit id
        author: Author handle
        repository: ``owner/repo`` used to build the commit URL
        mentions: Handles supplied by the caller; extracted from the text when omitted
        config: Supplies custom synonym sets when given

    Returns:
        The parsed commit

    Raises:
        MalformedHeaderError: If the first line is not ``type(scope): subject``
    """
    is_breaking = bool(breaking_marker) and breaking_marker in message
    lines = message.strip("\n").split("\n")
    match = _HEADER_RE.match(lines[0].strip())
    if match is None:
        raise MalformedHeaderError(message, is_breaking=is_breaking)

    is_breaking = is_breaking or match.group("bang") is not None
    commit_type = match.group("type")
    body, footer = _split_body_footer(lines[1:])

    if config is not None:
        bump = classify_type(
            commit_type,
            is_breaking,
            config.types_major,
            config.types_minor,
            config.types_patch,
        )
    else:
        bump = classify_type(commit_type, is_breaking)

    if mentions is None:
        mentions = _MENTION_RE.findall(f"{body}\n{footer}")

    return ParsedCommit(
        sha=sha,
        type=commit_type,
        scope=(match.group("scope") or "").strip(),
        subject=match.group("subject").strip(),
        body=body,
        footer=footer,
        is_breaking=is_breaking,
        bump=bump,
        mentions=tuple(mentions),
        author=author,
        html_url=commit_url(repository, sha) if repository and sha else "",
    )


def unconventional_commit(
    commit: CommitInput,
    *,
    is_breaking: bool = False,
    repository: str | None = None,
) -> ParsedCommit:
    """Record for a commit whose header did not parse; it never bumps."""
    subject = commit.message.strip().split("\n", 1)[0]
    return ParsedCommit(
        sha=commit.sha,
        type="",
        scope="",
        subject=subject,
        is_breaking=is_breaking,
        bump=BumpType.NONE,
        author=commit.author,
        html_url=commit_url(repository, commit.sha) if repository and commit.sha else "",
        is_conventional=False,
    )


def filter_skip_release_commits(
    commits: Sequence[CommitInput],
    patterns: Sequence[str],
) -> list[CommitInput]:
    """Drop commits carrying a skip-release marker (case-insensitive)."""
    if not patterns:
        return list(commits)
    lowered = [p.lower() for p in patterns]
    return [c for c in commits if not any(p in c.message.lower() for p in lowered)]


def parse_commits(
    commits: Sequence[CommitInput],
    config: ReleaseBotConfig,
    *,
    repository: str | None = None,
) -> list[ParsedCommit]:
    """Classify every commit; malformed headers become non-bumping records."""
    parsed: list[ParsedCommit] = []
    for commit in commits:
        try:
            parsed.append(
                parse_commit(
                    commit.message,
                    config.breaking_marker,
                    sha=commit.sha,
                    author=commit.author,
                    repository=repository,
                    config=config,
                )
            )
        except MalformedHeaderError as e:
            parsed.append(
                unconventional_commit(commit, is_breaking=e.is_breaking, repository=repository)
            )
    return parsed


def calculate_bump(
    commits: Sequence[ParsedCommit],
    config: ReleaseBotConfig | None = None,
) -> BumpDecision:
    """Reduce commits to the highest-severity bump (major > minor > patch > none)."""
    increment = max_bump(*(c.bump for c in commits))
    heading = config.heading_for(increment) if config is not None else ""
    return BumpDecision(increment=increment, heading=heading, commits=tuple(commits))


def group_commits_by_bump(
    commits: Sequence[ParsedCommit],
) -> dict[BumpType, list[ParsedCommit]]:
    """Bucket releasable commits into major, minor and patch, in that order."""
    buckets: dict[BumpType, list[ParsedCommit]] = {
        BumpType.MAJOR: [],
        BumpType.MINOR: [],
        BumpType.PATCH: [],
    }
    for commit in commits:
        if commit.bump in buckets:
            buckets[commit.bump].append(commit)
    return buckets

