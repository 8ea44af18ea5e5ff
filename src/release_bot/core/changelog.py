"""Release notes rendering.

Two modes are supported:

- The built-in Markdown layout: a title linking to the compare view, one
  section per non-empty bucket (major, minor, patch, in that order), and a
  closing compare link.
- A user template (``release_template`` in the configuration), rendered
  with a sandboxed Jinja2 environment. Templates come from the repository
  being released, so they never get access to anything beyond the locals
  built here.

Both modes are pure: identical input always yields identical output.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from jinja2 import TemplateError
from jinja2.sandbox import SandboxedEnvironment

from release_bot.core.commits import exclude_sign_off
from release_bot.core.version import BumpType
from release_bot.exceptions import TemplateRenderError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from release_bot.config.models import ReleaseBotConfig
    from release_bot.core.commits import ParsedCommit

BUCKET_ORDER = (BumpType.MAJOR, BumpType.MINOR, BumpType.PATCH)

DEFAULT_HEADINGS = {
    BumpType.MAJOR: ":scream: BREAKING CHANGES :bangbang:",
    BumpType.MINOR: ":tada: New Features",
    BumpType.PATCH: ":bug: Bug Fixes",
}

_env = SandboxedEnvironment(autoescape=False, trim_blocks=True, lstrip_blocks=True)


@dataclass(frozen=True)
class ReleaseMetadata:
    """Everything about the release that is not a commit."""

    owner: str
    repo: str
    last_version: str
    next_version: str
    date: str

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def compare_link(self) -> str:
        return (
            f"https://github.com/{self.repository}/compare/"
            f"v{self.last_version}..v{self.next_version}"
        )


def _anchor(commit: ParsedCommit, length: int = 7) -> str:
    short = commit.sha[:length]
    if not short:
        return ""
    if commit.html_url:
        return f"[#{short}]({commit.html_url})"
    return f"#{short}"


def _render_commits(commits: Sequence[ParsedCommit], lines: list[str]) -> None:
    for commit in commits:
        anchor = _anchor(commit)
        prefix = f"({anchor}) " if anchor else ""
        profile = f" @{commit.author}" if commit.author else ""
        lines.append(f"- {prefix}{commit.header}{profile}")

        if commit.body:
            lines.extend(["", exclude_sign_off(commit.body)])
        if commit.footer:
            lines.extend(["", exclude_sign_off(commit.footer)])
        if commit.mentions:
            handles = (m if m.startswith("@") else f"@{m}" for m in commit.mentions)
            lines.extend(["", " ".join(handles)])


def render_release_notes(
    buckets: Mapping[BumpType, Sequence[ParsedCommit]],
    metadata: ReleaseMetadata,
    headings: Mapping[BumpType, str] | None = None,
) -> str:
    """Render the built-in Markdown release notes.

    Args:
        buckets: Commits keyed by bump kind; empty or missing buckets are skipped
        metadata: Repository, versions and date
        headings: Section headings per bump kind

    Returns:
        Markdown text without trailing whitespace
    """
    headings = headings or DEFAULT_HEADINGS
    link = metadata.compare_link
    lines = [f"# [v{metadata.next_version}]({link}) ({metadata.date})", ""]

    for kind in BUCKET_ORDER:
        commits = buckets.get(kind) or []
        if not commits:
            continue
        lines.extend([f"## {headings[kind]}", ""])
        _render_commits(commits, lines)
        lines.append("")

    lines.append(f"[`v{metadata.last_version}...v{metadata.next_version}`]({link})")
    return "\n".join(lines).strip()


def _commit_locals(commit: ParsedCommit, heading: str) -> dict[str, Any]:
    return {
        "sha": commit.sha,
        "type": commit.type,
        "scope": commit.scope if commit.has_scope else "",
        "subject": commit.subject,
        "header": commit.header,
        "body": commit.body,
        "footer": commit.footer,
        "mentions": list(commit.mentions),
        "author": commit.author,
        "link": commit.html_url,
        "anchor": _anchor(commit),
        "heading": heading,
        "is_breaking": commit.is_breaking,
    }


def build_template_locals(
    buckets: Mapping[BumpType, Sequence[ParsedCommit]],
    metadata: ReleaseMetadata,
    headings: Mapping[BumpType, str] | None = None,
) -> dict[str, Any]:
    """Variables available to a release template.

    ``commit`` is the first commit of the highest non-empty bucket, which is
    the commit that decided the bump.
    """
    headings = headings or DEFAULT_HEADINGS
    sections: dict[str, list[dict[str, Any]]] = {}
    commits: list[dict[str, Any]] = []
    for kind in BUCKET_ORDER:
        entries = [_commit_locals(c, headings[kind]) for c in buckets.get(kind) or []]
        sections[kind.value] = entries
        commits.extend(entries)

    return {
        "owner": metadata.owner,
        "repo": metadata.repo,
        "repository": metadata.repository,
        "currentVersion": metadata.last_version,
        "nextVersion": metadata.next_version,
        "date": metadata.date,
        "compareLink": metadata.compare_link,
        "commit": commits[0] if commits else {},
        "commits": commits,
        **sections,
    }


def render_template(template: str, variables: Mapping[str, Any]) -> str:
    """Render a Jinja2 release template.

    Raises:
        TemplateRenderError: If the template is invalid or fails to render
    """
    try:
        return _env.from_string(template).render(**variables).strip()
    except TemplateError as e:
        raise TemplateRenderError(f"Release template failed to render: {e}") from e


def render_changelog(
    buckets: Mapping[BumpType, Sequence[ParsedCommit]],
    metadata: ReleaseMetadata,
    config: ReleaseBotConfig | None = None,
) -> str:
    """Render release notes using the configured template or the built-in layout."""
    if config is None:
        return render_release_notes(buckets, metadata)

    headings = {kind: config.heading_for(kind) for kind in BUCKET_ORDER}
    if config.release_template:
        variables = build_template_locals(buckets, metadata, headings)
        return render_template(config.release_template, variables)
    return render_release_notes(buckets, metadata, headings)
