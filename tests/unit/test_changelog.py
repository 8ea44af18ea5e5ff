"""Unit tests for release notes rendering."""

from __future__ import annotations

import pytest

from release_bot.config.models import ReleaseBotConfig
from release_bot.core.changelog import (
    ReleaseMetadata,
    build_template_locals,
    render_changelog,
    render_release_notes,
    render_template,
)
from release_bot.core.commits import ParsedCommit
from release_bot.core.version import BumpType
from release_bot.exceptions import TemplateRenderError

COMPARE = "https://github.com/octo/widgets/compare/v1.2.0..v2.0.0"


@pytest.fixture
def metadata() -> ReleaseMetadata:
    return ReleaseMetadata(
        owner="octo",
        repo="widgets",
        last_version="1.2.0",
        next_version="2.0.0",
        date="2024-05-01",
    )


@pytest.fixture
def major_commit() -> ParsedCommit:
    return ParsedCommit(
        sha="abcdef1234567",
        type="break",
        scope="core",
        subject="drop support",
        bump=BumpType.MAJOR,
        author="octocat",
        html_url="https://github.com/octo/widgets/commit/abcdef1234567",
    )


def _buckets(major=(), minor=(), patch=()):
    return {BumpType.MAJOR: list(major), BumpType.MINOR: list(minor), BumpType.PATCH: list(patch)}


class TestRenderReleaseNotes:
    """Tests for the built-in Markdown layout."""

    def test_single_major_commit(self, metadata, major_commit):
        """One major commit yields one section and one bullet."""
        notes = render_release_notes(_buckets(major=[major_commit]), metadata)

        headings = [line for line in notes.splitlines() if line.startswith("## ")]
        bullets = [line for line in notes.splitlines() if line.startswith("- ")]
        assert headings == ["## :scream: BREAKING CHANGES :bangbang:"]
        assert len(bullets) == 1
        assert "core" in bullets[0]
        assert "drop support" in bullets[0]

    def test_deterministic(self, metadata, major_commit):
        """Identical input renders byte-identical output."""
        buckets = _buckets(major=[major_commit])

        assert render_release_notes(buckets, metadata) == render_release_notes(buckets, metadata)

    def test_layout(self, metadata, major_commit):
        """Title, section and closing compare link."""
        notes = render_release_notes(_buckets(major=[major_commit]), metadata)

        assert notes == (
            f"# [v2.0.0]({COMPARE}) (2024-05-01)\n"
            "\n"
            "## :scream: BREAKING CHANGES :bangbang:\n"
            "\n"
            "- ([#abcdef1](https://github.com/octo/widgets/commit/abcdef1234567)) "
            "**core:** drop support @octocat\n"
            "\n"
            f"[`v1.2.0...v2.0.0`]({COMPARE})"
        )

    def test_section_order(self, metadata):
        """Sections follow major, minor, patch order whatever the input order."""
        fix = ParsedCommit(
            sha="1111111", type="fix", scope="", subject="a fix", bump=BumpType.PATCH
        )
        feat = ParsedCommit(
            sha="2222222", type="feat", scope="", subject="a feat", bump=BumpType.MINOR
        )
        buckets = {BumpType.PATCH: [fix], BumpType.MINOR: [feat]}

        notes = render_release_notes(buckets, metadata)

        assert notes.index(":tada: New Features") < notes.index(":bug: Bug Fixes")
        assert "BREAKING" not in notes

    def test_empty_buckets(self, metadata):
        """No commits renders the title and compare link only."""
        notes = render_release_notes(_buckets(), metadata)

        assert notes == f"# [v2.0.0]({COMPARE}) (2024-05-01)\n\n[`v1.2.0...v2.0.0`]({COMPARE})"

    def test_body_footer_and_mentions(self, metadata):
        """Body, footer and mentions follow the bullet as separate paragraphs."""
        commit = ParsedCommit(
            sha="3333333",
            type="feat",
            scope="*",
            subject="add export",
            body="Exports CSV.\nSigned-off-by: A <a@b.c>",
            footer="Closes #7",
            mentions=("alice", "@bob"),
            bump=BumpType.MINOR,
        )

        notes = render_release_notes(_buckets(minor=[commit]), metadata)

        assert "- (#3333333) add export\n\nExports CSV.\n\nCloses #7\n\n@alice @bob" in notes
        assert "Signed-off-by" not in notes

    def test_custom_headings(self, metadata, major_commit):
        """Headings can be overridden."""
        headings = {BumpType.MAJOR: "Breaking", BumpType.MINOR: "Features", BumpType.PATCH: "Fixes"}

        notes = render_release_notes(_buckets(major=[major_commit]), metadata, headings)

        assert "## Breaking" in notes


class TestTemplateMode:
    """Tests for user-supplied release templates."""

    def test_template_locals(self, metadata, major_commit):
        """The deciding commit is exposed as ``commit``."""
        variables = build_template_locals(_buckets(major=[major_commit]), metadata)

        assert variables["nextVersion"] == "2.0.0"
        assert variables["currentVersion"] == "1.2.0"
        assert variables["repository"] == "octo/widgets"
        assert variables["compareLink"] == COMPARE
        assert variables["commit"]["scope"] == "core"
        assert variables["commit"]["heading"] == ":scream: BREAKING CHANGES :bangbang:"
        assert variables["major"][0]["subject"] == "drop support"
        assert variables["minor"] == []

    def test_render_placeholders(self, metadata, major_commit):
        """Placeholders resolve against the template locals."""
        template = "## {{ commit.heading }}\n{{ commit.anchor }} {{ commit.subject }} ({{ date }})"
        variables = build_template_locals(_buckets(major=[major_commit]), metadata)

        rendered = render_template(template, variables)

        assert rendered == (
            "## :scream: BREAKING CHANGES :bangbang:\n"
            "[#abcdef1](https://github.com/octo/widgets/commit/abcdef1234567) drop support "
            "(2024-05-01)"
        )

    def test_invalid_template(self):
        """Syntax errors surface as TemplateRenderError."""
        with pytest.raises(TemplateRenderError):
            render_template("{% for %}", {})

    def test_sandboxed(self):
        """Templates cannot reach Python internals."""
        with pytest.raises(TemplateRenderError):
            render_template("{{ ''.__class__.__mro__[1].__subclasses__() }}", {})


class TestRenderChangelog:
    """Tests for render_changelog() mode selection."""

    def test_without_config(self, metadata, major_commit):
        """No config uses the built-in layout with default headings."""
        buckets = _buckets(major=[major_commit])

        assert render_changelog(buckets, metadata) == render_release_notes(buckets, metadata)

    def test_config_headings(self, metadata, major_commit):
        """Configured headings are used by the built-in layout."""
        config = ReleaseBotConfig(major_heading="Breaking!")

        notes = render_changelog(_buckets(major=[major_commit]), metadata, config)

        assert "## Breaking!" in notes

    def test_config_template(self, metadata, major_commit):
        """A configured template replaces the built-in layout."""
        config = ReleaseBotConfig(release_template="v{{ nextVersion }}: {{ commit.subject }}")

        assert render_changelog(_buckets(major=[major_commit]), metadata, config) == (
            "v2.0.0: drop support"
        )
