"""Configuration models.

:class:`ReleaseBotConfig` is the per-repository configuration read from
``.github/release-bot.yml``. It is frozen once validated so a single push
evaluation always sees the same values.

:class:`BotSettings` is the process-wide configuration read from the
environment when the server or CLI starts.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from release_bot.core.version import BumpType

CONFIG_PATH = ".github/release-bot.yml"

DEFAULT_CI_CONTEXTS = ["continuous-integration", "circleci", "ci", "travis"]


class ReleaseBotConfig(BaseModel):
    """Per-repository release configuration.

    Keys are accepted in snake_case or camelCase (``defaultBranch``).
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    default_branch: str = "main"

    major_heading: str = ":scream: BREAKING CHANGES :bangbang:"
    minor_heading: str = ":tada: New Features"
    patch_heading: str = ":bug: Bug Fixes"

    release_template: str | None = None
    template_path: str | None = None

    npm_registry: str = "https://registry.npmjs.org"
    version_source: Literal["tags", "npm"] = "tags"

    poll_interval_seconds: float = Field(default=30.0, gt=0)
    max_poll_attempts: int = Field(default=40, ge=1)
    initial_delay_seconds: float = Field(default=10.0, ge=0)
    ci_contexts: list[str] = Field(default_factory=lambda: list(DEFAULT_CI_CONTEXTS))
    ci_policy: Literal["any", "all"] = "any"

    breaking_marker: str = "BREAKING CHANGE"
    types_major: list[str] = Field(default_factory=lambda: ["break", "breaking", "major"])
    types_minor: list[str] = Field(default_factory=lambda: ["feat", "feature", "minor"])
    types_patch: list[str] = Field(default_factory=lambda: ["fix", "bugfix", "patch"])
    skip_release_patterns: list[str] = Field(
        default_factory=lambda: ["[skip release]", "[release skip]", "[no release]"]
    )

    def heading_for(self, bump: BumpType) -> str:
        """Display heading for a bump kind (empty for ``NONE``)."""
        return {
            BumpType.MAJOR: self.major_heading,
            BumpType.MINOR: self.minor_heading,
            BumpType.PATCH: self.patch_heading,
        }.get(bump, "")

    def is_ci_context(self, context: str) -> bool:
        """Whether a status context name belongs to a known CI provider."""
        return any(name in context for name in self.ci_contexts)


@dataclass(frozen=True)
class BotSettings:
    """Process settings for the webhook server and CLI."""

    github_token: str
    github_api_url: str = "https://api.github.com"
    webhook_secret: str | None = None
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"


def load_settings() -> BotSettings:
    """Read :class:`BotSettings` from the environment (and ``.env``)."""
    load_dotenv()
    return BotSettings(
        github_token=os.getenv("GITHUB_TOKEN", ""),
        github_api_url=os.getenv("GITHUB_API_URL", "https://api.github.com"),
        webhook_secret=os.getenv("WEBHOOK_SECRET") or None,
        host=os.getenv("RELEASE_BOT_HOST", "0.0.0.0"),
        port=int(os.getenv("RELEASE_BOT_PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
