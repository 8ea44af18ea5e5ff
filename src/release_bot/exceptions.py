"""Exception hierarchy for release-bot.

Every error raised by the bot derives from :class:`ReleaseBotError` so the
webhook task boundary and the CLI can report them uniformly.
"""

from __future__ import annotations


class ReleaseBotError(Exception):
    """Base class for all release-bot errors.

    Args:
        message: Human readable description
        hint: Optional suggestion for the operator
    """

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        self.message = message
        self.hint = hint
        super().__init__(message)

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} ({self.hint})"
        return self.message


# =============================================================================
# Configuration
# =============================================================================


class ConfigError(ReleaseBotError):
    """Base class for configuration errors."""


class ConfigLoadError(ConfigError):
    """Configuration could not be fetched (anything other than "not found")."""


class ConfigValidationError(ConfigError):
    """Configuration was fetched but is not valid."""


# =============================================================================
# Commits and versions
# =============================================================================


class MalformedHeaderError(ReleaseBotError):
    """Commit header does not match ``type(scope): subject``."""

    def __init__(self, message: str, *, is_breaking: bool = False) -> None:
        self.commit_message = message
        self.is_breaking = is_breaking
        header = message.split("\n", 1)[0]
        super().__init__(f"Not a conventional commit header: {header!r}")


class VersionParseError(ReleaseBotError):
    """A version string is not a valid ``MAJOR.MINOR.PATCH`` version."""


class VersionLookupError(ReleaseBotError):
    """The current published version could not be determined."""


class TemplateRenderError(ReleaseBotError):
    """The release template failed to render."""


# =============================================================================
# Remote services
# =============================================================================


class GitHubAPIError(ReleaseBotError):
    """GitHub API returned an error or could not be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        hint: str | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, hint=hint)


class GitHubNotFoundError(GitHubAPIError):
    """GitHub API returned 404."""


class StatusFetchError(ReleaseBotError):
    """Transient failure while fetching commit statuses."""


class CIFailureError(ReleaseBotError):
    """A relevant CI context reported failure."""

    def __init__(self, context: str, *, ref: str | None = None) -> None:
        self.context = context
        self.ref = ref
        target = f" for {ref}" if ref else ""
        super().__init__(
            f"CI context '{context}' is failing{target}, not creating a release",
        )


class CITimeoutError(ReleaseBotError):
    """CI statuses did not converge within the attempt budget."""

    def __init__(self, attempts: int, *, ref: str | None = None) -> None:
        self.attempts = attempts
        self.ref = ref
        target = f" for {ref}" if ref else ""
        super().__init__(
            f"CI statuses did not settle after {attempts} polls{target}",
            hint="raise max_poll_attempts or poll_interval_seconds",
        )


class ReleaseCreationError(ReleaseBotError):
    """Creating the GitHub release failed."""


# =============================================================================
# Local project and publishing
# =============================================================================


class ProjectError(ReleaseBotError):
    """A local project file is missing or invalid."""


class PublishError(ReleaseBotError):
    """The npm publish path failed."""

    def __init__(self, message: str, *, stderr: str | None = None) -> None:
        self.stderr = stderr
        super().__init__(message, hint=stderr.strip() if stderr else None)
