"""Configuration loading.

The per-repository configuration lives in ``.github/release-bot.yml`` on the
repository's default branch, never on the pushed ref, so a push cannot
change the settings that gate it. A missing file is not an error: the built-in defaults apply.
YAML is parsed with PyYAML, which also accepts JSON documents.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import ValidationError

from release_bot.config.models import CONFIG_PATH, ReleaseBotConfig
from release_bot.exceptions import (
    ConfigLoadError,
    ConfigValidationError,
    GitHubAPIError,
    GitHubNotFoundError,
)

if TYPE_CHECKING:
    from release_bot.clients.github import GitHubClient

logger = logging.getLogger(__name__)


def parse_config_text(text: str, source: str = CONFIG_PATH) -> dict[str, Any]:
    """Parse a YAML or JSON configuration document.

    Args:
        text: Raw file content
        source: Name used in error messages

    Returns:
        Mapping of configuration keys (empty for an empty document)

    Raises:
        ConfigValidationError: If the document is not valid YAML or not a mapping
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML in {source}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigValidationError(
            f"Expected a mapping at the top of {source}, got {type(data).__name__}"
        )
    return data


def build_config(overrides: dict[str, Any] | None = None) -> ReleaseBotConfig:
    """Merge ``overrides`` over the built-in defaults.

    Raises:
        ConfigValidationError: If any override is invalid
    """
    try:
        return ReleaseBotConfig.model_validate(overrides or {})
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigValidationError(f"Invalid release-bot configuration: {problems}") from e


def load_config_file(path: Path) -> ReleaseBotConfig:
    """Load a local configuration file; a missing file yields the defaults."""
    if not path.is_file():
        logger.debug("No config file at %s, using defaults", path)
        return build_config()
    return build_config(parse_config_text(path.read_text(encoding="utf-8"), str(path)))


async def load_repository_config(
    github: GitHubClient,
    owner: str,
    repo: str,
    ref: str | None = None,
    path: str = CONFIG_PATH,
) -> ReleaseBotConfig:
    """Fetch and validate the configuration stored in a repository.

    When ``template_path`` is set, the template file is fetched from the same
    ref and stored as ``release_template``.

    Args:
        github: GitHub API client
        owner: Repository owner
        repo: Repository name
        ref: Commit, branch or tag to read from; ``None`` reads the default branch
        path: Repository-relative config path

    Returns:
        Validated configuration

    Raises:
        ConfigLoadError: If the file could not be fetched for a reason other than 404
        ConfigValidationError: If the file content is invalid
    """
    try:
        text = await github.get_file_content(owner, repo, path, ref=ref)
    except GitHubNotFoundError:
        logger.debug("%s/%s has no %s, using defaults", owner, repo, path)
        return build_config()
    except GitHubAPIError as e:
        raise ConfigLoadError(f"Could not load {path} from {owner}/{repo}: {e}") from e

    overrides = parse_config_text(text, path)
    config = build_config(overrides)

    if config.template_path and not config.release_template:
        try:
            template = await github.get_file_content(owner, repo, config.template_path, ref=ref)
        except GitHubAPIError as e:
            raise ConfigLoadError(
                f"Could not load release template {config.template_path} "
                f"from {owner}/{repo}: {e}"
            ) from e
        config = config.model_copy(update={"release_template": template})

    return config
