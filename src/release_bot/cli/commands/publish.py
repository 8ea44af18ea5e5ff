"""Implementation of the 'publish' command.

The publish command bumps and publishes an npm package from a CI job. The
next version is derived from the head commit and the version currently
published on the registry.
"""

from __future__ import annotations

import asyncio
import os
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from rich.panel import Panel

from release_bot.clients.npm import DEFAULT_REGISTRY, NpmRegistryClient
from release_bot.config import CONFIG_PATH, load_config_file
from release_bot.core.commits import (
    CommitInput,
    calculate_bump,
    filter_skip_release_commits,
    parse_commits,
)
from release_bot.core.version import Version
from release_bot.exceptions import PublishError, ReleaseBotError
from release_bot.project.package_json import get_package_name, get_package_version

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from rich.console import Console

CI_ENV_VARS = ("CI", "CONTINUOUS_INTEGRATION", "BUILD_NUMBER", "BUILD_ID", "RUN_ID")


def is_ci(env: Mapping[str, str] | None = None) -> bool:
    """Whether the process looks like it runs on a CI server."""
    env = os.environ if env is None else env
    if env.get("CI", "").lower() == "false":
        return False
    return any(env.get(name) for name in CI_ENV_VARS)


def npmrc_content(registry: str, token: str) -> str:
    """Credentials file for ``registry`` that leaves git tagging to the bot."""
    parsed = urlparse(registry)
    path = parsed.path.rstrip("/")
    return (
        f"//{parsed.netloc}{path}/:_authToken={token}\n"
        "sign-git-tag=false\n"
        "git-tag-version=false\n"
        "allow-same-version=false\n"
    )


def read_head_commit(project_path: Path) -> CommitInput:
    """Read the checked-out commit with ``git log``.

    Raises:
        PublishError: If git is missing or the directory is not a repository
    """
    try:
        result = subprocess.run(
            ["git", "log", "-1", "--format=%H%n%B"],
            cwd=project_path,
            capture_output=True,
            text=True,
            check=True,
        )
    except FileNotFoundError as e:
        raise PublishError("git executable not found") from e
    except subprocess.CalledProcessError as e:
        raise PublishError("Could not read the head commit", stderr=e.stderr) from e

    sha, _, message = result.stdout.partition("\n")
    return CommitInput(sha=sha.strip(), message=message.strip())


def _run_npm(args: Sequence[str], project_path: Path, console: Console) -> None:
    cmd = ["npm", *args]
    console.print(f"  [dim]Running[/] {' '.join(cmd)}")
    try:
        subprocess.run(cmd, cwd=project_path, capture_output=True, text=True, check=True)
    except FileNotFoundError as e:
        raise PublishError("npm executable not found") from e
    except subprocess.CalledProcessError as e:
        raise PublishError(
            f"`{' '.join(cmd)}` failed with exit code {e.returncode}", stderr=e.stderr
        ) from e


async def _latest_version(registry: str, name: str) -> str:
    async with NpmRegistryClient(registry) as npm:
        return await npm.get_latest_version(name)


def run_publish(
    path: str | None,
    registry: str | None,
    require_ci: bool,
    dry_run: bool,
    console: Console,
    err_console: Console,
) -> None:
    """Run the publish command.

    Args:
        path: Optional path to project directory
        registry: Registry URL override
        require_ci: Refuse to run when not on a CI server
        dry_run: Print the decision without touching npm
        console: Console for standard output
        err_console: Console for error output
    """
    project_path = Path(path) if path else Path.cwd()

    if require_ci and not is_ci():
        err_console.print(
            "[red]Error:[/] Not running on a CI server.\n"
            "Use [cyan]--no-ci[/] to publish from a local checkout."
        )
        raise SystemExit(1)

    try:
        config = load_config_file(project_path / CONFIG_PATH)
        registry_url = (
            registry or os.getenv("NPM_REGISTRY") or config.npm_registry or DEFAULT_REGISTRY
        )
        name = get_package_name(project_path)
        current_version = Version.parse(asyncio.run(_latest_version(registry_url, name)))
        head = read_head_commit(project_path)
    except ReleaseBotError as e:
        err_console.print(f"[red]Error:[/] {e}")
        raise SystemExit(1) from e

    commits = filter_skip_release_commits([head], config.skip_release_patterns)
    decision = calculate_bump(parse_commits(commits, config), config)
    if not decision.needs_release:
        console.print("[yellow]No release needed for the head commit. Nothing to do.[/]")
        return

    next_version = current_version.bump(decision.increment)
    mode_str = "[yellow]DRY-RUN[/]" if dry_run else "[green]EXECUTING[/]"
    console.print(
        f"\n{mode_str} - {decision.increment} release of [cyan]{name}[/]: "
        f"[cyan]{current_version}[/] -> [green]{next_version}[/]\n"
    )

    if dry_run:
        local_version = get_package_version(project_path) or "unset"
        console.print(
            Panel(
                f"[bold]package.json version:[/] {local_version}\n\n"
                "[bold]Would run:[/]\n\n"
                f"  npm version {next_version}\n"
                f"  npm publish --registry {registry_url}",
                title="[yellow]Dry Run Preview[/]",
                border_style="yellow",
            )
        )
        return

    token = os.getenv("NPM_TOKEN")
    if not token:
        err_console.print("[red]Error:[/] NPM_TOKEN is not set.")
        raise SystemExit(1)

    try:
        (project_path / ".npmrc").write_text(npmrc_content(registry_url, token), encoding="utf-8")
        console.print("  [green]✓[/] Wrote .npmrc")
        _run_npm(["version", str(next_version)], project_path, console)
        _run_npm(["publish", "--registry", registry_url], project_path, console)
    except (OSError, PublishError) as e:
        err_console.print(f"[red]Publish failed:[/] {e}")
        raise SystemExit(1) from e

    console.print(
        Panel(
            f"[green]Published {name}@{next_version}![/]",
            title="[green]Publish Complete[/]",
            border_style="green",
        )
    )
