"""release-bot command line entry point."""

from __future__ import annotations

import typer
from rich.console import Console

from release_bot import __version__
from release_bot.cli.commands.publish import run_publish
from release_bot.config import load_settings
from release_bot.utils.logging import configure_logging

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _show_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(
    version: bool = typer.Option(
        False, "--version", callback=_show_version, is_eager=True, help="Show version and exit."
    ),
) -> None:
    """Automated GitHub releases from conventional commits."""


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address (RELEASE_BOT_HOST)"),
    port: int | None = typer.Option(None, "--port", help="Bind port (RELEASE_BOT_PORT)"),
) -> None:
    """Run the GitHub webhook server."""
    import uvicorn

    from release_bot.server import create_app

    settings = load_settings()
    configure_logging(settings.log_level)
    if not settings.github_token:
        err_console.print("[red]Error:[/] GITHUB_TOKEN is not set.")
        raise SystemExit(1)

    uvicorn.run(
        create_app(settings),
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


@app.command()
def publish(
    path: str | None = typer.Option(None, "--cwd", help="Project directory"),
    registry: str | None = typer.Option(None, "--registry", help="npm registry URL"),
    ci: bool = typer.Option(True, "--ci/--no-ci", help="Only run on a CI server"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the decision only"),
) -> None:
    """Bump and publish the npm package for the head commit."""
    configure_logging(load_settings().log_level)
    run_publish(path, registry, ci, dry_run, console, err_console)


if __name__ == "__main__":
    app()
