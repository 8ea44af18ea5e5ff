"""
release-bot webhook server.

Endpoints:
  POST /webhook  GitHub webhook receiver (push events trigger a release evaluation)
  GET  /health   Health check

Each accepted push runs as its own tracked asyncio task, so a long CI wait
for one repository never holds up deliveries for another. On shutdown the
running tasks get a grace period to finish and are then cancelled.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Header, HTTPException, Request

from release_bot import __version__
from release_bot.clients.github import GitHubClient
from release_bot.core.orchestrator import PushEvent, ReleaseOrchestrator
from release_bot.exceptions import ReleaseBotError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from release_bot.config.models import BotSettings

logger = logging.getLogger(__name__)


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Check an ``X-Hub-Signature-256`` header against the raw body."""
    if not signature or not signature.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(f"sha256={expected}", signature)


async def run_evaluation(orchestrator: ReleaseOrchestrator, event: PushEvent) -> None:
    """Evaluate one push and log the outcome; runs as a detached task."""
    try:
        evaluation = await orchestrator.handle_push(event)
    except ReleaseBotError as e:
        logger.error("[%s] Release aborted: %s", event.key, e)
        return
    except Exception:
        logger.exception("[%s] Release evaluation crashed", event.key)
        return

    if evaluation is not None:
        logger.info("[%s] Evaluation finished in state %s", event.key, evaluation.state.value)


async def drain_tasks(tasks: set[asyncio.Task[None]], timeout: float) -> None:
    """Wait up to ``timeout`` seconds for ``tasks``, then cancel the rest."""
    if not tasks:
        return
    logger.info("Waiting for %d running evaluation(s) to finish", len(tasks))
    _, pending = await asyncio.wait(set(tasks), timeout=timeout)
    for task in pending:
        task.cancel()
    if pending:
        logger.warning("Cancelled %d evaluation(s) still running at shutdown", len(pending))
        await asyncio.gather(*pending, return_exceptions=True)


def create_app(
    settings: BotSettings,
    orchestrator: ReleaseOrchestrator | None = None,
    *,
    shutdown_grace: float = 30.0,
) -> FastAPI:
    """Build the webhook application.

    Args:
        settings: Process settings (token, API URL, webhook secret)
        orchestrator: Injected orchestrator; one backed by a real GitHub
            client is created for the app's lifetime when omitted
        shutdown_grace: Seconds running evaluations get to finish on
            shutdown before they are cancelled
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            if orchestrator is None:
                github = await stack.enter_async_context(
                    GitHubClient(settings.github_token, api_url=settings.github_api_url)
                )
                app.state.orchestrator = ReleaseOrchestrator(github)
            try:
                yield
            finally:
                # Evaluations still use the GitHub client, so drain them before it closes.
                await drain_tasks(app.state.tasks, shutdown_grace)

    app = FastAPI(title="release-bot", version=__version__, lifespan=lifespan)
    app.state.tasks = set()
    if orchestrator is not None:
        app.state.orchestrator = orchestrator

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "release-bot", "version": __version__}

    @app.post("/webhook", status_code=202)
    async def webhook(
        request: Request,
        x_github_event: str | None = Header(default=None),
        x_hub_signature_256: str | None = Header(default=None),
    ) -> dict[str, str]:
        body = await request.body()

        if settings.webhook_secret and not verify_signature(
            settings.webhook_secret, body, x_hub_signature_256
        ):
            raise HTTPException(status_code=401, detail="Invalid webhook signature")

        if x_github_event == "ping":
            return {"status": "pong"}
        if x_github_event != "push":
            return {"status": "ignored", "reason": f"event {x_github_event!r} not handled"}

        try:
            payload = json.loads(body)
            event = PushEvent.from_payload(payload)
        except (ValueError, AttributeError) as e:
            raise HTTPException(status_code=400, detail=f"Invalid push payload: {e}") from e

        if event is None:
            return {"status": "ignored", "reason": "no head commit"}

        task = asyncio.create_task(run_evaluation(request.app.state.orchestrator, event))
        # The loop only keeps weak references to tasks.
        request.app.state.tasks.add(task)
        task.add_done_callback(request.app.state.tasks.discard)
        logger.info("[%s] Push to %s accepted", event.key, event.ref)
        return {"status": "accepted", "key": event.key}

    return app
