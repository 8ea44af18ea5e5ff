"""Integration tests for the webhook server."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from release_bot import __version__
from release_bot.config.models import BotSettings
from release_bot.core.orchestrator import PushEvent
from release_bot.exceptions import CIFailureError
from release_bot.server import create_app, run_evaluation, verify_signature

SECRET = "s3cret"

PUSH_PAYLOAD = {
    "ref": "refs/heads/main",
    "repository": {"full_name": "octo/widgets"},
    "head_commit": {
        "id": "a1b2c3d4e5f6a7b8c9d0",
        "message": "feat(api): add pagination",
        "timestamp": "2024-05-01T12:00:00Z",
        "author": {"username": "octocat"},
    },
    "commits": [],
}


def _sign(body: bytes, secret: str = SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


async def _drain(app) -> None:
    await asyncio.gather(*list(app.state.tasks))


@pytest.fixture
def orchestrator() -> MagicMock:
    mock = MagicMock()
    mock.handle_push = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def app(orchestrator):
    settings = BotSettings(github_token="ghp_test", webhook_secret=SECRET)
    return create_app(settings, orchestrator=orchestrator)


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _deliver(client: AsyncClient, event: str, payload: dict, signature: str | None = None):
    body = json.dumps(payload).encode()
    headers = {
        "X-GitHub-Event": event,
        "X-Hub-Signature-256": signature if signature is not None else _sign(body),
        "Content-Type": "application/json",
    }
    return await client.post("/webhook", content=body, headers=headers)


class TestHealthEndpoint:
    async def test_health_returns_ok(self, client):
        resp = await client.get("/health")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "service": "release-bot", "version": __version__}


class TestWebhookEndpoint:
    async def test_ping(self, client, orchestrator):
        resp = await _deliver(client, "ping", {"zen": "Keep it logically awesome."})

        assert resp.status_code == 202
        assert resp.json() == {"status": "pong"}
        orchestrator.handle_push.assert_not_awaited()

    async def test_bad_signature_rejected(self, client, orchestrator):
        resp = await _deliver(client, "push", PUSH_PAYLOAD, signature="sha256=deadbeef")

        assert resp.status_code == 401
        orchestrator.handle_push.assert_not_awaited()

    async def test_missing_signature_rejected(self, client):
        resp = await client.post("/webhook", json=PUSH_PAYLOAD, headers={"X-GitHub-Event": "push"})

        assert resp.status_code == 401

    async def test_other_events_ignored(self, client, orchestrator):
        resp = await _deliver(client, "issues", {"action": "opened"})

        assert resp.status_code == 202
        assert resp.json()["status"] == "ignored"
        orchestrator.handle_push.assert_not_awaited()

    async def test_branch_deletion_ignored(self, client, orchestrator):
        payload = {**PUSH_PAYLOAD, "deleted": True, "head_commit": None}

        resp = await _deliver(client, "push", payload)

        assert resp.json()["status"] == "ignored"
        orchestrator.handle_push.assert_not_awaited()

    async def test_invalid_payload(self, client):
        resp = await _deliver(client, "push", {"head_commit": {"id": "abc"}})

        assert resp.status_code == 400

    async def test_push_accepted(self, app, client, orchestrator):
        """A push is accepted and evaluated in a tracked task."""
        resp = await _deliver(client, "push", PUSH_PAYLOAD)

        assert resp.status_code == 202
        assert resp.json() == {"status": "accepted", "key": "octo/widgets@a1b2c3d4e5f6a7b8c9d0"}
        await _drain(app)
        assert not app.state.tasks
        orchestrator.handle_push.assert_awaited_once()
        event = orchestrator.handle_push.await_args.args[0]
        assert isinstance(event, PushEvent)
        assert event.head_message == "feat(api): add pagination"
        assert event.author == "octocat"


class TestWithoutSecret:
    async def test_unsigned_push_accepted(self, orchestrator):
        """Signature checks are skipped when no secret is configured."""
        app = create_app(BotSettings(github_token="ghp_test"), orchestrator=orchestrator)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            resp = await c.post("/webhook", json=PUSH_PAYLOAD, headers={"X-GitHub-Event": "push"})

        assert resp.status_code == 202
        assert resp.json()["status"] == "accepted"


class TestVerifySignature:
    def test_valid(self):
        assert verify_signature(SECRET, b"{}", _sign(b"{}"))

    @pytest.mark.parametrize("signature", [None, "", "sha1=abc", _sign(b"{}", "other")])
    def test_invalid(self, signature):
        assert not verify_signature(SECRET, b"{}", signature)


class TestRunEvaluation:
    async def test_release_errors_logged(self, caplog):
        """Release errors are logged, not raised, at the task boundary."""
        orchestrator = MagicMock()
        orchestrator.handle_push = AsyncMock(side_effect=CIFailureError("ci/circleci"))
        event = PushEvent.from_payload(PUSH_PAYLOAD)

        with caplog.at_level(logging.ERROR, logger="release_bot"):
            await run_evaluation(orchestrator, event)

        assert "ci/circleci" in caplog.text

    async def test_unexpected_errors_logged(self, caplog):
        orchestrator = MagicMock()
        orchestrator.handle_push = AsyncMock(side_effect=RuntimeError("kaboom"))
        event = PushEvent.from_payload(PUSH_PAYLOAD)

        with caplog.at_level(logging.ERROR, logger="release_bot"):
            await run_evaluation(orchestrator, event)

        assert "crashed" in caplog.text


class TestShutdown:
    async def test_running_evaluations_drained(self, orchestrator):
        """Evaluations that finish within the grace period complete normally."""
        release = asyncio.Event()

        async def handle_push(event):
            await release.wait()

        orchestrator.handle_push = AsyncMock(side_effect=handle_push)
        app = create_app(BotSettings(github_token="ghp_test"), orchestrator=orchestrator)

        async with app.router.lifespan_context(app):
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
                await c.post("/webhook", json=PUSH_PAYLOAD, headers={"X-GitHub-Event": "push"})
            (task,) = app.state.tasks
            release.set()

        assert task.done()
        assert not task.cancelled()

    async def test_stuck_evaluations_cancelled(self, orchestrator):
        """Evaluations still running after the grace period are cancelled."""

        async def handle_push(event):
            await asyncio.Event().wait()

        orchestrator.handle_push = AsyncMock(side_effect=handle_push)
        app = create_app(
            BotSettings(github_token="ghp_test"), orchestrator=orchestrator, shutdown_grace=0.01
        )

        async with app.router.lifespan_context(app):
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
                await c.post("/webhook", json=PUSH_PAYLOAD, headers={"X-GitHub-Event": "push"})
            (task,) = app.state.tasks

        assert task.cancelled()
        assert not app.state.tasks
