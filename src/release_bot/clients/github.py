"""Async GitHub REST API client.

Only the handful of endpoints the bot needs are wrapped. Errors are mapped
to :class:`GitHubAPIError`, with 404 raised as :class:`GitHubNotFoundError`
so callers can tell "absent" from "broken".
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from release_bot.core.status import StatusCheck
from release_bot.core.version import Version
from release_bot.exceptions import GitHubAPIError, GitHubNotFoundError, VersionParseError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
MAX_TAG_PAGES = 50


@dataclass(frozen=True)
class CombinedStatus:
    """Response of ``GET /repos/{owner}/{repo}/commits/{ref}/status``."""

    state: str
    statuses: list[StatusCheck] = field(default_factory=list)


class GitHubClient:
    """Thin async wrapper around the GitHub REST API.

    Use as an async context manager, or call :meth:`aclose` when done.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "release-bot",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise GitHubAPIError(f"{method} {path} failed: {e}") from e

        if resp.status_code == 404:
            raise GitHubNotFoundError(f"{method} {path} returned 404", status_code=404)
        if not resp.is_success:
            try:
                detail = resp.json().get("message", "")
            except ValueError:
                detail = resp.text[:200]
            raise GitHubAPIError(
                f"{method} {path} returned HTTP {resp.status_code}",
                status_code=resp.status_code,
                hint=detail or None,
            )
        return resp

    async def get_combined_status(self, owner: str, repo: str, ref: str) -> CombinedStatus:
        """Current status of every context reported for ``ref``."""
        resp = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/commits/{quote(ref, safe='')}/status",
            params={"per_page": 100},
        )
        data = resp.json()
        statuses = [
            StatusCheck(context=s.get("context", ""), state=s.get("state", ""))
            for s in data.get("statuses", [])
        ]
        return CombinedStatus(state=data.get("state", ""), statuses=statuses)

    async def get_file_content(
        self,
        owner: str,
        repo: str,
        path: str,
        *,
        ref: str | None = None,
    ) -> str:
        """Decoded UTF-8 content of a repository file."""
        params = {"ref": ref} if ref else None
        resp = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/contents/{quote(path.lstrip('/'))}",
            params=params,
        )
        data = resp.json()
        if not isinstance(data, dict) or "content" not in data:
            raise GitHubAPIError(f"{path} in {owner}/{repo} is not a file")
        return base64.b64decode(data["content"]).decode("utf-8")

    async def get_latest_version_tag(self, owner: str, repo: str) -> str | None:
        """Highest ``vX.Y.Z`` tag in the repository, if any.

        Tags are listed newest first; every page is read, following the
        ``Link: rel="next"`` header, up to :data:`MAX_TAG_PAGES` pages.
        """
        best: tuple[Version, str] | None = None
        url: str | None = f"/repos/{owner}/{repo}/tags"
        params: dict[str, Any] | None = {"per_page": 100}
        pages = 0
        while url and pages < MAX_TAG_PAGES:
            resp = await self._request("GET", url, params=params)
            pages += 1
            for tag in resp.json():
                name = tag.get("name", "")
                try:
                    version = Version.parse(name)
                except VersionParseError:
                    continue
                if best is None or version > best[0]:
                    best = (version, name)
            # The next link already carries the query string.
            url = resp.links.get("next", {}).get("url")
            params = None
        if url:
            logger.warning(
                "%s/%s has more than %d pages of tags, ignoring the rest",
                owner,
                repo,
                MAX_TAG_PAGES,
            )
        return best[1] if best else None

    async def create_release(
        self,
        owner: str,
        repo: str,
        *,
        tag_name: str,
        name: str,
        body: str,
        draft: bool = False,
        prerelease: bool = False,
        target_commitish: str | None = None,
    ) -> dict[str, Any]:
        """Create a release and its tag.

        The tag points at ``target_commitish`` when given, otherwise GitHub
        uses the head of the default branch at the time of the call.
        """
        payload: dict[str, Any] = {
            "tag_name": tag_name,
            "name": name,
            "body": body,
            "draft": draft,
            "prerelease": prerelease,
        }
        if target_commitish:
            payload["target_commitish"] = target_commitish
        resp = await self._request("POST", f"/repos/{owner}/{repo}/releases", json=payload)
        logger.debug("Created release %s in %s/%s", tag_name, owner, repo)
        return resp.json()
