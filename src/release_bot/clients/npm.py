"""Async npm registry client."""

from __future__ import annotations

from urllib.parse import quote

import httpx

from release_bot.exceptions import VersionLookupError

DEFAULT_REGISTRY = "https://registry.npmjs.org"


class NpmRegistryClient:
    """Reads package metadata from an npm-compatible registry."""

    def __init__(
        self,
        registry_url: str = DEFAULT_REGISTRY,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.registry_url = registry_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __aenter__(self) -> NpmRegistryClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_latest_version(self, name: str) -> str:
        """Return ``dist-tags.latest`` for ``name``.

        Raises:
            VersionLookupError: If the package is unknown or has no latest tag
        """
        # Scoped names keep their @ but the slash must be encoded.
        url = f"{self.registry_url}/{quote(name, safe='@')}"
        try:
            resp = await self._client.get(url)
        except httpx.HTTPError as e:
            raise VersionLookupError(f"Could not reach {self.registry_url}: {e}") from e

        if resp.status_code == 404:
            raise VersionLookupError(
                f"Package {name} is not published on {self.registry_url}",
                hint="publish a first version manually",
            )
        if not resp.is_success:
            raise VersionLookupError(
                f"{self.registry_url} returned HTTP {resp.status_code} for {name}"
            )

        try:
            latest = resp.json()["dist-tags"]["latest"]
        except (ValueError, KeyError, TypeError) as e:
            raise VersionLookupError(f"No dist-tags.latest for {name}") from e
        return str(latest)
