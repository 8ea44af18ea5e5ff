"""HTTP clients for GitHub and the npm registry."""

from __future__ import annotations

from release_bot.clients.github import CombinedStatus, GitHubClient
from release_bot.clients.npm import NpmRegistryClient

__all__ = ["CombinedStatus", "GitHubClient", "NpmRegistryClient"]
