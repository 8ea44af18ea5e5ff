"""release-bot: publish GitHub releases from conventional commits once CI is green."""

from __future__ import annotations

__version__ = "0.1.0"
