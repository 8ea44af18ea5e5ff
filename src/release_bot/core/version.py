"""Semantic version handling.

Only plain ``MAJOR.MINOR.PATCH`` versions are supported, optionally with a
leading ``v``. Pre-release and build metadata are not interpreted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from release_bot.exceptions import VersionParseError

_VERSION_RE = re.compile(r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)$")


class BumpType(str, Enum):
    """Version component to raise, ordered by :attr:`severity`."""

    NONE = "none"
    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"

    def __str__(self) -> str:
        return self.value

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    BumpType.NONE: 0,
    BumpType.PATCH: 1,
    BumpType.MINOR: 2,
    BumpType.MAJOR: 3,
}


def max_bump(*bumps: BumpType) -> BumpType:
    """Return the highest-severity bump, ``NONE`` when given nothing."""
    return max(bumps, key=lambda b: b.severity, default=BumpType.NONE)


@dataclass(frozen=True, order=True)
class Version:
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    @property
    def tag(self) -> str:
        return f"v{self}"

    @classmethod
    def parse(cls, value: str) -> Version:
        """Parse ``1.2.3`` or ``v1.2.3``.

        Raises:
            VersionParseError: If the string is not a plain semantic version
        """
        match = _VERSION_RE.match(value.strip())
        if match is None:
            raise VersionParseError(f"Invalid version: {value!r}")
        return cls(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    def bump(self, kind: BumpType) -> Version:
        """Return the next version for ``kind``; ``NONE`` returns ``self``."""
        if kind is BumpType.MAJOR:
            return Version(self.major + 1, 0, 0)
        if kind is BumpType.MINOR:
            return Version(self.major, self.minor + 1, 0)
        if kind is BumpType.PATCH:
            return Version(self.major, self.minor, self.patch + 1)
        return self
