"""package.json reading.

The bot only needs the package name (to look up the published version on
the registry) and the local version (shown by the CLI). Writing the new
version is left to ``npm version``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from release_bot.exceptions import ProjectError

PACKAGE_JSON = "package.json"


def find_package_json(start: Path | None = None) -> Path:
    """Find package.json in ``start`` or any parent directory.

    Args:
        start: Directory to search from (defaults to cwd)

    Returns:
        Path to package.json

    Raises:
        ProjectError: If no package.json is found
    """
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / PACKAGE_JSON
        if candidate.is_file():
            return candidate
    raise ProjectError(f"No {PACKAGE_JSON} found in {current} or its parents")


def _load(text: str, source: str) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProjectError(f"Invalid JSON in {source}: {e}") from e
    if not isinstance(data, dict):
        raise ProjectError(f"{source} must contain a JSON object")
    return data


def package_name_from_text(text: str, source: str = PACKAGE_JSON) -> str:
    """Extract ``name`` from package.json content.

    Raises:
        ProjectError: If the content is invalid or has no name
    """
    name = _load(text, source).get("name")
    if not isinstance(name, str) or not name:
        raise ProjectError(f"{source} has no package name")
    return name


def _resolve(path: Path | None) -> Path:
    if path is None:
        return find_package_json()
    if path.is_dir():
        return find_package_json(path)
    return path


def get_package_name(path: Path | None = None) -> str:
    """Package name from package.json (a file, or a directory to search from)."""
    package_json = _resolve(path)
    return package_name_from_text(package_json.read_text(encoding="utf-8"), str(package_json))


def get_package_version(path: Path | None = None) -> str | None:
    """Local ``version`` field from package.json, if set."""
    package_json = _resolve(path)
    version = _load(package_json.read_text(encoding="utf-8"), str(package_json)).get("version")
    return version if isinstance(version, str) else None
