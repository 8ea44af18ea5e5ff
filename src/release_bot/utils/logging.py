"""Logging setup and step timing."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from rich.logging import RichHandler

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger("release_bot")


def configure_logging(level: str | int = "INFO") -> None:
    """Attach a rich handler to the ``release_bot`` logger."""
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False


@contextmanager
def step_timer(step_name: str, key: str = "") -> Iterator[None]:
    """Log the start and duration of a release step."""
    prefix = f"[{key}] " if key else ""
    logger.debug("%s%s started", prefix, step_name)
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("%s%s finished in %.0f ms", prefix, step_name, elapsed_ms)
