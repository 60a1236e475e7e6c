"""Log context enrichment for load cycles."""

from __future__ import annotations

import contextlib
from collections.abc import Iterator

import structlog


def bind_context(**kwargs: object) -> None:
    """Bind key-value pairs to the current logging context (task-local)."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear the current logging context."""
    structlog.contextvars.clear_contextvars()


@contextlib.contextmanager
def load_context(**kwargs: object) -> Iterator[None]:
    """Bind context for the duration of a block, restoring the previous values after."""
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
