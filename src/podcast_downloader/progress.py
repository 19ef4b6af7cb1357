"""Pluggable progress reporting.

Library code reports byte progress through ``progress_context``; nothing is
rendered unless a front end (the CLI installs a tqdm factory) registers a
factory with ``set_progress_factory``.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, ContextManager, Iterator, Optional, Protocol


class ProgressReporter(Protocol):
    """Minimal interface for progress callbacks."""

    def update(self, advance: int) -> None: ...


ProgressFactory = Callable[[Optional[int], str], ContextManager[ProgressReporter]]


class _NoopProgress:
    def update(self, advance: int) -> None:  # pragma: no cover - trivial
        return None


@contextmanager
def _noop_progress(total: Optional[int], description: str) -> Iterator[ProgressReporter]:
    yield _NoopProgress()


_progress_factory: Optional[ProgressFactory] = None


def set_progress_factory(factory: Optional[ProgressFactory]) -> None:
    """Register a global factory for progress reporters; None restores the no-op one."""

    global _progress_factory
    _progress_factory = factory or _noop_progress


def get_progress_factory() -> ProgressFactory:
    return _progress_factory or _noop_progress


@contextmanager
def progress_context(total: Optional[int], description: str) -> Iterator[ProgressReporter]:
    """Return a context manager yielding the active progress reporter."""

    factory = get_progress_factory()
    with factory(total, description) as reporter:
        yield reporter


__all__ = [
    "ProgressReporter",
    "ProgressFactory",
    "get_progress_factory",
    "progress_context",
    "set_progress_factory",
]
