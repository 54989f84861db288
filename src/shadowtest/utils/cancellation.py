"""Cooperative cancellation for pipeline runs."""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


class PipelineCancelled(Exception):
    """Raised at an external-call boundary after cancellation was requested."""

    def __init__(self, stage: str) -> None:
        super().__init__(f"Pipeline cancelled before: {stage}")
        self.stage = stage


class CancellationToken:
    """Caller-owned cancellation flag polled before each external call.

    Setting the flag never interrupts an in-flight process; only the next
    boundary check raises :class:`PipelineCancelled`.  Backed by a
    ``threading.Event`` so it can be set from a signal handler.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        if not self._event.is_set():
            logger.info("Cancellation requested")
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str) -> None:
        """Raise :class:`PipelineCancelled` if cancellation was requested."""
        if self._event.is_set():
            logger.info("Stopping before %s (cancelled)", stage)
            raise PipelineCancelled(stage)


def check_cancelled(token: CancellationToken | None, stage: str) -> None:
    """Poll *token* if one was supplied."""
    if token is not None:
        token.raise_if_cancelled(stage)
