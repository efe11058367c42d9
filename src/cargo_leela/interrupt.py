"""Cooperative cancellation shared between a signal handler and running work."""

from __future__ import annotations

import logging
import signal
import threading
from typing import Any

from cargo_leela.errors import Interrupted

logger = logging.getLogger(__name__)


class CancellationToken:
    """Set once when the user asks to stop; cheap to read from any thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        """Raise Interrupted if cancellation has been requested."""
        if self._event.is_set():
            raise Interrupted()


def install_handler(token: CancellationToken) -> dict[int, Any]:
    """Route SIGINT and SIGTERM to ``token``.

    Must be called from the main thread. Returns the previous handlers keyed
    by signal number so the caller can restore them.
    """

    def _handler(signum: int, frame: Any) -> None:
        logger.info("received signal %d, stopping", signum)
        token.cancel()

    previous: dict[int, Any] = {}
    for name in ("SIGINT", "SIGTERM"):
        signum = getattr(signal, name, None)
        if signum is None:
            continue
        previous[signum] = signal.signal(signum, _handler)
    return previous


def restore_handlers(previous: dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)
