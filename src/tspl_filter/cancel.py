"""
Job cancellation flag.

CUPS cancels a filter with SIGTERM. The signal handler only stores
``True`` into the flag; the job driver polls it before each page, before
each row and after each page, so a cancellation is seen at most one row
or page later.
"""

from __future__ import annotations

import logging
import signal
from types import FrameType
from typing import Any, Final, Optional

__all__ = ["CancellationFlag"]

logger: Final = logging.getLogger(__name__)


class CancellationFlag:
    """Set-once boolean written from a signal handler and polled by the job loop."""

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    def request(self) -> None:
        self._cancelled = True

    def is_set(self) -> bool:
        return self._cancelled

    def __bool__(self) -> bool:
        return self._cancelled

    def _handle_signal(self, signum: int, frame: Optional[FrameType]) -> None:
        # No I/O here: the main loop may be in the middle of a write.
        self._cancelled = True

    def install(self, signum: int = signal.SIGTERM) -> Any:
        """
        Route ``signum`` to this flag.

        Returns:
            The previous handler, for :func:`signal.signal` restoration.
        """
        previous = signal.signal(signum, self._handle_signal)
        logger.debug("Cancellation handler installed for signal %d", signum)
        return previous
