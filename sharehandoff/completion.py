"""At-most-once termination latch for an ingestion session."""

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class CompletionGuard:
    """pending -> completed, once.

    ``complete_once`` may be called from every success and error branch; only
    the first call reaches ``on_complete``.
    """

    def __init__(self, on_complete: Callable[[], object]) -> None:
        self._on_complete = on_complete
        self._completed = False
        self._lock = threading.Lock()

    @property
    def completed(self) -> bool:
        return self._completed

    def complete_once(self) -> bool:
        """Signal completion; returns False if the session was already completed."""
        with self._lock:
            if self._completed:
                logger.debug("Completion already signalled; ignoring")
                return False
            self._completed = True
        self._on_complete()
        logger.debug("Share session completed")
        return True
