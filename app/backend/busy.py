from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Iterator

from .errors import BusyError


logger = logging.getLogger("uvicorn.error")


class BusyGuard:
    """Single-slot guard for the one network-bound operation a session may run.

    Acquisition never waits: a second dispatch while the slot is held is
    rejected with ``BusyError``. The slot is released on every exit path.
    """

    def __init__(self, name: str = "session") -> None:
        self._name = name
        self._lock = threading.Lock()
        self._label = ""

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def label(self) -> str:
        return self._label if self.busy else ""

    def relabel(self, label: str) -> None:
        if self.busy:
            self._label = label

    @contextmanager
    def hold(self, label: str) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            logger.info("guard=%s busy_rejected requested=%s running=%s", self._name, label, self._label)
            raise BusyError(f"Another operation is already running: {self._label}")
        self._label = label
        start_ts = time.monotonic()
        try:
            yield
        finally:
            elapsed_ms = int((time.monotonic() - start_ts) * 1000)
            self._label = ""
            self._lock.release()
            logger.info("guard=%s released label=%s elapsed_ms=%s", self._name, label, elapsed_ms)
