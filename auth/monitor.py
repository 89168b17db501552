"""
auth/monitor.py -- Cancellable recurring background check.

AuthCore owns one InactivityMonitor and starts it on login, stops it on
logout and close(). Each start() gets its own stop Event, so a monitor that
stopped itself (auto-logout runs on the monitor thread) can be started again
by the next login without racing the old thread.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger("sessionkeeper.monitor")


class InactivityMonitor:
    def __init__(self, check: Callable[[], object], interval_seconds: float) -> None:
        self._check = check
        self.interval_seconds = interval_seconds
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop: Optional[threading.Event] = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop,),
                name="inactivity-monitor",
                daemon=True,
            )
            self._thread.start()
        logger.debug("Inactivity monitor started (every %.1fs)", self.interval_seconds)

    def stop(self, timeout: float = 2.0) -> None:
        with self._lock:
            thread, stop = self._thread, self._stop
            self._thread = self._stop = None
        if stop is None:
            return
        stop.set()
        # stop() is also reached from inside a check (auto-logout); a thread
        # cannot join itself, and it exits on its own once the Event is set.
        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=timeout)
        logger.debug("Inactivity monitor stopped")

    def _run(self, stop: threading.Event) -> None:
        while not stop.wait(self.interval_seconds):
            try:
                self._check()
            except Exception:
                logger.exception("Inactivity check failed")
