"""Background sweep task for in-memory stores"""

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class PeriodicSweeper:
    """Runs a sweep function on a fixed interval in a daemon thread.

    The thread starts on construction and runs until stop() is called.
    """

    def __init__(
        self, sweep: Callable[[], object], interval_seconds: float, name: str
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.interval_seconds = interval_seconds
        self._sweep = sweep
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def stop(self, timeout: float = 2.0) -> None:
        """Signal the thread to exit and wait for it."""
        self._stop_event.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)

    def _run(self) -> None:
        # wait() returns True once stop() has been called
        while not self._stop_event.wait(timeout=self.interval_seconds):
            try:
                self._sweep()
            except Exception:
                logger.exception("Sweep %s failed", self._thread.name)
