"""
Periodic task
=============

Runs a callable at a fixed interval on a daemon thread until cancelled.

Key behavior:
- The first run happens immediately on start.
- Uses a stop Event for interruptible waiting, so cancel() takes effect at once.
- At most one run is in flight; a tick that finds the previous run still
  going is skipped, not queued.
- Exceptions are logged and the next tick runs as scheduled (no backoff).
"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    def __init__(self, name: str, func: Callable[[], None], interval_seconds: float):
        self.name = name
        self.func = func
        self.interval_seconds = float(interval_seconds)

        self._lock = threading.Lock()
        self._in_flight = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.skipped_ticks = 0

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set():
                logger.debug("Task '%s' already running", self.name)
                return
            # fresh event so a lingering old thread keeps seeing its own stop signal
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._loop,
                args=(self._stop_event,),
                daemon=True,
                name=f"poll-{self.name}",
            )
            self._thread.start()
        logger.debug("Task '%s' started (interval=%ss)", self.name, self.interval_seconds)

    def cancel(self) -> None:
        with self._lock:
            self._stop_event.set()
            thread = self._thread
            self._thread = None
        # never join from inside the task itself
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=0.1)

    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None and not self._stop_event.is_set()

    def run_once(self) -> bool:
        """Run the callable unless a run is already in flight. Returns whether it ran."""
        if not self._in_flight.acquire(blocking=False):
            self.skipped_ticks += 1
            logger.debug("Task '%s' still in flight, skipping tick", self.name)
            return False
        try:
            self.func()
        except Exception:
            logger.exception("Task '%s' failed", self.name)
        finally:
            self._in_flight.release()
        return True

    def _loop(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            self.run_once()
            if stop_event.wait(self.interval_seconds):
                break
