"""
Recurring background job runner.

One IntervalScheduler drives one job on a daemon thread. Firings sit on a
fixed grid anchored at start() (monotonic clock), so a slow run does not push
later firings back. Runs never overlap: a firing that is due while the
previous one is still executing waits for it, and slots missed meanwhile
collapse into that single deferred firing.
"""
from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class SchedulerError(RuntimeError):
    """Raised on lifecycle misuse (double start, non-positive interval)."""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IntervalScheduler:
    def __init__(
        self,
        job: Callable[[datetime], Any],
        interval_seconds: float,
        *,
        name: str = "job",
        clock: Callable[[], datetime] = _utc_now,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval_seconds <= 0:
            raise SchedulerError("interval_seconds must be positive")
        self.job = job
        self.interval = float(interval_seconds)
        self.name = name
        self._clock = clock
        self._monotonic = monotonic
        self._stop = threading.Event()
        self._run_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._started = False
        self.runs = 0
        self.failures = 0
        self.last_result: Any = None
        self.last_run_at: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._state_lock:
            if self._started:
                raise SchedulerError(f"scheduler '{self.name}' was already started")
            self._started = True
            self._thread = threading.Thread(target=self._loop, name=f"scheduler-{self.name}", daemon=True)
            self._thread.start()
        logger.info("Scheduler '%s' started (every %.0fs)", self.name, self.interval)

    def stop(self, timeout: Optional[float] = 10.0) -> None:
        """Signal the loop to exit and wait for an in-flight run to finish."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Scheduler '%s' did not stop within %ss", self.name, timeout)
                return
        logger.info("Scheduler '%s' stopped", self.name)

    def run_once(self) -> bool:
        """
        Execute the job now, waiting for any in-flight run first.

        Returns True when the job completed without raising. Errors are
        logged and never propagate, so the schedule keeps going.
        """
        with self._run_lock:
            now = self._clock()
            logger.info("Executing scheduled job '%s'", self.name)
            try:
                result = self.job(now)
            except Exception:
                self.failures += 1
                logger.exception("Scheduled job '%s' failed", self.name)
                return False
            finally:
                self.runs += 1
                self.last_run_at = now
            self.last_result = result
            logger.info("Scheduled job '%s' finished: %s", self.name, result)
            return True

    def _loop(self) -> None:
        next_due = self._monotonic() + self.interval
        while not self._stop.wait(max(0.0, next_due - self._monotonic())):
            self.run_once()
            next_due += self.interval
            now = self._monotonic()
            if next_due < now:
                skipped = int((now - next_due) // self.interval)
                if skipped:
                    logger.warning("Scheduler '%s' overran; collapsing %d missed firings", self.name, skipped)
                next_due += skipped * self.interval
