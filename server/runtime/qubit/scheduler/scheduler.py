"""
Qubit Message Service - Recurring Scheduler

Fires a task immediately on start and then at a fixed interval. At most one
invocation runs at a time: a tick that finds the previous invocation still
running is dropped, never queued or run late.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from qubit.scheduler.context import TaskContext
from qubit.scheduler.rwlock import ReadWriteLock

logger = logging.getLogger(__name__)

DEFAULT_TASK_TIMEOUT_SECONDS = 300.0

Task = Callable[[TaskContext], Any]


@dataclass
class SchedulerStatus:
    """Snapshot of a scheduler's configuration and counters."""

    running: bool
    interval_seconds: Optional[float]
    runs: int
    skipped_ticks: int
    last_run_started_at: Optional[datetime]
    last_error: Optional[str]


class Scheduler:
    """
    Runs one task on a fixed interval from a background thread.

    Each firing runs the task on its own worker thread behind a
    non-blocking lock, so the loop keeps its cadence and sheds ticks while
    a slow invocation is in progress. Every invocation gets a TaskContext
    that expires after task_timeout seconds.

    start() and stop() hold the write side of a read/write lock; status()
    holds the read side.
    """

    def __init__(
        self,
        task_timeout: float = DEFAULT_TASK_TIMEOUT_SECONDS,
        name: str = "scheduler",
    ):
        self.task_timeout = task_timeout
        self.name = name

        self._config_lock = ReadWriteLock()
        self._task_running = threading.Lock()
        self._stats_lock = threading.Lock()

        self._interval: Optional[float] = None
        self._stop_event: Optional[threading.Event] = None
        self._loop_thread: Optional[threading.Thread] = None
        self._worker: Optional[threading.Thread] = None

        self._runs = 0
        self._skipped_ticks = 0
        self._last_run_started_at: Optional[datetime] = None
        self._last_error: Optional[str] = None

    def start(self, task: Task, interval_seconds: float) -> None:
        """Start firing task every interval_seconds.

        A running scheduler is stopped first, so restarting just swaps in
        the new task and interval.
        """
        if interval_seconds <= 0:
            raise ValueError("interval must be greater than 0")

        with self._config_lock.write():
            self._stop_locked()

            self._interval = interval_seconds
            self._stop_event = threading.Event()
            self._loop_thread = threading.Thread(
                target=self._run,
                args=(task, interval_seconds, self._stop_event),
                name=f"{self.name}-loop",
                daemon=True,
            )
            self._loop_thread.start()

        logger.info(f"Scheduler started (interval: {interval_seconds}s)")

    def stop(self) -> None:
        """Stop ticking and wait until the loop and any running task exit.

        Stopping a stopped scheduler does nothing.
        """
        with self._config_lock.write():
            self._stop_locked()

    def status(self) -> SchedulerStatus:
        with self._config_lock.read():
            running = self._loop_thread is not None
            interval = self._interval
        with self._stats_lock:
            return SchedulerStatus(
                running=running,
                interval_seconds=interval,
                runs=self._runs,
                skipped_ticks=self._skipped_ticks,
                last_run_started_at=self._last_run_started_at,
                last_error=self._last_error,
            )

    @property
    def running(self) -> bool:
        return self.status().running

    def _stop_locked(self) -> None:
        if self._loop_thread is None:
            return

        logger.info("Stopping scheduler...")
        self._stop_event.set()
        self._loop_thread.join()

        # No new workers can start once the loop has exited
        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join()

        self._loop_thread = None
        self._stop_event = None
        self._worker = None
        logger.info("Scheduler stopped")

    def _run(self, task: Task, interval: float, stop_event: threading.Event) -> None:
        logger.info("Scheduler loop started")

        self._fire(task)
        next_tick = time.monotonic() + interval

        while not stop_event.wait(max(0.0, next_tick - time.monotonic())):
            self._fire(task)
            next_tick += interval
            now = time.monotonic()
            while next_tick <= now:
                next_tick += interval

        logger.info("Scheduler stop requested, exiting loop")

    def _fire(self, task: Task) -> None:
        if not self._task_running.acquire(blocking=False):
            with self._stats_lock:
                self._skipped_ticks += 1
            logger.warning("Scheduler tick skipped: previous task still running")
            return

        worker = threading.Thread(
            target=self._execute,
            args=(task,),
            name=f"{self.name}-task",
            daemon=True,
        )
        self._worker = worker
        try:
            worker.start()
        except RuntimeError:
            self._task_running.release()
            raise

    def _execute(self, task: Task) -> None:
        try:
            context = TaskContext(timeout=self.task_timeout)
            started_at = datetime.utcnow()
            with self._stats_lock:
                self._runs += 1
                self._last_run_started_at = started_at

            logger.info(f"--- Scheduler tick at {started_at.isoformat()} ---")

            try:
                task(context)
            except Exception as exc:
                logger.exception(f"Error executing task: {exc}")
                with self._stats_lock:
                    self._last_error = str(exc)
                return

            with self._stats_lock:
                self._last_error = None
            if context.timed_out:
                logger.warning(f"Scheduled task exceeded its {self.task_timeout}s timeout")
            logger.info("--- Scheduler tick complete ---")
        finally:
            self._task_running.release()
