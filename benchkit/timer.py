"""Per-thread timer accumulating real, CPU and manually reported time."""

from __future__ import annotations

import time


class ThreadTimer:
    """Accumulates the time spent by one benchmark thread.

    Real time comes from a monotonic clock. CPU time comes from either the
    calling thread's CPU clock or, if requested, the whole process's.
    """

    def __init__(self, measure_process_cpu_time: bool = False) -> None:
        self.measure_process_cpu_time = bool(measure_process_cpu_time)
        self._running = False
        self._start_real_time = 0.0
        self._start_cpu_time = 0.0
        self._real_time_used = 0.0
        self._cpu_time_used = 0.0
        self._manual_time_used = 0.0

    @classmethod
    def create(cls) -> ThreadTimer:
        """Return a timer that measures the calling thread's CPU time."""
        return cls(measure_process_cpu_time=False)

    @classmethod
    def create_process_cpu_time(cls) -> ThreadTimer:
        """Return a timer that measures the whole process's CPU time."""
        return cls(measure_process_cpu_time=True)

    def _read_cpu_timer(self) -> float:
        if self.measure_process_cpu_time:
            return time.process_time()
        return time.thread_time()

    def start_timer(self) -> None:
        """Start a timing slice."""
        self._running = True
        self._start_real_time = time.perf_counter()
        self._start_cpu_time = self._read_cpu_timer()

    def stop_timer(self) -> None:
        """Stop the current slice and add it to the accumulated times."""
        if not self._running:
            raise RuntimeError("timer is not running")
        self._running = False
        self._real_time_used += time.perf_counter() - self._start_real_time
        # Clock granularity can make the difference slightly negative.
        self._cpu_time_used += max(self._read_cpu_timer() - self._start_cpu_time, 0.0)

    def set_iteration_time(self, seconds: float) -> None:
        """Add manually measured time for one iteration."""
        self._manual_time_used += seconds

    def running(self) -> bool:
        """Return True while a timing slice is open."""
        return self._running

    def _require_stopped(self) -> None:
        if self._running:
            raise RuntimeError("timer must be stopped before reading it")

    def real_time_used(self) -> float:
        """Return accumulated wall-clock seconds; the timer must be stopped."""
        self._require_stopped()
        return self._real_time_used

    def cpu_time_used(self) -> float:
        """Return accumulated CPU seconds; the timer must be stopped."""
        self._require_stopped()
        return self._cpu_time_used

    def manual_time_used(self) -> float:
        """Return accumulated manually set seconds; the timer must be stopped."""
        self._require_stopped()
        return self._manual_time_used