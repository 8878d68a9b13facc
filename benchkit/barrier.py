"""A reusable thread barrier that tolerates threads leaving early."""

from __future__ import annotations

import threading


class Barrier:
    """Lets a fixed set of threads meet before continuing.

    wait() returns True in exactly one thread per phase: the last to arrive.
    A thread that stops taking part calls remove_thread() so the others are
    not left waiting for it.
    """

    def __init__(self, num_threads: int) -> None:
        self._condition = threading.Condition()
        self._running_threads = num_threads
        self._phase_number = 0
        self._entered = 0

    def wait(self) -> bool:
        """Block until every running thread has arrived; True for the last one."""
        with self._condition:
            if self._entered >= self._running_threads:
                raise RuntimeError("more threads entered the barrier than are running")
            self._entered += 1
            if self._entered < self._running_threads:
                phase = self._phase_number
                self._condition.wait_for(
                    lambda: self._phase_number > phase
                    or self._entered == self._running_threads
                )
                if self._phase_number > phase:
                    return False
            self._phase_number += 1
            self._entered = 0
            self._condition.notify_all()
            return True

    def remove_thread(self) -> None:
        """Withdraw one thread from the barrier."""
        with self._condition:
            self._running_threads -= 1
            if self._entered != 0:
                self._condition.notify_all()