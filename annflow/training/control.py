"""Cooperative pause/resume/stop channel for learning loops."""

from __future__ import annotations

import threading
from typing import Optional


class LearnControl:
    """Control token passed into a learning call.

    The loop calls :meth:`checkpoint` once after each full iteration; this is
    the only place where it can be suspended. :meth:`stop` is cooperative:
    the running iteration completes and the loop exits at the next check.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._started = False
        self._paused = False
        self._blocked = False

    @property
    def started(self) -> bool:
        with self._cond:
            return self._started

    @property
    def paused(self) -> bool:
        with self._cond:
            return self._paused

    def start(self) -> bool:
        """Enter the running state; ``False`` if a run is already active."""

        with self._cond:
            if self._started:
                return False
            self._started = True
            self._paused = False
            return True

    def pause(self) -> bool:
        with self._cond:
            if not self._started or self._paused:
                return False
            self._paused = True
            return True

    def resume(self) -> bool:
        with self._cond:
            if not self._paused:
                return False
            self._paused = False
            self._cond.notify_all()
            return True

    def stop(self) -> bool:
        with self._cond:
            if not self._started:
                return False
            self._started = False
            self._paused = False
            self._cond.notify_all()
            return True

    def checkpoint(self) -> bool:
        """Block while paused; return whether the loop should continue."""

        with self._cond:
            while self._paused:
                self._blocked = True
                self._cond.notify_all()
                self._cond.wait()
            self._blocked = False
            return self._started

    def finish(self) -> None:
        with self._cond:
            self._started = False
            self._paused = False
            self._blocked = False
            self._cond.notify_all()

    def wait_until_blocked(self, timeout: Optional[float] = None) -> bool:
        """Wait until the loop is suspended at its checkpoint."""

        with self._cond:
            return self._cond.wait_for(lambda: self._blocked, timeout)


__all__ = ["LearnControl"]
