"""Inactivity watchdog for long-lived streams."""

from __future__ import annotations

import threading
import time
from typing import Callable, Iterable, Iterator


class InactivityWatchdog:
    """Fires ``on_expire`` once no progress was reported for ``timeout`` seconds.

    Progress is reported with :meth:`touch`, or implicitly by iterating
    through :meth:`watch`. The watchdog runs on its own thread and ends with
    :meth:`stop` or after firing.
    """

    def __init__(self, timeout: float, on_expire: Callable[[], object]) -> None:
        if timeout <= 0:
            raise ValueError("inactivity timeout must be positive")
        self._timeout = timeout
        self._on_expire = on_expire
        self._cond = threading.Condition()
        self._stopped = False
        self._expired = False
        self._last = time.monotonic()
        self._thread = threading.Thread(target=self._run, name="engine-client-watchdog", daemon=True)

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def expired(self) -> bool:
        return self._expired

    def start(self) -> "InactivityWatchdog":
        self._last = time.monotonic()
        self._thread.start()
        return self

    def touch(self) -> None:
        self._last = time.monotonic()

    def watch(self, chunks: Iterable[bytes]) -> Iterator[bytes]:
        for chunk in chunks:
            if chunk:
                self.touch()
            yield chunk
        # the source is drained; silence must not count as inactivity from here on
        self.stop()

    def stop(self) -> None:
        with self._cond:
            self._stopped = True
            self._cond.notify_all()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join()

    def _run(self) -> None:
        with self._cond:
            while not self._stopped:
                remaining = self._last + self._timeout - time.monotonic()
                if remaining <= 0:
                    self._expired = True
                    break
                self._cond.wait(remaining)
        if self._expired:
            self._on_expire()


__all__ = ["InactivityWatchdog"]
