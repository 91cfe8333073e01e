"""Reader/writer lock with poison recovery and a generation counter."""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from .errors import RcmanError

logger = logging.getLogger("pyrcman.sync")


class RWLock:
    """Shared/exclusive lock guarding one document and its cache.

    The exclusive side is re-entrant for the owning thread, and the owner may
    also take the shared side.  Upgrading a shared hold to exclusive is not
    supported.

    If an unexpected exception (anything other than :class:`RcmanError`)
    escapes a :meth:`write` block the guarded state may be half updated, so
    the lock is marked poisoned.  The next thread to acquire it (in either
    mode) runs *on_recover* while holding exclusive access, which is
    expected to rebuild state from the last persisted snapshot.
    """

    def __init__(self, name: str = "lock", on_recover: Callable[[], None] | None = None) -> None:
        self.name = name
        self._on_recover = on_recover
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer: int | None = None
        self._write_depth = 0
        self._poisoned = False

    @property
    def poisoned(self) -> bool:
        return self._poisoned

    def _recover(self) -> None:
        # caller holds self._cond with no other readers or writers active
        logger.warning("lock %s was poisoned by a failed writer; recovering state", self.name)
        if self._on_recover is not None:
            self._on_recover()
        self._poisoned = False

    def acquire_read(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                self._readers += 1
                return
            while self._writer is not None or (self._poisoned and self._readers):
                self._cond.wait()
            if self._poisoned:
                self._recover()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                self._write_depth += 1
                return
            while self._writer is not None or self._readers:
                self._cond.wait()
            self._writer = me
            self._write_depth = 1
            if self._poisoned:
                self._recover()

    def release_write(self, *, poison: bool = False) -> None:
        with self._cond:
            if poison:
                self._poisoned = True
            self._write_depth -= 1
            if self._write_depth == 0:
                self._writer = None
                self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        except RcmanError:
            # raised before any mutation; state is still consistent
            self.release_write()
            raise
        except BaseException:
            self.release_write(poison=True)
            raise
        else:
            self.release_write()


class GenerationCounter:
    """Monotonic counter bumped on every structural change."""

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def bump(self) -> int:
        with self._lock:
            self._value += 1
            return self._value
