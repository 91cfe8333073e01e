from __future__ import annotations

import logging
import threading

import pytest

from pyrcman.errors import StorageError
from pyrcman.sync import GenerationCounter, RWLock


def test_writer_is_reentrant_and_may_read():
    lock = RWLock()
    with lock.write():
        with lock.write():
            with lock.read():
                pass
    # released fully: another thread can take the write side
    done = threading.Event()

    def writer():
        with lock.write():
            done.set()

    t = threading.Thread(target=writer)
    t.start()
    t.join(timeout=2)
    assert done.is_set()


def test_readers_share_the_lock():
    lock = RWLock()
    inside = threading.Barrier(2, timeout=2)

    def reader():
        with lock.read():
            inside.wait()

    threads = [threading.Thread(target=reader) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=3)
    assert not inside.broken


def test_unexpected_error_poisons_and_recovers(caplog):
    recovered = []
    lock = RWLock("demo", on_recover=lambda: recovered.append(True))
    with pytest.raises(RuntimeError):
        with lock.write():
            raise RuntimeError("boom")
    assert lock.poisoned
    with caplog.at_level(logging.WARNING, logger="pyrcman.sync"):
        with lock.read():
            pass
    assert recovered == [True]
    assert not lock.poisoned
    assert "poisoned" in caplog.text


def test_library_errors_do_not_poison():
    lock = RWLock()
    with pytest.raises(StorageError):
        with lock.write():
            raise StorageError("disk full")
    assert not lock.poisoned


def test_generation_counter():
    counter = GenerationCounter()
    assert counter.value == 0
    assert counter.bump() == 1
    assert counter.bump() == 2
    assert counter.value == 2
