"""
Tests for the compute-once memo table.
"""
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from reverie.sym.analysis import MemoTable


def test_value_is_computed_once():
    memo = MemoTable()
    calls = []

    def compute():
        calls.append(1)
        return 42

    assert memo.get_or_compute("k", compute) == 42
    assert memo.get_or_compute("k", compute) == 42
    assert len(calls) == 1
    assert (memo.hits, memo.misses) == (1, 1)
    assert "k" in memo


def test_concurrent_askers_wait_for_the_owner():
    memo = MemoTable()
    started = threading.Event()
    release = threading.Event()
    calls = []

    def slow():
        calls.append(1)
        started.set()
        release.wait(5)
        return "done"

    with ThreadPoolExecutor(max_workers=4) as pool:
        owner = pool.submit(memo.get_or_compute, "k", slow)
        started.wait(5)
        waiters = [pool.submit(memo.get_or_compute, "k", slow) for _ in range(3)]
        release.set()
        results = [owner.result()] + [w.result() for w in waiters]

    assert results == ["done"] * 4
    assert len(calls) == 1


def test_failed_computation_is_retried():
    memo = MemoTable()

    def boom():
        raise RuntimeError("solver crashed")

    with pytest.raises(RuntimeError):
        memo.get_or_compute("k", boom)
    assert "k" not in memo
    assert memo.get_or_compute("k", lambda: 7) == 7


def test_clear():
    memo = MemoTable()
    memo.get_or_compute("a", lambda: 1)

    memo.clear()

    assert len(memo) == 0
    assert memo.misses == 0
