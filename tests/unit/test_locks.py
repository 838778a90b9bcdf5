"""
Unit tests for the per-key lock registry.
"""

import threading
import time

from certprep.core.locks import KeyedLocks


def test_same_key_is_serialized():
    locks = KeyedLocks()
    active = 0
    peak = 0
    guard = threading.Lock()

    def worker():
        nonlocal active, peak
        with locks.hold(("learner-1",)):
            with guard:
                active += 1
                peak = max(peak, active)
            time.sleep(0.01)
            with guard:
                active -= 1

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert peak == 1


def test_different_keys_do_not_block():
    locks = KeyedLocks()
    inner_entered = threading.Event()

    def other():
        with locks.hold(("learner-2",)):
            inner_entered.set()

    with locks.hold(("learner-1",)):
        t = threading.Thread(target=other)
        t.start()
        assert inner_entered.wait(timeout=2.0)
        t.join()


def test_entries_released_after_use():
    locks = KeyedLocks()
    with locks.hold("a"):
        with locks.hold("b"):
            assert len(locks) == 2
    assert len(locks) == 0
