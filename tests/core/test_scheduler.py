import importlib
import math
import threading
import time

import pytest

scheduler = importlib.import_module("pagestatus.core.scheduler")
RefreshScheduler = scheduler.RefreshScheduler


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


def test_invalid_period_rejected():
    with pytest.raises(ValueError):
        RefreshScheduler(lambda: None, period=0)
    with pytest.raises(ValueError):
        RefreshScheduler(lambda: None, period="x")


def test_stop_is_idempotent():
    s = RefreshScheduler(lambda: None, period=0.01)
    s.stop()
    s.start()
    s.stop()
    s.stop()
    assert s.state == scheduler.STATE_STOPPED


def test_start_twice_is_noop():
    s = RefreshScheduler(lambda: None, period=0.01)
    s.start()
    thread = s._thread
    s.start()
    assert s._thread is thread
    s.stop()


def test_ticks_fire_and_none_after_stop():
    calls = []
    s = RefreshScheduler(lambda: calls.append(1), period=0.01)
    s.start()
    assert _wait_for(lambda: len(calls) >= 3)
    s.stop()
    after = len(calls)
    time.sleep(0.1)
    assert len(calls) == after
    assert s.tick_count == after


def test_context_exit_guarantees_zero_ticks():
    calls = []
    with RefreshScheduler(lambda: calls.append(1), period=0.01) as s:
        assert s.running
        _wait_for(lambda: calls)
    after = len(calls)
    time.sleep(0.1)
    assert len(calls) == after
    assert not s.running


def test_restart_after_stop():
    calls = []
    s = RefreshScheduler(lambda: calls.append(1), period=0.01)
    s.start()
    _wait_for(lambda: calls)
    s.stop()
    n = len(calls)
    s.start()
    assert _wait_for(lambda: len(calls) > n)
    s.stop()


def test_slow_handler_never_overlaps():
    period = 0.02
    active = []
    max_active = [0]
    lock = threading.Lock()

    def _slow():
        with lock:
            active.append(1)
            max_active[0] = max(max_active[0], len(active))
        time.sleep(0.07)
        with lock:
            active.pop()

    s = RefreshScheduler(_slow, period=period)
    started = time.monotonic()
    s.start()
    time.sleep(0.4)
    s.stop()
    elapsed = time.monotonic() - started
    assert max_active[0] == 1
    assert s.tick_count <= math.floor(elapsed / period) + 1
    assert s.dropped_ticks > 0


def test_trigger_now_requires_running():
    calls = []
    s = RefreshScheduler(lambda: calls.append(1), period=10)
    assert s.trigger_now() is False
    s.start()
    assert s.trigger_now() is True
    s.stop()
    assert s.trigger_now() is False
    assert calls == [1]


def test_trigger_now_dropped_while_busy():
    entered = threading.Event()
    release = threading.Event()

    def _blocking():
        entered.set()
        release.wait(2)

    s = RefreshScheduler(_blocking, period=0.01)
    s.start()
    assert entered.wait(2)
    assert s.trigger_now() is False
    release.set()
    s.stop()
    assert s.dropped_ticks >= 1


def test_dropped_ticks_counted_across_threads():
    """Descartes vindos de vários threads chamadores não se perdem na contagem."""
    entered = threading.Event()
    release = threading.Event()

    def _blocking():
        entered.set()
        release.wait(5)

    s = RefreshScheduler(_blocking, period=0.01)
    s.start()
    assert entered.wait(2)
    results = []

    def _hammer():
        results.extend(s.trigger_now() for _ in range(200))

    threads = [threading.Thread(target=_hammer) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(5)
    try:
        assert results.count(False) == 1600
        assert s.dropped_ticks == 1600
    finally:
        release.set()
        s.stop()


def test_handler_exception_does_not_kill_scheduler(caplog):
    def _boom():
        raise RuntimeError("boom")

    s = RefreshScheduler(_boom, period=0.01)
    with caplog.at_level("ERROR"):
        s.start()
        assert _wait_for(lambda: s.tick_count >= 3)
        s.stop()
    assert any(r.exc_info for r in caplog.records if r.levelname == "ERROR")


def test_stop_from_inside_handler_does_not_deadlock():
    holder = {}

    def _stop_self():
        holder["s"].stop()

    s = RefreshScheduler(_stop_self, period=0.01)
    holder["s"] = s
    s.start()
    assert _wait_for(lambda: not s.running)
    time.sleep(0.05)
    assert s.tick_count == 1
