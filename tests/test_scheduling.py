import threading
from datetime import timedelta

import pytest

from focus_tracker.scheduling import PeriodicTask


def test_task_runs_repeatedly_and_survives_errors():
    calls = []
    done = threading.Event()

    def action():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("first run fails")
        if len(calls) >= 3:
            done.set()

    task = PeriodicTask("test", timedelta(milliseconds=5), action, run_immediately=True)
    task.start()
    assert done.wait(5)
    task.stop()
    assert not task.is_running()
    assert len(calls) >= 3


def test_start_is_idempotent_and_stop_cancels():
    ran = threading.Event()
    task = PeriodicTask("test", timedelta(milliseconds=5), ran.set)
    task.start()
    thread = task._thread
    task.start()
    assert task._thread is thread
    assert ran.wait(5)
    task.stop()
    task.stop()
    assert not thread.is_alive()


def test_delayed_start_waits_one_interval():
    ran = threading.Event()
    task = PeriodicTask("test", timedelta(seconds=30), ran.set)
    task.start()
    task.stop()
    assert not ran.is_set()


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        PeriodicTask("test", timedelta(0), lambda: None)
