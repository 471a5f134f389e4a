import threading

from livechat.client.poller import PeriodicTask


def test_first_run_is_immediate_and_cancel_stops():
    ran = threading.Event()
    task = PeriodicTask("t", ran.set, interval_seconds=60)

    task.start()
    try:
        assert ran.wait(timeout=5)
        assert task.is_running()
    finally:
        task.cancel()
    assert not task.is_running()


def test_start_twice_keeps_one_thread():
    calls = []
    task = PeriodicTask("t", lambda: calls.append(1), interval_seconds=60)
    task.start()
    first = task._thread
    task.start()
    try:
        assert task._thread is first
    finally:
        task.cancel()


def test_overlapping_tick_is_skipped():
    release = threading.Event()
    entered = threading.Event()

    def slow():
        entered.set()
        release.wait(timeout=5)

    task = PeriodicTask("t", slow, interval_seconds=60)
    worker = threading.Thread(target=task.run_once)
    worker.start()
    assert entered.wait(timeout=5)

    assert task.run_once() is False
    assert task.skipped_ticks == 1

    release.set()
    worker.join(timeout=5)
    assert task.run_once() is True


def test_failures_are_logged_not_raised(caplog):
    def broken():
        raise RuntimeError("server down")

    task = PeriodicTask("t", broken, interval_seconds=60)
    assert task.run_once() is True
    assert "Task 't' failed" in caplog.text
