import threading
import time

import pytest

from extract_gate.arrival import ArrivalWatcher
from extract_gate.errors import ArrivalTimeoutError, WatchCancelledError


def _touch(directory, name):
    (directory / name).write_text("x\n")


def test_all_present_returns_immediately(inbound_dir):
    for name in ("E5", "E3"):
        _touch(inbound_dir, name)
    watcher = ArrivalWatcher(str(inbound_dir), poll_interval_seconds=5, max_wait_seconds=5)

    states = watcher.wait_for(["E5", "E3"])

    assert [s.name for s in states] == ["E5", "E3"]
    assert all(s.found and s.attempts == 1 for s in states)


def test_files_are_checked_in_priority_order(inbound_dir, monkeypatch):
    _touch(inbound_dir, "E3")
    watcher = ArrivalWatcher(str(inbound_dir), poll_interval_seconds=0.01, max_wait_seconds=1, max_attempts_per_file=2)
    checked = []
    original = watcher.is_present

    def recording_is_present(name):
        checked.append(name)
        return original(name)

    monkeypatch.setattr(watcher, "is_present", recording_is_present)

    with pytest.raises(ArrivalTimeoutError) as excinfo:
        watcher.wait_for(["E5", "E3"])

    assert excinfo.value.name == "E5"
    assert excinfo.value.attempts == 2
    assert checked == ["E5", "E5"]


def test_file_arriving_later_is_picked_up(inbound_dir):
    watcher = ArrivalWatcher(str(inbound_dir), poll_interval_seconds=0.01, max_wait_seconds=5)
    timer = threading.Timer(0.05, _touch, args=(inbound_dir, "E8"))
    timer.start()
    try:
        states = watcher.wait_for(["E8"])
    finally:
        timer.cancel()

    assert states[0].found
    assert states[0].attempts > 1


def test_max_wait_bounds_the_watch(inbound_dir):
    watcher = ArrivalWatcher(str(inbound_dir), poll_interval_seconds=0.01, max_wait_seconds=0.05)
    started = time.monotonic()

    with pytest.raises(ArrivalTimeoutError) as excinfo:
        watcher.wait_for(["E7"])

    assert time.monotonic() - started < 2
    assert excinfo.value.name == "E7"
    assert watcher.poll_states[0].found is False


def test_cancel_from_another_thread_unblocks_wait(inbound_dir):
    cancel_event = threading.Event()
    watcher = ArrivalWatcher(str(inbound_dir), poll_interval_seconds=30, max_wait_seconds=60, cancel_event=cancel_event)
    threading.Timer(0.05, cancel_event.set).start()
    started = time.monotonic()

    with pytest.raises(WatchCancelledError) as excinfo:
        watcher.wait_for(["EB"])

    assert time.monotonic() - started < 5
    assert excinfo.value.name == "EB"


def test_cancel_before_wait(inbound_dir):
    _touch(inbound_dir, "E5")
    watcher = ArrivalWatcher(str(inbound_dir), poll_interval_seconds=1, max_wait_seconds=1)
    watcher.cancel()

    with pytest.raises(WatchCancelledError):
        watcher.wait_for(["E5"])
