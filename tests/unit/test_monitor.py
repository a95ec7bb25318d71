import threading
import time

from fileready.watchers.monitor import MonitorState, StabilityMonitor

PATH = "/data/incoming/export.csv"


class ScriptedProbes:
    """Size and accessibility answers driven by the test."""

    def __init__(self, sizes, accessible=False):
        self.sizes = list(sizes)
        self.accessible = accessible
        self.size_calls = 0
        self.access_calls = 0

    def size(self, path):
        self.size_calls += 1
        if len(self.sizes) > 1:
            return self.sizes.pop(0)
        return self.sizes[0]

    def access(self, path):
        self.access_calls += 1
        return self.accessible


def make_monitor(probes, interval=1.0):
    fired = []
    monitor = StabilityMonitor(
        PATH,
        on_stable=lambda path, size: fired.append((path, size)),
        interval=interval,
        size_probe=probes.size,
        access_probe=probes.access,
    )
    return monitor, fired


def test_growing_file_completes_only_after_it_stalls_and_unlocks():
    probes = ScriptedProbes([0, 100, 250, 250])
    monitor, fired = make_monitor(probes)

    assert monitor.check() is False  # 0, locked
    assert monitor.check() is False  # 100
    assert monitor.check() is False  # 250
    assert fired == []
    assert monitor.state is MonitorState.IDLE

    probes.accessible = True
    assert monitor.check() is True

    assert fired == [(PATH, 250)]
    assert monitor.state is MonitorState.COMPLETED
    assert monitor.ticks == 4


def test_never_fires_while_size_keeps_growing():
    probes = ScriptedProbes(range(10, 200, 10), accessible=True)
    monitor, fired = make_monitor(probes)

    for _ in range(19):
        assert monitor.check() is False

    assert fired == []
    assert probes.access_calls == 0


def test_stalled_but_locked_file_stays_pending():
    probes = ScriptedProbes([500], accessible=False)
    monitor, fired = make_monitor(probes)

    for _ in range(25):
        monitor.check()

    assert fired == []
    assert monitor.active
    assert monitor.last_size == 500


def test_fires_with_recorded_size_once_writer_releases_file():
    probes = ScriptedProbes([500, 500, 500], accessible=False)
    monitor, fired = make_monitor(probes)

    assert monitor.check() is False  # grows from 0 to 500
    assert monitor.check() is False  # stalled, locked

    probes.accessible = True
    assert monitor.check() is True

    assert fired == [(PATH, 500)]
    assert probes.size_calls == 3
    assert probes.access_calls == 2


def test_fires_at_most_once():
    probes = ScriptedProbes([10, 10], accessible=True)
    monitor, fired = make_monitor(probes)

    results = [monitor.check() for _ in range(5)]

    assert results == [False, True, False, False, False]
    assert len(fired) == 1
    assert probes.size_calls == 2


def test_probe_errors_count_as_not_ready():
    def broken_size(path):
        raise OSError("device not ready")

    fired = []
    monitor = StabilityMonitor(
        PATH,
        on_stable=lambda path, size: fired.append(path),
        size_probe=broken_size,
        access_probe=lambda path: True,
    )

    assert monitor.check() is False
    assert monitor.check() is False
    assert fired == []
    assert monitor.active


def test_access_probe_error_counts_as_locked():
    def broken_access(path):
        raise PermissionError("denied")

    fired = []
    monitor = StabilityMonitor(
        PATH,
        on_stable=lambda path, size: fired.append(path),
        size_probe=lambda path: 0,
        access_probe=broken_access,
    )

    assert monitor.check() is False
    assert fired == []


def test_deleted_file_keeps_polling(tmp_path):
    fired = []
    monitor = StabilityMonitor(str(tmp_path / "vanished.csv"), on_stable=lambda path, size: fired.append(path))

    for _ in range(3):
        assert monitor.check() is False

    assert fired == []
    assert monitor.active
    assert monitor.last_size == 0


def test_stopped_monitor_never_fires():
    probes = ScriptedProbes([10, 10], accessible=True)
    monitor, fired = make_monitor(probes)

    monitor.check()
    monitor.stop()

    assert monitor.check() is False
    assert monitor.state is MonitorState.CANCELLED
    assert fired == []


def test_result_of_in_flight_tick_is_discarded_after_stop():
    entered = threading.Event()
    release = threading.Event()

    def slow_access(path):
        entered.set()
        release.wait(5)
        return True

    fired = []
    monitor = StabilityMonitor(
        PATH,
        on_stable=lambda path, size: fired.append(path),
        size_probe=lambda path: 0,
        access_probe=slow_access,
    )

    results = []
    worker = threading.Thread(target=lambda: results.append(monitor.check()))
    worker.start()
    assert entered.wait(5)

    monitor.stop()
    release.set()
    worker.join(5)

    assert results == [False]
    assert fired == []


def test_timer_drives_monitor_to_completion():
    probes = ScriptedProbes([64, 128, 128], accessible=True)
    done = threading.Event()
    fired = []

    def on_stable(path, size):
        fired.append((path, size))
        done.set()

    monitor = StabilityMonitor(PATH, on_stable, interval=0.01, size_probe=probes.size, access_probe=probes.access)
    monitor.start()

    assert done.wait(5)
    ticks = monitor.ticks
    time.sleep(0.1)

    assert fired == [(PATH, 128)]
    assert monitor.state is MonitorState.COMPLETED
    assert monitor.ticks == ticks


def test_ticks_never_overlap():
    active = []
    overlaps = []
    lock = threading.Lock()

    def slow_size(path):
        with lock:
            if active:
                overlaps.append(True)
            active.append(1)
        time.sleep(0.02)
        with lock:
            active.pop()
        return 1

    monitor = StabilityMonitor(PATH, lambda path, size: None, interval=0.001, size_probe=slow_size, access_probe=lambda path: False)
    monitor.start()
    time.sleep(0.2)
    monitor.stop()

    assert monitor.ticks > 1
    assert overlaps == []


def test_start_is_idempotent():
    probes = ScriptedProbes([0], accessible=False)
    monitor, _ = make_monitor(probes, interval=60)

    monitor.start()
    monitor.start()
    time.sleep(0.05)
    monitor.stop()

    assert monitor.ticks == 1


def test_stop_before_start_prevents_polling():
    probes = ScriptedProbes([0], accessible=True)
    monitor, fired = make_monitor(probes, interval=0.01)

    monitor.stop()
    monitor.start()
    time.sleep(0.05)

    assert monitor.state is MonitorState.CANCELLED
    assert probes.size_calls == 0
    assert fired == []
