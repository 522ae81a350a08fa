"""Tests for BatteryMonitor."""

import threading

import pytest

from battery_widget.monitor import BatteryMonitor

from tests.helpers import FakeSource


class RecordingCoordinator:
    """Coordinator stand-in that records triggers."""

    def __init__(self):
        self.calls = []
        self.booted = threading.Event()

    def on_boot_completed(self, raw):
        self.calls.append(("boot", raw.level))
        self.booted.set()
        return "boot"

    def on_power_event(self, raw):
        self.calls.append(("power", raw.level))
        return "power"

    def on_periodic_tick(self, raw):
        self.calls.append(("tick", raw.level))
        return "tick"


@pytest.fixture
def recorder():
    return RecordingCoordinator()


@pytest.fixture
def monitor(config, recorder, source):
    monitor = BatteryMonitor(config, recorder, source)
    yield monitor
    if monitor.is_running:
        monitor.stop()


class TestPollOnce:
    """Tests for a single poll."""

    def test_first_poll_is_power_event(self, monitor, recorder):
        assert monitor.poll_once() == "power"
        assert recorder.calls == [("power", 80)]

    def test_unchanged_state_before_interval_does_nothing(self, monitor, recorder):
        monitor.poll_once()

        assert monitor.poll_once() is None
        assert len(recorder.calls) == 1

    def test_state_change_fires_power_event(self, monitor, recorder, source):
        monitor.poll_once()
        source.reading.plugged = 1
        source.reading.status = 2

        assert monitor.poll_once() == "power"

    def test_level_change_fires_power_event(self, monitor, recorder, source):
        monitor.poll_once()
        source.reading.level = 79

        monitor.poll_once()

        assert recorder.calls[-1] == ("power", 79)

    def test_tick_due_after_interval(self, monitor, recorder):
        monitor.poll_once()
        # Pretend the last run was long ago
        monitor.last_run_time -= 16 * 60

        assert monitor.poll_once() == "tick"
        assert monitor.poll_once() is None


class TestLifecycle:
    """Tests for starting and stopping the monitor thread."""

    def test_start_reports_boot(self, monitor, recorder):
        monitor.start()

        assert recorder.booted.wait(timeout=5.0)
        assert monitor.is_running
        assert recorder.calls[0] == ("boot", 80)

        monitor.stop()
        assert not monitor.is_running

    def test_boot_reading_becomes_baseline(self, monitor, recorder):
        """Test the reading reported at boot is not re-reported as a change."""
        monitor.start()
        recorder.booted.wait(timeout=5.0)
        monitor.stop()

        assert monitor.poll_once() is None

    def test_stop_when_not_running(self, monitor):
        monitor.stop()
        assert not monitor.is_running

    def test_source_failure_does_not_kill_loop(self, config, recorder):
        class BrokenSource(FakeSource):
            def read_raw(self):
                raise RuntimeError("sensor unavailable")

        monitor = BatteryMonitor(config, recorder, BrokenSource())
        monitor.start()
        try:
            assert monitor.is_running
        finally:
            monitor.stop()
        assert recorder.calls == []
