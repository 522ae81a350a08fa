"""Test helpers shared across test modules."""

import json
import threading
from pathlib import Path

from battery_widget.models import ChargeState, PlugSource, RawReading, Snapshot


def make_snapshot(t, level, charge=ChargeState.DISCHARGING, plug=PlugSource.NONE, **kwargs):
    """Build a snapshot with sensible defaults."""
    return Snapshot(
        captured_at_millis=t,
        level_percent=level,
        charge_state=charge,
        plug_source=plug,
        **kwargs,
    )


class FakeSource:
    """Raw-reading source returning a configurable reading."""

    def __init__(self, level=80, scale=100, status=3, plugged=0):
        self.reading = RawReading(level=level, scale=scale, status=status, plugged=plugged)
        self.calls = 0
        self.gate = None  # threading.Event the source waits on, when set
        self.lock = threading.Lock()

    def read_raw(self):
        with self.lock:
            self.calls += 1
        if self.gate is not None:
            self.gate.wait(timeout=5.0)
        return RawReading(**vars(self.reading))


class Clock:
    """Settable millisecond clock."""

    def __init__(self, now=1_000):
        self.now = now

    def __call__(self):
        return self.now


def write_config(tmp_path: Path, **overrides) -> Path:
    """Write a config file whose paths all live under tmp_path."""
    config = {
        "db_path": str(tmp_path / "history.db"),
        "registry_path": str(tmp_path / "widgets.json"),
        "output_dir": str(tmp_path / "out"),
        "log_dir": str(tmp_path / "logs"),
    }
    config.update(overrides)
    path = tmp_path / "config.json"
    path.write_text(json.dumps(config))
    return path
