"""Tests for snapshot normalization and the psutil source."""

from collections import namedtuple

import psutil
import pytest

from battery_widget.errors import ReadError
from battery_widget.models import ChargeState, HealthState, PlugSource, RawReading
from battery_widget.reader import PsutilBatterySource, SnapshotReader

sbattery = namedtuple("sbattery", ["percent", "secsleft", "power_plugged"])
shwtemp = namedtuple("shwtemp", ["label", "current", "high", "critical"])


class TestSnapshotReader:
    """Tests for SnapshotReader.read."""

    def test_full_reading(self):
        """Test every raw code maps onto the canonical enums."""
        reader = SnapshotReader(clock=lambda: 42)
        raw = RawReading(
            level=85, scale=100, status=2, plugged=1, health=2,
            temperature=305, voltage=4120, technology="Li-ion",
        )

        snapshot = reader.read(raw)

        assert snapshot.captured_at_millis == 42
        assert snapshot.level_percent == 85
        assert snapshot.charge_state == ChargeState.CHARGING
        assert snapshot.plug_source == PlugSource.AC
        assert snapshot.health_state == HealthState.GOOD
        assert snapshot.temperature_deci_c == 305
        assert snapshot.voltage_millivolts == 4120
        assert snapshot.technology == "Li-ion"

    def test_level_normalized_against_scale(self):
        """Test level is converted to a percentage of the scale."""
        reader = SnapshotReader(clock=lambda: 0)
        assert reader.read(RawReading(level=50, scale=200)).level_percent == 25
        assert reader.read(RawReading(level=1, scale=3)).level_percent == 33

    @pytest.mark.parametrize("scale", [1, 7, 100, 255, 1000])
    def test_all_valid_levels_in_range(self, scale):
        """Test every level from 0 to scale lands in [0, 100]."""
        reader = SnapshotReader(clock=lambda: 0)
        for level in range(scale + 1):
            percent = reader.read(RawReading(level=level, scale=scale)).level_percent
            assert 0 <= percent <= 100

    @pytest.mark.parametrize("level,scale", [
        (50, 0),
        (-1, 100),
        (None, 100),
        (50, None),
        (50, -5),
        (150, 100),
    ])
    def test_invalid_level_or_scale(self, level, scale):
        """Test unusable level/scale combinations raise ReadError."""
        reader = SnapshotReader(clock=lambda: 0)
        with pytest.raises(ReadError):
            reader.read(RawReading(level=level, scale=scale))

    def test_missing_fields_default(self):
        """Test omitted fields default rather than fail."""
        snapshot = SnapshotReader(clock=lambda: 0).read(RawReading(level=10, scale=100))

        assert snapshot.charge_state == ChargeState.UNKNOWN
        assert snapshot.plug_source == PlugSource.NONE
        assert snapshot.health_state == HealthState.UNKNOWN
        assert snapshot.temperature_deci_c == 0
        assert snapshot.voltage_millivolts == 0
        assert snapshot.technology == "Unknown"

    def test_unrecognized_codes(self):
        """Test unknown status/health map to UNKNOWN and dock plug maps to OTHER."""
        snapshot = SnapshotReader(clock=lambda: 0).read(
            RawReading(level=10, scale=100, status=99, plugged=8, health=42)
        )

        assert snapshot.charge_state == ChargeState.UNKNOWN
        assert snapshot.plug_source == PlugSource.OTHER
        assert snapshot.health_state == HealthState.UNKNOWN

    def test_reading_timestamp_wins_over_clock(self):
        """Test a timestamp carried by the reading is kept."""
        reader = SnapshotReader(clock=lambda: 999)
        snapshot = reader.read(RawReading(level=10, scale=100, captured_at_millis=123))
        assert snapshot.captured_at_millis == 123


class TestPsutilBatterySource:
    """Tests for PsutilBatterySource."""

    def test_no_battery(self, monkeypatch):
        """Test a machine without battery yields an unreadable reading."""
        monkeypatch.setattr(psutil, "sensors_battery", lambda: None, raising=False)

        raw = PsutilBatterySource().read_raw()

        assert raw.level is None
        with pytest.raises(ReadError):
            SnapshotReader().read(raw)

    @pytest.mark.parametrize("percent,plugged,status", [
        (55.4, False, 3),
        (55.4, True, 2),
        (100.0, True, 5),
        (40.0, None, 1),
    ])
    def test_status_from_plug_state(self, monkeypatch, percent, plugged, status):
        """Test charge status is derived from the plug state."""
        monkeypatch.setattr(
            psutil, "sensors_battery", lambda: sbattery(percent, 3600, plugged), raising=False
        )
        monkeypatch.setattr(psutil, "sensors_temperatures", lambda: {}, raising=False)

        raw = PsutilBatterySource().read_raw()

        assert raw.level == round(percent)
        assert raw.scale == 100
        assert raw.status == status
        assert raw.plugged == (1 if plugged else 0)

    def test_battery_temperature(self, monkeypatch):
        """Test a battery temperature sensor is reported in tenths of a degree."""
        monkeypatch.setattr(
            psutil, "sensors_battery", lambda: sbattery(70, 3600, False), raising=False
        )
        monkeypatch.setattr(
            psutil,
            "sensors_temperatures",
            lambda: {"coretemp": [shwtemp("Core 0", 55.0, 80, 100)],
                     "BAT0": [shwtemp("", 30.5, None, None)]},
            raising=False,
        )

        raw = PsutilBatterySource().read_raw()

        assert raw.temperature == 305
