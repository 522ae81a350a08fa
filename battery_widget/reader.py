"""
Battery reading normalization.

Turns raw host readings into canonical Snapshot values and provides a psutil
backed source of raw readings for desktop hosts.
"""

import logging
import time
from typing import Callable, Dict, Optional

import psutil

from battery_widget.errors import ReadError
from battery_widget.models import ChargeState, HealthState, PlugSource, RawReading, Snapshot

# Android BatteryManager codes
STATUS_CODES: Dict[int, ChargeState] = {
    1: ChargeState.UNKNOWN,
    2: ChargeState.CHARGING,
    3: ChargeState.DISCHARGING,
    4: ChargeState.NOT_CHARGING,
    5: ChargeState.FULL,
}

PLUG_CODES: Dict[int, PlugSource] = {
    0: PlugSource.NONE,
    1: PlugSource.AC,
    2: PlugSource.USB,
    4: PlugSource.WIRELESS,
}

HEALTH_CODES: Dict[int, HealthState] = {
    1: HealthState.UNKNOWN,
    2: HealthState.GOOD,
    3: HealthState.OVERHEAT,
    4: HealthState.DEAD,
    5: HealthState.OVER_VOLTAGE,
    6: HealthState.FAILURE,
    7: HealthState.COLD,
}

UNKNOWN_TECHNOLOGY = "Unknown"


def current_millis() -> int:
    """Wall-clock time in milliseconds."""
    return int(time.time() * 1000)


class SnapshotReader:
    """Normalizes raw battery readings into snapshots."""

    def __init__(self, clock: Callable[[], int] = current_millis):
        """
        Initialize the reader.

        Args:
            clock: Returns the capture time in milliseconds when the raw
                reading does not carry one
        """
        self.clock = clock

    def read(self, raw: RawReading) -> Snapshot:
        """
        Normalize a raw reading.

        Args:
            raw: Reading supplied by the host

        Returns:
            Snapshot with a level percentage in [0, 100]

        Raises:
            ReadError: If level or scale cannot be resolved to a percentage
        """
        level_percent = self._level_percent(raw.level, raw.scale)

        captured_at = raw.captured_at_millis
        if captured_at is None:
            captured_at = self.clock()

        return Snapshot(
            captured_at_millis=int(captured_at),
            level_percent=level_percent,
            charge_state=STATUS_CODES.get(raw.status, ChargeState.UNKNOWN),
            plug_source=self._plug_source(raw.plugged),
            health_state=HEALTH_CODES.get(raw.health, HealthState.UNKNOWN),
            temperature_deci_c=int(raw.temperature or 0),
            voltage_millivolts=int(raw.voltage or 0),
            technology=raw.technology or UNKNOWN_TECHNOLOGY,
        )

    @staticmethod
    def _level_percent(level: Optional[int], scale: Optional[int]) -> int:
        if level is None or level < 0:
            raise ReadError(f"level unavailable ({level})")
        if scale is None or scale <= 0:
            raise ReadError(f"scale unavailable ({scale})")

        percent = int(level * 100 / scale)
        if percent > 100:
            raise ReadError(f"level {level} exceeds scale {scale}")
        return percent

    @staticmethod
    def _plug_source(plugged: Optional[int]) -> PlugSource:
        if plugged is None or plugged < 0:
            return PlugSource.NONE
        # Dock and vendor-specific codes
        return PLUG_CODES.get(plugged, PlugSource.OTHER)


class PsutilBatterySource:
    """
    Produces raw readings from the local battery through psutil.

    psutil only reports the charge percentage and whether the machine is
    plugged in, so health, voltage and technology stay unset.
    """

    def __init__(self):
        self.logger = logging.getLogger("BatteryWidget.Source")

    def read_raw(self) -> RawReading:
        """
        Sample the battery.

        Returns:
            RawReading; level is None when no battery is present
        """
        if not hasattr(psutil, "sensors_battery"):
            return RawReading()

        battery = psutil.sensors_battery()
        if battery is None:
            # No battery installed
            return RawReading()

        percent = int(round(battery.percent))
        plugged = battery.power_plugged

        if plugged is None:
            status = 1
        elif plugged and percent >= 100:
            status = 5
        elif plugged:
            status = 2
        else:
            status = 3

        return RawReading(
            level=percent,
            scale=100,
            status=status,
            plugged=1 if plugged else 0,
            temperature=self._battery_temperature(),
        )

    def _battery_temperature(self) -> Optional[int]:
        """Battery temperature in tenths of a degree, when a sensor exposes it."""
        if not hasattr(psutil, "sensors_temperatures"):
            return None

        try:
            sensors = psutil.sensors_temperatures()
        except (OSError, RuntimeError) as e:
            self.logger.debug(f"Temperature sensors unavailable: {e}")
            return None

        for name, entries in sensors.items():
            if "bat" in name.lower() and entries:
                return int(round(entries[0].current * 10))
        return None
