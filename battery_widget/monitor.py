"""
Battery monitoring loop.

Samples a raw-reading source in a background thread and turns changes into
power events and elapsed intervals into periodic ticks on the coordinator.
"""

import logging
import threading
import time
from typing import Optional, Tuple

from battery_widget.models import RawReading


class BatteryMonitor:
    """
    Drives the coordinator from a polled battery source.

    A power event fires when level, status or plug state differ from the
    previous sample. A periodic tick fires when no run has happened for the
    configured interval.
    """

    def __init__(self, config, coordinator, source):
        """
        Initialize battery monitor.

        Args:
            config: ConfigManager instance
            coordinator: UpdateCoordinator instance
            source: Object with read_raw() returning a RawReading
        """
        self.config = config
        self.coordinator = coordinator
        self.source = source
        self.logger = logging.getLogger("BatteryWidget.Monitor")

        # Threading control
        self.stop_event = threading.Event()  # Set when stopping to wake thread immediately
        self.monitor_thread = None

        self.previous_state: Optional[Tuple] = None
        self.last_run_time: Optional[float] = None

    @property
    def is_running(self) -> bool:
        return self.monitor_thread is not None and self.monitor_thread.is_alive()

    def start(self):
        """Start monitoring in background thread."""
        if self.is_running:
            self.logger.warning("Monitor already running")
            return

        self.logger.info("Starting battery monitor...")
        self.stop_event.clear()
        self.monitor_thread = threading.Thread(target=self._monitor_loop, daemon=True)
        self.monitor_thread.start()

    def stop(self):
        """Stop monitoring gracefully."""
        if not self.is_running:
            self.logger.warning("Monitor not running")
            return

        self.logger.info("Stopping battery monitor...")
        self.stop_event.set()
        self.monitor_thread.join(timeout=5.0)
        self.logger.info("Battery monitor stopped")

    @staticmethod
    def _state_of(raw: RawReading) -> Tuple:
        return (raw.level, raw.scale, raw.status, raw.plugged)

    def _monitor_loop(self):
        """Main monitoring loop."""
        self.logger.info("Monitor loop started")

        try:
            raw = self.source.read_raw()
            self.previous_state = self._state_of(raw)
            self.coordinator.on_boot_completed(raw)
            self.last_run_time = time.monotonic()
        except Exception as e:
            self.logger.error(f"Error during initial capture: {e}", exc_info=True)

        while not self.stop_event.wait(timeout=self.config.get("poll_interval_seconds", 30)):
            try:
                self.poll_once()
            except Exception as e:
                self.logger.error(f"Error in monitor loop: {e}", exc_info=True)

        self.logger.info("Monitor loop exited")

    def poll_once(self):
        """
        Sample the source once and fire whichever trigger is due.

        Returns:
            RunResult of the triggered run, or None if nothing was due
        """
        raw = self.source.read_raw()
        state = self._state_of(raw)
        now = time.monotonic()

        interval = self.config.get("periodic_interval_minutes", 15) * 60
        tick_due = self.last_run_time is None or now - self.last_run_time >= interval

        if state != self.previous_state:
            self.logger.debug(f"Battery state changed: {self.previous_state} -> {state}")
            result = self.coordinator.on_power_event(raw)
        elif tick_due:
            result = self.coordinator.on_periodic_tick(raw)
        else:
            return None

        self.previous_state = state
        self.last_run_time = now
        return result
