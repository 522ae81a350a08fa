"""
Entry point for Battery Widget.

Wires the store, registry, coordinator and monitor together and exposes
them through a small command line interface.
"""

import argparse
import json
import signal
import sys
import threading
from typing import List, Optional

from battery_widget.config import ConfigManager
from battery_widget.coordinator import UpdateCoordinator
from battery_widget.database import TimeSeriesStore
from battery_widget.errors import BatteryWidgetError
from battery_widget.logger import cleanup_old_logs, setup_logging
from battery_widget.models import WidgetKind
from battery_widget.monitor import BatteryMonitor
from battery_widget.publisher import DirectoryPublisher
from battery_widget.reader import PsutilBatterySource, current_millis
from battery_widget.registry import WidgetRegistry


class BatteryWidgetApp:
    """Main application object owning every component."""

    def __init__(self, config_path: str = "config.json", source=None):
        """
        Initialize the application.

        Args:
            config_path: Path to configuration file
            source: Raw-reading source, psutil by default
        """
        self.config = ConfigManager(config_path)
        self.logger = setup_logging(self.config, self.config.get("log_dir"))

        self.store = TimeSeriesStore(self.config.get("db_path"))
        self.registry = WidgetRegistry(self.config.get("registry_path"))
        self.publisher = DirectoryPublisher(self.config.get("output_dir"))
        self.source = source or PsutilBatterySource()

        self.coordinator = UpdateCoordinator(
            self.store, self.registry, self.publisher, self.config, source=self.source
        )
        self.monitor = BatteryMonitor(self.config, self.coordinator, self.source)
        self.shutdown_event = threading.Event()

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals gracefully."""
        self.logger.info(f"Received signal {signum}, shutting down...")
        self.shutdown_event.set()

    def run(self):
        """Monitor the battery until interrupted."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        self.cleanup_logs()
        self.monitor.start()
        try:
            while not self.shutdown_event.wait(timeout=1.0):
                pass
        finally:
            self.shutdown()

    def cleanup_logs(self) -> int:
        """Delete log files older than the configured log retention."""
        return cleanup_old_logs(self.config.get("log_dir"), self.config.get("log_retention_days"))

    def shutdown(self):
        """Stop the monitor and release worker threads."""
        if self.monitor.is_running:
            self.monitor.stop()
        self.coordinator.shutdown()
        self.logger.info("Battery Widget stopped")


def _parse_options(pairs: Optional[List[str]]) -> dict:
    """Parse KEY=VALUE pairs, decoding values as JSON when possible."""
    options = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Option must be KEY=VALUE: {pair}")
        try:
            options[key] = json.loads(value)
        except json.JSONDecodeError:
            options[key] = value
    return options


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="battery-widget", description="Battery history widgets")
    parser.add_argument("--config", default="config.json", help="Path to configuration file")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("run", help="Monitor the battery and keep widgets updated")
    commands.add_parser("tick", help="Capture one snapshot and render all widgets")
    commands.add_parser("stats", help="Show history statistics")

    export = commands.add_parser("export", help="Export history to CSV")
    export.add_argument("--hours", type=float, default=24.0, help="Hours of history to export")
    export.add_argument("--output", default="battery_history.csv", help="CSV file to write")

    widget = commands.add_parser("widget", help="Manage widget instances")
    actions = widget.add_subparsers(dest="action", required=True)

    add = actions.add_parser("add", help="Register a widget instance")
    add.add_argument("id")

    set_kind = actions.add_parser("set", help="Change a widget's kind and options")
    set_kind.add_argument("id")
    set_kind.add_argument("kind", choices=[kind.value for kind in WidgetKind])
    set_kind.add_argument("--option", action="append", metavar="KEY=VALUE")

    remove = actions.add_parser("remove", help="Remove a widget instance")
    remove.add_argument("id")

    actions.add_parser("list", help="List widget instances")
    return parser


def _report(result) -> int:
    if result.ok:
        print(f"OK: published {', '.join(result.published) or 'nothing'}")
        return 0
    print(f"Failed during {result.stage.value}: {result.error}", file=sys.stderr)
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Command line entry point."""
    args = build_parser().parse_args(argv)

    try:
        app = BatteryWidgetApp(args.config)
    except BatteryWidgetError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.command == "run":
        app.run()
        return 0

    try:
        if args.command == "tick":
            return _report(app.coordinator.on_periodic_tick())

        if args.command == "stats":
            stats = app.store.get_stats()
            for key, value in stats.items():
                print(f"{key}: {value}")
            return 0

        if args.command == "export":
            since = current_millis() - int(args.hours * 3600 * 1000)
            df = app.store.to_dataframe(since)
            df.to_csv(args.output, index=False)
            print(f"Exported {len(df)} snapshots to {args.output}")
            return 0

        if args.action == "add":
            return _report(app.coordinator.on_widget_instance_added(args.id))
        if args.action == "set":
            options = _parse_options(args.option)
            return _report(app.coordinator.on_widget_kind_changed(args.id, args.kind, options))
        if args.action == "remove":
            return _report(app.coordinator.on_widget_instance_removed(args.id))

        for instance in app.registry.all_instances():
            kind = instance.kind.value if isinstance(instance.kind, WidgetKind) else instance.kind
            print(f"{instance.id}\t{kind}\t{json.dumps(instance.options)}")
        return 0

    except (BatteryWidgetError, argparse.ArgumentTypeError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        app.coordinator.shutdown()


if __name__ == "__main__":
    sys.exit(main())
