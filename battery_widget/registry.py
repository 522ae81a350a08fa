"""
Widget instance registry.

Durable mapping of widget instance ids to their render kind and options,
kept as a JSON document on disk.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

from battery_widget.errors import StoreIOError, UnsupportedKindError
from battery_widget.models import DEFAULT_WIDGET_KIND, WidgetInstance, WidgetKind


def parse_kind(kind: Union[WidgetKind, str]) -> WidgetKind:
    """
    Resolve a kind given as enum or name.

    Raises:
        UnsupportedKindError: If the name matches no widget kind
    """
    if isinstance(kind, WidgetKind):
        return kind
    try:
        return WidgetKind(str(kind).lower())
    except ValueError:
        raise UnsupportedKindError(kind) from None


class WidgetRegistry:
    """
    Thread-safe registry of widget instances.

    Every change is written through to disk before the call returns. Writers
    swap in a new dict under the lock and never mutate the published one, so
    readers take no lock and return copies.
    """

    def __init__(self, registry_path: str = "data/widgets.json"):
        """
        Initialize the registry.

        Args:
            registry_path: Path to the JSON registry file
        """
        self.registry_path = Path(registry_path)
        self.lock = threading.Lock()
        self.logger = logging.getLogger("BatteryWidget.Registry")
        self._entries: Dict[str, Dict[str, Any]] = self._load()

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.registry_path.exists():
            return {}

        try:
            with open(self.registry_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            self.logger.error(f"Registry file {self.registry_path} is unreadable: {e}")
            return {}
        except OSError as e:
            raise StoreIOError(f"Cannot read registry {self.registry_path}: {e}") from e

        if not isinstance(data, dict):
            self.logger.error(f"Registry file {self.registry_path} has unexpected layout")
            return {}

        entries = {}
        for widget_id, entry in data.items():
            if isinstance(entry, dict):
                entries[str(widget_id)] = {
                    "kind": entry.get("kind", DEFAULT_WIDGET_KIND.value),
                    "options": entry.get("options") or {},
                }
        self.logger.info(f"Loaded {len(entries)} widget instances")
        return entries

    def _save(self, entries: Dict[str, Dict[str, Any]]):
        """Write the registry atomically. Caller must hold the lock."""
        tmp_path = self.registry_path.with_name(self.registry_path.name + ".tmp")
        try:
            self.registry_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(entries, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.registry_path)
        except (OSError, TypeError, ValueError) as e:
            raise StoreIOError(f"Cannot write registry {self.registry_path}: {e}") from e

    def _to_instance(self, widget_id: str, entry: Dict[str, Any]) -> WidgetInstance:
        # Kinds this version does not know are kept by name
        try:
            kind = parse_kind(entry["kind"])
        except UnsupportedKindError:
            kind = entry["kind"]
        return WidgetInstance(id=widget_id, kind=kind, options=dict(entry["options"]))

    def set_kind(
        self,
        widget_id: str,
        kind: Union[WidgetKind, str],
        options: Optional[Dict[str, Any]] = None,
    ) -> WidgetInstance:
        """
        Create or reconfigure a widget instance.

        Args:
            widget_id: Opaque instance id
            kind: Render kind
            options: Instance options, replacing any previous ones

        Returns:
            The stored widget instance

        Raises:
            UnsupportedKindError: If kind is not a known widget kind
            StoreIOError: If the registry cannot be written
        """
        resolved = parse_kind(kind)
        entry = {"kind": resolved.value, "options": dict(options or {})}

        with self.lock:
            updated = dict(self._entries)
            updated[widget_id] = entry
            self._save(updated)
            self._entries = updated

        self.logger.info(f"Widget {widget_id} set to {resolved.value}")
        return self._to_instance(widget_id, entry)

    def get(self, widget_id: str) -> Optional[WidgetInstance]:
        """
        Look up a widget instance.

        Returns:
            WidgetInstance, or None if the id is not registered
        """
        entry = self._entries.get(widget_id)
        if entry is None:
            return None
        return self._to_instance(widget_id, entry)

    def get_or_default(self, widget_id: str) -> WidgetInstance:
        """Look up a widget instance, defaulting to the details table kind."""
        return self.get(widget_id) or WidgetInstance(id=widget_id)

    def remove(self, widget_id: str) -> bool:
        """
        Forget a widget instance.

        Returns:
            True if the instance existed
        """
        with self.lock:
            if widget_id not in self._entries:
                return False
            updated = dict(self._entries)
            del updated[widget_id]
            self._save(updated)
            self._entries = updated

        self.logger.info(f"Widget {widget_id} removed")
        return True

    def all_ids(self) -> Set[str]:
        """Ids of all registered widget instances."""
        return set(self._entries)

    def all_instances(self) -> List[WidgetInstance]:
        """All registered widget instances, ordered by id."""
        entries = self._entries
        return [self._to_instance(widget_id, entries[widget_id]) for widget_id in sorted(entries)]
