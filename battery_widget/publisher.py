"""
Publishers hand rendered surfaces to whatever displays them.
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Tuple

from battery_widget.models import FieldSurface, RasterSurface


class Publisher(ABC):
    """Sink for rendered widget surfaces."""

    @abstractmethod
    def publish(self, widget_id: str, surface):
        """Make a surface visible for a widget instance."""

    def retract(self, widget_id: str):
        """Forget everything published for a removed widget instance."""


class MemoryPublisher(Publisher):
    """Keeps published surfaces in memory."""

    def __init__(self):
        self.lock = threading.Lock()
        self.calls: List[Tuple[str, object]] = []
        self.surfaces: Dict[str, object] = {}
        self.retracted: List[str] = []

    def publish(self, widget_id: str, surface):
        with self.lock:
            self.calls.append((widget_id, surface))
            self.surfaces[widget_id] = surface

    def retract(self, widget_id: str):
        with self.lock:
            self.retracted.append(widget_id)
            self.surfaces.pop(widget_id, None)


class DirectoryPublisher(Publisher):
    """
    Writes surfaces into a directory.

    Graph surfaces become `<id>.png`. Field surfaces become `<id>.json`,
    with any binary field (such as the battery icon) written next to it as
    `<id>.<field>.png` and listed under "files" in the JSON document. Files
    are replaced atomically so a reader never sees a partial surface.
    """

    def __init__(self, output_dir: str = "data/widgets"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger("BatteryWidget.Publisher")

    def _write(self, path: Path, data: bytes):
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)

    def _files_for(self, widget_id: str) -> List[Path]:
        """Files currently published for exactly this widget id."""
        raster = self.output_dir / f"{widget_id}.png"
        document = self.output_dir / f"{widget_id}.json"
        paths = [raster, document]

        if document.exists():
            try:
                with open(document, "r", encoding="utf-8") as f:
                    listed = json.load(f).get("files", [])
                paths.extend(self.output_dir / name for name in listed)
            except (OSError, ValueError, AttributeError) as e:
                self.logger.warning(f"Cannot read {document.name}, binary fields left in place: {e}")

        return [path for path in paths if path.exists()]

    def publish(self, widget_id: str, surface):
        stale = set(self._files_for(widget_id))
        written = []

        if isinstance(surface, RasterSurface):
            path = self.output_dir / f"{widget_id}.png"
            self._write(path, surface.png)
            written.append(path)
        elif isinstance(surface, FieldSurface):
            fields = {}
            files = []
            for name, value in surface.fields.items():
                if isinstance(value, bytes):
                    path = self.output_dir / f"{widget_id}.{name}.png"
                    self._write(path, value)
                    written.append(path)
                    files.append(path.name)
                    fields[name] = path.name
                else:
                    fields[name] = value

            document = {
                "kind": surface.kind.value,
                "has_data": surface.has_data,
                "fields": fields,
                "files": files,
            }
            path = self.output_dir / f"{widget_id}.json"
            self._write(path, json.dumps(document, indent=2).encode("utf-8"))
            written.append(path)
        else:
            raise TypeError(f"Cannot publish {type(surface).__name__}")

        # Drop files left over from a previous kind
        for path in stale.difference(written):
            path.unlink(missing_ok=True)

        self.logger.debug(f"Published {widget_id}: {[p.name for p in written]}")

    def retract(self, widget_id: str):
        for path in self._files_for(widget_id):
            path.unlink(missing_ok=True)
        self.logger.debug(f"Retracted {widget_id}")
