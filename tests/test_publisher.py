"""Tests for surface publishers."""

import json

import pytest

from battery_widget.models import FieldSurface, WidgetKind
from battery_widget.publisher import DirectoryPublisher, MemoryPublisher, Publisher
from battery_widget.renderers import render_empty_graph, render_icon_detail, render_text_only

from tests.helpers import make_snapshot


@pytest.fixture
def directory(tmp_path):
    return DirectoryPublisher(str(tmp_path / "out"))


class TestDirectoryPublisher:
    """Tests for DirectoryPublisher."""

    def test_field_surface_written_as_json(self, directory):
        directory.publish("w1", render_text_only(make_snapshot(0, 55)))

        document = json.loads((directory.output_dir / "w1.json").read_text())
        assert document == {
            "kind": "text_only",
            "has_data": True,
            "fields": {"level_text": "55%", "charge_glyph_visible": False},
            "files": [],
        }

    def test_binary_fields_written_beside_json(self, directory):
        directory.publish("w1", render_icon_detail(make_snapshot(0, 55)))

        document = json.loads((directory.output_dir / "w1.json").read_text())
        assert document["fields"]["icon"] == "w1.icon.png"
        assert document["files"] == ["w1.icon.png"]
        assert (directory.output_dir / "w1.icon.png").read_bytes().startswith(b"\x89PNG")

    def test_raster_surface_written_as_png(self, directory):
        directory.publish("g", render_empty_graph({"width": 100, "height": 50}))

        assert (directory.output_dir / "g.png").read_bytes().startswith(b"\x89PNG")
        assert not (directory.output_dir / "g.json").exists()

    def test_kind_change_removes_stale_files(self, directory):
        directory.publish("w1", render_icon_detail(make_snapshot(0, 55)))
        directory.publish("w1", render_empty_graph())

        names = sorted(path.name for path in directory.output_dir.iterdir())
        assert names == ["w1.png"]

    def test_similar_ids_untouched(self, directory):
        """Test publishing one instance leaves instances with prefixed ids alone."""
        directory.publish("w1", render_text_only(None))
        directory.publish("w10", render_text_only(None))

        directory.publish("w1", render_empty_graph())

        assert (directory.output_dir / "w10.json").exists()

    def test_retract_leaves_dotted_sibling(self, directory):
        """Test retracting an id keeps the files of an id that extends it with a dot."""
        directory.publish("home", render_icon_detail(None))
        directory.publish("home.1", render_text_only(None))

        directory.retract("home")

        assert sorted(path.name for path in directory.output_dir.iterdir()) == ["home.1.json"]

    def test_dotted_id_kind_change(self, directory):
        """Test an id containing dots replaces its own files on a kind change."""
        directory.publish("home.1", render_icon_detail(None))
        directory.publish("home.1", render_empty_graph())

        assert sorted(path.name for path in directory.output_dir.iterdir()) == ["home.1.png"]

        directory.retract("home.1")
        assert list(directory.output_dir.iterdir()) == []

    def test_retract(self, directory):
        directory.publish("w1", render_icon_detail(None))
        directory.publish("w2", render_text_only(None))

        directory.retract("w1")

        assert sorted(path.name for path in directory.output_dir.iterdir()) == ["w2.json"]

    def test_unknown_surface_rejected(self, directory):
        with pytest.raises(TypeError):
            directory.publish("w1", {"level": 10})


class TestMemoryPublisher:
    """Tests for MemoryPublisher."""

    def test_base_publisher_is_abstract(self):
        with pytest.raises(TypeError):
            Publisher()

    def test_records_calls_and_retractions(self):
        publisher = MemoryPublisher()
        surface = FieldSurface(WidgetKind.TEXT_ONLY, {"level_text": "1%"})

        publisher.publish("w1", surface)
        publisher.retract("w1")

        assert publisher.calls == [("w1", surface)]
        assert publisher.retracted == ["w1"]
        assert "w1" not in publisher.surfaces
