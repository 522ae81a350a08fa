"""Tests for ConfigManager."""

import json

from battery_widget.config import DAY_MILLIS, ConfigManager
from battery_widget.retention import RetentionWindow


class TestLoading:
    """Tests for loading and validation."""

    def test_defaults_without_file(self, tmp_path):
        config = ConfigManager(str(tmp_path / "missing.json"))

        assert config.get("retention_max_age_millis") == 7 * DAY_MILLIS
        assert config.get("periodic_interval_minutes") == 15
        assert config.get("graph_width") == 500
        assert config.get("log_level") == "INFO"

    def test_user_values_override_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"graph_max_samples": 50, "log_level": "DEBUG"}))

        config = ConfigManager(str(path))

        assert config.get("graph_max_samples") == 50
        assert config.get("log_level") == "DEBUG"
        assert config.get("graph_height") == 300

    def test_invalid_json_uses_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")

        assert ConfigManager(str(path)).get_all() == ConfigManager.DEFAULT_CONFIG

    def test_non_object_uses_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2, 3]")

        assert ConfigManager(str(path)).get("render_workers") == 4

    def test_periodic_interval_has_floor(self, tmp_path):
        """Test the periodic interval is never shorter than fifteen minutes."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"periodic_interval_minutes": 1}))

        assert ConfigManager(str(path)).get("periodic_interval_minutes") == 15

    def test_numbers_clamped_and_typed(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "poll_interval_seconds": 1,
            "render_workers": 100,
            "graph_width": "wide",
            "graph_height": True,
            "log_level": "LOUD",
            "db_path": "",
        }))

        config = ConfigManager(str(path))

        assert config.get("poll_interval_seconds") == 5
        assert config.get("render_workers") == 16
        assert config.get("graph_width") == 500
        assert config.get("graph_height") == 300
        assert config.get("log_level") == "INFO"
        assert config.get("db_path") == "data/battery_history.db"

    def test_retention_unbounded_allowed(self, tmp_path):
        """Test zero or negative retention is kept and means keep forever."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"retention_max_age_millis": -1}))

        config = ConfigManager(str(path))

        assert config.get("retention_max_age_millis") == -1
        assert RetentionWindow.from_config(config).unbounded

    def test_retention_must_be_integer(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"retention_max_age_millis": "a week"}))

        assert ConfigManager(str(path)).get("retention_max_age_millis") == 7 * DAY_MILLIS


class TestUpdating:
    """Tests for updating and persisting configuration."""

    def test_set_validates(self, tmp_path):
        config = ConfigManager(str(tmp_path / "config.json"))

        config.set("periodic_interval_minutes", 5)

        assert config.get("periodic_interval_minutes") == 15

    def test_save_and_reload(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        config = ConfigManager(str(path))
        config.update({"graph_width": 640, "graph_height": 480})

        assert config.save() is True
        assert ConfigManager(str(path)).get("graph_width") == 640

    def test_reload_picks_up_file_changes(self, tmp_path):
        path = tmp_path / "config.json"
        config = ConfigManager(str(path))
        path.write_text(json.dumps({"graph_max_samples": 7}))

        config.reload()

        assert config.get("graph_max_samples") == 7

    def test_reset_to_defaults(self, tmp_path):
        config = ConfigManager(str(tmp_path / "config.json"))
        config.set("render_workers", 2)

        config.reset_to_defaults()

        assert config.get("render_workers") == 4

    def test_get_all_is_a_copy(self, tmp_path):
        config = ConfigManager(str(tmp_path / "config.json"))

        config.get_all()["render_workers"] = 99

        assert config.get("render_workers") == 4

    def test_log_retention_separate_from_history(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"retention_max_age_millis": 0, "log_retention_days": 0}))

        config = ConfigManager(str(path))

        assert config.get("retention_max_age_millis") == 0
        assert config.get("log_retention_days") == 1
        assert ConfigManager(str(tmp_path / "other.json")).get("log_retention_days") == 30
