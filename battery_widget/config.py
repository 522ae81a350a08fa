"""
Configuration management for Battery Widget.

Handles loading, validating, and saving application configuration.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger("BatteryWidget.Config")

DAY_MILLIS = 24 * 3600 * 1000


class ConfigManager:
    """Thread-safe configuration manager."""

    DEFAULT_CONFIG = {
        "retention_max_age_millis": 7 * DAY_MILLIS,
        "periodic_interval_minutes": 15,
        "poll_interval_seconds": 30,
        "graph_max_samples": 100,
        "graph_width": 500,
        "graph_height": 300,
        "render_workers": 4,
        "log_level": "INFO",
        "log_retention_days": 30,
        "db_path": "data/battery_history.db",
        "registry_path": "data/widgets.json",
        "output_dir": "data/widgets",
        "log_dir": "data/logs",
    }

    VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

    # Host schedulers refuse periodic work more often than this
    MIN_PERIODIC_INTERVAL_MINUTES = 15

    def __init__(self, config_path: str = "config.json"):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to configuration file
        """
        self.config_path = Path(config_path)
        self.lock = threading.Lock()
        self.config = self._load_config()

    def _load_config(self) -> Dict:
        """
        Load configuration from file, applying defaults if missing.

        Returns:
            Configuration dictionary
        """
        config = self.DEFAULT_CONFIG.copy()

        if self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    user_config = json.load(f)

                if isinstance(user_config, dict):
                    config.update(user_config)
                    logger.info(f"Configuration loaded from {self.config_path}")
                else:
                    logger.error(f"Config file {self.config_path} is not a JSON object, using defaults")

            except json.JSONDecodeError as e:
                logger.error(f"Error parsing config file: {e}, using defaults")
            except OSError as e:
                logger.error(f"Error loading config: {e}, using defaults")
        else:
            logger.info(f"Config file not found at {self.config_path}, using defaults")

        return self._validate_config(config)

    @staticmethod
    def _clamp_number(config: Dict, key: str, default, low, high):
        value = config.get(key)
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            config[key] = default
        else:
            config[key] = type(default)(max(low, min(high, value)))

    def _validate_config(self, config: Dict) -> Dict:
        """
        Validate and sanitize configuration values.

        Args:
            config: Configuration dictionary to validate

        Returns:
            Validated configuration dictionary
        """
        # Zero or negative retention keeps history forever
        value = config.get("retention_max_age_millis")
        if not isinstance(value, int) or isinstance(value, bool):
            config["retention_max_age_millis"] = self.DEFAULT_CONFIG["retention_max_age_millis"]

        self._clamp_number(
            config, "periodic_interval_minutes", 15, self.MIN_PERIODIC_INTERVAL_MINUTES, 24 * 60
        )
        self._clamp_number(config, "poll_interval_seconds", 30, 5, 300)
        self._clamp_number(config, "graph_max_samples", 100, 1, 10000)
        self._clamp_number(config, "graph_width", 500, 16, 4096)
        self._clamp_number(config, "graph_height", 300, 16, 4096)
        self._clamp_number(config, "render_workers", 4, 1, 16)
        self._clamp_number(config, "log_retention_days", 30, 1, 365)

        if config.get("log_level") not in self.VALID_LOG_LEVELS:
            config["log_level"] = "INFO"

        for key in ("db_path", "registry_path", "output_dir", "log_dir"):
            if not isinstance(config.get(key), str) or not config[key]:
                config[key] = self.DEFAULT_CONFIG[key]

        return config

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value
        """
        with self.lock:
            return self.config.get(key, default)

    def get_all(self) -> Dict:
        """
        Get all configuration values.

        Returns:
            Copy of configuration dictionary
        """
        with self.lock:
            return self.config.copy()

    def update(self, updates: Dict):
        """
        Update multiple configuration values.

        Args:
            updates: Dictionary of key-value pairs to update
        """
        with self.lock:
            new_config = self.config.copy()
            new_config.update(updates)
            self.config = self._validate_config(new_config)

        logger.info(f"Configuration updated: {list(updates.keys())}")

    def set(self, key: str, value: Any):
        """
        Set a single configuration value.

        Args:
            key: Configuration key
            value: Value to set
        """
        self.update({key: value})

    def save(self) -> bool:
        """
        Save configuration to file.

        Returns:
            True if successful, False otherwise
        """
        with self.lock:
            try:
                self.config_path.parent.mkdir(parents=True, exist_ok=True)

                with open(self.config_path, "w", encoding="utf-8") as f:
                    json.dump(self.config, f, indent=2)

                logger.info(f"Configuration saved to {self.config_path}")
                return True

            except OSError as e:
                logger.error(f"Error saving configuration: {e}")
                return False

    def reset_to_defaults(self):
        """Reset configuration to default values."""
        with self.lock:
            self.config = self.DEFAULT_CONFIG.copy()
        logger.info("Configuration reset to defaults")

    def reload(self):
        """Reload configuration from file."""
        with self.lock:
            self.config = self._load_config()
        logger.info("Configuration reloaded")
