"""Shared test fixtures for Battery Widget."""

from pathlib import Path

import pytest

from battery_widget.config import ConfigManager
from battery_widget.coordinator import UpdateCoordinator
from battery_widget.database import TimeSeriesStore
from battery_widget.publisher import MemoryPublisher
from battery_widget.registry import WidgetRegistry

from tests.helpers import Clock, FakeSource, write_config


@pytest.fixture
def config(tmp_path: Path) -> ConfigManager:
    """Provide a config manager with test paths."""
    return ConfigManager(str(write_config(tmp_path)))


@pytest.fixture
def store(tmp_path: Path) -> TimeSeriesStore:
    """Provide an empty time-series store."""
    return TimeSeriesStore(str(tmp_path / "history.db"))


@pytest.fixture
def registry(tmp_path: Path) -> WidgetRegistry:
    """Provide an empty widget registry."""
    return WidgetRegistry(str(tmp_path / "widgets.json"))


@pytest.fixture
def publisher() -> MemoryPublisher:
    return MemoryPublisher()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def coordinator(store, registry, publisher, config, source, clock):
    """Provide a coordinator wired to fakes."""
    coordinator = UpdateCoordinator(store, registry, publisher, config, source=source, clock=clock)
    yield coordinator
    coordinator.shutdown()
