"""
Data models for Battery Widget.

Snapshots are immutable, normalized battery readings. Raw readings are what
the host hands in before normalization. Rendered surfaces are transient and
never persisted.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ChargeState(Enum):
    """Charging status of the battery."""
    CHARGING = "charging"
    DISCHARGING = "discharging"
    NOT_CHARGING = "not_charging"
    FULL = "full"
    UNKNOWN = "unknown"


class PlugSource(Enum):
    """Power source the device is plugged into."""
    NONE = "none"
    AC = "ac"
    USB = "usb"
    WIRELESS = "wireless"
    OTHER = "other"


class HealthState(Enum):
    """Battery health as reported by the hardware."""
    GOOD = "good"
    OVERHEAT = "overheat"
    DEAD = "dead"
    OVER_VOLTAGE = "over_voltage"
    FAILURE = "failure"
    COLD = "cold"
    UNKNOWN = "unknown"


class WidgetKind(Enum):
    """Render strategy of a widget instance."""
    ICON_DETAIL = "icon_detail"
    TEXT_ONLY = "text_only"
    DETAILS_TABLE = "details_table"
    GRAPH = "graph"


DEFAULT_WIDGET_KIND = WidgetKind.DETAILS_TABLE


@dataclass(frozen=True)
class Snapshot:
    """One normalized point-in-time battery reading."""

    captured_at_millis: int
    level_percent: int  # 0 - 100
    charge_state: ChargeState = ChargeState.UNKNOWN
    plug_source: PlugSource = PlugSource.NONE
    health_state: HealthState = HealthState.UNKNOWN
    temperature_deci_c: int = 0  # Tenths of a degree Celsius
    voltage_millivolts: int = 0
    technology: str = ""

    def __post_init__(self):
        if not 0 <= self.level_percent <= 100:
            raise ValueError(f"level_percent out of range: {self.level_percent}")


@dataclass
class RawReading:
    """
    Unnormalized battery reading supplied by the host.

    Codes follow the Android BatteryManager constants, which most battery
    sources can be mapped onto. Any field may be None when the source does
    not report it.
    """

    level: Optional[int] = None
    scale: Optional[int] = None
    status: Optional[int] = None
    plugged: Optional[int] = None
    health: Optional[int] = None
    temperature: Optional[int] = None  # Tenths of a degree Celsius
    voltage: Optional[int] = None  # Millivolts
    technology: Optional[str] = None
    captured_at_millis: Optional[int] = None


@dataclass
class WidgetInstance:
    """One independently configured widget consumer."""

    id: str
    kind: WidgetKind = DEFAULT_WIDGET_KIND
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FieldSurface:
    """Structured text fields for the icon, text and table kinds."""

    kind: WidgetKind
    fields: Dict[str, Any]
    has_data: bool = True


@dataclass(frozen=True)
class RasterSurface:
    """Encoded PNG image for the graph kind."""

    kind: WidgetKind
    width: int
    height: int
    png: bytes
    title: str = ""
    has_data: bool = True
