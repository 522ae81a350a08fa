"""
Widget renderers - turn battery snapshots into widget surfaces.

Every renderer is a pure function of its inputs. Figures are built with the
object-oriented matplotlib API on an Agg canvas, never through pyplot, so
renderers can run in parallel worker threads.
"""

import io
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import numpy as np
from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure
from matplotlib.patches import Rectangle
from PIL import Image, ImageDraw

from battery_widget.errors import UnsupportedKindError
from battery_widget.models import (
    ChargeState,
    FieldSurface,
    HealthState,
    PlugSource,
    RasterSurface,
    Snapshot,
    WidgetKind,
)

logger = logging.getLogger("BatteryWidget.Renderers")

NO_DATA = "N/A"
NO_DATA_TITLE = "No data"

GRAPH_DEFAULTS = {
    "width": 500,
    "height": 300,
    "line_color": "#4CAF50",
    "line_width": 2.0,
    "fill": True,
    "show_grid": True,
    "max_samples": 100,
}

GRAPH_DPI = 100
MIN_GRAPH_SIZE = 16
MAX_GRAPH_SIZE = 4096

STATUS_TEXT = {
    ChargeState.CHARGING: "Charging",
    ChargeState.DISCHARGING: "Discharging",
    ChargeState.NOT_CHARGING: "Not charging",
    ChargeState.FULL: "Full",
    ChargeState.UNKNOWN: "Unknown",
}

HEALTH_TEXT = {
    HealthState.GOOD: "Good",
    HealthState.OVERHEAT: "Overheat",
    HealthState.DEAD: "Dead",
    HealthState.OVER_VOLTAGE: "Over voltage",
    HealthState.FAILURE: "Failure",
    HealthState.COLD: "Cold",
    HealthState.UNKNOWN: "Unknown",
}

PLUG_TEXT = {
    PlugSource.NONE: "Disconnected",
    PlugSource.AC: "AC",
    PlugSource.USB: "USB",
    PlugSource.WIRELESS: "Wireless",
    PlugSource.OTHER: "Other",
}


# --- Text helpers ---

def level_text(snapshot: Snapshot) -> str:
    return f"{snapshot.level_percent}%"


def status_text(charge_state: ChargeState, plug_source: PlugSource) -> str:
    """Charge status, naming the source while charging."""
    if charge_state == ChargeState.CHARGING and plug_source in (
        PlugSource.AC, PlugSource.USB, PlugSource.WIRELESS
    ):
        return f"Charging ({PLUG_TEXT[plug_source]})"
    return STATUS_TEXT[charge_state]


def temperature_c(temperature_deci_c: int) -> float:
    return round(temperature_deci_c / 10, 1)


def voltage_v(voltage_millivolts: int) -> float:
    return round(voltage_millivolts / 1000, 3)


def charge_icon_state(snapshot: Snapshot) -> str:
    """Name of the status icon shown next to the battery level."""
    if snapshot.charge_state == ChargeState.CHARGING:
        return "charging"
    if snapshot.charge_state == ChargeState.FULL:
        return "full"
    if snapshot.plug_source == PlugSource.NONE:
        return "none"
    return f"plug_{snapshot.plug_source.value}"


# --- Battery glyph ---

def battery_color(level_percent: int) -> str:
    """Critical below 20%, warning below 40%, good otherwise."""
    if level_percent < 20:
        return "#CC0000"
    if level_percent < 40:
        return "#DDAA00"
    return "#00AA00"


def draw_battery_icon(level_percent: Optional[int], charging: bool = False, size=(64, 64)) -> bytes:
    """
    Draw a battery glyph filled to the given level.

    Args:
        level_percent: Charge level 0-100, or None for an empty outline
        charging: Overlay a lightning bolt
        size: Tuple of (width, height) in pixels

    Returns:
        PNG encoded image
    """
    img = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)

    width, height = size
    color = battery_color(level_percent) if level_percent is not None else "#888888"

    # Battery body with padding, terminal nub on top
    padding = max(2, width // 8)
    body = [padding, padding + 4, width - padding, height - padding]
    terminal_width = max(4, width // 5)
    terminal_x = (width - terminal_width) // 2
    draw.rounded_rectangle(
        [terminal_x, padding, terminal_x + terminal_width, padding + 4],
        radius=2,
        fill=color,
    )
    draw.rounded_rectangle(body, radius=4, outline=color, width=2)

    if level_percent:
        inner_top = body[1] + 4
        inner_bottom = body[3] - 4
        fill_top = inner_bottom - (inner_bottom - inner_top) * level_percent / 100
        draw.rectangle([body[0] + 4, fill_top, body[2] - 4, inner_bottom], fill=color)

    if charging:
        cx, cy = width / 2, (body[1] + body[3]) / 2
        bolt = [
            (cx + 2, cy - 14), (cx - 8, cy + 2), (cx - 1, cy + 2),
            (cx - 3, cy + 14), (cx + 8, cy - 2), (cx + 1, cy - 2),
        ]
        draw.polygon(bolt, fill="#FFFFFF", outline="#000000")

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


# --- Field renderers ---

def render_icon_detail(latest: Optional[Snapshot], options: Optional[Dict[str, Any]] = None) -> FieldSurface:
    """Level text, charge icon state and a percentage bar."""
    if latest is None:
        return FieldSurface(
            kind=WidgetKind.ICON_DETAIL,
            fields={
                "level_text": NO_DATA,
                "charge_icon_state": "none",
                "percent_bar": 0,
                "icon": draw_battery_icon(None),
            },
            has_data=False,
        )

    return FieldSurface(
        kind=WidgetKind.ICON_DETAIL,
        fields={
            "level_text": level_text(latest),
            "charge_icon_state": charge_icon_state(latest),
            "percent_bar": latest.level_percent,
            "icon": draw_battery_icon(
                latest.level_percent, charging=latest.charge_state == ChargeState.CHARGING
            ),
        },
    )


def render_text_only(latest: Optional[Snapshot], options: Optional[Dict[str, Any]] = None) -> FieldSurface:
    """Level text and whether the charging glyph is shown."""
    if latest is None:
        return FieldSurface(
            kind=WidgetKind.TEXT_ONLY,
            fields={"level_text": NO_DATA, "charge_glyph_visible": False},
            has_data=False,
        )

    return FieldSurface(
        kind=WidgetKind.TEXT_ONLY,
        fields={
            "level_text": level_text(latest),
            "charge_glyph_visible": latest.charge_state == ChargeState.CHARGING,
        },
    )


def render_details_table(latest: Optional[Snapshot], options: Optional[Dict[str, Any]] = None) -> FieldSurface:
    """Full battery detail table. Every field is NO_DATA without a snapshot."""
    if latest is None:
        fields = dict.fromkeys(
            ("level", "status", "health", "temp_c", "voltage_v", "plug_source", "technology"),
            NO_DATA,
        )
        return FieldSurface(kind=WidgetKind.DETAILS_TABLE, fields=fields, has_data=False)

    return FieldSurface(
        kind=WidgetKind.DETAILS_TABLE,
        fields={
            "level": level_text(latest),
            "status": status_text(latest.charge_state, latest.plug_source),
            "health": HEALTH_TEXT[latest.health_state],
            "temp_c": temperature_c(latest.temperature_deci_c),
            "voltage_v": voltage_v(latest.voltage_millivolts),
            "plug_source": PLUG_TEXT[latest.plug_source],
            "technology": latest.technology or NO_DATA,
        },
    )


# --- Graph renderer ---

def graph_options(options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Merge instance options over the graph defaults.

    Sizes are clamped and values of the wrong type fall back to defaults.
    """
    merged = GRAPH_DEFAULTS.copy()
    for key, value in (options or {}).items():
        if key not in merged:
            continue
        default = GRAPH_DEFAULTS[key]
        if isinstance(default, bool):
            if isinstance(value, bool):
                merged[key] = value
        elif isinstance(default, (int, float)):
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                merged[key] = type(default)(value)
        elif isinstance(value, str):
            merged[key] = value

    merged["width"] = max(MIN_GRAPH_SIZE, min(MAX_GRAPH_SIZE, merged["width"]))
    merged["height"] = max(MIN_GRAPH_SIZE, min(MAX_GRAPH_SIZE, merged["height"]))
    merged["max_samples"] = max(1, merged["max_samples"])
    return merged


def dedupe_series(series: Sequence[Snapshot]) -> List[Snapshot]:
    """
    Order samples by time, keeping the later-listed sample on timestamp ties.
    """
    by_time = {}
    for snapshot in series:
        by_time[snapshot.captured_at_millis] = snapshot
    return [by_time[t] for t in sorted(by_time)]


def _new_figure(width: int, height: int) -> Figure:
    fig = Figure(figsize=(width / GRAPH_DPI, height / GRAPH_DPI), dpi=GRAPH_DPI)
    FigureCanvasAgg(fig)
    return fig


def _encode(fig: Figure, width: int, height: int) -> bytes:
    """Encode the figure as a PNG of exactly width x height pixels."""
    buf = io.BytesIO()
    fig.canvas.print_png(buf)
    buf.seek(0)

    with Image.open(buf) as img:
        if img.size == (width, height):
            return buf.getvalue()
        # Float figure sizes can round to one pixel off
        resized = img.resize((width, height))

    out = io.BytesIO()
    resized.save(out, format="PNG")
    return out.getvalue()


def render_empty_graph(options: Optional[Dict[str, Any]] = None) -> RasterSurface:
    """Placeholder graph surface shown when there is no history."""
    opts = graph_options(options)
    width, height = opts["width"], opts["height"]

    fig = _new_figure(width, height)
    fig.patch.set_facecolor("#F8F8F8")
    fig.add_artist(Rectangle(
        (0, 0), 1, 1, transform=fig.transFigure,
        fill=False, edgecolor="lightgray", linewidth=2,
    ))
    fig.text(0.5, 0.5, NO_DATA_TITLE, ha="center", va="center", fontsize=14, color="dimgray")

    return RasterSurface(
        kind=WidgetKind.GRAPH,
        width=width,
        height=height,
        png=_encode(fig, width, height),
        title=NO_DATA_TITLE,
        has_data=False,
    )


def render_graph(series: Sequence[Snapshot], options: Optional[Dict[str, Any]] = None) -> RasterSurface:
    """
    Draw battery level over the series.

    Samples are spaced evenly by index, so gaps between readings do not
    stretch the line. The y axis is fixed to 0-100%.

    Args:
        series: Snapshots in any order
        options: Graph options, see GRAPH_DEFAULTS

    Returns:
        RasterSurface of the requested size
    """
    opts = graph_options(options)
    samples = dedupe_series(series)[-opts["max_samples"]:]

    if not samples:
        return render_empty_graph(opts)

    width, height = opts["width"], opts["height"]
    levels = np.array([s.level_percent for s in samples], dtype=float)
    x = np.arange(len(levels))

    fig = _new_figure(width, height)
    ax = fig.add_axes([0.1, 0.08, 0.87, 0.86])
    ax.set_ylim(0, 100)
    ax.set_yticks(np.linspace(0, 100, 5))
    ax.set_xticks([])

    if len(levels) == 1:
        ax.set_xlim(-1, 1)
        ax.plot(x, levels, marker="o", markersize=8, linestyle="none", color=opts["line_color"])
    else:
        ax.set_xlim(0, len(levels) - 1)
        ax.plot(x, levels, color=opts["line_color"], linewidth=opts["line_width"])
        if opts["fill"]:
            ax.fill_between(x, 0, levels, color=opts["line_color"], alpha=0.2)

    if opts["show_grid"]:
        ax.grid(True, axis="y", alpha=0.3, linestyle="--")

    latest = samples[-1]
    title = f"{level_text(latest)} - {status_text(latest.charge_state, latest.plug_source)}"

    logger.debug(f"Graph rendered: {len(samples)} samples, {width}x{height}")
    return RasterSurface(
        kind=WidgetKind.GRAPH,
        width=width,
        height=height,
        png=_encode(fig, width, height),
        title=title,
    )


# --- Dispatch ---

Surface = Union[FieldSurface, RasterSurface]

FIELD_RENDERERS: Dict[WidgetKind, Callable[..., FieldSurface]] = {
    WidgetKind.ICON_DETAIL: render_icon_detail,
    WidgetKind.TEXT_ONLY: render_text_only,
    WidgetKind.DETAILS_TABLE: render_details_table,
}


def render(
    kind: WidgetKind,
    latest: Optional[Snapshot],
    series: Sequence[Snapshot] = (),
    options: Optional[Dict[str, Any]] = None,
) -> Surface:
    """
    Render a surface for a widget kind.

    Raises:
        UnsupportedKindError: If no renderer exists for kind
    """
    if kind == WidgetKind.GRAPH:
        return render_graph(series, options)

    renderer = FIELD_RENDERERS.get(kind) if isinstance(kind, WidgetKind) else None
    if renderer is None:
        raise UnsupportedKindError(kind)
    return renderer(latest, options)


def render_with_fallback(
    kind: Union[WidgetKind, str],
    latest: Optional[Snapshot],
    series: Sequence[Snapshot] = (),
    options: Optional[Dict[str, Any]] = None,
) -> Surface:
    """Render a surface, using the details table for unknown kinds."""
    try:
        return render(kind, latest, series, options)
    except UnsupportedKindError as e:
        logger.warning(f"{e}, falling back to {WidgetKind.DETAILS_TABLE.value}")
        return render_details_table(latest, options)


def no_data_surface(kind: Union[WidgetKind, str], options: Optional[Dict[str, Any]] = None) -> Surface:
    """No-data surface for a kind, shown when an instance fails to render."""
    if kind == WidgetKind.GRAPH:
        return render_empty_graph(options)
    if isinstance(kind, WidgetKind) and kind in FIELD_RENDERERS:
        return FIELD_RENDERERS[kind](None, options)
    return render_details_table(None, options)
