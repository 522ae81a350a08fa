"""
Update pipeline coordinator.

Each trigger runs the pipeline Capturing -> Persisting -> Pruning ->
Rendering under one lock, so at most one run touches the store at a time.
Widget configuration triggers run a render-only pass for a single instance.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from battery_widget.errors import ReadError
from battery_widget.models import (
    DEFAULT_WIDGET_KIND,
    RawReading,
    Snapshot,
    WidgetInstance,
    WidgetKind,
)
from battery_widget.reader import SnapshotReader, current_millis
from battery_widget.renderers import graph_options, no_data_surface, render_with_fallback
from battery_widget.retention import RetentionWindow, prune


class PipelineStage(Enum):
    """Stages of one pipeline run."""
    IDLE = "idle"
    CAPTURING = "capturing"
    PERSISTING = "persisting"
    PRUNING = "pruning"
    RENDERING = "rendering"


class Trigger(Enum):
    """External events that start a pipeline run."""
    POWER_EVENT = "power_event"
    PERIODIC_TICK = "periodic_tick"
    BOOT_COMPLETED = "boot_completed"
    WIDGET_ADDED = "widget_added"
    WIDGET_REMOVED = "widget_removed"
    WIDGET_KIND_CHANGED = "widget_kind_changed"


@dataclass
class RunResult:
    """Outcome of one pipeline run."""

    trigger: Trigger
    ok: bool = False
    stage: PipelineStage = PipelineStage.IDLE  # Last stage entered
    error: Optional[Exception] = None
    snapshot: Optional[Snapshot] = None
    pruned: int = 0
    published: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class UpdateCoordinator:
    """
    Orchestrates capture, storage, retention and rendering.

    The store, registry and publisher are owned by the caller and passed in.
    Rendering fans out over a worker pool; all workers finish before a run
    returns to idle.
    """

    def __init__(
        self,
        store,
        registry,
        publisher,
        config,
        source=None,
        reader: Optional[SnapshotReader] = None,
        clock: Callable[[], int] = current_millis,
        stage_listener: Optional[Callable[[Trigger, PipelineStage], None]] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            store: TimeSeriesStore instance
            registry: WidgetRegistry instance
            publisher: Publisher receiving rendered surfaces
            config: ConfigManager instance
            source: Object with read_raw() used when a trigger carries no reading
            reader: SnapshotReader, created from clock if omitted
            clock: Returns the current time in milliseconds
            stage_listener: Called with (trigger, stage) on every transition
        """
        self.store = store
        self.registry = registry
        self.publisher = publisher
        self.config = config
        self.source = source
        self.clock = clock
        self.reader = reader or SnapshotReader(clock)
        self.stage_listener = stage_listener
        self.logger = logging.getLogger("BatteryWidget.Coordinator")

        self._run_lock = threading.Lock()
        self._stage = PipelineStage.IDLE
        self._render_pool = ThreadPoolExecutor(
            max_workers=config.get("render_workers", 4), thread_name_prefix="render"
        )
        self._run_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pipeline")

        self._handlers: Dict[Trigger, Callable[..., RunResult]] = {
            Trigger.POWER_EVENT: self.on_power_event,
            Trigger.PERIODIC_TICK: self.on_periodic_tick,
            Trigger.BOOT_COMPLETED: self.on_boot_completed,
            Trigger.WIDGET_ADDED: self.on_widget_instance_added,
            Trigger.WIDGET_REMOVED: self.on_widget_instance_removed,
            Trigger.WIDGET_KIND_CHANGED: self.on_widget_kind_changed,
        }

    @property
    def stage(self) -> PipelineStage:
        return self._stage

    def _enter(self, stage: PipelineStage, result: RunResult):
        self._stage = stage
        if stage != PipelineStage.IDLE:
            result.stage = stage
        if self.stage_listener is not None:
            self.stage_listener(result.trigger, stage)

    # --- Trigger-in ---

    def on_power_event(self, raw: Optional[RawReading] = None) -> RunResult:
        """Battery state changed."""
        return self._run_full(Trigger.POWER_EVENT, raw)

    def on_periodic_tick(self, raw: Optional[RawReading] = None) -> RunResult:
        """Scheduled refresh."""
        return self._run_full(Trigger.PERIODIC_TICK, raw)

    def on_boot_completed(self, raw: Optional[RawReading] = None) -> RunResult:
        """Host finished starting up."""
        return self._run_full(Trigger.BOOT_COMPLETED, raw)

    def on_widget_instance_added(self, widget_id: str) -> RunResult:
        """Register a new instance with the default kind and render it."""
        def configure():
            if self.registry.get(widget_id) is None:
                self.registry.set_kind(widget_id, DEFAULT_WIDGET_KIND)
        return self._run_render_only(Trigger.WIDGET_ADDED, widget_id, configure)

    def on_widget_kind_changed(
        self,
        widget_id: str,
        kind: Union[WidgetKind, str],
        options: Optional[Dict[str, Any]] = None,
    ) -> RunResult:
        """Reconfigure an instance and re-render just that instance."""
        def configure():
            self.registry.set_kind(widget_id, kind, options)
        return self._run_render_only(Trigger.WIDGET_KIND_CHANGED, widget_id, configure)

    def on_widget_instance_removed(self, widget_id: str) -> RunResult:
        """Forget an instance and retract its published surface."""
        result = RunResult(Trigger.WIDGET_REMOVED)
        with self._run_lock:
            try:
                self.registry.remove(widget_id)
                self.publisher.retract(widget_id)
                result.ok = True
            except Exception as e:
                result.error = e
                self.logger.error(f"Failed to remove widget {widget_id}: {e}", exc_info=True)
        return result

    def submit(self, trigger: Trigger, *args) -> Future:
        """
        Queue a trigger to run in the background.

        The returned future can be cancelled until the run starts; once
        capturing has begun the run always completes or fails on its own.
        """
        return self._run_executor.submit(self._handlers[trigger], *args)

    def shutdown(self, wait: bool = True):
        """Stop accepting queued runs and release worker threads."""
        self._run_executor.shutdown(wait=wait)
        self._render_pool.shutdown(wait=wait)

    # --- Pipeline ---

    def _run_full(self, trigger: Trigger, raw: Optional[RawReading]) -> RunResult:
        result = RunResult(trigger)

        with self._run_lock:
            try:
                self._enter(PipelineStage.CAPTURING, result)
                result.snapshot = self._capture(raw)

                self._enter(PipelineStage.PERSISTING, result)
                self.store.append(result.snapshot)

                self._enter(PipelineStage.PRUNING, result)
                window = RetentionWindow.from_config(self.config)
                result.pruned = prune(self.store, self.clock(), window)

                self._enter(PipelineStage.RENDERING, result)
                self._render(self.registry.all_instances(), result)
                result.ok = True

            except ReadError as e:
                result.error = e
                self.logger.warning(f"{trigger.value}: skipping capture, {e}")
            except Exception as e:
                result.error = e
                self.logger.error(
                    f"{trigger.value}: run aborted during {result.stage.value}: {e}", exc_info=True
                )
            finally:
                self._enter(PipelineStage.IDLE, result)

        if result.ok:
            self.logger.info(
                f"{trigger.value}: stored {result.snapshot.level_percent}% at "
                f"{result.snapshot.captured_at_millis}, pruned {result.pruned}, "
                f"published {len(result.published)}"
            )
        return result

    def _run_render_only(self, trigger: Trigger, widget_id: str, configure: Callable[[], None]) -> RunResult:
        result = RunResult(trigger)

        with self._run_lock:
            try:
                configure()
                self._enter(PipelineStage.RENDERING, result)
                self._render([self.registry.get_or_default(widget_id)], result)
                result.ok = True
            except Exception as e:
                result.error = e
                self.logger.error(
                    f"{trigger.value}: render of {widget_id} failed: {e}", exc_info=True
                )
            finally:
                self._enter(PipelineStage.IDLE, result)

        return result

    def _capture(self, raw: Optional[RawReading]) -> Snapshot:
        if raw is None:
            if self.source is None:
                raise ReadError("no raw reading supplied and no source configured")
            raw = self.source.read_raw()
        return self.reader.read(raw)

    def _options_for(self, instance: WidgetInstance) -> Dict[str, Any]:
        if instance.kind != WidgetKind.GRAPH:
            return dict(instance.options)

        options = {
            "width": self.config.get("graph_width", 500),
            "height": self.config.get("graph_height", 300),
            "max_samples": self.config.get("graph_max_samples", 100),
        }
        options.update(instance.options)
        return options

    def _render(self, instances: Sequence[WidgetInstance], result: RunResult):
        """
        Render and publish every instance.

        All store reads happen here, before the fan-out, so every instance in
        the run renders from the same store state.
        """
        latest = self.store.latest()
        series_by_limit: Dict[int, List[Snapshot]] = {}

        jobs = []
        for instance in instances:
            options = self._options_for(instance)
            series: List[Snapshot] = []
            if instance.kind == WidgetKind.GRAPH:
                limit = graph_options(options)["max_samples"]
                if limit not in series_by_limit:
                    series_by_limit[limit] = self.store.recent(limit)
                series = series_by_limit[limit]
            jobs.append((instance, options, series))

        futures = [
            (instance.id, self._render_pool.submit(self._render_one, instance, latest, series, options))
            for instance, options, series in jobs
        ]

        for widget_id, future in futures:
            if future.result():
                result.published.append(widget_id)
            else:
                result.failed.append(widget_id)

    def _render_one(
        self,
        instance: WidgetInstance,
        latest: Optional[Snapshot],
        series: Sequence[Snapshot],
        options: Dict[str, Any],
    ) -> bool:
        """Render and publish one instance. Failures stay with that instance."""
        try:
            surface = render_with_fallback(instance.kind, latest, series, options)
            self.publisher.publish(instance.id, surface)
            return True
        except Exception as e:
            self.logger.error(f"Widget {instance.id} failed to render: {e}", exc_info=True)

        try:
            self.publisher.publish(instance.id, no_data_surface(instance.kind, options))
        except Exception as e:
            self.logger.error(f"Widget {instance.id} placeholder not published: {e}", exc_info=True)
        return False
