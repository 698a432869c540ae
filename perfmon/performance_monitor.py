"""
Performance Monitor
Central orchestrator: periodic collection, bounded history, alert evaluation
and subscriber notification for real-time interactive applications
"""

import asyncio
import itertools
import logging
import statistics
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .alerting_system import (
    DEFAULT_ALERT_RULES, AlertRule, AlertRuleEngine, AlertSeverity, PerformanceAlert
)
from .audio_collector import AudioCollector
from .collector_base import MetricCollector
from .config_manager import PerformanceMonitorConfig
from .error_handling import (
    CollectorError, CollectorTimeoutError, ErrorCategory, SinkError, safe_await, safe_call,
    tick_id_var
)
from .interfaces import AudioContextLike, DeviceEnvironment, RendererStatsSource, StoreSink
from .memory_collector import MemoryCollector
from .mobile_collector import MobileCollector
from .performance_types import PerformanceHistory, PerformanceSnapshot, SnapshotFragment
from .rendering_collector import RenderingCollector
from .scheduler import AsyncioTicker, Clock, SystemClock, Ticker
from .structured_logging import log_performance_event
from .ux_collector import UXCollector

MetricsCallback = Callable[[PerformanceSnapshot, List[PerformanceAlert]], None]


class MonitorState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


class PerformanceMonitor:
    """
    Periodically samples every registered collector into a snapshot.

    Each tick fans out to the enabled collectors concurrently, merges their
    fragments into a default snapshot, appends it to the history, evaluates
    alert rules and then notifies subscribers. A failing or slow collector
    only loses its own slice of that tick.
    """

    def __init__(self, config: Optional[PerformanceMonitorConfig] = None,
                 clock: Optional[Clock] = None,
                 ticker: Optional[Ticker] = None,
                 logger: Optional[logging.Logger] = None):
        self.config = config or PerformanceMonitorConfig()
        self.clock = clock or SystemClock()
        self.ticker = ticker
        self.logger = logger or logging.getLogger(__name__)

        self.history = PerformanceHistory(
            max_length=self.config.history_length,
            time_range=self.config.get_time_range()
        )

        rules = list(DEFAULT_ALERT_RULES) if self.config.include_default_alert_rules else []
        rules.extend(AlertRule.from_dict(data) for data in self.config.alert_rules)
        self.alert_engine = AlertRuleEngine(rules, clock=self.clock, logger=self.logger)

        self.collectors: Dict[str, MetricCollector] = {}
        self.subscribers: Dict[int, MetricsCallback] = {}
        self._subscriber_ids = itertools.count(1)

        self.state = MonitorState.STOPPED
        self.current_snapshot: Optional[PerformanceSnapshot] = None
        self._last_timestamp: Optional[float] = None
        self._run_generation = 0
        self._tick_count = 0

    # Lifecycle

    async def start(self) -> None:
        """Initialize collectors, start ticking and collect once immediately"""
        if self.state != MonitorState.STOPPED:
            self.logger.warning("⚠️ Performance monitoring is already running")
            return

        self.logger.info("🚀 Starting performance monitoring system...")
        self.state = MonitorState.STARTING
        self._run_generation += 1
        generation = self._run_generation

        for name, collector in list(self.collectors.items()):
            ok, _ = await safe_await(f"initialize collector {name}", collector.initialize,
                                     logger=self.logger, category=ErrorCategory.INITIALIZATION)
            if ok:
                self.logger.info(f"✅ Initialized collector: {name}")

        if self.state != MonitorState.STARTING or generation != self._run_generation:
            # stop() was called while collectors were initializing
            return

        if self.ticker is None:
            self.ticker = AsyncioTicker(self.config.update_interval, logger=self.logger)

        self.state = MonitorState.RUNNING
        self.ticker.start(self._on_tick)

        await self.collect_metrics()
        self.logger.info("✅ Performance monitoring started successfully")

    def stop(self) -> None:
        """Stop ticking and clean up collectors, the last snapshot stays readable"""
        if self.state == MonitorState.STOPPED:
            return

        self.logger.info("🛑 Stopping performance monitoring system...")
        if self.ticker is not None:
            self.ticker.cancel()

        for name, collector in list(self.collectors.items()):
            safe_call(f"cleanup collector {name}", collector.cleanup, logger=self.logger,
                      category=ErrorCategory.CLEANUP)

        self.state = MonitorState.STOPPED
        self.logger.info("✅ Performance monitoring stopped")

    def destroy(self) -> None:
        """Stop and drop every collector, subscriber, rule and alert"""
        self.stop()
        self.collectors.clear()
        self.subscribers.clear()
        self.alert_engine.rules.clear()
        self.alert_engine.alerts.clear()
        self.history.clear()
        self.current_snapshot = None

        global _default_monitor
        if _default_monitor is self:
            _default_monitor = None

    def is_running(self) -> bool:
        return self.state == MonitorState.RUNNING

    def get_state(self) -> MonitorState:
        return self.state

    # Collection

    async def _on_tick(self) -> None:
        await self.collect_metrics()

    async def collect_metrics(self) -> Optional[PerformanceSnapshot]:
        """
        Run one collection tick.

        Returns:
            The committed snapshot, or None when not running or when the
            monitor was stopped while collectors were still working
        """
        if self.state != MonitorState.RUNNING:
            return None

        generation = self._run_generation
        self._tick_count += 1
        token = tick_id_var.set(f"tick-{self._tick_count}")
        try:
            enabled = [c for c in self.collectors.values() if c.enabled]
            fragments = await asyncio.gather(*(self._collect_from(c) for c in enabled))

            if self.state != MonitorState.RUNNING or generation != self._run_generation:
                self.logger.debug("Discarding tick that finished after stop")
                return None

            snapshot = PerformanceSnapshot(timestamp=self._next_timestamp())
            for fragment in fragments:
                if fragment is not None:
                    snapshot = snapshot.merged(fragment)

            self.current_snapshot = snapshot
            self.history.append(snapshot)

            self.alert_engine.evaluate(snapshot, self.history.entries)
            active_alerts = self.get_active_alerts()
            self._notify_subscribers(snapshot, active_alerts)

            log_performance_event(
                self.logger, 'tick_completed', f"Tick {self._tick_count} collected",
                level=logging.DEBUG, collectors=len(enabled), active_alerts=len(active_alerts)
            )
            return snapshot
        finally:
            tick_id_var.reset(token)

    def _next_timestamp(self) -> float:
        # Never step backwards even if the clock does
        now = self.clock.now_ms()
        if self._last_timestamp is not None and now < self._last_timestamp:
            now = self._last_timestamp
        self._last_timestamp = now
        return now

    async def _collect_from(self, collector: MetricCollector) -> Optional[SnapshotFragment]:
        timeout_ms = self.config.collector_timeout
        try:
            fragment = await asyncio.wait_for(collector.collect(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            self._report_collector_failure(CollectorTimeoutError(collector.name, timeout_ms))
            return None
        except CollectorError as e:
            self._report_collector_failure(e)
            return None
        except Exception as e:
            self._report_collector_failure(CollectorError(collector.name, str(e), e))
            return None

        if not isinstance(fragment, SnapshotFragment):
            self.logger.warning(f"⚠️ Collector {collector.name} returned {type(fragment).__name__}, ignoring")
            return None
        return fragment

    def _report_collector_failure(self, error: CollectorError) -> None:
        log_performance_event(
            self.logger, 'collector_failed', f"❌ {error}",
            level=logging.ERROR, collector=error.collector_name, error=error.to_dict()
        )

    def _notify_subscribers(self, snapshot: PerformanceSnapshot, alerts: List[PerformanceAlert]) -> None:
        for callback in list(self.subscribers.values()):
            safe_call("notify subscriber", callback, snapshot, list(alerts), logger=self.logger,
                      category=ErrorCategory.SUBSCRIBER)

    # Queries

    def get_metrics(self) -> Optional[PerformanceSnapshot]:
        return self.current_snapshot

    def get_history(self, duration_ms: Optional[float] = None) -> PerformanceHistory:
        """Copy of the history, optionally only the trailing duration_ms"""
        if not duration_ms:
            return self.history.window()
        return self.history.window(duration_ms, now=self.clock.now_ms())

    def subscribe(self, callback: MetricsCallback) -> Callable[[], None]:
        """Register callback(snapshot, active_alerts), returns an unsubscribe function"""
        subscriber_id = next(self._subscriber_ids)
        self.subscribers[subscriber_id] = callback

        def unsubscribe() -> None:
            self.subscribers.pop(subscriber_id, None)

        return unsubscribe

    # Alerts

    def add_alert(self, rule: AlertRule) -> None:
        self.alert_engine.add_rule(rule)

    def remove_alert(self, rule_id: str) -> bool:
        return self.alert_engine.remove_rule(rule_id)

    def get_alert_rules(self) -> List[AlertRule]:
        return self.alert_engine.get_rules()

    def get_active_alerts(self) -> List[PerformanceAlert]:
        return self.alert_engine.get_active_alerts()

    def get_all_alerts(self) -> List[PerformanceAlert]:
        return self.alert_engine.get_all_alerts()

    def acknowledge_alert(self, alert_id: str) -> bool:
        return self.alert_engine.acknowledge(alert_id)

    def resolve_alert(self, alert_id: str) -> bool:
        return self.alert_engine.resolve(alert_id, self.clock.now_ms())

    # Collectors

    def add_collector(self, collector: MetricCollector) -> None:
        """
        Register a collector, replacing any with the same name.

        Collectors added while running are not initialized by the monitor.
        """
        self.collectors[collector.name] = collector
        self.logger.info(f"➕ Added performance collector: {collector.name}")

    def remove_collector(self, name: str) -> bool:
        collector = self.collectors.pop(name, None)
        if collector is None:
            return False
        safe_call(f"cleanup collector {name}", collector.cleanup, logger=self.logger,
                  category=ErrorCategory.CLEANUP)
        self.logger.info(f"➖ Removed performance collector: {name}")
        return True

    def get_collector(self, name: str) -> Optional[MetricCollector]:
        return self.collectors.get(name)

    # Reporting

    def get_performance_summary(self) -> Dict[str, Any]:
        """Aggregates over the retained history"""
        entries = self.history.entries
        if not entries:
            return {
                "avg_fps": 0.0,
                "min_fps": 0.0,
                "max_fps": 0.0,
                "avg_memory": 0.0,
                "avg_latency": 0.0,
                "alert_count": 0,
                "samples": 0
            }

        fps_values = [e.rendering.fps for e in entries if e.rendering.fps > 0]
        memory_values = [e.memory.heap.used for e in entries if e.memory.heap.used > 0]
        latency_values = [e.audio.latency for e in entries if e.audio.latency > 0]

        avg_fps = statistics.fmean(fps_values) if fps_values else 0.0
        avg_memory = statistics.fmean(memory_values) if memory_values else 0.0
        avg_latency = statistics.fmean(latency_values) if latency_values else 0.0
        thresholds = self.config.thresholds

        return {
            "avg_fps": avg_fps,
            "min_fps": min(fps_values) if fps_values else 0.0,
            "max_fps": max(fps_values) if fps_values else 0.0,
            "avg_memory": avg_memory,
            "avg_latency": avg_latency,
            "alert_count": len(self.get_active_alerts()),
            "samples": len(entries),
            "within_targets": {
                "fps": not fps_values or avg_fps >= thresholds.min_fps,
                "memory": avg_memory <= thresholds.max_memory_mb * 1024 * 1024,
                "audio_latency": avg_latency <= thresholds.max_audio_latency_ms
            }
        }

    def export_data(self) -> Dict[str, Any]:
        """Plain-data export of history, alerts, rules and summary"""
        return {
            "history": [entry.to_dict() for entry in self.history],
            "alerts": [alert.to_dict() for alert in self.get_all_alerts()],
            "rules": [rule.to_dict() for rule in self.get_alert_rules()],
            "summary": self.get_performance_summary()
        }

    def integrate_with_store(self, store: Optional[StoreSink]) -> Optional[Callable[[], None]]:
        """
        Mirror every tick into an application store.

        Pushes performanceMetrics and performanceAlerts, plus
        showPerformanceDashboard when an unacknowledged critical alert is active.
        """
        if store is None:
            self.logger.warning("⚠️ Store is not available for integration")
            return None

        def sync_store(snapshot: PerformanceSnapshot, alerts: List[PerformanceAlert]) -> None:
            set_state = getattr(store, 'set_state', None)
            if set_state is None:
                return

            update: Dict[str, Any] = {
                "performanceMetrics": snapshot,
                "performanceAlerts": alerts
            }
            if any(a.severity == AlertSeverity.CRITICAL and not a.acknowledged for a in alerts):
                update["showPerformanceDashboard"] = True

            try:
                set_state(update)
            except Exception as e:
                error = SinkError("store", f"Failed to sync with store: {e}", e)
                self.logger.error(f"❌ {error}", extra={"structured_data": error.to_dict()})

        unsubscribe = self.subscribe(sync_store)
        self.logger.info("🔗 Performance monitor integrated with store")
        return unsubscribe


def register_default_collectors(
    monitor: PerformanceMonitor,
    renderer_info: Optional[RendererStatsSource] = None,
    audio_context: Optional[AudioContextLike] = None,
    environment: Optional[DeviceEnvironment] = None
) -> None:
    """Add the built-in collectors enabled in the monitor's configuration"""
    collectors_config = monitor.config.collectors
    if collectors_config.rendering:
        monitor.add_collector(RenderingCollector(renderer_info, clock=monitor.clock,
                                                 fps_cap=collectors_config.fps_cap,
                                                 logger=monitor.logger))
    if collectors_config.memory:
        monitor.add_collector(MemoryCollector(renderer_info, logger=monitor.logger))
    if collectors_config.audio:
        monitor.add_collector(AudioCollector(audio_context, logger=monitor.logger))
    if collectors_config.mobile:
        monitor.add_collector(MobileCollector(environment,
                                              provider_timeout=collectors_config.battery_timeout,
                                              clock=monitor.clock, logger=monitor.logger))
    if collectors_config.ux:
        monitor.add_collector(UXCollector(logger=monitor.logger))


# Default instance, optional convenience for hosts with a single monitor
_default_monitor: Optional[PerformanceMonitor] = None


def create_performance_monitor(
    config: Optional[PerformanceMonitorConfig] = None,
    clock: Optional[Clock] = None,
    ticker: Optional[Ticker] = None,
    renderer_info: Optional[RendererStatsSource] = None,
    audio_context: Optional[AudioContextLike] = None,
    environment: Optional[DeviceEnvironment] = None,
    with_default_collectors: bool = True,
    logger: Optional[logging.Logger] = None
) -> PerformanceMonitor:
    """Create performance monitor with standard configuration"""
    monitor = PerformanceMonitor(config=config, clock=clock, ticker=ticker, logger=logger)
    if with_default_collectors:
        register_default_collectors(monitor, renderer_info, audio_context, environment)
    return monitor


def get_performance_monitor() -> PerformanceMonitor:
    """Get the default monitor, creating it on first use"""
    global _default_monitor
    if _default_monitor is None:
        _default_monitor = create_performance_monitor()
    return _default_monitor


def set_performance_monitor(monitor: Optional[PerformanceMonitor]) -> None:
    """Replace (or clear with None) the default monitor"""
    global _default_monitor
    _default_monitor = monitor
