"""
End-to-end behaviour of the monitor and quality controller together
"""

import pytest

from perfmon.adaptive_quality import AdaptiveQualityManager
from perfmon.alerting_system import AlertRule, AlertSeverity
from perfmon.config_manager import PerformanceMonitorConfig
from perfmon.performance_monitor import PerformanceMonitor
from perfmon.performance_types import PerformanceSnapshot, RenderingMetrics, SnapshotFragment
from perfmon.quality_profiles import profile_level

from fakes import MB, FailingCollector, StaticCollector, make_snapshot


class TestQualityScenarios:

    def test_healthy_high_profile_is_not_downgraded(self, renderer, store, clock,
                                                    desktop_environment, high_end_capabilities, logger):
        manager = AdaptiveQualityManager(renderer, store=store, capabilities=high_end_capabilities,
                                         environment=desktop_environment, clock=clock, logger=logger)
        assert manager.get_current_profile().key == "high"

        for _ in range(10):
            manager.process_metrics(make_snapshot(fps=60, heap_used=200 * MB, heap_limit=1000 * MB,
                                                  latency=20))
            clock.advance(1000)

        assert manager.get_current_profile().key == "high"
        assert manager.get_adaptation_history() == []

    def test_critical_load_drops_two_levels(self, renderer, store, clock,
                                            desktop_environment, mid_range_capabilities, logger):
        manager = AdaptiveQualityManager(renderer, store=store, capabilities=mid_range_capabilities,
                                         environment=desktop_environment, clock=clock, logger=logger)
        start_level = manager.get_current_level()

        for _ in range(10):
            manager.process_metrics(make_snapshot(fps=15, heap_used=950 * MB, heap_limit=1000 * MB))

        assert manager.get_current_level() == max(0, start_level - 2)
        history = manager.get_adaptation_history()
        assert len(history) == 1
        assert history[0].reason in ("critical_fps_drop", "critical_memory_pressure")
        assert profile_level(manager.get_current_profile()) == 0


class TestMonitorScenarios:

    @pytest.mark.asyncio
    async def test_sustained_low_fps_alerts_once_then_resolves(self, clock, ticker, logger):
        fps = {"value": 20.0}
        monitor = PerformanceMonitor(PerformanceMonitorConfig(), clock=clock, ticker=ticker, logger=logger)
        monitor.add_collector(StaticCollector(
            "rendering", lambda: SnapshotFragment(rendering=RenderingMetrics(fps=fps["value"]))
        ))
        monitor.add_alert(AlertRule(id="fps-below-30", name="FPS below 30", metric="rendering.fps",
                                    threshold=30, operator="lt", severity="warning", duration=5000))

        # First tick happens on start, five more one second apart
        await monitor.start()
        for _ in range(5):
            clock.advance(1000)
            await ticker.fire()

        alerts = monitor.get_all_alerts()
        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.rule_id == "fps-below-30"
        assert alert.severity == AlertSeverity.WARNING
        assert not alert.resolved

        fps["value"] = 60.0
        clock.advance(1000)
        await ticker.fire()

        assert alert.resolved
        assert monitor.get_active_alerts() == []
        assert len(monitor.get_all_alerts()) == 1

    @pytest.mark.asyncio
    async def test_always_failing_collector_still_yields_snapshot(self, clock, ticker, logger):
        monitor = PerformanceMonitor(clock=clock, ticker=ticker, logger=logger)
        monitor.add_collector(FailingCollector())

        await monitor.start()
        snapshot = monitor.get_metrics()

        assert isinstance(snapshot, PerformanceSnapshot)
        assert snapshot.rendering.fps == 0
        assert snapshot.timestamp == clock.now_ms()
        monitor.stop()
