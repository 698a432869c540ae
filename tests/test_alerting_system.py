"""
Tests for the threshold alerting system
"""

import pytest

from perfmon.alerting_system import (
    DEFAULT_ALERT_RULES, AlertOperator, AlertRule, AlertRuleEngine, AlertSeverity,
    AlertType, resolve_metric_path
)
from perfmon.performance_types import PerformanceSnapshot, RenderingMetrics
from perfmon.scheduler import ManualClock

from fakes import make_snapshot


def fps_rule(duration=0.0, threshold=30, rule_id="fps-low"):
    return AlertRule(id=rule_id, name="Low FPS", metric="rendering.fps", threshold=threshold,
                     operator=AlertOperator.LT, severity=AlertSeverity.WARNING, duration=duration)


class TestMetricPathResolution:
    """Test dotted metric path lookup"""

    def test_resolves_nested_fields(self):
        snapshot = make_snapshot(fps=42, battery_level=55)
        assert resolve_metric_path(snapshot, "rendering.fps") == 42
        assert resolve_metric_path(snapshot, "mobile.battery.level") == 55
        assert resolve_metric_path(snapshot, "timestamp") == 0

    def test_missing_paths_yield_none(self):
        snapshot = make_snapshot()
        assert resolve_metric_path(snapshot, "rendering.nope") is None
        assert resolve_metric_path(snapshot, "mobile.battery.level") is None
        assert resolve_metric_path(snapshot, "") is None
        assert resolve_metric_path(snapshot, "rendering..fps") is None

    def test_non_numeric_leaves_yield_none(self):
        snapshot = make_snapshot()
        assert resolve_metric_path(snapshot, "rendering") is None
        assert resolve_metric_path(snapshot, "audio.context_state") is None
        assert resolve_metric_path(snapshot, "rendering.frame_times") is None
        assert resolve_metric_path({"flag": True}, "flag") is None
        assert resolve_metric_path({"x": float('nan')}, "x") is None

    def test_private_and_method_names_rejected(self):
        snapshot = make_snapshot()
        assert resolve_metric_path(snapshot, "__class__") is None
        assert resolve_metric_path(snapshot, "to_dict") is None
        assert resolve_metric_path(snapshot, "memory.pressure") is None

    def test_depth_limit(self):
        deep = {"a": {"b": {"c": {"d": {"e": {"f": {"g": {"h": {"i": 1}}}}}}}}}
        assert resolve_metric_path(deep, "a.b.c.d.e.f.g.h.i") is None
        assert resolve_metric_path(deep["a"], "b.c.d.e.f.g.h.i") == 1


class TestAlertRule:
    """Test rule validation and conversion"""

    def test_operator_aliases(self):
        assert AlertOperator.parse("<") == AlertOperator.LT
        assert AlertOperator.parse(">=") == AlertOperator.GTE
        assert AlertOperator.parse("EQ") == AlertOperator.EQ
        with pytest.raises(ValueError):
            AlertOperator.parse("between")

    def test_comparisons(self):
        assert AlertOperator.GT.compare(5, 4)
        assert not AlertOperator.GT.compare(4, 4)
        assert AlertOperator.GTE.compare(4, 4)
        assert AlertOperator.LT.compare(3, 4)
        assert AlertOperator.LTE.compare(4, 4)
        assert AlertOperator.EQ.compare(4, 4)

    def test_validation(self):
        with pytest.raises(ValueError):
            AlertRule(id="", name="x", metric="rendering.fps", threshold=1)
        with pytest.raises(ValueError):
            AlertRule(id="x", name="x", metric="", threshold=1)
        with pytest.raises(ValueError):
            AlertRule(id="x", name="x", metric="rendering.fps", threshold=1, duration=-1)

    def test_from_dict_round_trip(self):
        rule = AlertRule.from_dict({
            "id": "latency", "metric": "audio.latency", "threshold": 100,
            "operator": ">", "severity": "critical", "duration": 2000
        })
        assert rule.name == "latency"
        assert rule.operator == AlertOperator.GT
        assert rule.severity == AlertSeverity.CRITICAL
        assert AlertRule.from_dict(rule.to_dict()) == rule

    def test_alert_type_from_metric(self):
        assert AlertType.for_metric("rendering.fps") == AlertType.FPS_DROP
        assert AlertType.for_metric("memory.heap.used") == AlertType.MEMORY_LEAK
        assert AlertType.for_metric("audio.latency") == AlertType.AUDIO_GLITCH
        assert AlertType.for_metric("mobile.battery.level") == AlertType.BATTERY_LOW
        assert AlertType.for_metric("ux.input_latency") == AlertType.LATENCY_HIGH

    def test_default_rules(self):
        ids = [rule.id for rule in DEFAULT_ALERT_RULES]
        assert ids == ["fps-critical", "fps-warning", "memory-critical",
                       "audio-latency-critical", "battery-low"]


class TestAlertRuleEngine:
    """Test evaluation, debounce and resolution"""

    @pytest.fixture
    def engine(self, logger):
        return AlertRuleEngine(clock=ManualClock(), logger=logger)

    def test_zero_duration_fires_immediately(self, engine):
        engine.add_rule(fps_rule())
        changed = engine.evaluate(make_snapshot(timestamp=1000, fps=10))

        assert len(changed) == 1
        alert = changed[0]
        assert alert.rule_id == "fps-low"
        assert alert.type == AlertType.FPS_DROP
        assert alert.id.startswith("fps-low-1000-")
        assert alert.data["value"] == 10
        assert "rendering.fps" in alert.message

    def test_debounce_requires_sustained_violation(self, engine):
        engine.add_rule(fps_rule(duration=3000))
        history = []

        for ts in (0, 1000, 2000):
            snapshot = make_snapshot(timestamp=ts, fps=10)
            history.append(snapshot)
            assert engine.evaluate(snapshot, history) == []

        snapshot = make_snapshot(timestamp=3000, fps=10)
        history.append(snapshot)
        changed = engine.evaluate(snapshot, history)
        assert len(changed) == 1

    def test_interrupted_violation_restarts_debounce(self, engine):
        engine.add_rule(fps_rule(duration=2000))
        history = [
            make_snapshot(timestamp=0, fps=10),
            make_snapshot(timestamp=1000, fps=60),
            make_snapshot(timestamp=2000, fps=10),
            make_snapshot(timestamp=3000, fps=10),
        ]
        assert engine.evaluate(history[-1], history) == []

    def test_no_duplicate_alert_while_active(self, engine):
        engine.add_rule(fps_rule())
        engine.evaluate(make_snapshot(timestamp=0, fps=10))
        assert engine.evaluate(make_snapshot(timestamp=1000, fps=5)) == []
        assert len(engine.get_active_alerts()) == 1

    def test_auto_resolution(self, engine):
        engine.add_rule(fps_rule())
        alert = engine.evaluate(make_snapshot(timestamp=0, fps=10))[0]

        changed = engine.evaluate(make_snapshot(timestamp=1000, fps=60))

        assert changed == [alert]
        assert alert.resolved
        assert alert.resolved_at == 1000
        assert engine.get_active_alerts() == []

        # A new violation creates a fresh alert
        again = engine.evaluate(make_snapshot(timestamp=2000, fps=10))[0]
        assert again.id != alert.id

    def test_missing_metric_neither_fires_nor_resolves(self, engine):
        engine.add_rule(AlertRule(id="battery", name="Battery", metric="mobile.battery.level",
                                  threshold=20, operator="lt", duration=0))
        engine.evaluate(make_snapshot(timestamp=0, battery_level=5))
        assert len(engine.get_active_alerts()) == 1

        engine.evaluate(make_snapshot(timestamp=1000))
        assert len(engine.get_active_alerts()) == 1

    def test_disabled_rules_are_skipped(self, engine):
        engine.add_rule(AlertRule(id="off", name="Off", metric="rendering.fps", threshold=30,
                                  operator="lt", enabled=False))
        assert engine.evaluate(make_snapshot(fps=1)) == []

    def test_acknowledge_and_manual_resolve(self, engine):
        engine.add_rule(fps_rule())
        alert = engine.evaluate(make_snapshot(timestamp=0, fps=10))[0]

        assert engine.acknowledge(alert.id)
        assert alert.acknowledged
        assert not engine.acknowledge("missing")

        engine.clock.set(5000)
        assert engine.resolve(alert.id)
        assert alert.resolved_at == 5000
        assert not engine.resolve(alert.id)

    def test_resolved_alert_cannot_be_acknowledged(self, engine):
        engine.add_rule(fps_rule())
        alert = engine.evaluate(make_snapshot(timestamp=0, fps=10))[0]
        assert engine.resolve(alert.id)

        assert not engine.acknowledge(alert.id)
        assert not alert.acknowledged

    def test_rule_management(self, engine):
        engine.add_rule(fps_rule())
        engine.add_rule(fps_rule(threshold=10))
        assert len(engine.get_rules()) == 1
        assert engine.get_rule("fps-low").threshold == 10
        assert engine.remove_rule("fps-low")
        assert not engine.remove_rule("fps-low")

    def test_alert_log_is_bounded(self, logger):
        engine = AlertRuleEngine([fps_rule()], clock=ManualClock(), max_alerts=3, logger=logger)
        for i in range(5):
            engine.evaluate(make_snapshot(timestamp=i * 2000, fps=10))
            engine.evaluate(make_snapshot(timestamp=i * 2000 + 1000, fps=60))

        assert len(engine.get_all_alerts()) == 3

    def test_snapshot_appended_to_history_when_missing(self, engine):
        engine.add_rule(fps_rule(duration=1000))
        history = [make_snapshot(timestamp=0, fps=10)]
        changed = engine.evaluate(make_snapshot(timestamp=1000, fps=10), history)
        assert len(changed) == 1

    def test_alert_stats(self, engine):
        engine.add_rule(fps_rule())
        engine.evaluate(PerformanceSnapshot(timestamp=0, rendering=RenderingMetrics(fps=1)))
        stats = engine.get_alert_stats()
        assert stats["active_alert_count"] == 1
        assert stats["alert_severities"]["warning"] == 1
