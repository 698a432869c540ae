"""
Threshold Alerting System

Evaluates alert rules against performance snapshots:
- Dotted metric paths resolved against the snapshot tree (never raises)
- Debounced triggering, a violation must hold continuously for the rule duration
- Automatic resolution once the condition clears
- Bounded alert log with acknowledgement and manual resolution
"""

import logging
import math
import numbers
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .performance_types import PerformanceSnapshot
from .scheduler import Clock, SystemClock
from .structured_logging import log_performance_event

MAX_PATH_DEPTH = 8
MAX_ALERT_LOG = 1000

MB = 1024 * 1024


class AlertSeverity(Enum):
    """Alert severity levels"""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertOperator(Enum):
    """Comparison applied as `value <op> threshold`"""
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    EQ = "eq"

    @classmethod
    def parse(cls, value: Any) -> 'AlertOperator':
        if isinstance(value, cls):
            return value
        aliases = {'>': 'gt', '>=': 'gte', '<': 'lt', '<=': 'lte', '=': 'eq', '==': 'eq'}
        text = str(value).strip().lower()
        return cls(aliases.get(text, text))

    def compare(self, value: float, threshold: float) -> bool:
        if self is AlertOperator.GT:
            return value > threshold
        elif self is AlertOperator.GTE:
            return value >= threshold
        elif self is AlertOperator.LT:
            return value < threshold
        elif self is AlertOperator.LTE:
            return value <= threshold
        return value == threshold


class AlertType(Enum):
    FPS_DROP = "fps_drop"
    MEMORY_LEAK = "memory_leak"
    AUDIO_GLITCH = "audio_glitch"
    BATTERY_LOW = "battery_low"
    LATENCY_HIGH = "latency_high"

    @classmethod
    def for_metric(cls, metric_path: str) -> 'AlertType':
        """Classify an alert from the metric path it watches"""
        if 'fps' in metric_path:
            return cls.FPS_DROP
        if 'memory' in metric_path:
            return cls.MEMORY_LEAK
        if 'audio' in metric_path:
            return cls.AUDIO_GLITCH
        if 'battery' in metric_path:
            return cls.BATTERY_LOW
        if 'latency' in metric_path:
            return cls.LATENCY_HIGH
        return cls.FPS_DROP


@dataclass(frozen=True)
class AlertRule:
    """Threshold rule over one snapshot metric"""
    id: str
    name: str
    metric: str
    threshold: float
    operator: AlertOperator = AlertOperator.GT
    severity: AlertSeverity = AlertSeverity.WARNING
    duration: float = 0.0  # ms the violation must persist before alerting
    enabled: bool = True
    description: str = ""

    def __post_init__(self):
        if not self.id:
            raise ValueError("Alert rule id must not be empty")
        if not self.metric:
            raise ValueError(f"Alert rule '{self.id}' has no metric path")
        if self.duration < 0:
            raise ValueError(f"Alert rule '{self.id}' has negative duration")
        object.__setattr__(self, 'operator', AlertOperator.parse(self.operator))
        object.__setattr__(self, 'severity', AlertSeverity(self.severity)
                           if not isinstance(self.severity, AlertSeverity) else self.severity)

    def is_violated(self, value: float) -> bool:
        return self.operator.compare(value, self.threshold)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'AlertRule':
        return cls(
            id=data['id'],
            name=data.get('name', data['id']),
            metric=data['metric'],
            threshold=float(data['threshold']),
            operator=data.get('operator', 'gt'),
            severity=data.get('severity', 'warning'),
            duration=float(data.get('duration', 0)),
            enabled=bool(data.get('enabled', True)),
            description=data.get('description', "")
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "metric": self.metric,
            "threshold": self.threshold,
            "operator": self.operator.value,
            "severity": self.severity.value,
            "duration": self.duration,
            "enabled": self.enabled,
            "description": self.description
        }


@dataclass
class PerformanceAlert:
    """Alert raised by a rule, mutable for acknowledgement and resolution"""
    id: str
    rule_id: str
    type: AlertType
    severity: AlertSeverity
    message: str
    timestamp: float
    acknowledged: bool = False
    resolved: bool = False
    resolved_at: Optional[float] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "acknowledged": self.acknowledged,
            "resolved": self.resolved,
            "resolved_at": self.resolved_at,
            "data": dict(self.data)
        }


DEFAULT_ALERT_RULES: List[AlertRule] = [
    AlertRule(
        id='fps-critical',
        name='Critical FPS Drop',
        metric='rendering.fps',
        threshold=20,
        operator=AlertOperator.LT,
        severity=AlertSeverity.CRITICAL,
        duration=5000,
        description='FPS dropped below 20 for 5 seconds'
    ),
    AlertRule(
        id='fps-warning',
        name='Low FPS Warning',
        metric='rendering.fps',
        threshold=30,
        operator=AlertOperator.LT,
        severity=AlertSeverity.WARNING,
        duration=10000,
        description='FPS dropped below 30 for 10 seconds'
    ),
    AlertRule(
        id='memory-critical',
        name='High Memory Usage',
        metric='memory.heap.used',
        threshold=500 * MB,
        operator=AlertOperator.GT,
        severity=AlertSeverity.CRITICAL,
        duration=30000,
        description='Heap usage exceeded 500MB for 30 seconds'
    ),
    AlertRule(
        id='audio-latency-critical',
        name='High Audio Latency',
        metric='audio.latency',
        threshold=200,
        operator=AlertOperator.GT,
        severity=AlertSeverity.CRITICAL,
        duration=15000,
        description='Audio latency exceeded 200ms for 15 seconds'
    ),
    AlertRule(
        id='battery-low',
        name='Low Battery',
        metric='mobile.battery.level',
        threshold=20,
        operator=AlertOperator.LT,
        severity=AlertSeverity.WARNING,
        duration=5000,
        description='Battery level below 20%'
    ),
]


def resolve_metric_path(root: Any, path: str) -> Optional[float]:
    """
    Resolve a dotted path such as ``rendering.fps`` against a snapshot.

    Only dataclass fields and mapping keys are followed; private names,
    paths deeper than MAX_PATH_DEPTH and non-numeric leaves yield None.
    """
    if not path or not isinstance(path, str):
        return None
    parts = path.split('.')
    if len(parts) > MAX_PATH_DEPTH:
        return None

    value = root
    for key in parts:
        if not key or key.startswith('_'):
            return None
        if value is None:
            return None
        if hasattr(value, '__dataclass_fields__'):
            if key not in value.__dataclass_fields__:
                return None
            value = getattr(value, key)
        elif isinstance(value, Mapping):
            if key not in value:
                return None
            value = value[key]
        else:
            return None

    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return None
    value = float(value)
    if math.isnan(value):
        return None
    return value


class AlertRuleEngine:
    """Owns alert rules and the alert log, evaluated once per monitor tick"""

    def __init__(self, rules: Optional[Iterable[AlertRule]] = None,
                 clock: Optional[Clock] = None,
                 max_alerts: int = MAX_ALERT_LOG,
                 logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock or SystemClock()
        self.max_alerts = max_alerts
        self.rules: Dict[str, AlertRule] = {}
        self.alerts: Dict[str, PerformanceAlert] = {}
        self._alert_counter = 0

        for rule in rules or []:
            self.rules[rule.id] = rule

    # Rule management

    def add_rule(self, rule: AlertRule) -> None:
        self.rules[rule.id] = rule
        self.logger.info(f"➕ Added alert rule: {rule.name}")

    def remove_rule(self, rule_id: str) -> bool:
        removed = self.rules.pop(rule_id, None)
        if removed:
            self.logger.info(f"➖ Removed alert rule: {rule_id}")
        return removed is not None

    def get_rules(self) -> List[AlertRule]:
        return list(self.rules.values())

    def get_rule(self, rule_id: str) -> Optional[AlertRule]:
        return self.rules.get(rule_id)

    # Evaluation

    def evaluate(self, snapshot: PerformanceSnapshot,
                 history: Sequence[PerformanceSnapshot] = ()) -> List[PerformanceAlert]:
        """
        Evaluate every enabled rule against the snapshot.

        history is oldest-first and normally already ends with snapshot.

        Returns:
            Alerts created or resolved by this evaluation
        """
        entries = list(history)
        if not entries or entries[-1] is not snapshot:
            entries.append(snapshot)

        changed = []
        for rule in list(self.rules.values()):
            if not rule.enabled:
                continue
            value = resolve_metric_path(snapshot, rule.metric)
            if value is None:
                continue

            existing = self.find_active_alert(rule.id)
            if rule.is_violated(value):
                if existing is None and self._violation_held(rule, entries):
                    changed.append(self._create_alert(rule, value, snapshot.timestamp))
            elif existing is not None:
                self.resolve(existing.id, snapshot.timestamp)
                changed.append(existing)
        return changed

    def _violation_held(self, rule: AlertRule, entries: List[PerformanceSnapshot]) -> bool:
        # Contiguous violating run, walking back from the newest entry
        newest = None
        oldest = None
        for entry in reversed(entries):
            value = resolve_metric_path(entry, rule.metric)
            if value is None or not rule.is_violated(value):
                break
            if newest is None:
                newest = entry.timestamp
            oldest = entry.timestamp

        if newest is None:
            return False
        return newest - oldest >= rule.duration

    def _create_alert(self, rule: AlertRule, value: float, timestamp: float) -> PerformanceAlert:
        self._alert_counter += 1
        alert = PerformanceAlert(
            id=f"{rule.id}-{int(timestamp)}-{self._alert_counter}",
            rule_id=rule.id,
            type=AlertType.for_metric(rule.metric),
            severity=rule.severity,
            message=f"{rule.name}: {rule.metric} = {value:g} (threshold: {rule.threshold:g})",
            timestamp=timestamp,
            data={
                "metric": rule.metric,
                "value": value,
                "threshold": rule.threshold,
                "operator": rule.operator.value
            }
        )
        self.alerts[alert.id] = alert
        self._prune_alert_log()

        log_performance_event(
            self.logger, 'alert_triggered', f"🚨 {rule.severity.value.upper()} Alert: {alert.message}",
            level=logging.WARNING, rule_id=rule.id, alert_id=alert.id, value=value
        )
        return alert

    def _prune_alert_log(self) -> None:
        while len(self.alerts) > self.max_alerts:
            victim = next((a.id for a in self.alerts.values() if a.resolved), None)
            if victim is None:
                victim = next(iter(self.alerts))
            del self.alerts[victim]

    # Alert management

    def find_active_alert(self, rule_id: str) -> Optional[PerformanceAlert]:
        for alert in self.alerts.values():
            if alert.rule_id == rule_id and not alert.resolved:
                return alert
        return None

    def acknowledge(self, alert_id: str) -> bool:
        alert = self.alerts.get(alert_id)
        if alert is None or alert.resolved:
            return False
        alert.acknowledged = True
        self.logger.info(f"👍 Alert acknowledged: {alert_id}")
        return True

    def resolve(self, alert_id: str, timestamp: Optional[float] = None) -> bool:
        alert = self.alerts.get(alert_id)
        if alert is None or alert.resolved:
            return False
        alert.resolved = True
        alert.resolved_at = timestamp if timestamp is not None else self.clock.now_ms()
        log_performance_event(
            self.logger, 'alert_resolved', f"✅ Alert resolved: {alert_id}",
            rule_id=alert.rule_id, alert_id=alert_id
        )
        return True

    def get_active_alerts(self) -> List[PerformanceAlert]:
        return [alert for alert in self.alerts.values() if not alert.resolved]

    def get_all_alerts(self) -> List[PerformanceAlert]:
        return list(self.alerts.values())

    def get_alert_stats(self) -> Dict[str, Any]:
        """Get alert statistics"""
        all_alerts = self.get_all_alerts()
        return {
            "active_alert_count": len(self.get_active_alerts()),
            "total_alerts": len(all_alerts),
            "alert_severities": {
                severity.value: sum(1 for a in all_alerts if a.severity == severity)
                for severity in AlertSeverity
            }
        }
