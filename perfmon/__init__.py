"""
perfmon - Performance Monitoring and Adaptive Quality Control

A closed-loop controller for real-time interactive applications that provides:
- Periodic sampling of rendering, memory, audio, mobile and UX metrics
- Bounded time-series history of performance snapshots
- Debounced threshold alerting with automatic resolution
- Adaptive quality profiles driven by device tier and live performance
"""

__version__ = "1.0.0"

from .performance_types import (
    AudioContextState, RenderingMetrics, HeapUsage, GPUMemoryInfo, MemoryMetrics,
    AudioMetrics, BatteryInfo, NetworkInfo, MobileMetrics, UXMetrics,
    SnapshotFragment, PerformanceSnapshot, PerformanceHistory
)
from .quality_profiles import QualityProfile, QUALITY_PROFILES, find_profile, get_profile
from .interfaces import (
    RenderInfo, RenderSink, RendererStatsSource, AudioContextLike, StoreSink,
    BatteryProvider, NetworkInfoProvider, DeviceEnvironment
)
from .scheduler import SystemClock, ManualClock, AsyncioTicker, ManualTicker
from .collector_base import MetricCollector
from .rendering_collector import RenderingCollector
from .memory_collector import MemoryCollector
from .audio_collector import AudioCollector
from .mobile_collector import MobileCollector
from .ux_collector import UXCollector
from .alerting_system import (
    AlertSeverity, AlertOperator, AlertType, AlertRule, PerformanceAlert,
    AlertRuleEngine, DEFAULT_ALERT_RULES, resolve_metric_path
)
from .performance_monitor import (
    PerformanceMonitor, MonitorState, register_default_collectors,
    create_performance_monitor, get_performance_monitor, set_performance_monitor
)
from .device_detection import (
    DeviceTier, DeviceCapabilities, DeviceConstraints, detect_device_capabilities,
    classify_device_tier, is_mobile_environment
)
from .adaptive_quality import AdaptiveQualityManager, AdaptationRecord
from .config_manager import (
    ConfigManager, PerfmonConfig, PerformanceMonitorConfig, PerformanceThresholds,
    CollectorConfig, AdaptiveQualityConfig, LoggingConfig
)
from .error_handling import (
    ErrorCategory, ErrorContext, PerformanceMonitorError, CollectorError,
    CollectorTimeoutError, SinkError, ConfigurationError
)
from .structured_logging import setup_logging, log_performance_event

__all__ = [
    'AudioContextState', 'RenderingMetrics', 'HeapUsage', 'GPUMemoryInfo', 'MemoryMetrics',
    'AudioMetrics', 'BatteryInfo', 'NetworkInfo', 'MobileMetrics', 'UXMetrics',
    'SnapshotFragment', 'PerformanceSnapshot', 'PerformanceHistory',
    'QualityProfile', 'QUALITY_PROFILES', 'find_profile', 'get_profile',
    'RenderInfo', 'RenderSink', 'RendererStatsSource', 'AudioContextLike', 'StoreSink',
    'BatteryProvider', 'NetworkInfoProvider', 'DeviceEnvironment',
    'SystemClock', 'ManualClock', 'AsyncioTicker', 'ManualTicker',
    'MetricCollector', 'RenderingCollector', 'MemoryCollector', 'AudioCollector',
    'MobileCollector', 'UXCollector',
    'AlertSeverity', 'AlertOperator', 'AlertType', 'AlertRule', 'PerformanceAlert',
    'AlertRuleEngine', 'DEFAULT_ALERT_RULES', 'resolve_metric_path',
    'PerformanceMonitor', 'MonitorState', 'register_default_collectors',
    'create_performance_monitor', 'get_performance_monitor', 'set_performance_monitor',
    'DeviceTier', 'DeviceCapabilities', 'DeviceConstraints', 'detect_device_capabilities',
    'classify_device_tier', 'is_mobile_environment',
    'AdaptiveQualityManager', 'AdaptationRecord',
    'ConfigManager', 'PerfmonConfig', 'PerformanceMonitorConfig', 'PerformanceThresholds',
    'CollectorConfig', 'AdaptiveQualityConfig', 'LoggingConfig',
    'ErrorCategory', 'ErrorContext', 'PerformanceMonitorError', 'CollectorError',
    'CollectorTimeoutError', 'SinkError', 'ConfigurationError',
    'setup_logging', 'log_performance_event',
]
