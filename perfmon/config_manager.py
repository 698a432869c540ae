"""
perfmon - Configuration Management

Provides configuration management with:
- YAML-based configuration files
- .env loading and environment variable overrides
- Configuration validation
- Sensible defaults for every threshold

Usage:
    config_manager = ConfigManager("config/perfmon.yaml")
    config = config_manager.load_config()

    monitor = PerformanceMonitor(config=config.monitor)
"""

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .alerting_system import AlertRule
from .error_handling import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/perfmon.yaml"


@dataclass
class PerformanceThresholds:
    """Reference targets checked by the performance summary"""
    min_fps: float = 30.0
    max_memory_mb: float = 500.0
    max_audio_latency_ms: float = 200.0


@dataclass
class CollectorConfig:
    """Which built-in collectors to register"""
    rendering: bool = True
    memory: bool = True
    audio: bool = True
    mobile: bool = True
    ux: bool = True
    fps_cap: float = 60.0
    battery_timeout: float = 0.5  # seconds


@dataclass
class PerformanceMonitorConfig:
    update_interval: float = 1000.0          # ms
    history_length: int = 300
    time_range: Optional[float] = None       # ms, derived when None
    enable_auto_optimization: bool = True
    collector_timeout: float = 2000.0        # ms
    include_default_alert_rules: bool = True
    alert_rules: List[Dict[str, Any]] = field(default_factory=list)
    thresholds: PerformanceThresholds = field(default_factory=PerformanceThresholds)
    collectors: CollectorConfig = field(default_factory=CollectorConfig)

    def get_time_range(self) -> float:
        """History time span, history_length x update_interval unless set"""
        if self.time_range is not None:
            return self.time_range
        return self.history_length * self.update_interval


@dataclass
class AdaptiveQualityConfig:
    """Adaptation cadence and decision thresholds"""
    enabled: bool = True
    cooldown: float = 5000.0                 # ms
    window_size: int = 30
    fps_window: int = 10
    adaptation_log_size: int = 50
    critical_fps: float = 20.0
    critical_memory_pressure: float = 0.9
    critical_battery: float = 10.0
    degraded_fps_ratio: float = 0.8
    degraded_memory_pressure: float = 0.85
    max_underruns: int = 5
    battery_saving_level: float = 20.0
    improvement_fps_ratio: float = 1.1
    improvement_memory_pressure: float = 0.6
    improvement_latency_ratio: float = 0.8
    improvement_battery: float = 50.0


@dataclass
class LoggingConfig:
    level: str = "INFO"
    log_file: Optional[str] = None
    json_output: bool = False


@dataclass
class PerfmonConfig:
    """Root configuration"""
    monitor: PerformanceMonitorConfig = field(default_factory=PerformanceMonitorConfig)
    quality: AdaptiveQualityConfig = field(default_factory=AdaptiveQualityConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    name: str = "perfmon"
    version: str = "1.0.0"


def _known_fields(cls, data: Dict[str, Any], section: str) -> Dict[str, Any]:
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(f"Unknown {section} option(s): {', '.join(sorted(unknown))}")
    return dict(data)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ('true', '1', 'yes', 'on')


class ConfigManager:
    """
    Loads PerfmonConfig from YAML, .env and PERFMON_* environment variables.

    Precedence (lowest to highest): dataclass defaults, YAML file,
    environment variables.
    """

    ENV_PREFIX = "PERFMON_"

    def __init__(self, config_path: Optional[str] = None, env_file: Optional[str] = None,
                 logger: Optional[logging.Logger] = None):
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self.env_file = env_file
        self.logger = logger or logging.getLogger(__name__)
        self._config: Optional[PerfmonConfig] = None

    def _load_yaml_config(self, config_path: str) -> Dict[str, Any]:
        """Load configuration from YAML file, empty when the file is missing"""
        if not os.path.exists(config_path):
            self.logger.info(f"Configuration file {config_path} not found, using defaults")
            return {}

        try:
            with open(config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}", e) from e

        if not isinstance(config_data, dict):
            raise ConfigurationError(f"Configuration root in {config_path} must be a mapping")
        return config_data

    def _get_environment_variable_overrides(self) -> Dict[str, Any]:
        """Get configuration overrides from environment variables"""
        overrides: Dict[str, Any] = {}
        monitor: Dict[str, Any] = {}
        quality: Dict[str, Any] = {}
        logging_overrides: Dict[str, Any] = {}

        try:
            if update_interval := os.getenv('PERFMON_UPDATE_INTERVAL'):
                monitor['update_interval'] = float(update_interval)
            if history_length := os.getenv('PERFMON_HISTORY_LENGTH'):
                monitor['history_length'] = int(history_length)
            if collector_timeout := os.getenv('PERFMON_COLLECTOR_TIMEOUT'):
                monitor['collector_timeout'] = float(collector_timeout)
            if cooldown := os.getenv('PERFMON_ADAPTATION_COOLDOWN'):
                quality['cooldown'] = float(cooldown)
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric environment override: {e}", e) from e

        if auto_optimization := os.getenv('PERFMON_AUTO_OPTIMIZATION'):
            monitor['enable_auto_optimization'] = _parse_bool(auto_optimization)
            quality['enabled'] = monitor['enable_auto_optimization']
        if log_level := os.getenv('PERFMON_LOG_LEVEL'):
            logging_overrides['level'] = log_level.upper()
        if log_file := os.getenv('PERFMON_LOG_FILE'):
            logging_overrides['log_file'] = log_file

        if monitor:
            overrides['monitor'] = monitor
        if quality:
            overrides['quality'] = quality
        if logging_overrides:
            overrides['logging'] = logging_overrides
        return overrides

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _create_config_from_dict(self, config_data: Dict[str, Any]) -> PerfmonConfig:
        """Create PerfmonConfig from dictionary data"""
        try:
            monitor_data = _known_fields(PerformanceMonitorConfig,
                                         dict(config_data.get('monitor') or {}), 'monitor')
            thresholds = PerformanceThresholds(**_known_fields(
                PerformanceThresholds, monitor_data.pop('thresholds', None) or {}, 'thresholds'))
            collectors = CollectorConfig(**_known_fields(
                CollectorConfig, monitor_data.pop('collectors', None) or {}, 'collectors'))
            monitor = PerformanceMonitorConfig(thresholds=thresholds, collectors=collectors, **monitor_data)

            quality = AdaptiveQualityConfig(**_known_fields(
                AdaptiveQualityConfig, config_data.get('quality') or {}, 'quality'))
            logging_config = LoggingConfig(**_known_fields(
                LoggingConfig, config_data.get('logging') or {}, 'logging'))
        except TypeError as e:
            raise ConfigurationError(f"Failed to create configuration: {e}", e) from e

        config = PerfmonConfig(monitor=monitor, quality=quality, logging=logging_config)
        if 'name' in config_data:
            config.name = config_data['name']
        if 'version' in config_data:
            config.version = str(config_data['version'])
        return config

    def _validate_config(self, config: PerfmonConfig) -> None:
        """Validate configuration for correctness"""
        errors = []
        monitor = config.monitor
        quality = config.quality

        if monitor.update_interval <= 0:
            errors.append("monitor.update_interval must be positive")
        if monitor.history_length <= 0:
            errors.append("monitor.history_length must be positive")
        if monitor.time_range is not None and monitor.time_range <= 0:
            errors.append("monitor.time_range must be positive")
        if monitor.collector_timeout <= 0:
            errors.append("monitor.collector_timeout must be positive")
        if monitor.collectors.battery_timeout <= 0:
            errors.append("monitor.collectors.battery_timeout must be positive")
        for rule in monitor.alert_rules:
            if not isinstance(rule, dict) or not {'id', 'metric', 'threshold'} <= set(rule):
                errors.append(f"Alert rule needs id, metric and threshold: {rule}")
                continue
            try:
                AlertRule.from_dict(rule)
            except (TypeError, ValueError) as e:
                errors.append(f"Alert rule '{rule['id']}' is invalid: {e}")

        if quality.cooldown < 0:
            errors.append("quality.cooldown must not be negative")
        if quality.window_size <= 0 or quality.fps_window <= 0 or quality.adaptation_log_size <= 0:
            errors.append("quality window sizes must be positive")
        for name in ('critical_memory_pressure', 'degraded_memory_pressure', 'improvement_memory_pressure'):
            if not 0 <= getattr(quality, name) <= 1:
                errors.append(f"quality.{name} must be between 0 and 1")

        if logging.getLevelName(config.logging.level.upper()) == f"Level {config.logging.level.upper()}":
            errors.append(f"Invalid log level: {config.logging.level}")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

    def load_config(self) -> PerfmonConfig:
        """Load and validate configuration"""
        if self.env_file:
            load_dotenv(self.env_file)
        else:
            load_dotenv()

        self.logger.info(f"Loading configuration from {self.config_path}")
        config_data = self._load_yaml_config(self.config_path)

        env_overrides = self._get_environment_variable_overrides()
        if env_overrides:
            config_data = self._deep_merge(config_data, env_overrides)

        config = self._create_config_from_dict(config_data)
        self._validate_config(config)

        self._config = config
        self.logger.info("✅ Configuration loaded")
        return config

    def get_config(self) -> PerfmonConfig:
        """Get the current configuration, loading if necessary"""
        if self._config is None:
            return self.load_config()
        return self._config

    def save_config(self, config: PerfmonConfig, path: Optional[str] = None) -> None:
        """Write configuration to YAML"""
        target = Path(path or self.config_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, 'w') as f:
                yaml.safe_dump(asdict(config), f, default_flow_style=False, indent=2, sort_keys=False)
        except OSError as e:
            raise ConfigurationError(f"Configuration saving failed: {e}", e) from e
        self.logger.info(f"Configuration saved to {target}")

    def get_config_summary(self) -> Dict[str, Any]:
        config = self.get_config()
        return {
            "name": config.name,
            "version": config.version,
            "update_interval": config.monitor.update_interval,
            "history_length": config.monitor.history_length,
            "time_range": config.monitor.get_time_range(),
            "collector_timeout": config.monitor.collector_timeout,
            "auto_optimization": config.monitor.enable_auto_optimization,
            "adaptation_cooldown": config.quality.cooldown,
            "custom_alert_rules": len(config.monitor.alert_rules),
            "log_level": config.logging.level
        }


# Global configuration manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager(config_path: Optional[str] = None) -> ConfigManager:
    """Get the global configuration manager instance"""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(config_path=config_path)
    return _config_manager


def get_config() -> PerfmonConfig:
    return get_config_manager().get_config()


__all__ = [
    'ConfigManager',
    'PerfmonConfig',
    'PerformanceMonitorConfig',
    'PerformanceThresholds',
    'CollectorConfig',
    'AdaptiveQualityConfig',
    'LoggingConfig',
    'get_config_manager',
    'get_config'
]
