"""
Tests for Configuration Management System

Tests the configuration management system including:
- Configuration loading and validation
- .env loading and environment variable overrides
- Error handling for malformed files
- Saving and summarising configuration
"""

import os
import shutil
import tempfile

import pytest
import yaml

from perfmon.config_manager import (
    AdaptiveQualityConfig, ConfigManager, PerfmonConfig, PerformanceMonitorConfig
)
from perfmon.error_handling import ConfigurationError
from perfmon.performance_monitor import PerformanceMonitor

ENV_VARS = (
    'PERFMON_UPDATE_INTERVAL', 'PERFMON_HISTORY_LENGTH', 'PERFMON_COLLECTOR_TIMEOUT',
    'PERFMON_ADAPTATION_COOLDOWN', 'PERFMON_AUTO_OPTIMIZATION', 'PERFMON_LOG_LEVEL',
    'PERFMON_LOG_FILE'
)


class TestConfigManager:
    """Test the ConfigManager class"""

    @pytest.fixture(autouse=True)
    def clean_environment(self, monkeypatch):
        for name in ENV_VARS:
            monkeypatch.delenv(name, raising=False)

    def setup_method(self):
        """Setup test environment"""
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = os.path.join(self.temp_dir, "perfmon.yaml")
        self.env_file = os.path.join(self.temp_dir, ".env")

    def teardown_method(self):
        """Clean up test environment"""
        shutil.rmtree(self.temp_dir)

    def write_config(self, data) -> None:
        with open(self.config_path, 'w') as f:
            yaml.safe_dump(data, f)

    def create_manager(self) -> ConfigManager:
        return ConfigManager(self.config_path, env_file=self.env_file)

    def test_defaults_when_file_missing(self):
        """Test that a missing file yields the defaults"""
        config = self.create_manager().load_config()

        assert isinstance(config, PerfmonConfig)
        assert config.monitor.update_interval == 1000
        assert config.monitor.history_length == 300
        assert config.monitor.get_time_range() == 300_000
        assert config.monitor.collector_timeout == 2000
        assert config.quality.cooldown == 5000
        assert config.logging.level == "INFO"

    def test_yaml_values_applied(self):
        """Test loading values from YAML"""
        self.write_config({
            "name": "test-app",
            "monitor": {
                "update_interval": 500,
                "history_length": 120,
                "time_range": 30000,
                "thresholds": {"min_fps": 45},
                "collectors": {"mobile": False},
                "alert_rules": [
                    {"id": "latency", "metric": "audio.latency", "threshold": 80, "operator": "gt"}
                ]
            },
            "quality": {"cooldown": 2000, "critical_fps": 15},
            "logging": {"level": "debug"}
        })

        config = self.create_manager().load_config()

        assert config.name == "test-app"
        assert config.monitor.update_interval == 500
        assert config.monitor.get_time_range() == 30000
        assert config.monitor.thresholds.min_fps == 45
        assert not config.monitor.collectors.mobile
        assert config.monitor.alert_rules[0]["id"] == "latency"
        assert config.quality.cooldown == 2000
        assert config.quality.critical_fps == 15

    def test_environment_overrides(self, monkeypatch):
        """Test environment variables take precedence over YAML"""
        self.write_config({"monitor": {"update_interval": 500}})
        monkeypatch.setenv('PERFMON_UPDATE_INTERVAL', '250')
        monkeypatch.setenv('PERFMON_HISTORY_LENGTH', '50')
        monkeypatch.setenv('PERFMON_AUTO_OPTIMIZATION', 'false')
        monkeypatch.setenv('PERFMON_LOG_LEVEL', 'warning')

        config = self.create_manager().load_config()

        assert config.monitor.update_interval == 250
        assert config.monitor.history_length == 50
        assert not config.monitor.enable_auto_optimization
        assert not config.quality.enabled
        assert config.logging.level == "WARNING"

    def test_dotenv_file_loaded(self, monkeypatch):
        """Test .env values feed the environment overrides"""
        with open(self.env_file, 'w') as f:
            f.write("PERFMON_ADAPTATION_COOLDOWN=1500\n")

        try:
            config = self.create_manager().load_config()
            assert config.quality.cooldown == 1500
        finally:
            os.environ.pop('PERFMON_ADAPTATION_COOLDOWN', None)

    def test_invalid_numeric_override(self, monkeypatch):
        monkeypatch.setenv('PERFMON_COLLECTOR_TIMEOUT', 'fast')
        with pytest.raises(ConfigurationError):
            self.create_manager().load_config()

    def test_invalid_yaml(self):
        with open(self.config_path, 'w') as f:
            f.write("monitor: [unclosed\n")
        with pytest.raises(ConfigurationError):
            self.create_manager().load_config()

    def test_non_mapping_root(self):
        self.write_config(["not", "a", "mapping"])
        with pytest.raises(ConfigurationError):
            self.create_manager().load_config()

    def test_unknown_option_rejected(self):
        self.write_config({"monitor": {"update_intervall": 100}})
        with pytest.raises(ConfigurationError) as exc_info:
            self.create_manager().load_config()
        assert "update_intervall" in str(exc_info.value)

    def test_validation_errors(self):
        self.write_config({
            "monitor": {"update_interval": 0, "alert_rules": [{"id": "x"}]},
            "quality": {"critical_memory_pressure": 1.5},
            "logging": {"level": "LOUD"}
        })
        with pytest.raises(ConfigurationError) as exc_info:
            self.create_manager().load_config()

        message = str(exc_info.value)
        assert "update_interval" in message
        assert "Alert rule" in message
        assert "critical_memory_pressure" in message
        assert "LOUD" in message

    def test_invalid_alert_rule_values(self):
        """Test rule operators and severities are checked at load time"""
        self.write_config({"monitor": {"alert_rules": [
            {"id": "bad-op", "metric": "rendering.fps", "threshold": 30, "operator": "between"},
            {"id": "bad-severity", "metric": "audio.latency", "threshold": 80, "severity": "panic"}
        ]}})
        with pytest.raises(ConfigurationError) as exc_info:
            self.create_manager().load_config()

        message = str(exc_info.value)
        assert "bad-op" in message
        assert "bad-severity" in message

    def test_save_and_reload(self):
        manager = self.create_manager()
        config = PerfmonConfig(
            monitor=PerformanceMonitorConfig(update_interval=750),
            quality=AdaptiveQualityConfig(cooldown=1234)
        )
        manager.save_config(config)

        reloaded = self.create_manager().load_config()
        assert reloaded.monitor.update_interval == 750
        assert reloaded.quality.cooldown == 1234

    def test_config_summary(self):
        summary = self.create_manager().get_config_summary()
        assert summary["update_interval"] == 1000
        assert summary["time_range"] == 300_000
        assert summary["custom_alert_rules"] == 0

    def test_get_config_caches(self):
        manager = self.create_manager()
        assert manager.get_config() is manager.get_config()

    def test_config_drives_monitor(self):
        self.write_config({"monitor": {"history_length": 10, "update_interval": 100,
                                       "include_default_alert_rules": False}})
        config = self.create_manager().load_config()

        monitor = PerformanceMonitor(config=config.monitor)
        assert monitor.history.max_length == 10
        assert monitor.history.time_range == 1000
        assert monitor.get_alert_rules() == []
