"""
Tests for device capability probing and tier classification
"""

from unittest.mock import patch

from perfmon.device_detection import (
    GB, MB, DeviceCapabilities, DeviceTier, classify_device_tier, detect_device_capabilities,
    detect_device_constraints, is_mobile_environment, select_initial_profile
)
from perfmon.interfaces import DeviceEnvironment


class TestMobileHeuristic:

    def test_user_agent_keywords(self):
        assert is_mobile_environment(DeviceEnvironment(user_agent="Mozilla/5.0 (iPhone; CPU iPhone OS 17_0)"))
        assert is_mobile_environment(DeviceEnvironment(user_agent="Android 14"))
        assert not is_mobile_environment(DeviceEnvironment(user_agent="Linux 6.1 x86_64"))

    def test_touch_with_narrow_viewport(self):
        assert is_mobile_environment(DeviceEnvironment(touch_support=True, viewport_width=768))
        assert not is_mobile_environment(DeviceEnvironment(touch_support=True, viewport_width=1024))
        assert not is_mobile_environment(DeviceEnvironment(touch_support=False, viewport_width=400))

    def test_missing_environment(self):
        assert not is_mobile_environment(None)


class TestTierClassification:

    def test_high_tier(self, high_end_capabilities):
        assert classify_device_tier(high_end_capabilities) == DeviceTier.HIGH

    def test_high_tier_needs_gpu_compute(self):
        caps = DeviceCapabilities(gpu_compute=False, device_memory_gb=32, cpu_cores=16)
        assert classify_device_tier(caps) == DeviceTier.MID

    def test_low_tier(self, low_end_capabilities):
        assert classify_device_tier(low_end_capabilities) == DeviceTier.LOW

    def test_few_cores_low_only_on_mobile(self):
        caps = DeviceCapabilities(device_memory_gb=4, cpu_cores=2)
        assert classify_device_tier(caps, is_mobile=True) == DeviceTier.LOW
        assert classify_device_tier(caps, is_mobile=False) == DeviceTier.MID

    def test_unknown_memory_counts_as_mid(self):
        caps = DeviceCapabilities(device_memory_gb=None, cpu_cores=4)
        assert classify_device_tier(caps) == DeviceTier.MID

    def test_initial_profiles(self):
        assert select_initial_profile(DeviceTier.LOW).key == "low"
        assert select_initial_profile(DeviceTier.MID).key == "medium"
        assert select_initial_profile(DeviceTier.HIGH).key == "high"


class TestConstraints:

    def test_defaults_for_mid_tier(self):
        constraints = detect_device_constraints(DeviceTier.MID)
        assert constraints.max_texture_size == 2048
        assert constraints.audio_latency_constraint == 128
        assert constraints.memory_constraint == 512 * MB

    def test_low_tier_limits(self):
        constraints = detect_device_constraints(DeviceTier.LOW, {"max_texture_size": 8192})
        assert constraints.max_texture_size == 1024
        assert constraints.audio_latency_constraint == 256
        assert constraints.memory_constraint == 256 * MB

    def test_high_tier_uses_queried_limits(self):
        constraints = detect_device_constraints(DeviceTier.HIGH, {
            "max_texture_size": 16384, "max_render_targets": 8, "unrelated": 1
        })
        assert constraints.max_texture_size == 16384
        assert constraints.max_render_targets == 8
        assert constraints.audio_latency_constraint == 64
        assert constraints.memory_constraint == 1 * GB


class TestCapabilityProbe:

    def test_probe_reads_host_memory_and_cores(self):
        with patch("perfmon.device_detection.psutil") as mock_psutil:
            mock_psutil.virtual_memory.return_value.total = 16 * GB
            mock_psutil.cpu_count.return_value = 8
            mock_psutil.Error = Exception

            caps = detect_device_capabilities()

        assert caps.memory_info
        assert caps.device_memory_gb == 16
        assert caps.cpu_cores == 8
        assert caps.worker_threads

    def test_probe_tolerates_missing_memory_info(self):
        with patch("perfmon.device_detection.psutil") as mock_psutil:
            mock_psutil.Error = RuntimeError
            mock_psutil.virtual_memory.side_effect = OSError("no /proc")
            mock_psutil.cpu_count.return_value = None

            caps = detect_device_capabilities()

        assert not caps.memory_info
        assert caps.device_memory_gb is None
        assert caps.cpu_cores == 2

    def test_module_availability(self):
        with patch("perfmon.device_detection._module_available", return_value=False):
            caps = detect_device_capabilities()
        assert not caps.gl
        assert not caps.gpu_compute
        assert not caps.audio_output
