"""
Shared fixtures for perfmon tests
"""

import logging

import pytest

from perfmon.device_detection import DeviceCapabilities
from perfmon.interfaces import DeviceEnvironment
from perfmon.scheduler import ManualClock, ManualTicker

from fakes import FakeRenderer, FakeStore


@pytest.fixture
def logger():
    """Create test logger"""
    logger = logging.getLogger("test_perfmon")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def clock():
    return ManualClock(start_ms=1_000_000)


@pytest.fixture
def ticker():
    return ManualTicker()


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def desktop_environment():
    return DeviceEnvironment(user_agent="Linux 6.1 x86_64", touch_support=False,
                             viewport_width=1920, device_pixel_ratio=2.0)


@pytest.fixture
def mobile_environment():
    return DeviceEnvironment(user_agent="Mozilla/5.0 (Linux; Android 14) Mobile",
                             touch_support=True, viewport_width=412,
                             device_pixel_ratio=3.0, device_motion=True,
                             orientation="portrait-primary")


@pytest.fixture
def high_end_capabilities():
    return DeviceCapabilities(gl=True, gpu_compute=True, audio_output=True,
                              offscreen_rendering=True, worker_threads=True,
                              memory_info=True, device_memory_gb=32, cpu_cores=16)


@pytest.fixture
def mid_range_capabilities():
    return DeviceCapabilities(gl=True, gpu_compute=False, audio_output=True,
                              offscreen_rendering=True, worker_threads=True,
                              memory_info=True, device_memory_gb=8, cpu_cores=4)


@pytest.fixture
def low_end_capabilities():
    return DeviceCapabilities(gl=True, gpu_compute=False, audio_output=True,
                              offscreen_rendering=False, worker_threads=True,
                              memory_info=True, device_memory_gb=2, cpu_cores=2)
