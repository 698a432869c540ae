"""
Device Detection
Capability probing, device tier classification and rendering/audio constraints
"""

import importlib.util
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

import psutil

from .interfaces import DeviceEnvironment
from .quality_profiles import DEFAULT_PROFILE_KEY, QualityProfile, get_profile

logger = logging.getLogger(__name__)

MB = 1024 * 1024
GB = 1024 * MB

MOBILE_KEYWORDS = ('mobile', 'android', 'iphone', 'ipad', 'ipod', 'blackberry', 'windows phone')
MOBILE_VIEWPORT_MAX = 768
UNKNOWN_DEVICE_MEMORY_GB = 4

# Importable modules that indicate each graphics/audio capability on the host
GL_MODULES = ('moderngl', 'OpenGL', 'pyglet')
GPU_COMPUTE_MODULES = ('wgpu', 'cupy')
AUDIO_MODULES = ('sounddevice', 'pyaudio')
OFFSCREEN_MODULES = ('moderngl', 'OpenGL.osmesa')


class DeviceTier(Enum):
    LOW = "low"
    MID = "mid"
    HIGH = "high"


@dataclass(frozen=True)
class DeviceCapabilities:
    """What the host can do"""
    gl: bool = False
    gpu_compute: bool = False
    audio_output: bool = False
    offscreen_rendering: bool = False
    worker_threads: bool = True
    memory_info: bool = False
    device_memory_gb: Optional[float] = None
    cpu_cores: int = 2

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gl": self.gl,
            "gpu_compute": self.gpu_compute,
            "audio_output": self.audio_output,
            "offscreen_rendering": self.offscreen_rendering,
            "worker_threads": self.worker_threads,
            "memory_info": self.memory_info,
            "device_memory_gb": self.device_memory_gb,
            "cpu_cores": self.cpu_cores
        }


@dataclass(frozen=True)
class DeviceConstraints:
    """Rendering and audio limits for the device"""
    max_texture_size: int = 2048
    max_render_targets: int = 4
    max_vertex_attributes: int = 16
    audio_latency_constraint: int = 128
    memory_constraint: int = 512 * MB


def _module_available(name: str) -> bool:
    try:
        return importlib.util.find_spec(name) is not None
    except (ImportError, ValueError):
        return False


def _any_module_available(names) -> bool:
    return any(_module_available(name) for name in names)


def detect_device_capabilities() -> DeviceCapabilities:
    """Probe the host for graphics, audio, threading and memory capabilities"""
    device_memory_gb = None
    memory_info = False
    try:
        total = psutil.virtual_memory().total
        device_memory_gb = round(total / GB, 1)
        memory_info = True
    except (psutil.Error, OSError) as e:
        logger.debug(f"Memory introspection unavailable: {e}")

    cpu_cores = psutil.cpu_count(logical=True) or 2

    capabilities = DeviceCapabilities(
        gl=_any_module_available(GL_MODULES),
        gpu_compute=_any_module_available(GPU_COMPUTE_MODULES),
        audio_output=_any_module_available(AUDIO_MODULES),
        offscreen_rendering=_any_module_available(OFFSCREEN_MODULES),
        worker_threads=True,
        memory_info=memory_info,
        device_memory_gb=device_memory_gb,
        cpu_cores=cpu_cores
    )
    logger.debug(f"Detected capabilities: {capabilities.to_dict()}")
    return capabilities


def is_mobile_environment(environment: Optional[DeviceEnvironment]) -> bool:
    """Mobile if the user agent says so, or a touch device with a narrow viewport"""
    if environment is None:
        return False
    user_agent = (environment.user_agent or "").lower()
    if any(keyword in user_agent for keyword in MOBILE_KEYWORDS):
        return True
    return environment.touch_support and environment.viewport_width <= MOBILE_VIEWPORT_MAX


def classify_device_tier(capabilities: DeviceCapabilities, is_mobile: bool = False) -> DeviceTier:
    """
    high: top-tier graphics API, >= 8 GB memory and >= 8 cores
    low: <= 2 GB memory, or <= 2 cores on a mobile device
    mid: everything else (unknown memory counts as 4 GB)
    """
    memory_gb = capabilities.device_memory_gb
    if memory_gb is None:
        memory_gb = UNKNOWN_DEVICE_MEMORY_GB

    if capabilities.gpu_compute and memory_gb >= 8 and capabilities.cpu_cores >= 8:
        return DeviceTier.HIGH

    if memory_gb <= 2 or (capabilities.cpu_cores <= 2 and is_mobile):
        return DeviceTier.LOW

    return DeviceTier.MID


def detect_device_constraints(tier: DeviceTier,
                              gl_limits: Optional[Dict[str, int]] = None) -> DeviceConstraints:
    """Default limits, overridden by queried graphics limits, then tier adjustments"""
    constraints = DeviceConstraints()

    if gl_limits:
        constraints = replace(constraints, **{
            key: int(value) for key, value in gl_limits.items()
            if key in ('max_texture_size', 'max_render_targets', 'max_vertex_attributes')
            and value is not None
        })

    if tier == DeviceTier.LOW:
        constraints = replace(
            constraints,
            max_texture_size=min(constraints.max_texture_size, 1024),
            audio_latency_constraint=256,
            memory_constraint=256 * MB
        )
    elif tier == DeviceTier.HIGH:
        constraints = replace(
            constraints,
            audio_latency_constraint=64,
            memory_constraint=1 * GB
        )

    return constraints


def select_initial_profile(tier: DeviceTier) -> QualityProfile:
    if tier == DeviceTier.LOW:
        return get_profile("low")
    if tier == DeviceTier.HIGH:
        return get_profile("high")
    return get_profile(DEFAULT_PROFILE_KEY)
