"""
Capability Interfaces
Narrow protocols for the external collaborators the monitor measures and drives.

Every collaborator is optional. Code holding one calls it defensively and
falls back to a degraded default when a method is missing or raises.
"""

import os
import platform
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable

from .performance_types import BatteryInfo, NetworkInfo


@dataclass(frozen=True)
class RenderInfo:
    """Renderer counters for the current frame"""
    draw_calls: int = 0
    triangles: int = 0
    textures: int = 0
    geometries: int = 0
    programs: int = 0
    gpu_time_ms: Optional[float] = None


@runtime_checkable
class RenderSink(Protocol):
    """Renderer that accepts quality settings"""

    def set_pixel_ratio(self, ratio: float) -> None: ...

    def set_size(self, width: float, height: float) -> None: ...

    def get_canvas_size(self) -> Tuple[float, float]:
        """Display size of the canvas, read once as the base for render scaling"""
        ...


@runtime_checkable
class RendererStatsSource(Protocol):
    def get_render_info(self) -> RenderInfo: ...


@runtime_checkable
class AudioContextLike(Protocol):
    """Audio engine state. base_latency / output_latency (seconds) are optional"""
    state: Any
    sample_rate: float


@runtime_checkable
class StoreSink(Protocol):
    """Application state store receiving merged key/value updates"""

    def set_state(self, updates: Dict[str, Any]) -> None: ...


@runtime_checkable
class BatteryProvider(Protocol):
    async def get_battery(self) -> Optional[BatteryInfo]: ...


@runtime_checkable
class NetworkInfoProvider(Protocol):
    def get_network_info(self) -> Optional[NetworkInfo]: ...


@dataclass(frozen=True)
class DeviceEnvironment:
    """Host properties used by the mobile heuristic and renderer sizing"""
    user_agent: str = ""
    touch_support: bool = False
    viewport_width: int = 1920
    device_pixel_ratio: float = 1.0
    device_motion: bool = False
    orientation: Optional[str] = None

    @classmethod
    def from_host(cls) -> 'DeviceEnvironment':
        """Best-effort description of the machine we are running on"""
        system = platform.system()
        if 'ANDROID_ROOT' in os.environ:
            system = 'Android'
        user_agent = f"{system} {platform.release()} {platform.machine()}".strip()
        return cls(user_agent=user_agent)
