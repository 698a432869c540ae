#!/usr/bin/env python3
"""
Performance Snapshot Types and History
Shared data model used by collectors, the monitor and the quality manager
"""

import math
from collections import deque
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Deque, Dict, Iterator, List, Optional, Tuple

MAX_FRAME_SAMPLES = 60
DEFAULT_SAMPLE_RATE = 44100


class AudioContextState(Enum):
    """State reported by an audio context"""
    SUSPENDED = "suspended"
    RUNNING = "running"
    CLOSED = "closed"

    @classmethod
    def parse(cls, value: Any) -> 'AudioContextState':
        """Coerce a raw state value, unknown values map to SUSPENDED"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.SUSPENDED


def _clamp_non_negative(instance: Any) -> None:
    # Numeric fields must never go negative (or NaN) once inside a snapshot
    for f in fields(instance):
        value = getattr(instance, f.name)
        if isinstance(value, bool) or value is None:
            continue
        if isinstance(value, int) and value < 0:
            object.__setattr__(instance, f.name, 0)
        elif isinstance(value, float) and (math.isnan(value) or value < 0):
            object.__setattr__(instance, f.name, 0.0)


def _to_plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, '__dataclass_fields__'):
        return {f.name: _to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    return value


@dataclass(frozen=True)
class RenderingMetrics:
    """Frame pacing and renderer counters"""
    fps: float = 0.0
    frame_times: Tuple[float, ...] = ()
    dropped_frames: int = 0
    render_time: float = 0.0
    gpu_time: Optional[float] = None
    draw_calls: Optional[int] = None
    triangles: Optional[int] = None

    def __post_init__(self):
        _clamp_non_negative(self)
        samples = tuple(max(0.0, float(t)) for t in self.frame_times)[-MAX_FRAME_SAMPLES:]
        object.__setattr__(self, 'frame_times', samples)


@dataclass(frozen=True)
class HeapUsage:
    """Heap usage in bytes"""
    used: float = 0.0
    total: float = 0.0
    limit: float = 0.0

    def __post_init__(self):
        _clamp_non_negative(self)


@dataclass(frozen=True)
class GPUMemoryInfo:
    """Estimated GPU memory usage in bytes"""
    used: float = 0.0
    total: float = 0.0
    available: float = 0.0
    texture_memory: float = 0.0
    buffer_memory: float = 0.0

    def __post_init__(self):
        _clamp_non_negative(self)


@dataclass(frozen=True)
class MemoryMetrics:
    """Heap, GPU and resource counts"""
    heap: HeapUsage = field(default_factory=HeapUsage)
    gpu: Optional[GPUMemoryInfo] = None
    textures: int = 0
    geometries: int = 0
    materials: int = 0

    def __post_init__(self):
        _clamp_non_negative(self)

    @property
    def pressure(self) -> float:
        """Ratio of used heap to limit, 0 when the limit is unknown"""
        if self.heap.limit <= 0:
            return 0.0
        return self.heap.used / self.heap.limit


@dataclass(frozen=True)
class AudioMetrics:
    """Audio pipeline health"""
    latency: float = 0.0
    buffer_size: int = 0
    underruns: int = 0
    context_state: AudioContextState = AudioContextState.SUSPENDED
    sample_rate: float = DEFAULT_SAMPLE_RATE
    processing_time: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, 'context_state', AudioContextState.parse(self.context_state))
        _clamp_non_negative(self)


@dataclass(frozen=True)
class BatteryInfo:
    level: float = 100.0  # percent
    charging: bool = False

    def __post_init__(self):
        _clamp_non_negative(self)


@dataclass(frozen=True)
class NetworkInfo:
    type: str = "unknown"
    downlink: Optional[float] = None  # Mbps

    def __post_init__(self):
        _clamp_non_negative(self)


@dataclass(frozen=True)
class MobileMetrics:
    """Mobile/device metrics, present only on mobile-classified hosts"""
    battery: Optional[BatteryInfo] = None
    network: Optional[NetworkInfo] = None
    device_motion: bool = False
    touch_latency: float = 0.0
    orientation: Optional[str] = None

    def __post_init__(self):
        _clamp_non_negative(self)


@dataclass(frozen=True)
class UXMetrics:
    """User experience counters"""
    input_latency: float = 0.0
    load_time: float = 0.0
    error_count: int = 0
    interaction_success: float = 0.0  # percent

    def __post_init__(self):
        _clamp_non_negative(self)


@dataclass(frozen=True)
class SnapshotFragment:
    """Partial snapshot produced by a single collector"""
    rendering: Optional[RenderingMetrics] = None
    memory: Optional[MemoryMetrics] = None
    audio: Optional[AudioMetrics] = None
    mobile: Optional[MobileMetrics] = None
    ux: Optional[UXMetrics] = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


@dataclass(frozen=True)
class PerformanceSnapshot:
    """One timestamped bundle of every known performance metric"""
    timestamp: float
    rendering: RenderingMetrics = field(default_factory=RenderingMetrics)
    memory: MemoryMetrics = field(default_factory=MemoryMetrics)
    audio: AudioMetrics = field(default_factory=AudioMetrics)
    ux: UXMetrics = field(default_factory=UXMetrics)
    mobile: Optional[MobileMetrics] = None

    def __post_init__(self):
        _clamp_non_negative(self)

    def merged(self, fragment: SnapshotFragment) -> 'PerformanceSnapshot':
        """Return a copy with the sub-records owned by fragment replaced"""
        changes = {
            f.name: getattr(fragment, f.name)
            for f in fields(fragment)
            if getattr(fragment, f.name) is not None
        }
        return replace(self, **changes) if changes else self

    def to_dict(self) -> Dict[str, Any]:
        return _to_plain(self)


class PerformanceHistory:
    """
    Bounded, time-windowed sequence of snapshots.

    Entries stay sorted by timestamp. Appending evicts the oldest entries
    while either the count bound or the time span bound is exceeded.
    """

    def __init__(self, max_length: int = 300, time_range: float = 300_000.0,
                 entries: Optional[List[PerformanceSnapshot]] = None):
        if max_length <= 0:
            raise ValueError("max_length must be positive")
        if time_range < 0:
            raise ValueError("time_range must be non-negative")
        self.max_length = max_length
        self.time_range = time_range
        self._entries: Deque[PerformanceSnapshot] = deque(maxlen=max_length)
        for entry in entries or []:
            self.append(entry)

    @property
    def entries(self) -> List[PerformanceSnapshot]:
        return list(self._entries)

    def append(self, snapshot: PerformanceSnapshot) -> None:
        if self._entries and snapshot.timestamp < self._entries[-1].timestamp:
            raise ValueError(
                f"snapshot timestamp {snapshot.timestamp} precedes newest entry "
                f"{self._entries[-1].timestamp}"
            )
        self._entries.append(snapshot)
        self._evict_expired(snapshot.timestamp)

    def _evict_expired(self, now: float) -> None:
        cutoff = now - self.time_range
        while self._entries and self._entries[0].timestamp < cutoff:
            self._entries.popleft()

    def latest(self) -> Optional[PerformanceSnapshot]:
        return self._entries[-1] if self._entries else None

    def since(self, cutoff: float) -> List[PerformanceSnapshot]:
        """Entries with timestamp >= cutoff, oldest first"""
        return [entry for entry in self._entries if entry.timestamp >= cutoff]

    def window(self, duration: Optional[float] = None, now: Optional[float] = None) -> 'PerformanceHistory':
        """Copy of the history, optionally restricted to the trailing duration"""
        if duration is None:
            selected = list(self._entries)
        else:
            reference = now if now is not None else (self._entries[-1].timestamp if self._entries else 0.0)
            selected = self.since(reference - duration)
        return PerformanceHistory(self.max_length, self.time_range, selected)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[PerformanceSnapshot]:
        return iter(list(self._entries))

    def __reversed__(self) -> Iterator[PerformanceSnapshot]:
        return iter(list(reversed(self._entries)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": [entry.to_dict() for entry in self._entries],
            "max_length": self.max_length,
            "time_range": self.time_range
        }
