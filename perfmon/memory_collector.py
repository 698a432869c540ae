"""
Memory Performance Collector
Heap usage, GPU memory estimates, resource counts and leak trend detection
"""

import gc
import logging
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

import numpy as np
import psutil

from .collector_base import MetricCollector
from .interfaces import RenderInfo, RendererStatsSource
from .performance_types import GPUMemoryInfo, HeapUsage, MemoryMetrics, SnapshotFragment

MB = 1024 * 1024
GB = 1024 * MB

BASE_HEAP_ESTIMATE = 50 * MB
TEXTURE_HEAP_ESTIMATE = 1 * MB
GEOMETRY_HEAP_ESTIMATE = 512 * 1024
PROGRAM_HEAP_ESTIMATE = 100 * 1024
ESTIMATED_HEAP_LIMIT = 2 * GB

TEXTURE_GPU_ESTIMATE = 2 * MB
GEOMETRY_GPU_ESTIMATE = 1 * MB
GPU_MEMORY_LIMIT = 2 * GB
GPU_FALLBACK_USED = 128 * MB

LEAK_WINDOW = 60
LEAK_MIN_SAMPLES = 10
LEAK_SLOPE_BYTES = 1 * MB        # per sample
STABLE_SLOPE_BYTES = 100 * 1024  # per sample

HeapProbe = Callable[[], HeapUsage]


def psutil_heap_probe() -> HeapUsage:
    """Process resident memory against total system memory"""
    process_memory = psutil.Process().memory_info()
    system_memory = psutil.virtual_memory()
    used = process_memory.rss
    return HeapUsage(
        used=used,
        total=max(used, system_memory.total - system_memory.available),
        limit=system_memory.total
    )


class MemoryCollector(MetricCollector):
    """Collects heap/GPU memory and keeps a rolling window for leak detection"""

    name = "memory"

    def __init__(self, renderer_info: Optional[RendererStatsSource] = None,
                 heap_probe: Optional[HeapProbe] = None, use_host_memory: bool = True,
                 logger: Optional[logging.Logger] = None):
        super().__init__(logger)
        self.renderer_info = renderer_info
        self.heap_probe = heap_probe or (psutil_heap_probe if use_host_memory else None)
        self.memory_history: Deque[float] = deque(maxlen=LEAK_WINDOW)
        self.last_gc_time: Optional[float] = None

    async def initialize(self) -> None:
        self.logger.info("🧠 Initializing memory performance collector")
        self.memory_history.clear()

    def cleanup(self) -> None:
        self.memory_history.clear()

    async def collect(self) -> SnapshotFragment:
        render_info = self._read_render_info()
        heap = self._get_heap_usage(render_info)
        self.memory_history.append(heap.used)

        return SnapshotFragment(memory=MemoryMetrics(
            heap=heap,
            gpu=self._estimate_gpu_memory(render_info),
            textures=render_info.textures if render_info else 0,
            geometries=render_info.geometries if render_info else 0,
            materials=render_info.programs if render_info else 0
        ))

    def _read_render_info(self) -> Optional[RenderInfo]:
        if self.renderer_info is None:
            return None
        try:
            return self.renderer_info.get_render_info()
        except Exception as e:
            self.logger.warning(f"⚠️ Renderer info unavailable: {e}")
            return None

    def _get_heap_usage(self, render_info: Optional[RenderInfo] = None) -> HeapUsage:
        if self.heap_probe is not None:
            try:
                return self.heap_probe()
            except (psutil.Error, OSError) as e:
                self.logger.debug(f"Heap probe failed, estimating instead: {e}")
        return self._estimate_heap_usage(render_info)

    def _estimate_heap_usage(self, render_info: Optional[RenderInfo]) -> HeapUsage:
        estimated = BASE_HEAP_ESTIMATE
        if render_info is not None:
            estimated += render_info.textures * TEXTURE_HEAP_ESTIMATE
            estimated += render_info.geometries * GEOMETRY_HEAP_ESTIMATE
            estimated += render_info.programs * PROGRAM_HEAP_ESTIMATE

        return HeapUsage(
            used=estimated,
            total=min(estimated * 1.5, ESTIMATED_HEAP_LIMIT * 0.8),
            limit=ESTIMATED_HEAP_LIMIT
        )

    def _estimate_gpu_memory(self, render_info: Optional[RenderInfo]) -> Optional[GPUMemoryInfo]:
        if self.renderer_info is None:
            return None
        if render_info is None:
            return GPUMemoryInfo(
                used=GPU_FALLBACK_USED,
                total=GPU_MEMORY_LIMIT,
                available=GPU_MEMORY_LIMIT - GPU_FALLBACK_USED,
                texture_memory=GPU_FALLBACK_USED * 0.7,
                buffer_memory=GPU_FALLBACK_USED * 0.3
            )

        texture_memory = render_info.textures * TEXTURE_GPU_ESTIMATE
        buffer_memory = render_info.geometries * GEOMETRY_GPU_ESTIMATE
        used = texture_memory + buffer_memory
        return GPUMemoryInfo(
            used=used,
            total=GPU_MEMORY_LIMIT,
            available=GPU_MEMORY_LIMIT - used,
            texture_memory=texture_memory,
            buffer_memory=buffer_memory
        )

    def detect_memory_leaks(self) -> Dict[str, Any]:
        """
        Fit a linear trend over the rolling heap window.

        Returns:
            has_leak, trend (increasing/stable/decreasing) and rate_of_increase
            in bytes per sample
        """
        history = list(self.memory_history)
        if len(history) < LEAK_MIN_SAMPLES:
            return {"has_leak": False, "trend": "stable", "rate_of_increase": 0.0}

        slope = float(np.polyfit(np.arange(len(history)), np.array(history, dtype=float), 1)[0])

        if abs(slope) < STABLE_SLOPE_BYTES:
            trend = "stable"
        elif slope > 0:
            trend = "increasing"
        else:
            trend = "decreasing"

        return {
            "has_leak": slope > LEAK_SLOPE_BYTES,
            "trend": trend,
            "rate_of_increase": slope
        }

    def force_garbage_collection(self) -> int:
        """Run a full collection, returns the number of unreachable objects found"""
        collected = gc.collect()
        self.last_gc_time = time.time()
        self.logger.debug(f"🧹 Garbage collection freed {collected} objects")
        return collected

    def get_memory_pressure(self) -> str:
        heap = self._get_heap_usage(self._read_render_info())
        usage_percent = heap.used / heap.limit * 100 if heap.limit else 0.0

        if usage_percent < 50:
            return "low"
        if usage_percent < 75:
            return "medium"
        if usage_percent < 90:
            return "high"
        return "critical"

    def get_memory_efficiency_score(self) -> int:
        """Score 0-100, deductions for heap/GPU usage, resource counts and leaks"""
        render_info = self._read_render_info()
        heap = self._get_heap_usage(render_info)
        gpu = self._estimate_gpu_memory(render_info)

        score = 100
        heap_percent = heap.used / heap.limit * 100 if heap.limit else 0.0
        if heap_percent > 75:
            score -= 30
        elif heap_percent > 50:
            score -= 15

        if gpu and gpu.total:
            gpu_percent = gpu.used / gpu.total * 100
            if gpu_percent > 80:
                score -= 20
            elif gpu_percent > 60:
                score -= 10

        if render_info is not None:
            if render_info.textures > 100:
                score -= 10
            if render_info.geometries > 50:
                score -= 10
            if render_info.programs > 25:
                score -= 10

        if self.detect_memory_leaks()["has_leak"]:
            score -= 25

        return max(0, score)

    def get_optimization_recommendations(self) -> List[str]:
        recommendations = []
        render_info = self._read_render_info()
        heap = self._get_heap_usage(render_info)
        gpu = self._estimate_gpu_memory(render_info)
        leak = self.detect_memory_leaks()

        if heap.limit and heap.used / heap.limit > 0.8:
            recommendations.append("High heap usage detected - consider reducing object creation")
        if gpu and gpu.total and gpu.used / gpu.total > 0.8:
            recommendations.append("High GPU memory usage - consider reducing texture quality or count")
        if render_info is not None and render_info.textures > 100:
            recommendations.append("High texture count - implement texture atlasing or disposal")
        if render_info is not None and render_info.geometries > 50:
            recommendations.append("High geometry count - consider instancing or LOD system")
        if leak["has_leak"]:
            recommendations.append("Memory leak detected - check for unreleased resources")
        if leak["trend"] == "increasing" and leak["rate_of_increase"] > 512 * 1024:
            recommendations.append("Steady memory increase detected - review resource cleanup")

        return recommendations
