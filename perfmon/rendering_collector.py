"""
Rendering Performance Collector
Tracks frame times, FPS and renderer counters
"""

import asyncio
import logging
import math
import statistics
from collections import deque
from typing import Any, Deque, Dict, Optional

from .collector_base import MetricCollector
from .interfaces import RenderInfo, RendererStatsSource
from .performance_types import MAX_FRAME_SAMPLES, RenderingMetrics, SnapshotFragment
from .scheduler import Clock, SystemClock

DROPPED_FRAME_MS = 16.67
GPU_TIME_ESTIMATE_RATIO = 0.7


class RenderingCollector(MetricCollector):
    """Frame pacing collector fed by frame markers or its own sampling loop"""

    name = "rendering"

    def __init__(self, renderer_info: Optional[RendererStatsSource] = None,
                 clock: Optional[Clock] = None, fps_cap: float = 60.0,
                 sample_loop: bool = False, logger: Optional[logging.Logger] = None):
        super().__init__(logger)
        self.renderer_info = renderer_info
        self.clock = clock or SystemClock()
        self.fps_cap = fps_cap
        self.sample_loop = sample_loop

        self.frame_times: Deque[float] = deque(maxlen=MAX_FRAME_SAMPLES)
        self.dropped_frames = 0
        self._frame_start: Optional[float] = None
        self._last_frame_time: Optional[float] = None
        self._fps_counter = 0
        self._fps_last_update = self.clock.now_ms()
        self._current_fps = 0.0
        self._sample_task: Optional[asyncio.Task] = None

    async def initialize(self) -> None:
        self.logger.info("🎞️ Initializing rendering performance collector")
        if self.sample_loop and self._sample_task is None:
            self._sample_task = asyncio.create_task(self._frame_measurement_loop())

    def cleanup(self) -> None:
        if self._sample_task:
            self._sample_task.cancel()
            self._sample_task = None
        self._last_frame_time = None

    async def collect(self) -> SnapshotFragment:
        frame_times = list(self.frame_times)
        render_info = self._read_render_info()

        gpu_time = None
        draw_calls = None
        triangles = None
        if render_info is not None:
            draw_calls = render_info.draw_calls
            triangles = render_info.triangles
            gpu_time = render_info.gpu_time_ms
            if gpu_time is None and frame_times:
                gpu_time = statistics.fmean(frame_times) * GPU_TIME_ESTIMATE_RATIO

        return SnapshotFragment(rendering=RenderingMetrics(
            fps=self._calculate_fps(),
            frame_times=tuple(frame_times),
            dropped_frames=self.dropped_frames,
            render_time=self._average_frame_time(),
            gpu_time=gpu_time,
            draw_calls=draw_calls,
            triangles=triangles
        ))

    def on_frame_start(self) -> None:
        """Mark the start of a frame"""
        self._frame_start = self.clock.now_ms()

    def on_frame_end(self) -> None:
        """Mark the end of a frame started with on_frame_start()"""
        if self._frame_start is None:
            return
        self.record_frame_time(self.clock.now_ms() - self._frame_start)
        self._frame_start = None

    def record_frame_time(self, frame_time_ms: float) -> None:
        """Record one frame duration measured by the host"""
        if frame_time_ms is None or math.isnan(frame_time_ms) or frame_time_ms < 0:
            return
        self.frame_times.append(float(frame_time_ms))
        if frame_time_ms > DROPPED_FRAME_MS:
            self.dropped_frames += 1
        self._update_fps()

    async def _frame_measurement_loop(self):
        """Treat each event loop wake-up as a frame"""
        frame_interval = 1.0 / self.fps_cap if self.fps_cap > 0 else 1 / 60
        while True:
            try:
                now = self.clock.now_ms()
                if self._last_frame_time is not None:
                    self.record_frame_time(now - self._last_frame_time)
                self._last_frame_time = now
                await asyncio.sleep(frame_interval)
            except asyncio.CancelledError:
                break

    def _update_fps(self) -> None:
        now = self.clock.now_ms()
        self._fps_counter += 1
        elapsed = now - self._fps_last_update
        if elapsed >= 1000:
            self._current_fps = round(self._fps_counter * 1000 / elapsed)
            self._fps_counter = 0
            self._fps_last_update = now

    def _calculate_fps(self) -> float:
        if len(self.frame_times) < 2:
            return float(self._current_fps)
        avg_frame_time = self._average_frame_time()
        rolling_fps = min(1000 / avg_frame_time, self.fps_cap) if avg_frame_time > 0 else 0.0
        return max(rolling_fps, float(self._current_fps))

    def _average_frame_time(self) -> float:
        if not self.frame_times:
            return 0.0
        return statistics.fmean(self.frame_times)

    def _read_render_info(self) -> Optional[RenderInfo]:
        if self.renderer_info is None:
            return None
        get_info = getattr(self.renderer_info, 'get_render_info', None)
        if get_info is None:
            return None
        try:
            return get_info()
        except Exception as e:
            # Frame timing is still valid without the renderer counters
            self.logger.warning(f"⚠️ Renderer stats unavailable: {e}")
            return None

    def reset_dropped_frames(self) -> None:
        self.dropped_frames = 0

    def get_current_fps(self) -> float:
        """FPS from the once-per-second frame counter"""
        return float(self._current_fps)

    def get_frame_time_stats(self) -> Dict[str, float]:
        """Min / max / average / 95th percentile frame time in ms"""
        if not self.frame_times:
            return {"min": 0.0, "max": 0.0, "avg": 0.0, "p95": 0.0}

        ordered = sorted(self.frame_times)
        p95_index = min(int(len(ordered) * 0.95), len(ordered) - 1)
        return {
            "min": ordered[0],
            "max": ordered[-1],
            "avg": self._average_frame_time(),
            "p95": ordered[p95_index]
        }

    def is_performance_degraded(self) -> bool:
        """Below 30 FPS, p95 frame time over 33ms, or more than 10% dropped frames"""
        fps = self._calculate_fps()
        stats = self.get_frame_time_stats()
        recent_frames = len(self.frame_times)
        drop_rate = self.dropped_frames / recent_frames if recent_frames else 0.0
        return fps < 30 or stats["p95"] > 33.33 or drop_rate > 0.1

    def get_performance_grade(self) -> str:
        fps = self._calculate_fps()
        p95 = self.get_frame_time_stats()["p95"]

        if fps >= 58 and p95 <= 17:
            return "excellent"
        elif fps >= 45 and p95 <= 22:
            return "good"
        elif fps >= 30 and p95 <= 33:
            return "fair"
        return "poor"

    def get_stats(self) -> Dict[str, Any]:
        return {
            "fps": self._calculate_fps(),
            "dropped_frames": self.dropped_frames,
            "frame_times": self.get_frame_time_stats(),
            "grade": self.get_performance_grade()
        }
