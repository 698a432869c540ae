"""
Audio Performance Collector
Monitors audio latency, buffer underruns and context state
"""

import logging
import math
import statistics
import time
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from .collector_base import MetricCollector
from .interfaces import AudioContextLike
from .performance_types import (
    DEFAULT_SAMPLE_RATE, AudioContextState, AudioMetrics, SnapshotFragment
)

HISTORY_SIZE = 60
UNDERRUN_WINDOW = 10
DEFAULT_BASE_LATENCY = 0.005  # seconds
DEFAULT_LATENCY_MS = 10.0


class AudioCollector(MetricCollector):
    """Collects latency/buffer/underrun metrics from an audio context"""

    name = "audio"

    def __init__(self, audio_context: Optional[AudioContextLike] = None,
                 logger: Optional[logging.Logger] = None):
        super().__init__(logger)
        self.audio_context = audio_context
        self.buffer_underruns = 0
        self.latency_history: Deque[float] = deque(maxlen=HISTORY_SIZE)
        self.processing_time_history: Deque[float] = deque(maxlen=HISTORY_SIZE)
        self.context_state_history: Deque[AudioContextState] = deque(maxlen=HISTORY_SIZE)

    async def initialize(self) -> None:
        self.logger.info("🔊 Initializing audio performance collector")

    def cleanup(self) -> None:
        self.latency_history.clear()
        self.processing_time_history.clear()
        self.context_state_history.clear()

    def set_audio_context(self, audio_context: Optional[AudioContextLike]) -> None:
        self.audio_context = audio_context

    def on_state_change(self, state: Any) -> None:
        """Record a state change pushed by the audio engine"""
        parsed = AudioContextState.parse(state)
        self.logger.info(f"🔊 Audio context state changed to: {parsed.value}")
        self.context_state_history.append(parsed)

    async def collect(self) -> SnapshotFragment:
        if self.audio_context is None:
            return SnapshotFragment(audio=AudioMetrics(
                latency=0.0,
                buffer_size=0,
                underruns=0,
                context_state=AudioContextState.SUSPENDED,
                sample_rate=DEFAULT_SAMPLE_RATE,
                processing_time=0.0
            ))

        started = time.perf_counter()
        latency = self._measure_latency()
        buffer_size = self._get_buffer_size()
        underruns = self._update_buffer_underruns()
        state = AudioContextState.parse(getattr(self.audio_context, 'state', None))
        processing_time = (time.perf_counter() - started) * 1000

        self.latency_history.append(latency)
        self.processing_time_history.append(processing_time)
        self.context_state_history.append(state)

        return SnapshotFragment(audio=AudioMetrics(
            latency=latency,
            buffer_size=buffer_size,
            underruns=underruns,
            context_state=state,
            sample_rate=self._sample_rate(),
            processing_time=processing_time
        ))

    def _sample_rate(self) -> float:
        sample_rate = getattr(self.audio_context, 'sample_rate', None)
        if not sample_rate or sample_rate <= 0:
            return DEFAULT_SAMPLE_RATE
        return float(sample_rate)

    def _measure_latency(self) -> float:
        """Latency in ms from context properties, else estimated from the buffer"""
        base_latency = getattr(self.audio_context, 'base_latency', None) or 0.0
        output_latency = getattr(self.audio_context, 'output_latency', None) or 0.0
        total_latency = (base_latency + output_latency) * 1000
        if total_latency > 0:
            return total_latency
        return self._estimate_latency_from_buffer()

    def _estimate_latency_from_buffer(self) -> float:
        buffer_size = self._get_buffer_size()
        if buffer_size > 0:
            return buffer_size / self._sample_rate() * 1000
        return DEFAULT_LATENCY_MS

    def _get_buffer_size(self) -> int:
        base_latency = getattr(self.audio_context, 'base_latency', None) or DEFAULT_BASE_LATENCY
        return math.ceil(base_latency * self._sample_rate())

    def _update_buffer_underruns(self) -> int:
        # Suspensions seen in the most recent state samples count as underruns
        recent = list(self.context_state_history)[-UNDERRUN_WINDOW:]
        self.buffer_underruns += sum(1 for s in recent if s == AudioContextState.SUSPENDED)
        return self.buffer_underruns

    def get_audio_performance_stats(self) -> Dict[str, float]:
        """Latency spread, context stability and processing efficiency (0-100 scores)"""
        latencies = list(self.latency_history)
        avg_latency = statistics.fmean(latencies) if latencies else 0.0
        latency_std = statistics.pstdev(latencies) if latencies else 0.0

        states = list(self.context_state_history)
        running = sum(1 for s in states if s == AudioContextState.RUNNING)
        context_stability = running / len(states) * 100 if states else 0.0

        processing = list(self.processing_time_history)
        avg_processing = statistics.fmean(processing) if processing else 0.0

        return {
            "average_latency": avg_latency,
            "min_latency": min(latencies) if latencies else 0.0,
            "max_latency": max(latencies) if latencies else 0.0,
            "latency_variation": latency_std / avg_latency * 100 if avg_latency > 0 else 0.0,
            "context_stability": context_stability,
            "processing_efficiency": max(0.0, 100 - avg_processing * 10) if avg_processing > 0 else 100.0
        }

    def is_performance_acceptable(self) -> bool:
        stats = self.get_audio_performance_stats()
        return (stats["average_latency"] < 100 and
                stats["context_stability"] > 80 and
                stats["latency_variation"] < 50)

    def get_optimization_recommendations(self) -> List[str]:
        recommendations = []
        stats = self.get_audio_performance_stats()

        if stats["average_latency"] > 100:
            recommendations.append("High audio latency detected - consider reducing buffer size")
        if stats["latency_variation"] > 50:
            recommendations.append("High latency variation - check for system performance issues")
        if stats["context_stability"] < 80:
            recommendations.append("Audio context instability - ensure the context is resumed after creation")
        if stats["processing_efficiency"] < 70:
            recommendations.append("Poor audio processing efficiency - optimize the audio callback")
        if self.buffer_underruns > 10:
            recommendations.append("High buffer underrun count - increase buffer size or optimize processing")

        if self.audio_context is None:
            recommendations.append("No audio context available - ensure audio system is properly initialized")
        elif AudioContextState.parse(getattr(self.audio_context, 'state', None)) != AudioContextState.RUNNING:
            recommendations.append("Audio context not running - it may need to be resumed")

        return recommendations

    def reset_underrun_counter(self) -> None:
        self.buffer_underruns = 0

    def get_audio_context_info(self) -> Optional[Dict[str, Any]]:
        if self.audio_context is None:
            return None
        return {
            "state": AudioContextState.parse(getattr(self.audio_context, 'state', None)).value,
            "sample_rate": self._sample_rate(),
            "base_latency": getattr(self.audio_context, 'base_latency', None),
            "output_latency": getattr(self.audio_context, 'output_latency', None)
        }
