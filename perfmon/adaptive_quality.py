"""
Adaptive Quality Manager
Steps the active quality profile up or down from performance snapshots
and pushes the chosen settings to the renderer and application store
"""

import logging
import statistics
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from .config_manager import AdaptiveQualityConfig
from .device_detection import (
    DeviceCapabilities, DeviceConstraints, DeviceTier, classify_device_tier,
    detect_device_capabilities, detect_device_constraints, is_mobile_environment,
    select_initial_profile
)
from .error_handling import SinkError
from .interfaces import AudioContextLike, DeviceEnvironment, RenderSink, StoreSink
from .performance_types import PerformanceSnapshot
from .quality_profiles import QualityProfile, find_profile, profile_level, step_profile
from .scheduler import Clock, SystemClock
from .structured_logging import log_performance_event

DEFAULT_FPS = 60.0
DEFAULT_BATTERY = 100.0


@dataclass(frozen=True)
class AdaptationRecord:
    """One profile change"""
    timestamp: float
    profile: str
    profile_name: str
    reason: str
    from_profile: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "profile": self.profile,
            "profile_name": self.profile_name,
            "reason": self.reason,
            "from_profile": self.from_profile
        }


class AdaptiveQualityManager:
    """
    Closed-loop quality controller.

    Device capabilities decide the starting profile. After that every
    snapshot passed to process_metrics() may step the profile, at most once
    per cooldown window:

    - critical (FPS, memory pressure or battery) -> down two levels
    - degraded (FPS vs target, memory pressure, underruns) -> down one
    - battery saving -> down one
    - everything comfortably within budget -> up one
    """

    def __init__(self, renderer: Optional[RenderSink] = None,
                 audio_context: Optional[AudioContextLike] = None,
                 store: Optional[StoreSink] = None,
                 config: Optional[AdaptiveQualityConfig] = None,
                 capabilities: Optional[DeviceCapabilities] = None,
                 environment: Optional[DeviceEnvironment] = None,
                 clock: Optional[Clock] = None,
                 gl_limits: Optional[Dict[str, int]] = None,
                 logger: Optional[logging.Logger] = None):
        self.renderer = renderer
        self.audio_context = audio_context
        self.store = store
        self.config = config or AdaptiveQualityConfig()
        self.environment = environment or DeviceEnvironment.from_host()
        self.clock = clock or SystemClock()
        self.logger = logger or logging.getLogger(__name__)

        # Capabilities first, tier and constraints depend on them
        self.device_capabilities = capabilities or detect_device_capabilities()
        self.is_mobile = is_mobile_environment(self.environment)
        self.device_tier = classify_device_tier(self.device_capabilities, self.is_mobile)
        self.device_constraints = detect_device_constraints(self.device_tier, gl_limits)
        self.current_profile = select_initial_profile(self.device_tier)

        self.enabled = self.config.enabled
        self.performance_window: Deque[PerformanceSnapshot] = deque(maxlen=self.config.window_size)
        self.adaptation_history: Deque[AdaptationRecord] = deque(maxlen=self.config.adaptation_log_size)
        self.last_adaptation: Optional[float] = None
        # Display size read once, profiles scale from it rather than the current size
        self._base_canvas_size: Optional[Tuple[float, float]] = None

        self.logger.info(f"🖥️ Device tier detected: {self.device_tier.value}")
        self.logger.info(f"🎛️ Initial quality profile: {self.current_profile.name}")

    # Decision loop

    def process_metrics(self, snapshot: PerformanceSnapshot) -> Optional[AdaptationRecord]:
        """
        Feed one snapshot to the controller.

        Returns:
            The adaptation record when the profile changed, otherwise None
        """
        self.performance_window.append(snapshot)

        if not self.enabled:
            return None

        now = self.clock.now_ms()
        if self.last_adaptation is not None and now - self.last_adaptation < self.config.cooldown:
            return None

        decision = self._decide_adaptation(snapshot)
        if decision is None:
            return None

        steps, reason = decision
        target = step_profile(self.current_profile, steps)
        if target == self.current_profile:
            # Already at the floor or ceiling
            return None
        return self._apply_quality_profile(target, reason)

    def _decide_adaptation(self, snapshot: PerformanceSnapshot) -> Optional[Tuple[int, str]]:
        cfg = self.config
        profile = self.current_profile

        avg_fps = self._get_average_fps()
        memory_pressure = snapshot.memory.pressure
        audio_latency = snapshot.audio.latency
        battery_level, charging = self._battery_state(snapshot)

        if avg_fps < cfg.critical_fps:
            return -2, "critical_fps_drop"
        if memory_pressure > cfg.critical_memory_pressure:
            return -2, "critical_memory_pressure"
        if battery_level < cfg.critical_battery and not charging:
            return -2, "critical_battery_level"

        if (avg_fps < profile.fps_target * cfg.degraded_fps_ratio or
                memory_pressure > cfg.degraded_memory_pressure or
                snapshot.audio.underruns > cfg.max_underruns):
            return -1, "performance_degradation"

        if battery_level < cfg.battery_saving_level and not charging:
            return -1, "battery_saving"

        if (avg_fps > profile.fps_target * cfg.improvement_fps_ratio and
                memory_pressure < cfg.improvement_memory_pressure and
                audio_latency < profile.audio_latency * cfg.improvement_latency_ratio and
                battery_level > cfg.improvement_battery):
            return 1, "performance_improvement"

        return None

    @staticmethod
    def _battery_state(snapshot: PerformanceSnapshot) -> Tuple[float, bool]:
        battery = snapshot.mobile.battery if snapshot.mobile else None
        if battery is None:
            return DEFAULT_BATTERY, False
        return battery.level, battery.charging

    def _get_average_fps(self) -> float:
        """Mean FPS over the most recent samples that reported one"""
        recent = list(self.performance_window)[-self.config.fps_window:]
        fps_values = [s.rendering.fps for s in recent if s.rendering.fps > 0]
        if not fps_values:
            return DEFAULT_FPS
        return statistics.fmean(fps_values)

    # Applying profiles

    def _apply_quality_profile(self, profile: QualityProfile, reason: str) -> AdaptationRecord:
        previous = self.current_profile
        self.current_profile = profile

        if self.renderer is not None:
            self._apply_renderer_settings(profile)
        if self.audio_context is not None:
            self._apply_audio_settings(profile)
        if self.store is not None:
            self._apply_store_settings(profile)

        now = self.clock.now_ms()
        record = AdaptationRecord(
            timestamp=now,
            profile=profile.key,
            profile_name=profile.name,
            reason=reason,
            from_profile=previous.key
        )
        self.adaptation_history.append(record)
        self.last_adaptation = now

        log_performance_event(
            self.logger, 'quality_adapted',
            f"🎛️ Quality adapted: {previous.name} → {profile.name} ({reason})",
            profile=profile.key, from_profile=previous.key, reason=reason
        )
        return record

    def _report_sink_failure(self, sink: str, action: str, error: Exception) -> None:
        failure = SinkError(sink, f"Failed to apply {action}: {error}", error)
        self.logger.warning(f"⚠️ {failure}", extra={"structured_data": failure.to_dict()})

    def _apply_renderer_settings(self, profile: QualityProfile) -> None:
        set_pixel_ratio = getattr(self.renderer, 'set_pixel_ratio', None)
        if set_pixel_ratio is not None:
            try:
                set_pixel_ratio(self.environment.device_pixel_ratio * profile.render_scale)
            except Exception as e:
                self._report_sink_failure("renderer", "pixel ratio", e)

        set_size = getattr(self.renderer, 'set_size', None)
        get_canvas_size = getattr(self.renderer, 'get_canvas_size', None)
        if set_size is not None and get_canvas_size is not None:
            try:
                if self._base_canvas_size is None:
                    self._base_canvas_size = tuple(get_canvas_size())
                width, height = self._base_canvas_size
                set_size(width * profile.render_scale, height * profile.render_scale)
            except Exception as e:
                self._report_sink_failure("renderer", "canvas size", e)

    def _apply_audio_settings(self, profile: QualityProfile) -> None:
        # The audio engine owns its buffers, only the target is surfaced
        self.logger.info(f"🔊 Audio latency target: {profile.audio_latency}ms")

    def _apply_store_settings(self, profile: QualityProfile) -> None:
        set_state = getattr(self.store, 'set_state', None)
        if set_state is None:
            return
        try:
            set_state({
                "performanceProfile": profile,
                "maxParticles": profile.particle_count,
                "effectComplexity": profile.effect_complexity,
                "renderScale": profile.render_scale,
                "qualityLevel": profile.name
            })
        except Exception as e:
            self._report_sink_failure("store", "store settings", e)

    # Manual control

    def set_quality_profile(self, name: str) -> Optional[AdaptationRecord]:
        """Apply a profile by key or display name, bypassing decisions and cooldown"""
        profile = find_profile(name)
        if profile is None:
            self.logger.warning(f"⚠️ Unknown quality profile: {name}")
            return None
        return self._apply_quality_profile(profile, "manual_override")

    def set_enabled(self, enabled: bool) -> None:
        """Suspend or resume automatic adaptation, manual overrides always work"""
        self.enabled = enabled
        self.logger.info(f"🎛️ Adaptive quality management {'enabled' if enabled else 'disabled'}")

    def attach_to_monitor(self, monitor) -> Callable[[], None]:
        """
        Feed every monitor tick into process_metrics.

        Returns the unsubscribe function. Monitors configured without
        auto optimization are left alone and a no-op is returned.
        """
        if not monitor.config.enable_auto_optimization:
            self.logger.info("🎛️ Auto optimization disabled for this monitor, not attaching")
            return lambda: None
        return monitor.subscribe(lambda snapshot, alerts: self.process_metrics(snapshot))

    # Queries

    def is_enabled(self) -> bool:
        return self.enabled

    def get_current_profile(self) -> QualityProfile:
        return self.current_profile

    def get_current_level(self) -> int:
        return profile_level(self.current_profile)

    def get_device_tier(self) -> DeviceTier:
        return self.device_tier

    def get_device_capabilities(self) -> DeviceCapabilities:
        return self.device_capabilities

    def get_device_constraints(self) -> DeviceConstraints:
        return self.device_constraints

    def get_adaptation_history(self) -> List[AdaptationRecord]:
        return list(self.adaptation_history)

    def get_quality_recommendations(self) -> List[str]:
        if not self.performance_window:
            return ["Insufficient performance data for recommendations"]

        recommendations = []
        latest = self.performance_window[-1]
        avg_fps = self._get_average_fps()

        if avg_fps < 30:
            recommendations.append("Consider reducing visual effects complexity")
        if latest.memory.pressure > 0.8:
            recommendations.append("High memory usage - reduce particle count or texture quality")
        if latest.audio.underruns > self.config.max_underruns:
            recommendations.append("Audio buffer underruns detected - increase audio buffer size")
        if self.device_tier == DeviceTier.LOW and self.current_profile.key != "potato":
            recommendations.append("Device has limited capabilities - consider lower quality preset")
        if self.device_tier == DeviceTier.HIGH and self.current_profile.key == "potato":
            recommendations.append("Device can handle higher quality - consider upgrading preset")

        return recommendations

    def get_performance_grade(self) -> str:
        if not self.performance_window:
            return "fair"

        latest = self.performance_window[-1]
        avg_fps = self._get_average_fps()
        memory_pressure = latest.memory.pressure
        audio_latency = latest.audio.latency

        if avg_fps >= 55 and memory_pressure < 0.6 and audio_latency < 50:
            return "excellent"
        elif avg_fps >= 45 and memory_pressure < 0.75 and audio_latency < 100:
            return "good"
        elif avg_fps >= 30 and memory_pressure < 0.85 and audio_latency < 150:
            return "fair"
        return "poor"
