"""
Mobile Performance Collector
Battery, network, touch latency, device motion and orientation on mobile hosts
"""

import asyncio
import logging
import statistics
from collections import deque
from typing import Deque, Dict, List, Optional

import psutil

from .collector_base import MetricCollector
from .device_detection import is_mobile_environment
from .interfaces import BatteryProvider, DeviceEnvironment, NetworkInfoProvider
from .performance_types import BatteryInfo, MobileMetrics, NetworkInfo, SnapshotFragment
from .scheduler import Clock, SystemClock

TOUCH_HISTORY_SIZE = 60
ORIENTATION_HISTORY_SIZE = 10

NETWORK_QUALITY_SCORES = {
    'ethernet': 100,
    'wifi': 100,
    '4g': 100,
    '3g': 70,
    '2g': 40,
    'slow-2g': 20,
}


class PsutilBatteryProvider:
    """Battery state from the host power sensors"""

    async def get_battery(self) -> Optional[BatteryInfo]:
        loop = asyncio.get_running_loop()
        battery = await loop.run_in_executor(None, psutil.sensors_battery)
        if battery is None:
            return None
        return BatteryInfo(level=float(battery.percent), charging=bool(battery.power_plugged))


class PsutilNetworkProvider:
    """Connection type and link speed of the first active non-loopback interface"""

    def get_network_info(self) -> Optional[NetworkInfo]:
        for name, stats in psutil.net_if_stats().items():
            if not stats.isup or name == 'lo' or name.startswith('lo'):
                continue
            return NetworkInfo(
                type=self._classify_interface(name),
                downlink=float(stats.speed) if stats.speed > 0 else None
            )
        return None

    @staticmethod
    def _classify_interface(name: str) -> str:
        lowered = name.lower()
        if lowered.startswith(('wlan', 'wl', 'wi-fi', 'wifi')):
            return 'wifi'
        if lowered.startswith(('rmnet', 'wwan', 'ccmni', 'pdp')):
            return 'cellular'
        if lowered.startswith(('eth', 'en', 'ethernet')):
            return 'ethernet'
        return 'unknown'


class MobileCollector(MetricCollector):
    """
    Collects mobile-specific metrics.

    The collector enables itself only when the environment looks like a mobile
    device; otherwise collect() returns an empty fragment.
    """

    name = "mobile"

    def __init__(self, environment: Optional[DeviceEnvironment] = None,
                 battery_provider: Optional[BatteryProvider] = None,
                 network_provider: Optional[NetworkInfoProvider] = None,
                 provider_timeout: float = 0.5,
                 clock: Optional[Clock] = None,
                 enabled: Optional[bool] = None,
                 logger: Optional[logging.Logger] = None):
        super().__init__(logger)
        self.environment = environment or DeviceEnvironment.from_host()
        self.battery_provider = battery_provider or PsutilBatteryProvider()
        self.network_provider = network_provider or PsutilNetworkProvider()
        self.provider_timeout = provider_timeout
        self.clock = clock or SystemClock()
        self.enabled = is_mobile_environment(self.environment) if enabled is None else enabled

        self.touch_latency_history: Deque[float] = deque(maxlen=TOUCH_HISTORY_SIZE)
        self.orientation_history: Deque[str] = deque(maxlen=ORIENTATION_HISTORY_SIZE)
        self.last_battery: Optional[BatteryInfo] = None
        self.last_network: Optional[NetworkInfo] = None
        self._touch_start: Optional[float] = None

    async def initialize(self) -> None:
        if not self.enabled:
            return
        self.logger.info("📱 Initializing mobile performance collector")
        if self.environment.orientation:
            self.orientation_history.append(self.environment.orientation)

    def cleanup(self) -> None:
        self.touch_latency_history.clear()
        self.orientation_history.clear()
        self._touch_start = None

    async def collect(self) -> SnapshotFragment:
        if not self.enabled:
            return SnapshotFragment()

        self.last_battery = await self._get_battery_info()
        self.last_network = self._get_network_info()

        return SnapshotFragment(mobile=MobileMetrics(
            battery=self.last_battery,
            network=self.last_network,
            device_motion=self.environment.device_motion,
            touch_latency=self.get_average_touch_latency(),
            orientation=self.orientation_history[-1] if self.orientation_history else None
        ))

    async def _get_battery_info(self) -> Optional[BatteryInfo]:
        try:
            battery = await asyncio.wait_for(self.battery_provider.get_battery(),
                                             timeout=self.provider_timeout)
        except asyncio.TimeoutError:
            self.logger.warning(f"⚠️ Battery query timed out after {self.provider_timeout}s")
            return None
        except Exception as e:
            self.logger.warning(f"⚠️ Failed to get battery info: {e}")
            return None

        if battery is None:
            return None
        return BatteryInfo(level=round(battery.level), charging=battery.charging)

    def _get_network_info(self) -> Optional[NetworkInfo]:
        try:
            return self.network_provider.get_network_info()
        except Exception as e:
            self.logger.warning(f"⚠️ Failed to get network info: {e}")
            return None

    def on_touch_start(self) -> None:
        self._touch_start = self.clock.now_ms()

    def on_touch_end(self) -> None:
        if self._touch_start is None:
            return
        self.touch_latency_history.append(max(0.0, self.clock.now_ms() - self._touch_start))
        self._touch_start = None

    def on_orientation_change(self, orientation: str) -> None:
        self.orientation_history.append(orientation or "unknown")

    def get_average_touch_latency(self) -> float:
        if not self.touch_latency_history:
            return 0.0
        return statistics.fmean(self.touch_latency_history)

    def get_mobile_performance_stats(self) -> Dict[str, int]:
        """Battery, touch, network and stability scores (0-100)"""
        battery_efficiency = 100
        touch_responsiveness = 100
        network_quality = 100
        device_stability = 100

        if self.last_battery is not None:
            if self.last_battery.level < 20:
                battery_efficiency = 30
            elif self.last_battery.level < 50:
                battery_efficiency = 70
            if self.last_battery.charging:
                battery_efficiency = min(100, battery_efficiency + 20)

        if self.touch_latency_history:
            avg_latency = self.get_average_touch_latency()
            if avg_latency > 100:
                touch_responsiveness = 40
            elif avg_latency > 50:
                touch_responsiveness = 70
            elif avg_latency > 25:
                touch_responsiveness = 85

        if self.last_network is not None:
            network_quality = NETWORK_QUALITY_SCORES.get(self.last_network.type, 60)

        orientation_changes = len(self.orientation_history)
        if orientation_changes > 5:
            device_stability = 60
        elif orientation_changes > 2:
            device_stability = 80

        return {
            "battery_efficiency": battery_efficiency,
            "touch_responsiveness": touch_responsiveness,
            "network_quality": network_quality,
            "device_stability": device_stability
        }

    def is_power_saving_mode(self) -> bool:
        if self.last_battery is None:
            return False
        return self.last_battery.level < 20 and not self.last_battery.charging

    def estimate_thermal_state(self) -> str:
        """Rough thermal estimate from touch latency and orientation churn"""
        avg_touch_latency = self.get_average_touch_latency()
        orientation_changes = len(self.orientation_history)

        if avg_touch_latency > 150:
            return "critical"
        if avg_touch_latency > 100:
            return "hot"
        if avg_touch_latency > 75:
            return "warm"
        if orientation_changes > 8:
            return "hot"
        if orientation_changes > 5:
            return "warm"
        return "normal"

    def get_optimization_recommendations(self) -> List[str]:
        recommendations = []
        stats = self.get_mobile_performance_stats()

        if stats["battery_efficiency"] < 50:
            recommendations.append("Low battery detected - enable power saving mode")
        if stats["touch_responsiveness"] < 70:
            recommendations.append("High touch latency - optimize touch event handling")
        if stats["network_quality"] < 50:
            recommendations.append("Poor network quality - reduce network requests and optimize assets")
        if stats["device_stability"] < 70:
            recommendations.append("Device instability detected - implement orientation change handling")
        if self.is_power_saving_mode():
            recommendations.append("Critical battery level - reduce CPU and GPU intensive operations")
        if self.last_network is not None and self.last_network.type == 'slow-2g':
            recommendations.append("Very slow network - consider offline mode or minimal functionality")

        return recommendations
