"""
User Experience Collector
Input latency, load time, errors and interaction success fed by the host application
"""

import logging
import statistics
from collections import deque
from typing import Deque, Optional

from .collector_base import MetricCollector
from .performance_types import SnapshotFragment, UXMetrics

INPUT_LATENCY_SAMPLES = 60


class UXCollector(MetricCollector):
    name = "ux"

    def __init__(self, logger: Optional[logging.Logger] = None):
        super().__init__(logger)
        self.input_latencies: Deque[float] = deque(maxlen=INPUT_LATENCY_SAMPLES)
        self.load_time = 0.0
        self.error_count = 0
        self.interactions = 0
        self.successful_interactions = 0

    def record_input_latency(self, latency_ms: float) -> None:
        if latency_ms is None or latency_ms < 0:
            return
        self.input_latencies.append(float(latency_ms))

    def record_interaction(self, success: bool = True) -> None:
        self.interactions += 1
        if success:
            self.successful_interactions += 1

    def record_error(self) -> None:
        self.error_count += 1

    def set_load_time(self, load_time_ms: float) -> None:
        self.load_time = max(0.0, float(load_time_ms))

    def get_interaction_success(self) -> float:
        """Successful interactions as a percentage, 100 before any interaction"""
        if self.interactions == 0:
            return 100.0
        return self.successful_interactions / self.interactions * 100

    async def collect(self) -> SnapshotFragment:
        return SnapshotFragment(ux=UXMetrics(
            input_latency=statistics.fmean(self.input_latencies) if self.input_latencies else 0.0,
            load_time=self.load_time,
            error_count=self.error_count,
            interaction_success=self.get_interaction_success()
        ))

    def cleanup(self) -> None:
        self.input_latencies.clear()
