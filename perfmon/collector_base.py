"""
Metric Collector Contract
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from .performance_types import SnapshotFragment


class MetricCollector(ABC):
    """
    Base class for a named source of one slice of a performance snapshot.

    collect() must return quickly and degrade to defaults when optional
    inputs are missing. Real failures may raise CollectorError; the monitor
    catches them and skips the collector for that tick.
    """

    name: str = "collector"

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(self.__class__.__module__)
        self.enabled = True

    async def initialize(self) -> None:
        """Prepare resources before the first tick"""

    def cleanup(self) -> None:
        """Release resources after the monitor stops"""

    @abstractmethod
    async def collect(self) -> SnapshotFragment:
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, enabled={self.enabled})"
