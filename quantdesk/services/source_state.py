"""Availability state of an external data source."""

from __future__ import annotations

import logging
import threading
from enum import Enum

logger = logging.getLogger(__name__)


class SourceAvailability(str, Enum):
    UNKNOWN = "UNKNOWN"
    AVAILABLE = "AVAILABLE"
    UNAVAILABLE = "UNAVAILABLE"


class DataSourceState:
    """UNKNOWN -> AVAILABLE | UNAVAILABLE.

    A failed attempt marks the source UNAVAILABLE and it is not attempted again
    until ``reset()``. ``record`` is the only writer.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._status = SourceAvailability.UNKNOWN
        self._lock = threading.Lock()

    @property
    def status(self) -> SourceAvailability:
        return self._status

    def should_attempt(self) -> bool:
        return self._status is not SourceAvailability.UNAVAILABLE

    def record(self, success: bool) -> SourceAvailability:
        with self._lock:
            if self._status is SourceAvailability.UNAVAILABLE:
                return self._status
            previous = self._status
            self._status = SourceAvailability.AVAILABLE if success else SourceAvailability.UNAVAILABLE
            if self._status is not previous:
                logger.info(f"Data source '{self.name}': {previous.value} -> {self._status.value}")
            return self._status

    def reset(self) -> None:
        with self._lock:
            self._status = SourceAvailability.UNKNOWN
