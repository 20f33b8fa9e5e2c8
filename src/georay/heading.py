"""
GeoRay Heading - Low-pass Compass Smoothing with North-Crossing Detection
"""

import logging
from dataclasses import dataclass
from enum import Enum

from .geo_math import normalize_azimuth


class NorthRegion(Enum):
    """Where the smoothed heading sits relative to North."""
    NORTH_LEFT = -1    # 320 - 360
    NEUTRAL = 0
    NORTH_RIGHT = 1    # 0 - 40


@dataclass
class HeadingState:
    """Smoothed heading and its north region."""
    heading: float = 0.0
    region: NorthRegion = NorthRegion.NEUTRAL


class HeadingSmoother:
    """
    Exponential smoothing of raw compass samples.

    smoothed = raw * factor + smoothed * (1 - factor)

    A jump of more than SNAP_THRESHOLD_DEG between the previous smoothed
    value and the raw sample (numeric difference, so crossing 0/360 counts)
    snaps straight to the raw heading instead of blending. Blending across
    the wrap would sweep the overlay through the whole circle.
    """

    SNAP_THRESHOLD_DEG = 50.0
    NORTH_THRESHOLD_DEG = 40.0

    def __init__(self, smoothing_factor: float = 1.0):
        """
        Args:
            smoothing_factor: In (0, 1]. Lower = smoother, 1 = no smoothing.
        """
        self._factor = 1.0
        self.smoothing_factor = smoothing_factor
        self._state = HeadingState()
        self._initialized = False
        self.logger = logging.getLogger("HeadingSmoother")

    @property
    def smoothing_factor(self) -> float:
        return self._factor

    @smoothing_factor.setter
    def smoothing_factor(self, value: float):
        if not 0.0 < value <= 1.0:
            raise ValueError(f"heading smoothing factor must be in (0, 1], got {value}")
        self._factor = float(value)

    @property
    def heading(self) -> float:
        return self._state.heading

    @property
    def region(self) -> NorthRegion:
        return self._state.region

    @property
    def state(self) -> HeadingState:
        return HeadingState(self._state.heading, self._state.region)

    @classmethod
    def region_for(cls, heading: float) -> NorthRegion:
        if heading < cls.NORTH_THRESHOLD_DEG:
            return NorthRegion.NORTH_RIGHT
        if heading > 360.0 - cls.NORTH_THRESHOLD_DEG:
            return NorthRegion.NORTH_LEFT
        return NorthRegion.NEUTRAL

    def update(self, raw_heading: float) -> bool:
        """
        Feed one raw sample (one timer tick).

        Returns:
            True if the north region changed since the previous tick
        """
        raw = normalize_azimuth(raw_heading)
        previous = self._state.heading

        if (
            not self._initialized
            or self._factor == 1.0
            or abs(previous - raw) > self.SNAP_THRESHOLD_DEG
        ):
            smoothed = raw
            self._initialized = True
        else:
            smoothed = raw * self._factor + previous * (1.0 - self._factor)

        region = self.region_for(smoothed)
        changed = region != self._state.region
        if changed:
            self.logger.debug(f"North region {self._state.region.name} -> {region.name} at {smoothed:.1f}°")

        self._state = HeadingState(heading=normalize_azimuth(smoothed), region=region)
        return changed

    def reset(self):
        self._state = HeadingState()
        self._initialized = False
