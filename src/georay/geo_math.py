"""
GeoRay Geo Math - Bearings, Distances and Angular Deltas

All angles are compass degrees (0 = North, 90 = East).
Scalar helpers use ``math``; the batch form used by the annotation store
runs over numpy arrays so a full reload is a single vectorised pass.
"""

import math
from typing import Optional, Tuple
from dataclasses import dataclass

import numpy as np


EARTH_RADIUS_M = 6371008.8  # Mean Earth radius (IUGG)


@dataclass(frozen=True)
class GeoLocation:
    """A geographic coordinate in decimal degrees."""
    latitude: float
    longitude: float
    altitude: Optional[float] = None  # Meters, informational only

    @property
    def is_valid(self) -> bool:
        """Finite and inside [-90, 90] x [-180, 180]."""
        lat, lon = self.latitude, self.longitude
        try:
            if not (math.isfinite(lat) and math.isfinite(lon)):
                return False
        except TypeError:
            return False
        return abs(lat) <= 90.0 and abs(lon) <= 180.0


def normalize_azimuth(degrees: float) -> float:
    """Wrap an angle into [0, 360)."""
    azimuth = degrees % 360.0
    # -1e-15 % 360 rounds to 360.0
    if azimuth >= 360.0:
        azimuth = 0.0
    return azimuth


def angular_delta(a: float, b: float) -> float:
    """
    Signed shortest-arc difference ``b - a`` in degrees.

    Always in [-180, 180] and exactly antisymmetric:
    ``angular_delta(a, b) == -angular_delta(b, a)``.

    Examples:
        angular_delta(350, 10) -> 20.0
        angular_delta(10, 350) -> -20.0
    """
    # IEEE remainder rounds ties to even, so +/-180 stay antisymmetric
    return math.remainder(b - a, 360.0)


def distance(origin: GeoLocation, target: GeoLocation) -> float:
    """Great-circle (haversine) distance in meters."""
    if origin.latitude == target.latitude and origin.longitude == target.longitude:
        return 0.0

    lat1 = math.radians(origin.latitude)
    lat2 = math.radians(target.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(target.longitude - origin.longitude)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))


def bearing(origin: GeoLocation, target: GeoLocation) -> float:
    """
    Initial great-circle bearing from origin to target.

    Returns:
        Azimuth in [0, 360). Coincident points give 0.
    """
    if origin.latitude == target.latitude and origin.longitude == target.longitude:
        return 0.0

    lat1 = math.radians(origin.latitude)
    lat2 = math.radians(target.latitude)
    dlon = math.radians(target.longitude - origin.longitude)

    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    return normalize_azimuth(math.degrees(math.atan2(y, x)))


def distances_and_bearings(
    origin: GeoLocation,
    latitudes: np.ndarray,
    longitudes: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Vectorised distance + bearing from one observer to many targets.

    Args:
        origin: Observer location
        latitudes: Target latitudes (degrees)
        longitudes: Target longitudes (degrees)

    Returns:
        (distances_m, azimuths_deg) arrays, same shape as the inputs
    """
    lat1 = math.radians(origin.latitude)
    lon1 = math.radians(origin.longitude)
    lat2 = np.radians(np.asarray(latitudes, dtype=np.float64))
    lon2 = np.radians(np.asarray(longitudes, dtype=np.float64))

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    # === Haversine ===
    h = np.sin(dlat / 2) ** 2 + math.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2) ** 2
    h = np.clip(h, 0.0, 1.0)
    distances = 2 * EARTH_RADIUS_M * np.arcsin(np.sqrt(h))

    # === Initial bearing ===
    y = np.sin(dlon) * np.cos(lat2)
    x = math.cos(lat1) * np.sin(lat2) - math.sin(lat1) * np.cos(lat2) * np.cos(dlon)
    azimuths = np.mod(np.degrees(np.arctan2(y, x)), 360.0)
    azimuths[azimuths >= 360.0] = 0.0

    coincident = (dlat == 0) & (dlon == 0)
    distances[coincident] = 0.0
    azimuths[coincident] = 0.0

    return distances, azimuths
