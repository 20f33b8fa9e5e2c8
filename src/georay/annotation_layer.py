"""
GeoRay Annotation Layer - Points of Interest and Their View Handles

Holds the annotation set and the per-cycle derived fields:
- distance_from_user / azimuth: recomputed from the user location
- vertical_level: stacking index from the previous layout pass
- active: whether the annotation survived the activation caps

Views are owned by the presentation layer. An AnnotationView only keeps a
weak reference back to its annotation; the store never owns a view.
"""

import logging
import uuid
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from .geo_math import GeoLocation, distances_and_bearings


class RecomputeScope(Enum):
    """Which annotations get distance/azimuth recomputed."""
    ALL = "all"
    ACTIVE_ONLY = "active_only"


@dataclass(eq=False)
class Annotation:
    """
    A geo-referenced point of interest.

    Attributes:
        title: Display title
        location: Geographic location
        annotation_id: Stable opaque identity
        distance_from_user: Meters from the user (derived)
        azimuth: Bearing from the user in [0, 360) (derived)
        vertical_level: Stacking level from the last layout pass (derived)
        active: Eligible for display this cycle (derived)
    """
    title: str
    location: GeoLocation
    annotation_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])

    distance_from_user: float = 0.0
    azimuth: float = 0.0
    vertical_level: int = 0
    active: bool = False

    def reset_derived(self):
        """Clear every field computed by the layout pipeline."""
        self.distance_from_user = 0.0
        self.azimuth = 0.0
        self.vertical_level = 0
        self.active = False


class AnnotationView:
    """
    Presentational handle bound 1:1 to an active annotation.

    Subclass and override bind_ui() to refresh visual content when
    distance/azimuth change. Keep views lightweight.
    """

    def __init__(self, width: float = 100.0, height: float = 60.0):
        self.width = width
        self.height = height
        self.position: Tuple[float, float] = (0.0, 0.0)  # Overlay coordinates
        self.attached = False
        self._annotation_ref: Optional[weakref.ref] = None

    @property
    def annotation(self) -> Optional[Annotation]:
        if self._annotation_ref is None:
            return None
        return self._annotation_ref()

    @annotation.setter
    def annotation(self, value: Optional[Annotation]):
        self._annotation_ref = weakref.ref(value) if value is not None else None

    @property
    def size(self) -> Tuple[float, float]:
        return (self.width, self.height)

    def bind_ui(self):
        """Called after distance/azimuth are recomputed."""


class ViewProvider(ABC):
    """Realizes annotation views. The engine binds/unbinds, never draws."""

    @abstractmethod
    def view_for_annotation(self, annotation: Annotation) -> Optional[AnnotationView]:
        """Return a view handle for an active annotation, or None."""

    def annotations_for_location(self, location: GeoLocation) -> Optional[List[Annotation]]:
        """
        Optional data-source hook for reload-location updates.

        Return a fresh annotation set for the new location, or None to
        just reload the current one.
        """
        return None


class AnnotationStore:
    """
    Canonical holder of the annotation set.

    Mutated only from the layout engine's owning thread.
    """

    def __init__(self):
        self._annotations: List[Annotation] = []
        self._by_id: Dict[str, Annotation] = {}
        self.logger = logging.getLogger("AnnotationStore")

    def set_annotations(self, annotations: Iterable[Annotation]) -> int:
        """
        Replace the working set. Annotations with invalid locations are dropped,
        as are repeats of an annotation_id already seen (first one wins).

        Returns:
            Number of annotations kept
        """
        valid: List[Annotation] = []
        by_id: Dict[str, Annotation] = {}
        dropped = 0
        duplicates = 0
        for annotation in annotations:
            if annotation.location is None or not annotation.location.is_valid:
                dropped += 1
                continue
            if annotation.annotation_id in by_id:
                duplicates += 1
                continue
            annotation.reset_derived()
            valid.append(annotation)
            by_id[annotation.annotation_id] = annotation

        self._annotations = valid
        self._by_id = by_id

        if dropped:
            self.logger.warning(f"Dropped {dropped} annotation(s) with invalid location")
        if duplicates:
            self.logger.warning(f"Dropped {duplicates} annotation(s) with duplicate annotation_id")
        self.logger.info(f"Annotation set replaced: {len(valid)} annotation(s)")
        return len(valid)

    def recompute_distance_and_azimuth(
        self,
        user_location: Optional[GeoLocation],
        sort_by_distance: bool,
        scope: RecomputeScope = RecomputeScope.ALL
    ) -> bool:
        """
        Refresh distance_from_user and azimuth from the user location.

        Args:
            user_location: Current user fix (None = nothing to do)
            sort_by_distance: Reorder the full set ascending by distance
            scope: ALL, or ACTIVE_ONLY (falls back to ALL when nothing is active)

        Returns:
            True if anything was computed
        """
        if user_location is None:
            return False

        targets = self._annotations
        if scope == RecomputeScope.ACTIVE_ONLY:
            active = self.active_annotations
            if active:
                targets = active

        if targets:
            lats = np.fromiter((a.location.latitude for a in targets), dtype=np.float64, count=len(targets))
            lons = np.fromiter((a.location.longitude for a in targets), dtype=np.float64, count=len(targets))
            distances, azimuths = distances_and_bearings(user_location, lats, lons)

            for annotation, dist, az in zip(targets, distances, azimuths):
                annotation.distance_from_user = float(dist)
                annotation.azimuth = float(az)

        if sort_by_distance:
            # Stable: equal distances keep insertion order
            self._annotations.sort(key=lambda a: a.distance_from_user)

        return True

    def get(self, annotation_id: str) -> Optional[Annotation]:
        return self._by_id.get(annotation_id)

    @property
    def annotations(self) -> List[Annotation]:
        return list(self._annotations)

    @property
    def active_annotations(self) -> List[Annotation]:
        return [a for a in self._annotations if a.active]

    def __len__(self) -> int:
        return len(self._annotations)

    def __iter__(self):
        return iter(self._annotations)


class ActivationFilter:
    """
    Decides which annotations are active this cycle.

    Caps (None = not checked):
    - max_visible_annotations: running count of actives
    - max_vertical_level: checked against the level from the PREVIOUS pass,
      and only for annotations that were active in that pass
    - max_distance: meters, 0 = unbounded

    Level assignment depends on the active set and activation depends on the
    levels, so the two settle across cycles rather than within one. An
    annotation pushed over the level cap this cycle is deactivated next cycle.
    Inactive annotations sit at the off-screen level, which says nothing about
    where they would stack, so they are judged on count and distance alone.
    """

    @staticmethod
    def apply(
        annotations: Iterable[Annotation],
        max_visible_annotations: Optional[int] = None,
        max_vertical_level: Optional[int] = None,
        max_distance: Optional[float] = None
    ) -> List[Annotation]:
        """
        Set every annotation's active flag and return the active ones in order.

        Expects annotations already sorted by distance when the count cap matters.
        """
        active: List[Annotation] = []
        count = 0

        for annotation in annotations:
            # Count cap short-circuits the other two checks, scan continues
            if max_visible_annotations is not None and count >= max_visible_annotations:
                annotation.active = False
                continue

            level_ok = (
                max_vertical_level is None
                or not annotation.active
                or annotation.vertical_level <= max_vertical_level
            )
            distance_ok = (
                max_distance is None
                or max_distance == 0
                or annotation.distance_from_user <= max_distance
            )

            if level_ok and distance_ok:
                annotation.active = True
                active.append(annotation)
                count += 1
            else:
                annotation.active = False

        return active
