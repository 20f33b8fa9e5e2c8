"""
GeoRay Vertical Layout - Stacking Levels for Overlapping Annotations

Three stages, each a pure function of its inputs:

    seed_levels     closer annotations start lower, spread over [0, max level]
         │
         ▼
    resolve         greedy per-level pass: of two colliding annotations on the
         │          same level, the farther one moves up a level
         ▼
    compact         shift so the lowest used level is 0

Levels are returned as a dict keyed by annotation_id; the caller writes them
back onto the annotations. The greedy pass is order-sensitive and not a
globally minimal packing.
"""

from typing import Dict, List, Optional, Sequence

from .annotation_layer import Annotation
from .geo_math import angular_delta


LevelMap = Dict[str, int]


class VerticalLayoutResolver:
    """
    Assigns collision-free vertical levels to active annotations.

    Two annotations on one level collide when their azimuths are within
    one annotation width (in degrees, never below MIN_COLLISION_WIDTH_DEG).
    """

    MIN_COLLISION_WIDTH_DEG = 5.0

    def __init__(self, max_vertical_level: int = 5, pixels_per_degree: float = 14.0):
        self.max_vertical_level = max_vertical_level
        self.pixels_per_degree = pixels_per_degree

    @property
    def off_screen_level(self) -> int:
        """Sentinel level for annotations that must not be drawn."""
        return self.max_vertical_level + 1

    def collision_width(self, annotation_width_px: float) -> float:
        """Annotation view width in degrees, floored at 5°."""
        width_deg = annotation_width_px / self.pixels_per_degree if self.pixels_per_degree > 0 else 0.0
        return max(width_deg, self.MIN_COLLISION_WIDTH_DEG)

    def seed_levels(
        self,
        annotations: Sequence[Annotation],
        active: Sequence[Annotation],
        max_distance: float = 0.0
    ) -> Optional[LevelMap]:
        """
        Initial levels proportional to normalized distance.

        Args:
            annotations: Full set (inactive ones get the off-screen level)
            active: Active annotations, ascending by distance
            max_distance: Configured cap; when > 0 the range is [0, max_distance]

        Returns:
            Level map for every annotation, or None if nothing is active
        """
        if not active:
            return None

        min_d = active[0].distance_from_user
        max_d = active[-1].distance_from_user
        if max_distance > 0:
            min_d = 0.0
            max_d = max_distance

        delta = max_d - min_d
        if delta <= 0:
            delta = 1.0

        levels: LevelMap = {a.annotation_id: self.off_screen_level for a in annotations}
        for annotation in active:
            fraction = (annotation.distance_from_user - min_d) / delta
            levels[annotation.annotation_id] = int(fraction * self.max_vertical_level)
        return levels

    def resolve(
        self,
        active: Sequence[Annotation],
        levels: LevelMap,
        collision_width_deg: float
    ) -> LevelMap:
        """
        Push colliding annotations up, level by level, then compact.

        Annotations above max_vertical_level are left where they are.

        Returns:
            New level map (input is not modified)
        """
        if not active:
            return dict(levels)

        levels = dict(levels)
        by_id = {a.annotation_id: a for a in active}

        # One bucket per level, in active order
        buckets: Dict[int, List[str]] = {lvl: [] for lvl in range(self.max_vertical_level + 1)}
        for annotation in active:
            level = levels.get(annotation.annotation_id, annotation.vertical_level)
            levels[annotation.annotation_id] = level
            if 0 <= level <= self.max_vertical_level:
                buckets[level].append(annotation.annotation_id)

        min_level: Optional[int] = None

        for level in range(self.max_vertical_level + 1):
            bucket = buckets[level]
            next_bucket = buckets.get(level + 1)  # None above the top level

            for i, id1 in enumerate(bucket):
                if levels[id1] != level:
                    continue  # Already moved up by an earlier pair
                a1 = by_id[id1]

                for id2 in bucket[i + 1:]:
                    if levels[id2] != level:
                        continue
                    a2 = by_id[id2]

                    if abs(angular_delta(a1.azimuth, a2.azimuth)) > collision_width_deg:
                        continue

                    # Farther one moves up
                    if a1.distance_from_user > a2.distance_from_user:
                        levels[id1] += 1
                        if next_bucket is not None:
                            next_bucket.append(id1)
                        break
                    levels[id2] += 1
                    if next_bucket is not None:
                        next_bucket.append(id2)

                if levels[id1] == level:
                    min_level = level if min_level is None else min(min_level, level)

        return self.compact(active, levels, min_level)

    def compact(
        self,
        active: Sequence[Annotation],
        levels: LevelMap,
        min_level: Optional[int] = None
    ) -> LevelMap:
        """Lower every on-screen active level so the stack starts at 0."""
        levels = dict(levels)
        on_screen = [
            a.annotation_id for a in active
            if levels.get(a.annotation_id, a.vertical_level) <= self.max_vertical_level
        ]
        if not on_screen:
            return levels
        if min_level is None:
            min_level = min(levels[aid] for aid in on_screen)
        if min_level <= 0:
            return levels
        for aid in on_screen:
            levels[aid] -= min_level
        return levels

    def assign(
        self,
        annotations: Sequence[Annotation],
        active: Sequence[Annotation],
        collision_width_deg: float,
        max_distance: float = 0.0,
        seed: bool = True
    ) -> LevelMap:
        """
        Full pass: optional seeding, then resolve + compact.

        Without seeding the previous levels (annotation.vertical_level) are
        the starting point.
        """
        if seed:
            levels = self.seed_levels(annotations, active, max_distance)
            if levels is None:
                return {a.annotation_id: a.vertical_level for a in annotations}
        else:
            levels = {a.annotation_id: a.vertical_level for a in annotations}
        return self.resolve(active, levels, collision_width_deg)

    @staticmethod
    def apply(annotations: Sequence[Annotation], levels: LevelMap):
        """Write a level map back onto the annotations."""
        for annotation in annotations:
            level = levels.get(annotation.annotation_id)
            if level is not None:
                annotation.vertical_level = level
