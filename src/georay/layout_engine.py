"""
GeoRay Layout Engine - Reload Pipeline Orchestrator

Drives every layout pass from three flags:

┌──────────────────┬───────────────┬───────────────┬──────────────┐
│ pass             │ dist/azimuth  │ vertical lvls │ rebuild views│
├──────────────────┼───────────────┼───────────────┼──────────────┤
│ full reload      │ yes (+sort)   │ yes (+seed)   │ yes          │
│ periodic refresh │ yes (active)  │ yes           │ no           │
│ heading tick     │ no            │ no            │ no           │
└──────────────────┴───────────────┴───────────────┴──────────────┘

Every pass ends with repositioning; a pass that recomputed distances also
asks each bound view to refresh its content.

Threading: single owner. All calls must come from one thread; sensor
callbacks are marshalled through georay.tracking.TrackingFeed first.
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from dotenv import load_dotenv

from .annotation_layer import (
    ActivationFilter,
    Annotation,
    AnnotationStore,
    AnnotationView,
    RecomputeScope,
    ViewProvider,
)
from .geo_math import GeoLocation
from .heading import HeadingSmoother
from .projection import ScreenPosition, ScreenProjector
from .vertical_layout import VerticalLayoutResolver


MAX_VERTICAL_LEVELS = 10
MAX_VISIBLE_ANNOTATIONS = 500


def _load_env() -> Optional[str]:
    """Load the first .env found (project root, cwd, home)."""
    possible_paths = [
        Path(__file__).resolve().parents[2] / ".env",  # src/georay/../../.env
        Path.cwd() / ".env",
        Path.home() / ".env",
    ]
    for env_path in possible_paths:
        if env_path.exists():
            load_dotenv(env_path, override=False)
            return str(env_path)
    return None


@dataclass
class LayoutConfig:
    """
    Engine configuration knobs.

    Attributes:
        max_vertical_level: Stacking depth (clamped to 0..10)
        max_visible_annotations: Active count cap (clamped to 0..500)
        max_distance: Meters, 0 = unbounded
        heading_smoothing_factor: (0, 1], 1 = no smoothing
        pixels_per_degree: Horizontal overlay scale
        annotation_view_size: Fallback view size before any view is bound
        viewport_size: Visible area (width, height)
    """
    max_vertical_level: int = 5
    max_visible_annotations: int = 100
    max_distance: float = 0.0
    heading_smoothing_factor: float = 1.0
    pixels_per_degree: float = ScreenProjector.H_PIXELS_PER_DEGREE
    annotation_view_size: Tuple[float, float] = (100.0, 60.0)
    viewport_size: Tuple[float, float] = (1280.0, 720.0)

    ENV_FIELDS = {
        "MAX_VERTICAL_LEVEL": ("max_vertical_level", int),
        "MAX_VISIBLE_ANNOTATIONS": ("max_visible_annotations", int),
        "MAX_DISTANCE": ("max_distance", float),
        "HEADING_SMOOTHING_FACTOR": ("heading_smoothing_factor", float),
        "PIXELS_PER_DEGREE": ("pixels_per_degree", float),
    }

    def __post_init__(self):
        if not 0.0 < self.heading_smoothing_factor <= 1.0:
            raise ValueError(
                f"heading_smoothing_factor must be in (0, 1], got {self.heading_smoothing_factor}"
            )
        if self.pixels_per_degree <= 0:
            raise ValueError(f"pixels_per_degree must be positive, got {self.pixels_per_degree}")

    @classmethod
    def from_env(cls, prefix: str = "GEORAY_", **overrides) -> "LayoutConfig":
        """
        Build a config from environment variables (after loading .env).

        Explicit keyword overrides win over the environment.
        """
        _load_env()
        values = {}
        for suffix, (name, cast) in cls.ENV_FIELDS.items():
            raw = os.environ.get(prefix + suffix)
            if raw is None or raw.strip() == "":
                continue
            try:
                values[name] = cast(raw)
            except ValueError:
                raise ValueError(f"{prefix}{suffix}={raw!r} is not a valid {cast.__name__}") from None
        known = {f.name for f in fields(cls)}
        values.update({k: v for k, v in overrides.items() if k in known})
        return cls(**values)


@dataclass(frozen=True)
class ReloadFlags:
    """Which stages a reload pass runs."""
    recompute_distance_azimuth: bool
    recompute_vertical_levels: bool
    rebuild_views: bool


FULL_RELOAD = ReloadFlags(True, True, True)
PERIODIC_REFRESH = ReloadFlags(True, True, False)
POSITION_ONLY = ReloadFlags(False, False, False)


class LayoutObserver:
    """Presentation-side callbacks. Override what you need."""

    def on_view_bound(self, annotation: Annotation, view: AnnotationView):
        pass

    def on_view_unbound(self, annotation: Annotation, view: AnnotationView):
        pass

    def on_position_updated(self, annotation: Annotation, view: AnnotationView, position: ScreenPosition):
        pass

    def on_visibility_changed(self, annotation: Annotation, view: AnnotationView, visible: bool):
        pass

    def on_location_failure(self, elapsed_seconds: float, acquired_location_before: bool):
        pass


class LayoutEngine:
    """
    Annotation layout orchestrator.

    Usage:
        engine = LayoutEngine(view_provider, LayoutConfig(max_visible_annotations=10))
        engine.set_annotations(pois)
        engine.update_user_location(GeoLocation(56.36, 50.02))   # first fix -> full reload
        engine.tick(raw_heading)                                 # every frame
    """

    def __init__(
        self,
        view_provider: ViewProvider,
        config: Optional[LayoutConfig] = None,
        observers: Optional[Iterable[LayoutObserver]] = None
    ):
        self.config = config or LayoutConfig()
        self.view_provider = view_provider
        self.logger = logging.getLogger("LayoutEngine")

        self._observers: List[LayoutObserver] = list(observers or [])
        self.store = AnnotationStore()
        self.smoother = HeadingSmoother(self.config.heading_smoothing_factor)
        self.projector = ScreenProjector(
            self.config.viewport_size[0],
            self.config.viewport_size[1],
            self.config.pixels_per_degree,
        )
        self.resolver = VerticalLayoutResolver(0, self.config.pixels_per_degree)

        self._max_vertical_level = 0
        self._max_visible_annotations = 0
        self.max_vertical_level = self.config.max_vertical_level
        self.max_visible_annotations = self.config.max_visible_annotations
        self.max_distance = self.config.max_distance

        # State
        self._user_location: Optional[GeoLocation] = None
        self._acquired_location_before = False
        self._pending_reload = False
        self._active: List[Annotation] = []
        self._views: Dict[str, AnnotationView] = {}  # annotation_id -> view
        self._bound: Dict[str, Annotation] = {}      # annotation_id -> annotation the view was bound to
        self._reload_count = 0

    # === Configuration ===

    @property
    def max_vertical_level(self) -> int:
        return self._max_vertical_level

    @max_vertical_level.setter
    def max_vertical_level(self, value: int):
        self._max_vertical_level = max(0, min(int(value), MAX_VERTICAL_LEVELS))
        self.resolver.max_vertical_level = self._max_vertical_level

    @property
    def max_visible_annotations(self) -> int:
        return self._max_visible_annotations

    @max_visible_annotations.setter
    def max_visible_annotations(self, value: int):
        self._max_visible_annotations = max(0, min(int(value), MAX_VISIBLE_ANNOTATIONS))

    @property
    def max_distance(self) -> float:
        return self._max_distance

    @max_distance.setter
    def max_distance(self, value: float):
        self._max_distance = max(0.0, float(value))

    @property
    def heading_smoothing_factor(self) -> float:
        return self.smoother.smoothing_factor

    @heading_smoothing_factor.setter
    def heading_smoothing_factor(self, value: float):
        self.smoother.smoothing_factor = value

    def add_observer(self, observer: LayoutObserver):
        self._observers.append(observer)

    def remove_observer(self, observer: LayoutObserver):
        if observer in self._observers:
            self._observers.remove(observer)

    # === Annotations ===

    def set_annotations(self, annotations: Iterable[Annotation]):
        """Replace the working set (invalid locations dropped) and reload."""
        self.store.set_annotations(annotations)
        self.reload_annotations()

    def reload_annotations(self):
        """Full reload now, or as soon as a user location is known."""
        if self._user_location is not None:
            self._pending_reload = False
            self._reload(FULL_RELOAD)
        else:
            self._pending_reload = True
            self.logger.debug("Reload deferred until first location fix")

    @property
    def annotations(self) -> List[Annotation]:
        return self.store.annotations

    @property
    def active_annotations(self) -> List[Annotation]:
        return list(self._active)

    @property
    def pending_reload(self) -> bool:
        return self._pending_reload

    @property
    def user_location(self) -> Optional[GeoLocation]:
        return self._user_location

    @property
    def views(self) -> Dict[str, AnnotationView]:
        return dict(self._views)

    def view_for(self, annotation_id: str) -> Optional[AnnotationView]:
        return self._views.get(annotation_id)

    @property
    def heading(self) -> float:
        return self.smoother.heading

    @property
    def overlay_origin(self) -> Tuple[float, float]:
        return self.projector.overlay_origin(self.smoother.heading)

    @property
    def reload_count(self) -> int:
        return self._reload_count

    # === Events from collaborators ===

    def update_user_location(self, location: GeoLocation):
        """New user fix (already filtered by the tracking feed)."""
        if location is None or not location.is_valid:
            self.logger.warning(f"Ignoring invalid user location: {location}")
            return

        self._user_location = location
        self._acquired_location_before = True

        if self._pending_reload:
            self.reload_annotations()
        elif self._active:
            self._reload(PERIODIC_REFRESH)

    def update_reload_location(self, location: GeoLocation):
        """User moved far enough that the annotation set may need refreshing."""
        annotations = None
        if location is not None and location.is_valid:
            annotations = self.view_provider.annotations_for_location(location)
        if annotations is not None:
            self.set_annotations(annotations)
        else:
            self.reload_annotations()

    def notify_location_failure(self, elapsed_seconds: float):
        """Location provider has not delivered a fix for elapsed_seconds."""
        self.logger.debug(f"No location fix after {elapsed_seconds:.1f}s")
        for observer in self._observers:
            observer.on_location_failure(elapsed_seconds, self._acquired_location_before)

    def tick(self, raw_heading: float):
        """
        Per-frame heading update.

        Smooths the heading, repositions on a north-region flip, and culls
        views outside the viewport. No recompute, no level change.
        """
        region_changed = self.smoother.update(raw_heading)
        if region_changed and self._views:
            self._reload(POSITION_ONLY)
        self._update_visibility()

    def set_viewport_size(self, width: float, height: float):
        """Viewport resized / rotated: reposition without recomputing."""
        self.projector.set_viewport(width, height)
        self._reload(POSITION_ONLY)

    def reset_views(self):
        """Drop every bound view and latch a full reload (e.g. back from background)."""
        for annotation_id in list(self._views):
            self._unbind(annotation_id)
        self._pending_reload = True

    def screen_position(self, annotation_id: str) -> Optional[Tuple[float, float]]:
        """Viewport coordinates of a bound view's top-left corner."""
        view = self._views.get(annotation_id)
        if view is None:
            return None
        x, y = view.position
        return self.projector.to_viewport(ScreenPosition(x, y), self.smoother.heading)

    # === Pipeline ===

    def _reload(self, flags: ReloadFlags):
        self._reload_count += 1

        if flags.recompute_distance_azimuth:
            # Resort only when views are rebuilt; otherwise just the active ones
            scope = RecomputeScope.ALL if flags.rebuild_views else RecomputeScope.ACTIVE_ONLY
            self.store.recompute_distance_and_azimuth(
                self._user_location,
                sort_by_distance=flags.rebuild_views,
                scope=scope,
            )

        if flags.rebuild_views:
            self._active = ActivationFilter.apply(
                self.store,
                max_visible_annotations=self._max_visible_annotations,
                max_vertical_level=self._max_vertical_level,
                max_distance=self._max_distance,
            )

        if flags.recompute_vertical_levels:
            levels = self.resolver.assign(
                self.store.annotations,
                self._active,
                self.resolver.collision_width(self._annotation_view_size()[0]),
                max_distance=self._max_distance,
                seed=flags.rebuild_views,
            )
            VerticalLayoutResolver.apply(self.store.annotations, levels)

        if flags.rebuild_views:
            self._rebuild_views()

        self._position_views()

        # Content refresh whenever distances may have changed
        if flags.recompute_distance_azimuth:
            for view in self._views.values():
                view.bind_ui()

        self.logger.debug(
            f"Reload #{self._reload_count} {flags}: "
            f"{len(self._active)}/{len(self.store)} active, {len(self._views)} views"
        )

    def _annotation_view_size(self) -> Tuple[float, float]:
        for view in self._views.values():
            return view.size
        return self.config.annotation_view_size

    def _rebuild_views(self):
        # Everything comes off screen; the next tick re-attaches what is visible
        for annotation_id, view in self._views.items():
            if view.attached:
                self._set_attached(self._bound[annotation_id], view, False)

        # Unbind views whose annotation went inactive, left the store, or was
        # replaced by a different object under the same id
        for annotation_id, bound in list(self._bound.items()):
            if self.store.get(annotation_id) is not bound or not bound.active:
                self._unbind(annotation_id)

        for annotation in self._active:
            if annotation.annotation_id in self._views:
                continue
            view = self.view_provider.view_for_annotation(annotation)
            if view is None:
                continue
            view.annotation = annotation
            self._views[annotation.annotation_id] = view
            self._bound[annotation.annotation_id] = annotation
            for observer in self._observers:
                observer.on_view_bound(annotation, view)

    def _unbind(self, annotation_id: str):
        view = self._views.pop(annotation_id, None)
        annotation = self._bound.pop(annotation_id, None)
        if view is None or annotation is None:
            return
        if view.attached:
            self._set_attached(annotation, view, False)
        view.annotation = None
        for observer in self._observers:
            observer.on_view_unbound(annotation, view)

    def _position_views(self):
        region = self.smoother.region
        for annotation_id, view in self._views.items():
            annotation = self._bound[annotation_id]
            position = self.projector.project(annotation, view.size, region)
            view.position = (position.x, position.y)
            for observer in self._observers:
                observer.on_position_updated(annotation, view, position)

    def _update_visibility(self):
        heading = self.smoother.heading
        for annotation_id, view in self._views.items():
            annotation = self._bound[annotation_id]
            visible = self.projector.is_visible(annotation, heading, self._max_vertical_level)
            if visible != view.attached:
                self._set_attached(annotation, view, visible)

    def _set_attached(self, annotation: Annotation, view: AnnotationView, attached: bool):
        view.attached = attached
        for observer in self._observers:
            observer.on_visibility_changed(annotation, view, attached)
