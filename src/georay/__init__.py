"""
GeoRay - Geo-referenced Annotation Layout Engine for AR Camera Overlays

Positions points of interest over a live camera feed from the compass
heading and each point's bearing/distance from the user.

Features:
- Great-circle bearing/distance, wrap-safe angular deltas
- Activation caps (count, stacking depth, distance)
- Greedy collision-free vertical stacking
- Heading smoothing with snap-on-jump and north-wrap handling
- Thread-safe sensor hand-off onto a single-owner layout engine

Quick Start:
    from georay import LayoutEngine, LayoutConfig, Annotation, GeoLocation, OverlayRenderer

    renderer = OverlayRenderer()
    engine = LayoutEngine(renderer, LayoutConfig(max_visible_annotations=10), observers=[renderer])
    engine.set_annotations([
        Annotation("Post", GeoLocation(56.3601, 50.0214)),
        Annotation("Apaz", GeoLocation(56.3874, 49.9778)),
    ])
    engine.update_user_location(GeoLocation(56.37, 50.03))

    # Every frame
    while True:
        engine.tick(compass_heading)
        frame = renderer.render(camera_frame, engine)
"""

__version__ = "1.0.0"

# Geometry
from .geo_math import (
    GeoLocation,
    angular_delta,
    bearing,
    distance,
    distances_and_bearings,
    normalize_azimuth,
)

# Annotations
from .annotation_layer import (
    ActivationFilter,
    Annotation,
    AnnotationStore,
    AnnotationView,
    RecomputeScope,
    ViewProvider,
)

# Layout
from .vertical_layout import VerticalLayoutResolver
from .heading import HeadingSmoother, HeadingState, NorthRegion
from .projection import ScreenPosition, ScreenProjector
from .layout_engine import (
    FULL_RELOAD,
    MAX_VERTICAL_LEVELS,
    MAX_VISIBLE_ANNOTATIONS,
    PERIODIC_REFRESH,
    POSITION_ONLY,
    LayoutConfig,
    LayoutEngine,
    LayoutObserver,
    ReloadFlags,
)

# Sensors / presentation
from .tracking import LocationFailureMonitor, SensorThread, TrackingFeed
from .camera import CameraFeed, probe_camera
from .overlay_renderer import ColorScheme, LabelView, OverlayRenderer

__all__ = [
    # Version
    "__version__",

    # Geometry
    "GeoLocation",
    "angular_delta",
    "bearing",
    "distance",
    "distances_and_bearings",
    "normalize_azimuth",

    # Annotations
    "ActivationFilter",
    "Annotation",
    "AnnotationStore",
    "AnnotationView",
    "RecomputeScope",
    "ViewProvider",

    # Layout
    "VerticalLayoutResolver",
    "HeadingSmoother",
    "HeadingState",
    "NorthRegion",
    "ScreenPosition",
    "ScreenProjector",
    "FULL_RELOAD",
    "PERIODIC_REFRESH",
    "POSITION_ONLY",
    "MAX_VERTICAL_LEVELS",
    "MAX_VISIBLE_ANNOTATIONS",
    "LayoutConfig",
    "LayoutEngine",
    "LayoutObserver",
    "ReloadFlags",

    # Sensors / presentation
    "LocationFailureMonitor",
    "SensorThread",
    "TrackingFeed",
    "CameraFeed",
    "probe_camera",
    "ColorScheme",
    "LabelView",
    "OverlayRenderer",
]
