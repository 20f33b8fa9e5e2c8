"""
GeoRay Projection - Azimuth/Level to Overlay Coordinates

The overlay is a horizontal strip 360° wide at a fixed pixels-per-degree.
The viewport shows a window of it centred on the current heading:

    overlay x:  0 ............ azimuth * ppd ............ 360 * ppd
                           ┌──────────────┐
                           │   viewport   │  origin.x = vw/2 - heading * ppd
                           └──────────────┘

Near North the two ends of the strip must be on screen together, so
annotations across the 0/360 seam are shifted by one full strip width.
"""

from dataclasses import dataclass
from typing import Tuple

from .annotation_layer import Annotation
from .geo_math import angular_delta
from .heading import NorthRegion


@dataclass(frozen=True)
class ScreenPosition:
    """Top-left of an annotation view, in overlay coordinates."""
    x: float
    y: float


class ScreenProjector:
    """
    Maps (azimuth, vertical level, heading) to overlay offsets.

    Attributes:
        viewport_width / viewport_height: Visible area in pixels
        pixels_per_degree: Horizontal scale of the overlay strip
    """

    H_PIXELS_PER_DEGREE = 14.0
    NORTH_THRESHOLD_DEG = 40.0
    BASELINE_FRACTION = 0.65    # Level 0 sits at 65% of viewport height
    LEVEL_SPREAD_PX = 4.0       # Extra level² offset so high levels don't bunch up
    OVERLAY_Y_OFFSET = 60.0     # Fixed vertical offset of the strip (no pitch)

    def __init__(
        self,
        viewport_width: float,
        viewport_height: float,
        pixels_per_degree: float = H_PIXELS_PER_DEGREE
    ):
        if pixels_per_degree <= 0:
            raise ValueError(f"pixels_per_degree must be positive, got {pixels_per_degree}")
        self.pixels_per_degree = float(pixels_per_degree)
        self.viewport_width = 0.0
        self.viewport_height = 0.0
        self.set_viewport(viewport_width, viewport_height)

    def set_viewport(self, width: float, height: float):
        if width <= 0 or height <= 0:
            raise ValueError(f"viewport must be positive, got {width}x{height}")
        self.viewport_width = float(width)
        self.viewport_height = float(height)

    @property
    def overlay_width(self) -> float:
        """Width of the full 360° strip."""
        return 360.0 * self.pixels_per_degree

    @property
    def degrees_per_screen(self) -> float:
        return (self.viewport_width / self.overlay_width) * 360.0

    def x_position(self, azimuth: float, view_width: float, region: NorthRegion) -> float:
        """Horizontal overlay offset with north-wrap correction."""
        x = azimuth * self.pixels_per_degree - view_width / 2.0

        # Heading just right of North: 320-360 would sit at the far end of the strip
        if region == NorthRegion.NORTH_RIGHT and azimuth > 360.0 - self.NORTH_THRESHOLD_DEG:
            x -= self.overlay_width
        # Heading just left of North: 0-40 would sit at the start of the strip
        elif region == NorthRegion.NORTH_LEFT and azimuth < self.NORTH_THRESHOLD_DEG:
            x += self.overlay_width
        return x

    def y_position(self, vertical_level: int, view_height: float) -> float:
        """Vertical overlay offset; higher levels go up."""
        y = self.viewport_height * self.BASELINE_FRACTION - view_height * vertical_level
        y -= (vertical_level ** 2) * self.LEVEL_SPREAD_PX
        return y

    def project(
        self,
        annotation: Annotation,
        view_size: Tuple[float, float],
        region: NorthRegion
    ) -> ScreenPosition:
        width, height = view_size
        return ScreenPosition(
            x=self.x_position(annotation.azimuth, width, region),
            y=self.y_position(annotation.vertical_level, height),
        )

    def overlay_origin(self, heading: float) -> Tuple[float, float]:
        """Top-left of the overlay strip in viewport coordinates."""
        x = self.viewport_width / 2.0 - heading * self.pixels_per_degree
        return (x, self.OVERLAY_Y_OFFSET)

    def to_viewport(self, position: ScreenPosition, heading: float) -> Tuple[float, float]:
        """Overlay position -> viewport coordinates."""
        ox, oy = self.overlay_origin(heading)
        return (ox + position.x, oy + position.y)

    def is_visible(self, annotation: Annotation, heading: float, max_vertical_level: int) -> bool:
        """Cheap per-tick cull: within half a screen of the heading and on an allowed level."""
        delta = abs(angular_delta(heading, annotation.azimuth))
        return delta < self.degrees_per_screen / 2.0 and annotation.vertical_level <= max_vertical_level
