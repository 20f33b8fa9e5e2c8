"""
GeoRay Overlay Renderer - OpenCV Presentation for Bound Annotation Views

Plays both presentation roles the layout engine expects:
- ViewProvider: creates a LabelView for each newly active annotation
- LayoutObserver: keeps track of which views are attached

Drawing is a plain pass over attached views at the engine's viewport
coordinates: semi-transparent box, title, distance in km.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import cv2
import numpy as np

from .annotation_layer import Annotation, AnnotationView, ViewProvider
from .layout_engine import LayoutEngine, LayoutObserver


@dataclass
class ColorScheme:
    """BGR colors for label views."""
    box: Tuple[int, int, int] = (200, 120, 40)        # Blue-ish
    border: Tuple[int, int, int] = (255, 200, 120)
    text: Tuple[int, int, int] = (255, 255, 255)
    hud: Tuple[int, int, int] = (0, 255, 0)


class LabelView(AnnotationView):
    """Fixed-size label: title on the first line, distance on the second."""

    WIDTH = 100.0
    HEIGHT = 60.0

    def __init__(self, width: float = WIDTH, height: float = HEIGHT):
        super().__init__(width, height)
        self.title_text = ""
        self.distance_text = ""

    def bind_ui(self):
        annotation = self.annotation
        if annotation is None:
            return
        self.title_text = annotation.title
        self.distance_text = f"{annotation.distance_from_user / 1000:.2f} km"


class OverlayRenderer(ViewProvider, LayoutObserver):
    """
    Draws attached annotation views onto BGR frames.

    Usage:
        renderer = OverlayRenderer()
        engine = LayoutEngine(renderer, config, observers=[renderer])
        ...
        frame = renderer.render(frame, engine)
    """

    def __init__(
        self,
        view_size: Tuple[float, float] = (LabelView.WIDTH, LabelView.HEIGHT),
        colors: Optional[ColorScheme] = None,
        font: int = cv2.FONT_HERSHEY_SIMPLEX,
        font_scale: float = 0.45,
        opacity: float = 0.6
    ):
        self.view_size = view_size
        self.colors = colors or ColorScheme()
        self.font = font
        self.font_scale = font_scale
        self.opacity = opacity

        self._attached: Dict[str, LabelView] = {}
        self.logger = logging.getLogger("OverlayRenderer")

    # === ViewProvider ===

    def view_for_annotation(self, annotation: Annotation) -> Optional[AnnotationView]:
        view = LabelView(*self.view_size)
        view.annotation = annotation
        view.bind_ui()
        return view

    # === LayoutObserver ===

    def on_view_unbound(self, annotation: Annotation, view: AnnotationView):
        self._attached.pop(annotation.annotation_id, None)

    def on_visibility_changed(self, annotation: Annotation, view: AnnotationView, visible: bool):
        if visible:
            self._attached[annotation.annotation_id] = view
        else:
            self._attached.pop(annotation.annotation_id, None)

    def on_location_failure(self, elapsed_seconds: float, acquired_location_before: bool):
        if acquired_location_before:
            self.logger.warning(f"Location lost for {elapsed_seconds:.0f}s")
        else:
            self.logger.warning(f"Still waiting for a location fix after {elapsed_seconds:.0f}s")

    @property
    def attached_count(self) -> int:
        return len(self._attached)

    # === Drawing ===

    def _draw_label(self, frame: np.ndarray, view: LabelView, x: int, y: int):
        w, h = int(view.width), int(view.height)

        overlay = frame.copy()
        cv2.rectangle(overlay, (x, y), (x + w, y + h), self.colors.box, -1)
        cv2.addWeighted(overlay, self.opacity, frame, 1 - self.opacity, 0, frame)
        cv2.rectangle(frame, (x, y), (x + w, y + h), self.colors.border, 1, cv2.LINE_AA)

        line_h = h // 2
        cv2.putText(
            frame, view.title_text, (x + 8, y + line_h - 6),
            self.font, self.font_scale, self.colors.text, 1, cv2.LINE_AA
        )
        cv2.putText(
            frame, view.distance_text, (x + 8, y + h - 10),
            self.font, self.font_scale, self.colors.text, 1, cv2.LINE_AA
        )

    def render(self, frame: np.ndarray, engine: LayoutEngine) -> np.ndarray:
        """Draw every attached view at its current viewport position."""
        frame_h, frame_w = frame.shape[:2]
        for annotation_id, view in self._attached.items():
            pos = engine.screen_position(annotation_id)
            if pos is None:
                continue
            x, y = int(pos[0]), int(pos[1])
            if x + view.width < 0 or x > frame_w or y + view.height < 0 or y > frame_h:
                continue
            self._draw_label(frame, view, x, y)
        return frame

    def render_hud(self, frame: np.ndarray, engine: LayoutEngine, fps: float = 0.0) -> np.ndarray:
        """Heading / active count bar along the top edge."""
        h, w = frame.shape[:2]

        overlay = frame.copy()
        cv2.rectangle(overlay, (0, 0), (w, 36), (0, 0, 0), -1)
        cv2.addWeighted(overlay, 0.6, frame, 0.4, 0, frame)

        text = (
            f"Heading: {engine.heading:5.1f}  "
            f"Active: {len(engine.active_annotations)}/{len(engine.annotations)}  "
            f"On screen: {self.attached_count}"
        )
        if fps > 0:
            text += f"  FPS: {fps:.1f}"
        cv2.putText(frame, text, (10, 24), self.font, 0.55, self.colors.hud, 1, cv2.LINE_AA)

        # Center tick
        cv2.line(frame, (w // 2, 36), (w // 2, 48), self.colors.hud, 2, cv2.LINE_AA)
        return frame
