#!/usr/bin/env python3
"""
GeoRay Engine - AR Points of Interest Demo

Demonstrates the annotation layout engine over a camera feed:
1. Opens the webcam (or a dark backdrop when no camera is available)
2. Loads six points of interest around a fixed user location
3. A simulated compass on a background sensor thread drives the heading
4. Labels slide across the screen as you "turn", stacking when they overlap
5. The location fix arrives after a short delay (deferred reload)

Usage:
    python main_demo.py

Controls:
    - A / LEFT:  Turn left
    - D / RIGHT: Turn right
    - SPACE:     Toggle automatic sweep
    - + / -:     Raise / lower max vertical level
    - R:         Reset views (simulates returning from background)
    - Q/ESC:     Quit
"""

import sys
import time
import logging
import argparse
import threading
from typing import Optional

import cv2  # pyright: ignore[reportMissingImports]
import numpy as np  # pyright: ignore[reportMissingImports]

# Add src to path
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from georay.annotation_layer import Annotation
from georay.camera import CameraFeed, probe_camera
from georay.geo_math import GeoLocation
from georay.layout_engine import LayoutConfig, LayoutEngine
from georay.overlay_renderer import OverlayRenderer
from georay.tracking import SensorThread, TrackingFeed

# Sample points of interest (Tatarstan villages)
DEMO_POIS = [
    ("Post", 56.360171544220094, 50.02143823212503),
    ("Tauzar", 56.344262704311184, 50.05760303416836),
    ("Karaduvan", 56.34336076647664, 50.09637428471595),
    ("Apaz", 56.387413017532545, 49.97778011590534),
    ("Yarak-churma", 56.38144453236199, 50.15076414927715),
    ("Pshenger", 56.41480214192328, 49.9781613634406),
]

DEMO_USER_LOCATION = GeoLocation(56.372, 50.045)


class SimulatedCompass:
    """Stands in for a magnetometer: heading turned by keys or a slow sweep."""

    SWEEP_DEG_PER_SEC = 12.0

    def __init__(self, heading: float = 0.0, location_delay: float = 2.0):
        self.heading = heading
        self.sweep = True
        self.location_delay = location_delay
        self._lock = threading.Lock()
        self._start = time.monotonic()
        self._last = self._start
        self._location_sent = False

    def turn(self, degrees: float):
        with self._lock:
            self.heading = (self.heading + degrees) % 360.0

    def read_sample(self):
        """Called on the sensor thread."""
        now = time.monotonic()
        if not self._location_sent and now - self._start >= self.location_delay:
            self._location_sent = True
            return DEMO_USER_LOCATION

        with self._lock:
            if self.sweep:
                self.heading = (self.heading + self.SWEEP_DEG_PER_SEC * (now - self._last)) % 360.0
            self._last = now
            # Mild magnetometer noise
            return (self.heading + np.random.normal(0.0, 1.5)) % 360.0


class GeoRayDemo:
    """
    Interactive demo of the GeoRay layout engine.
    """

    WINDOW_NAME = "GeoRay Engine Demo"
    TURN_STEP_DEG = 5.0

    def __init__(
            self,
            source: int | str = 0,
            resolution: Optional[tuple] = None,
            config: Optional[LayoutConfig] = None
    ):
        """
        Initialize demo.

        Args:
            source: Camera index or video file path
            resolution: Target resolution (width, height)
            config: Layout configuration
        """
        self.source = source
        self.resolution = resolution
        self.config = config or LayoutConfig()

        # Components
        self.camera: Optional[CameraFeed] = None
        self.renderer = OverlayRenderer()
        self.engine: Optional[LayoutEngine] = None
        self.feed = TrackingFeed(user_distance_filter=5.0, reload_distance_filter=500.0)
        self.compass = SimulatedCompass()
        self.sensor = SensorThread(self.feed, self.compass.read_sample)

        self._running = False
        self._frame_size = resolution or (1280, 720)
        self._fps = 0.0

        self.logger = logging.getLogger("GeoRayDemo")

    def _setup(self):
        available, error = probe_camera(self.source)
        if available:
            self.camera = CameraFeed(self.source, self.resolution)
            if self.camera.start():
                w, h = self.camera.frame_size
                if w > 0 and h > 0:
                    self._frame_size = (w, h)
            else:
                self.camera = None
        else:
            self.logger.warning(f"No camera for AR backdrop: {error}")

        self.config.viewport_size = (float(self._frame_size[0]), float(self._frame_size[1]))
        self.config.annotation_view_size = self.renderer.view_size
        self.engine = LayoutEngine(self.renderer, self.config, observers=[self.renderer])
        self.engine.set_annotations(
            Annotation(title, GeoLocation(lat, lon)) for title, lat, lon in DEMO_POIS
        )

        self.feed.start(notify_location_failure=True)
        self.sensor.start()

    def _backdrop(self) -> np.ndarray:
        frame = self.camera.latest_frame if self.camera else None
        if frame is None:
            w, h = self._frame_size
            frame = np.full((h, w, 3), 30, dtype=np.uint8)
        return frame

    def _handle_key(self, key: int):
        if key in (ord('q'), 27):
            self._running = False
        elif key in (ord('a'), 81, 2):
            self.compass.sweep = False
            self.compass.turn(-self.TURN_STEP_DEG)
        elif key in (ord('d'), 83, 3):
            self.compass.sweep = False
            self.compass.turn(self.TURN_STEP_DEG)
        elif key == ord(' '):
            self.compass.sweep = not self.compass.sweep
        elif key in (ord('+'), ord('=')):
            self.engine.max_vertical_level += 1
            self.engine.reload_annotations()
        elif key == ord('-'):
            self.engine.max_vertical_level -= 1
            self.engine.reload_annotations()
        elif key == ord('r'):
            self.engine.reset_views()
            self.engine.reload_annotations()

    def run(self):
        self._setup()
        self._running = True
        cv2.namedWindow(self.WINDOW_NAME)

        last = time.perf_counter()
        try:
            while self._running:
                # Owning thread: hand-off then tick
                self.feed.drain(self.engine)
                heading = self.feed.latest_heading
                if heading is not None:
                    self.engine.tick(heading)

                frame = self._backdrop()
                frame = self.renderer.render(frame, self.engine)
                frame = self.renderer.render_hud(frame, self.engine, fps=self._fps)
                if self.engine.pending_reload:
                    cv2.putText(
                        frame, "Waiting for location...", (10, 70),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 200, 255), 1, cv2.LINE_AA
                    )
                cv2.imshow(self.WINDOW_NAME, frame)

                now = time.perf_counter()
                dt = now - last
                last = now
                if dt > 0:
                    self._fps = 0.9 * self._fps + 0.1 * (1.0 / dt)

                self._handle_key(cv2.waitKey(1) & 0xFF)
        finally:
            self.sensor.stop()
            self.feed.stop()
            if self.camera:
                self.camera.stop()
            cv2.destroyAllWindows()
            self.logger.info("Demo stopped.")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="GeoRay Annotation Layout Engine Demo",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Controls:
  A / LEFT     Turn left
  D / RIGHT    Turn right
  SPACE        Toggle automatic sweep
  + / -        Raise / lower max vertical level
  R            Reset views
  Q/ESC        Quit

Configuration can also come from a .env file:
  GEORAY_MAX_VERTICAL_LEVEL=5
  GEORAY_MAX_VISIBLE_ANNOTATIONS=10
  GEORAY_MAX_DISTANCE=0
  GEORAY_HEADING_SMOOTHING_FACTOR=0.1

Examples:
  python main_demo.py                         # Use default webcam (0)
  python main_demo.py --source 1              # Use webcam index 1
  python main_demo.py --smoothing 0.1         # Heavier heading smoothing
        """
    )

    parser.add_argument(
        "--source", "-s",
        default=0,
        help="Video source: camera index (0, 1, ...) or file path"
    )
    parser.add_argument(
        "--resolution", "-r",
        type=str,
        default=None,
        help="Resolution as WxH (e.g., 1280x720)"
    )
    parser.add_argument(
        "--max-visible",
        type=int,
        default=None,
        help="Maximum number of active annotations"
    )
    parser.add_argument(
        "--max-level",
        type=int,
        default=None,
        help="Maximum vertical stacking level"
    )
    parser.add_argument(
        "--max-distance",
        type=float,
        default=None,
        help="Maximum annotation distance in meters (0 = unbounded)"
    )
    parser.add_argument(
        "--smoothing",
        type=float,
        default=None,
        help="Heading smoothing factor in (0, 1]"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level"
    )

    args = parser.parse_args()

    # Setup logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    source_arg = args.source
    if isinstance(source_arg, str) and source_arg.lower() == "camera":
        source = 0
    else:
        try:
            source = int(source_arg)
        except ValueError:
            source = source_arg

    resolution = None
    if args.resolution:
        try:
            w, h = args.resolution.lower().split('x')
            resolution = (int(w), int(h))
        except ValueError:
            print(f"Invalid resolution format: {args.resolution}")
            sys.exit(1)

    overrides = {
        "max_visible_annotations": args.max_visible,
        "max_vertical_level": args.max_level,
        "max_distance": args.max_distance,
        "heading_smoothing_factor": args.smoothing,
    }
    try:
        config = LayoutConfig.from_env(
            **{k: v for k, v in overrides.items() if v is not None}
        )
    except ValueError as e:
        print(f"Invalid configuration: {e}")
        sys.exit(1)

    print("\n" + "=" * 60)
    print("  GeoRay Annotation Layout Engine")
    print("  AR Points of Interest Demo")
    print("=" * 60)
    print(f"  Source: {source}")
    print(f"  Max visible: {config.max_visible_annotations}")
    print(f"  Max level: {config.max_vertical_level}")
    print(f"  Smoothing: {config.heading_smoothing_factor}")
    print("=" * 60)
    print("\n  Turn with A/D, SPACE toggles the sweep.\n")

    demo = GeoRayDemo(source=source, resolution=resolution, config=config)
    demo.run()


if __name__ == "__main__":
    main()
