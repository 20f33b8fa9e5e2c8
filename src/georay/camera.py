"""
GeoRay Camera - Capability Probe and Threaded Camera Backdrop

The layout engine has no hardware dependency. A missing camera is a
condition reported to the caller, never an exception.
"""

import logging
import platform
import threading
import time
from typing import Optional, Tuple, Union

import cv2
import numpy as np


logger = logging.getLogger("Camera")


def _open_capture(source: Union[int, str]) -> "cv2.VideoCapture":
    """Open with the low-latency backend for this platform, falling back to default."""
    cap = None
    if isinstance(source, int):
        system = platform.system()
        if system == "Windows":
            cap = cv2.VideoCapture(source, cv2.CAP_DSHOW)
        elif system == "Darwin":
            cap = cv2.VideoCapture(source, cv2.CAP_AVFOUNDATION)
        else:
            cap = cv2.VideoCapture(source, cv2.CAP_V4L2)
    if cap is None or not cap.isOpened():
        cap = cv2.VideoCapture(source)
    return cap


def probe_camera(source: Union[int, str] = 0) -> Tuple[bool, Optional[str]]:
    """
    Check whether a camera usable as AR backdrop exists.

    Returns:
        (available, error description or None)
    """
    cap = None
    try:
        cap = _open_capture(source)
        if not cap.isOpened():
            return False, f"Video device {source!r} not found"
        ok, _ = cap.read()
        if not ok:
            return False, f"Video device {source!r} opened but delivered no frame"
        return True, None
    except cv2.error as e:
        return False, f"Error creating capture device input: {e}"
    finally:
        if cap is not None:
            cap.release()


class CameraFeed:
    """
    Daemon-thread camera reader that always exposes the freshest frame.

    Usage:
        with CameraFeed(source=0) as cam:
            frame = cam.latest_frame
    """

    def __init__(self, source: Union[int, str] = 0, resolution: Optional[Tuple[int, int]] = None):
        self.source = source
        self.resolution = resolution

        self._cap: Optional[cv2.VideoCapture] = None
        self._frame: Optional[np.ndarray] = None
        self._frame_lock = threading.Lock()
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._frame_count = 0
        self._width = 0
        self._height = 0

    def _capture_loop(self):
        while self._running:
            ok, frame = self._cap.read()
            if ok:
                with self._frame_lock:
                    self._frame = frame
                    self._frame_count += 1
            elif isinstance(self.source, str):
                logger.info("End of video file reached")
                self._running = False
            else:
                time.sleep(0.001)

    def start(self) -> bool:
        if self._running:
            return True

        self._cap = _open_capture(self.source)
        if not self._cap.isOpened():
            logger.error(f"Failed to open video source: {self.source}")
            self._cap = None
            return False

        if self.resolution:
            self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.resolution[0])
            self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.resolution[1])
        self._cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        self._width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self._height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))

        self._running = True
        self._thread = threading.Thread(target=self._capture_loop, daemon=True)
        self._thread.start()
        logger.info(f"Camera started: {self._width}x{self._height}")
        return True

    def stop(self):
        self._running = False
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=1.0)
        if self._cap:
            self._cap.release()
            self._cap = None

    @property
    def latest_frame(self) -> Optional[np.ndarray]:
        with self._frame_lock:
            return None if self._frame is None else self._frame.copy()

    @property
    def frame_size(self) -> Tuple[int, int]:
        return (self._width, self._height)

    @property
    def is_running(self) -> bool:
        return self._running

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
