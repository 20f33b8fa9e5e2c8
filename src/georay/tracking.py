"""
GeoRay Tracking - Sensor Hand-off onto the Layout Thread

Location and heading arrive from sensor threads; the layout engine is
single-owner. TrackingFeed is the only crossing point:

    sensor thread(s)                       owning thread
    ────────────────                       ─────────────
    push_location() ──► SimpleQueue ──►    drain(engine)  → update_user_location
                                                           → update_reload_location
    push_heading()  ──► latest only  ──►   latest_heading → engine.tick()

Headings behave like video frames: only the freshest sample matters, older
ones are dropped. Locations are delivered in order.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .geo_math import GeoLocation, distance


@dataclass(frozen=True)
class LocationUpdate:
    location: GeoLocation
    timestamp: float


@dataclass(frozen=True)
class HeadingSample:
    heading: float
    timestamp: float


SensorSample = Union[LocationUpdate, HeadingSample]


class LocationFailureMonitor:
    """
    Reports "no location yet" at a fixed interval.

    After start(notify=True) the first report (elapsed 0) is due
    immediately, then every `interval` seconds until a fix arrives.
    """

    DEFAULT_INTERVAL = 5.0

    def __init__(self, interval: float = DEFAULT_INTERVAL, clock: Callable[[], float] = time.monotonic):
        self.interval = interval
        self._clock = clock
        self._started_at: Optional[float] = None
        self._next_report: Optional[float] = None

    def start(self, notify: bool = True):
        now = self._clock()
        self._started_at = now
        self._next_report = now if notify else None

    def stop(self):
        self._started_at = None
        self._next_report = None

    def location_received(self):
        self._next_report = None

    def poll(self) -> Optional[float]:
        """Return elapsed seconds if a report is due, else None."""
        if self._next_report is None or self._started_at is None:
            return None
        now = self._clock()
        if now < self._next_report:
            return None
        elapsed = now - self._started_at
        self._next_report += self.interval
        # Skip missed slots after a stall
        while self._next_report <= now:
            self._next_report += self.interval
        return elapsed


class TrackingFeed:
    """
    Thread-safe single-consumer queue between sensors and the layout engine.

    Attributes:
        user_distance_filter: Meters; fixes closer than this to the last
            delivered one are dropped (0 = deliver all)
        reload_distance_filter: Meters; moving farther than this from the
            last reload point triggers engine.update_reload_location (0 = never)
    """

    def __init__(
        self,
        user_distance_filter: float = 0.0,
        reload_distance_filter: float = 0.0,
        failure_interval: float = LocationFailureMonitor.DEFAULT_INTERVAL,
        clock: Callable[[], float] = time.monotonic
    ):
        self.user_distance_filter = user_distance_filter
        self.reload_distance_filter = reload_distance_filter
        self._clock = clock

        self._locations: "queue.SimpleQueue[LocationUpdate]" = queue.SimpleQueue()
        self._heading: Optional[HeadingSample] = None
        self._heading_lock = threading.Lock()
        self._running = False
        self._dropped_headings = 0

        self._last_location: Optional[GeoLocation] = None
        self._reload_location: Optional[GeoLocation] = None
        self.failure_monitor = LocationFailureMonitor(failure_interval, clock)

        self.logger = logging.getLogger("TrackingFeed")

    # === Lifecycle (owning thread) ===

    def start(self, notify_location_failure: bool = True):
        """Start accepting samples. Restarts the failure monitor."""
        if self._running:
            return
        self._running = True
        self.failure_monitor.start(notify=notify_location_failure and self._last_location is None)
        self.logger.info("Tracking started")

    def stop(self):
        """Stop accepting samples. Idempotent; layout state is untouched."""
        if not self._running:
            return
        self._running = False
        self.failure_monitor.stop()
        while True:
            try:
                self._locations.get_nowait()
            except queue.Empty:
                break
        self.logger.info("Tracking stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    # === Producers (any thread) ===

    def push_location(self, location: GeoLocation):
        if not self._running:
            return
        self._locations.put(LocationUpdate(location, self._clock()))

    def push_heading(self, heading: float):
        if not self._running:
            return
        sample = HeadingSample(float(heading), self._clock())
        with self._heading_lock:
            if self._heading is not None:
                self._dropped_headings += 1
            self._heading = sample

    # === Consumer (owning thread) ===

    @property
    def latest_heading(self) -> Optional[float]:
        """Freshest heading sample, or None if none has arrived."""
        with self._heading_lock:
            return self._heading.heading if self._heading is not None else None

    @property
    def dropped_headings(self) -> int:
        return self._dropped_headings

    @property
    def last_location(self) -> Optional[GeoLocation]:
        return self._last_location

    def drain(self, engine) -> int:
        """
        Apply queued location updates to the engine, in arrival order.

        Also emits a location-failure notification when one is due.

        Returns:
            Number of updates delivered to the engine
        """
        delivered = 0
        while True:
            try:
                update = self._locations.get_nowait()
            except queue.Empty:
                break
            if self._deliver(engine, update.location):
                delivered += 1

        elapsed = self.failure_monitor.poll()
        if elapsed is not None:
            engine.notify_location_failure(elapsed)
        return delivered

    def _deliver(self, engine, location: GeoLocation) -> bool:
        if location is None or not location.is_valid:
            self.logger.warning(f"Dropping invalid location sample: {location}")
            return False

        if (
            self._last_location is not None
            and self.user_distance_filter > 0
            and distance(self._last_location, location) < self.user_distance_filter
        ):
            return False

        self._last_location = location
        self.failure_monitor.location_received()
        engine.update_user_location(location)

        if self._reload_location is None:
            self._reload_location = location
        elif (
            self.reload_distance_filter > 0
            and distance(self._reload_location, location) > self.reload_distance_filter
        ):
            self._reload_location = location
            self.logger.debug("Reload distance exceeded")
            engine.update_reload_location(location)
        return True


class SensorThread:
    """
    Background acquisition loop feeding a TrackingFeed.

    `read_sample` is called repeatedly on a daemon thread and may return a
    GeoLocation, a heading (float) or None. Exceptions from the sensor are
    logged and the loop keeps polling.
    """

    def __init__(
        self,
        feed: TrackingFeed,
        read_sample: Callable[[], Union[GeoLocation, float, None]],
        poll_interval: float = 1.0 / 60.0
    ):
        self.feed = feed
        self.read_sample = read_sample
        self.poll_interval = poll_interval
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self.logger = logging.getLogger("SensorThread")

    def _loop(self):
        while self._running:
            try:
                sample = self.read_sample()
            except Exception as e:
                self.logger.error(f"Sensor read failed: {e}")
                sample = None

            if isinstance(sample, GeoLocation):
                self.feed.push_location(sample)
            elif isinstance(sample, (int, float)):
                self.feed.push_heading(sample)

            time.sleep(self.poll_interval)

    def start(self) -> bool:
        if self._running:
            return True
        self._running = True
        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()
        self.logger.info("Sensor thread started")
        return True

    def stop(self):
        self._running = False
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=1.0)
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._running

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
