"""
Tick Scheduler
==============

Drives one logical update per display refresh with a clamped delta time,
and suspends cleanly while the host is hidden. Also owns the notification
auto-dismiss timers, which run independently of the simulation tick.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from skyflap.core.config_loader import GameConfig, get_config

logger = logging.getLogger(__name__)

# Update callback: receives clamped dt in ms, returns False to stop the loop
UpdateFn = Callable[[float], Optional[bool]]


def _perf_clock_ms() -> float:
    return time.perf_counter() * 1000.0


@dataclass
class LoopStats:
    """Loop timing statistics."""
    fps: float = 0.0
    frame_time: float = 0.0
    total_frames: int = 0
    clamped_frames: int = 0
    skipped_frames: int = 0


class TickScheduler:
    """
    Cooperative frame scheduler.

    The host calls frame(now_ms) once per display refresh. The first frame
    after start() or resume() only sets the baseline. Frames arriving sooner
    than 95% of the target frame time are skipped without moving the
    baseline. dt is clamped to max_dt_ms so a stall can't teleport entities.
    While suspended, frames are ignored and no time accumulates.
    """

    FRAME_SKIP_RATIO = 0.95

    def __init__(
        self,
        update: UpdateFn,
        config: Optional[GameConfig] = None,
        clock: Optional[Callable[[], float]] = None
    ):
        """
        Initialize scheduler.

        Args:
            update: Called with dt (ms) once per accepted frame.
            config: Game configuration. Uses default if None.
            clock: Returns current time in ms, used by run(). perf_counter if None.
        """
        if config is None:
            config = get_config()

        self._update = update
        self._clock = clock or _perf_clock_ms
        self._frame_ms = config.timing.frame_ms
        self._max_dt = config.timing.max_dt_ms

        self._running = False
        self._suspended = False
        self._last_frame: Optional[float] = None
        self._fps_window_start: Optional[float] = None
        self._fps_window_frames = 0
        self.stats = LoopStats()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_suspended(self) -> bool:
        return self._suspended

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._suspended = False
        self._last_frame = None
        self._fps_window_start = None
        self._fps_window_frames = 0
        self.stats = LoopStats()

    def stop(self) -> None:
        self._running = False
        self._suspended = False
        self._last_frame = None

    def suspend(self) -> None:
        """Host hidden or unfocused: stop ticking until resume()."""
        if not self._running or self._suspended:
            return
        self._suspended = True
        logger.debug("Tick scheduler suspended")

    def resume(self, now: Optional[float] = None) -> None:
        """Host visible again; the next frame starts from a fresh baseline."""
        if not self._running or not self._suspended:
            return
        self._suspended = False
        self._last_frame = now
        logger.debug("Tick scheduler resumed")

    def frame(self, now: float) -> Optional[float]:
        """
        Handle one display refresh.

        Args:
            now: Host timestamp in ms.

        Returns:
            The dt passed to update(), or None if no update ran.
        """
        if not self._running or self._suspended:
            return None

        if self._last_frame is None:
            self._last_frame = now
            self._fps_window_start = now
            return None

        raw_dt = now - self._last_frame
        if raw_dt < self._frame_ms * self.FRAME_SKIP_RATIO:
            self.stats.skipped_frames += 1
            return None

        self._last_frame = now
        dt = min(raw_dt, self._max_dt)
        if dt < raw_dt:
            self.stats.clamped_frames += 1
            logger.debug("Clamped frame dt %.1fms -> %.1fms", raw_dt, dt)

        self._update_stats(now, dt)

        try:
            keep_going = self._update(dt)
        except Exception:
            logger.exception("Error in tick update; stopping scheduler")
            self.stop()
            raise

        if keep_going is False:
            self.stop()
        return dt

    def _update_stats(self, now: float, dt: float) -> None:
        self.stats.total_frames += 1
        self.stats.frame_time = dt
        self._fps_window_frames += 1
        elapsed = now - self._fps_window_start
        if elapsed >= 1000:
            self.stats.fps = round(self._fps_window_frames * 1000 / elapsed, 1)
            self._fps_window_start = now
            self._fps_window_frames = 0

    def run(self, max_ticks: Optional[int] = None) -> LoopStats:
        """
        Blocking paced loop for headless hosts.

        Args:
            max_ticks: Stop after this many updates. Runs until stopped if None.

        Returns:
            Final loop statistics.
        """
        self.start()
        self.frame(self._clock())
        while self._running:
            if max_ticks is not None and self.stats.total_frames >= max_ticks:
                self.stop()
                break
            next_due = self._last_frame + self._frame_ms
            wait = next_due - self._clock()
            if wait > 0:
                time.sleep(wait / 1000.0)
            self.frame(self._clock())
        return self.stats


class NotificationTimers:
    """
    Auto-dismiss timers for achievement notifications.

    Each scheduled notification gets a threading.Timer that calls dismiss(id)
    after the delay. cancel_all() must run on teardown; the context manager
    form does it automatically.
    """

    def __init__(
        self,
        dismiss: Callable[[str], object],
        delay_ms: Optional[float] = None,
        config: Optional[GameConfig] = None
    ):
        """
        Args:
            dismiss: Called with the notification id when its timer fires.
            delay_ms: Auto-dismiss delay. Uses config value if None.
            config: Game configuration. Uses default if None.
        """
        if delay_ms is None:
            if config is None:
                config = get_config()
            delay_ms = config.timing.notification_dismiss_ms

        self._dismiss = dismiss
        self._delay_s = delay_ms / 1000.0
        self._timers: Dict[str, threading.Timer] = {}
        self._lock = threading.Lock()
        self._closed = False

    def __enter__(self) -> "NotificationTimers":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cancel_all()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._timers)

    def schedule(self, notification_id: str) -> bool:
        """
        Start (or restart) the dismiss timer for a notification.

        Returns:
            False if the timers were already torn down.
        """
        with self._lock:
            if self._closed:
                return False
            existing = self._timers.pop(notification_id, None)
            if existing is not None:
                existing.cancel()
            timer = threading.Timer(self._delay_s, self._fire, args=(notification_id,))
            timer.daemon = True
            self._timers[notification_id] = timer
            timer.start()
            return True

    def schedule_new(self, notification_ids: Iterable[str]) -> int:
        """
        Start timers only for ids that have none running yet.

        Safe to call every frame with the full unseen list; running timers
        are left alone so they still fire on time.

        Returns:
            Number of timers started.
        """
        started = 0
        for notification_id in notification_ids:
            with self._lock:
                if notification_id in self._timers:
                    continue
            if self.schedule(notification_id):
                started += 1
        return started

    def cancel(self, notification_id: str) -> None:
        with self._lock:
            timer = self._timers.pop(notification_id, None)
        if timer is not None:
            timer.cancel()

    def cancel_all(self) -> None:
        """Cancel every pending timer; later schedule() calls are ignored."""
        with self._lock:
            self._closed = True
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def _fire(self, notification_id: str) -> None:
        with self._lock:
            if self._closed or self._timers.pop(notification_id, None) is None:
                return
        try:
            self._dismiss(notification_id)
        except Exception:
            logger.exception("Failed to dismiss notification %s", notification_id)
