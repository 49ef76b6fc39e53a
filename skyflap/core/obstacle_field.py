"""
Obstacle Field
==============

Spawns, advances and prunes obstacles; detects pass-through for scoring and
body collision against the flyer.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import List, Optional

from skyflap.core.config_loader import GameConfig, get_config
from skyflap.core.flyer_physics import Flyer
from skyflap.core.rng import SpawnRng


@dataclass
class Obstacle:
    """A pair of walls with a vertical gap. gap_y is the gap's top edge."""
    uid: int
    x: float
    gap_y: float
    gap_height: float
    width: float
    passed: bool = False
    min_clearance: Optional[float] = None  # Smallest gap-edge clearance while overlapping

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def gap_bottom(self) -> float:
        return self.gap_y + self.gap_height

    @property
    def gap_center(self) -> float:
        return self.gap_y + self.gap_height / 2

    def overlaps_x(self, left: float, right: float) -> bool:
        return right > self.x and left < self.right

    def blocks(self, top: float, bottom: float) -> bool:
        """True if a vertical span is outside the gap."""
        return top < self.gap_y or bottom > self.gap_bottom


@dataclass
class ObstacleUpdate:
    """What happened to the field during one update."""
    passed: List[Obstacle] = field(default_factory=list)
    close_calls: List[Obstacle] = field(default_factory=list)
    spawned: List[Obstacle] = field(default_factory=list)
    pruned: int = 0


class ObstacleField:
    """
    Procedural obstacle lifecycle.

    Obstacles stay ordered by x ascending: new ones are always appended at
    the right edge and all move at the same speed.
    """

    def __init__(
        self,
        config: Optional[GameConfig] = None,
        rng: Optional[SpawnRng] = None
    ):
        """
        Initialize obstacle field.

        Args:
            config: Game configuration. Uses default if None.
            rng: Shared spawn RNG. A fresh unseeded one if None.
        """
        if config is None:
            config = get_config()

        self._config = config
        self._rng = rng if rng is not None else SpawnRng(config)
        self._frame_ms = config.timing.frame_ms
        self._canvas_width = config.canvas.width
        self._close_call_margin = config.collision.close_call_margin
        self._ids = itertools.count(1)
        self.obstacles: List[Obstacle] = []

    def reset(self) -> None:
        """Remove all obstacles."""
        self.obstacles.clear()
        self._ids = itertools.count(1)

    @property
    def passed_count(self) -> int:
        return sum(1 for o in self.obstacles if o.passed)

    def _spawn(self) -> Obstacle:
        cfg = self._config.obstacles
        gap_min, gap_max = self._config.gap_range
        obstacle = Obstacle(
            uid=next(self._ids),
            x=float(self._canvas_width),
            gap_y=self._rng.uniform(gap_min, gap_max),
            gap_height=cfg.gap_height,
            width=cfg.width
        )
        self.obstacles.append(obstacle)
        return obstacle

    def update(
        self,
        dt: float,
        flyer: Flyer,
        speed_multiplier: float = 1.0,
        size_multiplier: float = 1.0
    ) -> ObstacleUpdate:
        """
        Advance, score, spawn and prune.

        Scoring runs before pruning so an obstacle can never leave the field
        unscored.

        Args:
            dt: Elapsed time in milliseconds.
            flyer: The flyer (read only).
            speed_multiplier: Slow-motion factor from the power-up manager.
            size_multiplier: Tiny factor, used for close-call clearance.

        Returns:
            ObstacleUpdate describing passes, close calls, spawns and prunes.
        """
        result = ObstacleUpdate()
        shift = self._config.obstacles.base_speed * (dt / self._frame_ms) * speed_multiplier
        left, top, right, bottom = flyer.bounding_box(size_multiplier)

        for obstacle in self.obstacles:
            obstacle.x -= shift

            if obstacle.overlaps_x(left, right):
                clearance = min(top - obstacle.gap_y, obstacle.gap_bottom - bottom)
                if obstacle.min_clearance is None or clearance < obstacle.min_clearance:
                    obstacle.min_clearance = clearance

            # Trailing edge crossed the flyer
            if not obstacle.passed and obstacle.right < flyer.x:
                obstacle.passed = True
                result.passed.append(obstacle)
                if (
                    obstacle.min_clearance is not None
                    and 0 <= obstacle.min_clearance < self._close_call_margin
                ):
                    result.close_calls.append(obstacle)

        spawn_threshold = self._canvas_width - self._config.obstacles.spawn_distance
        while not self.obstacles or self.obstacles[-1].x < spawn_threshold:
            result.spawned.append(self._spawn())

        before = len(self.obstacles)
        self.obstacles = [o for o in self.obstacles if o.right >= 0]
        result.pruned = before - len(self.obstacles)

        return result

    def find_collision(
        self,
        flyer: Flyer,
        size_multiplier: float = 1.0
    ) -> Optional[Obstacle]:
        """
        First obstacle the flyer's effective box intersects, if any.

        Args:
            flyer: The flyer.
            size_multiplier: Tiny factor from the power-up manager.

        Returns:
            The colliding obstacle or None.
        """
        left, top, right, bottom = flyer.bounding_box(size_multiplier)
        for obstacle in self.obstacles:
            if obstacle.x > right:
                break
            if obstacle.overlaps_x(left, right) and obstacle.blocks(top, bottom):
                return obstacle
        return None
