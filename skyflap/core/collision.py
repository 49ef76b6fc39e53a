"""
Collision Resolver
==================

Decides life or death each tick from the flyer, the obstacle field and the
power-up modifiers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from skyflap.core.config_loader import GameConfig, get_config
from skyflap.core.flyer_physics import Flyer
from skyflap.core.obstacle_field import ObstacleField, Obstacle
from skyflap.core.powerups import PowerUpManager


class DeathCause(str, Enum):
    NONE = "none"
    GROUND = "ground"
    OBSTACLE = "obstacle"


@dataclass
class CollisionResult:
    """Result of collision resolution."""
    alive: bool
    cause: DeathCause
    obstacle: Optional[Obstacle] = None

    @staticmethod
    def survived(alive: bool = True) -> "CollisionResult":
        return CollisionResult(alive, DeathCause.NONE)


class CollisionResolver:
    """
    Pure resolution of (flyer, obstacles, invulnerability) into a verdict.

    Invulnerability suppresses both ground and obstacle death. Scoring is
    handled elsewhere and is never affected.
    """

    def __init__(
        self,
        obstacles: ObstacleField,
        power_ups: PowerUpManager,
        config: Optional[GameConfig] = None
    ):
        """
        Initialize collision resolver.

        Args:
            obstacles: Obstacle field to test against.
            power_ups: Source of invulnerability and size modifiers.
            config: Game configuration. Uses default if None.
        """
        if config is None:
            config = get_config()

        self._config = config
        self._obstacles = obstacles
        self._power_ups = power_ups
        self._ground_line = config.ground_line

    def resolve(self, flyer: Flyer) -> CollisionResult:
        """
        Resolve collisions for the current tick. Does not mutate anything.

        Args:
            flyer: The flyer after this tick's physics step.

        Returns:
            CollisionResult with alive flag and cause.
        """
        if not flyer.alive:
            cause = DeathCause.GROUND if flyer.y >= self._ground_line else DeathCause.OBSTACLE
            return CollisionResult(False, cause)

        if self._power_ups.is_invulnerable():
            return CollisionResult.survived()

        if flyer.y >= self._ground_line:
            return CollisionResult(False, DeathCause.GROUND)

        hit = self._obstacles.find_collision(flyer, self._power_ups.size_multiplier())
        if hit is not None:
            return CollisionResult(False, DeathCause.OBSTACLE, hit)

        return CollisionResult.survived()
