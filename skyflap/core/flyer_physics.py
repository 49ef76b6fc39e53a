"""
Flyer Physics
=============

Integrates gravity, velocity and position of the controlled entity and
detects boundary death.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from skyflap.core.config_loader import GameConfig, get_config


@dataclass
class Flyer:
    """Controlled entity. (x, y) is the top-left corner of its base box."""
    x: float
    y: float
    velocity: float
    alive: bool
    size: float

    @property
    def center(self) -> Tuple[float, float]:
        half = self.size / 2
        return (self.x + half, self.y + half)

    def bounding_box(self, size_multiplier: float = 1.0) -> Tuple[float, float, float, float]:
        """
        Effective collision box, scaled around the flyer center.

        Args:
            size_multiplier: Scale applied to the base size (tiny effect).

        Returns:
            (left, top, right, bottom) tuple.
        """
        cx, cy = self.center
        half = self.size * size_multiplier / 2
        return (cx - half, cy - half, cx + half, cy + half)


class FlyerPhysics:
    """
    Gravity integration for the flyer.

    Velocities are per reference frame, so every step scales by
    dt / frame_ms. Flapping overwrites the velocity rather than adding to it.
    """

    def __init__(self, config: Optional[GameConfig] = None):
        """
        Initialize flyer physics.

        Args:
            config: Game configuration. Uses default if None.
        """
        if config is None:
            config = get_config()

        self._config = config
        self._frame_ms = config.timing.frame_ms
        self._ground_line = config.ground_line
        self._terminal_velocity = config.physics.terminal_velocity
        self.flyer = self._create_flyer()

    def _create_flyer(self) -> Flyer:
        cfg = self._config.flyer
        return Flyer(
            x=cfg.start_x,
            y=cfg.start_y,
            velocity=0.0,
            alive=True,
            size=cfg.size
        )

    @property
    def ground_line(self) -> float:
        """Y at which the flyer touches the ground."""
        return self._ground_line

    @property
    def on_ground(self) -> bool:
        return self.flyer.y >= self._ground_line

    def reset(self) -> Flyer:
        """Restore the flyer to its start state."""
        self.flyer = self._create_flyer()
        return self.flyer

    def step(
        self,
        dt: float,
        gravity: Optional[float] = None,
        invulnerable: bool = False
    ) -> bool:
        """
        Advance the flyer by dt milliseconds.

        Args:
            dt: Elapsed time in milliseconds.
            gravity: Gravity per frame^2. Uses config value if None.
            invulnerable: Suppresses ground death while True.

        Returns:
            True if the flyer touched the ground this step.
        """
        if gravity is None:
            gravity = self._config.physics.gravity

        flyer = self.flyer
        dt_norm = dt / self._frame_ms

        flyer.velocity = min(flyer.velocity + gravity * dt_norm, self._terminal_velocity)
        flyer.y += flyer.velocity * dt_norm

        # Ceiling
        if flyer.y < 0:
            flyer.y = 0.0
            flyer.velocity = 0.0

        # Ground
        if flyer.y > self._ground_line:
            flyer.y = self._ground_line
            flyer.velocity = 0.0
            if flyer.alive and not invulnerable:
                flyer.alive = False
            return True

        return flyer.y >= self._ground_line

    def flap(self, jump_force: Optional[float] = None) -> bool:
        """
        Overwrite the flyer velocity with the jump force.

        Args:
            jump_force: Velocity to set. Uses config jump velocity if None.

        Returns:
            True if the flap was applied (flyer alive).
        """
        if not self.flyer.alive:
            return False
        if jump_force is None:
            jump_force = self._config.physics.jump_velocity
        self.flyer.velocity = jump_force
        return True

    def kill(self) -> None:
        """Terminal transition. Only reset() revives the flyer."""
        self.flyer.alive = False
