"""
State Snapshot
==============

Read-only views of the simulation for rendering, plus fixed-size numpy
arrays for Gymnasium observations.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

import numpy as np

from skyflap.core.config_loader import GameConfig, PowerUpType, get_config

if TYPE_CHECKING:
    from skyflap.core.flyer_physics import Flyer
    from skyflap.core.obstacle_field import Obstacle
    from skyflap.core.powerups import PowerUpManager

# Stable integer codes for power-up types in observations
POWERUP_TYPE_INDEX: Dict[PowerUpType, int] = {t: i for i, t in enumerate(PowerUpType)}


@dataclass(frozen=True)
class FlyerView:
    x: float
    y: float
    velocity: float
    alive: bool
    size: float


@dataclass(frozen=True)
class ObstacleView:
    uid: int
    x: float
    gap_y: float
    gap_height: float
    width: float
    passed: bool


@dataclass(frozen=True)
class PowerUpView:
    uid: str
    type: PowerUpType
    x: float
    y: float
    spawn_time: float


@dataclass(frozen=True)
class EffectView:
    type: PowerUpType
    remaining: float
    max_duration: float
    start_time: float


@dataclass(frozen=True)
class GameSnapshot:
    """
    Immutable copy of everything the presentation layer reads.

    Mutating the live simulation after building a snapshot never changes it.
    """
    tick: int
    sim_time_ms: float
    score: int
    flyer: FlyerView
    obstacles: Tuple[ObstacleView, ...]
    power_ups: Tuple[PowerUpView, ...]
    effects: Tuple[EffectView, ...]

    # Derived modifiers
    speed_multiplier: float
    size_multiplier: float
    invulnerable: bool

    # Board info (for normalization)
    canvas_width: float
    canvas_height: float
    ground_line: float

    # Fixed-size observation arrays
    obs_obstacles: np.ndarray       # (max_obstacles, 4): x, gap_y, gap_bottom, passed
    obs_obstacle_mask: np.ndarray   # (max_obstacles,) bool
    obs_power_ups: np.ndarray       # (max_power_ups, 3): type index, x, y
    obs_power_up_mask: np.ndarray   # (max_power_ups,) bool
    obs_effects: np.ndarray         # (num types,) remaining ms per type

    def to_obs_dict(self) -> Dict[str, np.ndarray]:
        """Convert to Gymnasium observation dictionary."""
        return {
            "flyer_y": np.array(self.flyer.y, dtype=np.float32),
            "flyer_velocity": np.array(self.flyer.velocity, dtype=np.float32),
            "score": np.array(self.score, dtype=np.int64),
            "speed_multiplier": np.array(self.speed_multiplier, dtype=np.float32),
            "size_multiplier": np.array(self.size_multiplier, dtype=np.float32),
            "invulnerable": np.array(int(self.invulnerable), dtype=np.int8),
            "obstacles": self.obs_obstacles.copy(),
            "obstacle_mask": self.obs_obstacle_mask.copy(),
            "power_ups": self.obs_power_ups.copy(),
            "power_up_mask": self.obs_power_up_mask.copy(),
            "effects": self.obs_effects.copy(),
        }


class SnapshotBuilder:
    """Builds game state snapshots with pre-allocated arrays."""

    def __init__(self, config: Optional[GameConfig] = None):
        if config is None:
            config = get_config()

        self._config = config
        self._max_obstacles = config.caps.max_obstacles
        self._max_power_ups = config.caps.max_power_ups

        # Pre-allocate arrays
        self._obstacles = np.zeros((self._max_obstacles, 4), dtype=np.float32)
        self._obstacle_mask = np.zeros(self._max_obstacles, dtype=bool)
        self._power_ups = np.zeros((self._max_power_ups, 3), dtype=np.float32)
        self._power_up_mask = np.zeros(self._max_power_ups, dtype=bool)
        self._effects = np.zeros(len(POWERUP_TYPE_INDEX), dtype=np.float32)

    @property
    def max_obstacles(self) -> int:
        return self._max_obstacles

    @property
    def max_power_ups(self) -> int:
        return self._max_power_ups

    def build(
        self,
        tick: int,
        sim_time_ms: float,
        score: int,
        flyer: "Flyer",
        obstacles: List["Obstacle"],
        power_ups: "PowerUpManager",
    ) -> GameSnapshot:
        """Build a snapshot from current game state."""
        # Reset arrays
        self._obstacles.fill(0)
        self._obstacle_mask.fill(False)
        self._power_ups.fill(0)
        self._power_up_mask.fill(False)
        self._effects.fill(0)

        # Obstacles are ordered by x, so truncation keeps the nearest ones
        for i, obstacle in enumerate(obstacles[:self._max_obstacles]):
            self._obstacles[i] = (
                obstacle.x, obstacle.gap_y, obstacle.gap_bottom, float(obstacle.passed)
            )
            self._obstacle_mask[i] = True

        live = [p for p in power_ups.power_ups if not p.collected]
        for i, power_up in enumerate(live[:self._max_power_ups]):
            self._power_ups[i] = (POWERUP_TYPE_INDEX[power_up.type], power_up.x, power_up.y)
            self._power_up_mask[i] = True

        effects = power_ups.active_effects()
        for effect in effects:
            self._effects[POWERUP_TYPE_INDEX[effect.type]] = effect.remaining

        return GameSnapshot(
            tick=tick,
            sim_time_ms=sim_time_ms,
            score=score,
            flyer=FlyerView(
                x=flyer.x, y=flyer.y, velocity=flyer.velocity,
                alive=flyer.alive, size=flyer.size
            ),
            obstacles=tuple(
                ObstacleView(
                    uid=o.uid, x=o.x, gap_y=o.gap_y, gap_height=o.gap_height,
                    width=o.width, passed=o.passed
                )
                for o in obstacles
            ),
            power_ups=tuple(
                PowerUpView(uid=p.uid, type=p.type, x=p.x, y=p.y, spawn_time=p.spawn_time)
                for p in live
            ),
            effects=tuple(
                EffectView(
                    type=e.type, remaining=e.remaining,
                    max_duration=e.max_duration, start_time=e.start_time
                )
                for e in effects
            ),
            speed_multiplier=power_ups.speed_multiplier(),
            size_multiplier=power_ups.size_multiplier(),
            invulnerable=power_ups.is_invulnerable(),
            canvas_width=float(self._config.canvas.width),
            canvas_height=float(self._config.canvas.height),
            ground_line=self._config.ground_line,
            obs_obstacles=self._obstacles.copy(),
            obs_obstacle_mask=self._obstacle_mask.copy(),
            obs_power_ups=self._power_ups.copy(),
            obs_power_up_mask=self._power_up_mask.copy(),
            obs_effects=self._effects.copy(),
        )
