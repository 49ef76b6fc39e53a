"""
Core Game
=========

Main game orchestrator combining flyer physics, obstacles, power-ups,
collision, scoring and achievements.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from skyflap.core.achievements import Achievement, AchievementEngine
from skyflap.core.collision import CollisionResolver, DeathCause
from skyflap.core.config_loader import GameConfig, PowerUpType, get_config
from skyflap.core.flyer_physics import Flyer, FlyerPhysics
from skyflap.core.obstacle_field import Obstacle, ObstacleField
from skyflap.core.powerups import PowerUp, PowerUpManager
from skyflap.core.rng import SpawnRng
from skyflap.core.scoring import ScoreEvent, ScoreKeeper
from skyflap.core.state_snapshot import GameSnapshot, SnapshotBuilder

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    """Result of a single simulation tick."""
    snapshot: GameSnapshot
    dt: float
    alive: bool
    death_cause: DeathCause
    delta_score: int
    score_events: List[ScoreEvent] = field(default_factory=list)
    collected: List[PowerUpType] = field(default_factory=list)
    expired: List[PowerUpType] = field(default_factory=list)
    unlocked: List[Achievement] = field(default_factory=list)


class CoreGame:
    """
    Main game simulation class.

    Orchestrates:
    - Flyer physics
    - Power-up spawn, movement, collection and effects
    - Obstacle field and pass-through scoring
    - Collision resolution
    - Achievement events

    One tick runs, in order: flyer step, power-up update, obstacle update,
    collision resolution, scoring, achievement events.
    """

    def __init__(
        self,
        config: Optional[GameConfig] = None,
        seed: Optional[int] = None,
        achievements: Optional[AchievementEngine] = None
    ):
        """
        Initialize game.

        Args:
            config: Game configuration. Uses default if None.
            seed: Random seed for reproducibility.
            achievements: Achievement engine receiving game events. None disables them.
        """
        if config is None:
            config = get_config()

        self._config = config
        self._seed = seed
        self._achievements = achievements

        # Initialize subsystems
        self._rng = SpawnRng(config, seed)
        self._physics = FlyerPhysics(config)
        self._power_ups = PowerUpManager(config, self._rng)
        self._obstacles = ObstacleField(config, self._rng)
        self._resolver = CollisionResolver(self._obstacles, self._power_ups, config)
        self._scorer = ScoreKeeper()
        self._snapshot_builder = SnapshotBuilder(config)

        # Game state
        self._tick: int = 0
        self._sim_time: float = 0.0
        self._death_cause: DeathCause = DeathCause.NONE
        self._session_open: bool = False

    @property
    def config(self) -> GameConfig:
        """Game configuration."""
        return self._config

    @property
    def flyer(self) -> Flyer:
        return self._physics.flyer

    @property
    def obstacles(self) -> List[Obstacle]:
        return self._obstacles.obstacles

    @property
    def power_ups(self) -> List[PowerUp]:
        return self._power_ups.power_ups

    @property
    def power_up_manager(self) -> PowerUpManager:
        return self._power_ups

    @property
    def obstacle_field(self) -> ObstacleField:
        return self._obstacles

    @property
    def physics(self) -> FlyerPhysics:
        return self._physics

    @property
    def achievements(self) -> Optional[AchievementEngine]:
        return self._achievements

    @property
    def score(self) -> int:
        """Current score."""
        return self._scorer.score

    @property
    def tick_count(self) -> int:
        return self._tick

    @property
    def sim_time_ms(self) -> float:
        return self._sim_time

    @property
    def is_over(self) -> bool:
        """True once the flyer has died."""
        return not self._physics.flyer.alive

    @property
    def death_cause(self) -> DeathCause:
        return self._death_cause

    def reset(self, seed: Optional[int] = None) -> GameSnapshot:
        """
        Reset to a new session.

        Args:
            seed: New random seed. Uses previous if None.

        Returns:
            Initial game snapshot.
        """
        if self._achievements is not None and self._session_open:
            # Abandoned run still counts as a finished game
            self._achievements.end_session(self._scorer.score)

        if seed is not None:
            self._seed = seed
        self._rng.reset(self._seed)

        self._physics.reset()
        self._obstacles.reset()
        self._power_ups.reset(now=0.0)
        self._scorer.reset()

        self._tick = 0
        self._sim_time = 0.0
        self._death_cause = DeathCause.NONE

        if self._achievements is not None:
            self._achievements.start_session()
        self._session_open = True

        return self.snapshot()

    def flap(self) -> bool:
        """
        Flap the flyer.

        Returns:
            True if the flap was applied.
        """
        if not self._physics.flap():
            return False
        if self._achievements is not None:
            self._achievements.track_flap()
        return True

    def tick(self, dt: float) -> TickResult:
        """
        Advance the simulation by dt milliseconds.

        dt is clamped to [0, timing.max_dt_ms] so an oversized step can't
        tunnel the flyer through an obstacle.

        Args:
            dt: Elapsed time in ms.

        Returns:
            TickResult with events and the post-tick snapshot.
        """
        if self.is_over:
            return TickResult(
                snapshot=self.snapshot(),
                dt=0.0,
                alive=False,
                death_cause=self._death_cause,
                delta_score=0
            )

        dt = max(0.0, min(dt, self._config.timing.max_dt_ms))
        self._tick += 1
        self._sim_time += dt
        flyer = self._physics.flyer

        self._physics.step(dt, invulnerable=self._power_ups.is_invulnerable())

        power_up_update = self._power_ups.update(dt, self._sim_time, flyer)

        obstacle_update = self._obstacles.update(
            dt,
            flyer,
            speed_multiplier=self._power_ups.speed_multiplier(),
            size_multiplier=self._power_ups.size_multiplier()
        )

        collision = self._resolver.resolve(flyer)
        if not collision.alive:
            self._physics.kill()
            self._death_cause = collision.cause
            logger.debug("Flyer died (%s) at tick %d", collision.cause.value, self._tick)

        score_before = self._scorer.score
        score_events = self._scorer.apply_passes(
            obstacle_update.passed, obstacle_update.close_calls
        )
        delta_score = self._scorer.score - score_before

        collected = [p.type for p in power_up_update.collected]
        unlocked = self._dispatch_achievements(collected, score_events, delta_score)

        return TickResult(
            snapshot=self.snapshot(),
            dt=dt,
            alive=flyer.alive,
            death_cause=self._death_cause,
            delta_score=delta_score,
            score_events=score_events,
            collected=collected,
            expired=power_up_update.expired,
            unlocked=unlocked
        )

    def _dispatch_achievements(
        self,
        collected: List[PowerUpType],
        score_events: List[ScoreEvent],
        delta_score: int
    ) -> List[Achievement]:
        engine = self._achievements
        if engine is None:
            return []

        unlocked: List[Achievement] = []
        for power_up_type in collected:
            unlocked.extend(engine.collect_power_up(power_up_type))
        if collected:
            unlocked.extend(engine.track_power_up_combo(self._power_ups.active_types()))

        for event in score_events:
            if event.close_call:
                unlocked.extend(engine.track_close_call())
        if delta_score:
            unlocked.extend(engine.update_score(self._scorer.score))

        if self.is_over and self._session_open:
            self._session_open = False
            unlocked.extend(engine.end_session(self._scorer.score))
        return unlocked

    def snapshot(self) -> GameSnapshot:
        """Build current game state snapshot."""
        return self._snapshot_builder.build(
            tick=self._tick,
            sim_time_ms=self._sim_time,
            score=self._scorer.score,
            flyer=self._physics.flyer,
            obstacles=self._obstacles.obstacles,
            power_ups=self._power_ups
        )

    def get_info(self) -> Dict[str, Any]:
        """Get additional info dict for Gymnasium."""
        return {
            "score": self._scorer.score,
            "tick": self._tick,
            "sim_time_ms": self._sim_time,
            "alive": self._physics.flyer.alive,
            "death_cause": self._death_cause.value,
            "close_calls": self._scorer.close_calls,
            "active_effects": sorted(t.value for t in self._power_ups.active_types()),
        }

    def get_render_data(self) -> Dict[str, Any]:
        """
        Get data needed for rendering.

        Returns:
            Dict with flyer, obstacles, power-ups, effects and board info.
        """
        flyer = self._physics.flyer
        size_multiplier = self._power_ups.size_multiplier()
        return {
            "canvas_width": self._config.canvas.width,
            "canvas_height": self._config.canvas.height,
            "ground_height": self._config.canvas.ground_height,
            "flyer": {
                "x": flyer.x,
                "y": flyer.y,
                "velocity": flyer.velocity,
                "alive": flyer.alive,
                "size": flyer.size * size_multiplier,
            },
            "obstacles": [
                {"x": o.x, "gap_y": o.gap_y, "gap_height": o.gap_height, "width": o.width}
                for o in self._obstacles.obstacles
            ],
            "power_ups": [
                {"id": p.uid, "type": p.type.value, "x": p.x, "y": p.y}
                for p in self._power_ups.power_ups
                if not p.collected
            ],
            "effects": [
                {
                    "type": e.type.value,
                    "remaining": e.remaining,
                    "fraction": e.fraction_remaining,
                }
                for e in self._power_ups.active_effects()
            ],
            "score": self._scorer.score,
            "invulnerable": self._power_ups.is_invulnerable(),
            "speed_multiplier": self._power_ups.speed_multiplier(),
        }
