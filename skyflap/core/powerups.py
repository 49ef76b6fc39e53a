"""
Power-Up Manager
================

Spawns, moves and despawns collectible power-ups, detects collection, and owns
the set of active time-bounded effects. The derived modifiers (speed, size,
invulnerability) feed obstacle advance and collision resolution.

Effect state per type: absent -> active (collected) -> expired. Effects live in
a dict keyed by type, so there is at most one active effect per type;
collecting an already-active type replaces the entry with a fresh one at full
duration.
"""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

from skyflap.core.config_loader import GameConfig, PowerUpType, get_config
from skyflap.core.flyer_physics import Flyer
from skyflap.core.rng import SpawnRng


@dataclass
class PowerUp:
    """A collectible on the field. (x, y) is its center."""
    uid: str
    type: PowerUpType
    x: float
    y: float
    spawn_time: float
    collected: bool = False


@dataclass
class ActiveEffect:
    """An effect in force. Durations in milliseconds."""
    type: PowerUpType
    remaining: float
    max_duration: float
    start_time: float

    @property
    def fraction_remaining(self) -> float:
        return max(0.0, min(1.0, self.remaining / self.max_duration))


@dataclass
class PowerUpUpdate:
    """What happened to power-ups and effects during one update."""
    spawned: List[PowerUp] = field(default_factory=list)
    collected: List[PowerUp] = field(default_factory=list)
    despawned: List[PowerUp] = field(default_factory=list)
    expired: List[PowerUpType] = field(default_factory=list)


class PowerUpManager:
    """
    Power-up lifecycle and active effects.

    Per-tick order inside update():
        spawn -> move -> despawn -> magnet pull -> collection -> effect decay
    """

    def __init__(
        self,
        config: Optional[GameConfig] = None,
        rng: Optional[SpawnRng] = None
    ):
        """
        Initialize power-up manager.

        Args:
            config: Game configuration. Uses default if None.
            rng: Shared spawn RNG. A fresh unseeded one if None.
        """
        if config is None:
            config = get_config()

        self._config = config
        self._rng = rng if rng is not None else SpawnRng(config)
        self._spawn_cfg = config.powerup_spawn
        self._frame_ms = config.timing.frame_ms
        self._collection_radius = config.collision.collection_radius
        self._legacy_lag = config.collision.legacy_collection_lag
        self._magnet_slowmo_scaling = config.collision.magnet_uses_slowmo_scaling

        self._slowmo = config.get_powerup(PowerUpType.SLOWMO)
        self._tiny = config.get_powerup(PowerUpType.TINY)
        self._magnet = config.get_powerup(PowerUpType.MAGNET)

        self._ids = itertools.count(1)
        self.power_ups: List[PowerUp] = []
        self._effects: Dict[PowerUpType, ActiveEffect] = {}
        self._last_spawn_time: float = 0.0

    def reset(self, now: float = 0.0) -> None:
        """Clear power-ups and effects; the spawn interval restarts at now."""
        self.power_ups.clear()
        self._effects.clear()
        self._ids = itertools.count(1)
        self._last_spawn_time = now

    # ------------------------------------------------------------------
    # Derived modifiers
    # ------------------------------------------------------------------

    def speed_multiplier(self) -> float:
        """Slow-motion factor while slowmo is active, else 1."""
        if PowerUpType.SLOWMO in self._effects:
            return self._slowmo.speed_multiplier
        return 1.0

    def size_multiplier(self) -> float:
        """Tiny factor while tiny is active, else 1."""
        if PowerUpType.TINY in self._effects:
            return self._tiny.size_multiplier
        return 1.0

    def is_invulnerable(self) -> bool:
        return PowerUpType.SHIELD in self._effects

    def is_active(self, power_up_type: PowerUpType) -> bool:
        return power_up_type in self._effects

    def active_types(self) -> FrozenSet[PowerUpType]:
        return frozenset(self._effects)

    def active_effects(self) -> List[ActiveEffect]:
        """Active effects in enumeration order."""
        return [self._effects[t] for t in PowerUpType if t in self._effects]

    def remaining(self, power_up_type: PowerUpType) -> float:
        """Remaining duration in ms, 0 if not active."""
        effect = self._effects.get(power_up_type)
        return effect.remaining if effect is not None else 0.0

    @property
    def uncollected_count(self) -> int:
        return sum(1 for p in self.power_ups if not p.collected)

    # ------------------------------------------------------------------
    # Effects
    # ------------------------------------------------------------------

    def activate(self, power_up_type: PowerUpType, now: float) -> ActiveEffect:
        """
        Start or restart the effect for a type at full duration.

        Args:
            power_up_type: Effect type.
            now: Current simulation time in ms.

        Returns:
            The new active effect.
        """
        duration = self._config.get_powerup(power_up_type).duration
        effect = ActiveEffect(
            type=power_up_type,
            remaining=duration,
            max_duration=duration,
            start_time=now
        )
        self._effects[power_up_type] = effect
        return effect

    def decay_effects(self, dt: float) -> List[PowerUpType]:
        """
        Decrement every effect by dt * speed multiplier and drop finished ones.

        Args:
            dt: Elapsed time in ms.

        Returns:
            Types that expired.
        """
        step = dt * self.speed_multiplier()
        expired = []
        for power_up_type in list(self._effects):
            effect = self._effects[power_up_type]
            effect.remaining -= step
            if effect.remaining <= 0:
                del self._effects[power_up_type]
                expired.append(power_up_type)
        return expired

    # ------------------------------------------------------------------
    # Per-tick update
    # ------------------------------------------------------------------

    def update(self, dt: float, now: float, flyer: Flyer) -> PowerUpUpdate:
        """
        Run one tick of power-up logic.

        Args:
            dt: Elapsed time in ms.
            now: Simulation time in ms at the end of this tick.
            flyer: The flyer (read only).

        Returns:
            PowerUpUpdate for this tick.
        """
        result = PowerUpUpdate()
        speed = self.speed_multiplier()
        dt_norm = dt / self._frame_ms

        # Positions as of tick start, for the legacy one-tick collection lag
        previous: Dict[str, Tuple[float, float]] = {}
        if self._legacy_lag:
            previous = {p.uid: (p.x, p.y) for p in self.power_ups}

        spawned = self._try_spawn(now)
        if spawned is not None:
            result.spawned.append(spawned)

        self._move(dt_norm, speed)
        result.despawned.extend(self._despawn(now))

        if PowerUpType.MAGNET in self._effects:
            self._apply_magnet(dt_norm, flyer, speed)

        if flyer.alive:
            result.collected.extend(self._collect(flyer, now, previous))

        result.expired.extend(self.decay_effects(dt))
        return result

    def _try_spawn(self, now: float) -> Optional[PowerUp]:
        cfg = self._spawn_cfg
        if self.uncollected_count >= cfg.max_active_count:
            return None
        if now - self._last_spawn_time < cfg.min_spawn_interval:
            return None
        if not self._rng.chance(cfg.spawn_chance):
            return None

        canvas = self._config.canvas
        low = cfg.margin
        high = max(low, canvas.height - canvas.ground_height - cfg.margin)
        power_up = PowerUp(
            uid=f"powerup-{next(self._ids)}",
            type=self._rng.weighted_type(),
            x=canvas.width + cfg.size / 2,
            y=self._rng.uniform(low, high),
            spawn_time=now
        )
        self.power_ups.append(power_up)
        self._last_spawn_time = now
        return power_up

    def _move(self, dt_norm: float, speed: float) -> None:
        shift = self._config.obstacles.base_speed * speed * dt_norm
        for power_up in self.power_ups:
            power_up.x -= shift

    def _despawn(self, now: float) -> List[PowerUp]:
        half = self._spawn_cfg.size / 2
        kept, removed = [], []
        for power_up in self.power_ups:
            timed_out = now - power_up.spawn_time > self._spawn_cfg.despawn_time
            off_screen = power_up.x + half < 0
            if power_up.collected or timed_out or off_screen:
                removed.append(power_up)
            else:
                kept.append(power_up)
        self.power_ups = kept
        return removed

    def _apply_magnet(self, dt_norm: float, flyer: Flyer, speed: float) -> None:
        radius = self._magnet.attraction_radius
        strength = self._magnet.attraction_strength
        if self._magnet_slowmo_scaling:
            strength *= speed
        pull = min(1.0, strength * dt_norm)

        fx, fy = flyer.center
        for power_up in self.power_ups:
            if power_up.collected:
                continue
            dx = fx - power_up.x
            dy = fy - power_up.y
            if math.hypot(dx, dy) < radius:
                power_up.x += dx * pull
                power_up.y += dy * pull

    def _collect(
        self,
        flyer: Flyer,
        now: float,
        previous: Dict[str, Tuple[float, float]]
    ) -> List[PowerUp]:
        fx, fy = flyer.center
        collected = []
        for power_up in self.power_ups:
            if power_up.collected:
                continue
            if self._legacy_lag:
                if power_up.uid not in previous:
                    continue
                px, py = previous[power_up.uid]
            else:
                px, py = power_up.x, power_up.y

            if math.hypot(fx - px, fy - py) < self._collection_radius:
                power_up.collected = True
                self.activate(power_up.type, now)
                collected.append(power_up)

        if collected:
            self.power_ups = [p for p in self.power_ups if not p.collected]
        return collected
