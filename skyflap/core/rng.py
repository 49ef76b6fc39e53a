"""
RNG - Seeded Spawn Draws
========================

Single source of randomness for the simulation: obstacle gap placement,
power-up spawn rolls and weighted power-up type selection.
"""

from __future__ import annotations

import random
from typing import List, Optional, Tuple

from skyflap.core.config_loader import GameConfig, PowerUpType, get_config


class SpawnRng:
    """
    Seeded random draws shared by the obstacle field and power-up manager.

    Using one generator per game keeps a session reproducible from its seed.
    """

    def __init__(
        self,
        config: Optional[GameConfig] = None,
        seed: Optional[int] = None
    ):
        """
        Initialize spawn RNG.

        Args:
            config: Game configuration. Uses default if None.
            seed: Random seed for reproducibility. Random if None.
        """
        if config is None:
            config = get_config()

        self._config = config
        self._rng = random.Random(seed)

        # Weight table, zero weights dropped
        self._weights: List[Tuple[PowerUpType, float]] = [
            (cfg.type, cfg.spawn_weight)
            for cfg in config.powerup_types
            if cfg.spawn_weight > 0
        ]
        self._total_weight = sum(w for _, w in self._weights)

    def chance(self, probability: float) -> bool:
        """Return True with the given probability."""
        return self._rng.random() < probability

    def uniform(self, low: float, high: float) -> float:
        """Uniform draw in [low, high]."""
        return self._rng.uniform(low, high)

    def weighted_type(self) -> PowerUpType:
        """Choose a power-up type weighted by config spawn weights."""
        r = self._rng.random() * self._total_weight
        cumulative = 0.0
        for power_up_type, weight in self._weights:
            cumulative += weight
            if r < cumulative:
                return power_up_type
        return self._weights[-1][0]

    def reset(self, seed: Optional[int] = None) -> None:
        """
        Reseed the generator.

        Args:
            seed: New random seed. Keeps current state if None.
        """
        if seed is not None:
            self._rng = random.Random(seed)
