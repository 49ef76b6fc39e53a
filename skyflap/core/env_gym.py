"""
Gymnasium Environment Wrapper
=============================

Provides a standard Gymnasium interface to the simulation for agents.
Reward is always 0.0 - agents compute their own from info.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple, Union

import numpy as np

import gymnasium as gym
from gymnasium import spaces

from skyflap.core.config_loader import GameConfig, PowerUpType, load_config
from skyflap.core.game import CoreGame
from skyflap.core.state_snapshot import GameSnapshot


class FlyerEnv(gym.Env):
    """
    Side-scrolling flyer as a Gymnasium environment.

    Action Space:
        Discrete(2): 0 = glide, 1 = flap.

    Observation Space:
        Dict of flyer state, padded obstacle and power-up arrays with masks,
        and remaining duration per effect type.

    Reward:
        Always 0.0. Agents must compute their own reward from the info dict.

    Episode:
        One step = one tick of timing.frame_ms. Terminated when the flyer
        dies, truncated at caps.max_ticks.
    """

    metadata = {
        "render_modes": [],
        "render_fps": 60,
    }

    def __init__(
        self,
        config_path: Optional[str] = None,
        config: Optional[GameConfig] = None,
    ):
        """
        Initialize environment.

        Args:
            config_path: Path to game_config.yaml. Uses default if None.
            config: Already loaded configuration; takes precedence over config_path.
        """
        super().__init__()

        self._config = config if config is not None else load_config(config_path)
        self._game = CoreGame(config=self._config)
        self._frame_ms = self._config.timing.frame_ms

        self.action_space = spaces.Discrete(2)
        self.observation_space = self._build_observation_space()

    def _build_observation_space(self) -> spaces.Dict:
        """Build the observation space definition."""
        canvas = self._config.canvas
        caps = self._config.caps
        longest = max(cfg.duration for cfg in self._config.powerup_types)
        terminal = self._config.physics.terminal_velocity
        jump = self._config.physics.jump_velocity

        return spaces.Dict({
            "flyer_y": spaces.Box(low=0, high=canvas.height, shape=(), dtype=np.float32),
            "flyer_velocity": spaces.Box(
                low=min(jump, -terminal), high=terminal, shape=(), dtype=np.float32
            ),
            "score": spaces.Box(low=0, high=np.iinfo(np.int64).max, shape=(), dtype=np.int64),
            "speed_multiplier": spaces.Box(low=0, high=1, shape=(), dtype=np.float32),
            "size_multiplier": spaces.Box(low=0, high=1, shape=(), dtype=np.float32),
            "invulnerable": spaces.Box(low=0, high=1, shape=(), dtype=np.int8),
            "obstacles": spaces.Box(
                low=-np.inf, high=np.inf, shape=(caps.max_obstacles, 4), dtype=np.float32
            ),
            "obstacle_mask": spaces.MultiBinary(caps.max_obstacles),
            "power_ups": spaces.Box(
                low=-np.inf, high=np.inf, shape=(caps.max_power_ups, 3), dtype=np.float32
            ),
            "power_up_mask": spaces.MultiBinary(caps.max_power_ups),
            "effects": spaces.Box(
                low=0, high=longest, shape=(len(PowerUpType),), dtype=np.float32
            ),
        })

    def reset(
        self,
        *,
        seed: Optional[int] = None,
        options: Optional[Dict[str, Any]] = None
    ) -> Tuple[Dict[str, np.ndarray], Dict[str, Any]]:
        """
        Reset the environment.

        Args:
            seed: Random seed for reproducibility.
            options: Additional options (unused).

        Returns:
            (observation, info) tuple.
        """
        super().reset(seed=seed)

        snapshot = self._game.reset(seed=seed)
        info = self._game.get_info()
        info["delta_score"] = 0
        return self._snapshot_to_obs(snapshot), info

    def step(
        self,
        action: Union[int, np.ndarray]
    ) -> Tuple[Dict[str, np.ndarray], float, bool, bool, Dict[str, Any]]:
        """
        Execute one tick.

        Args:
            action: 1 to flap before the tick, 0 to glide.

        Returns:
            (observation, reward, terminated, truncated, info) tuple.
            Reward is always 0.0.
        """
        if isinstance(action, np.ndarray):
            action = int(action.item())

        if action == 1:
            self._game.flap()

        result = self._game.tick(self._frame_ms)

        terminated = not result.alive
        truncated = not terminated and self._game.tick_count >= self._config.caps.max_ticks

        info = self._game.get_info()
        info["delta_score"] = result.delta_score
        info["collected"] = [t.value for t in result.collected]
        info["unlocked"] = [a.id for a in result.unlocked]

        return self._snapshot_to_obs(result.snapshot), 0.0, terminated, truncated, info

    def _snapshot_to_obs(self, snapshot: GameSnapshot) -> Dict[str, np.ndarray]:
        """Convert snapshot to observation dict."""
        return snapshot.to_obs_dict()

    def close(self) -> None:
        """Nothing to release; headless only."""

    @property
    def game(self) -> CoreGame:
        """Access to underlying game (for debugging/tools)."""
        return self._game

    @property
    def config(self) -> GameConfig:
        """Game configuration."""
        return self._config
