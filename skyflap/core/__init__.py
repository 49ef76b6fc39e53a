"""
skyflap Core - The simulation and progression engine.

This module provides the per-tick simulation (flyer physics, obstacles,
power-ups, collision, scoring), the achievement engine, the tick scheduler
and a Gymnasium environment wrapper.

Main exports:
- CoreGame: Per-tick game simulation
- AchievementEngine: Persistent achievement and progress tracking
- TickScheduler: Frame-driven update loop with clamped dt
- FlyerEnv: Gymnasium environment for agents
- GameConfig: Configuration loaded from game_config.yaml
"""

from skyflap.core.config_loader import ConfigError, GameConfig, PowerUpType, load_config
from skyflap.core.achievement_catalog import AchievementCatalog, load_achievements
from skyflap.core.achievement_store import (
    AchievementStore,
    JsonFileStore,
    MemoryStore,
    PersistenceError,
)
from skyflap.core.achievements import AchievementEngine
from skyflap.core.game import CoreGame
from skyflap.core.scheduler import NotificationTimers, TickScheduler
from skyflap.core.env_gym import FlyerEnv

__all__ = [
    "ConfigError",
    "GameConfig",
    "PowerUpType",
    "load_config",
    "AchievementCatalog",
    "load_achievements",
    "AchievementStore",
    "JsonFileStore",
    "MemoryStore",
    "PersistenceError",
    "AchievementEngine",
    "CoreGame",
    "NotificationTimers",
    "TickScheduler",
    "FlyerEnv",
]
