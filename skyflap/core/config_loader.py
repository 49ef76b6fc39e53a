"""
Configuration Loader
====================

Loads and validates game_config.yaml, providing typed access to all parameters.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Invalid or missing gameplay configuration. Fatal at startup."""


class PowerUpType(str, Enum):
    """The fixed set of collectible power-up types."""
    SHIELD = "shield"
    SLOWMO = "slowmo"
    TINY = "tiny"
    MAGNET = "magnet"


@dataclass(frozen=True)
class CanvasConfig:
    """Playfield geometry."""
    width: int
    height: int
    ground_height: int


@dataclass(frozen=True)
class FlyerConfig:
    """Controlled entity size and start position."""
    size: float
    start_x: float
    start_y: float


@dataclass(frozen=True)
class PhysicsConfig:
    """Flyer integration parameters (per reference frame)."""
    gravity: float
    jump_velocity: float
    terminal_velocity: float


@dataclass(frozen=True)
class ObstacleConfig:
    """Obstacle geometry and scrolling."""
    width: float
    gap_height: float
    spawn_distance: float
    base_speed: float
    margin_top: float
    margin_bottom: float


@dataclass(frozen=True)
class PowerUpSpawnConfig:
    """Power-up spawn gating and lifetime."""
    spawn_chance: float
    min_spawn_interval: float
    max_active_count: int
    despawn_time: float
    size: float
    margin: float


@dataclass(frozen=True)
class PowerUpTypeConfig:
    """Effect parameters for a single power-up type."""
    type: PowerUpType
    duration: float
    spawn_weight: float
    invulnerable: bool = False
    speed_multiplier: float = 1.0
    size_multiplier: float = 1.0
    attraction_radius: float = 0.0
    attraction_strength: float = 0.0


@dataclass(frozen=True)
class CollisionConfig:
    """Collection and collision tuning."""
    collection_radius: float
    close_call_margin: float
    legacy_collection_lag: bool
    magnet_uses_slowmo_scaling: bool


@dataclass(frozen=True)
class TimingConfig:
    """Frame timing."""
    frame_ms: float
    max_dt_ms: float
    notification_dismiss_ms: float


@dataclass(frozen=True)
class AchievementRulesConfig:
    """Thresholds used by the achievement engine outside the definition table."""
    win_threshold: int
    rapid_flap_window_ms: float


@dataclass(frozen=True)
class CapsConfig:
    """Episode and observation limits."""
    max_ticks: int
    max_obstacles: int
    max_power_ups: int


@dataclass(frozen=True)
class GameConfig:
    """
    Complete game configuration loaded from YAML.

    All values are immutable to prevent accidental modification during runtime.
    """
    canvas: CanvasConfig
    flyer: FlyerConfig
    physics: PhysicsConfig
    obstacles: ObstacleConfig
    powerup_spawn: PowerUpSpawnConfig
    powerup_types: Tuple[PowerUpTypeConfig, ...]
    collision: CollisionConfig
    timing: TimingConfig
    achievements: AchievementRulesConfig
    caps: CapsConfig

    @property
    def ground_line(self) -> float:
        """Largest y the flyer's top edge may reach before touching the ground."""
        return self.canvas.height - self.canvas.ground_height - self.flyer.size

    @property
    def gap_range(self) -> Tuple[float, float]:
        """(min, max) for the top edge of a freshly spawned obstacle gap."""
        obs = self.obstacles
        return (
            obs.margin_top,
            self.canvas.height - self.canvas.ground_height - obs.gap_height - obs.margin_bottom
        )

    def get_powerup(self, power_up_type: PowerUpType) -> PowerUpTypeConfig:
        """Get power-up config by type."""
        for cfg in self.powerup_types:
            if cfg.type == power_up_type:
                return cfg
        raise ConfigError(f"No configuration for power-up type: {power_up_type}")


def _section(raw: dict, name: str) -> dict:
    data = raw.get(name)
    if not isinstance(data, dict):
        raise ConfigError(f"Missing config section: {name}")
    return data


def _require(data: dict, key: str, section: str):
    if key not in data:
        raise ConfigError(f"Missing config key: {section}.{key}")
    return data[key]


def _parse_powerup_type(name: str, data: dict) -> PowerUpTypeConfig:
    """Parse a single power-up type configuration from YAML."""
    section = f"powerups.types.{name}"
    power_up_type = PowerUpType(name)
    cfg = PowerUpTypeConfig(
        type=power_up_type,
        duration=float(_require(data, "duration", section)),
        spawn_weight=float(_require(data, "spawn_weight", section)),
    )

    # Type-specific effect parameters
    if power_up_type is PowerUpType.SHIELD:
        cfg = PowerUpTypeConfig(
            type=cfg.type, duration=cfg.duration, spawn_weight=cfg.spawn_weight,
            invulnerable=bool(data.get("invulnerable", True))
        )
    elif power_up_type is PowerUpType.SLOWMO:
        cfg = PowerUpTypeConfig(
            type=cfg.type, duration=cfg.duration, spawn_weight=cfg.spawn_weight,
            speed_multiplier=float(_require(data, "speed_multiplier", section))
        )
    elif power_up_type is PowerUpType.TINY:
        cfg = PowerUpTypeConfig(
            type=cfg.type, duration=cfg.duration, spawn_weight=cfg.spawn_weight,
            size_multiplier=float(_require(data, "size_multiplier", section))
        )
    elif power_up_type is PowerUpType.MAGNET:
        cfg = PowerUpTypeConfig(
            type=cfg.type, duration=cfg.duration, spawn_weight=cfg.spawn_weight,
            attraction_radius=float(_require(data, "attraction_radius", section)),
            attraction_strength=float(_require(data, "attraction_strength", section))
        )
    return cfg


def _validate_config(config: GameConfig) -> None:
    """Validate configuration consistency."""
    if config.canvas.width <= 0 or config.canvas.height <= 0:
        raise ConfigError("Canvas dimensions must be positive")

    if config.flyer.size <= 0:
        raise ConfigError(f"Flyer size must be positive, got {config.flyer.size}")

    obs = config.obstacles
    if obs.width <= 0 or obs.gap_height <= 0 or obs.spawn_distance <= 0:
        raise ConfigError("Obstacle width, gap_height and spawn_distance must be positive")

    gap_min, gap_max = config.gap_range
    if gap_min > gap_max:
        raise ConfigError(
            f"Obstacle gap range is empty: margin_top ({gap_min}) exceeds "
            f"the lowest allowed gap top ({gap_max})"
        )

    # Every type of the enumeration must be configured exactly once
    configured = [cfg.type for cfg in config.powerup_types]
    missing = [t.value for t in PowerUpType if t not in configured]
    if missing:
        raise ConfigError(f"Missing power-up configuration for: {', '.join(missing)}")

    for cfg in config.powerup_types:
        name = cfg.type.value
        if cfg.duration <= 0:
            raise ConfigError(f"{name}.duration must be > 0, got {cfg.duration}")
        if cfg.spawn_weight < 0:
            raise ConfigError(f"{name}.spawn_weight must be >= 0, got {cfg.spawn_weight}")
        if cfg.type is PowerUpType.SLOWMO and not 0 < cfg.speed_multiplier <= 1:
            raise ConfigError(f"slowmo.speed_multiplier must be in (0, 1], got {cfg.speed_multiplier}")
        if cfg.type is PowerUpType.TINY and not 0 < cfg.size_multiplier <= 1:
            raise ConfigError(f"tiny.size_multiplier must be in (0, 1], got {cfg.size_multiplier}")
        if cfg.type is PowerUpType.MAGNET:
            if cfg.attraction_radius <= 0 or cfg.attraction_strength <= 0:
                raise ConfigError("magnet.attraction_radius and attraction_strength must be > 0")

    if sum(cfg.spawn_weight for cfg in config.powerup_types) <= 0:
        raise ConfigError("At least one power-up spawn weight must be positive")

    spawn = config.powerup_spawn
    if not 0 <= spawn.spawn_chance <= 1:
        raise ConfigError(f"spawn_chance must be in [0, 1], got {spawn.spawn_chance}")
    if spawn.max_active_count < 0:
        raise ConfigError(f"max_active_count must be >= 0, got {spawn.max_active_count}")

    if config.timing.frame_ms <= 0 or config.timing.max_dt_ms <= 0:
        raise ConfigError("timing.frame_ms and timing.max_dt_ms must be positive")


def load_config(config_path: Optional[str] = None) -> GameConfig:
    """
    Load and validate game configuration from YAML.

    Args:
        config_path: Path to game_config.yaml. If None, uses default location.

    Returns:
        Validated GameConfig instance.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ConfigError: If the file is unreadable or validation fails.
    """
    if config_path is None:
        config_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)),
            "game_config.yaml"
        )

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Config root must be a mapping: {config_path}")

    try:
        config = _build_config(raw)
    except (TypeError, ValueError) as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(f"Invalid config value in {config_path}: {e}") from e

    _validate_config(config)
    logger.debug("Loaded game config from %s", config_path)
    return config


def _build_config(raw: dict) -> GameConfig:
    canvas_data = _section(raw, "canvas")
    canvas = CanvasConfig(
        width=int(_require(canvas_data, "width", "canvas")),
        height=int(_require(canvas_data, "height", "canvas")),
        ground_height=int(canvas_data.get("ground_height", 0))
    )

    flyer_data = _section(raw, "flyer")
    flyer = FlyerConfig(
        size=float(_require(flyer_data, "size", "flyer")),
        start_x=float(_require(flyer_data, "start_x", "flyer")),
        start_y=float(_require(flyer_data, "start_y", "flyer"))
    )

    physics_data = _section(raw, "physics")
    physics = PhysicsConfig(
        gravity=float(_require(physics_data, "gravity", "physics")),
        jump_velocity=float(_require(physics_data, "jump_velocity", "physics")),
        terminal_velocity=float(physics_data.get("terminal_velocity", 15.0))
    )

    obstacle_data = _section(raw, "obstacles")
    obstacles = ObstacleConfig(
        width=float(_require(obstacle_data, "width", "obstacles")),
        gap_height=float(_require(obstacle_data, "gap_height", "obstacles")),
        spawn_distance=float(_require(obstacle_data, "spawn_distance", "obstacles")),
        base_speed=float(_require(obstacle_data, "base_speed", "obstacles")),
        margin_top=float(obstacle_data.get("margin_top", 0)),
        margin_bottom=float(obstacle_data.get("margin_bottom", 0))
    )

    powerups_data = _section(raw, "powerups")
    spawn_data = _section(powerups_data, "spawn")
    powerup_spawn = PowerUpSpawnConfig(
        spawn_chance=float(_require(spawn_data, "spawn_chance", "powerups.spawn")),
        min_spawn_interval=float(_require(spawn_data, "min_spawn_interval", "powerups.spawn")),
        max_active_count=int(_require(spawn_data, "max_active_count", "powerups.spawn")),
        despawn_time=float(_require(spawn_data, "despawn_time", "powerups.spawn")),
        size=float(spawn_data.get("size", 24)),
        margin=float(spawn_data.get("margin", 40))
    )

    types_data: Dict[str, dict] = _section(powerups_data, "types")
    valid_names = {t.value for t in PowerUpType}
    for name in types_data:
        if name not in valid_names:
            raise ConfigError(f"Unknown power-up type in config: {name}")
    powerup_types = tuple(
        _parse_powerup_type(t.value, types_data[t.value])
        for t in PowerUpType
        if t.value in types_data
    )

    collision_data = _section(raw, "collision")
    collision = CollisionConfig(
        collection_radius=float(_require(collision_data, "collection_radius", "collision")),
        close_call_margin=float(collision_data.get("close_call_margin", 12)),
        legacy_collection_lag=bool(collision_data.get("legacy_collection_lag", False)),
        magnet_uses_slowmo_scaling=bool(collision_data.get("magnet_uses_slowmo_scaling", True))
    )

    timing_data = _section(raw, "timing")
    frame_ms = float(_require(timing_data, "frame_ms", "timing"))
    timing = TimingConfig(
        frame_ms=frame_ms,
        max_dt_ms=float(timing_data.get("max_dt_ms", frame_ms * 2)),
        notification_dismiss_ms=float(timing_data.get("notification_dismiss_ms", 4000))
    )

    achievement_data = raw.get("achievements", {})
    achievements = AchievementRulesConfig(
        win_threshold=int(achievement_data.get("win_threshold", 10)),
        rapid_flap_window_ms=float(achievement_data.get("rapid_flap_window_ms", 5000))
    )

    caps_data = raw.get("caps", {})
    caps = CapsConfig(
        max_ticks=int(caps_data.get("max_ticks", 108000)),
        max_obstacles=int(caps_data.get("max_obstacles", 8)),
        max_power_ups=int(caps_data.get("max_power_ups", 4))
    )

    return GameConfig(
        canvas=canvas,
        flyer=flyer,
        physics=physics,
        obstacles=obstacles,
        powerup_spawn=powerup_spawn,
        powerup_types=powerup_types,
        collision=collision,
        timing=timing,
        achievements=achievements,
        caps=caps
    )


# Module-level singleton for convenience
_cached_config: Optional[GameConfig] = None


def get_config() -> GameConfig:
    """Get the cached game configuration, loading if necessary."""
    global _cached_config
    if _cached_config is None:
        _cached_config = load_config()
    return _cached_config


def reload_config(config_path: Optional[str] = None) -> GameConfig:
    """Reload the configuration (useful for testing)."""
    global _cached_config
    _cached_config = load_config(config_path)
    return _cached_config
