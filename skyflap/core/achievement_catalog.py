"""
Achievement Catalog
===================

Static achievement definitions loaded from achievements.yaml.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, Iterator, List, Optional, Tuple

import yaml

from skyflap.core.config_loader import ConfigError, PowerUpType


class RequirementKind(str, Enum):
    """Closed set of requirement predicates."""
    SINGLE_SCORE = "single_score"
    TOTAL_SCORE = "total_score"
    POWERUP_COLLECTED = "powerup_collected"
    POWERUP_TYPE_COLLECTED = "powerup_type_collected"
    TOTAL_POWERUPS = "total_powerups"
    GAMES_PLAYED = "games_played"
    WIN_STREAK = "win_streak"
    SESSION_TIME = "session_time"
    SCORE_NO_POWERUPS = "score_no_powerups"
    RAPID_FLAPS = "rapid_flaps"
    CLOSE_CALLS = "close_calls"
    COMBO_SLOWMO_SHIELD = "combo_slowmo_shield"
    COMBO_TINY_SHIELD = "combo_tiny_shield"
    ALL_POWERUPS_ACTIVE = "all_powerups_active"

    @property
    def is_combo(self) -> bool:
        return self in COMBO_REQUIREMENTS


# Effect types that must be simultaneously active for each combo kind
COMBO_REQUIREMENTS: Dict[RequirementKind, FrozenSet[PowerUpType]] = {
    RequirementKind.COMBO_SLOWMO_SHIELD: frozenset({PowerUpType.SHIELD, PowerUpType.SLOWMO}),
    RequirementKind.COMBO_TINY_SHIELD: frozenset({PowerUpType.SHIELD, PowerUpType.TINY}),
    RequirementKind.ALL_POWERUPS_ACTIVE: frozenset(PowerUpType),
}


@dataclass(frozen=True)
class Requirement:
    """Requirement kind plus threshold; power_up_type only for per-type kinds."""
    kind: RequirementKind
    threshold: float
    power_up_type: Optional[PowerUpType] = None


@dataclass(frozen=True)
class AchievementDefinition:
    """A single immutable achievement definition."""
    id: str
    name: str
    description: str
    category: str
    difficulty: str
    requirement: Requirement
    points: int
    title: Optional[str] = None
    hidden: bool = False


def _parse_requirement(achievement_id: str, data: dict) -> Requirement:
    try:
        kind = RequirementKind(data["kind"])
    except (KeyError, ValueError) as e:
        raise ConfigError(f"{achievement_id}: invalid requirement kind {data.get('kind')!r}") from e

    threshold = float(data.get("value", 0))
    if threshold <= 0:
        raise ConfigError(f"{achievement_id}: requirement value must be > 0, got {threshold}")

    power_up_type = None
    if kind is RequirementKind.POWERUP_TYPE_COLLECTED:
        try:
            power_up_type = PowerUpType(data["condition"])
        except (KeyError, ValueError) as e:
            raise ConfigError(
                f"{achievement_id}: powerup_type_collected needs a power-up condition"
            ) from e
    elif "condition" in data:
        raise ConfigError(f"{achievement_id}: condition only allowed for powerup_type_collected")

    return Requirement(kind=kind, threshold=threshold, power_up_type=power_up_type)


def _parse_definition(data: dict) -> AchievementDefinition:
    if "id" not in data:
        raise ConfigError(f"Achievement without id: {data}")
    achievement_id = str(data["id"])
    if not isinstance(data.get("requirement"), dict):
        raise ConfigError(f"{achievement_id}: missing requirement")

    points = int(data.get("points", 0))
    if points < 0:
        raise ConfigError(f"{achievement_id}: points must be >= 0")

    return AchievementDefinition(
        id=achievement_id,
        name=str(data.get("name", achievement_id)),
        description=str(data.get("description", "")),
        category=str(data.get("category", "special")),
        difficulty=str(data.get("difficulty", "bronze")),
        requirement=_parse_requirement(achievement_id, data["requirement"]),
        points=points,
        title=data.get("title"),
        hidden=bool(data.get("hidden", False))
    )


class AchievementCatalog:
    """Ordered, id-indexed access to achievement definitions."""

    def __init__(self, definitions: Tuple[AchievementDefinition, ...]):
        self._definitions = definitions
        self._by_id: Dict[str, AchievementDefinition] = {}
        for definition in definitions:
            if definition.id in self._by_id:
                raise ConfigError(f"Duplicate achievement id: {definition.id}")
            self._by_id[definition.id] = definition

    def __getitem__(self, achievement_id: str) -> AchievementDefinition:
        return self._by_id[achievement_id]

    def __contains__(self, achievement_id: object) -> bool:
        return achievement_id in self._by_id

    def __iter__(self) -> Iterator[AchievementDefinition]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    @property
    def ids(self) -> List[str]:
        return [d.id for d in self._definitions]

    def by_kind(self, kind: RequirementKind) -> List[AchievementDefinition]:
        return [d for d in self._definitions if d.requirement.kind is kind]


def load_achievements(path: Optional[str] = None) -> AchievementCatalog:
    """
    Load achievement definitions from YAML.

    Args:
        path: Path to achievements.yaml. If None, uses default location.

    Returns:
        AchievementCatalog instance.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ConfigError: If any definition is invalid.
    """
    if path is None:
        path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)),
            "achievements.yaml"
        )

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Achievements file not found: {path}")

    with open(path, "r") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw, dict) or not isinstance(raw.get("achievements"), list):
        raise ConfigError(f"{path}: expected a top-level 'achievements' list")

    try:
        definitions = tuple(_parse_definition(d) for d in raw["achievements"])
    except (TypeError, ValueError) as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(f"Invalid achievement definition in {path}: {e}") from e

    return AchievementCatalog(definitions)


_cached_catalog: Optional[AchievementCatalog] = None


def get_catalog() -> AchievementCatalog:
    """Get the cached default achievement catalog."""
    global _cached_catalog
    if _cached_catalog is None:
        _cached_catalog = load_achievements()
    return _cached_catalog
