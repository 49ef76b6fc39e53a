"""
Achievement Engine
==================

Maintains durable cross-session progress counters, evaluates unlock
predicates on every relevant game event, and queues one-shot notifications.

Invariants:
- unlocked flags only ever go False -> True
- total_points == sum of points of unlocked definitions
- unlocked_count == number of unlocked definitions
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

from skyflap.core.achievement_catalog import (
    COMBO_REQUIREMENTS,
    AchievementCatalog,
    AchievementDefinition,
    Requirement,
    RequirementKind,
    get_catalog,
)
from skyflap.core.achievement_store import (
    SCHEMA_VERSION,
    AchievementStore,
    Blob,
    MemoryStore,
    PersistenceError,
    migrate_blob,
)
from skyflap.core.config_loader import ConfigError, GameConfig, PowerUpType, get_config

logger = logging.getLogger(__name__)


def _wall_clock_ms() -> float:
    return time.time() * 1000.0


def _number(data: Dict[str, Any], key: str, default: float = 0) -> float:
    value = data.get(key, default)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PersistenceError(f"Counter '{key}' is not a number: {value!r}")
    if not math.isfinite(value):
        raise PersistenceError(f"Counter '{key}' is not finite: {value!r}")
    return value


def _flag(data: Dict[str, Any], key: str) -> bool:
    value = data.get(key, False)
    if not isinstance(value, bool):
        raise PersistenceError(f"Flag '{key}' is not a boolean: {value!r}")
    return value


def _mapping(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise PersistenceError(f"Progress field '{key}' must be an object")
    return value


@dataclass
class AchievementProgress:
    """Durable counters plus the session-scoped ones."""
    total_score: int = 0
    max_score: int = 0
    games_played: int = 0
    total_play_time: float = 0.0
    power_ups_collected: Dict[PowerUpType, int] = field(
        default_factory=lambda: {t: 0 for t in PowerUpType}
    )
    total_power_ups: int = 0
    close_calls: int = 0
    rapid_flaps: int = 0            # best burst inside the rapid-flap window
    current_win_streak: int = 0
    best_win_streak: int = 0
    current_play_streak: int = 0
    best_play_streak: int = 0
    session_start: float = 0.0
    session_active: bool = False
    current_score: int = 0
    power_ups_this_session: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Persisted layout (camelCase, nested as in the stored blob)."""
        collected = {t.value: n for t, n in self.power_ups_collected.items()}
        collected["total"] = self.total_power_ups
        return {
            "totalScore": self.total_score,
            "maxScore": self.max_score,
            "gamesPlayed": self.games_played,
            "totalPlayTime": self.total_play_time,
            "powerUpsCollected": collected,
            "skillStats": {
                "closeCallsAvoided": self.close_calls,
                "rapidFlaps": self.rapid_flaps,
            },
            "streaks": {
                "currentWinStreak": self.current_win_streak,
                "bestWinStreak": self.best_win_streak,
                "currentPlayStreak": self.current_play_streak,
                "bestPlayStreak": self.best_play_streak,
            },
            "sessionStats": {
                "startTime": self.session_start,
                "currentScore": self.current_score,
                "powerUpsThisSession": self.power_ups_this_session,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AchievementProgress":
        """
        Build progress from a persisted dict, defaulting missing counters.

        Raises:
            PersistenceError: If a counter has the wrong type.
        """
        collected = _mapping(data, "powerUpsCollected")
        skills = _mapping(data, "skillStats")
        streaks = _mapping(data, "streaks")
        session = _mapping(data, "sessionStats")
        return cls(
            total_score=int(_number(data, "totalScore")),
            max_score=int(_number(data, "maxScore")),
            games_played=int(_number(data, "gamesPlayed")),
            total_play_time=float(_number(data, "totalPlayTime")),
            power_ups_collected={t: int(_number(collected, t.value)) for t in PowerUpType},
            total_power_ups=int(_number(collected, "total")),
            close_calls=int(_number(skills, "closeCallsAvoided")),
            rapid_flaps=int(_number(skills, "rapidFlaps")),
            current_win_streak=int(_number(streaks, "currentWinStreak")),
            best_win_streak=int(_number(streaks, "bestWinStreak")),
            current_play_streak=int(_number(streaks, "currentPlayStreak")),
            best_play_streak=int(_number(streaks, "bestPlayStreak")),
            session_start=float(_number(session, "startTime")),
            current_score=int(_number(session, "currentScore")),
            power_ups_this_session=int(_number(session, "powerUpsThisSession")),
        )


@dataclass
class AchievementState:
    """Runtime state for one definition."""
    unlocked: bool = False
    progress: float = 0.0
    unlocked_at: Optional[float] = None


@dataclass(frozen=True)
class Achievement:
    """Read-only view of a definition together with its runtime state."""
    id: str
    name: str
    description: str
    category: str
    difficulty: str
    points: int
    title: Optional[str]
    hidden: bool
    unlocked: bool
    progress: float
    unlocked_at: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "difficulty": self.difficulty,
            "points": self.points,
            "title": self.title,
            "hidden": self.hidden,
            "unlocked": self.unlocked,
            "progress": self.progress,
            "unlockedAt": self.unlocked_at,
        }


@dataclass
class Notification:
    """Queued on unlock; marked seen by the presentation layer."""
    id: str
    achievement: Achievement
    timestamp: float
    seen: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "achievement": self.achievement.to_dict(),
            "timestamp": self.timestamp,
            "seen": self.seen,
        }


UnlockCallback = Callable[[Achievement], None]


class AchievementEngine:
    """
    Incremental rule engine over AchievementProgress.

    Event methods update counters, then run evaluate_all(), which persists
    once if anything changed. Each returns the achievements it unlocked.
    Persistence failures are logged and never interrupt the caller.
    """

    def __init__(
        self,
        catalog: Optional[AchievementCatalog] = None,
        store: Optional[AchievementStore] = None,
        config: Optional[GameConfig] = None,
        on_unlock: Optional[UnlockCallback] = None,
        clock: Optional[Callable[[], float]] = None
    ):
        """
        Initialize the engine and load persisted state.

        Args:
            catalog: Achievement definitions. Uses default if None.
            store: Persistence backend. In-memory if None.
            config: Game configuration. Uses default if None.
            on_unlock: Called once per unlock (UI, audio).
            clock: Returns the current time in ms. Wall clock if None.
        """
        if catalog is None:
            catalog = get_catalog()
        if config is None:
            config = get_config()

        self._catalog = catalog
        self._store = store if store is not None else MemoryStore()
        self._win_threshold = config.achievements.win_threshold
        self._flap_window = config.achievements.rapid_flap_window_ms
        self._on_unlock = on_unlock
        self._clock = clock or _wall_clock_ms
        self._lock = threading.RLock()

        self._flap_times: Deque[float] = deque()
        self._dirty = False
        self._notification_seq = 0

        self._reset_state()
        self._load()

        self._value_of: Dict[RequirementKind, Callable[[Requirement], float]] = {
            RequirementKind.SINGLE_SCORE: lambda r: self._progress.current_score,
            RequirementKind.TOTAL_SCORE: lambda r: self._progress.total_score,
            RequirementKind.POWERUP_COLLECTED: lambda r: self._progress.total_power_ups,
            RequirementKind.POWERUP_TYPE_COLLECTED:
                lambda r: self._progress.power_ups_collected.get(r.power_up_type, 0),
            RequirementKind.TOTAL_POWERUPS: lambda r: self._progress.total_power_ups,
            RequirementKind.GAMES_PLAYED: lambda r: self._progress.games_played,
            RequirementKind.WIN_STREAK: lambda r: self._progress.current_win_streak,
            RequirementKind.SESSION_TIME: lambda r: self._session_time(),
            RequirementKind.SCORE_NO_POWERUPS:
                lambda r: (self._progress.current_score
                           if self._progress.power_ups_this_session == 0 else 0),
            RequirementKind.RAPID_FLAPS: lambda r: self._progress.rapid_flaps,
            RequirementKind.CLOSE_CALLS: lambda r: self._progress.close_calls,
        }
        unhandled = [
            k for k in RequirementKind
            if k not in self._value_of and k not in COMBO_REQUIREMENTS
        ]
        if unhandled:
            raise ConfigError(f"Unhandled requirement kinds: {unhandled}")

    # ------------------------------------------------------------------
    # State and persistence
    # ------------------------------------------------------------------

    def _reset_state(self) -> None:
        self._progress = AchievementProgress()
        self._states: Dict[str, AchievementState] = {
            d.id: AchievementState() for d in self._catalog
        }
        self._notifications: List[Notification] = []
        self._total_points = 0
        self._unlocked_count = 0
        self._last_updated = self._clock()

    def _load(self) -> None:
        try:
            blob = self._store.load()
            if blob is None:
                return
            self._merge_blob(migrate_blob(blob))
        except PersistenceError as e:
            logger.warning("Discarding persisted achievement data: %s", e)
            self._reset_state()

    def _merge_blob(self, blob: Blob) -> None:
        """Merge a migrated blob against the definition table."""
        progress = AchievementProgress.from_dict(blob.get("progress") or {})

        states: Dict[str, AchievementState] = {}
        saved = blob.get("achievements") or {}
        for definition in self._catalog:
            entry = saved.get(definition.id)
            if entry is None:
                states[definition.id] = AchievementState()
                continue
            if not isinstance(entry, dict):
                raise PersistenceError(f"Achievement entry '{definition.id}' must be an object")
            unlocked = _flag(entry, "unlocked")
            fraction = float(_number(entry, "progress"))
            unlocked_at = entry.get("unlockedAt")
            if unlocked_at is not None:
                unlocked_at = float(_number(entry, "unlockedAt"))
            states[definition.id] = AchievementState(
                unlocked=unlocked,
                progress=1.0 if unlocked else max(0.0, min(1.0, fraction)),
                unlocked_at=unlocked_at if unlocked else None
            )

        self._progress = progress
        self._states = states

        # Totals are derived from unlocked flags so they can't drift
        unlocked = [d for d in self._catalog if states[d.id].unlocked]
        self._total_points = sum(d.points for d in unlocked)
        self._unlocked_count = len(unlocked)

        self._notifications = []
        for entry in blob.get("notifications") or []:
            notification = self._parse_notification(entry)
            if notification is not None:
                self._notifications.append(notification)
        self._notification_seq = len(self._notifications)

        last_updated = blob.get("lastUpdated")
        if (isinstance(last_updated, (int, float)) and not isinstance(last_updated, bool)
                and math.isfinite(last_updated)):
            self._last_updated = float(last_updated)

    def _parse_notification(self, entry: Any) -> Optional[Notification]:
        if not isinstance(entry, dict):
            return None
        achievement = entry.get("achievement")
        achievement_id = achievement.get("id") if isinstance(achievement, dict) else None
        if achievement_id not in self._catalog or "id" not in entry:
            return None
        return Notification(
            id=str(entry["id"]),
            achievement=self._view(self._catalog[achievement_id]),
            timestamp=float(_number(entry, "timestamp")),
            seen=_flag(entry, "seen")
        )

    def to_blob(self) -> Blob:
        """Serialize the full engine state to the persisted layout."""
        with self._lock:
            return {
                "version": SCHEMA_VERSION,
                "achievements": {
                    achievement_id: {
                        "unlocked": state.unlocked,
                        "progress": state.progress,
                        "unlockedAt": state.unlocked_at,
                    }
                    for achievement_id, state in self._states.items()
                },
                "progress": self._progress.to_dict(),
                "notifications": [n.to_dict() for n in self._notifications],
                "totalAchievementPoints": self._total_points,
                "unlockedCount": self._unlocked_count,
                "lastUpdated": self._last_updated,
            }

    def _save(self) -> None:
        self._last_updated = self._clock()
        try:
            self._store.save(self.to_blob())
        except PersistenceError as e:
            logger.warning("Failed to save achievement data: %s", e)
            return
        self._dirty = False

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _session_time(self) -> float:
        if not self._progress.session_active:
            return 0.0
        return max(0.0, self._clock() - self._progress.session_start)

    def _view(self, definition: AchievementDefinition) -> Achievement:
        state = self._states[definition.id]
        return Achievement(
            id=definition.id,
            name=definition.name,
            description=definition.description,
            category=definition.category,
            difficulty=definition.difficulty,
            points=definition.points,
            title=definition.title,
            hidden=definition.hidden,
            unlocked=state.unlocked,
            progress=state.progress,
            unlocked_at=state.unlocked_at,
        )

    def _unlock(self, definition: AchievementDefinition) -> Achievement:
        state = self._states[definition.id]
        now = self._clock()
        state.unlocked = True
        state.progress = 1.0
        state.unlocked_at = now
        self._total_points += definition.points
        self._unlocked_count += 1
        self._dirty = True

        achievement = self._view(definition)
        self._notification_seq += 1
        self._notifications.append(Notification(
            id=f"notif-{definition.id}-{self._notification_seq}",
            achievement=achievement,
            timestamp=now
        ))
        logger.info("Achievement unlocked: %s (+%d)", definition.id, definition.points)

        if self._on_unlock is not None:
            try:
                self._on_unlock(achievement)
            except Exception:
                logger.exception("Unlock callback failed for %s", definition.id)
        return achievement

    def evaluate(self, achievement_id: str) -> Optional[Achievement]:
        """
        Recompute progress for one achievement and unlock it if met.

        Combo kinds are never unlocked here; see track_power_up_combo().

        Args:
            achievement_id: Definition id.

        Returns:
            The unlocked achievement, or None.
        """
        with self._lock:
            definition = self._catalog[achievement_id]
            state = self._states[achievement_id]
            requirement = definition.requirement
            if state.unlocked or requirement.kind in COMBO_REQUIREMENTS:
                return None

            value = self._value_of[requirement.kind](requirement)
            fraction = min(value / requirement.threshold, 1.0)
            if fraction != state.progress:
                state.progress = fraction
                self._dirty = True

            if value >= requirement.threshold:
                return self._unlock(definition)
            return None

    def evaluate_all(self) -> List[Achievement]:
        """
        Evaluate every locked achievement, persisting once if state changed.

        Returns:
            Achievements unlocked by this pass, in definition order.
        """
        with self._lock:
            unlocked = []
            for definition in self._catalog:
                if self._states[definition.id].unlocked:
                    continue
                achievement = self.evaluate(definition.id)
                if achievement is not None:
                    unlocked.append(achievement)
            if self._dirty:
                self._save()
            return unlocked

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def start_session(self) -> List[Achievement]:
        """New game: reset session counters, count the game, evaluate."""
        with self._lock:
            progress = self._progress
            progress.session_start = self._clock()
            progress.session_active = True
            progress.current_score = 0
            progress.power_ups_this_session = 0
            progress.games_played += 1
            progress.current_play_streak += 1
            progress.best_play_streak = max(progress.best_play_streak, progress.current_play_streak)
            self._flap_times.clear()
            self._dirty = True
            logger.debug("Session started (game %d)", progress.games_played)
            return self.evaluate_all()

    def update_score(self, new_score: int) -> List[Achievement]:
        """Apply a new session score; the delta is added to the total."""
        with self._lock:
            progress = self._progress
            delta = new_score - progress.current_score
            progress.current_score = new_score
            progress.total_score += delta
            progress.max_score = max(progress.max_score, new_score)
            if delta:
                self._dirty = True
            return self.evaluate_all()

    def collect_power_up(self, power_up_type: PowerUpType) -> List[Achievement]:
        """Count a collected power-up."""
        with self._lock:
            progress = self._progress
            power_up_type = PowerUpType(power_up_type)
            progress.power_ups_collected[power_up_type] += 1
            progress.total_power_ups += 1
            progress.power_ups_this_session += 1
            self._dirty = True
            return self.evaluate_all()

    def track_flap(self) -> List[Achievement]:
        """Record a flap; the best burst inside the window feeds rapid_flaps."""
        with self._lock:
            now = self._clock()
            self._flap_times.append(now)
            while self._flap_times and now - self._flap_times[0] > self._flap_window:
                self._flap_times.popleft()

            burst = len(self._flap_times)
            if burst <= self._progress.rapid_flaps:
                return []
            self._progress.rapid_flaps = burst
            self._dirty = True
            return self.evaluate_all()

    def track_close_call(self) -> List[Achievement]:
        """Count a near miss."""
        with self._lock:
            self._progress.close_calls += 1
            self._dirty = True
            return self.evaluate_all()

    def track_power_up_combo(self, active_types: Iterable[PowerUpType]) -> List[Achievement]:
        """
        Unlock hidden combo achievements whose effect set is fully active.

        Args:
            active_types: Types of the currently active effects.

        Returns:
            Achievements unlocked by this call.
        """
        with self._lock:
            active = {PowerUpType(t) for t in active_types}
            unlocked = []
            for definition in self._catalog:
                required = COMBO_REQUIREMENTS.get(definition.requirement.kind)
                if required is None or self._states[definition.id].unlocked:
                    continue
                if required <= active:
                    unlocked.append(self._unlock(definition))
            unlocked.extend(self.evaluate_all())
            return unlocked

    def end_session(self, final_score: int) -> List[Achievement]:
        """Game over: update streaks and play time, evaluate."""
        with self._lock:
            progress = self._progress
            if final_score >= self._win_threshold:
                progress.current_win_streak += 1
                progress.best_win_streak = max(progress.best_win_streak, progress.current_win_streak)
            else:
                progress.current_win_streak = 0

            progress.total_play_time += self._session_time()
            self._dirty = True
            # Evaluate before closing the session so session_time sees the full run
            unlocked = self.evaluate_all()
            progress.session_active = False
            logger.debug("Session ended with score %d", final_score)
            return unlocked

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def progress(self) -> AchievementProgress:
        return self._progress

    @property
    def total_points(self) -> int:
        return self._total_points

    @property
    def unlocked_count(self) -> int:
        return self._unlocked_count

    @property
    def last_updated(self) -> float:
        return self._last_updated

    def get(self, achievement_id: str) -> Achievement:
        with self._lock:
            return self._view(self._catalog[achievement_id])

    def get_state(self) -> Blob:
        """Snapshot of the full state in the persisted layout."""
        return self.to_blob()

    def get_achievements(self) -> List[Achievement]:
        with self._lock:
            return [self._view(d) for d in self._catalog]

    def get_unlocked_achievements(self) -> List[Achievement]:
        return [a for a in self.get_achievements() if a.unlocked]

    def get_visible_achievements(self) -> List[Achievement]:
        """Non-hidden achievements plus hidden ones already unlocked."""
        return [a for a in self.get_achievements() if not a.hidden or a.unlocked]

    def get_unseen_notifications(self) -> List[Notification]:
        with self._lock:
            return [n for n in self._notifications if not n.seen]

    def mark_notification_seen(self, notification_id: str) -> bool:
        """
        Mark a notification as seen.

        Returns:
            True if a matching unseen notification was found.
        """
        with self._lock:
            for notification in self._notifications:
                if notification.id == notification_id and not notification.seen:
                    notification.seen = True
                    self._save()
                    return True
            return False

    def get_progress_percentage(self) -> float:
        total = len(self._catalog)
        return (self._unlocked_count / total) * 100 if total > 0 else 0.0
