"""
Tests for achievement persistence: stores, schema migration and recovery.
"""

import json
import logging

import pytest

from skyflap.core.achievement_store import (
    SCHEMA_VERSION,
    AchievementStore,
    JsonFileStore,
    MemoryStore,
    PersistenceError,
    migrate_blob,
)
from skyflap.core.achievements import AchievementEngine
from skyflap.core.config_loader import PowerUpType, load_config


@pytest.fixture
def config():
    return load_config()


def fixed_clock():
    return 5_000.0


class BrokenStore(AchievementStore):
    """Store whose writes always fail."""

    def load(self):
        return None

    def save(self, blob):
        raise PersistenceError("disk full")


class TestMigration:
    """Test versioned blob migration."""

    def test_current_version_unchanged(self):
        blob = {"version": SCHEMA_VERSION, "achievements": {}, "progress": {}, "notifications": []}
        assert migrate_blob(blob) == blob

    def test_legacy_blob_upgraded(self):
        migrated = migrate_blob({"achievements": {"first_score": {"unlocked": True}}})

        assert migrated["version"] == SCHEMA_VERSION
        assert migrated["progress"] == {}
        assert migrated["notifications"] == []
        assert migrated["achievements"]["first_score"]["unlocked"]

    def test_newer_version_rejected(self):
        with pytest.raises(PersistenceError, match="newer"):
            migrate_blob({"version": SCHEMA_VERSION + 1})

    @pytest.mark.parametrize("blob", [
        "not a blob",
        [1, 2, 3],
        {"version": "1"},
        {"version": True},
        {"version": 1, "achievements": []},
        {"version": 1, "notifications": {}},
    ])
    def test_malformed_rejected(self, blob):
        with pytest.raises(PersistenceError):
            migrate_blob(blob)


class TestJsonFileStore:
    """Test the JSON file backend."""

    def test_missing_file_loads_none(self, tmp_path):
        assert JsonFileStore(tmp_path / "save.json").load() is None

    def test_save_then_load(self, tmp_path):
        store = JsonFileStore(tmp_path / "nested" / "save.json")
        store.save({"version": 1, "achievements": {}})

        assert store.load() == {"version": 1, "achievements": {}}
        assert [p.name for p in store.path.parent.iterdir()] == ["save.json"]

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "save.json"
        path.write_text("{not json")

        with pytest.raises(PersistenceError):
            JsonFileStore(path).load()

    def test_unserializable_blob_raises(self, tmp_path):
        store = JsonFileStore(tmp_path / "save.json")
        with pytest.raises(PersistenceError):
            store.save({"bad": object()})
        assert not store.path.exists()


class TestEnginePersistence:
    """Test that the engine survives restarts and bad data."""

    def test_state_survives_restart(self, config, tmp_path):
        store = JsonFileStore(tmp_path / "save.json")
        first = AchievementEngine(store=store, config=config, clock=fixed_clock)
        first.start_session()
        first.update_score(1)
        first.collect_power_up(PowerUpType.MAGNET)
        first.end_session(1)

        second = AchievementEngine(store=store, config=config, clock=fixed_clock)

        assert second.get("first_score").unlocked
        assert second.get("first_score").unlocked_at == 5_000.0
        assert second.total_points == first.total_points
        assert second.progress.games_played == 1
        assert second.progress.power_ups_collected[PowerUpType.MAGNET] == 1
        assert [n.id for n in second.get_unseen_notifications()] == [
            n.id for n in first.get_unseen_notifications()
        ]

    def test_saved_layout(self, config):
        store = MemoryStore()
        engine = AchievementEngine(store=store, config=config, clock=fixed_clock)
        engine.start_session()
        engine.collect_power_up(PowerUpType.SHIELD)

        blob = store.load()
        assert blob["version"] == SCHEMA_VERSION
        assert blob["progress"]["powerUpsCollected"]["shield"] == 1
        assert blob["progress"]["powerUpsCollected"]["total"] == 1
        assert blob["totalAchievementPoints"] == 15
        assert blob["unlockedCount"] == 1
        json.dumps(blob)

    def test_totals_recomputed_on_load(self, config):
        blob = {
            "version": 1,
            "achievements": {"first_score": {"unlocked": True, "progress": 1, "unlockedAt": 1}},
            "progress": {},
            "notifications": [],
            "totalAchievementPoints": 9999,
            "unlockedCount": 42,
        }
        engine = AchievementEngine(store=MemoryStore(blob), config=config, clock=fixed_clock)

        assert engine.total_points == 10
        assert engine.unlocked_count == 1

    def test_legacy_blob_loaded(self, config):
        blob = {
            "achievements": {"first_powerup": {"unlocked": True, "progress": 1}},
            "progress": {"gamesPlayed": 7, "powerUpsCollected": {"tiny": 3, "total": 3}},
        }
        engine = AchievementEngine(store=MemoryStore(blob), config=config, clock=fixed_clock)

        assert engine.get("first_powerup").unlocked
        assert engine.progress.games_played == 7
        assert engine.progress.power_ups_collected[PowerUpType.TINY] == 3
        assert engine.to_blob()["version"] == SCHEMA_VERSION

    def test_unknown_ids_dropped(self, config):
        blob = {
            "version": 1,
            "achievements": {"retired_badge": {"unlocked": True, "progress": 1}},
            "notifications": [
                {"id": "n1", "achievement": {"id": "retired_badge"}, "timestamp": 0}
            ],
        }
        engine = AchievementEngine(store=MemoryStore(blob), config=config, clock=fixed_clock)

        assert engine.unlocked_count == 0
        assert engine.get_unseen_notifications() == []
        assert "retired_badge" not in engine.to_blob()["achievements"]

    @pytest.mark.parametrize("blob", [
        "garbage",
        {"version": 99},
        {"version": 1, "progress": {"totalScore": "lots"}},
        {"version": 1, "achievements": {"first_score": "yes"}},
        {"version": 1, "progress": {"totalScore": float("nan")}},
        {"version": 1, "progress": {"gamesPlayed": float("inf")}},
        {"version": 1, "progress": {"skillStats": {"rapidFlaps": float("-inf")}}},
        {"version": 1, "achievements": {"first_score": {"unlocked": "false"}}},
        {"version": 1, "achievements": {"first_score": {"unlocked": 1}}},
        {"version": 1, "notifications": [
            {"id": "n1", "achievement": {"id": "first_score"}, "timestamp": 0, "seen": "no"}
        ]},
    ])
    def test_corrupt_blob_starts_fresh(self, config, blob, caplog):
        with caplog.at_level(logging.WARNING):
            engine = AchievementEngine(
                store=MemoryStore(blob), config=config, clock=fixed_clock
            )

        assert engine.unlocked_count == 0
        assert engine.progress.games_played == 0
        assert "Discarding persisted achievement data" in caplog.text

        engine.start_session()
        assert engine.update_score(1)

    def test_corrupt_file_starts_fresh(self, config, tmp_path):
        path = tmp_path / "save.json"
        path.write_text("\x00\x01 definitely not json")

        engine = AchievementEngine(store=JsonFileStore(path), config=config, clock=fixed_clock)
        engine.start_session()
        engine.update_score(1)

        assert json.loads(path.read_text())["unlockedCount"] == 1

    def test_non_finite_numbers_in_file(self, config, tmp_path):
        """json accepts NaN and Infinity literals; they must not break loading."""
        path = tmp_path / "save.json"
        path.write_text(
            '{"version": 1, "progress": {"totalScore": NaN, "gamesPlayed": Infinity}}'
        )

        engine = AchievementEngine(store=JsonFileStore(path), config=config, clock=fixed_clock)

        assert engine.progress.total_score == 0
        assert engine.progress.games_played == 0

    def test_string_false_does_not_unlock(self, config):
        blob = {"version": 1, "achievements": {"first_score": {"unlocked": "false"}}}

        engine = AchievementEngine(store=MemoryStore(blob), config=config, clock=fixed_clock)

        assert not engine.get("first_score").unlocked
        assert engine.total_points == 0

    def test_failed_save_does_not_interrupt(self, config, caplog):
        engine = AchievementEngine(store=BrokenStore(), config=config, clock=fixed_clock)
        engine.start_session()

        with caplog.at_level(logging.WARNING):
            unlocked = engine.update_score(1)

        assert [a.id for a in unlocked] == ["first_score"]
        assert "Failed to save achievement data" in caplog.text
