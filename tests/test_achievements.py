"""
Tests for the achievement catalog and engine.
"""

import logging

import pytest

from skyflap.core.achievement_catalog import (
    AchievementCatalog,
    RequirementKind,
    get_catalog,
    load_achievements,
)
from skyflap.core.achievement_store import MemoryStore
from skyflap.core.achievements import AchievementEngine
from skyflap.core.config_loader import ConfigError, PowerUpType, load_config


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture
def config():
    return load_config()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def engine(config, store, clock):
    return AchievementEngine(store=store, config=config, clock=clock)


def ids(achievements):
    return [a.id for a in achievements]


def play_game(engine, score):
    engine.start_session()
    engine.update_score(score)
    return engine.end_session(score)


class TestCatalog:
    """Test achievement definition loading."""

    def test_default_catalog(self):
        catalog = load_achievements()

        assert len(catalog) == 23
        assert len(set(catalog.ids)) == len(catalog)
        assert "first_score" in catalog

    def test_type_condition_parsed(self):
        catalog = get_catalog()
        requirement = catalog["magnet_enthusiast"].requirement

        assert requirement.kind is RequirementKind.POWERUP_TYPE_COLLECTED
        assert requirement.power_up_type is PowerUpType.MAGNET

    def test_combo_kinds(self):
        catalog = get_catalog()
        combos = [d.id for d in catalog if d.requirement.kind.is_combo]

        assert combos == ["time_traveler", "tiny_tank", "power_master"]
        assert all(catalog[i].hidden for i in combos)

    def test_unknown_kind_rejected(self, tmp_path):
        path = tmp_path / "achievements.yaml"
        path.write_text(
            "achievements:\n"
            "  - id: broken\n"
            "    requirement: {kind: fly_to_moon, value: 1}\n"
        )
        with pytest.raises(ConfigError, match="broken"):
            load_achievements(str(path))

    def test_condition_only_for_type_kind(self, tmp_path):
        path = tmp_path / "achievements.yaml"
        path.write_text(
            "achievements:\n"
            "  - id: odd\n"
            "    requirement: {kind: single_score, value: 1, condition: shield}\n"
        )
        with pytest.raises(ConfigError, match="condition"):
            load_achievements(str(path))

    def test_engine_rejects_unhandled_kind(self, config, monkeypatch):
        """Every requirement kind needs an evaluator or a combo rule."""
        monkeypatch.setattr("skyflap.core.achievements.COMBO_REQUIREMENTS", {})

        with pytest.raises(ConfigError, match="Unhandled requirement kinds"):
            AchievementEngine(store=MemoryStore(), config=config)

    def test_duplicate_ids_rejected(self):
        definition = get_catalog()["first_score"]
        with pytest.raises(ConfigError, match="Duplicate"):
            AchievementCatalog((definition, definition))


class TestScoreAchievements:
    """Test score-driven unlocks."""

    def test_first_score(self, engine):
        engine.start_session()
        unlocked = engine.update_score(1)

        assert ids(unlocked) == ["first_score"]
        assert engine.total_points == 10
        assert engine.unlocked_count == 1

    def test_definition_order_within_one_pass(self, engine):
        """first_score is reported before score_10 when both unlock at once."""
        engine.start_session()
        unlocked = ids(engine.update_score(10))

        assert unlocked.index("first_score") < unlocked.index("score_10")

    def test_partial_progress(self, engine):
        engine.start_session()
        engine.update_score(5)

        assert engine.get("score_10").progress == pytest.approx(0.5)
        assert not engine.get("score_10").unlocked

    def test_total_score_accumulates_across_sessions(self, engine):
        play_game(engine, 4)
        play_game(engine, 6)

        assert engine.progress.total_score == 10
        assert engine.progress.max_score == 6

    def test_perfect_start_requires_no_power_ups(self, engine):
        engine.start_session()
        engine.collect_power_up(PowerUpType.SHIELD)
        engine.update_score(10)
        assert not engine.get("perfect_start").unlocked

        engine.end_session(10)
        engine.start_session()
        engine.update_score(10)
        assert engine.get("perfect_start").unlocked


class TestUnlockRules:
    """Test monotonicity, idempotence and point totals."""

    def test_first_powerup_points(self, engine):
        engine.start_session()
        unlocked = engine.collect_power_up(PowerUpType.SLOWMO)

        assert "first_powerup" in ids(unlocked)
        assert engine.total_points == 15

    def test_unlock_is_idempotent(self, engine):
        engine.start_session()
        engine.collect_power_up(PowerUpType.SHIELD)
        again = engine.collect_power_up(PowerUpType.SHIELD)

        assert "first_powerup" not in ids(again)
        assert engine.total_points == 15
        assert engine.unlocked_count == 1

    def test_unlocked_stays_unlocked(self, engine):
        engine.start_session()
        engine.update_score(1)
        engine.end_session(1)
        engine.start_session()

        assert engine.get("first_score").unlocked

    def test_points_match_unlocked_definitions(self, engine):
        play_game(engine, 12)
        engine.track_power_up_combo({PowerUpType.SHIELD, PowerUpType.TINY})

        unlocked = engine.get_unlocked_achievements()
        assert engine.total_points == sum(a.points for a in unlocked)
        assert engine.unlocked_count == len(unlocked)

    def test_type_counter(self, engine):
        engine.start_session()
        for _ in range(25):
            engine.collect_power_up(PowerUpType.TINY)

        assert engine.get("tiny_specialist").unlocked
        assert not engine.get("shield_master").unlocked
        assert engine.progress.power_ups_collected[PowerUpType.TINY] == 25
        assert engine.progress.total_power_ups == 25


class TestCombos:
    """Test hidden combo achievements."""

    def test_slowmo_shield(self, engine):
        engine.start_session()
        unlocked = engine.track_power_up_combo({PowerUpType.SHIELD, PowerUpType.SLOWMO})

        assert ids(unlocked) == ["time_traveler"]
        assert engine.total_points == 150

    def test_partial_combo_does_nothing(self, engine):
        engine.start_session()
        assert engine.track_power_up_combo({PowerUpType.SHIELD}) == []

    def test_all_active_unlocks_every_combo(self, engine):
        engine.start_session()
        unlocked = engine.track_power_up_combo(set(PowerUpType))

        assert set(ids(unlocked)) == {"time_traveler", "tiny_tank", "power_master"}

    def test_evaluate_never_unlocks_combos(self, engine):
        assert engine.evaluate("power_master") is None

    def test_hidden_until_unlocked(self, engine):
        visible = ids(engine.get_visible_achievements())
        assert "tiny_tank" not in visible

        engine.track_power_up_combo({PowerUpType.SHIELD, PowerUpType.TINY})
        assert "tiny_tank" in ids(engine.get_visible_achievements())


class TestSessionAchievements:
    """Test streaks, session time and skill counters."""

    def test_win_streak(self, engine):
        play_game(engine, 10)
        play_game(engine, 15)
        unlocked = play_game(engine, 11)

        assert "win_streak_3" in ids(unlocked)
        assert engine.progress.best_win_streak == 3

    def test_loss_breaks_streak(self, engine):
        play_game(engine, 10)
        play_game(engine, 10)
        play_game(engine, 3)
        play_game(engine, 10)

        assert engine.progress.current_win_streak == 1
        assert engine.progress.best_win_streak == 2
        assert not engine.get("win_streak_3").unlocked

    def test_games_played(self, engine):
        for _ in range(25):
            play_game(engine, 0)

        assert engine.progress.games_played == 25
        assert engine.get("dedicated_player").unlocked

    def test_session_time(self, engine, clock):
        engine.start_session()
        clock.advance(600_000)
        unlocked = engine.track_close_call()

        assert "endurance_flyer" in ids(unlocked)

    def test_no_session_time_without_session(self, engine, clock):
        clock.advance(10_000_000)
        engine.evaluate_all()

        assert not engine.get("endurance_flyer").unlocked

    def test_play_time_accumulates(self, engine, clock):
        engine.start_session()
        clock.advance(30_000)
        engine.end_session(0)

        assert engine.progress.total_play_time == pytest.approx(30_000)
        assert not engine.progress.session_active

    def test_rapid_flaps_burst(self, engine):
        engine.start_session()
        for _ in range(19):
            engine.track_flap()
        assert not engine.get("rapid_flapper").unlocked

        assert "rapid_flapper" in ids(engine.track_flap())

    def test_rapid_flaps_window(self, engine, clock):
        engine.start_session()
        for _ in range(40):
            engine.track_flap()
            clock.advance(300)

        # 300 ms apart, so a 5000 ms window holds at most 17 flaps
        assert engine.progress.rapid_flaps == 17
        assert not engine.get("rapid_flapper").unlocked

    def test_close_calls(self, engine):
        engine.start_session()
        for _ in range(50):
            engine.track_close_call()

        assert engine.get("close_call_king").unlocked


class TestNotifications:
    """Test notification queue and the unlock callback."""

    def test_notification_queued(self, engine):
        engine.start_session()
        engine.update_score(1)

        unseen = engine.get_unseen_notifications()
        assert [n.id for n in unseen] == ["notif-first_score-1"]
        assert unseen[0].achievement.id == "first_score"

    def test_mark_seen(self, engine, store):
        engine.start_session()
        engine.update_score(1)
        saves = store.save_count

        assert engine.mark_notification_seen("notif-first_score-1")
        assert not engine.mark_notification_seen("notif-first_score-1")
        assert engine.get_unseen_notifications() == []
        assert store.save_count == saves + 1

    def test_callback_once_per_unlock(self, config, store, clock):
        seen = []
        engine = AchievementEngine(
            store=store, config=config, clock=clock, on_unlock=seen.append
        )
        engine.start_session()
        engine.update_score(1)
        engine.update_score(1)

        assert [a.id for a in seen] == ["first_score"]

    def test_callback_failure_is_logged(self, config, store, clock, caplog):
        def explode(achievement):
            raise RuntimeError("speaker unplugged")

        engine = AchievementEngine(store=store, config=config, clock=clock, on_unlock=explode)
        engine.start_session()
        with caplog.at_level(logging.ERROR):
            unlocked = engine.update_score(1)

        assert ids(unlocked) == ["first_score"]
        assert "Unlock callback failed" in caplog.text

    def test_progress_percentage(self, engine):
        assert engine.get_progress_percentage() == 0.0

        engine.start_session()
        engine.update_score(1)

        assert engine.get_progress_percentage() == pytest.approx(100 / 23)


class TestIdempotence:
    """Re-evaluating without new events changes nothing."""

    def test_evaluate_all_twice(self, engine, store):
        engine.start_session()
        engine.update_score(3)
        engine.evaluate_all()
        blob = engine.to_blob()
        saves = store.save_count

        assert engine.evaluate_all() == []
        assert engine.to_blob() == blob
        assert store.save_count == saves
