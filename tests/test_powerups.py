"""
Tests for power-up spawning, collection, effects and the magnet pull.
"""

from dataclasses import replace

import pytest

from skyflap.core.config_loader import PowerUpType, load_config
from skyflap.core.flyer_physics import Flyer
from skyflap.core.powerups import PowerUp, PowerUpManager
from skyflap.core.rng import SpawnRng


def with_spawn(config, **changes):
    return replace(config, powerup_spawn=replace(config.powerup_spawn, **changes))


def with_collision(config, **changes):
    return replace(config, collision=replace(config.collision, **changes))


@pytest.fixture
def config():
    return load_config()


@pytest.fixture
def quiet_config(config):
    """No random spawns."""
    return with_spawn(config, spawn_chance=0.0)


@pytest.fixture
def manager(quiet_config):
    return PowerUpManager(quiet_config, SpawnRng(quiet_config, seed=1))


@pytest.fixture
def flyer(config):
    return Flyer(x=100, y=300, velocity=0.0, alive=True, size=24)


def place(manager, x, y, power_up_type=PowerUpType.SHIELD, spawn_time=0.0, uid="test-1"):
    power_up = PowerUp(uid=uid, type=power_up_type, x=x, y=y, spawn_time=spawn_time)
    manager.power_ups.append(power_up)
    return power_up


class TestSpawning:
    """Test spawn gating and placement."""

    @pytest.fixture
    def eager(self, config):
        cfg = with_spawn(config, spawn_chance=1.0)
        return PowerUpManager(cfg, SpawnRng(cfg, seed=3)), cfg

    def test_min_interval_from_reset(self, eager, flyer):
        manager, cfg = eager
        manager.reset(now=0.0)

        early = manager.update(16.67, 7999.0, flyer)
        due = manager.update(16.67, 8000.0, flyer)

        assert early.spawned == []
        assert len(due.spawned) == 1

    def test_spawn_placement(self, eager, flyer):
        manager, cfg = eager
        result = manager.update(16.67, 8000.0, flyer)
        power_up = result.spawned[0]

        canvas = cfg.canvas
        margin = cfg.powerup_spawn.margin
        assert power_up.uid == "powerup-1"
        assert margin <= power_up.y <= canvas.height - canvas.ground_height - margin
        # Moved once after spawning at the right edge
        assert power_up.x == pytest.approx(canvas.width + cfg.powerup_spawn.size / 2 - 2)

    def test_interval_between_spawns(self, eager, flyer):
        manager, _ = eager
        manager.update(16.67, 8000.0, flyer)

        assert manager.update(16.67, 12000.0, flyer).spawned == []
        assert len(manager.update(16.67, 16000.0, flyer).spawned) == 1

    def test_max_active_count(self, config, flyer):
        cfg = with_spawn(config, spawn_chance=1.0, min_spawn_interval=0.0)
        manager = PowerUpManager(cfg, SpawnRng(cfg, seed=5))

        for tick in range(50):
            manager.update(16.67, tick * 16.67, flyer)
            assert manager.uncollected_count <= cfg.powerup_spawn.max_active_count

    def test_zero_chance_never_spawns(self, manager, flyer):
        for tick in range(100):
            assert manager.update(16.67, 8000.0 + tick * 1000, flyer).spawned == []

    def test_weighted_types_cover_all(self, config):
        rng = SpawnRng(config, seed=11)
        seen = {rng.weighted_type() for _ in range(500)}
        assert seen == set(PowerUpType)


class TestDespawn:
    """Test that power-ups can't linger."""

    def test_timed_out(self, manager, flyer, quiet_config):
        power_up = place(manager, 500, 100, spawn_time=0.0)
        despawn_time = quiet_config.powerup_spawn.despawn_time

        kept = manager.update(16.67, despawn_time, flyer)
        gone = manager.update(16.67, despawn_time + 1, flyer)

        assert kept.despawned == []
        assert gone.despawned == [power_up]
        assert manager.power_ups == []

    def test_off_screen(self, manager, flyer):
        power_up = place(manager, -11, 100)

        result = manager.update(16.67, 100.0, flyer)

        assert result.despawned == [power_up]

    def test_every_power_up_eventually_leaves(self, config, flyer):
        cfg = with_spawn(config, spawn_chance=1.0, min_spawn_interval=0.0)
        manager = PowerUpManager(cfg, SpawnRng(cfg, seed=9))
        far_flyer = Flyer(x=-1000, y=-1000, velocity=0, alive=True, size=24)

        for tick in range(200):
            manager.update(16.67, tick * 16.67, far_flyer)
        assert manager.uncollected_count == cfg.powerup_spawn.max_active_count

        # At the cap nothing new spawns, so every existing one times out
        result = manager.update(16.67, 200 * 16.67 + cfg.powerup_spawn.despawn_time, far_flyer)

        assert len(result.despawned) == cfg.powerup_spawn.max_active_count
        assert manager.power_ups == []


class TestCollection:
    """Test collection and effect activation."""

    def test_collect_at_flyer_center(self, manager, flyer):
        power_up = place(manager, 114, 312, PowerUpType.SHIELD)

        result = manager.update(16.67, 100.0, flyer)

        assert result.collected == [power_up]
        assert manager.is_invulnerable()
        assert manager.power_ups == []
        # Collected this tick, then decayed by the same tick
        assert manager.remaining(PowerUpType.SHIELD) == pytest.approx(5000 - 16.67)

    def test_out_of_range_not_collected(self, manager, flyer):
        place(manager, 300, 312)

        result = manager.update(16.67, 100.0, flyer)

        assert result.collected == []
        assert not manager.active_types()

    def test_dead_flyer_collects_nothing(self, manager, flyer):
        flyer.alive = False
        place(manager, 114, 312)

        assert manager.update(16.67, 100.0, flyer).collected == []

    def test_legacy_lag_collects_one_tick_late(self, quiet_config, flyer):
        cfg = with_collision(quiet_config, legacy_collection_lag=True)
        manager = PowerUpManager(cfg, SpawnRng(cfg, seed=1))
        # 31 px from the flyer center before moving, 29 px after
        place(manager, 143, 312)

        first = manager.update(16.67, 100.0, flyer)
        second = manager.update(16.67, 116.67, flyer)

        assert first.collected == []
        assert len(second.collected) == 1

    def test_without_lag_collects_immediately(self, manager, flyer):
        place(manager, 143, 312)

        assert len(manager.update(16.67, 100.0, flyer).collected) == 1


class TestEffects:
    """Test effect exclusivity, refresh and decay."""

    def test_one_effect_per_type(self, manager):
        manager.activate(PowerUpType.SHIELD, 0.0)
        manager.activate(PowerUpType.SHIELD, 100.0)

        assert len(manager.active_effects()) == 1

    def test_recollect_refreshes_to_full(self, manager):
        manager.activate(PowerUpType.SHIELD, 0.0)
        manager.decay_effects(4999)
        assert manager.remaining(PowerUpType.SHIELD) == pytest.approx(1)

        effect = manager.activate(PowerUpType.SHIELD, 4999.0)
        assert effect.remaining == 5000
        assert effect.max_duration == 5000

        manager.decay_effects(4999)
        assert manager.is_active(PowerUpType.SHIELD)
        expired = manager.decay_effects(1)
        assert expired == [PowerUpType.SHIELD]
        assert not manager.is_invulnerable()

    def test_modifiers(self, manager):
        assert manager.speed_multiplier() == 1.0
        assert manager.size_multiplier() == 1.0

        manager.activate(PowerUpType.SLOWMO, 0.0)
        manager.activate(PowerUpType.TINY, 0.0)

        assert manager.speed_multiplier() == pytest.approx(0.5)
        assert manager.size_multiplier() == pytest.approx(0.6)

    def test_slowmo_slows_effect_timers(self, manager):
        manager.activate(PowerUpType.SLOWMO, 0.0)
        manager.activate(PowerUpType.SHIELD, 0.0)

        manager.decay_effects(1000)

        assert manager.remaining(PowerUpType.SLOWMO) == pytest.approx(3500)
        assert manager.remaining(PowerUpType.SHIELD) == pytest.approx(4500)

    def test_active_effects_in_type_order(self, manager):
        manager.activate(PowerUpType.MAGNET, 0.0)
        manager.activate(PowerUpType.SHIELD, 0.0)

        assert [e.type for e in manager.active_effects()] == [
            PowerUpType.SHIELD, PowerUpType.MAGNET
        ]

    def test_reset_clears_effects(self, manager):
        manager.activate(PowerUpType.TINY, 0.0)
        place(manager, 500, 100)

        manager.reset()

        assert not manager.active_types()
        assert manager.power_ups == []


class TestMagnet:
    """Test the magnet pull toward the flyer center."""

    def test_pulls_within_radius(self, manager, flyer):
        manager.activate(PowerUpType.MAGNET, 0.0)
        power_up = place(manager, 162, 312)

        manager.update(16.67, 100.0, flyer)

        # Moved 2 px left, then 30% of the remaining 48 px
        assert power_up.x == pytest.approx(160 - 48 * 0.3)
        assert power_up.y == pytest.approx(312)

    def test_ignores_outside_radius(self, manager, flyer):
        manager.activate(PowerUpType.MAGNET, 0.0)
        power_up = place(manager, 300, 200)

        manager.update(16.67, 100.0, flyer)

        assert power_up.x == pytest.approx(298)
        assert power_up.y == pytest.approx(200)

    def test_slowmo_weakens_pull(self, manager, flyer):
        manager.activate(PowerUpType.MAGNET, 0.0)
        manager.activate(PowerUpType.SLOWMO, 0.0)
        power_up = place(manager, 162, 312)

        manager.update(16.67, 100.0, flyer)

        assert power_up.x == pytest.approx(161 - 49 * 0.15)

    def test_pull_independent_of_slowmo_when_disabled(self, quiet_config, flyer):
        cfg = with_collision(quiet_config, magnet_uses_slowmo_scaling=False)
        manager = PowerUpManager(cfg, SpawnRng(cfg, seed=1))
        manager.activate(PowerUpType.MAGNET, 0.0)
        manager.activate(PowerUpType.SLOWMO, 0.0)
        power_up = place(manager, 162, 312)

        manager.update(16.67, 100.0, flyer)

        assert power_up.x == pytest.approx(161 - 49 * 0.3)


class TestNonStacking:
    """Collecting an active type resets its timer instead of extending it."""

    def test_second_shield_resets_not_stacks(self, manager):
        manager.activate(PowerUpType.SHIELD, 0.0)
        manager.decay_effects(1000)
        manager.activate(PowerUpType.SHIELD, 1000.0)
        manager.decay_effects(1)

        assert manager.remaining(PowerUpType.SHIELD) == pytest.approx(4999)
        assert len(manager.active_effects()) == 1
