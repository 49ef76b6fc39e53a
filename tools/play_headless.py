"""
Headless Play Mode
==================

Runs sessions with a simple gap-following autopilot, driving the game through
the TickScheduler and persisting achievements to a JSON file. Unlocks are
logged as they happen; notifications auto-dismiss after the configured delay.

Usage:
    python -m tools.play_headless [--games N] [--seed SEED] [--store PATH]
                                  [--realtime] [--log-level LEVEL]
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from skyflap.core.achievement_store import JsonFileStore
from skyflap.core.achievements import Achievement, AchievementEngine
from skyflap.core.config_loader import load_config
from skyflap.core.game import CoreGame
from skyflap.core.scheduler import NotificationTimers, TickScheduler

logger = logging.getLogger("skyflap.play_headless")


def autopilot(game: CoreGame, dead_band: float = 10.0) -> bool:
    """
    Flap when the flyer sinks below the center of the next gap.

    Returns:
        True if a flap was issued.
    """
    flyer = game.flyer
    _, center_y = flyer.center
    target: Optional[float] = None
    for obstacle in game.obstacles:
        if obstacle.right >= flyer.x:
            target = obstacle.gap_center
            break
    if target is None:
        target = game.config.canvas.height / 2

    if center_y > target + dead_band and flyer.velocity >= 0:
        return game.flap()
    return False


def play(
    games: int = 3,
    seed: Optional[int] = None,
    store_path: str = "achievements.json",
    realtime: bool = False,
    config_path: Optional[str] = None
) -> AchievementEngine:
    """
    Play a number of sessions.

    Args:
        games: Sessions to play.
        seed: Base random seed; session i uses seed + i.
        store_path: JSON file for persisted achievements.
        realtime: Pace ticks to wall clock instead of simulating time.
        config_path: Path to game_config.yaml. Uses default if None.

    Returns:
        The achievement engine after the last session.
    """
    config = load_config(config_path)

    def on_unlock(achievement: Achievement) -> None:
        logger.info("Unlocked %s: %s (+%d)", achievement.id, achievement.name, achievement.points)

    engine = AchievementEngine(
        store=JsonFileStore(store_path),
        config=config,
        on_unlock=on_unlock
    )
    game = CoreGame(config=config, achievements=engine)

    with NotificationTimers(engine.mark_notification_seen, config=config) as timers:

        def update(dt: float) -> bool:
            autopilot(game)
            result = game.tick(dt)
            timers.schedule_new(n.id for n in engine.get_unseen_notifications())
            return result.alive and game.tick_count < config.caps.max_ticks

        for i in range(games):
            game.reset(seed=None if seed is None else seed + i)
            scheduler = TickScheduler(update, config=config)

            if realtime:
                scheduler.run()
            else:
                now = 0.0
                scheduler.start()
                while scheduler.is_running:
                    scheduler.frame(now)
                    now += config.timing.frame_ms

            logger.info(
                "Game %d over: score %d, %s after %d ticks",
                i + 1, game.score, game.death_cause.value, game.tick_count
            )

    print()
    print(f"Games played:      {engine.progress.games_played}")
    print(f"Best score:        {engine.progress.max_score}")
    print(f"Achievements:      {engine.unlocked_count} "
          f"({engine.get_progress_percentage():.0f}%)")
    print(f"Achievement points: {engine.total_points}")
    return engine


def main():
    parser = argparse.ArgumentParser(description="Play skyflap headless with an autopilot")
    parser.add_argument("--games", type=int, default=3, help="Sessions to play")
    parser.add_argument("--seed", type=int, default=None, help="Base random seed")
    parser.add_argument("--store", type=str, default="achievements.json",
                        help="Achievement save file")
    parser.add_argument("--config", type=str, default=None, help="Path to game_config.yaml")
    parser.add_argument("--realtime", action="store_true", help="Pace ticks to wall clock")
    parser.add_argument("--log-level", type=str, default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(name)s %(levelname)s %(message)s"
    )

    play(
        games=args.games,
        seed=args.seed,
        store_path=args.store,
        realtime=args.realtime,
        config_path=args.config
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
