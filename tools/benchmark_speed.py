"""
Performance Benchmark
=====================

Measures simulation tick throughput for performance tuning.

Usage:
    python -m tools.benchmark_speed [--steps S] [--quick]
"""

from __future__ import annotations

import argparse
import sys
import time

import numpy as np

from skyflap.core.achievement_store import MemoryStore
from skyflap.core.achievements import AchievementEngine
from skyflap.core.config_loader import load_config
from skyflap.core.env_gym import FlyerEnv
from skyflap.core.game import CoreGame


def benchmark_env(
    num_steps: int = 1000,
    seed: int = 42
) -> dict:
    """
    Benchmark Gymnasium environment performance with random actions.

    Args:
        num_steps: Number of steps to run.
        seed: Random seed.

    Returns:
        Dict with timing results.
    """
    env = FlyerEnv()
    rng = np.random.default_rng(seed)

    # Warmup
    env.reset(seed=seed)
    for _ in range(10):
        _, _, terminated, truncated, _ = env.step(int(rng.integers(0, 2)))
        if terminated or truncated:
            env.reset()

    env.reset(seed=seed)
    episodes = 0
    start = time.perf_counter()

    for _ in range(num_steps):
        # Flap roughly every tenth tick so the flyer stays airborne a while
        action = int(rng.random() < 0.1)
        _, _, terminated, truncated, _ = env.step(action)
        if terminated or truncated:
            episodes += 1
            env.reset()

    elapsed = time.perf_counter() - start
    env.close()

    return {
        "mode": "gym_env",
        "num_steps": num_steps,
        "episodes": episodes,
        "elapsed_seconds": elapsed,
        "steps_per_second": num_steps / elapsed,
        "ms_per_step": (elapsed * 1000) / num_steps
    }


def benchmark_core_game(
    num_steps: int = 1000,
    seed: int = 42,
    with_achievements: bool = False
) -> dict:
    """
    Benchmark raw CoreGame without Gym overhead.

    Args:
        num_steps: Number of ticks.
        seed: Random seed.
        with_achievements: Attach an in-memory achievement engine.

    Returns:
        Dict with timing results.
    """
    config = load_config()
    engine = AchievementEngine(store=MemoryStore(), config=config) if with_achievements else None
    game = CoreGame(config=config, seed=seed, achievements=engine)
    rng = np.random.default_rng(seed)
    frame_ms = config.timing.frame_ms

    game.reset(seed=seed)
    episodes = 0
    start = time.perf_counter()

    for _ in range(num_steps):
        if rng.random() < 0.1:
            game.flap()
        result = game.tick(frame_ms)
        if not result.alive:
            episodes += 1
            game.reset()

    elapsed = time.perf_counter() - start

    return {
        "mode": "core_game+achievements" if with_achievements else "core_game",
        "num_steps": num_steps,
        "episodes": episodes,
        "elapsed_seconds": elapsed,
        "steps_per_second": num_steps / elapsed,
        "ms_per_step": (elapsed * 1000) / num_steps
    }


def run_all_benchmarks(steps: int = 5000) -> list:
    """Run comprehensive benchmarks."""
    results = []

    print("=" * 60)
    print("SKYFLAP SIMULATION PERFORMANCE BENCHMARK")
    print("=" * 60)
    print()

    for label, fn in (
        ("CoreGame (raw)", lambda: benchmark_core_game(num_steps=steps)),
        ("CoreGame + achievements",
         lambda: benchmark_core_game(num_steps=steps, with_achievements=True)),
        ("FlyerEnv", lambda: benchmark_env(num_steps=steps)),
    ):
        print(f"Benchmarking {label}...")
        result = fn()
        results.append(result)
        print(f"  Steps/sec: {result['steps_per_second']:.1f}")
        print(f"  ms/step:   {result['ms_per_step']:.3f}")
        print()

    print("=" * 60)
    print("SUMMARY")
    print("=" * 60)
    print()
    print(f"{'Mode':<26} {'Episodes':>8} {'Steps/s':>12} {'ms/step':>10}")
    print("-" * 58)

    for r in results:
        print(
            f"{r['mode']:<26} {r['episodes']:>8} "
            f"{r['steps_per_second']:>12.1f} {r['ms_per_step']:>10.3f}"
        )

    return results


def main():
    parser = argparse.ArgumentParser(description="Benchmark skyflap simulation performance")
    parser.add_argument("--steps", type=int, default=5000, help="Ticks per benchmark")
    parser.add_argument("--quick", action="store_true", help="Quick benchmark (fewer steps)")

    args = parser.parse_args()

    steps = 500 if args.quick else args.steps
    run_all_benchmarks(steps=steps)

    return 0


if __name__ == "__main__":
    sys.exit(main())
