"""
Scoring System
==============

Accumulates session score from obstacle pass-through events.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from skyflap.core.obstacle_field import Obstacle


@dataclass
class ScoreEvent:
    """Record of a scoring event."""
    points: int
    obstacle_uid: int
    close_call: bool = False

    def __repr__(self) -> str:
        if self.close_call:
            return f"ScoreEvent(obstacle={self.obstacle_uid}, close_call)"
        return f"ScoreEvent(obstacle={self.obstacle_uid})"


class ScoreKeeper:
    """
    Tracks session score.

    Each obstacle contributes exactly one point; obstacles already counted
    are ignored, so score always equals the number of passed obstacles.
    """

    POINTS_PER_OBSTACLE = 1

    def __init__(self):
        self._score: int = 0
        self._close_calls: int = 0
        self._counted: set = set()

    @property
    def score(self) -> int:
        """Current session score."""
        return self._score

    @property
    def close_calls(self) -> int:
        """Close calls this session."""
        return self._close_calls

    def apply_passes(
        self,
        passed: List[Obstacle],
        close_calls: Optional[List[Obstacle]] = None
    ) -> List[ScoreEvent]:
        """
        Score newly passed obstacles.

        Args:
            passed: Obstacles that crossed the flyer this tick.
            close_calls: Subset of passed obstacles that were near misses.

        Returns:
            One ScoreEvent per obstacle actually counted.
        """
        close_ids = {o.uid for o in close_calls or ()}
        events = []
        for obstacle in passed:
            if obstacle.uid in self._counted:
                continue
            self._counted.add(obstacle.uid)
            self._score += self.POINTS_PER_OBSTACLE
            is_close = obstacle.uid in close_ids
            if is_close:
                self._close_calls += 1
            events.append(ScoreEvent(
                points=self.POINTS_PER_OBSTACLE,
                obstacle_uid=obstacle.uid,
                close_call=is_close
            ))
        return events

    def reset(self) -> None:
        """Reset score to zero."""
        self._score = 0
        self._close_calls = 0
        self._counted.clear()
