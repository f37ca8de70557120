# match_session.py
from __future__ import annotations
from typing import Optional, Sequence

from absl import logging

from pose_records import Pose
from scoring_engine import ScoreResult, ScoringEngine


class MatchSession:
    """
    Caller-owned state for a ghost match: where we are in the reference and the
    points earned so far. The scoring engine itself stays stateless.

    tick() per detection: wrap back to frame 0 once the reference is used up,
    score, accumulate `normalized`, step the target index forward by one.
    """
    def __init__(self, reference: Sequence[Pose], engine: Optional[ScoringEngine] = None):
        self.reference = reference
        self.engine = engine or ScoringEngine()
        self.target_index = 0
        self.total_score = 0.0
        self.ticks = 0
        self.laps = 0
        self.last_result: Optional[ScoreResult] = None

    def tick(self, live_pose: Optional[Pose]) -> ScoreResult:
        if not self.reference:
            raise ValueError("cannot match against an empty reference sequence")

        if self.target_index >= len(self.reference):
            self.target_index = 0
            self.laps += 1
            logging.info("ghost finished lap %d, restarting at frame 0", self.laps)

        result = self.engine.score(live_pose, self.target_index, self.reference)
        self.total_score += result.normalized
        self.ticks += 1
        self.target_index += 1
        self.last_result = result
        return result

    @property
    def average_score(self) -> float:
        return self.total_score / self.ticks if self.ticks else 0.0

    def reset(self):
        self.target_index = 0
        self.total_score = 0.0
        self.ticks = 0
        self.laps = 0
        self.last_result = None
