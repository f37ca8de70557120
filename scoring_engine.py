# scoring_engine.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple
import math

import numpy as np
from absl import logging

from pose_records import KEYPOINT_COUNT, Pose, PoseSequence

# -------------------------
# Scoring knobs
# -------------------------

# Vector layout: [y, x] per keypoint, in keypoint order
CANONICAL_LENGTH = 2 * KEYPOINT_COUNT   # 34 for the 17-part model

# Window of reference frames compared against each live frame
DEFAULT_WINDOW_SIZE = 5
DEFAULT_DECIMALS = 4           # cosine similarity is rounded to this many places

# Temporal tie-break: subtracted per frame of distance from the target index
PENALTY = 0.001

# Display remap: only near-exact matches earn points
NORMALIZE_DOMAIN = (0.85, 1.0)
NORMALIZE_RANGE = (0.0, 100.0)

# Frames that resolve to "no pose" are reported at this distance
MISSING_POSE_DISTANCE = 1

# -------------------------


class ScoringError(Exception):
    """Base class for structural faults inside the scorer."""


class VectorLengthError(ScoringError, ValueError):
    """Two pose vectors of different length reached the similarity metric."""


class WindowError(ScoringError):
    """The candidate window is invalid or lacks the frame aligned with the target."""


@dataclass(frozen=True)
class WindowCandidate:
    index: int
    distance: int


@dataclass(frozen=True)
class ScoreFrame:
    index: int
    distance: int
    cosine_similarity: float
    weighted_similarity: float
    score: float


@dataclass(frozen=True)
class ScoreResult:
    normalized: float
    highest: float
    current: float
    all: Tuple[ScoreFrame, ...]


def remap(value: float, low1: float, high1: float, low2: float, high2: float) -> float:
    return low2 + (high2 - low2) * (value - low1) / (high1 - low1)


def pose_domain(pose: Pose) -> Tuple[Tuple[float, float], Tuple[float, float]]:
    """Bounding box of the keypoints: ((x_min, x_max), (y_min, y_max))."""
    xs = [k.x for k in pose.keypoints]
    ys = [k.y for k in pose.keypoints]
    return (min(xs), max(xs)), (min(ys), max(ys))


def vectorize_pose(pose: Optional[Pose], resize: bool = True, cleanup: bool = True) -> np.ndarray:
    """
    Flatten a pose into [y0, x0, y1, x1, ...] keeping keypoint order.

    resize  -> remap x and y into the pose's own bounding box (0..1). An axis with
               zero extent maps to 0.0 instead of dividing by zero.
    cleanup -> cut the vector to CANONICAL_LENGTH; a shorter vector is kept but logged.
    """
    if pose is None or len(pose.keypoints) == 0:
        return np.zeros(0, dtype=np.float64)

    yx = np.array([[k.y, k.x] for k in pose.keypoints], dtype=np.float64)

    if resize:
        (x_min, x_max), (y_min, y_max) = pose_domain(pose)
        lo = np.array([y_min, x_min])
        span = np.array([y_max - y_min, x_max - x_min])
        flat = span <= 0
        yx = (yx - lo) / np.where(flat, 1.0, span)
        yx[:, flat] = 0.0

    vec = yx.reshape(-1)

    if cleanup and vec.size != CANONICAL_LENGTH:
        if vec.size < CANONICAL_LENGTH:
            logging.warning("current keypoint vector length is %d. should be %d.",
                            vec.size, CANONICAL_LENGTH)
        vec = vec[:CANONICAL_LENGTH]

    return vec


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    dot(a, b) / (|a| * |b|). Zero-magnitude input gives 0.0.
    Vectors of different length raise VectorLengthError; nothing is truncated.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise VectorLengthError(f"vector length mismatch: {a.size} vs {b.size}")

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    sim = float(np.dot(a, b) / (norm_a * norm_b))
    # float noise can land a hair outside [-1, 1]
    return max(-1.0, min(1.0, sim))


def find_closest_poses(index: int, sequence_length: int, count: int = DEFAULT_WINDOW_SIZE
                       ) -> Tuple[WindowCandidate, ...]:
    """
    Candidate frames around `index`, in chronological order.

    The first ceil(count/2) candidates walk back from `index` (itself included) and are
    clamped at 0, so duplicates pile up near the start of a sequence. The rest walk
    forward and are NOT clamped to the end: past-the-end indices are legal and score
    as "no pose".
    """
    if count < 1:
        raise WindowError(f"window size must be >= 1, got {count}")
    if index < 0:
        raise WindowError(f"target index must be >= 0, got {index}")

    before = math.ceil(count / 2)
    after = count - before

    left = [max(index - i, 0) for i in range(before)]
    right = [index + 1 + i for i in range(after)]
    indices = sorted(left + right)

    if indices[-1] >= sequence_length:
        logging.debug("window around %d runs past the end of a %d-frame sequence",
                      index, sequence_length)

    return tuple(WindowCandidate(index=i, distance=abs(index - i)) for i in indices)


def score_similarity(
    live_pose: Optional[Pose],
    target_index: int,
    reference: Sequence[Pose],
    window_size: int = DEFAULT_WINDOW_SIZE,
    decimals: int = DEFAULT_DECIMALS,
    penalty: float = PENALTY,
    normalize_domain: Tuple[float, float] = NORMALIZE_DOMAIN,
) -> ScoreResult:
    """
    Score one live pose against the reference frames around `target_index`.

    Each candidate: cosine similarity (rounded) x reference pose confidence, minus
    distance x penalty. `highest` is the best candidate, `current` the one aligned
    with the target, `normalized` the remap of `highest` into 0..100, clamped at both ends.

    A reference pose with no keypoints scores zero at its own distance; only frames
    past the end of the reference are reported at MISSING_POSE_DISTANCE.
    """
    live_vec = vectorize_pose(live_pose, resize=True, cleanup=True)
    if not isinstance(reference, PoseSequence):
        reference = PoseSequence(reference)
    n = len(reference)

    frames = []
    for cand in find_closest_poses(target_index, n, window_size):
        ref_pose = reference.get(cand.index)
        if ref_pose is None or len(ref_pose.keypoints) == 0:
            frames.append(ScoreFrame(
                index=cand.index,
                distance=MISSING_POSE_DISTANCE if ref_pose is None else cand.distance,
                cosine_similarity=0.0,
                weighted_similarity=0.0,
                score=0.0,
            ))
            continue

        ref_vec = vectorize_pose(ref_pose, resize=True, cleanup=True)
        if live_vec.size == 0:
            similarity = 0.0
        else:
            similarity = round(cosine_similarity(live_vec, ref_vec), decimals)

        # penalize by the reference pose's own confidence
        weighted = ref_pose.score * similarity
        # and by how many frames off the target this candidate is
        final = weighted - cand.distance * penalty

        frames.append(ScoreFrame(
            index=cand.index,
            distance=cand.distance,
            cosine_similarity=similarity,
            weighted_similarity=weighted,
            score=final,
        ))

    highest = sorted((f.score for f in frames), reverse=True)[0]

    aligned = [f for f in frames if f.distance == 0]
    if not aligned:
        raise WindowError(f"no frame aligned with target index {target_index} "
                          f"(reference has {n} frames)")
    current = aligned[0].score

    lo, hi = NORMALIZE_RANGE
    normalized = remap(highest, normalize_domain[0], normalize_domain[1], lo, hi)
    normalized = min(max(normalized, lo), hi)

    return ScoreResult(normalized=normalized, highest=highest, current=current, all=tuple(frames))


class ScoringEngine:
    """
    Holds the scoring knobs and scores one live pose per call via score().
    Keeps no references to poses or sequences between calls; the caller owns the
    running total and the target index (see match_session.MatchSession).
    """
    def __init__(
        self,
        window_size: int = DEFAULT_WINDOW_SIZE,
        decimals: int = DEFAULT_DECIMALS,
        penalty: float = PENALTY,
        normalize_domain: Tuple[float, float] = NORMALIZE_DOMAIN,
    ):
        if window_size < 1:
            raise WindowError(f"window size must be >= 1, got {window_size}")
        self.window_size = int(window_size)
        self.decimals = int(decimals)
        self.penalty = float(penalty)
        self.normalize_domain = (float(normalize_domain[0]), float(normalize_domain[1]))

    def score(self, live_pose: Optional[Pose], target_index: int, reference: Sequence[Pose]) -> ScoreResult:
        return score_similarity(
            live_pose,
            target_index,
            reference,
            window_size=self.window_size,
            decimals=self.decimals,
            penalty=self.penalty,
            normalize_domain=self.normalize_domain,
        )
