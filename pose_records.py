# pose_records.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union
import json
import os

from absl import logging

# ------------ Config ------------
# PoseNet part order (17 keypoints). Position in this list IS the anatomical identity.
PART_NAMES = (
    "nose",
    "leftEye", "rightEye",
    "leftEar", "rightEar",
    "leftShoulder", "rightShoulder",
    "leftElbow", "rightElbow",
    "leftWrist", "rightWrist",
    "leftHip", "rightHip",
    "leftKnee", "rightKnee",
    "leftAnkle", "rightAnkle",
)
KEYPOINT_COUNT = len(PART_NAMES)


class PoseRecordError(ValueError):
    """Raised when a records file (or a recorder) is used with malformed data."""


# ------------ Data Model ------------
@dataclass(frozen=True)
class Keypoint:
    part: str
    x: float
    y: float
    score: float

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class Pose:
    """One detection: overall confidence plus keypoints in PoseNet part order."""
    score: float
    keypoints: Tuple[Keypoint, ...]

    def __len__(self) -> int:
        return len(self.keypoints)


class PoseSequence(Sequence):
    """
    Closed, immutable recording. Index is the only addressing key (one index = one frame).
    get() answers None for any index outside 0..N-1 instead of raising.
    """
    __slots__ = ("_poses",)

    def __init__(self, poses: Iterable[Pose] = ()):
        self._poses: Tuple[Pose, ...] = tuple(poses)

    def __len__(self) -> int:
        return len(self._poses)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return PoseSequence(self._poses[index])
        return self._poses[index]

    def __iter__(self) -> Iterator[Pose]:
        return iter(self._poses)

    def __eq__(self, other) -> bool:
        if isinstance(other, PoseSequence):
            return self._poses == other._poses
        return NotImplemented

    def __repr__(self) -> str:
        return f"PoseSequence({len(self._poses)} poses)"

    def get(self, index: int) -> Optional[Pose]:
        if 0 <= index < len(self._poses):
            return self._poses[index]
        return None


# ------------ Recording ------------
class PoseRecorder:
    """
    Append-only trace of detected poses. Only records while `recording` is on;
    close() freezes the trace into a PoseSequence and refuses further appends.
    """
    def __init__(self):
        self.recording = False
        self._trace: List[Pose] = []
        self._closed = False

    def start(self):
        if self._closed:
            raise PoseRecordError("recorder is closed")
        self.recording = True

    def stop(self):
        self.recording = False

    def trace(self, poses: Iterable[Pose]) -> int:
        """Append every pose of one detection tick. Returns how many were kept."""
        if self._closed:
            raise PoseRecordError("recorder is closed")
        if not self.recording:
            return 0
        before = len(self._trace)
        self._trace.extend(poses)
        return len(self._trace) - before

    def close(self) -> PoseSequence:
        self.recording = False
        self._closed = True
        return PoseSequence(self._trace)

    def snapshot(self) -> PoseSequence:
        return PoseSequence(self._trace)

    def clear(self):
        self._trace = []
        self._closed = False
        self.recording = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._trace)


# ------------ JSON (de)serialization ------------
def _number(value: Any, what: str) -> float:
    # bool is an int subclass; a stray true/false is not a coordinate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PoseRecordError(f"{what} must be a number, got {value!r}")
    return float(value)


def keypoint_from_dict(d: Dict[str, Any]) -> Keypoint:
    if not isinstance(d, dict):
        raise PoseRecordError(f"keypoint must be an object, got {type(d).__name__}")
    try:
        part = d["part"]
        pos = d["position"]
        x, y = pos["x"], pos["y"]
        score = d["score"]
    except (KeyError, TypeError) as e:
        raise PoseRecordError(f"keypoint missing field: {e}") from e
    return Keypoint(
        part=str(part),
        x=_number(x, "position.x"),
        y=_number(y, "position.y"),
        score=_number(score, "keypoint score"),
    )


def pose_from_dict(d: Dict[str, Any]) -> Pose:
    if not isinstance(d, dict):
        raise PoseRecordError(f"pose must be an object, got {type(d).__name__}")
    if "score" not in d or "keypoints" not in d:
        raise PoseRecordError("pose needs 'score' and 'keypoints'")
    kps = d["keypoints"]
    if not isinstance(kps, list):
        raise PoseRecordError("pose 'keypoints' must be a list")
    return Pose(
        score=_number(d["score"], "pose score"),
        keypoints=tuple(keypoint_from_dict(k) for k in kps),
    )


def pose_to_dict(pose: Pose) -> Dict[str, Any]:
    return {
        "score": pose.score,
        "keypoints": [
            {"part": k.part, "position": {"x": k.x, "y": k.y}, "score": k.score}
            for k in pose.keypoints
        ],
    }


def parse_pose_records(content: Union[Dict[str, Any], List[Any]], strict: bool = False) -> PoseSequence:
    """
    Accepts {"poseRecords": [...], "poseVideo": [...]} or, for old files, a bare list of poses.
    poseVideo is ignored.

    strict: reject any pose that is neither empty nor KEYPOINT_COUNT long.
    """
    if isinstance(content, dict):
        if "poseRecords" not in content:
            raise PoseRecordError("records object has no 'poseRecords'")
        records = content["poseRecords"]
    else:
        records = content
    if not isinstance(records, list):
        raise PoseRecordError("'poseRecords' must be a list")

    poses = []
    for i, rec in enumerate(records):
        try:
            poses.append(pose_from_dict(rec))
        except PoseRecordError as e:
            raise PoseRecordError(f"pose #{i}: {e}") from e

    if strict:
        for i, p in enumerate(poses):
            if len(p) not in (0, KEYPOINT_COUNT):
                raise PoseRecordError(f"pose #{i}: has {len(p)} keypoints, expected {KEYPOINT_COUNT}")

    odd = sum(1 for p in poses if len(p) != KEYPOINT_COUNT)
    if odd:
        logging.warning("%d of %d poses do not have %d keypoints", odd, len(poses), KEYPOINT_COUNT)
    return PoseSequence(poses)


def load_pose_records(path: str, strict: bool = False) -> PoseSequence:
    with open(path, "r", encoding="utf-8") as f:
        try:
            content = json.load(f)
        except json.JSONDecodeError as e:
            raise PoseRecordError(f"invalid JSON in {path}: {e}") from e
    seq = parse_pose_records(content, strict=strict)
    logging.info("loaded %d poses from %s", len(seq), path)
    return seq


def dump_pose_records(sequence: Iterable[Pose]) -> Dict[str, Any]:
    return {
        "poseRecords": [pose_to_dict(p) for p in sequence],
        "poseVideo": [],
    }


def save_pose_records(path: str, sequence: Iterable[Pose]) -> str:
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    data = dump_pose_records(sequence)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f)
    logging.info("saved %d poses to %s", len(data["poseRecords"]), path)
    return path
