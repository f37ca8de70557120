# pose_overlay.py
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from pose_records import PART_NAMES, Pose

# --- Drawing params ---
MIN_POSE_CONFIDENCE = 0.1
MIN_PART_CONFIDENCE = 0.5

SKELETON_COLOR = (255, 255, 0)   # aqua (BGR)
TRAIL_HEAD_COLOR = (255, 255, 255)
TEXT_COLOR = (255, 255, 255)
KEYPOINT_RADIUS = 3
SKELETON_LINE_WIDTH = 2

_PART_INDEX = {name: i for i, name in enumerate(PART_NAMES)}

# Adjacent parts joined by a bone
SKELETON_CONNECTIONS = tuple(
    (_PART_INDEX[a], _PART_INDEX[b]) for a, b in (
        ("leftHip", "leftShoulder"), ("leftElbow", "leftShoulder"),
        ("leftElbow", "leftWrist"), ("leftHip", "leftKnee"),
        ("leftKnee", "leftAnkle"), ("rightHip", "rightShoulder"),
        ("rightElbow", "rightShoulder"), ("rightElbow", "rightWrist"),
        ("rightHip", "rightKnee"), ("rightKnee", "rightAnkle"),
        ("leftShoulder", "rightShoulder"), ("leftHip", "rightHip"),
    )
)

Color = Tuple[int, int, int]


def _pt(kp, scale: float) -> Tuple[int, int]:
    return int(round(kp.x * scale)), int(round(kp.y * scale))


def draw_keypoints(frame_bgr: np.ndarray, pose: Pose, min_confidence: float = MIN_PART_CONFIDENCE,
                   color: Color = SKELETON_COLOR, scale: float = 1.0,
                   radius: int = KEYPOINT_RADIUS) -> int:
    """Dots for every keypoint at or above min_confidence. Returns how many were drawn."""
    drawn = 0
    for kp in pose.keypoints:
        if kp.score >= min_confidence:
            cv2.circle(frame_bgr, _pt(kp, scale), radius, color, -1, lineType=cv2.LINE_AA)
            drawn += 1
    return drawn


def adjacent_keypoints(pose: Pose, min_confidence: float = MIN_PART_CONFIDENCE):
    """Bone endpoints where both ends are confident enough to draw."""
    kps = pose.keypoints
    out = []
    for a, b in SKELETON_CONNECTIONS:
        if a < len(kps) and b < len(kps):
            if kps[a].score >= min_confidence and kps[b].score >= min_confidence:
                out.append((kps[a], kps[b]))
    return out


def draw_skeleton(frame_bgr: np.ndarray, pose: Pose, min_confidence: float = MIN_PART_CONFIDENCE,
                  color: Color = SKELETON_COLOR, line_width: int = SKELETON_LINE_WIDTH,
                  scale: float = 1.0) -> int:
    segments = adjacent_keypoints(pose, min_confidence)
    for ka, kb in segments:
        cv2.line(frame_bgr, _pt(ka, scale), _pt(kb, scale), color, line_width, cv2.LINE_AA)
    return len(segments)


def draw_poses(frame_bgr: np.ndarray, poses: Sequence[Pose], colors: Optional[Sequence[Color]] = None,
               min_pose_confidence: float = MIN_POSE_CONFIDENCE,
               min_part_confidence: float = MIN_PART_CONFIDENCE,
               show_points: bool = True, show_skeleton: bool = True, scale: float = 1.0) -> int:
    """Draw each pose above min_pose_confidence; colors[i] pairs with poses[i]. Returns poses drawn."""
    drawn = 0
    for i, pose in enumerate(poses):
        if pose.score < min_pose_confidence:
            continue
        color = colors[i] if colors else SKELETON_COLOR
        if show_points:
            draw_keypoints(frame_bgr, pose, min_part_confidence, color, scale)
        if show_skeleton:
            draw_skeleton(frame_bgr, pose, min_part_confidence, color, SKELETON_LINE_WIDTH, scale)
        drawn += 1
    return drawn


def opacity_ramp(count: int, color: Color = SKELETON_COLOR, background: Color = (0, 0, 0),
                 head: Optional[Color] = TRAIL_HEAD_COLOR) -> List[Color]:
    """
    `count` colors fading from nearly background up to full `color`, oldest first.
    The newest entry is replaced by `head` so the latest pose stands out.
    """
    if count <= 0:
        return []
    c = np.array(color, dtype=np.float64)
    bg = np.array(background, dtype=np.float64)
    out = []
    for i in range(count):
        alpha = (i + 1) / count
        mixed = bg + (c - bg) * alpha
        out.append(tuple(int(round(v)) for v in mixed))
    if head is not None:
        out[-1] = tuple(head)
    return out


# --- Overlay helpers ---
def draw_text_shadow(img, text, org, scale=0.7, color=TEXT_COLOR, thickness=2):
    x, y = org
    cv2.putText(img, text, (x+1, y+1), cv2.FONT_HERSHEY_SIMPLEX, scale, (0,0,0), thickness+2, cv2.LINE_AA)
    cv2.putText(img, text, (x, y),     cv2.FONT_HERSHEY_SIMPLEX, scale, color,   thickness, cv2.LINE_AA)


def score_color(normalized: float) -> Color:
    if normalized >= 80: return (80, 255, 120)
    if normalized >= 40: return (80, 200, 255)
    if normalized > 0:   return (255, 200, 80)
    return (90, 90, 90)


def draw_score_hud(img, total: float, current: Optional[float] = None, frame_info: str = "",
                   pos=(10, 38)):
    draw_text_shadow(img, f"Score: {int(total)}", pos, scale=1.0, thickness=2)
    x, y = pos
    if current is not None:
        draw_text_shadow(img, f"+{current:.0f}", (x, y + 30), scale=0.8,
                         color=score_color(current), thickness=2)
    if frame_info:
        draw_text_shadow(img, frame_info, (x, y + 58), scale=0.6, color=(200, 200, 200), thickness=1)

