import numpy as np
import pytest

cv2 = pytest.importorskip("cv2")

from pose_overlay import (
    SKELETON_CONNECTIONS, TRAIL_HEAD_COLOR, adjacent_keypoints, draw_keypoints,
    draw_poses, draw_score_hud, draw_skeleton, opacity_ramp,
)
from pose_records import Keypoint, Pose
from _helpers import STANDING_XY, make_pose


def _canvas():
    return np.zeros((520, 640, 3), dtype=np.uint8)


def test_keypoints_below_confidence_are_skipped():
    pose = make_pose()
    kps = list(pose.keypoints)
    kps[0] = Keypoint(part=kps[0].part, x=kps[0].x, y=kps[0].y, score=0.2)
    pose = Pose(score=pose.score, keypoints=tuple(kps))

    canvas = _canvas()
    assert draw_keypoints(canvas, pose, min_confidence=0.5) == 16
    assert canvas.any()


def test_skeleton_draws_every_confident_bone():
    canvas = _canvas()
    assert draw_skeleton(canvas, make_pose()) == len(SKELETON_CONNECTIONS) == 12
    assert canvas.any()
    assert adjacent_keypoints(make_pose(kp_score=0.3), min_confidence=0.5) == []


def test_low_confidence_poses_are_not_drawn():
    canvas = _canvas()
    drawn = draw_poses(canvas, [make_pose(score=0.05), make_pose(score=0.9)], min_pose_confidence=0.1)
    assert drawn == 1

    blank = _canvas()
    assert draw_poses(blank, [make_pose(score=0.05)]) == 0
    assert not blank.any()


def test_opacity_ramp_fades_in_and_ends_white():
    colors = opacity_ramp(4, (200, 100, 0))
    assert len(colors) == 4
    assert colors[0] == (50, 25, 0)
    assert colors[2] == (150, 75, 0)
    assert colors[-1] == TRAIL_HEAD_COLOR
    assert opacity_ramp(0) == []
    assert opacity_ramp(1, (1, 2, 3), head=None) == [(1, 2, 3)]


def test_score_hud_paints_text():
    canvas = _canvas()
    draw_score_hud(canvas, 1234.5, current=88.0, frame_info="ghost 3/10")
    assert canvas.any()


def test_scale_maps_into_canvas():
    canvas = np.zeros((60, 80, 3), dtype=np.uint8)
    pose = make_pose([(x, y) for x, y in STANDING_XY])
    assert draw_keypoints(canvas, pose, scale=0.1) == 17
    assert canvas[:, :, 0].any()
