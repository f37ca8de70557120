from types import SimpleNamespace

import pytest

pytest.importorskip("mediapipe")
pytest.importorskip("cv2")

import numpy as np

import pose_webcam
from pose_records import PART_NAMES, save_pose_records
from _helpers import make_pose


def _landmarks(n=33, visibility=0.9):
    return [SimpleNamespace(x=i / 40.0, y=0.5 + i / 100.0, z=0.0, visibility=visibility) for i in range(n)]


def test_landmarks_map_to_posenet_parts():
    pose = pose_webcam.landmarks_to_pose(_landmarks(), 400, 200)
    assert [k.part for k in pose.keypoints] == list(PART_NAMES)
    left_shoulder = pose.keypoints[PART_NAMES.index("leftShoulder")]
    assert left_shoulder.x == pytest.approx(11 / 40.0 * 400)
    assert left_shoulder.y == pytest.approx((0.5 + 11 / 100.0) * 200)
    assert pose.score == pytest.approx(0.9)


def test_landmarks_are_mirrored_when_flipped():
    pose = pose_webcam.landmarks_to_pose(_landmarks(), 400, 200, flip_horizontal=True)
    nose = pose.keypoints[0]
    assert nose.x == pytest.approx(400.0)
    right_ankle = pose.keypoints[-1]
    assert right_ankle.x == pytest.approx((1.0 - 28 / 40.0) * 400)


def test_missing_visibility_counts_as_zero_confidence():
    pose = pose_webcam.landmarks_to_pose(_landmarks(visibility=None), 100, 100)
    assert all(k.score == 0.0 for k in pose.keypoints)
    assert pose.score == 0.0


def test_too_few_landmarks_give_no_pose():
    assert pose_webcam.landmarks_to_pose(_landmarks(n=20), 100, 100) is None
    assert pose_webcam.landmarks_to_pose([], 100, 100) is None


def test_compose_frame_without_video_is_black_plus_skeleton():
    frame = np.full((480, 640, 3), 127, dtype=np.uint8)
    canvas = pose_webcam.compose_frame(frame, [], flipped=True, show_video=False)
    assert not canvas.any()
    canvas = pose_webcam.compose_frame(frame, [make_pose()], flipped=False, show_video=False,
                                       ghost_pose=make_pose())
    assert canvas.any()


def test_load_ghost_handles_bad_files(tmp_path, capsys):
    assert pose_webcam.load_ghost(None) is None

    bad = tmp_path / "bad.json"
    bad.write_text('{"poseVideo": []}')
    assert pose_webcam.load_ghost(str(bad)) is None
    assert "[!]" in capsys.readouterr().out

    short = save_pose_records(str(tmp_path / "short.json"), [make_pose(), make_pose([(1, 2)] * 10)])
    assert pose_webcam.load_ghost(short) is None
    assert "pose #1" in capsys.readouterr().out

    good = save_pose_records(str(tmp_path / "good.json"), [make_pose()] * 3)
    assert len(pose_webcam.load_ghost(good)) == 3


def test_parse_args_defaults():
    args = pose_webcam.parse_args([])
    assert args.window_size == 5
    assert args.decimals == 4
    assert args.ghost is None
    assert not args.rear
