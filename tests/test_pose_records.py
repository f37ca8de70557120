import json

import pytest

from pose_records import (
    KEYPOINT_COUNT, PART_NAMES, PoseRecordError, PoseRecorder, PoseSequence,
    dump_pose_records, load_pose_records, parse_pose_records, pose_from_dict,
    pose_to_dict, save_pose_records,
)
from _helpers import ARMS_UP_XY, make_pose


def _record(score=0.8):
    return pose_to_dict(make_pose(score=score, kp_score=0.6))


def test_parse_wrapped_records_ignores_video():
    content = {"poseRecords": [_record(), _record(0.4)], "poseVideo": ["blob1", "blob2"]}
    seq = parse_pose_records(content)
    assert len(seq) == 2
    assert seq[1].score == 0.4
    assert [k.part for k in seq[0].keypoints] == list(PART_NAMES)


def test_parse_bare_list_for_old_files():
    seq = parse_pose_records([_record()])
    assert len(seq) == 1
    assert len(seq[0]) == KEYPOINT_COUNT


@pytest.mark.parametrize("content", [
    {"poseVideo": []},
    {"poseRecords": {"not": "a list"}},
    [{"keypoints": []}],
    [{"score": 0.9, "keypoints": [{"part": "nose", "score": 1.0}]}],
    [{"score": 0.9, "keypoints": [{"part": "nose", "position": {"x": "1", "y": 2}, "score": 1.0}]}],
    [{"score": True, "keypoints": []}],
    ["nope"],
])
def test_parse_rejects_malformed_records(content):
    with pytest.raises(PoseRecordError):
        parse_pose_records(content)


def test_error_names_the_bad_pose():
    with pytest.raises(PoseRecordError, match="pose #1"):
        parse_pose_records([_record(), {"score": 1}])


def test_pose_from_dict_keeps_keypoint_order():
    d = _record()
    d["keypoints"].reverse()
    pose = pose_from_dict(d)
    assert [k.part for k in pose.keypoints] == list(reversed(PART_NAMES))
    assert pose.keypoints[0].position == (d["keypoints"][0]["position"]["x"],
                                          d["keypoints"][0]["position"]["y"])


def test_save_then_load(tmp_path):
    seq = PoseSequence([make_pose(score=0.7), make_pose(ARMS_UP_XY, score=0.95)])
    path = save_pose_records(str(tmp_path / "out" / "records.json"), seq)

    with open(path) as f:
        raw = json.load(f)
    assert raw["poseVideo"] == []
    assert len(raw["poseRecords"]) == 2

    assert load_pose_records(path) == seq


def test_load_invalid_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(PoseRecordError):
        load_pose_records(str(path))


def test_dump_shape():
    data = dump_pose_records([make_pose()])
    kp = data["poseRecords"][0]["keypoints"][0]
    assert set(kp) == {"part", "position", "score"}
    assert set(kp["position"]) == {"x", "y"}


def test_sequence_get_answers_none_out_of_range():
    seq = PoseSequence([make_pose(), make_pose()])
    assert seq.get(1) is seq[1]
    assert seq.get(2) is None
    assert seq.get(-1) is None
    assert isinstance(seq[0:1], PoseSequence) and len(seq[0:1]) == 1


def test_recorder_only_traces_while_recording():
    rec = PoseRecorder()
    assert rec.trace([make_pose()]) == 0
    rec.start()
    assert rec.trace([make_pose(), make_pose(ARMS_UP_XY)]) == 2
    rec.stop()
    rec.trace([make_pose()])
    assert len(rec) == 2
    assert len(rec.snapshot()) == 2


def test_recorder_close_freezes_the_trace():
    rec = PoseRecorder()
    rec.start()
    rec.trace([make_pose()])
    seq = rec.close()
    assert isinstance(seq, PoseSequence) and len(seq) == 1
    assert rec.closed and not rec.recording
    with pytest.raises(PoseRecordError):
        rec.trace([make_pose()])
    with pytest.raises(PoseRecordError):
        rec.start()

    rec.clear()
    assert len(rec) == 0 and not rec.closed


def test_strict_load_rejects_partial_poses(tmp_path):
    path = save_pose_records(str(tmp_path / "ghost.json"),
                             [make_pose()] * 3 + [make_pose(ARMS_UP_XY[:10])])
    assert len(load_pose_records(path)) == 4
    with pytest.raises(PoseRecordError, match="pose #3"):
        load_pose_records(path, strict=True)


def test_strict_parse_allows_empty_poses():
    seq = parse_pose_records([_record(), {"score": 0.0, "keypoints": []}], strict=True)
    assert [len(p) for p in seq] == [KEYPOINT_COUNT, 0]
