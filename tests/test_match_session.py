import pytest

from match_session import MatchSession
from pose_records import PoseSequence
from scoring_engine import ScoringEngine
from _helpers import ARMS_UP_XY, make_pose


def test_tick_accumulates_and_advances():
    ref = PoseSequence([make_pose()] * 4)
    session = MatchSession(ref)

    first = session.tick(make_pose())
    assert session.target_index == 1
    assert session.ticks == 1
    assert session.total_score == pytest.approx(first.normalized)

    session.tick(make_pose())
    assert session.total_score == pytest.approx(200.0)
    assert session.average_score == pytest.approx(100.0)
    assert session.last_result is not None


def test_tick_wraps_to_start_after_the_ghost_ends():
    ref = PoseSequence([make_pose()] * 2)
    session = MatchSession(ref, ScoringEngine(window_size=3))
    for _ in range(2):
        session.tick(make_pose())
    assert session.target_index == 2

    result = session.tick(make_pose())
    assert session.laps == 1
    assert session.target_index == 1
    assert any(f.distance == 0 and f.index == 0 for f in result.all)


def test_missing_live_pose_scores_nothing():
    session = MatchSession(PoseSequence([make_pose(ARMS_UP_XY)] * 5))
    session.tick(None)
    assert session.total_score == 0.0
    assert session.ticks == 1


def test_reset_clears_running_state():
    session = MatchSession(PoseSequence([make_pose()] * 3))
    session.tick(make_pose())
    session.reset()
    assert (session.target_index, session.total_score, session.ticks, session.laps) == (0, 0.0, 0, 0)
    assert session.last_result is None
    assert session.average_score == 0.0


def test_empty_reference_is_rejected():
    with pytest.raises(ValueError):
        MatchSession(PoseSequence()).tick(make_pose())
