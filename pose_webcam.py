# pose_webcam.py
import argparse
import os
import time
os.environ["GLOG_minloglevel"] = "2"      # 0=INFO,1=WARNING,2=ERROR,3=FATAL
os.environ["TF_CPP_MIN_LOG_LEVEL"] = "2"  # silence TensorFlow/TFLite C++ INFO/WARN

from typing import List, Optional, Sequence

import cv2
import numpy as np
import mediapipe as mp
from absl import logging as absl_logging

from match_session import MatchSession
from pose_overlay import (
    MIN_PART_CONFIDENCE, MIN_POSE_CONFIDENCE,
    draw_poses, draw_score_hud, draw_text_shadow,
)
from pose_records import (
    PART_NAMES, Keypoint, Pose, PoseRecordError, PoseRecorder, PoseSequence,
    load_pose_records, save_pose_records,
)
from scoring_engine import DEFAULT_DECIMALS, DEFAULT_WINDOW_SIZE, ScoringEngine, ScoringError

# --- MediaPipe short aliases ---
BaseOptions = mp.tasks.BaseOptions
VisionRunningMode = mp.tasks.vision.RunningMode
PoseLandmarker = mp.tasks.vision.PoseLandmarker
PoseLandmarkerOptions = mp.tasks.vision.PoseLandmarkerOptions

# --- Config ---
MODEL_PATH = "models/pose_landmarker_full.task"  # _lite / _full / _heavy
CAMERA_ID = 0
VIDEO_WIDTH, VIDEO_HEIGHT = 1280, 720
MAX_POSES = 1
MAX_FPS = 30                              # detection ticks per second, at most
DEFAULT_OUT_PATH = "records/pose_records.json"
GHOST_COLOR = (180, 105, 255)             # pink (BGR)
INSTRUCTIONS = "SPACE rec - S save - M match - V video - R reset - Q quit"

# BlazePose (33 landmarks) index for each PoseNet part, in PART_NAMES order
BLAZEPOSE_INDEX = {
    "nose": 0,
    "leftEye": 2, "rightEye": 5,
    "leftEar": 7, "rightEar": 8,
    "leftShoulder": 11, "rightShoulder": 12,
    "leftElbow": 13, "rightElbow": 14,
    "leftWrist": 15, "rightWrist": 16,
    "leftHip": 23, "rightHip": 24,
    "leftKnee": 25, "rightKnee": 26,
    "leftAnkle": 27, "rightAnkle": 28,
}


def landmarks_to_pose(landmarks, w: int, h: int, flip_horizontal: bool = False) -> Optional[Pose]:
    """
    BlazePose landmarks (normalized 0..1) -> 17-part Pose in pixel coordinates.
    Keypoint confidence is the landmark visibility; pose confidence is their mean.
    """
    if not landmarks or len(landmarks) <= max(BLAZEPOSE_INDEX.values()):
        return None
    kps = []
    for part in PART_NAMES:
        lm = landmarks[BLAZEPOSE_INDEX[part]]
        nx = 1.0 - lm.x if flip_horizontal else lm.x
        vis = lm.visibility if getattr(lm, "visibility", None) is not None else 0.0
        kps.append(Keypoint(part=part, x=float(nx * w), y=float(lm.y * h),
                            score=float(min(1.0, max(0.0, vis)))))
    score = sum(k.score for k in kps) / len(kps)
    return Pose(score=score, keypoints=tuple(kps))


def detect_poses(landmarker, frame_bgr, ts_ms: int, flip_horizontal: bool) -> List[Pose]:
    frame_rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
    mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=frame_rgb)
    result = landmarker.detect_for_video(mp_image, ts_ms)
    if not result or not result.pose_landmarks:
        return []
    h, w = frame_bgr.shape[:2]
    poses = []
    for lms in result.pose_landmarks:
        pose = landmarks_to_pose(lms, w, h, flip_horizontal)
        if pose is not None:
            poses.append(pose)
    return poses


def load_ghost(path: Optional[str]) -> Optional[PoseSequence]:
    if not path:
        return None
    try:
        ghost = load_pose_records(path, strict=True)
    except (OSError, PoseRecordError) as e:
        print(f"[!] Could not load ghost records: {e}")
        return None
    if not ghost:
        print(f"[!] Ghost file {path} has no poses.")
        return None
    print(f"[i] Loaded ghost with {len(ghost)} poses from {path}")
    return ghost


def compose_frame(frame_bgr, poses: Sequence[Pose], flipped: bool, show_video: bool,
                  ghost_pose: Optional[Pose] = None):
    """Camera (mirrored when flipped) or a black canvas, ghost underneath, live skeleton on top."""
    if show_video:
        canvas = cv2.flip(frame_bgr, 1) if flipped else frame_bgr.copy()
    else:
        canvas = np.zeros_like(frame_bgr)
    if ghost_pose is not None:
        draw_poses(canvas, [ghost_pose], colors=[GHOST_COLOR], min_pose_confidence=0.0)
    draw_poses(canvas, poses, min_pose_confidence=MIN_POSE_CONFIDENCE,
               min_part_confidence=MIN_PART_CONFIDENCE)
    return canvas


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Pose overlay: live skeleton, recording and ghost matching",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--camera", type=int, default=CAMERA_ID, help="Webcam index")
    parser.add_argument("--model", type=str, default=MODEL_PATH, help="MediaPipe pose_landmarker .task file")
    parser.add_argument("--ghost", type=str, default=None, help="Reference pose records JSON to match against")
    parser.add_argument("--out", type=str, default=DEFAULT_OUT_PATH, help="Where S saves the recording")
    parser.add_argument("--window-size", type=int, default=DEFAULT_WINDOW_SIZE,
                        help="Reference frames compared per live frame")
    parser.add_argument("--decimals", type=int, default=DEFAULT_DECIMALS,
                        help="Rounding applied to cosine similarity")
    parser.add_argument("--max-poses", type=int, default=MAX_POSES, help="People to detect per frame")
    parser.add_argument("--no-video", action="store_true", help="Draw skeletons on black instead of the camera")
    parser.add_argument("--rear", action="store_true", help="Rear camera: do not mirror the feed")
    return parser.parse_args(argv)


# ---------- Main ----------
def main(argv=None):
    args = parse_args(argv)
    absl_logging.set_verbosity(absl_logging.WARNING)

    cap = cv2.VideoCapture(args.camera)
    if not cap.isOpened():
        print("[!] Could not open webcam. Check OS camera permissions.")
        return 1
    cap.set(cv2.CAP_PROP_FRAME_WIDTH, VIDEO_WIDTH)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, VIDEO_HEIGHT)

    flipped = not args.rear
    show_video = not args.no_video
    engine = ScoringEngine(window_size=args.window_size, decimals=args.decimals)
    recorder = PoseRecorder()
    ghost = load_ghost(args.ghost)
    session: Optional[MatchSession] = None

    options = PoseLandmarkerOptions(
        base_options=BaseOptions(model_asset_path=args.model),
        running_mode=VisionRunningMode.VIDEO,
        num_poses=max(1, args.max_poses),
        min_pose_detection_confidence=0.5,
        min_pose_presence_confidence=0.5,
        min_tracking_confidence=0.5,
        output_segmentation_masks=False,
    )

    frame_interval = 1.0 / MAX_FPS
    with PoseLandmarker.create_from_options(options) as landmarker:
        t0 = time.monotonic()
        last_ts_ms = -1
        try:
            while True:
                tick_start = time.monotonic()
                ok, frame_bgr = cap.read()
                if not ok:
                    print("[!] Frame grab failed.")
                    break

                # MediaPipe VIDEO mode needs strictly increasing timestamps
                ts_ms = max(last_ts_ms + 1, int((tick_start - t0) * 1000))
                last_ts_ms = ts_ms
                poses = detect_poses(landmarker, frame_bgr, ts_ms, flipped)

                recorder.trace(poses)

                ghost_pose = None
                if session is not None:
                    live = poses[0] if poses else None
                    if session.target_index >= len(session.reference):
                        ghost_pose = session.reference[0]
                    else:
                        ghost_pose = session.reference[session.target_index]
                    try:
                        session.tick(live)
                    except ScoringError as e:
                        print(f"[!] Match stopped at ghost frame {session.target_index}: {e}")
                        session = None

                canvas = compose_frame(frame_bgr, poses, flipped, show_video, ghost_pose)

                if session is not None and session.last_result is not None:
                    info = f"ghost {session.target_index}/{len(session.reference)}  avg {session.average_score:.1f}"
                    draw_score_hud(canvas, session.total_score, session.last_result.normalized, info)
                if recorder.recording:
                    draw_text_shadow(canvas, f"REC {len(recorder)}", (canvas.shape[1] - 160, 38),
                                     scale=0.9, color=(60, 60, 255))
                draw_text_shadow(canvas, INSTRUCTIONS, (10, canvas.shape[0] - 12), scale=0.6,
                                 color=(200, 200, 200), thickness=2)
                cv2.imshow("Pose Webcam", canvas)

                # --- input handling ---
                key = cv2.waitKey(1) & 0xFF
                if key == ord('q'):
                    break
                elif key == ord(' '):
                    if recorder.recording:
                        recorder.stop()
                        print(f"[i] Recording stopped ({len(recorder)} poses).")
                    else:
                        recorder.start()
                        print("[i] Recording poses...")
                elif key == ord('s'):
                    if len(recorder) == 0:
                        print("[!] Nothing recorded yet.")
                    else:
                        path = save_pose_records(args.out, recorder.snapshot())
                        print(f"[i] Saved {len(recorder)} poses to {path}")
                elif key == ord('m'):
                    if session is not None:
                        print(f"[i] Match stopped. Total {session.total_score:.0f} over {session.ticks} frames.")
                        session = None
                    else:
                        reference = ghost if ghost is not None else recorder.snapshot()
                        if not reference:
                            print("[!] No ghost: pass --ghost or record something first.")
                        else:
                            recorder.stop()
                            session = MatchSession(reference, engine)
                            print(f"[i] Matching against {len(reference)} ghost poses.")
                elif key == ord('v'):
                    show_video = not show_video
                elif key == ord('r'):
                    recorder.clear()
                    if session is not None:
                        session.reset()
                    print("[i] Reset.")

                # cap the tick rate
                spare = frame_interval - (time.monotonic() - tick_start)
                if spare > 0:
                    time.sleep(spare)

        except KeyboardInterrupt:
            print("\n[i] Stopping (Ctrl+C).")
        finally:
            cap.release()
            cv2.destroyAllWindows()
            if session is not None and session.ticks:
                print(f"[i] Final score {session.total_score:.0f} "
                      f"(avg {session.average_score:.1f} over {session.ticks} frames)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
