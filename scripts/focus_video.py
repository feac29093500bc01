#!/usr/bin/env python3
import argparse
from pathlib import Path
import sys

import cv2

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from proctor.config import settings  # noqa: E402
from proctor.engine import ProctorEngine  # noqa: E402
from proctor.landmark_detector import FaceMeshDetector  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run FaceMesh on a video and print the focus violations it would raise."
    )
    parser.add_argument("video_path", help="Path to an MP4 (or other) video file")
    parser.add_argument("--every", type=int, default=10, help="Process every Nth frame")
    parser.add_argument("--max-frames", type=int, default=0, help="Stop after N frames (0 = no limit)")
    args = parser.parse_args()

    detector = FaceMeshDetector(max_faces=settings.face_max_faces)
    if not detector.ready():
        print("FaceMesh is not ready. Install mediapipe.")
        return

    cap = cv2.VideoCapture(args.video_path)
    if not cap.isOpened():
        print(f"Failed to open video: {args.video_path}")
        return
    fps = cap.get(cv2.CAP_PROP_FPS) or 25.0

    engine = ProctorEngine.from_settings(settings)
    frame_idx = 0
    try:
        while True:
            ok, frame = cap.read()
            if not ok or frame is None:
                break
            frame_idx += 1
            if args.max_frames and frame_idx > args.max_frames:
                break
            if args.every > 1 and (frame_idx % args.every) != 0:
                continue

            video_time = frame_idx / fps
            faces = detector.detect(frame)
            for violation in engine.process_faces(faces, now=video_time):
                print(
                    f"frame={frame_idx} t={video_time:.1f}s type={violation.type} "
                    f"severity={violation.severity} message={violation.message}"
                )
    finally:
        cap.release()
        detector.close()

    snapshot = engine.focus_snapshot()
    print(f"frames={frame_idx} phase={snapshot['phase']} stats={engine.statistics()}")


if __name__ == "__main__":
    main()
