"""
Face Login Demo Script

Drives one capture session in an OpenCV window, then enrolls or logs in the
captured face against the SQLite roster configured in config.yaml.

Usage:
    # Log in (1:N identification against every enrolled identity)
    python scripts/demo_face_login.py

    # Enroll a new identity (the first one enrolled becomes admin)
    python scripts/demo_face_login.py --enroll --name Alice --email alice@example.com

    # List enrolled identities
    python scripts/demo_face_login.py --list

Controls:
    - SPACE: capture a still (needs a visible face once the detector is ready)
    - r: retake
    - ENTER: accept the still
    - c: retry the camera after an error
    - q: quit
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from facelogin.auth import FaceAuthService
from facelogin.camera import OpenCVCamera
from facelogin.capture_session import CaptureSession, CaptureState
from facelogin.config import (
    get_camera_config,
    get_embedding_config,
    get_enhancement_config,
    get_live_detection_config,
    get_matching_config,
    setup_logging,
)
from facelogin.embedding import Embedding
from facelogin.embedding_model import ModelLoader
from facelogin.enhancement import create_enhancer
from facelogin.errors import FaceLoginError, recovery_action
from facelogin.extractor import DescriptorExtractor
from facelogin.face_model import FaceEmbeddingModel
from facelogin.frames import StillFrame
from facelogin.matching import EuclideanIdentityMatcher
from facelogin.persistence import get_persistence
from facelogin.registry import EnrollmentRegistry

WINDOW = "Face Login"


def draw_status(frame: np.ndarray, text: str, color=(255, 255, 255)) -> np.ndarray:
    """Draw a status bar at the bottom of the frame."""
    h, w = frame.shape[:2]
    overlay = frame.copy()
    cv2.rectangle(overlay, (0, h - 28), (w, h), (0, 0, 0), -1)
    cv2.addWeighted(overlay, 0.6, frame, 0.4, 0, frame)
    cv2.putText(frame, text, (8, h - 9), cv2.FONT_HERSHEY_SIMPLEX, 0.45, color, 1, cv2.LINE_AA)
    return frame


async def capture_face(
    session: CaptureSession,
    extractor: DescriptorExtractor,
) -> Optional[Tuple[StillFrame, Embedding]]:
    """Run the capture UI until a still with a descriptor is accepted."""
    status = "Starting camera..."
    await session.start()

    while True:
        if session.state is CaptureState.ERROR:
            kind = session.last_error
            status = f"Camera error: {kind.value if kind else 'unknown'} (c: retry, q: quit)"
            canvas = draw_status(np.zeros((300, 300, 3), dtype=np.uint8), status, (0, 0, 255))
        else:
            canvas = await asyncio.to_thread(session.render_preview)
            if canvas is None:
                canvas = np.zeros((300, 300, 3), dtype=np.uint8)
            canvas = draw_status(canvas, status)

        cv2.imshow(WINDOW, canvas)
        key = cv2.waitKey(1) & 0xFF

        if key == ord("q"):
            return None
        if key == ord("c"):
            status = "Retrying camera..."
            await session.retry()
        elif key == ord(" ") and session.state is CaptureState.LIVE:
            try:
                await session.capture()
            except FaceLoginError as e:
                status = f"{e} ({recovery_action(e.kind).value})"
                continue
            status = "Computing descriptor..."
            result = await session.extract_descriptor(extractor)
            if result.ok:
                status = f"Captured ({result.elapsed_ms:.0f}ms). ENTER: accept, r: retake"
            else:
                status = f"{result.error.value}: press r to retake"
        elif key == ord("r"):
            status = "Retaking..."
            await session.retake()
        elif key == 13 and session.state is CaptureState.CAPTURED and session.embedding is not None:
            return session.confirm()

        await asyncio.sleep(0.03)


async def run(args: argparse.Namespace) -> int:
    embedding_config = get_embedding_config()
    registry = EnrollmentRegistry(get_persistence(), embedding_config.get("embedding_dim"))
    registry.load()
    enhancer = create_enhancer(get_enhancement_config())
    service = FaceAuthService(registry, EuclideanIdentityMatcher(get_matching_config()), enhancer)

    if args.list:
        for identity in registry.identities():
            admin = " [admin]" if identity.is_privileged else ""
            print(f"{identity.id}  {identity.display_name} <{identity.email}>{admin}")
        print(f"{len(registry)} identities enrolled")
        return 0

    model = FaceEmbeddingModel(embedding_config, get_live_detection_config())
    loader = ModelLoader(model, load_timeout=float(embedding_config.get("load_timeout_sec", 60)))
    extractor = DescriptorExtractor(loader, embedding_config)

    async with CaptureSession(
        OpenCVCamera(), loader, get_camera_config(), get_live_detection_config()
    ) as session:
        captured = await capture_face(session, extractor)
    cv2.destroyAllWindows()

    if captured is None:
        print("Cancelled.")
        return 1
    frame, embedding = captured

    if args.enroll:
        try:
            identity = await service.enroll(args.name, args.email, frame, embedding)
        except FaceLoginError as e:
            print(f"Enrollment failed: {e}")
            return 1
        role = "admin" if identity.is_privileged else "user"
        print(f"Enrolled {identity.display_name} as {identity.id} ({role})")
        return 0

    result = service.login(embedding)
    if not result.ok:
        print(f"Login failed: {result.error.value} ({recovery_action(result.error).value})")
        if result.match is not None and result.match.distance is not None:
            print(f"  best distance {result.match.distance:.4f} > {result.match.threshold}")
        return 1
    print(f"Welcome back, {result.identity.display_name} (distance {result.match.distance:.4f})")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Face Login Demo",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--enroll", action="store_true", help="Enroll instead of logging in")
    parser.add_argument("--name", type=str, default=None, help="Display name (with --enroll)")
    parser.add_argument("--email", type=str, default=None, help="Email (with --enroll)")
    parser.add_argument("--list", action="store_true", help="List enrolled identities and exit")
    args = parser.parse_args()

    if args.enroll and (not args.name or not args.email):
        parser.error("--enroll requires --name and --email")

    setup_logging()
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
