"""
Overlay helpers for the live capture preview.

Provides:
- draw_detections():  bounding boxes from the live detection loop
- draw_face_guide():  centred guide ellipse + instruction text
"""

from typing import Sequence

import cv2
import numpy as np

from facelogin.embedding_model import BoundingBox

_FACE_COLOR = (0, 200, 0)
_IDLE_COLOR = (160, 160, 160)


def draw_detections(frame: np.ndarray, boxes: Sequence[BoundingBox]) -> None:
    """Draw detection boxes and scores on a BGR frame (modified in-place).

    Boxes must already be in the frame's coordinate space; callers drawing on
    a mirrored preview pass BoundingBox.mirrored() boxes.
    """
    for box in boxes:
        cv2.rectangle(frame, (box.x1, box.y1), (box.x2, box.y2), _FACE_COLOR, 2, cv2.LINE_AA)
        label = f"{box.score:.2f}"
        ty = max(box.y1 - 6, 12)
        cv2.putText(frame, label, (box.x1, ty), cv2.FONT_HERSHEY_SIMPLEX,
                    0.45, _FACE_COLOR, 1, cv2.LINE_AA)


def draw_face_guide(
    frame: np.ndarray,
    face_detected: bool = False,
    message: str = "Center your face, then capture",
) -> None:
    """Draw a guide ellipse in the center of the frame.

    Args:
        frame: BGR image to draw on (modified in-place).
        face_detected: If True the ellipse is drawn green, otherwise gray.
        message: Instruction text shown below the ellipse.
    """
    h, w = frame.shape[:2]
    center = (w // 2, h // 2)

    # Portrait ellipse: vertical axis = 3/4 of frame height, face ~2:3 aspect
    semi_v = h * 3 // 8
    semi_h = semi_v * 2 // 3
    axes = (semi_h, semi_v)

    color = _FACE_COLOR if face_detected else _IDLE_COLOR

    overlay = frame.copy()
    cv2.ellipse(overlay, center, axes, 0, 0, 360, color, 2, cv2.LINE_AA)
    cv2.addWeighted(overlay, 0.8, frame, 0.2, 0, frame)

    if not message:
        return
    text_size = cv2.getTextSize(message, cv2.FONT_HERSHEY_SIMPLEX, 0.45, 1)[0]
    tx = max((w - text_size[0]) // 2, 0)
    ty = min(center[1] + axes[1] + 18, h - 6)
    cv2.putText(frame, message, (tx, ty), cv2.FONT_HERSHEY_SIMPLEX,
                0.45, color, 1, cv2.LINE_AA)
