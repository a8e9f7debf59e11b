"""
Still frames and image data URIs.

A StillFrame is the single image taken from the live stream at the moment of
capture. Stored images travel as PNG data URIs ("data:image/png;base64,...")
so they can be handed to the enhancement service and persisted as text.
"""

import base64
import time
from dataclasses import dataclass, field

import cv2
import numpy as np

DATA_URI_PREFIX = "data:"


@dataclass(frozen=True)
class StillFrame:
    """
    Image captured from a live stream.

    Attributes:
        image: BGR uint8 array (H, W, 3), already mirrored if `mirrored`.
        generation: Id of the LIVE period the frame was taken in. Frames from
                    an earlier period are stale for extraction.
        mirrored: True if flipped horizontally to match the preview.
        captured_at: Unix timestamp of the capture.
    """

    image: np.ndarray
    generation: int
    mirrored: bool = False
    captured_at: float = field(default_factory=time.time)

    @property
    def width(self) -> int:
        return self.image.shape[1]

    @property
    def height(self) -> int:
        return self.image.shape[0]

    def to_data_uri(self, format: str = "png") -> str:
        return frame_to_data_uri(self.image, format=format)


def frame_to_data_uri(frame: np.ndarray, format: str = "png") -> str:
    """
    Encode a BGR frame as an image data URI.

    Args:
        frame: BGR numpy array.
        format: "png" or "jpeg".

    Returns:
        "data:image/<format>;base64,<payload>"
    """
    if format == "jpeg":
        encode_param = [int(cv2.IMWRITE_JPEG_QUALITY), 90]
        success, buffer = cv2.imencode(".jpg", frame, encode_param)
    else:
        format = "png"
        success, buffer = cv2.imencode(".png", frame)

    if not success:
        raise ValueError("Failed to encode frame")

    payload = base64.b64encode(buffer).decode("utf-8")
    return f"data:image/{format};base64,{payload}"


def data_uri_to_frame(uri: str) -> np.ndarray:
    """
    Decode an image data URI (or a bare base64 string) to a BGR frame.

    Raises:
        ValueError: If the payload is not a decodable image.
    """
    payload = uri
    if uri.startswith(DATA_URI_PREFIX):
        header, sep, payload = uri.partition(",")
        if not sep or ";base64" not in header:
            raise ValueError("Only base64 data URIs are supported")

    img_bytes = base64.b64decode(payload)
    if not img_bytes:
        raise ValueError("Data URI has an empty payload")
    frame = cv2.imdecode(np.frombuffer(img_bytes, np.uint8), cv2.IMREAD_COLOR)
    if frame is None:
        raise ValueError("Data URI does not contain a decodable image")
    return frame
