"""
Camera capability for the face login core.

A Camera hands out StreamHandles. The capture session owns at most one handle
at a time and must call stop() on it on every exit path; handles make stop()
idempotent so a double release is harmless.

OpenCVCamera is the desktop implementation built on cv2.VideoCapture. Its
blocking calls run in worker threads so the asyncio loop driving the session
stays responsive.
"""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import cv2
import numpy as np

from facelogin.errors import AcquireError, ErrorKind

logger = logging.getLogger(__name__)


@dataclass
class StreamConstraints:
    """Requested stream parameters."""
    width: int = 300
    height: int = 300
    fps: int = 30
    device_id: int = 0

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "StreamConstraints":
        config = config or {}
        return cls(
            width=int(config.get("width", cls.width)),
            height=int(config.get("height", cls.height)),
            fps=int(config.get("fps", cls.fps)),
            device_id=int(config.get("device_id", cls.device_id)),
        )


class StreamHandle(ABC):
    """A live video stream exclusively owned by one capture session."""

    @property
    @abstractmethod
    def is_active(self) -> bool:
        """True while the stream delivers frames and has not been stopped."""

    @abstractmethod
    async def wait_until_playing(self, timeout: float) -> None:
        """
        Block until the first frame is decoded.

        Raises:
            AcquireError: PLAYBACK_REJECTED if playback cannot start.
            asyncio.TimeoutError: If no frame arrives within `timeout`.
        """

    @abstractmethod
    def read_frame(self) -> Optional[np.ndarray]:
        """Return the current BGR frame, or None if none is available."""

    @abstractmethod
    def stop(self) -> None:
        """Release the device. Calling it again has no effect."""


class Camera(ABC):
    """Source of camera streams."""

    @abstractmethod
    async def request_stream(self, constraints: StreamConstraints) -> StreamHandle:
        """
        Open a stream matching the constraints.

        Raises:
            AcquireError: PERMISSION_DENIED, DEVICE_NOT_FOUND, DEVICE_BUSY or
                          UNSUPPORTED.
        """


class OpenCVStreamHandle(StreamHandle):
    """
    StreamHandle backed by an opened cv2.VideoCapture.

    Reads run in worker threads while stop() may be called from the event
    loop; the lock keeps release() from freeing the capture mid-read.
    """

    def __init__(self, capture: "cv2.VideoCapture", constraints: StreamConstraints):
        self._cap: Optional[cv2.VideoCapture] = capture
        self.constraints = constraints
        self._stopped = False
        self._lock = threading.Lock()

    @property
    def is_active(self) -> bool:
        cap = self._cap
        return not self._stopped and cap is not None and cap.isOpened()

    async def wait_until_playing(self, timeout: float) -> None:
        async def _first_frame() -> None:
            while True:
                if not self.is_active:
                    raise AcquireError(ErrorKind.PLAYBACK_REJECTED, "Stream closed before playback")
                frame = await asyncio.to_thread(self.read_frame)
                if frame is not None:
                    logger.info(f"Camera playback started ({frame.shape[1]}x{frame.shape[0]})")
                    return
                await asyncio.sleep(0.05)

        await asyncio.wait_for(_first_frame(), timeout)

    def read_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            if self._cap is None or self._stopped:
                return None
            ret, frame = self._cap.read()
        if not ret:
            return None
        return frame

    def stop(self) -> None:
        if self._stopped:
            return
        # Refuse new reads now; release once the current read returns
        self._stopped = True
        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None
        logger.info(f"Camera {self.constraints.device_id} released")


class OpenCVCamera(Camera):
    """
    Desktop webcam access through OpenCV.

    OpenCV cannot tell a missing device from one held by another process, so
    a failed open is reported as DEVICE_NOT_FOUND. A device that opens but
    never delivers a frame surfaces as PLAYBACK_REJECTED from
    wait_until_playing.
    """

    def __init__(self, backend: int = cv2.CAP_ANY):
        self.backend = backend

    async def request_stream(self, constraints: StreamConstraints) -> StreamHandle:
        return await asyncio.to_thread(self._open, constraints)

    def _open(self, constraints: StreamConstraints) -> StreamHandle:
        cap = cv2.VideoCapture(constraints.device_id, self.backend)

        if not cap.isOpened():
            cap.release()
            raise AcquireError(
                ErrorKind.DEVICE_NOT_FOUND, f"No camera at index {constraints.device_id}"
            )

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)
        cap.set(cv2.CAP_PROP_FPS, constraints.fps)

        logger.info(
            f"Opened camera {constraints.device_id} at "
            f"{constraints.width}x{constraints.height}"
        )
        return OpenCVStreamHandle(cap, constraints)

