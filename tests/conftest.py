"""
Shared fakes and fixtures.

The camera, face model and enhancer are external capabilities; these fakes
stand in for them so the state machine, loop and flows can be tested without
hardware or model weights.
"""

import asyncio
import os
import sys
import threading
import time
from typing import List, Optional

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from facelogin.camera import Camera, StreamConstraints, StreamHandle
from facelogin.embedding_model import BoundingBox, EmbeddingModel, ModelLoader
from facelogin.enhancement import ImageEnhancer
from facelogin.errors import EnhanceError


def gradient_frame(width: int = 300, height: int = 300) -> np.ndarray:
    """BGR frame whose brightness grows left to right (mirroring is visible)."""
    row = np.linspace(0, 255, width).astype(np.uint8)
    return np.tile(row[None, :, None], (height, 1, 3))


class FakeStreamHandle(StreamHandle):
    def __init__(self, frame: Optional[np.ndarray] = None):
        self.frame = gradient_frame() if frame is None else frame
        self.active = True
        self.fail_reads = False
        self.read_delay = 0.0
        self.reads = 0
        self.play_error: Optional[Exception] = None
        self.play_hangs = False
        self.stop_calls = 0

    @property
    def is_active(self) -> bool:
        return self.active

    async def wait_until_playing(self, timeout: float) -> None:
        if self.play_hangs:
            await asyncio.wait_for(asyncio.Event().wait(), timeout)
        if self.play_error is not None:
            raise self.play_error

    def read_frame(self) -> Optional[np.ndarray]:
        # Blocking, like cv2.VideoCapture.read
        if self.read_delay:
            time.sleep(self.read_delay)
        self.reads += 1
        if not self.active or self.fail_reads:
            return None
        return self.frame.copy()

    def stop(self) -> None:
        self.stop_calls += 1
        self.active = False


class FakeCamera(Camera):
    """
    Camera returning FakeStreamHandles.

    Attributes:
        errors: Exceptions raised by successive requests (popped in order).
        gate: When set to an asyncio.Event, requests block until it is set.
        playback_error / playback_hangs: Applied to every new handle.
    """

    def __init__(self):
        self.errors: List[Exception] = []
        self.gate: Optional[asyncio.Event] = None
        self.playback_error: Optional[Exception] = None
        self.playback_hangs = False
        self.handles: List[FakeStreamHandle] = []
        self.requests = 0
        self.last_constraints: Optional[StreamConstraints] = None

    async def request_stream(self, constraints: StreamConstraints) -> StreamHandle:
        self.requests += 1
        self.last_constraints = constraints
        if self.gate is not None:
            await self.gate.wait()
        if self.errors:
            raise self.errors.pop(0)
        handle = FakeStreamHandle()
        handle.play_error = self.playback_error
        handle.play_hangs = self.playback_hangs
        self.handles.append(handle)
        return handle

    @property
    def open_streams(self) -> int:
        return sum(1 for handle in self.handles if handle.active)


class FakeModel(EmbeddingModel):
    """
    Face model with scripted answers.

    Attributes:
        boxes: Returned by detect_faces.
        embedding: Returned by extract_embedding (None means "no face").
        ready_error: Raised by ready().
        ready_gate: When set to an asyncio.Event, ready() blocks until it is set.
        detect_error / extract_error: Raised by the respective call.
        detect_gate: threading.Event detect_faces waits on (runs in a worker thread).
        extract_delay: Seconds extract_embedding sleeps.
    """

    def __init__(self):
        self.boxes = [BoundingBox(100, 80, 200, 220, 0.93)]
        self.embedding: Optional[np.ndarray] = np.linspace(0.0, 1.0, 8)
        self.ready_error: Optional[Exception] = None
        self.ready_gate: Optional[asyncio.Event] = None
        self.detect_error: Optional[Exception] = None
        self.extract_error: Optional[Exception] = None
        self.detect_gate: Optional[threading.Event] = None
        self.extract_delay = 0.0
        self.detect_calls = 0
        self.extract_calls = 0

    async def ready(self) -> None:
        if self.ready_gate is not None:
            await self.ready_gate.wait()
        if self.ready_error is not None:
            raise self.ready_error

    def detect_faces(self, frame: np.ndarray) -> List[BoundingBox]:
        self.detect_calls += 1
        if self.detect_gate is not None:
            self.detect_gate.wait(timeout=2.0)
        if self.detect_error is not None:
            raise self.detect_error
        return list(self.boxes)

    def extract_embedding(self, frame: np.ndarray) -> Optional[np.ndarray]:
        self.extract_calls += 1
        if self.extract_delay:
            time.sleep(self.extract_delay)
        if self.extract_error is not None:
            raise self.extract_error
        return None if self.embedding is None else self.embedding.copy()


class FakeEnhancer(ImageEnhancer):
    def __init__(self, result: str = "data:image/png;base64,ZW5oYW5jZWQ="):
        self.result = result
        self.fail = False
        self.calls: List[str] = []

    async def enhance(self, image: str) -> str:
        self.calls.append(image)
        if self.fail:
            raise EnhanceError("enhancement service unavailable")
        return self.result


CAMERA_CONFIG = {
    "width": 300,
    "height": 300,
    "mirror_preview": True,
    "acquire_timeout_sec": 0.5,
    "playback_timeout_sec": 0.5,
}

DETECTION_CONFIG = {"interval_ms": 10}


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> bool:
    """Poll `predicate` on the event loop until it holds or `timeout` passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


@pytest.fixture
def camera():
    return FakeCamera()


@pytest.fixture
def model():
    return FakeModel()


@pytest.fixture
def loader(model):
    return ModelLoader(model, load_timeout=1.0)


@pytest.fixture
def enhancer():
    return FakeEnhancer()
