"""
Tests for the OpenCV stream handle.

cv2.VideoCapture is replaced by a stand-in so no webcam is needed.

Run with: pytest tests/test_camera.py -v
"""

import threading

import numpy as np
import pytest

from conftest import gradient_frame
from facelogin.camera import OpenCVStreamHandle, StreamConstraints


class BlockingCapture:
    """Minimal cv2.VideoCapture whose read() waits on an event."""

    def __init__(self):
        self.opened = True
        self.in_read = threading.Event()
        self.proceed = threading.Event()
        self.events = []

    def isOpened(self):
        return self.opened

    def read(self):
        self.in_read.set()
        self.proceed.wait(2.0)
        self.events.append("read")
        return True, gradient_frame()

    def release(self):
        self.events.append("release")
        self.opened = False


@pytest.fixture
def capture():
    return BlockingCapture()


@pytest.fixture
def handle(capture):
    return OpenCVStreamHandle(capture, StreamConstraints())


class TestOpenCVStreamHandle:
    """Tests for OpenCVStreamHandle."""

    def test_read_frame(self, capture, handle):
        capture.proceed.set()

        frame = handle.read_frame()

        assert isinstance(frame, np.ndarray)
        assert handle.is_active

    def test_stop_waits_for_read_in_progress(self, capture, handle):
        results = []
        reader = threading.Thread(target=lambda: results.append(handle.read_frame()))
        reader.start()
        assert capture.in_read.wait(2.0)

        stopper = threading.Thread(target=handle.stop)
        stopper.start()
        stopper.join(0.1)

        assert stopper.is_alive()
        assert capture.events == []
        assert not handle.is_active

        capture.proceed.set()
        reader.join(2.0)
        stopper.join(2.0)

        assert capture.events == ["read", "release"]
        assert results[0] is not None

    def test_read_after_stop(self, capture, handle):
        capture.proceed.set()
        handle.stop()

        assert handle.read_frame() is None
        assert capture.events == ["release"]

    def test_stop_is_idempotent(self, capture, handle):
        handle.stop()
        handle.stop()

        assert capture.events == ["release"]
