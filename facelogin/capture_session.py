"""
Capture Session

State machine owning one camera stream for one capture widget.

    IDLE --start--> ACQUIRING --stream_ready--> LIVE --capture--> CAPTURING
    CAPTURING --frame_ready--> CAPTURED --confirm--> STOPPED
    ACQUIRING --acquire_failed--> ERROR --retry--> ACQUIRING
    CAPTURED --retake--> LIVE (stream still held) | ACQUIRING (stream gone)
    any --stop--> STOPPED

Every state change goes through CaptureSession._transition(), which also
owns the two resources scoped to states:

    - the live detection loop runs exactly while the state is LIVE; it is
      cancelled before the state variable leaves LIVE
    - the camera stream is released whenever STOPPED or ERROR is entered

The state doubles as the re-entrancy guard: start() while ACQUIRING or LIVE
returns immediately, so at most one acquisition is in flight.

Usage:
    async with CaptureSession(OpenCVCamera(), loader, camera_config) as session:
        ...                                  # UI polls session.render_preview()
        frame = await session.capture()
        result = await session.extract_descriptor(extractor)
        if result.ok:
            frame, embedding = session.confirm()
        else:
            await session.retake()
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import cv2
import numpy as np

from facelogin.camera import Camera, StreamConstraints, StreamHandle
from facelogin.embedding import Embedding
from facelogin.embedding_model import BoundingBox, ModelLoader, ModelStatus
from facelogin.errors import (
    AcquireError,
    CaptureNotReadyError,
    ErrorKind,
    NoFaceVisibleError,
    SessionStoppedError,
)
from facelogin.extractor import DescriptorExtractor, ExtractionResult
from facelogin.frames import StillFrame
from facelogin.live_detection import LiveDetectionLoop
from facelogin.overlay import draw_detections, draw_face_guide

logger = logging.getLogger(__name__)


class CaptureState(Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    LIVE = "live"
    CAPTURING = "capturing"
    CAPTURED = "captured"
    ERROR = "error"
    STOPPED = "stopped"


class SessionEvent(Enum):
    START = "start"
    STREAM_READY = "stream_ready"
    ACQUIRE_FAILED = "acquire_failed"
    STREAM_LOST = "stream_lost"
    CAPTURE_REQUESTED = "capture_requested"
    FRAME_READY = "frame_ready"
    FRAME_FAILED = "frame_failed"
    RETAKE_LIVE = "retake_live"
    RETAKE_REACQUIRE = "retake_reacquire"
    CONFIRM = "confirm"
    RETRY = "retry"
    STOP = "stop"


S = CaptureState
E = SessionEvent

TRANSITIONS: Dict[Tuple[CaptureState, SessionEvent], CaptureState] = {
    (S.IDLE, E.START): S.ACQUIRING,
    (S.ACQUIRING, E.STREAM_READY): S.LIVE,
    (S.ACQUIRING, E.ACQUIRE_FAILED): S.ERROR,
    (S.LIVE, E.CAPTURE_REQUESTED): S.CAPTURING,
    (S.LIVE, E.STREAM_LOST): S.ERROR,
    (S.CAPTURING, E.FRAME_READY): S.CAPTURED,
    (S.CAPTURING, E.FRAME_FAILED): S.LIVE,
    (S.CAPTURING, E.STREAM_LOST): S.ERROR,
    (S.CAPTURED, E.RETAKE_LIVE): S.LIVE,
    (S.CAPTURED, E.RETAKE_REACQUIRE): S.ACQUIRING,
    (S.CAPTURED, E.CONFIRM): S.STOPPED,
    (S.ERROR, E.RETRY): S.ACQUIRING,
}

StateListener = Callable[[CaptureState, CaptureState], None]


class CaptureSession:
    """
    One camera stream, its live detection loop and the still taken from it.

    Args:
        camera: Camera capability to request streams from.
        loader: ModelLoader for the face model (shared with the extractor).
        config: Camera section of the configuration:
            - width, height, fps, device_id: stream constraints
            - mirror_preview: store stills mirrored like the preview (default True)
            - acquire_timeout_sec: stream request timeout (default 10)
            - playback_timeout_sec: first-frame timeout (default 5)
        detection_config: Live detection section:
            - interval_ms: poll interval (default 200)
        on_state_change: Optional callback(old_state, new_state).
    """

    def __init__(
        self,
        camera: Camera,
        loader: ModelLoader,
        config: Optional[Dict[str, Any]] = None,
        detection_config: Optional[Dict[str, Any]] = None,
        on_state_change: Optional[StateListener] = None,
    ):
        config = config or {}
        detection_config = detection_config or {}

        self._camera = camera
        self._loader = loader
        self._constraints = StreamConstraints.from_config(config)
        self._mirror = bool(config.get("mirror_preview", True))
        self._acquire_timeout = float(config.get("acquire_timeout_sec", 10.0))
        self._playback_timeout = float(config.get("playback_timeout_sec", 5.0))
        self._on_state_change = on_state_change

        self._state = CaptureState.IDLE
        self._stream: Optional[StreamHandle] = None
        self._last_error: Optional[ErrorKind] = None
        self._last_frame: Optional[StillFrame] = None
        self._embedding: Optional[Embedding] = None

        self._live_loop = LiveDetectionLoop(
            loader,
            self._on_detection,
            interval=float(detection_config.get("interval_ms", 200)) / 1000.0,
        )
        self._live_generation = 0
        self._live_boxes: List[BoundingBox] = []
        self._live_face_detected = False

        self._acquire_task: Optional[asyncio.Task] = None
        self._stop_requested = False
        self._degraded_warned = False

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def active_stream(self) -> Optional[StreamHandle]:
        return self._stream

    @property
    def last_error(self) -> Optional[ErrorKind]:
        return self._last_error

    @property
    def last_frame(self) -> Optional[StillFrame]:
        return self._last_frame

    @property
    def embedding(self) -> Optional[Embedding]:
        return self._embedding

    @property
    def live_face_detected(self) -> bool:
        return self._live_face_detected

    @property
    def live_boxes(self) -> List[BoundingBox]:
        return list(self._live_boxes)

    @property
    def generation(self) -> int:
        """Number of times LIVE has been entered; stamps captured stills."""
        return self._live_generation

    @property
    def is_live_loop_running(self) -> bool:
        return self._live_loop.is_running

    @property
    def detector_status(self) -> ModelStatus:
        return self._loader.status

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(self, event: SessionEvent, error: Optional[ErrorKind] = None) -> CaptureState:
        old = self._state
        if event is SessionEvent.STOP:
            new = CaptureState.STOPPED
        else:
            new = TRANSITIONS.get((old, event))
            if new is None:
                raise RuntimeError(f"Invalid transition: {old.name} --{event.value}-->")

        if old is CaptureState.LIVE and new is not CaptureState.LIVE:
            self._live_loop.cancel()
            self._live_boxes = []
            self._live_face_detected = False

        self._state = new

        if new in (CaptureState.STOPPED, CaptureState.ERROR):
            self._release_stream()
        if new is CaptureState.ERROR:
            self._last_error = error
        elif new is CaptureState.LIVE:
            self._last_error = None
            self._live_generation += 1
            self._live_loop.start(self._stream)

        logger.debug(f"Capture session {old.name} --{event.value}--> {new.name}")
        if self._on_state_change is not None and new is not old:
            self._on_state_change(old, new)
        return new

    async def start(self) -> CaptureState:
        """
        Acquire the camera and enter LIVE.

        A call while ACQUIRING, LIVE, CAPTURING or CAPTURED is a no-op that
        returns the current state. From ERROR this behaves like retry().

        Returns:
            The state after the attempt: LIVE on success, ERROR with
            `last_error` set on failure.

        Raises:
            SessionStoppedError: If the session already reached STOPPED.
        """
        if self._state is CaptureState.STOPPED:
            raise SessionStoppedError("Capture session has been stopped")
        if self._state is CaptureState.ERROR:
            return await self.retry()
        if self._state is not CaptureState.IDLE:
            logger.debug(f"start() ignored in state {self._state.name}")
            return self._state

        self._transition(SessionEvent.START)
        return await self._run_acquisition()

    async def retry(self) -> CaptureState:
        """Re-attempt acquisition after an ERROR. No-op in other states."""
        if self._state is CaptureState.STOPPED:
            raise SessionStoppedError("Capture session has been stopped")
        if self._state is not CaptureState.ERROR:
            return self._state

        logger.info(f"Retrying camera after {self._last_error.value if self._last_error else 'error'}")
        self._transition(SessionEvent.RETRY)
        return await self._run_acquisition()

    async def _run_acquisition(self) -> CaptureState:
        self._loader.start_loading()

        task = asyncio.ensure_future(self._acquire())
        self._acquire_task = task
        try:
            await task
        except asyncio.CancelledError:
            # stop() cancelled the acquisition; anything else cancelled us
            if not self._stop_requested:
                raise
        finally:
            if self._acquire_task is task:
                self._acquire_task = None
        return self._state

    async def _acquire(self) -> None:
        handle: Optional[StreamHandle] = None
        request = asyncio.ensure_future(self._camera.request_stream(self._constraints))
        try:
            try:
                handle = await asyncio.wait_for(asyncio.shield(request), self._acquire_timeout)
            except BaseException:
                # The request may still complete later; release whatever it opens
                request.add_done_callback(_release_late_stream)
                raise
            await handle.wait_until_playing(self._playback_timeout)
        except AcquireError as e:
            _stop_handle(handle)
            self._acquire_failed(e.kind, str(e))
            return
        except asyncio.TimeoutError:
            _stop_handle(handle)
            if handle is None:
                self._acquire_failed(ErrorKind.DEVICE_BUSY, "camera request timed out")
            else:
                self._acquire_failed(ErrorKind.PLAYBACK_REJECTED, "playback did not start")
            return
        except asyncio.CancelledError:
            _stop_handle(handle)
            if self._state is CaptureState.ACQUIRING:
                self._transition(SessionEvent.STOP)
            raise
        except Exception as e:
            logger.exception("Unexpected camera failure")
            _stop_handle(handle)
            self._acquire_failed(ErrorKind.UNSUPPORTED, f"{type(e).__name__}: {e}")
            return

        if self._state is not CaptureState.ACQUIRING:
            _stop_handle(handle)
            return

        self._stream = handle
        self._transition(SessionEvent.STREAM_READY)
        logger.info("Camera live")

    def _acquire_failed(self, kind: ErrorKind, reason: str) -> None:
        logger.warning(f"Camera acquisition failed: {kind.value} ({reason})")
        if self._state is CaptureState.ACQUIRING:
            self._transition(SessionEvent.ACQUIRE_FAILED, error=kind)

    def _on_detection(self, boxes: List[BoundingBox], frame_width: int) -> None:
        if self._state is not CaptureState.LIVE:
            return
        self._live_boxes = boxes
        self._live_face_detected = bool(boxes)

    def _check_face_gate(self) -> None:
        status = self._loader.status
        if status is ModelStatus.READY:
            if not self._live_face_detected:
                raise NoFaceVisibleError("No face visible in the preview")
        elif status is ModelStatus.FAILED:
            if not self._degraded_warned:
                logger.warning("Face detector unavailable; capturing without face check")
                self._degraded_warned = True
        else:
            raise CaptureNotReadyError("Face detector is still loading")

    async def capture(self) -> StillFrame:
        """
        Take a still from the live stream.

        Returns:
            The captured StillFrame (also kept as `last_frame`).

        Raises:
            CaptureNotReadyError: Not LIVE, detector still loading, or the
                                  camera produced no frame.
            NoFaceVisibleError: Detector available but no face in view.
        """
        if self._state is not CaptureState.LIVE:
            raise CaptureNotReadyError(f"Cannot capture in state {self._state.name}")
        self._check_face_gate()

        stream = self._stream
        if stream is None or not stream.is_active:
            self._transition(SessionEvent.STREAM_LOST, error=ErrorKind.PLAYBACK_REJECTED)
            raise CaptureNotReadyError("Camera stream is no longer active")

        generation = self._live_generation
        self._transition(SessionEvent.CAPTURE_REQUESTED)

        try:
            image = await asyncio.to_thread(stream.read_frame)
        except Exception as e:
            logger.warning(f"Frame read failed: {type(e).__name__}: {e}")
            image = None

        if self._state is not CaptureState.CAPTURING:
            raise CaptureNotReadyError("Capture interrupted")
        if image is None:
            if stream.is_active:
                self._transition(SessionEvent.FRAME_FAILED)
            else:
                self._transition(SessionEvent.STREAM_LOST, error=ErrorKind.PLAYBACK_REJECTED)
            raise CaptureNotReadyError("No frame available from the camera")

        # Keep the stored still identical to what the (mirrored) preview showed
        image = cv2.flip(image, 1) if self._mirror else image.copy()
        image.setflags(write=False)

        frame = StillFrame(image=image, generation=generation, mirrored=self._mirror)
        self._last_frame = frame
        self._embedding = None
        self._transition(SessionEvent.FRAME_READY)
        logger.info(f"Captured still {frame.width}x{frame.height}")
        return frame

    async def extract_descriptor(self, extractor: DescriptorExtractor) -> ExtractionResult:
        """
        Compute the descriptor of the captured still.

        On failure the still is discarded and a retake is required.

        Raises:
            CaptureNotReadyError: If there is no captured still.
        """
        frame = self._last_frame
        if self._state is not CaptureState.CAPTURED or frame is None:
            raise CaptureNotReadyError("No captured frame to describe")

        result = await extractor.extract(frame, expected_generation=self._live_generation)

        if self._state is not CaptureState.CAPTURED or self._last_frame is not frame:
            # Retaken or stopped while the model was running
            return ExtractionResult(frame=frame, error=ErrorKind.STALE_FRAME)

        if result.ok:
            self._embedding = result.embedding
        else:
            self._last_frame = None
        return result

    async def retake(self) -> CaptureState:
        """
        Discard the still and go back to the live preview.

        Re-acquires the camera if the stream was lost in the meantime.
        No-op outside CAPTURED.
        """
        if self._state is not CaptureState.CAPTURED:
            logger.debug(f"retake() ignored in state {self._state.name}")
            return self._state

        self._last_frame = None
        self._embedding = None

        if self._stream is not None and self._stream.is_active:
            self._transition(SessionEvent.RETAKE_LIVE)
            return self._state

        self._release_stream()
        self._transition(SessionEvent.RETAKE_REACQUIRE)
        return await self._run_acquisition()

    def confirm(self) -> Tuple[StillFrame, Optional[Embedding]]:
        """
        Accept the captured still and end the session.

        Returns:
            (still frame, descriptor or None if extraction was not run)

        Raises:
            CaptureNotReadyError: If there is no captured still.
        """
        frame = self._last_frame
        if self._state is not CaptureState.CAPTURED or frame is None:
            raise CaptureNotReadyError("Nothing captured to confirm")

        embedding = self._embedding
        self._transition(SessionEvent.CONFIRM)
        logger.info("Capture confirmed")
        return frame, embedding

    def stop(self) -> CaptureState:
        """
        End the session from any state. Idempotent.

        Cancels the live loop and any acquisition in flight and releases the
        stream.
        """
        if self._state is CaptureState.STOPPED:
            return self._state

        self._stop_requested = True
        self._transition(SessionEvent.STOP)

        task = self._acquire_task
        if task is not None and not task.done():
            task.cancel()

        logger.info("Capture session stopped")
        return self._state

    def _release_stream(self) -> None:
        stream, self._stream = self._stream, None
        _stop_handle(stream)

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    def render_preview(self, frame: Optional[np.ndarray] = None) -> Optional[np.ndarray]:
        """
        Build the image the UI should display.

        While LIVE this is the current camera frame, mirrored if configured,
        with the guide ellipse and the latest detection boxes drawn on it.
        While CAPTURED it is the still. Otherwise None.

        Without `frame` this reads the camera synchronously, so call it from a
        UI thread (or via asyncio.to_thread), not directly on the event loop.

        Args:
            frame: Optional BGR frame to draw on instead of reading the stream.
        """
        if self._state is CaptureState.CAPTURED and self._last_frame is not None:
            return self._last_frame.image.copy()
        if self._state is not CaptureState.LIVE:
            return None

        if frame is None:
            if self._stream is None:
                return None
            frame = self._stream.read_frame()
            if frame is None:
                return None

        boxes = self._live_boxes
        if self._mirror:
            canvas = cv2.flip(frame, 1)
            boxes = [box.mirrored(canvas.shape[1]) for box in boxes]
        else:
            canvas = frame.copy()

        draw_face_guide(canvas, face_detected=self._live_face_detected, message="")
        draw_detections(canvas, boxes)
        return canvas

    # ------------------------------------------------------------------
    # Widget lifetime
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "CaptureSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.stop()
        return False


def _stop_handle(handle: Optional[StreamHandle]) -> None:
    if handle is None:
        return
    try:
        handle.stop()
    except Exception as e:
        logger.warning(f"Failed to release camera stream: {e}")


def _release_late_stream(request: "asyncio.Future") -> None:
    if request.cancelled() or request.exception() is not None:
        return
    logger.info("Releasing camera stream that opened after the request was abandoned")
    _stop_handle(request.result())
