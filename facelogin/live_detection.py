"""
Live Detection Loop

Periodic, advisory face-presence check run while a capture session is LIVE.
Each tick reads the current frame, asks the model's cheap detector for faces
and reports the boxes through a callback. The session uses the result to gate
still capture and to draw the preview overlay.

Rules:
    - Per-tick failures are logged and swallowed; a missed tick never
      interrupts the session.
    - cancel() is synchronous. A tick whose inference is still running when
      the loop is cancelled has its result discarded.
    - The loop ends on its own when the stream stops being active.
    - Ticks are skipped while the model is loading or failed to load.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from facelogin.camera import StreamHandle
from facelogin.embedding_model import BoundingBox, ModelLoader

logger = logging.getLogger(__name__)

DetectionCallback = Callable[[List[BoundingBox], int], None]


class LiveDetectionLoop:
    """
    Poll the detector at a fixed interval while a stream is live.

    Args:
        loader: ModelLoader wrapping the face model.
        on_detection: Called as on_detection(boxes, frame_width) after every
                      successful tick.
        interval: Seconds between ticks (default 0.2).
    """

    def __init__(
        self,
        loader: ModelLoader,
        on_detection: DetectionCallback,
        interval: float = 0.2,
    ):
        self.loader = loader
        self.on_detection = on_detection
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self._failures = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, stream: StreamHandle) -> None:
        """Start polling `stream`. Any previous run is cancelled first."""
        self.cancel()
        self._generation += 1
        self._failures = 0
        self._task = asyncio.ensure_future(self._run(stream, self._generation))

    def cancel(self) -> None:
        """Stop the loop. Takes effect before this call returns."""
        # Bumping the generation invalidates any tick still awaiting inference
        self._generation += 1
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            self._task = None

    async def _run(self, stream: StreamHandle, generation: int) -> None:
        while generation == self._generation:
            if not stream.is_active:
                logger.info("Stream inactive, live detection loop ending")
                return

            if self.loader.is_ready:
                await self._tick(stream, generation)

            await asyncio.sleep(self.interval)

    async def _tick(self, stream: StreamHandle, generation: int) -> None:
        try:
            frame = await asyncio.to_thread(stream.read_frame)
            if frame is None:
                return
            boxes = await asyncio.to_thread(self.loader.model.detect_faces, frame)
        except Exception as e:
            self._failures += 1
            if self._failures == 1:
                logger.warning(f"Live face detection failed: {type(e).__name__}: {e}")
            else:
                logger.debug(f"Live face detection failed ({self._failures} ticks): {e}")
            return

        if generation != self._generation:
            return
        self.on_detection(list(boxes), frame.shape[1])
