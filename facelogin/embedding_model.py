"""
Embedding Model Interface

The face model is an external capability. This module defines the interface
the core consumes and the ModelLoader that turns its fallible, asynchronous
weight loading into a status every consumer can check without blocking:

    EmbeddingModel.ready()              load weights (may fail)
    EmbeddingModel.detect_faces(frame)  cheap, used by the live loop
    EmbeddingModel.extract_embedding()  expensive, once per confirmed still

Usage:
    loader = ModelLoader(FaceEmbeddingModel(config), load_timeout=60.0)
    loader.start_loading()           # kick off in the background
    error = await loader.ensure_ready()
    if error is None:
        boxes = loader.model.detect_faces(frame)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

import numpy as np

from facelogin.errors import ErrorKind, ModelLoadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundingBox:
    """
    A detected face.

    Attributes:
        x1, y1: Top-left corner in pixels.
        x2, y2: Bottom-right corner in pixels.
        score: Detector confidence in [0, 1].
    """

    x1: int
    y1: int
    x2: int
    y2: int
    score: float = 1.0

    @property
    def width(self) -> int:
        return self.x2 - self.x1

    @property
    def height(self) -> int:
        return self.y2 - self.y1

    def mirrored(self, frame_width: int) -> "BoundingBox":
        """Return the box flipped horizontally within a frame of the given width."""
        return BoundingBox(
            x1=frame_width - self.x2,
            y1=self.y1,
            x2=frame_width - self.x1,
            y2=self.y2,
            score=self.score,
        )


class EmbeddingModel(ABC):
    """Abstract face detection + embedding model."""

    @abstractmethod
    async def ready(self) -> None:
        """
        Load model weights.

        Raises:
            ModelLoadError: If the weights cannot be loaded.
        """

    @abstractmethod
    def detect_faces(self, frame: np.ndarray) -> List[BoundingBox]:
        """Return the faces visible in a BGR frame (cheap)."""

    @abstractmethod
    def extract_embedding(self, frame: np.ndarray) -> Optional[np.ndarray]:
        """
        Detect, align and embed the most prominent face in a BGR frame.

        Returns:
            The embedding vector, or None when no face is found.
        """


class ModelStatus(Enum):
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class ModelLoader:
    """
    Tracks the readiness of an EmbeddingModel.

    Loading happens at most once. A load failure or a load that exceeds
    `load_timeout` resolves to FAILED; it is logged once and every later
    caller gets the same error kind instead of a new attempt or a hang.

    Attributes:
        model: The wrapped model.
        load_timeout: Seconds to wait for ready() before giving up.
    """

    def __init__(self, model: EmbeddingModel, load_timeout: float = 60.0):
        self.model = model
        self.load_timeout = load_timeout
        self._status = ModelStatus.NOT_LOADED
        self._error: Optional[ErrorKind] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def status(self) -> ModelStatus:
        return self._status

    @property
    def error(self) -> Optional[ErrorKind]:
        return self._error

    @property
    def is_ready(self) -> bool:
        return self._status is ModelStatus.READY

    @property
    def has_failed(self) -> bool:
        return self._status is ModelStatus.FAILED

    def start_loading(self) -> None:
        """Begin loading in the background if nothing has started it yet."""
        if self._task is None:
            self._status = ModelStatus.LOADING
            self._task = asyncio.ensure_future(self._load())

    async def ensure_ready(self) -> Optional[ErrorKind]:
        """
        Wait for the model.

        Returns:
            None when the model is ready, MODEL_LOAD_FAILURE otherwise.
        """
        self.start_loading()
        # shield: a cancelled waiter must not abort the shared load
        await asyncio.shield(self._task)
        return self._error

    async def _load(self) -> None:
        try:
            await asyncio.wait_for(self.model.ready(), self.load_timeout)
        except asyncio.TimeoutError:
            self._fail(f"model load exceeded {self.load_timeout:.0f}s")
        except ModelLoadError as e:
            self._fail(str(e))
        except Exception as e:
            logger.exception("Unexpected error while loading face model")
            self._fail(f"{type(e).__name__}: {e}")
        else:
            self._status = ModelStatus.READY
            logger.info("Face model ready")

    def _fail(self, reason: str) -> None:
        self._status = ModelStatus.FAILED
        self._error = ErrorKind.MODEL_LOAD_FAILURE
        logger.warning(
            f"Face model failed to load ({reason}); live face gating is disabled "
            "and descriptors cannot be computed"
        )
