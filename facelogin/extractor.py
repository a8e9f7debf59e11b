"""
Descriptor Extractor

Turns one confirmed still frame into an embedding by running the face model's
full pipeline (detection, alignment, embedding) exactly once. This is the
expensive call; the live loop never uses it.

The result is a value, never an exception:

    result = await extractor.extract(frame)
    if result.ok:
        registry.enroll(..., embedding=result.embedding)
    else:
        show(recovery_action(result.error))
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from facelogin.embedding import Embedding, as_embedding
from facelogin.embedding_model import ModelLoader
from facelogin.errors import ErrorKind
from facelogin.frames import StillFrame

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractionResult:
    """
    Outcome of one extraction.

    Attributes:
        frame: The still frame the extraction ran on.
        embedding: The descriptor on success, None otherwise.
        error: The failure kind, None on success.
        elapsed_ms: Inference wall time (0 if the model was never called).
    """

    frame: StillFrame
    embedding: Optional[Embedding] = None
    error: Optional[ErrorKind] = None
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


class DescriptorExtractor:
    """
    Compute the identity descriptor for a captured still.

    Args:
        loader: ModelLoader wrapping the face model.
        config: Dictionary with optional keys:
            - embedding_dim: Required vector length (default: not checked)
            - extract_timeout_sec: Inference timeout (default 30)
    """

    def __init__(self, loader: ModelLoader, config: Optional[Dict[str, Any]] = None):
        if config is None:
            config = {}
        self.loader = loader
        self.embedding_dim = config.get("embedding_dim")
        self.timeout = float(config.get("extract_timeout_sec", 30.0))

    async def extract(
        self,
        frame: StillFrame,
        expected_generation: Optional[int] = None,
    ) -> ExtractionResult:
        """
        Extract the descriptor of the face in `frame`.

        Args:
            frame: Still frame from a completed capture.
            expected_generation: Generation of the session's current LIVE
                                 period; a frame from any other period is
                                 rejected as STALE_FRAME.

        Returns:
            ExtractionResult with either `embedding` or `error` set.
        """
        if expected_generation is not None and frame.generation != expected_generation:
            logger.warning(
                f"Rejecting stale frame (generation {frame.generation}, "
                f"current {expected_generation})"
            )
            return ExtractionResult(frame=frame, error=ErrorKind.STALE_FRAME)

        if await self.loader.ensure_ready() is not None:
            return ExtractionResult(frame=frame, error=ErrorKind.MODEL_UNAVAILABLE)

        start = time.perf_counter()
        try:
            vector = await asyncio.wait_for(
                asyncio.to_thread(self.loader.model.extract_embedding, frame.image),
                self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Descriptor extraction exceeded {self.timeout:.0f}s")
            return self._failed(frame, start)
        except Exception as e:
            logger.error(f"Descriptor extraction failed: {type(e).__name__}: {e}")
            return self._failed(frame, start)

        elapsed_ms = (time.perf_counter() - start) * 1000.0

        if vector is None:
            logger.info("No face found in captured frame")
            return ExtractionResult(
                frame=frame, error=ErrorKind.NO_FACE_DETECTED, elapsed_ms=elapsed_ms
            )

        try:
            embedding = as_embedding(vector, expected_dim=self.embedding_dim)
        except ValueError as e:
            logger.error(f"Model returned an invalid descriptor: {e}")
            return self._failed(frame, start)

        logger.debug(f"Extracted {embedding.shape[0]}-dim descriptor in {elapsed_ms:.0f}ms")
        return ExtractionResult(frame=frame, embedding=embedding, elapsed_ms=elapsed_ms)

    @staticmethod
    def _failed(frame: StillFrame, start: float) -> ExtractionResult:
        return ExtractionResult(
            frame=frame,
            error=ErrorKind.DESCRIPTOR_COMPUTE_FAILURE,
            elapsed_ms=(time.perf_counter() - start) * 1000.0,
        )
