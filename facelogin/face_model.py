"""
Face Model: MediaPipe live detector + ArcFace embedder

Concrete EmbeddingModel used by the application.

  - detect_faces: MediaPipe Face Detector (BlazeFace short range, Tasks API).
    Cheap enough to poll every 200 ms from the live preview.
  - extract_embedding: ArcFace identity embedding. Supports two backends:
      * insightface (preferred): buffalo_l bundle, SCRFD detection +
        5-point alignment + ArcFace R100
      * facenet-pytorch (fallback): MTCNN alignment + InceptionResnetV1

Weights are loaded in ready(), off the event loop. Any failure is reported as
ModelLoadError so the caller can fall back to degraded capture instead of
hanging.

Usage:
    model = FaceEmbeddingModel(get_embedding_config(), get_live_detection_config())
    await model.ready()
    boxes = model.detect_faces(frame)
    embedding = model.extract_embedding(frame)  # None if no face
"""

import asyncio
import logging
import urllib.request
from pathlib import Path
from typing import Any, Dict, List, Optional

import cv2
import numpy as np

from facelogin.embedding_model import BoundingBox, EmbeddingModel
from facelogin.errors import ModelLoadError

logger = logging.getLogger(__name__)

# Backend availability flags
_INSIGHTFACE_AVAILABLE = False
_FACENET_AVAILABLE = False

try:
    from insightface.app import FaceAnalysis
    _INSIGHTFACE_AVAILABLE = True
except ImportError:
    pass

try:
    from facenet_pytorch import MTCNN, InceptionResnetV1
    import torch
    _FACENET_AVAILABLE = True
except ImportError:
    pass

# URL for the MediaPipe short-range face detector
DETECTOR_MODEL_URL = (
    "https://storage.googleapis.com/mediapipe-models/face_detector/"
    "blaze_face_short_range/float16/1/blaze_face_short_range.tflite"
)
DETECTOR_MODEL_FILENAME = "blaze_face_short_range.tflite"


def get_detector_model_path(model_dir: Optional[str] = None) -> str:
    """
    Get the path to the MediaPipe face detector model file.
    Downloads the model if it doesn't exist locally.

    Args:
        model_dir: Directory for model files. Relative paths are resolved
                   against the project root.

    Returns:
        Path to the model file.
    """
    from facelogin.config import get_project_root

    directory = Path(model_dir or "storage/models")
    if not directory.is_absolute():
        directory = get_project_root() / directory
    directory.mkdir(parents=True, exist_ok=True)

    model_path = directory / DETECTOR_MODEL_FILENAME

    if not model_path.exists():
        logger.info(f"Downloading MediaPipe face detector model to {model_path}")
        urllib.request.urlretrieve(DETECTOR_MODEL_URL, str(model_path))
        logger.info("Download complete")

    return str(model_path)


class FaceEmbeddingModel(EmbeddingModel):
    """
    Face detection and identity embedding backed by MediaPipe and ArcFace.

    Args:
        embedding_config: Dictionary with keys:
            - backend: "insightface", "facenet" or "auto"
            - model: insightface bundle name (default "buffalo_l")
            - embedding_dim: Expected embedding dimension (default 512)
            - device: "cuda" or "cpu"
        detection_config: Dictionary with keys:
            - min_detection_confidence: Live detector threshold (default 0.5)
            - model_dir: Where the detector .tflite is cached
    """

    def __init__(
        self,
        embedding_config: Optional[Dict[str, Any]] = None,
        detection_config: Optional[Dict[str, Any]] = None,
    ):
        embedding_config = embedding_config or {}
        detection_config = detection_config or {}

        self.model_name = embedding_config.get("model", "buffalo_l")
        self.embedding_dim = embedding_config.get("embedding_dim", 512)
        self.device = embedding_config.get("device", "cpu")
        self.requested_backend = embedding_config.get("backend", "auto")
        self.min_detection_confidence = detection_config.get("min_detection_confidence", 0.5)
        self.model_dir = detection_config.get("model_dir")

        self.backend: Optional[str] = None
        self._model = None
        self._aligner = None  # MTCNN, facenet backend only
        self._detector = None
        self.is_loaded = False

    async def ready(self) -> None:
        if self.is_loaded:
            return
        try:
            await asyncio.to_thread(self._load)
        except ModelLoadError:
            raise
        except Exception as e:
            raise ModelLoadError(f"{type(e).__name__}: {e}") from e

    def _load(self) -> None:
        self.backend = self._resolve_backend()
        self._load_detector()

        if self.backend == "insightface":
            self._load_insightface()
        else:
            self._load_facenet()

        self.is_loaded = True
        logger.info(f"FaceEmbeddingModel loaded (backend={self.backend}, model={self.model_name})")

    def _resolve_backend(self) -> str:
        if self.requested_backend == "auto":
            if _INSIGHTFACE_AVAILABLE:
                return "insightface"
            if _FACENET_AVAILABLE:
                return "facenet"
            raise ModelLoadError(
                "No face embedding backend available. "
                "Install insightface: pip install insightface onnxruntime\n"
                "Or facenet-pytorch: pip install facenet-pytorch"
            )
        if self.requested_backend == "insightface" and not _INSIGHTFACE_AVAILABLE:
            raise ModelLoadError("insightface not installed. Run: pip install insightface onnxruntime")
        if self.requested_backend == "facenet" and not _FACENET_AVAILABLE:
            raise ModelLoadError("facenet-pytorch not installed. Run: pip install facenet-pytorch")
        if self.requested_backend not in ("insightface", "facenet"):
            raise ModelLoadError(f"Unknown backend: {self.requested_backend}")
        return self.requested_backend

    def _load_detector(self) -> None:
        """Create the MediaPipe Face Detector (Tasks API, IMAGE mode)."""
        from mediapipe.tasks import python as mp_tasks
        from mediapipe.tasks.python import vision

        base_options = mp_tasks.BaseOptions(
            model_asset_path=get_detector_model_path(self.model_dir)
        )
        options = vision.FaceDetectorOptions(
            base_options=base_options,
            running_mode=vision.RunningMode.IMAGE,
            min_detection_confidence=self.min_detection_confidence,
        )
        self._detector = vision.FaceDetector.create_from_options(options)

    def _load_insightface(self) -> None:
        if self.device == "cuda":
            providers = ["CUDAExecutionProvider", "CPUExecutionProvider"]
        else:
            providers = ["CPUExecutionProvider"]

        self._model = FaceAnalysis(name=self.model_name, providers=providers)
        # det_size controls the internal face detection input size
        self._model.prepare(ctx_id=0 if self.device == "cuda" else -1, det_size=(640, 640))

    def _load_facenet(self) -> None:
        device = torch.device(self.device if torch.cuda.is_available() else "cpu")

        self._aligner = MTCNN(image_size=160, margin=20, device=device, select_largest=True)
        self._model = InceptionResnetV1(pretrained="vggface2").eval().to(device)

    def detect_faces(self, frame: np.ndarray) -> List[BoundingBox]:
        if self._detector is None:
            raise RuntimeError("Face detector not loaded; await ready() first")

        import mediapipe as mp

        h, w = frame.shape[:2]
        # MediaPipe expects RGB, OpenCV delivers BGR
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        result = self._detector.detect(mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb))

        boxes = []
        for detection in result.detections:
            bb = detection.bounding_box
            score = detection.categories[0].score if detection.categories else 1.0
            boxes.append(BoundingBox(
                x1=max(0, bb.origin_x),
                y1=max(0, bb.origin_y),
                x2=min(w, bb.origin_x + bb.width),
                y2=min(h, bb.origin_y + bb.height),
                score=float(score),
            ))
        return boxes

    def extract_embedding(self, frame: np.ndarray) -> Optional[np.ndarray]:
        if not self.is_loaded:
            raise RuntimeError("Face model not loaded; await ready() first")

        if self.backend == "insightface":
            return self._extract_insightface(frame)
        return self._extract_facenet(frame)

    def _extract_insightface(self, frame: np.ndarray) -> Optional[np.ndarray]:
        # insightface expects BGR input (same as OpenCV)
        faces = self._model.get(frame)
        if not faces:
            return None

        best_face = max(faces, key=lambda f: f.det_score)
        return best_face.normed_embedding.astype(np.float32)

    def _extract_facenet(self, frame: np.ndarray) -> Optional[np.ndarray]:
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

        face_tensor = self._aligner(rgb)
        if face_tensor is None:
            return None

        if face_tensor.dim() == 3:
            face_tensor = face_tensor.unsqueeze(0)

        device = next(self._model.parameters()).device
        with torch.no_grad():
            embedding = self._model(face_tensor.to(device)).cpu().numpy().flatten()

        norm = np.linalg.norm(embedding)
        if norm > 1e-8:
            embedding = embedding / norm

        return embedding.astype(np.float32)
