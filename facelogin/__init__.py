"""
Face Login Core

Camera capture, live face detection, descriptor extraction and 1:N identity
matching for face-based sign-up and sign-in.

Main components:
    - config: Configuration loading and management
    - capture_session: Camera stream state machine for one capture widget
    - live_detection: Periodic face-presence check while the preview is live
    - extractor: Descriptor extraction from a confirmed still
    - matching: Nearest-identity matching
    - registry: Enrolled identities
    - persistence: Roster storage (in-memory, SQLite)
    - enhancement: Optional face image enhancement service
    - auth: Enrollment / login / logout flows

Usage:
    from facelogin import CaptureSession, DescriptorExtractor, ModelLoader
    from facelogin.camera import OpenCVCamera
    from facelogin.face_model import FaceEmbeddingModel
"""

from facelogin.config import (
    get_config,
    get_section,
    get_camera_config,
    get_live_detection_config,
    get_embedding_config,
    get_matching_config,
    get_enhancement_config,
    get_storage_config,
    setup_logging,
)

from facelogin.errors import (
    ErrorKind,
    RecoveryAction,
    recovery_action,
    FaceLoginError,
    AcquireError,
    ModelLoadError,
    CaptureNotReadyError,
    NoFaceVisibleError,
    SessionStoppedError,
    RegistryError,
    DuplicateEmailError,
    IdentityNotFoundError,
    EmbeddingDimensionError,
    NotPrivilegedError,
    EnhanceError,
)

from facelogin.embedding_model import BoundingBox, EmbeddingModel, ModelLoader, ModelStatus

from facelogin.capture_session import CaptureSession, CaptureState

from facelogin.extractor import DescriptorExtractor, ExtractionResult

from facelogin.frames import StillFrame

from facelogin.matching import (
    EuclideanIdentityMatcher,
    IdentityMatcher,
    MatchOutcome,
    MatchResult,
)

from facelogin.registry import EnrollmentRegistry, Identity, generate_user_id

from facelogin.persistence import (
    PersistencePort,
    InMemoryPersistence,
    SQLitePersistence,
    get_persistence,
)

from facelogin.enhancement import ImageEnhancer, HttpImageEnhancer, PassthroughEnhancer, create_enhancer

from facelogin.auth import FaceAuthService, LoginResult

__all__ = [
    # Configuration
    "get_config",
    "get_section",
    "get_camera_config",
    "get_live_detection_config",
    "get_embedding_config",
    "get_matching_config",
    "get_enhancement_config",
    "get_storage_config",
    "setup_logging",
    # Errors
    "ErrorKind",
    "RecoveryAction",
    "recovery_action",
    "FaceLoginError",
    "AcquireError",
    "ModelLoadError",
    "CaptureNotReadyError",
    "NoFaceVisibleError",
    "SessionStoppedError",
    "RegistryError",
    "DuplicateEmailError",
    "IdentityNotFoundError",
    "EmbeddingDimensionError",
    "NotPrivilegedError",
    "EnhanceError",
    # Model
    "BoundingBox",
    "EmbeddingModel",
    "ModelLoader",
    "ModelStatus",
    # Capture
    "CaptureSession",
    "CaptureState",
    "StillFrame",
    "DescriptorExtractor",
    "ExtractionResult",
    # Matching
    "EuclideanIdentityMatcher",
    "IdentityMatcher",
    "MatchOutcome",
    "MatchResult",
    # Registry
    "EnrollmentRegistry",
    "Identity",
    "generate_user_id",
    "PersistencePort",
    "InMemoryPersistence",
    "SQLitePersistence",
    "get_persistence",
    # Enhancement / auth
    "ImageEnhancer",
    "HttpImageEnhancer",
    "PassthroughEnhancer",
    "create_enhancer",
    "FaceAuthService",
    "LoginResult",
]
