"""
Error Taxonomy for Face Login

Every failure the core can report is identified by an ErrorKind. Outcomes of
camera acquisition, model loading, descriptor extraction and matching are
returned as values carrying a kind; misuse of an API (capturing in the wrong
state, registry conflicts, a failed enhancement call) raises one of the
exceptions below, all of which derive from FaceLoginError and expose `.kind`.

Each kind maps to the action the UI should offer the user (see
recovery_action).
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Identifier for every failure reported by the core."""

    # Resource errors (camera)
    PERMISSION_DENIED = "permission_denied"
    DEVICE_NOT_FOUND = "device_not_found"
    DEVICE_BUSY = "device_busy"
    PLAYBACK_REJECTED = "playback_rejected"
    UNSUPPORTED = "unsupported"

    # Model errors
    MODEL_LOAD_FAILURE = "model_load_failure"
    MODEL_UNAVAILABLE = "model_unavailable"

    # Extraction errors
    NO_FACE_DETECTED = "no_face_detected"
    DESCRIPTOR_COMPUTE_FAILURE = "descriptor_compute_failure"
    STALE_FRAME = "stale_frame"

    # Session errors
    CAPTURE_NOT_READY = "capture_not_ready"
    NO_FACE_VISIBLE = "no_face_visible"
    SESSION_STOPPED = "session_stopped"

    # Matching outcomes
    NO_ENROLLED_IDENTITIES = "no_enrolled_identities"
    UNKNOWN_IDENTITY = "unknown_identity"

    # Registry errors
    DUPLICATE_EMAIL = "duplicate_email"
    NOT_FOUND = "not_found"
    EMBEDDING_DIMENSION_MISMATCH = "embedding_dimension_mismatch"

    # Access control
    NOT_PRIVILEGED = "not_privileged"

    # Enhancement
    ENHANCE_FAILURE = "enhance_failure"


ACQUIRE_ERROR_KINDS = frozenset({
    ErrorKind.PERMISSION_DENIED,
    ErrorKind.DEVICE_NOT_FOUND,
    ErrorKind.DEVICE_BUSY,
    ErrorKind.PLAYBACK_REJECTED,
    ErrorKind.UNSUPPORTED,
})


class RecoveryAction(str, Enum):
    """What the user can do about an error."""

    RETRY_CAMERA = "retry_camera"
    RETAKE_PHOTO = "retake_photo"
    ENROLL = "enroll"
    RETRY = "retry"
    NONE = "none"


_RECOVERY_ACTIONS = {
    ErrorKind.PERMISSION_DENIED: RecoveryAction.RETRY_CAMERA,
    ErrorKind.DEVICE_NOT_FOUND: RecoveryAction.RETRY_CAMERA,
    ErrorKind.DEVICE_BUSY: RecoveryAction.RETRY_CAMERA,
    ErrorKind.PLAYBACK_REJECTED: RecoveryAction.RETRY_CAMERA,
    ErrorKind.UNSUPPORTED: RecoveryAction.NONE,
    # Degraded mode: capture stays possible, nothing to retry
    ErrorKind.MODEL_LOAD_FAILURE: RecoveryAction.NONE,
    ErrorKind.MODEL_UNAVAILABLE: RecoveryAction.NONE,
    ErrorKind.NO_FACE_DETECTED: RecoveryAction.RETAKE_PHOTO,
    ErrorKind.DESCRIPTOR_COMPUTE_FAILURE: RecoveryAction.RETAKE_PHOTO,
    ErrorKind.STALE_FRAME: RecoveryAction.RETAKE_PHOTO,
    ErrorKind.CAPTURE_NOT_READY: RecoveryAction.RETRY_CAMERA,
    ErrorKind.NO_FACE_VISIBLE: RecoveryAction.RETAKE_PHOTO,
    ErrorKind.SESSION_STOPPED: RecoveryAction.NONE,
    ErrorKind.NO_ENROLLED_IDENTITIES: RecoveryAction.ENROLL,
    ErrorKind.UNKNOWN_IDENTITY: RecoveryAction.RETAKE_PHOTO,
    ErrorKind.DUPLICATE_EMAIL: RecoveryAction.NONE,
    ErrorKind.NOT_FOUND: RecoveryAction.NONE,
    # Descriptor from a different model than the roster; retaking cannot fix it
    ErrorKind.EMBEDDING_DIMENSION_MISMATCH: RecoveryAction.NONE,
    ErrorKind.NOT_PRIVILEGED: RecoveryAction.NONE,
    ErrorKind.ENHANCE_FAILURE: RecoveryAction.RETRY,
}


def recovery_action(kind: ErrorKind) -> RecoveryAction:
    """Return the user-facing recovery action for an error kind."""
    return _RECOVERY_ACTIONS.get(kind, RecoveryAction.NONE)


class FaceLoginError(Exception):
    """Base class for all errors raised by the face login core."""

    kind: ErrorKind = ErrorKind.UNSUPPORTED

    def __init__(self, message: str = "", kind: Optional[ErrorKind] = None):
        if kind is not None:
            self.kind = kind
        super().__init__(message or self.kind.value)

    @property
    def recovery_action(self) -> RecoveryAction:
        return recovery_action(self.kind)


class AcquireError(FaceLoginError):
    """Camera stream could not be obtained or did not start playing."""

    def __init__(self, kind: ErrorKind, message: str = ""):
        if kind not in ACQUIRE_ERROR_KINDS:
            raise ValueError(f"Not a camera acquisition error kind: {kind}")
        super().__init__(message, kind=kind)


class ModelLoadError(FaceLoginError):
    """Model weights failed to load."""

    kind = ErrorKind.MODEL_LOAD_FAILURE


class CaptureNotReadyError(FaceLoginError):
    """Still capture requested while the session cannot take one."""

    kind = ErrorKind.CAPTURE_NOT_READY


class NoFaceVisibleError(CaptureNotReadyError):
    """Detector is available but sees no face in the live preview."""

    kind = ErrorKind.NO_FACE_VISIBLE


class SessionStoppedError(FaceLoginError):
    """Operation requested on a session that reached STOPPED."""

    kind = ErrorKind.SESSION_STOPPED


class RegistryError(FaceLoginError):
    """Base class for enrollment registry conflicts."""


class DuplicateEmailError(RegistryError):
    kind = ErrorKind.DUPLICATE_EMAIL


class IdentityNotFoundError(RegistryError):
    kind = ErrorKind.NOT_FOUND


class EmbeddingDimensionError(RegistryError):
    """Descriptor length differs from the descriptors already enrolled."""

    kind = ErrorKind.EMBEDDING_DIMENSION_MISMATCH


class NotPrivilegedError(FaceLoginError):
    """Operation restricted to the privileged (admin) identity."""

    kind = ErrorKind.NOT_PRIVILEGED


class EnhanceError(FaceLoginError):
    """The enhancement service failed or returned an unusable image."""

    kind = ErrorKind.ENHANCE_FAILURE
