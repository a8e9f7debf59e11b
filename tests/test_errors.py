"""
Tests for the error taxonomy.

Run with: pytest tests/test_errors.py -v
"""

import pytest

from facelogin.errors import (
    ACQUIRE_ERROR_KINDS,
    AcquireError,
    CaptureNotReadyError,
    DuplicateEmailError,
    EmbeddingDimensionError,
    EnhanceError,
    ErrorKind,
    FaceLoginError,
    IdentityNotFoundError,
    ModelLoadError,
    NoFaceVisibleError,
    NotPrivilegedError,
    RecoveryAction,
    RegistryError,
    SessionStoppedError,
    recovery_action,
)


class TestRecoveryAction:
    """Each error kind maps to what the user can do about it."""

    @pytest.mark.parametrize("kind", sorted(ACQUIRE_ERROR_KINDS - {ErrorKind.UNSUPPORTED}))
    def test_camera_errors_offer_retry_camera(self, kind):
        assert recovery_action(kind) is RecoveryAction.RETRY_CAMERA

    def test_unsupported_has_no_recovery(self):
        assert recovery_action(ErrorKind.UNSUPPORTED) is RecoveryAction.NONE

    @pytest.mark.parametrize("kind", [
        ErrorKind.NO_FACE_DETECTED,
        ErrorKind.DESCRIPTOR_COMPUTE_FAILURE,
        ErrorKind.STALE_FRAME,
        ErrorKind.NO_FACE_VISIBLE,
        ErrorKind.UNKNOWN_IDENTITY,
    ])
    def test_photo_errors_offer_retake(self, kind):
        assert recovery_action(kind) is RecoveryAction.RETAKE_PHOTO

    def test_empty_roster_offers_enrollment(self):
        assert recovery_action(ErrorKind.NO_ENROLLED_IDENTITIES) is RecoveryAction.ENROLL

    def test_model_failure_degrades_silently(self):
        assert recovery_action(ErrorKind.MODEL_LOAD_FAILURE) is RecoveryAction.NONE

    def test_every_kind_is_mapped(self):
        for kind in ErrorKind:
            assert isinstance(recovery_action(kind), RecoveryAction)


class TestExceptions:
    """Tests for the exception hierarchy."""

    @pytest.mark.parametrize("exc_type, kind", [
        (ModelLoadError, ErrorKind.MODEL_LOAD_FAILURE),
        (CaptureNotReadyError, ErrorKind.CAPTURE_NOT_READY),
        (NoFaceVisibleError, ErrorKind.NO_FACE_VISIBLE),
        (SessionStoppedError, ErrorKind.SESSION_STOPPED),
        (DuplicateEmailError, ErrorKind.DUPLICATE_EMAIL),
        (IdentityNotFoundError, ErrorKind.NOT_FOUND),
        (EmbeddingDimensionError, ErrorKind.EMBEDDING_DIMENSION_MISMATCH),
        (NotPrivilegedError, ErrorKind.NOT_PRIVILEGED),
        (EnhanceError, ErrorKind.ENHANCE_FAILURE),
    ])
    def test_kinds(self, exc_type, kind):
        exc = exc_type("boom")
        assert isinstance(exc, FaceLoginError)
        assert exc.kind is kind
        assert str(exc) == "boom"

    def test_default_message_is_kind(self):
        assert str(SessionStoppedError()) == "session_stopped"

    def test_hierarchy(self):
        assert issubclass(NoFaceVisibleError, CaptureNotReadyError)
        assert issubclass(DuplicateEmailError, RegistryError)
        assert issubclass(IdentityNotFoundError, RegistryError)
        assert issubclass(EmbeddingDimensionError, RegistryError)
        assert not issubclass(NotPrivilegedError, RegistryError)

    def test_acquire_error_carries_kind(self):
        exc = AcquireError(ErrorKind.DEVICE_BUSY, "in use by another app")
        assert exc.kind is ErrorKind.DEVICE_BUSY
        assert exc.recovery_action is RecoveryAction.RETRY_CAMERA

    def test_acquire_error_rejects_non_camera_kind(self):
        with pytest.raises(ValueError):
            AcquireError(ErrorKind.DUPLICATE_EMAIL)
