"""
Face Authentication Service

Application flows on top of the core components:

- enroll: duplicate-email check, enhancement, registry insertion, auto-login
- login: 1:N match of a captured descriptor against the roster
- logout: clear the logged-in identity
- update_face: replace an identity's images and descriptor (admin only)

The logged-in identity id is kept in the registry's persistence port so it
survives restarts.

Usage:
    service = FaceAuthService(registry, EuclideanIdentityMatcher(), enhancer)

    frame, embedding = session.confirm()
    result = service.login(embedding)
    if not result.ok:
        show(recovery_action(result.error))
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from facelogin.embedding import Embedding
from facelogin.enhancement import ImageEnhancer, PassthroughEnhancer
from facelogin.errors import (
    DuplicateEmailError,
    EmbeddingDimensionError,
    ErrorKind,
    IdentityNotFoundError,
    NotPrivilegedError,
)
from facelogin.frames import StillFrame
from facelogin.matching import EuclideanIdentityMatcher, IdentityMatcher, MatchOutcome, MatchResult
from facelogin.registry import EnrollmentRegistry, Identity

logger = logging.getLogger(__name__)


@dataclass
class LoginResult:
    """
    Outcome of a login attempt.

    Attributes:
        match: The matcher's result (None if matching was not attempted).
        identity: The logged-in identity (on success).
        error: NO_ENROLLED_IDENTITIES, UNKNOWN_IDENTITY or
               EMBEDDING_DIMENSION_MISMATCH on failure.
    """

    match: Optional[MatchResult]
    identity: Optional[Identity] = None
    error: Optional[ErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class FaceAuthService:
    """
    Enrollment and login using face descriptors.

    Args:
        registry: The roster of enrolled identities.
        matcher: IdentityMatcher (default EuclideanIdentityMatcher()).
        enhancer: ImageEnhancer (default PassthroughEnhancer()).
    """

    def __init__(
        self,
        registry: EnrollmentRegistry,
        matcher: Optional[IdentityMatcher] = None,
        enhancer: Optional[ImageEnhancer] = None,
    ):
        self.registry = registry
        self.matcher = matcher or EuclideanIdentityMatcher()
        self.enhancer = enhancer or PassthroughEnhancer()

        port = registry.persistence
        self._active_identity_id = port.load_active_identity_id() if port is not None else None
        if self._active_identity_id is not None and registry.get(self._active_identity_id) is None:
            logger.warning(f"Stored active identity {self._active_identity_id} is not enrolled")
            self._set_active(None)

    @property
    def current_identity(self) -> Optional[Identity]:
        if self._active_identity_id is None:
            return None
        return self.registry.get(self._active_identity_id)

    @property
    def users(self) -> List[Identity]:
        return self.registry.identities()

    def _set_active(self, identity_id: Optional[str]) -> None:
        self._active_identity_id = identity_id
        port = self.registry.persistence
        if port is not None:
            port.save_active_identity_id(identity_id)

    async def enroll(
        self,
        display_name: str,
        email: str,
        frame: StillFrame,
        embedding: Embedding,
    ) -> Identity:
        """
        Register a new identity and log it in.

        The first identity ever enrolled becomes privileged.

        Args:
            display_name: User's name.
            email: User's email (must not be enrolled yet).
            frame: The confirmed still.
            embedding: Descriptor extracted from `frame`.

        Returns:
            The enrolled Identity.

        Raises:
            DuplicateEmailError: If the email is already enrolled.
            EmbeddingDimensionError: If the descriptor length differs from the roster's.
            EnhanceError: If enhancement fails; nothing is stored.
        """
        # Checked before the (slow) enhancement call; add() checks again atomically
        if self.registry.find_by_email(email) is not None:
            raise DuplicateEmailError(f"Email already enrolled: {email}")
        self.registry.check_embedding(embedding)

        raw_image = frame.to_data_uri()
        enhanced_image = await self.enhancer.enhance(raw_image)

        identity = self.registry.enroll(
            display_name=display_name,
            email=email,
            embedding=embedding,
            raw_image=raw_image,
            enhanced_image=enhanced_image,
        )
        self._set_active(identity.id)
        return identity

    def login(self, embedding: Embedding, threshold: Optional[float] = None) -> LoginResult:
        """
        Identify the user from a captured descriptor.

        Returns:
            LoginResult; on MATCHED the identity becomes the current one.
        """
        try:
            if len(self.registry) > 0:
                self.registry.check_embedding(embedding)
        except EmbeddingDimensionError as e:
            logger.error(f"Login rejected: {e}")
            return LoginResult(match=None, error=ErrorKind.EMBEDDING_DIMENSION_MISMATCH)

        result = self.matcher.match(embedding, self.registry.list_roster(), threshold)

        if result.outcome is MatchOutcome.NO_ENROLLED_IDENTITIES:
            return LoginResult(match=result, error=ErrorKind.NO_ENROLLED_IDENTITIES)
        if result.outcome is MatchOutcome.UNKNOWN:
            logger.info(f"Login rejected (distance={result.distance:.4f})")
            return LoginResult(match=result, error=ErrorKind.UNKNOWN_IDENTITY)

        identity = self.registry.get(result.identity_id)
        if identity is None:
            # Removed between the roster snapshot and now
            return LoginResult(match=result, error=ErrorKind.UNKNOWN_IDENTITY)

        self._set_active(identity.id)
        logger.info(f"Logged in {identity.display_name} ({identity.id})")
        return LoginResult(match=result, identity=identity)

    def logout(self) -> None:
        if self._active_identity_id is not None:
            logger.info(f"Logged out {self._active_identity_id}")
        self._set_active(None)

    async def update_face(
        self,
        identity_id: str,
        frame: StillFrame,
        embedding: Embedding,
    ) -> Identity:
        """
        Replace an identity's face images and descriptor.

        Only the logged-in privileged identity may do this.

        Raises:
            NotPrivilegedError: If nobody is logged in or the current identity
                                is not privileged.
            IdentityNotFoundError: If the identity does not exist.
            EmbeddingDimensionError: If the descriptor length differs from the roster's.
            EnhanceError: If enhancement fails; nothing is changed.
        """
        admin = self.current_identity
        if admin is None or not admin.is_privileged:
            who = admin.id if admin is not None else "anonymous user"
            logger.warning(f"Face update of {identity_id} refused for {who}")
            raise NotPrivilegedError("Updating face data requires the admin identity")
        if self.registry.get(identity_id) is None:
            raise IdentityNotFoundError(f"No identity with id: {identity_id}")

        self.registry.check_embedding(embedding, exclude_id=identity_id)

        raw_image = frame.to_data_uri()
        enhanced_image = await self.enhancer.enhance(raw_image)
        return self.registry.update_embedding(
            identity_id,
            embedding,
            raw_image=raw_image,
            enhanced_image=enhanced_image,
        )
