"""
Enrollment Registry

In-memory roster of enrolled identities. This is what the matcher queries
and what enrollment populates.

Concurrency:
    The roster is an immutable tuple. Mutations build a new tuple under a
    lock and swap it in with a single assignment, so readers (list_roster,
    get, the matcher) always see a whole snapshot, old or new, never a
    partially written identity. The privileged flag is decided inside the
    same critical section as the insertion: two concurrent first
    enrollments cannot both become privileged.

Persistence:
    When a PersistencePort is attached, every mutation saves the new roster
    through it before the snapshot is swapped in. If the save raises, the
    in-memory roster is left unchanged.

Usage:
    registry = EnrollmentRegistry(get_persistence())
    registry.load()
    identity = registry.enroll("Alice", "alice@example.com", embedding)
    result = matcher.match(query, registry.list_roster())
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Iterator, List, Optional, Tuple

from facelogin.embedding import Embedding, as_embedding
from facelogin.errors import DuplicateEmailError, EmbeddingDimensionError, IdentityNotFoundError

if TYPE_CHECKING:
    from facelogin.persistence import PersistencePort

logger = logging.getLogger(__name__)


def generate_user_id() -> str:
    """
    Generate a unique identity ID.

    Format: "usr_" followed by 8 random hex characters.
    """
    return f"usr_{uuid.uuid4().hex[:8]}"


def normalize_email(email: str) -> str:
    """Key used for email uniqueness: surrounding whitespace and case ignored."""
    return email.strip().lower()


@dataclass(frozen=True, eq=False)
class Identity:
    """
    An enrolled user.

    Attributes:
        id: Opaque unique id (e.g. "usr_a1b2c3d4").
        display_name: Human-readable name.
        email: Unique across the roster (case-insensitive).
        embedding: Face descriptor, read-only.
        raw_image: Captured still as a data URI.
        enhanced_image: Enhanced still as a data URI (raw image if not enhanced).
        is_privileged: Admin flag; set on the first enrollment only.
        enrolled_at: ISO timestamp.
    """

    id: str
    display_name: str
    email: str
    embedding: Embedding
    raw_image: str = ""
    enhanced_image: str = ""
    is_privileged: bool = False
    enrolled_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def __post_init__(self):
        if not self.id:
            raise ValueError("Identity id must not be empty")
        object.__setattr__(self, "email", self.email.strip())
        object.__setattr__(self, "embedding", as_embedding(self.embedding))

    @property
    def email_key(self) -> str:
        return normalize_email(self.email)


class EnrollmentRegistry:
    """
    Thread-safe roster of enrolled identities in insertion order.

    All enrolled descriptors have the same length: the configured
    `embedding_dim` if given, otherwise the length of those already enrolled.

    Args:
        persistence: Optional PersistencePort; when set, mutations are
                     saved through it automatically.
        embedding_dim: Required descriptor length (default: taken from the roster).
    """

    def __init__(
        self,
        persistence: Optional["PersistencePort"] = None,
        embedding_dim: Optional[int] = None,
    ):
        self._persistence = persistence
        self.embedding_dim = embedding_dim
        self._lock = threading.RLock()
        self._identities: Tuple[Identity, ...] = ()

    @property
    def persistence(self) -> Optional["PersistencePort"]:
        return self._persistence

    def __len__(self) -> int:
        return len(self._identities)

    def __contains__(self, identity_id: str) -> bool:
        return self.get(identity_id) is not None

    # ------------------------------------------------------------------
    # Reads (lock-free: a single read of the current snapshot)
    # ------------------------------------------------------------------

    def list_roster(self) -> Iterator[Tuple[str, Embedding]]:
        """
        Lazily yield (identity_id, embedding) pairs in enrollment order.

        The snapshot is taken when this method is called; enrollments made
        while the iterator is being consumed are not seen by it.
        """
        snapshot = self._identities
        return ((identity.id, identity.embedding) for identity in snapshot)

    def identities(self) -> List[Identity]:
        return list(self._identities)

    def is_first_enrollment(self) -> bool:
        """True while the roster is empty (the next enrollment is privileged)."""
        return len(self._identities) == 0

    def get(self, identity_id: str) -> Optional[Identity]:
        for identity in self._identities:
            if identity.id == identity_id:
                return identity
        return None

    def find_by_email(self, email: str) -> Optional[Identity]:
        key = normalize_email(email)
        for identity in self._identities:
            if identity.email_key == key:
                return identity
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def check_embedding(self, embedding: Embedding, exclude_id: Optional[str] = None) -> None:
        """
        Raise EmbeddingDimensionError if `embedding` could not join the roster.

        Lets callers reject a descriptor before doing slow work with it.

        Args:
            embedding: Candidate descriptor.
            exclude_id: Identity whose descriptor is about to be replaced.
        """
        others = tuple(i for i in self._identities if i.id != exclude_id)
        self._check_dimension(as_embedding(embedding), others)

    def _check_dimension(self, embedding: Embedding, others: Tuple[Identity, ...]) -> None:
        expected = self.embedding_dim
        if expected is None and others:
            expected = others[0].embedding.shape[0]
        if expected is not None and embedding.shape[0] != expected:
            raise EmbeddingDimensionError(
                f"Embedding length {embedding.shape[0]} does not match the roster ({expected})"
            )

    def _commit(self, identities: Tuple[Identity, ...]) -> None:
        # Caller holds the lock
        if self._persistence is not None:
            self._persistence.save_roster(identities)
        self._identities = identities

    def add(self, identity: Identity) -> Identity:
        """
        Add an identity to the roster.

        The stored copy's `is_privileged` is True exactly when the roster was
        empty; the flag on the argument is ignored.

        Returns:
            The identity as stored.

        Raises:
            DuplicateEmailError: If the email is already enrolled.
            EmbeddingDimensionError: If the descriptor length differs from the roster's.
            ValueError: If the id is already enrolled.
        """
        with self._lock:
            if self.find_by_email(identity.email) is not None:
                raise DuplicateEmailError(f"Email already enrolled: {identity.email}")
            if self.get(identity.id) is not None:
                raise ValueError(f"Identity already exists for id: {identity.id}")
            self._check_dimension(identity.embedding, self._identities)

            stored = replace(identity, is_privileged=self.is_first_enrollment())
            self._commit(self._identities + (stored,))

        logger.info(
            f"Enrolled {stored.display_name} (id={stored.id}, "
            f"privileged={stored.is_privileged}, roster={len(self._identities)})"
        )
        return stored

    def enroll(
        self,
        display_name: str,
        email: str,
        embedding: Embedding,
        raw_image: str = "",
        enhanced_image: str = "",
        identity_id: Optional[str] = None,
    ) -> Identity:
        """Create an Identity with a fresh id and add() it."""
        identity = Identity(
            id=identity_id or generate_user_id(),
            display_name=display_name,
            email=email,
            embedding=embedding,
            raw_image=raw_image,
            enhanced_image=enhanced_image or raw_image,
        )
        return self.add(identity)

    def update_embedding(
        self,
        identity_id: str,
        embedding: Embedding,
        raw_image: Optional[str] = None,
        enhanced_image: Optional[str] = None,
    ) -> Identity:
        """
        Replace an identity's face data. Images left as None are kept.

        Raises:
            IdentityNotFoundError: If no identity has `identity_id`.
            EmbeddingDimensionError: If the descriptor length differs from the roster's.
        """
        embedding = as_embedding(embedding)
        with self._lock:
            identities = list(self._identities)
            for index, identity in enumerate(identities):
                if identity.id == identity_id:
                    break
            else:
                raise IdentityNotFoundError(f"No identity with id: {identity_id}")

            self._check_dimension(embedding, tuple(i for i in identities if i.id != identity_id))
            updated = replace(
                identity,
                embedding=embedding,
                raw_image=identity.raw_image if raw_image is None else raw_image,
                enhanced_image=identity.enhanced_image if enhanced_image is None else enhanced_image,
            )
            identities[index] = updated
            self._commit(tuple(identities))

        logger.info(f"Updated face data for {identity_id}")
        return updated

    def remove(self, identity_id: str) -> Identity:
        """
        Remove an identity.

        Raises:
            IdentityNotFoundError: If no identity has `identity_id`.
        """
        with self._lock:
            removed = self.get(identity_id)
            if removed is None:
                raise IdentityNotFoundError(f"No identity with id: {identity_id}")
            self._commit(tuple(i for i in self._identities if i.id != identity_id))

        logger.info(f"Removed identity {identity_id}")
        return removed

    def transfer_privilege(self, identity_id: str) -> Identity:
        """
        Make `identity_id` the only privileged identity.

        Raises:
            IdentityNotFoundError: If no identity has `identity_id`.
        """
        with self._lock:
            if self.get(identity_id) is None:
                raise IdentityNotFoundError(f"No identity with id: {identity_id}")
            identities = tuple(
                replace(i, is_privileged=(i.id == identity_id)) for i in self._identities
            )
            self._commit(identities)

        logger.info(f"Privilege transferred to {identity_id}")
        return self.get(identity_id)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> int:
        """
        Replace the roster with the one stored in the persistence port.

        Returns:
            Number of identities loaded (0 without a port).
        """
        if self._persistence is None:
            return 0
        loaded = tuple(self._persistence.load_roster())
        with self._lock:
            self._identities = loaded
        logger.info(f"Roster loaded: {len(loaded)} identities")
        return len(loaded)

    def save(self) -> None:
        """Write the current roster through the persistence port."""
        if self._persistence is None:
            logger.warning("No persistence attached; roster not saved")
            return
        with self._lock:
            self._persistence.save_roster(self._identities)
