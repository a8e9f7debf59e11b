"""
Persistence Port

The registry does not know where identities live. It talks to a
PersistencePort, a small get/set surface:

    load_roster() / save_roster(identities)
    load_active_identity_id() / save_active_identity_id(identity_id)

Adapters:
- InMemoryPersistence: process-local, used by tests and demos
- SQLitePersistence: one SQLite file holding the roster (images as data URIs,
  embeddings as BLOBs) and the logged-in identity id

Usage:
    from facelogin.persistence import get_persistence

    port = get_persistence()          # storage.db_path from config.yaml
    registry = EnrollmentRegistry(port)
    registry.load()
"""

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from facelogin.config import get_project_root, get_storage_config
from facelogin.embedding import embedding_dtype_tag, embedding_from_bytes, embedding_to_bytes
from facelogin.registry import Identity

logger = logging.getLogger(__name__)

ACTIVE_IDENTITY_KEY = "active_identity_id"


class PersistencePort(ABC):
    """Storage for the roster and the currently logged-in identity."""

    @abstractmethod
    def load_roster(self) -> List[Identity]:
        """Return every stored identity in enrollment order."""
        pass

    @abstractmethod
    def save_roster(self, identities: Sequence[Identity]) -> None:
        """Replace the stored roster with `identities` (in that order)."""
        pass

    @abstractmethod
    def load_active_identity_id(self) -> Optional[str]:
        pass

    @abstractmethod
    def save_active_identity_id(self, identity_id: Optional[str]) -> None:
        """Store the logged-in identity id; None clears it."""
        pass


class InMemoryPersistence(PersistencePort):
    """Keeps everything in process memory. Counts saves for inspection."""

    def __init__(self, identities: Optional[Sequence[Identity]] = None):
        self._identities: List[Identity] = list(identities or [])
        self._active_identity_id: Optional[str] = None
        self.save_count = 0

    def load_roster(self) -> List[Identity]:
        return list(self._identities)

    def save_roster(self, identities: Sequence[Identity]) -> None:
        self._identities = list(identities)
        self.save_count += 1

    def load_active_identity_id(self) -> Optional[str]:
        return self._active_identity_id

    def save_active_identity_id(self, identity_id: Optional[str]) -> None:
        self._active_identity_id = identity_id


class SQLitePersistence(PersistencePort):
    """
    Stores the roster in SQLite.

    Tables:
    - identities: one row per identity; `position` keeps enrollment order
    - settings: key/value pairs (the active identity id)

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str):
        """
        Open (and if needed create) the database.

        Args:
            db_path: Path to SQLite database file. ":memory:" is accepted.
        """
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._init_database()
        logger.info(f"SQLitePersistence initialized: db={self.db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            # Registry calls may arrive from worker threads; access is serialized by _lock
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_database(self) -> None:
        conn = self._get_connection()
        with self._lock, conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS identities (
                    identity_id TEXT PRIMARY KEY,
                    position INTEGER NOT NULL,
                    display_name TEXT NOT NULL,
                    email TEXT NOT NULL,
                    raw_image TEXT NOT NULL DEFAULT '',
                    enhanced_image TEXT NOT NULL DEFAULT '',
                    embedding BLOB NOT NULL,
                    embedding_dtype TEXT NOT NULL DEFAULT '<f8',
                    is_privileged INTEGER NOT NULL DEFAULT 0,
                    enrolled_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)
        logger.debug("Database schema initialized")

    def load_roster(self) -> List[Identity]:
        conn = self._get_connection()
        with self._lock:
            rows = conn.execute("SELECT * FROM identities ORDER BY position").fetchall()

        identities = [
            Identity(
                id=row["identity_id"],
                display_name=row["display_name"],
                email=row["email"],
                embedding=embedding_from_bytes(row["embedding"], row["embedding_dtype"]),
                raw_image=row["raw_image"],
                enhanced_image=row["enhanced_image"],
                is_privileged=bool(row["is_privileged"]),
                enrolled_at=row["enrolled_at"],
            )
            for row in rows
        ]
        logger.info(f"Loaded {len(identities)} identities")
        return identities

    def save_roster(self, identities: Sequence[Identity]) -> None:
        conn = self._get_connection()
        with self._lock, conn:
            conn.execute("DELETE FROM identities")
            conn.executemany(
                """
                INSERT INTO identities (
                    identity_id, position, display_name, email, raw_image,
                    enhanced_image, embedding, embedding_dtype, is_privileged, enrolled_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        identity.id,
                        position,
                        identity.display_name,
                        identity.email,
                        identity.raw_image,
                        identity.enhanced_image,
                        embedding_to_bytes(identity.embedding),
                        embedding_dtype_tag(identity.embedding),
                        int(identity.is_privileged),
                        identity.enrolled_at,
                    )
                    for position, identity in enumerate(identities)
                ],
            )
        logger.debug(f"Saved roster ({len(identities)} identities)")

    def load_active_identity_id(self) -> Optional[str]:
        conn = self._get_connection()
        with self._lock:
            row = conn.execute(
                "SELECT value FROM settings WHERE key = ?", (ACTIVE_IDENTITY_KEY,)
            ).fetchone()
        return row["value"] if row is not None else None

    def save_active_identity_id(self, identity_id: Optional[str]) -> None:
        conn = self._get_connection()
        with self._lock, conn:
            if identity_id is None:
                conn.execute("DELETE FROM settings WHERE key = ?", (ACTIVE_IDENTITY_KEY,))
            else:
                conn.execute(
                    "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                    (ACTIVE_IDENTITY_KEY, identity_id),
                )

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug("Database connection closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


_persistence: Optional[PersistencePort] = None


def get_persistence(config: Optional[Dict[str, Any]] = None) -> PersistencePort:
    """
    Get the shared SQLitePersistence instance.

    Args:
        config: Storage section; defaults to config.yaml's `storage`.
                Relative db paths are resolved against the project root.
    """
    global _persistence
    if _persistence is None:
        if config is None:
            config = get_storage_config()
        db_path = config.get("db_path", "storage/facelogin.sqlite")
        if db_path != ":memory:" and not Path(db_path).is_absolute():
            db_path = str(get_project_root() / db_path)
        _persistence = SQLitePersistence(db_path)
    return _persistence
