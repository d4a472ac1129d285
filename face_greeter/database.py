import json
import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Any, List, Optional

import numpy as np

from .exceptions import DatabaseError, EnrollmentError
from .face_types import Identity, normalize_embeddings


class GreeterDatabase:
    """sqlite3-backed identity and settings store."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _initialize(self) -> None:
        try:
            with self._connect() as conn:
                conn.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS people (
                        identity_id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        date_of_birth TEXT,
                        embeddings BLOB NOT NULL,
                        embedding_dim INTEGER NOT NULL,
                        registered_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS settings (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );
                    """
                )
                self._migrate(conn)
        except sqlite3.Error as exc:
            raise DatabaseError(f"Failed to initialize database: {exc}") from exc

    @staticmethod
    def _migrate(conn: sqlite3.Connection) -> None:
        columns = {row["name"] for row in conn.execute("PRAGMA table_info(people)").fetchall()}
        # Rows written before multi-embedding support have no count and hold one vector.
        if "embedding_count" not in columns:
            conn.execute("ALTER TABLE people ADD COLUMN embedding_count INTEGER")
        if "greeting_audio" not in columns:
            conn.execute("ALTER TABLE people ADD COLUMN greeting_audio BLOB")

    def get(self, identity_id: str) -> Optional[Identity]:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM people WHERE identity_id = ?",
                    (identity_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise DatabaseError(f"Failed to load person {identity_id}: {exc}") from exc

        if row is None:
            return None
        return self._row_to_identity(row)

    def get_all(self) -> List[Identity]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM people ORDER BY registered_at ASC, rowid ASC"
                ).fetchall()
        except sqlite3.Error as exc:
            raise DatabaseError(f"Failed to load people: {exc}") from exc

        return [self._row_to_identity(row) for row in rows]

    def count(self) -> int:
        try:
            with self._connect() as conn:
                return int(conn.execute("SELECT COUNT(*) AS c FROM people").fetchone()["c"])
        except sqlite3.Error as exc:
            raise DatabaseError(f"Failed to count people: {exc}") from exc

    def put(self, identity: Identity) -> None:
        vectors = normalize_embeddings(identity.embeddings)
        matrix = np.vstack(vectors).astype(np.float32)
        now = datetime.now().isoformat(timespec="seconds")
        registered_at = identity.registered_at or now
        dob = identity.date_of_birth.isoformat() if identity.date_of_birth else None

        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO people (
                        identity_id, name, date_of_birth, embeddings, embedding_dim,
                        embedding_count, greeting_audio, registered_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(identity_id) DO UPDATE SET
                        name = excluded.name,
                        date_of_birth = excluded.date_of_birth,
                        embeddings = excluded.embeddings,
                        embedding_dim = excluded.embedding_dim,
                        embedding_count = excluded.embedding_count,
                        greeting_audio = excluded.greeting_audio,
                        updated_at = excluded.updated_at
                    """,
                    (
                        identity.identity_id,
                        identity.name,
                        dob,
                        matrix.tobytes(),
                        matrix.shape[1],
                        matrix.shape[0],
                        identity.cached_greeting_audio,
                        registered_at,
                        now,
                    ),
                )
        except sqlite3.Error as exc:
            raise DatabaseError(f"Failed to save person {identity.identity_id}: {exc}") from exc

        identity.registered_at = registered_at

    def delete(self, identity_id: str) -> bool:
        try:
            with self._connect() as conn:
                cursor = conn.execute("DELETE FROM people WHERE identity_id = ?", (identity_id,))
                return cursor.rowcount > 0
        except sqlite3.Error as exc:
            raise DatabaseError(f"Failed to delete person {identity_id}: {exc}") from exc

    def get_setting(self, key: str) -> Any:
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise DatabaseError(f"Failed to load setting {key}: {exc}") from exc

        if row is None:
            return None
        return json.loads(row["value"])

    def set_setting(self, key: str, value: Any) -> None:
        now = datetime.now().isoformat(timespec="seconds")
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, json.dumps(value), now),
                )
        except sqlite3.Error as exc:
            raise DatabaseError(f"Failed to save setting {key}: {exc}") from exc

    @staticmethod
    def _row_to_identity(row: sqlite3.Row) -> Identity:
        dim = int(row["embedding_dim"])
        count = row["embedding_count"] or 1
        try:
            flat = np.frombuffer(row["embeddings"], dtype=np.float32, count=dim * count)
            embeddings = normalize_embeddings(flat.reshape(count, dim))
        except (ValueError, EnrollmentError) as exc:
            raise DatabaseError(f"Stored embeddings for {row['identity_id']} are invalid: {exc}") from exc

        dob = date.fromisoformat(row["date_of_birth"]) if row["date_of_birth"] else None
        audio = row["greeting_audio"]
        return Identity(
            identity_id=row["identity_id"],
            name=row["name"],
            embeddings=embeddings,
            date_of_birth=dob,
            cached_greeting_audio=bytes(audio) if audio else None,
            registered_at=row["registered_at"],
        )
