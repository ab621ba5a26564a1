"""
Database module for Weather App backend.

Handles SQLite persistence of high scores with:
- Explicit open/close lifecycle (one open store per process)
- Automatic schema initialization (no migrations)
- Score-ordered and level-filtered queries
"""

import numbers
import sqlite3
import threading
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, List, Optional, Union

from .config import user_data_dir
from .errors import (
    InvalidInputError,
    IoError,
    StoreAlreadyOpenError,
    StoreError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

DEFAULT_DB_NAME = "GameData.db"
DEFAULT_LEVEL = "Default"
DEFAULT_LIMIT = 10
SQLITE_INT_MIN = -(2 ** 63)
SQLITE_INT_MAX = 2 ** 63 - 1


class StoreState(Enum):
    """Lifecycle of a ScoreStore."""
    UNINITIALIZED = "uninitialized"
    OPEN = "open"
    FAILED = "failed"
    CLOSED = "closed"


@dataclass(frozen=True)
class ScoreRecord:
    """One persisted high score."""
    id: int
    player_name: str
    score: int
    level_name: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ScoreRecord":
        return cls(
            id=row["id"],
            player_name=row["player_name"],
            score=row["score"],
            level_name=row["level_name"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


@dataclass
class StoreResult:
    """Outcome of a store operation: `value` on success, `error` otherwise."""
    value: Any = None
    error: Optional[StoreError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ScoreStore:
    """
    SQLite high-score store owning a single connection.

    Only one store may be open per process; use it as a context manager
    so the connection is released on every exit path:

        with ScoreStore() as store:
            store.add_score("Alice", 100)
    """

    _active: ClassVar[Optional["ScoreStore"]] = None
    _active_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, db_path: Optional[Union[str, Path]] = None) -> None:
        self._db_path = Path(db_path) if db_path else user_data_dir() / DEFAULT_DB_NAME
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None
        self._state = StoreState.UNINITIALIZED

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def state(self) -> StoreState:
        return self._state

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def open(self) -> "ScoreStore":
        """
        Open the backing file and ensure the schema, once.

        A failure leaves the store FAILED; later operations then report
        StoreUnavailableError instead of retrying.

        Raises:
            StoreAlreadyOpenError: another store is open in this process
        """
        if self._state is not StoreState.UNINITIALIZED:
            return self

        with ScoreStore._active_lock:
            active = ScoreStore._active
            if active is not None and active is not self:
                raise StoreAlreadyOpenError(str(active.db_path))

            try:
                self._connect()
                self._init_schema()
            except (sqlite3.Error, OSError) as e:
                logger.error(f"Failed to initialize database at {self._db_path}: {e}")
                if self._conn is not None:
                    self._conn.close()
                    self._conn = None
                self._state = StoreState.FAILED
                return self

            self._state = StoreState.OPEN
            ScoreStore._active = self

        logger.info(f"Database initialized at {self._db_path}")
        return self

    def _connect(self) -> None:
        """Establish database connection with WAL mode."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._lock:
            # AUTOINCREMENT keeps ids from being reused after deletes
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS high_scores (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    player_name TEXT NOT NULL,
                    score INTEGER NOT NULL,
                    level_name TEXT NOT NULL DEFAULT 'Default',
                    created_at TEXT NOT NULL
                )
            """)

            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_score_level
                ON high_scores(level_name, score)
            """)

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
                logger.info("Database connection closed")
            if self._state is not StoreState.FAILED:
                self._state = StoreState.CLOSED
        with ScoreStore._active_lock:
            if ScoreStore._active is self:
                ScoreStore._active = None

    def __enter__(self) -> "ScoreStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _unavailable(self) -> Optional[StoreUnavailableError]:
        if self._state is StoreState.OPEN:
            return None
        if self._state is StoreState.FAILED:
            return StoreUnavailableError(f"Database at {self._db_path} failed to initialize")
        if self._state is StoreState.CLOSED:
            return StoreUnavailableError("Database connection is closed")
        return StoreUnavailableError("Database has not been opened")

    # =========================================================================
    # High Score Operations
    # =========================================================================

    def add_score(self, player_name: str, score: int, level_name: str = DEFAULT_LEVEL) -> StoreResult:
        """Insert a high score; value is the stored ScoreRecord."""
        if not player_name or not player_name.strip():
            return StoreResult(error=InvalidInputError("Player name cannot be empty"))

        if isinstance(score, bool) or not isinstance(score, numbers.Integral):
            return StoreResult(error=InvalidInputError(f"Score must be an integer, got {score!r}"))
        if not SQLITE_INT_MIN <= score <= SQLITE_INT_MAX:
            return StoreResult(error=InvalidInputError(f"Score {score} is out of range"))

        level_name = level_name or DEFAULT_LEVEL
        created_at = datetime.now(timezone.utc)

        with self._lock:
            unavailable = self._unavailable()
            if unavailable:
                return StoreResult(error=unavailable)
            try:
                cursor = self._conn.execute("""
                    INSERT INTO high_scores (player_name, score, level_name, created_at)
                    VALUES (?, ?, ?, ?)
                """, (player_name, int(score), level_name, created_at.isoformat()))
                record = ScoreRecord(
                    id=cursor.lastrowid,
                    player_name=player_name,
                    score=int(score),
                    level_name=level_name,
                    created_at=created_at,
                )
            except sqlite3.Error as e:
                logger.error(f"Failed to add high score: {e}")
                return StoreResult(error=IoError(f"Failed to add high score: {e}"))

        logger.info(f"High score added: {player_name} - {score} points ({level_name})")
        return StoreResult(value=record)

    def top_scores(self, limit: int = DEFAULT_LIMIT) -> StoreResult:
        """Highest scores first; equal scores keep insertion order."""
        return self._query_scores(limit)

    def top_scores_for_level(self, level_name: str, limit: int = DEFAULT_LIMIT) -> StoreResult:
        """Highest scores for one level (exact, case-sensitive match)."""
        return self._query_scores(limit, level_name=level_name)

    def _query_scores(self, limit: int, level_name: Optional[str] = None) -> StoreResult:
        sql = "SELECT * FROM high_scores"
        params: tuple = ()
        if level_name is not None:
            sql += " WHERE level_name = ?"
            params = (level_name,)
        sql += " ORDER BY score DESC, id ASC LIMIT ?"

        with self._lock:
            unavailable = self._unavailable()
            if unavailable:
                return StoreResult(error=unavailable)

            if limit <= 0:
                return StoreResult(value=[])

            try:
                cursor = self._conn.execute(sql, params + (limit,))
                rows = cursor.fetchall()
            except sqlite3.Error as e:
                logger.error(f"Failed to get high scores: {e}")
                return StoreResult(error=IoError(f"Failed to get high scores: {e}"))

        records: List[ScoreRecord] = [ScoreRecord.from_row(row) for row in rows]
        return StoreResult(value=records)

    # =========================================================================
    # Utility Operations
    # =========================================================================

    def count(self) -> StoreResult:
        """Total number of stored high scores."""
        with self._lock:
            unavailable = self._unavailable()
            if unavailable:
                return StoreResult(error=unavailable)
            try:
                total = self._conn.execute("SELECT COUNT(*) FROM high_scores").fetchone()[0]
            except sqlite3.Error as e:
                logger.error(f"Failed to get high score count: {e}")
                return StoreResult(error=IoError(f"Failed to get high score count: {e}"))

        return StoreResult(value=total)

    def clear_all(self) -> StoreResult:
        """Delete every high score; value is the number of rows removed."""
        with self._lock:
            unavailable = self._unavailable()
            if unavailable:
                return StoreResult(error=unavailable)
            try:
                cursor = self._conn.execute("DELETE FROM high_scores")
            except sqlite3.Error as e:
                logger.error(f"Failed to clear high scores: {e}")
                return StoreResult(error=IoError(f"Failed to clear high scores: {e}"))

        logger.info(f"All high scores cleared ({cursor.rowcount} removed)")
        return StoreResult(value=cursor.rowcount)
