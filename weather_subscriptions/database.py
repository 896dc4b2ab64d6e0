"""
Database module for the Weather Subscriptions service.

Handles SQLite persistence with:
- One subscriptions table, unique on token and on (email, city)
- Atomic per-statement operations (autocommit, lock-serialized connection)
- Token collision retry driven by the uniqueness constraint
"""

import sqlite3
import threading
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .errors import DuplicateError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "weather_subscriptions.db"
BUSY_TIMEOUT_SECONDS = 5.0
TOKEN_INSERT_ATTEMPTS = 3


class Frequency(str, Enum):
    """Delivery tier of a subscription."""
    HOURLY = "hourly"
    DAILY = "daily"


@dataclass
class Subscription:
    """A subscription row."""
    id: int
    email: str
    city: str
    frequency: Frequency
    confirmed: bool
    token: str
    created_at: str
    confirmed_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Subscription":
        return cls(
            id=row["id"],
            email=row["email"],
            city=row["city"],
            frequency=Frequency(row["frequency"]),
            confirmed=bool(row["confirmed"]),
            token=row["token"],
            created_at=row["created_at"],
            confirmed_at=row["confirmed_at"],
        )


def generate_token() -> str:
    return str(uuid.uuid4())


class SubscriptionStore:
    """
    SQLite store with thread-safe operations.

    Shared by the HTTP handlers and the scheduler threads. Uniqueness of
    (email, city) and of token is enforced by the schema, so concurrent
    subscribe calls cannot both insert.
    """

    def __init__(
        self,
        db_path: Optional[str] = None,
        token_factory: Callable[[], str] = generate_token
    ) -> None:
        self._db_path = db_path or DEFAULT_DB_PATH
        self._token_factory = token_factory
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None
        self._connect()
        self._init_schema()
        logger.info(f"Subscription store initialized at {self._db_path}")

    def _connect(self) -> None:
        """Establish database connection with WAL mode."""
        self._conn = sqlite3.connect(
            self._db_path,
            check_same_thread=False,
            isolation_level=None,
            timeout=BUSY_TIMEOUT_SECONDS
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._lock:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS subscriptions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL,
                    city TEXT NOT NULL,
                    frequency TEXT NOT NULL CHECK (frequency IN ('hourly', 'daily')),
                    confirmed INTEGER NOT NULL DEFAULT 0,
                    token TEXT NOT NULL UNIQUE,
                    created_at TEXT NOT NULL,
                    confirmed_at TEXT,
                    UNIQUE(email, city)
                )
            """)
            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_subscriptions_delivery
                ON subscriptions(confirmed, frequency)
            """)

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """Run one statement; caller holds the lock."""
        if self._conn is None:
            raise StorageError("Subscription store is closed")
        try:
            return self._conn.execute(sql, params)
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as e:
            logger.error(f"Subscription store query failed: {e}")
            raise StorageError(f"Database error: {e}") from e

    # =========================================================================
    # Lookups
    # =========================================================================

    def find_by_email_and_city(self, email: str, city: str) -> Optional[Subscription]:
        with self._lock:
            row = self._execute(
                "SELECT * FROM subscriptions WHERE email = ? AND city = ?",
                (email, city)
            ).fetchone()
        return Subscription.from_row(row) if row else None

    def find_by_token(self, token: str) -> Optional[Subscription]:
        with self._lock:
            row = self._execute(
                "SELECT * FROM subscriptions WHERE token = ?",
                (token,)
            ).fetchone()
        return Subscription.from_row(row) if row else None

    def list_confirmed_by_frequency(self, frequency: Frequency) -> List[Subscription]:
        """Subscribers due for a batch of the given tier."""
        with self._lock:
            rows = self._execute("""
                SELECT * FROM subscriptions
                WHERE confirmed = 1 AND frequency = ?
                ORDER BY id ASC
            """, (Frequency(frequency).value,)).fetchall()
        return [Subscription.from_row(row) for row in rows]

    # =========================================================================
    # State Changes
    # =========================================================================

    def insert(self, email: str, city: str, frequency: Frequency) -> str:
        """
        Insert a pending subscription and return its token.

        Raises:
            DuplicateError: a row for (email, city) already exists
            StorageError: no unique token after TOKEN_INSERT_ATTEMPTS tries
        """
        frequency = Frequency(frequency)
        for attempt in range(1, TOKEN_INSERT_ATTEMPTS + 1):
            token = self._token_factory()
            with self._lock:
                try:
                    self._execute("""
                        INSERT INTO subscriptions
                        (email, city, frequency, confirmed, token, created_at)
                        VALUES (?, ?, ?, 0, ?, ?)
                    """, (email, city, frequency.value, token, datetime.utcnow().isoformat()))
                    return token
                except sqlite3.IntegrityError as e:
                    if "subscriptions.token" in str(e):
                        logger.warning(f"Token collision on insert (attempt {attempt}), retrying")
                        continue
                    if "subscriptions.email" in str(e):
                        raise DuplicateError("Email already subscribed") from e
                    raise StorageError(f"Database error: {e}") from e

        raise StorageError("Could not generate a unique subscription token")

    def confirm(self, token: str) -> bool:
        """Mark the subscription confirmed; True if the token matched a row."""
        with self._lock:
            cursor = self._execute("""
                UPDATE subscriptions
                SET confirmed = 1,
                    confirmed_at = COALESCE(confirmed_at, ?)
                WHERE token = ?
            """, (datetime.utcnow().isoformat(), token))
            return cursor.rowcount > 0

    def delete(self, token: str) -> bool:
        """Remove the subscription; True if the token matched a row."""
        with self._lock:
            cursor = self._execute(
                "DELETE FROM subscriptions WHERE token = ?",
                (token,)
            )
            return cursor.rowcount > 0

    # =========================================================================
    # Status
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """Get counts of subscriptions by state and tier."""
        with self._lock:
            rows = self._execute("""
                SELECT frequency, confirmed, COUNT(*) AS total
                FROM subscriptions
                GROUP BY frequency, confirmed
            """).fetchall()

        summary = {
            "pending": 0,
            "confirmed": 0,
            "confirmed_by_frequency": {f.value: 0 for f in Frequency},
        }
        for row in rows:
            if row["confirmed"]:
                summary["confirmed"] += row["total"]
                summary["confirmed_by_frequency"][row["frequency"]] += row["total"]
            else:
                summary["pending"] += row["total"]
        summary["total"] = summary["pending"] + summary["confirmed"]
        return summary

    def ping(self) -> bool:
        try:
            with self._lock:
                self._execute("SELECT 1").fetchone()
            return True
        except StorageError:
            return False

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
                logger.info("Database connection closed")
