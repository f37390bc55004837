"""
SQLite store for the command gateway.
All durable state lives here; multi-step mutations go through transaction().
"""

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Generator

from .config import DB_BUSY_TIMEOUT_SEC, ensure_db_directory, get_db_path
from .errors import Conflict, InternalError
from ..util.logging import logger


def now() -> str:
    """Timestamp in the stored (ISO) format."""
    return datetime.now().isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection in autocommit mode.

    Store failures that escape the caller leave as Conflict (a constraint the caller did
    not handle) or InternalError; the sqlite3 detail only goes to the log.
    """
    try:
        conn = sqlite3.connect(get_db_path(), timeout=DB_BUSY_TIMEOUT_SEC, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
    except sqlite3.Error as e:
        logger.error(f"Database unavailable: {e}", exc_info=True)
        raise InternalError("Database unavailable") from e
    try:
        yield conn
    except sqlite3.IntegrityError as e:
        logger.warning(f"Unhandled constraint violation: {e}")
        raise Conflict("Conflicting write") from e
    except sqlite3.Error as e:
        logger.error(f"Database error: {e}", exc_info=True)
        raise InternalError("Database error") from e
    finally:
        conn.close()


@contextmanager
def transaction() -> Generator[sqlite3.Connection, None, None]:
    """One unit of work.

    BEGIN IMMEDIATE takes the write lock before the first read, so every read that feeds
    a decision sees the same state the dependent write lands on. Any exception rolls the
    whole unit back.
    """
    with get_db() as conn:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        else:
            conn.execute("COMMIT")


def init_db():
    """Initialize the database with required tables."""
    ensure_db_directory()
    with get_db() as conn:
        conn.execute("PRAGMA journal_mode = WAL")
        conn.executescript('''
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                username TEXT NOT NULL UNIQUE,
                email TEXT UNIQUE,
                role TEXT NOT NULL DEFAULT 'member'
                    CHECK (role IN ('admin', 'approver', 'member', 'lead', 'junior')),
                credits INTEGER NOT NULL DEFAULT 100 CHECK (credits >= 0),
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS api_keys (
                id TEXT PRIMARY KEY,
                key TEXT NOT NULL UNIQUE,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                created_at TEXT NOT NULL,
                last_used TEXT
            );

            -- id is the matching sequence: lower id wins
            CREATE TABLE IF NOT EXISTS rules (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                pattern TEXT NOT NULL UNIQUE,
                action TEXT NOT NULL CHECK (action IN ('AUTO_ACCEPT', 'AUTO_REJECT')),
                example_match TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS approval_requests (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                command_text TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'approved', 'rejected')),
                approval_count INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                reviewed_at TEXT,
                reviewed_by TEXT
            );

            CREATE TABLE IF NOT EXISTS approval_votes (
                request_id TEXT NOT NULL REFERENCES approval_requests(id) ON DELETE CASCADE,
                approver_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                created_at TEXT NOT NULL,
                PRIMARY KEY (request_id, approver_id)
            );

            CREATE TABLE IF NOT EXISTS audit_log (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                command_text TEXT NOT NULL,
                credits_deducted INTEGER NOT NULL,
                credits_before INTEGER NOT NULL,
                credits_after INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                CHECK (credits_after = credits_before - credits_deducted)
            );

            CREATE INDEX IF NOT EXISTS idx_audit_user_created ON audit_log(user_id, created_at DESC);
            CREATE INDEX IF NOT EXISTS idx_audit_created ON audit_log(created_at DESC);
            CREATE INDEX IF NOT EXISTS idx_approval_user_created ON approval_requests(user_id, created_at DESC);
        ''')


def health_check() -> bool:
    """Check database health."""
    try:
        with get_db() as conn:
            rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
            table_names = {row[0] for row in rows}
            required_tables = {'users', 'api_keys', 'rules', 'approval_requests',
                               'approval_votes', 'audit_log'}
            return required_tables.issubset(table_names)
    except InternalError:
        return False
