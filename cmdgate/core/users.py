"""
User accounts and API-key credentials.
Keys are opaque `sk_` tokens owned by exactly one user; resolving one touches last_used.
"""

import re
import secrets
import sqlite3
from typing import List, Optional, Tuple

from .config import API_KEY_PREFIX, INITIAL_CREDITS, MIN_USERNAME_LENGTH
from .db import get_db, new_id, now, transaction
from .errors import AuthError, Conflict, NotFound, ValidationError
from .schema import Identity, Role, User, parse_ts

USER_COLUMNS = "id, username, email, role, credits, created_at, updated_at"
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _row_to_user(row) -> User:
    return User(
        id=row['id'],
        username=row['username'],
        email=row['email'],
        role=row['role'],
        credits=row['credits'],
        created_at=parse_ts(row['created_at']),
        updated_at=parse_ts(row['updated_at']),
    )


def generate_api_key() -> str:
    return f"{API_KEY_PREFIX}{secrets.token_hex(32)}"


def validate_new_user(username, email) -> None:
    if not username or not isinstance(username, str):
        raise ValidationError("username is required and must be a string")
    if not email or not isinstance(email, str):
        raise ValidationError("email is required and must be a string")
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email format")
    if len(username) < MIN_USERNAME_LENGTH:
        raise ValidationError(f"Username must be at least {MIN_USERNAME_LENGTH} characters long")


def create_user(username: str, email: str, role: Optional[str] = None,
                credits: int = INITIAL_CREDITS) -> Tuple[User, str]:
    """Create a user and its first API key; returns (user, plaintext key).

    Unknown roles fall back to member.
    """
    validate_new_user(username, email)
    user_role = role if role in Role.ALL else Role.MEMBER
    api_key = generate_api_key()

    with transaction() as conn:
        if conn.execute("SELECT 1 FROM users WHERE username = ?", (username,)).fetchone():
            raise Conflict("Username already exists")
        if conn.execute("SELECT 1 FROM users WHERE email = ?", (email,)).fetchone():
            raise Conflict("Email already exists")

        user_id = new_id()
        ts = now()
        try:
            conn.execute(
                "INSERT INTO users (id, username, email, role, credits, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (user_id, username, email, user_role, credits, ts, ts)
            )
            conn.execute(
                "INSERT INTO api_keys (id, key, user_id, created_at) VALUES (?, ?, ?, ?)",
                (new_id(), api_key, user_id, ts)
            )
        except sqlite3.IntegrityError:
            raise Conflict("Username or email already exists")

        user = _row_to_user(conn.execute(
            f"SELECT {USER_COLUMNS} FROM users WHERE id = ?", (user_id,)).fetchone())

    return user, api_key


def get_user(user_id: str) -> User:
    with get_db() as conn:
        row = conn.execute(f"SELECT {USER_COLUMNS} FROM users WHERE id = ?", (user_id,)).fetchone()
    if not row:
        raise NotFound("User not found")
    return _row_to_user(row)


def list_users() -> List[User]:
    with get_db() as conn:
        rows = conn.execute(
            f"SELECT {USER_COLUMNS} FROM users ORDER BY created_at DESC, rowid DESC").fetchall()
    return [_row_to_user(row) for row in rows]


def set_credits(user_id: str, credits: int) -> User:
    """Administrative balance override."""
    if isinstance(credits, bool) or not isinstance(credits, int) or credits < 0:
        raise ValidationError("credits must be a non-negative number")

    with transaction() as conn:
        cursor = conn.execute("UPDATE users SET credits = ?, updated_at = ? WHERE id = ?",
                              (credits, now(), user_id))
        if cursor.rowcount == 0:
            raise NotFound("User not found")
        row = conn.execute(f"SELECT {USER_COLUMNS} FROM users WHERE id = ?", (user_id,)).fetchone()

    return _row_to_user(row)


def delete_user(user_id: str) -> None:
    """Remove a user; their keys, requests and audit entries go with them."""
    with transaction() as conn:
        cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
        if cursor.rowcount == 0:
            raise NotFound("User not found")


def resolve_api_key(api_key: Optional[str]) -> Tuple[Identity, User]:
    """Resolve a credential to the identity behind it and stamp its last use."""
    if not api_key:
        raise AuthError("API key is required. Please provide it in the X-API-Key header.")

    with transaction() as conn:
        row = conn.execute(
            "SELECT k.id AS key_id, u.id, u.username, u.email, u.role, u.credits, "
            "u.created_at, u.updated_at FROM api_keys k JOIN users u ON u.id = k.user_id WHERE k.key = ?",
            (api_key,)
        ).fetchone()
        if row is None:
            raise AuthError("Invalid API key")

        conn.execute("UPDATE api_keys SET last_used = ? WHERE id = ?", (now(), row['key_id']))

    user = _row_to_user(row)
    return Identity(user_id=user.id, username=user.username, role=user.role), user


def list_approver_emails() -> List[str]:
    """Email addresses of every user holding the approver role."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT email FROM users WHERE role = ? AND email IS NOT NULL AND email != ''",
            (Role.APPROVER,)
        ).fetchall()
    return [row['email'] for row in rows]
