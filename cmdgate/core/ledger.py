"""
Credit ledger.
charge() only ever runs inside a caller's unit of work, next to the audit append that
documents it; it never commits on its own.
"""

import sqlite3
from typing import Tuple

from .db import get_db, now
from .errors import InsufficientCredits, NotFound, ValidationError


class CreditLedger:
    """Checks and decrements balances."""

    def charge(self, conn: sqlite3.Connection, user_id: str, amount: int) -> Tuple[int, int]:
        """Deduct amount from the user's balance; returns (before, after).

        The balance is read on conn, so inside transaction() the check and the decrement
        cannot be interleaved with another writer.
        """
        if amount <= 0:
            raise ValidationError("charge amount must be positive")

        row = conn.execute("SELECT credits FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            raise NotFound("User not found")

        before = row['credits']
        if before < amount:
            raise InsufficientCredits(current_balance=before, required=amount)

        cursor = conn.execute(
            "UPDATE users SET credits = credits - ?, updated_at = ? WHERE id = ? AND credits >= ?",
            (amount, now(), user_id, amount)
        )
        if cursor.rowcount != 1:
            # Only reachable if the caller did not hold the write lock
            raise InsufficientCredits(current_balance=before, required=amount)

        return before, before - amount

    def balance(self, user_id: str) -> Tuple[str, int]:
        """Current (username, credits) for a user."""
        with get_db() as conn:
            row = conn.execute("SELECT username, credits FROM users WHERE id = ?",
                               (user_id,)).fetchone()
        if row is None:
            raise NotFound("User not found")
        return row['username'], row['credits']


credit_ledger = CreditLedger()


def charge(conn: sqlite3.Connection, user_id: str, amount: int) -> Tuple[int, int]:
    return credit_ledger.charge(conn, user_id, amount)


def get_balance(user_id: str) -> Tuple[str, int]:
    return credit_ledger.balance(user_id)
