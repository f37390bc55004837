"""
Append-only audit trail of executed commands.
Entries are written in the same unit of work as the credit charge they document and are
never updated or deleted here.
"""

import sqlite3
from typing import List

from .config import AUDIT_LOG_LIMIT, HISTORY_LIMIT
from .db import get_db, new_id, now
from .schema import AuditEntry, parse_ts

AUDIT_COLUMNS = ("a.id, a.user_id, a.command_text, a.credits_deducted, a.credits_before, "
                 "a.credits_after, a.created_at")


def _row_to_entry(row, with_user: bool = False) -> AuditEntry:
    entry = AuditEntry(
        id=row['id'],
        user_id=row['user_id'],
        command_text=row['command_text'],
        credits_deducted=row['credits_deducted'],
        credits_before=row['credits_before'],
        credits_after=row['credits_after'],
        created_at=parse_ts(row['created_at']),
    )
    if with_user:
        entry.username = row['username']
        entry.role = row['role']
    return entry


class AuditRecorder:

    def append(self, conn: sqlite3.Connection, user_id: str, command_text: str,
               before: int, after: int, deducted: int) -> AuditEntry:
        """Record one executed command on the caller's connection."""
        entry = AuditEntry(
            id=new_id(),
            user_id=user_id,
            command_text=command_text,
            credits_deducted=deducted,
            credits_before=before,
            credits_after=after,
            created_at=parse_ts(now()),
        )
        conn.execute(
            "INSERT INTO audit_log (id, user_id, command_text, credits_deducted, "
            "credits_before, credits_after, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (entry.id, entry.user_id, entry.command_text, entry.credits_deducted,
             entry.credits_before, entry.credits_after, entry.created_at.isoformat())
        )
        return entry

    def user_history(self, user_id: str, limit: int = HISTORY_LIMIT) -> List[AuditEntry]:
        """Most recent entries for one user, newest first."""
        with get_db() as conn:
            rows = conn.execute(
                f"SELECT {AUDIT_COLUMNS} FROM audit_log a WHERE a.user_id = ? "
                "ORDER BY a.created_at DESC, a.rowid DESC LIMIT ?",
                (user_id, limit)
            ).fetchall()
        return [_row_to_entry(row) for row in rows]

    def all_entries(self, limit: int = AUDIT_LOG_LIMIT) -> List[AuditEntry]:
        """Most recent entries across all users with the requester attached."""
        with get_db() as conn:
            rows = conn.execute(
                f"SELECT {AUDIT_COLUMNS}, u.username, u.role FROM audit_log a "
                "JOIN users u ON u.id = a.user_id "
                "ORDER BY a.created_at DESC, a.rowid DESC LIMIT ?",
                (limit,)
            ).fetchall()
        return [_row_to_entry(row, with_user=True) for row in rows]


audit_recorder = AuditRecorder()


def list_user_history(user_id: str, limit: int = HISTORY_LIMIT) -> List[AuditEntry]:
    return audit_recorder.user_history(user_id, min(limit, HISTORY_LIMIT))


def list_audit_logs(limit: int = AUDIT_LOG_LIMIT) -> List[AuditEntry]:
    return audit_recorder.all_entries(min(limit, AUDIT_LOG_LIMIT))
