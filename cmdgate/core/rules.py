"""
Rule store and matcher.
Rules are evaluated oldest first; the first pattern that matches decides the command.
Stored patterns are untrusted: one that fails to compile is skipped, never fatal.
"""

import re
import sqlite3
from typing import List, Optional

from .db import get_db, now, transaction
from .errors import Conflict, NotFound, ValidationError
from .schema import Rule, RuleAction, parse_ts
from ..util.logging import logger

RULE_COLUMNS = "id, pattern, action, example_match, created_at, updated_at"


def _row_to_rule(row) -> Rule:
    return Rule(
        id=row['id'],
        pattern=row['pattern'],
        action=row['action'],
        example_match=row['example_match'],
        created_at=parse_ts(row['created_at']),
        updated_at=parse_ts(row['updated_at']),
    )


def compile_pattern(pattern: str) -> Optional[re.Pattern]:
    """Compile a stored pattern, or None if it is not a valid regular expression."""
    try:
        return re.compile(pattern)
    except (re.error, TypeError, OverflowError):
        return None


def exact_match_pattern(command_text: str) -> str:
    """Pattern that matches exactly this text and nothing else."""
    return f"^{re.escape(command_text)}\\Z"


def validate_rule(pattern, action):
    """Reject input before any transaction opens."""
    if not pattern or not isinstance(pattern, str):
        raise ValidationError("pattern is required and must be a string")
    if not action or not isinstance(action, str):
        raise ValidationError("action is required and must be a string")
    if action not in RuleAction.ALL:
        raise ValidationError("action must be either 'AUTO_REJECT' or 'AUTO_ACCEPT'")
    if compile_pattern(pattern) is None:
        raise ValidationError("The provided pattern is not a valid regular expression",
                              {"pattern": pattern})


class RuleMatcher:
    """First-match-wins evaluation over the rule set in sequence order."""

    def evaluate(self, command_text: str, conn: sqlite3.Connection = None) -> Optional[Rule]:
        """Return the oldest rule whose pattern matches command_text, or None.

        Pass conn to read the rule set inside a caller's unit of work.
        """
        if conn is None:
            with get_db() as own_conn:
                return self._scan(own_conn, command_text)
        return self._scan(conn, command_text)

    def _scan(self, conn: sqlite3.Connection, command_text: str) -> Optional[Rule]:
        rows = conn.execute(f"SELECT {RULE_COLUMNS} FROM rules ORDER BY id ASC").fetchall()
        for row in rows:
            compiled = compile_pattern(row['pattern'])
            if compiled is None:
                logger.warning(f"Invalid regex pattern in rule {row['id']}: {row['pattern']}")
                continue
            if compiled.search(command_text):
                return _row_to_rule(row)
        return None


rule_matcher = RuleMatcher()


def evaluate(command_text: str, conn: sqlite3.Connection = None) -> Optional[Rule]:
    """Match a command against the current rule set."""
    return rule_matcher.evaluate(command_text, conn)


def _insert_rule(conn: sqlite3.Connection, pattern: str, action: str,
                 example_match: Optional[str], source: str) -> Rule:
    existing = conn.execute("SELECT id FROM rules WHERE pattern = ?", (pattern,)).fetchone()
    if existing:
        raise Conflict("A rule with this pattern already exists", {"pattern": pattern})

    ts = now()
    try:
        cursor = conn.execute(
            "INSERT INTO rules (pattern, action, example_match, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (pattern, action, example_match or None, ts, ts)
        )
    except sqlite3.IntegrityError:
        raise Conflict("A rule with this pattern already exists", {"pattern": pattern})

    rule = _row_to_rule(conn.execute(
        f"SELECT {RULE_COLUMNS} FROM rules WHERE id = ?", (cursor.lastrowid,)).fetchone())
    logger.log_rule_change("created", rule.id, rule.pattern, rule.action, source=source)
    return rule


def add_rule(pattern: str, action: str, example_match: Optional[str] = None,
             conn: sqlite3.Connection = None, source: str = "admin") -> Rule:
    """Add a rule at the end of the matching order.

    Raises ValidationError for a bad pattern/action and Conflict for a duplicate pattern.
    """
    validate_rule(pattern, action)
    if conn is None:
        with transaction() as own_conn:
            return _insert_rule(own_conn, pattern, action, example_match, source)
    return _insert_rule(conn, pattern, action, example_match, source)


def get_rule(rule_id: int) -> Rule:
    with get_db() as conn:
        row = conn.execute(f"SELECT {RULE_COLUMNS} FROM rules WHERE id = ?", (rule_id,)).fetchone()
    if not row:
        raise NotFound("Regex rule not found")
    return _row_to_rule(row)


def list_rules() -> List[Rule]:
    """All rules, newest first (admin view)."""
    with get_db() as conn:
        rows = conn.execute(f"SELECT {RULE_COLUMNS} FROM rules ORDER BY id DESC").fetchall()
    return [_row_to_rule(row) for row in rows]


def update_rule(rule_id: int, pattern: str, action: str,
                example_match: Optional[str] = None) -> Rule:
    """Replace a rule's pattern, action and example. Its matching position is kept."""
    validate_rule(pattern, action)
    with transaction() as conn:
        if not conn.execute("SELECT id FROM rules WHERE id = ?", (rule_id,)).fetchone():
            raise NotFound("Regex rule not found")

        owner = conn.execute("SELECT id FROM rules WHERE pattern = ?", (pattern,)).fetchone()
        if owner and owner['id'] != rule_id:
            raise Conflict("A rule with this pattern already exists", {"pattern": pattern})

        try:
            conn.execute(
                "UPDATE rules SET pattern = ?, action = ?, example_match = ?, updated_at = ? "
                "WHERE id = ?",
                (pattern, action, example_match or None, now(), rule_id)
            )
        except sqlite3.IntegrityError:
            raise Conflict("A rule with this pattern already exists", {"pattern": pattern})

        rule = _row_to_rule(conn.execute(
            f"SELECT {RULE_COLUMNS} FROM rules WHERE id = ?", (rule_id,)).fetchone())

    logger.log_rule_change("updated", rule.id, rule.pattern, rule.action)
    return rule


def delete_rule(rule_id: int) -> None:
    with transaction() as conn:
        row = conn.execute("SELECT pattern FROM rules WHERE id = ?", (rule_id,)).fetchone()
        if not row:
            raise NotFound("Regex rule not found")
        conn.execute("DELETE FROM rules WHERE id = ?", (rule_id,))

    logger.log_rule_change("deleted", rule_id, row['pattern'])


DEFAULT_RULES = [
    (":(){ :|:& };:", RuleAction.AUTO_REJECT, ":(){ :|:& };: (fork bomb)"),
    (r"rm\s+-rf\s+/", RuleAction.AUTO_REJECT, "rm -rf /"),
    (r"mkfs\.", RuleAction.AUTO_REJECT, "mkfs.ext4 /dev/sda"),
    (r"git\s+(status|log|diff)", RuleAction.AUTO_ACCEPT, "git status, git log"),
    (r"^(ls|cat|pwd|echo)", RuleAction.AUTO_ACCEPT, "ls -la, cat file.txt"),
]


def seed_default_rules() -> int:
    """Insert the default rule set, skipping patterns that already exist."""
    added = 0
    for pattern, action, example in DEFAULT_RULES:
        try:
            add_rule(pattern, action, example, source="seed")
            added += 1
        except Conflict:
            continue
    return added
