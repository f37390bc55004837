"""
Approval workflow - human review for commands a requester wants whitelisted.

pending -> approved   once APPROVAL_THRESHOLD distinct approvers have voted yes; the
                      transition and the new AUTO_ACCEPT rule commit together
pending -> rejected   on the first reject vote, whatever approvals came before
approved and rejected are terminal.
"""

import sqlite3
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from .config import APPROVAL_THRESHOLD
from .db import get_db, new_id, now, transaction
from .errors import Conflict, NotFound, PermissionDenied, ValidationError
from .notifier import notify_approvers
from .rules import add_rule, exact_match_pattern
from .schema import ApprovalRequest, ApprovalStatus, Identity, Role, Rule, RuleAction, parse_ts
from ..util.logging import logger

REQUEST_COLUMNS = ("r.id, r.user_id, r.command_text, r.status, r.approval_count, r.created_at, "
                   "r.updated_at, r.reviewed_at, r.reviewed_by")


def _row_to_request(row, with_user: bool = False) -> ApprovalRequest:
    request = ApprovalRequest(
        id=row['id'],
        user_id=row['user_id'],
        command_text=row['command_text'],
        status=row['status'],
        approval_count=row['approval_count'],
        created_at=parse_ts(row['created_at']),
        updated_at=parse_ts(row['updated_at']),
        reviewed_at=parse_ts(row['reviewed_at']),
        reviewed_by=row['reviewed_by'],
    )
    if with_user:
        request.username = row['username']
    return request


def _start_thread(fn: Callable, *args) -> None:
    threading.Thread(target=fn, args=args, daemon=True).start()


@dataclass
class ApprovalOutcome:
    """Result of one approve vote."""
    request: ApprovalRequest
    approval_count: int
    threshold: int
    rule: Optional[Rule] = None

    @property
    def approved(self) -> bool:
        return self.request.status == ApprovalStatus.APPROVED


class ApprovalWorkflow:
    """Approval requests backed by the store; no state is held between calls."""

    def __init__(self, threshold: int = APPROVAL_THRESHOLD):
        self.threshold = threshold

    def submit(self, requester: Identity, command_text,
               schedule: Optional[Callable] = None) -> ApprovalRequest:
        """Create a pending request and fan a notification out to approvers.

        The notification is handed to schedule (a background-task runner) after the
        insert commits; it is never awaited and its failures never reach the caller.
        """
        if not command_text or not isinstance(command_text, str):
            raise ValidationError("command_text is required and must be a string")
        if not command_text.strip():
            raise ValidationError("command_text cannot be empty")

        request_id = new_id()
        ts = now()
        with transaction() as conn:
            conn.execute(
                "INSERT INTO approval_requests (id, user_id, command_text, status, "
                "approval_count, created_at, updated_at) VALUES (?, ?, ?, ?, 0, ?, ?)",
                (request_id, requester.user_id, command_text.strip(),
                 ApprovalStatus.PENDING, ts, ts)
            )
            request = self._load(conn, request_id)

        logger.log_approval_request(request.id, requester.username, request.command_text)

        try:
            (schedule or _start_thread)(notify_approvers, request, requester.username)
        except Exception as e:
            logger.error(f"Failed to schedule approval notifications for {request.id}: {e}")

        return request

    def approve(self, request_id: str, approver: Identity) -> ApprovalOutcome:
        """Record one approve vote.

        Raises Conflict when the request is terminal, when this approver already voted,
        or when the threshold is hit but a rule with the same pattern already exists (the
        vote is then rolled back along with everything else).
        """
        self._require_approver(approver)

        with transaction() as conn:
            request = self._load(conn, request_id)
            self._require_pending(request)

            try:
                conn.execute(
                    "INSERT INTO approval_votes (request_id, approver_id, created_at) "
                    "VALUES (?, ?, ?)",
                    (request_id, approver.user_id, now())
                )
            except sqlite3.IntegrityError:
                raise Conflict("You have already voted on this request",
                               {"approvalCount": request.approval_count,
                                "threshold": self.threshold})

            count = request.approval_count + 1
            ts = now()
            rule = None

            if count >= self.threshold:
                try:
                    rule = add_rule(exact_match_pattern(request.command_text),
                                    RuleAction.AUTO_ACCEPT,
                                    request.command_text,
                                    conn=conn, source="approval")
                except Conflict:
                    raise Conflict("A regex rule for this command already exists")

                conn.execute(
                    "UPDATE approval_requests SET status = ?, approval_count = ?, "
                    "reviewed_at = ?, reviewed_by = ?, updated_at = ? "
                    "WHERE id = ? AND status = ?",
                    (ApprovalStatus.APPROVED, count, ts, approver.user_id, ts,
                     request_id, ApprovalStatus.PENDING)
                )
            else:
                conn.execute(
                    "UPDATE approval_requests SET approval_count = ?, updated_at = ? "
                    "WHERE id = ? AND status = ?",
                    (count, ts, request_id, ApprovalStatus.PENDING)
                )

            request = self._load(conn, request_id)

        if rule is not None:
            logger.log_approval_decision(request_id, ApprovalStatus.APPROVED,
                                         approver.username, rule_id=rule.id)
        else:
            logger.log_approval_vote(request_id, approver.username, count, self.threshold)

        return ApprovalOutcome(request=request, approval_count=count,
                               threshold=self.threshold, rule=rule)

    def reject(self, request_id: str, approver: Identity) -> ApprovalRequest:
        """A single reject vote ends the request."""
        self._require_approver(approver)

        with transaction() as conn:
            request = self._load(conn, request_id)
            self._require_pending(request)

            ts = now()
            conn.execute(
                "UPDATE approval_requests SET status = ?, reviewed_at = ?, reviewed_by = ?, "
                "updated_at = ? WHERE id = ? AND status = ?",
                (ApprovalStatus.REJECTED, ts, approver.user_id, ts,
                 request_id, ApprovalStatus.PENDING)
            )
            request = self._load(conn, request_id)

        logger.log_approval_decision(request_id, ApprovalStatus.REJECTED, approver.username)
        return request

    def get_request(self, request_id: str, viewer: Optional[Identity] = None) -> ApprovalRequest:
        """Load one request. A viewer outside the reviewer roles only finds their own."""
        with get_db() as conn:
            request = self._load(conn, request_id)
        if (viewer is not None and viewer.role not in Role.REVIEWERS
                and request.user_id != viewer.user_id):
            raise NotFound("Approval request not found")
        return request

    def list_requests(self, viewer: Identity) -> List[ApprovalRequest]:
        """Admins and approvers see every request; everyone else sees their own."""
        with get_db() as conn:
            if viewer.role in Role.REVIEWERS:
                rows = conn.execute(
                    f"SELECT {REQUEST_COLUMNS}, u.username FROM approval_requests r "
                    "JOIN users u ON u.id = r.user_id "
                    "ORDER BY r.created_at DESC, r.rowid DESC"
                ).fetchall()
                return [_row_to_request(row, with_user=True) for row in rows]

            rows = conn.execute(
                f"SELECT {REQUEST_COLUMNS} FROM approval_requests r WHERE r.user_id = ? "
                "ORDER BY r.created_at DESC, r.rowid DESC",
                (viewer.user_id,)
            ).fetchall()
            return [_row_to_request(row) for row in rows]

    def _load(self, conn: sqlite3.Connection, request_id: str) -> ApprovalRequest:
        row = conn.execute(
            f"SELECT {REQUEST_COLUMNS} FROM approval_requests r WHERE r.id = ?",
            (request_id,)
        ).fetchone()
        if row is None:
            raise NotFound("Approval request not found")
        return _row_to_request(row)

    @staticmethod
    def _require_pending(request: ApprovalRequest) -> None:
        if request.is_terminal:
            raise Conflict(f"Request is already {request.status}", {"status": request.status})

    @staticmethod
    def _require_approver(identity: Identity) -> None:
        if identity.role != Role.APPROVER:
            raise PermissionDenied("Only approvers can access this endpoint")


# Global approval workflow instance
approval_workflow = ApprovalWorkflow()


def submit_request(requester: Identity, command_text: str,
                   schedule: Optional[Callable] = None) -> ApprovalRequest:
    """Create a new approval request."""
    return approval_workflow.submit(requester, command_text, schedule)


def approve_request(request_id: str, approver: Identity) -> ApprovalOutcome:
    """Vote to approve a pending request."""
    return approval_workflow.approve(request_id, approver)


def reject_request(request_id: str, approver: Identity) -> ApprovalRequest:
    """Reject a pending request."""
    return approval_workflow.reject(request_id, approver)


def get_request(request_id: str, viewer: Optional[Identity] = None) -> ApprovalRequest:
    return approval_workflow.get_request(request_id, viewer)


def list_requests(viewer: Identity) -> List[ApprovalRequest]:
    return approval_workflow.list_requests(viewer)
