"""
Record types passed between the store and the API layer.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Dict, Optional


class Role:
    ADMIN = "admin"
    APPROVER = "approver"
    MEMBER = "member"
    LEAD = "lead"
    JUNIOR = "junior"

    ALL = (ADMIN, APPROVER, MEMBER, LEAD, JUNIOR)
    # lead and junior have member rights everywhere
    REVIEWERS = (ADMIN, APPROVER)


class RuleAction:
    AUTO_ACCEPT = "AUTO_ACCEPT"
    AUTO_REJECT = "AUTO_REJECT"

    ALL = (AUTO_ACCEPT, AUTO_REJECT)


class ApprovalStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    TERMINAL = (APPROVED, REJECTED)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_ts(value) -> Optional[datetime]:
    """Timestamps are stored as ISO strings."""
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class User:
    id: str
    username: str
    email: Optional[str]
    role: str
    credits: int
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['created_at'] = _iso(self.created_at)
        data['updated_at'] = _iso(self.updated_at)
        return data


@dataclass
class Identity:
    """What a resolved credential tells the rest of the system."""
    user_id: str
    username: str
    role: str


@dataclass
class Rule:
    id: int  # monotonic; ascending id is matching priority
    pattern: str
    action: str
    example_match: Optional[str]
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'pattern': self.pattern,
            'action': self.action,
            'exampleMatch': self.example_match,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


@dataclass
class ApprovalRequest:
    id: str
    user_id: str
    command_text: str
    status: str
    approval_count: int
    created_at: datetime
    updated_at: datetime
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    username: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ApprovalStatus.TERMINAL

    def to_dict(self) -> Dict:
        data = {
            'id': self.id,
            'userId': self.user_id,
            'commandText': self.command_text,
            'status': self.status,
            'approvalCount': self.approval_count,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
            'reviewedAt': _iso(self.reviewed_at),
            'reviewedBy': self.reviewed_by,
        }
        if self.username is not None:
            data['user'] = {'id': self.user_id, 'username': self.username}
        return data


@dataclass
class AuditEntry:
    id: str
    user_id: str
    command_text: str
    credits_deducted: int
    credits_before: int
    credits_after: int
    created_at: datetime
    username: Optional[str] = None
    role: Optional[str] = None

    def to_dict(self) -> Dict:
        data = {
            'id': self.id,
            'userId': self.user_id,
            'commandText': self.command_text,
            'creditsDeducted': self.credits_deducted,
            'creditsBefore': self.credits_before,
            'creditsAfter': self.credits_after,
            'createdAt': _iso(self.created_at),
        }
        if self.username is not None:
            data['user'] = {'id': self.user_id, 'username': self.username, 'role': self.role}
        return data
