"""
Direct command execution.
Match -> (reject | charge + audit). The rule read, the balance check, the decrement and
the audit append all happen in one unit of work.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from .audit import audit_recorder
from .config import COMMAND_COST
from .db import transaction
from .errors import ValidationError
from .ledger import credit_ledger
from .rules import rule_matcher
from .schema import Identity, Rule, RuleAction
from ..util.logging import logger

EXECUTED = "executed"
REJECTED = "rejected"

# Why a command was rejected
NO_MATCH = "no_match"
AUTO_REJECTED = "auto_reject"


@dataclass
class CommandResult:
    status: str
    command_text: str
    matched_rule: Optional[Rule] = None
    reason: Optional[str] = None
    credits_deducted: Optional[int] = None
    new_balance: Optional[int] = None
    audit_trail_id: Optional[str] = None

    @property
    def executed(self) -> bool:
        return self.status == EXECUTED

    def matched_rule_dict(self) -> Optional[Dict]:
        if self.matched_rule is None:
            return None
        return {"id": self.matched_rule.id, "pattern": self.matched_rule.pattern,
                "action": self.matched_rule.action}


def validate_command_text(command_text) -> str:
    if not command_text or not isinstance(command_text, str):
        raise ValidationError("command_text is required and must be a string")
    return command_text


def execute_command(identity: Identity, command_text: str) -> CommandResult:
    """Evaluate a command and, when it is auto-accepted, charge for it.

    Returns a rejected result for no match (deny-by-default) or an AUTO_REJECT match.
    Raises InsufficientCredits, leaving balance and audit trail untouched.
    """
    command_text = validate_command_text(command_text)
    logger.info(f"Command received from {identity.username} ({identity.role})")

    with transaction() as conn:
        rule = rule_matcher.evaluate(command_text, conn)

        if rule is None:
            logger.log_command_decision(identity.username, command_text, REJECTED,
                                        details={"reason": NO_MATCH})
            return CommandResult(status=REJECTED, command_text=command_text, reason=NO_MATCH)

        if rule.action == RuleAction.AUTO_REJECT:
            logger.log_command_decision(identity.username, command_text, REJECTED,
                                        rule_id=rule.id, details={"reason": AUTO_REJECTED})
            return CommandResult(status=REJECTED, command_text=command_text,
                                 matched_rule=rule, reason=AUTO_REJECTED)

        before, after = credit_ledger.charge(conn, identity.user_id, COMMAND_COST)
        entry = audit_recorder.append(conn, identity.user_id, command_text,
                                      before, after, COMMAND_COST)

    logger.log_credit_charge(identity.user_id, COMMAND_COST, before, after, entry.id)
    logger.log_command_decision(identity.username, command_text, EXECUTED, rule_id=rule.id)

    return CommandResult(
        status=EXECUTED,
        command_text=command_text,
        matched_rule=rule,
        credits_deducted=COMMAND_COST,
        new_balance=after,
        audit_trail_id=entry.id,
    )
