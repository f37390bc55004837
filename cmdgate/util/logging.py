"""
Structured operation logging for the command gateway.
Every decision that touches credits, rules or approval state gets one log line.
"""

import logging
from typing import Any, Dict, Optional

from ..core.config import LOG_LEVEL

COMMAND_PREVIEW_LEN = 80


def _preview(text: Optional[str], limit: int = COMMAND_PREVIEW_LEN) -> str:
    if text is None:
        return ""
    return text[:limit - 3] + "..." if len(text) > limit else text


class StructuredLogger:
    """Structured logger for gateway operations."""

    def __init__(self, name: str = "cmdgate"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None,
                      level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_command_decision(self, username: str, command_text: str, decision: str,
                             rule_id: Optional[int] = None, details: Dict[str, Any] = None):
        """Log how a submitted command was disposed of."""
        log_details = {"user": username, "command": _preview(command_text)}
        if rule_id is not None:
            log_details["rule_id"] = rule_id
        if details:
            log_details.update(details)

        self.log_operation("command.evaluate", decision, log_details)

    def log_credit_charge(self, user_id: str, amount: int, before: int, after: int,
                          audit_id: str):
        """Log a committed charge together with the audit record documenting it."""
        self.log_operation("ledger.charge", "committed", {
            "user_id": user_id,
            "amount": amount,
            "before": before,
            "after": after,
            "audit_id": audit_id,
        })

    def log_rule_change(self, operation: str, rule_id: int, pattern: str, action: str = None,
                        source: str = "admin"):
        """Log rule creation, update or deletion."""
        log_details = {"rule_id": rule_id, "pattern": _preview(pattern), "source": source}
        if action:
            log_details["action"] = action

        self.log_operation(f"rules.{operation}", "success", log_details)

    def log_approval_request(self, request_id: str, requester: str, command_text: str):
        """Log approval request creation."""
        self.log_operation("approval.request_created", "pending", {
            "request_id": request_id,
            "requester": requester,
            "command": _preview(command_text),
        })

    def log_approval_vote(self, request_id: str, approver: str, count: int, threshold: int):
        """Log an approve vote that did not reach the threshold."""
        self.log_operation("approval.vote", "pending", {
            "request_id": request_id,
            "approver": approver,
            "count": f"{count}/{threshold}",
        })

    def log_approval_decision(self, request_id: str, decision: str, approver: str,
                              rule_id: Optional[int] = None):
        """Log a terminal approval decision."""
        log_details = {"request_id": request_id, "decision": decision, "approver": approver}
        if rule_id is not None:
            log_details["rule_id"] = rule_id

        self.log_operation("approval.decision", decision, log_details)

    def log_notification(self, request_id: str, recipient: str, status: str, error: str = None):
        """Log an approver notification attempt."""
        log_details = {"request_id": request_id, "recipient": recipient}
        if error:
            log_details["error"] = error[:200]
            self.log_operation("notify.approval_request", status, log_details, level=logging.WARNING)
        else:
            self.log_operation("notify.approval_request", status, log_details)

    def log_auth_failure(self, reason: str, path: str = None, username: str = None):
        """Log a rejected credential or role check. Never includes the key itself."""
        log_details = {"reason": reason}
        if path:
            log_details["path"] = path
        if username:
            log_details["user"] = username

        self.log_operation("auth.check", "denied", log_details, level=logging.WARNING)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str, exc_info: bool = False) -> None:
        """Log an error message."""
        self.logger.error(message, exc_info=exc_info)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()
