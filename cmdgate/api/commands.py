"""
Command submission, balance and history endpoints.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from .auth import admin_only, authenticated
from .schemas import BalanceResponse, CommandRequest, CommandResponse
from ..core.audit import list_audit_logs, list_user_history
from ..core.commands import NO_MATCH, execute_command
from ..core.ledger import get_balance
from ..core.schema import Identity

router = APIRouter()


@router.post("/command", response_model=CommandResponse)
def submit_command(body: CommandRequest, identity: Identity = Depends(authenticated)):
    """Evaluate a command against the rule set and charge for it if accepted.

    200 executed, 400 no matching rule, 403 auto-rejected or not enough credits.
    """
    result = execute_command(identity, body.command_text)

    if result.executed:
        return CommandResponse(
            status=result.status,
            command=result.command_text,
            message="Command logged successfully",
            matched_rule=result.matched_rule_dict(),
            credits_deducted=result.credits_deducted,
            new_balance=result.new_balance,
            audit_trail_id=result.audit_trail_id,
        )

    if result.reason == NO_MATCH:
        return JSONResponse(status_code=400, content={
            "status": result.status,
            "command": result.command_text,
            "error": "Command does not match any allowed pattern",
            "message": "The command does not match any regex rule in the system",
        })

    return JSONResponse(status_code=403, content={
        "status": result.status,
        "command": result.command_text,
        "error": "Command rejected by security rule",
        "message": f"Command matches a rejected pattern: {result.matched_rule.pattern}",
        "matched_rule": result.matched_rule_dict(),
    })


@router.get("/get-credit-balance", response_model=BalanceResponse)
def credit_balance(identity: Identity = Depends(authenticated)):
    username, credits = get_balance(identity.user_id)
    return BalanceResponse(username=username, credits=credits)


@router.get("/command-history")
def command_history(identity: Identity = Depends(authenticated)):
    """The caller's last executed commands, newest first."""
    history = [entry.to_dict() for entry in list_user_history(identity.user_id)]
    return {"history": history, "count": len(history)}


@router.get("/audit-logs")
def audit_logs(identity: Identity = Depends(admin_only)):
    logs = [entry.to_dict() for entry in list_audit_logs()]
    return {"logs": logs, "count": len(logs)}
