"""
Approval request endpoints.
Notification runs as a background task after the response is built, so it can neither
delay nor fail the submission.
"""

from fastapi import APIRouter, BackgroundTasks, Depends

from .auth import approver_only, authenticated
from .schemas import ApprovalCreateRequest
from ..core.approval import (
    approve_request,
    get_request,
    list_requests,
    reject_request,
    submit_request,
)
from ..core.schema import Identity

router = APIRouter()


@router.post("/approval-request", status_code=201)
def create_approval_request(body: ApprovalCreateRequest, background_tasks: BackgroundTasks,
                            identity: Identity = Depends(authenticated)):
    request = submit_request(identity, body.command_text, schedule=background_tasks.add_task)
    return {
        "message": "Approval request submitted successfully",
        "request": {
            "id": request.id,
            "commandText": request.command_text,
            "status": request.status,
            "approvalCount": request.approval_count,
            "createdAt": request.created_at.isoformat(),
        },
    }


@router.get("/approval-requests")
def get_approval_requests(identity: Identity = Depends(authenticated)):
    requests = [request.to_dict() for request in list_requests(identity)]
    return {"requests": requests, "count": len(requests)}


@router.get("/approval-requests/{request_id}")
def get_approval_request(request_id: str, identity: Identity = Depends(authenticated)):
    return {"request": get_request(request_id, identity).to_dict()}


@router.post("/approval-requests/{request_id}/approve")
def approve_approval_request(request_id: str, identity: Identity = Depends(approver_only)):
    outcome = approve_request(request_id, identity)

    if outcome.approved:
        message = "Approval request approved and regex rule created"
    else:
        message = (f"Approval recorded ({outcome.approval_count}/{outcome.threshold}); "
                   "waiting for more approvers")

    body = {
        "message": message,
        "request": outcome.request.to_dict(),
        "approvalCount": outcome.approval_count,
        "threshold": outcome.threshold,
    }
    if outcome.rule is not None:
        body["rule"] = {"id": outcome.rule.id, "pattern": outcome.rule.pattern,
                        "action": outcome.rule.action}
    return body


@router.post("/approval-requests/{request_id}/reject")
def reject_approval_request(request_id: str, identity: Identity = Depends(approver_only)):
    request = reject_request(request_id, identity)
    return {"message": "Approval request rejected", "request": request.to_dict()}
