"""
routes/withdrawals.py  –  Merchant and driver withdrawal requests

Approving pays the amount out of the wallet on Tookan before the request
is marked approved; a failed payout leaves it pending.
"""

import logging
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional
from database import get_db
from schemas import SubjectType, WithdrawalStatus
from services.withdrawals import pending_total
from utils.audit import record_audit
from utils.dependencies import Actor, get_actor, get_withdrawal_gate, require_permission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/withdrawals", tags=["Withdrawals"])


class RejectRequest(BaseModel):
    reason: Optional[str] = None


@router.get("")
async def list_withdrawals(
    status: Optional[WithdrawalStatus] = Query(None),
    subject_type: Optional[SubjectType] = Query(None),
    actor: Actor = Depends(require_permission("manage_wallets")),
    gate=Depends(get_withdrawal_gate),
):
    requests = await gate.list_requests()
    if status is not None:
        requests = [r for r in requests if r.status == status]
    if subject_type is not None:
        requests = [r for r in requests if r.subject_type == subject_type]
    return {
        "success": True,
        "message": "Withdrawal requests retrieved successfully",
        "data": requests,
        "count": len(requests),
    }


@router.get("/pending-total")
async def get_pending_total(
    subject_type: SubjectType = Query(...),
    subject_id: str = Query(...),
    actor: Actor = Depends(get_actor),
    gate=Depends(get_withdrawal_gate),
):
    requests = await gate.list_requests()
    return {
        "success": True,
        "message": "Pending withdrawal total",
        "data": {
            "subject_type": subject_type,
            "subject_id": subject_id,
            "pending_total": pending_total(subject_type, subject_id, requests),
        },
    }


@router.post("/{request_id}/approve")
async def approve_withdrawal(
    request_id: str,
    actor: Actor = Depends(require_permission("manage_wallets")),
    gate=Depends(get_withdrawal_gate),
    db: Session = Depends(get_db),
):
    result = await gate.approve(request_id, actor=actor)
    logger.info(f"✅ Withdrawal {request_id} approved by {actor.email or actor.user_id}")
    record_audit(db, actor, "withdrawal_approve", "withdrawal_request", request_id,
                 old_value={"status": "pending"}, new_value={"status": "approved"})
    return {
        "success": True,
        "message": result["message"],
        "data": result["requests"],
    }


@router.post("/{request_id}/reject")
async def reject_withdrawal(
    request_id: str,
    request: RejectRequest,
    actor: Actor = Depends(require_permission("manage_wallets")),
    gate=Depends(get_withdrawal_gate),
    db: Session = Depends(get_db),
):
    result = await gate.reject(request_id, reason=request.reason, actor=actor)
    logger.info(f"🚫 Withdrawal {request_id} rejected by {actor.email or actor.user_id}")
    record_audit(db, actor, "withdrawal_reject", "withdrawal_request", request_id,
                 old_value={"status": "pending"},
                 new_value={"status": "rejected", "reason": request.reason})
    return {
        "success": True,
        "message": result["message"],
        "data": result["requests"],
    }
