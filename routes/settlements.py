"""
routes/settlements.py  –  Recording COD payments from drivers

POST /settlements       one amount for a driver (calendar view)
POST /settlements/day   one day's task list, settled as a single amount
GET  /settlements       local settlement history

A settlement that reaches the hosted database marks the covered days as
settled in the operator's ledger overlay and clears their overrides.
"""

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from datetime import date
from decimal import Decimal
from typing import List, Optional
from database import get_db
from models.settlement_log import SettlementLog
from schemas import TaskPaymentEntry
from services.overrides import query_key
from services.settlement import SettlementResult, apply_payment_edit
from utils.dependencies import (
    Actor,
    get_override_cache,
    get_settlement_recorder,
    require_permission,
)
from utils.responses import error_response

router = APIRouter(prefix="/settlements", tags=["Settlements"])


# Schemas
class SettlementRequest(BaseModel):
    fleet_id: int
    amount_paid: Decimal
    reference_total: Optional[Decimal] = None
    driver_name: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    days: List[date] = Field(default_factory=list)


class DaySettlementRequest(BaseModel):
    fleet_id: int
    day: date
    tasks: List[TaskPaymentEntry]
    reference_total: Optional[Decimal] = None
    driver_name: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


def _failed(result: SettlementResult):
    code = status.HTTP_404_NOT_FOUND if result.error_type == "not_found" else status.HTTP_503_SERVICE_UNAVAILABLE
    return error_response(
        message=result.message,
        status_code=code,
        error_type=result.error_type,
        errors={"retryable": result.retryable} if result.retryable else None,
    )


def _result_data(result: SettlementResult) -> dict:
    return {
        "settlement_id": result.settlement_id,
        "fleet_id": result.fleet_id,
        "amount": result.amount,
        "driver_total_paid": result.total_paid,
        "driver_balance": result.balance,
        "replayed": result.replayed,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_settlement(
    request: SettlementRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    actor: Actor = Depends(require_permission("confirm_cod_payments")),
    recorder=Depends(get_settlement_recorder),
    overrides=Depends(get_override_cache),
):
    result = await recorder.record_settlement(
        request.fleet_id,
        request.amount_paid,
        reference_total=request.reference_total,
        idempotency_key=idempotency_key,
        actor=actor,
        driver_name=request.driver_name,
        date_from=request.date_from,
        date_to=request.date_to,
    )
    if not result.ok:
        return _failed(result)

    if request.date_from and request.date_to and request.days and not result.replayed:
        key = query_key(request.fleet_id, request.date_from, request.date_to)
        current = overrides.overrides(actor.session_id, key)
        for day in request.days:
            if len(request.days) == 1:
                amount = result.amount
            else:
                amount = current[day].amount_paid if day in current else Decimal("0")
            overrides.mark_settled(actor.session_id, key, day, amount)

    return {
        "success": True,
        "message": result.message,
        "data": _result_data(result),
    }


@router.post("/day", status_code=status.HTTP_201_CREATED)
async def settle_day(
    request: DaySettlementRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    actor: Actor = Depends(require_permission("confirm_cod_payments")),
    recorder=Depends(get_settlement_recorder),
    overrides=Depends(get_override_cache),
):
    tasks = [apply_payment_edit(t, t.balance_paid) for t in request.tasks]
    outcome = await recorder.settle_day(
        request.fleet_id,
        request.day,
        tasks,
        reference_total=request.reference_total,
        idempotency_key=idempotency_key,
        actor=actor,
        driver_name=request.driver_name,
    )
    if not outcome.result.ok:
        return _failed(outcome.result)

    if request.date_from and request.date_to and not outcome.result.replayed:
        key = query_key(request.fleet_id, request.date_from, request.date_to)
        overrides.mark_settled(actor.session_id, key, request.day, outcome.total_paid, outcome.day_status)

    return {
        "success": True,
        "message": outcome.result.message,
        "data": {
            **_result_data(outcome.result),
            "day": outcome.day,
            "total_paid": outcome.total_paid,
            "all_completed": outcome.all_completed,
            "day_status": outcome.day_status,
            "tasks": tasks,
        },
    }


@router.get("")
def list_settlements(
    fleet_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(require_permission("confirm_cod_payments")),
    db: Session = Depends(get_db),
):
    query = db.query(SettlementLog)
    if fleet_id is not None:
        query = query.filter(SettlementLog.fleet_id == fleet_id)

    total = query.count()
    logs = query.order_by(SettlementLog.created_at.desc(), SettlementLog.settlement_id.desc()) \
        .offset((page - 1) * page_size) \
        .limit(page_size) \
        .all()

    return {
        "success": True,
        "message": "Settlements retrieved successfully",
        "data": [
            {
                "settlement_id": log.settlement_id,
                "fleet_id": log.fleet_id,
                "driver_name": log.driver_name,
                "amount": float(log.amount),
                "settlement_type": log.settlement_type.value if log.settlement_type else None,
                "date_from": log.date_from,
                "date_to": log.date_to,
                "task_count": log.task_count,
                "settled_by": log.settled_by_email or log.settled_by_id,
                "created_at": log.created_at.isoformat() if log.created_at else None,
            }
            for log in logs
        ],
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": (total + page_size - 1) // page_size,
        },
    }
