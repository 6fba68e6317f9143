"""
routes/reconciliation.py  –  Driver COD ledger

GET on a ledger selects (driver, date_from, date_to) as the session's
current query: payment overrides entered against any other selection are
dropped at that moment.
"""

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field
from datetime import date
from decimal import Decimal
from config import settings
from schemas import PaymentStatus
from services.ledger import apply_overlay
from services.overrides import query_key
from utils.dependencies import (
    Actor,
    get_actor,
    get_ledger_aggregator,
    get_override_cache,
    require_permission,
)
from utils.export import ledger_csv, ledger_filename
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reconciliation", tags=["COD Reconciliation"])


class DayOverrideRequest(BaseModel):
    date_from: date
    date_to: date
    amount_paid: Decimal = Field(..., ge=0)
    status: PaymentStatus = PaymentStatus.pending


async def _ledger_view(fleet_id, date_from, date_to, session_id, aggregator, overrides, select=True):
    entries = await aggregator.build_ledger(fleet_id, date_from, date_to)
    key = query_key(fleet_id, date_from, date_to)
    if select:
        overrides.select(session_id, key)
    return apply_overlay(
        entries,
        overrides.overrides(session_id, key),
        overrides.settled(session_id, key),
    )


@router.get("/drivers/{fleet_id}/ledger")
async def get_driver_ledger(
    fleet_id: int,
    date_from: date = Query(...),
    date_to: date = Query(...),
    actor: Actor = Depends(get_actor),
    aggregator=Depends(get_ledger_aggregator),
    overrides=Depends(get_override_cache),
):
    days, totals = await _ledger_view(fleet_id, date_from, date_to, actor.session_id, aggregator, overrides)
    return {
        "success": True,
        "message": "Ledger retrieved successfully",
        "data": {
            "fleet_id": fleet_id,
            "date_from": date_from,
            "date_to": date_to,
            "currency": settings.DEFAULT_CURRENCY,
            "days": days,
            "totals": totals,
        },
    }


@router.put("/drivers/{fleet_id}/ledger/{day}")
def set_day_override(
    fleet_id: int,
    day: date,
    request: DayOverrideRequest,
    actor: Actor = Depends(get_actor),
    overrides=Depends(get_override_cache),
):
    """Unsaved paid amount / status for one day of the currently selected ledger."""
    key = query_key(fleet_id, request.date_from, request.date_to)
    entry = overrides.set_override(actor.session_id, key, day, request.amount_paid, request.status)
    return {
        "success": True,
        "message": "Payment override saved",
        "data": {
            "date": day,
            "amount_paid": entry.amount_paid,
            "status": entry.status,
        },
    }


@router.get("/drivers/{fleet_id}/tasks")
async def get_day_tasks(
    fleet_id: int,
    day: date = Query(...),
    actor: Actor = Depends(get_actor),
    aggregator=Depends(get_ledger_aggregator),
):
    tasks = await aggregator.day_tasks(fleet_id, day)
    return {
        "success": True,
        "message": "Tasks retrieved successfully",
        "data": tasks,
        "count": len(tasks),
    }


@router.get("/drivers/{fleet_id}/ledger/export.csv")
async def export_driver_ledger(
    fleet_id: int,
    date_from: date = Query(...),
    date_to: date = Query(...),
    actor: Actor = Depends(require_permission("export_reports")),
    aggregator=Depends(get_ledger_aggregator),
    overrides=Depends(get_override_cache),
):
    days, totals = await _ledger_view(fleet_id, date_from, date_to, actor.session_id, aggregator, overrides, select=False)
    filename = ledger_filename(str(fleet_id), date_from, date_to)
    logger.info(f"📤 Ledger export for fleet {fleet_id} ({len(days)} days) by {actor.email or actor.user_id}")
    return Response(
        content=ledger_csv(days, totals, settings.DEFAULT_CURRENCY),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
