"""
routes/orders.py  –  Order editor

An edit session (one per operator session) watches the order for remote
changes; PUT saves through that session so a conflicting change is never
silently overwritten.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Literal, Optional
from database import get_db
from services.order_monitor import can_edit_financials
from utils.audit import record_audit
from utils.dependencies import (
    Actor,
    get_actor,
    get_monitor_registry,
    get_order_actions,
    require_permission,
)
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])


# Schemas
class OrderUpdateRequest(BaseModel):
    cod_amount: Optional[Decimal] = Field(None, ge=0)
    order_fees: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None
    assigned_driver: Optional[int] = None


class ResolveConflictRequest(BaseModel):
    action: Literal["refresh", "keep_local"]


class ReorderRequest(BaseModel):
    cod_amount: Optional[Decimal] = Field(None, ge=0)
    order_fees: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None
    assigned_driver: Optional[int] = None


class ReturnRequest(BaseModel):
    notes: Optional[str] = None


def _session_data(monitor, actor: Actor) -> dict:
    data = monitor.snapshot()
    data["can_edit_financials"] = can_edit_financials(monitor.order, actor.permissions)
    return data


@router.post("/{order_id}/session")
async def open_order_session(
    order_id: str,
    actor: Actor = Depends(get_actor),
    registry=Depends(get_monitor_registry),
):
    """Load the order and start watching it; replaces the session's previous order."""
    monitor = await registry.open(actor.session_id, order_id)
    return {
        "success": True,
        "message": "Order loaded",
        "data": _session_data(monitor, actor),
    }


@router.get("/{order_id}/session")
async def check_order_session(
    order_id: str,
    actor: Actor = Depends(get_actor),
    registry=Depends(get_monitor_registry),
):
    """Run a conflict check now and return the session state."""
    monitor = registry.get(actor.session_id, order_id)
    await monitor.check_now()
    return {
        "success": True,
        "message": "Order session state",
        "data": _session_data(monitor, actor),
    }


@router.post("/{order_id}/session/resolve")
async def resolve_order_conflict(
    order_id: str,
    request: ResolveConflictRequest,
    actor: Actor = Depends(get_actor),
    registry=Depends(get_monitor_registry),
):
    monitor = registry.get(actor.session_id, order_id)
    if request.action == "refresh":
        await monitor.resolve_refresh()
        message = "Order reloaded; local edits discarded"
    else:
        monitor.resolve_keep_local()
        message = "Keeping local edits"
    return {
        "success": True,
        "message": message,
        "data": _session_data(monitor, actor),
    }


@router.delete("/{order_id}/session")
def close_order_session(
    order_id: str,
    actor: Actor = Depends(get_actor),
    registry=Depends(get_monitor_registry),
):
    registry.get(actor.session_id, order_id)
    registry.close(actor.session_id, order_id=order_id)
    return {"success": True, "message": "Order session closed"}


@router.put("/{order_id}")
async def update_order(
    order_id: str,
    request: OrderUpdateRequest,
    actor: Actor = Depends(get_actor),
    registry=Depends(get_monitor_registry),
    db: Session = Depends(get_db),
):
    monitor = registry.get(actor.session_id, order_id)
    before = monitor.order
    fields = request.model_dump(exclude_none=True)
    order = await monitor.save(fields, actor.permissions)

    record_audit(
        db, actor, "order_update", "order", order_id,
        old_value={name: getattr(before, name) for name in fields},
        new_value={name: getattr(order, name) for name in fields},
    )
    return {
        "success": True,
        "message": "Order updated successfully",
        "data": _session_data(monitor, actor),
    }


@router.post("/{order_id}/reorder", status_code=status.HTTP_201_CREATED)
async def reorder(
    order_id: str,
    request: ReorderRequest,
    actor: Actor = Depends(require_permission("perform_reorder")),
    actions=Depends(get_order_actions),
    db: Session = Depends(get_db),
):
    order = await actions.reorder(
        order_id,
        cod_amount=request.cod_amount,
        order_fees=request.order_fees,
        notes=request.notes,
        assigned_driver=request.assigned_driver,
    )
    record_audit(db, actor, "order_reorder", "order", order.order_id, old_value={"source_order": order_id})
    return {
        "success": True,
        "message": f"Order {order_id} reordered",
        "data": order,
    }


@router.post("/{order_id}/return", status_code=status.HTTP_201_CREATED)
async def return_order(
    order_id: str,
    request: ReturnRequest,
    actor: Actor = Depends(require_permission("perform_return")),
    actions=Depends(get_order_actions),
    db: Session = Depends(get_db),
):
    order = await actions.return_order(order_id, notes=request.notes)
    record_audit(db, actor, "order_return", "order", order.order_id, old_value={"source_order": order_id})
    return {
        "success": True,
        "message": f"Return created for order {order_id}",
        "data": order,
    }


@router.delete("/{order_id}")
async def delete_order(
    order_id: str,
    actor: Actor = Depends(require_permission("delete_ongoing_orders")),
    actions=Depends(get_order_actions),
    registry=Depends(get_monitor_registry),
    db: Session = Depends(get_db),
):
    order = await actions.delete_order(order_id)

    registry.close(actor.session_id, order_id=order_id)
    record_audit(db, actor, "order_delete", "order", order_id, old_value=order.model_dump(mode="json"))
    return {
        "success": True,
        "message": f"Order {order_id} deleted",
    }
