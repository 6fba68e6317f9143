from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel
from decimal import Decimal
from typing import Optional
from database import get_db
from services.wallets import Direction
from utils.audit import record_audit
from utils.dependencies import Actor, get_wallet_service, require_permission

router = APIRouter(prefix="/wallets", tags=["Wallets"])


# Schemas
class MerchantPaymentRequest(BaseModel):
    vendor_id: int
    amount: Decimal
    description: Optional[str] = None
    direction: Direction = Direction.credit


class DriverTransactionRequest(BaseModel):
    fleet_id: int
    amount: Decimal
    direction: Direction
    description: Optional[str] = None


@router.post("/merchant/payment")
async def merchant_payment(
    request: MerchantPaymentRequest,
    actor: Actor = Depends(require_permission("manage_wallets")),
    wallets=Depends(get_wallet_service),
    db: Session = Depends(get_db),
):
    result = await wallets.merchant_payment(
        request.vendor_id, request.amount, request.description, direction=request.direction
    )
    record_audit(db, actor, "merchant_wallet_credit", "merchant", request.vendor_id,
                 new_value={"amount": request.amount, "description": request.description})
    return {
        "success": True,
        "message": result["message"],
        "data": result,
    }


@router.post("/driver/transaction")
async def driver_transaction(
    request: DriverTransactionRequest,
    actor: Actor = Depends(require_permission("manage_wallets")),
    wallets=Depends(get_wallet_service),
    db: Session = Depends(get_db),
):
    result = await wallets.driver_transaction(
        request.fleet_id, request.amount, request.direction, request.description
    )
    record_audit(db, actor, f"driver_wallet_{request.direction.value}", "driver", request.fleet_id,
                 new_value={"amount": request.amount, "description": request.description})
    return {
        "success": True,
        "message": result["message"],
        "data": result,
    }
