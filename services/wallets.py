"""
services/wallets.py  –  Merchant and driver wallet adjustments on Tookan

Merchant (customer) wallets can only be credited; the platform exposes no
debit for them. Driver (fleet) wallets take both directions, and a debit
must say why.
"""

import enum
import logging
from decimal import Decimal
from typing import Optional

from services.normalize import to_decimal, to_int
from utils.errors import BusinessRuleError, ValidationError

logger = logging.getLogger(__name__)


class Direction(str, enum.Enum):
    credit = "credit"
    debit  = "debit"


def _positive_amount(amount) -> Decimal:
    value = to_decimal(amount)
    if value <= 0:
        raise ValidationError("Amount must be greater than zero")
    return value


class WalletService:
    def __init__(self, source=None):
        if source is None:
            from services.tookan_client import tookan
            source = tookan
        self.source = source

    async def merchant_payment(
        self,
        vendor_id,
        amount,
        description: Optional[str] = None,
        direction: Direction = Direction.credit,
    ) -> dict:
        if Direction(direction) == Direction.debit:
            raise BusinessRuleError("Merchant wallets can only be credited; debits are not supported")
        vendor = to_int(vendor_id)
        if vendor is None:
            raise ValidationError("A numeric vendor id is required")
        value = _positive_amount(amount)

        await self.source.customer_wallet_payment(vendor, value, (description or "").strip() or None)
        logger.info(f"💰 Merchant {vendor} wallet credited {value}")
        return {
            "status": "success",
            "message": f"Credited {value} to merchant {vendor}",
            "vendor_id": vendor,
            "amount": value,
        }

    async def driver_transaction(
        self,
        fleet_id,
        amount,
        direction: Direction,
        description: Optional[str] = None,
    ) -> dict:
        direction = Direction(direction)
        fleet = to_int(fleet_id)
        if fleet is None:
            raise ValidationError("A numeric fleet id is required")
        value = _positive_amount(amount)
        description = (description or "").strip()
        if direction == Direction.debit and not description:
            raise ValidationError("A description is required when debiting a driver wallet")

        debit = direction == Direction.debit
        await self.source.fleet_wallet_transaction(
            fleet, value, description or "Wallet credit", debit=debit
        )
        logger.info(f"💰 Driver {fleet} wallet {direction.value} {value}")
        return {
            "status": "success",
            "message": f"{direction.value.capitalize()} of {value} applied to driver {fleet}",
            "fleet_id": fleet,
            "amount": value,
            "direction": direction.value,
        }
