"""
services/orders.py  –  Order actions outside an edit session

Reorder and return both create a new Tookan task from an existing one;
delete is limited to orders that are still ongoing.
"""

import logging
from decimal import Decimal
from typing import Optional

from schemas import OrderRecord
from services.normalize import normalize_order, order_ref, to_decimal
from utils.errors import BusinessRuleError, ValidationError

logger = logging.getLogger(__name__)


class OrderActions:
    def __init__(self, source=None):
        if source is None:
            from services.tookan_client import tookan
            source = tookan
        self.source = source

    async def fetch(self, order_id: str) -> OrderRecord:
        return normalize_order(await self.source.get_task_details(order_ref(order_id)))

    async def reorder(
        self,
        order_id: str,
        cod_amount: Optional[Decimal] = None,
        order_fees: Optional[Decimal] = None,
        notes: Optional[str] = None,
        assigned_driver: Optional[int] = None,
    ) -> OrderRecord:
        """Same customer and route as `order_id`; COD starts at 0 unless given."""
        original = await self.fetch(order_id)
        cod = to_decimal(cod_amount) if cod_amount is not None else Decimal("0")
        fees = to_decimal(order_fees) if order_fees is not None else original.order_fees
        if cod < 0 or fees < 0:
            raise ValidationError("COD amount and fees cannot be negative")

        new_id = await self.source.create_task(
            customer_name=original.customer_name,
            customer_phone=original.customer_phone,
            customer_email=original.customer_email,
            pickup_address=original.pickup_address,
            delivery_address=original.delivery_address,
            cod_amount=cod,
            order_fees=fees,
            notes=notes if notes is not None else original.notes,
            fleet_id=assigned_driver,
        )
        logger.info(f"🔁 Order {order_id} reordered as {new_id}")
        return await self.fetch(new_id)

    async def return_order(self, order_id: str, notes: Optional[str] = None) -> OrderRecord:
        """New task travelling the original route backwards, with nothing to collect."""
        original = await self.fetch(order_id)
        if not original.pickup_address or not original.delivery_address:
            raise BusinessRuleError(f"Order {order_id} has no complete route to return along")

        new_id = await self.source.create_task(
            customer_name=original.customer_name,
            customer_phone=original.customer_phone,
            customer_email=original.customer_email,
            pickup_address=original.delivery_address,
            delivery_address=original.pickup_address,
            cod_amount=Decimal("0"),
            order_fees=original.order_fees,
            notes=notes if notes is not None else f"Return of order {order_id}",
        )
        logger.info(f"↩️ Return for order {order_id} created as {new_id}")
        return await self.fetch(new_id)

    async def delete_order(self, order_id: str) -> OrderRecord:
        order = await self.fetch(order_id)
        if not order.is_ongoing:
            raise BusinessRuleError(
                f"Order {order_id} is {order.status}; only ongoing orders can be deleted"
            )
        await self.source.delete_task(order_ref(order_id))
        logger.info(f"🗑️ Order {order_id} deleted")
        return order
