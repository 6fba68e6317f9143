"""
services/tookan_client.py  –  Tookan v2 API (tasks and wallets)

Tookan answers HTTP 200 for almost everything and puts its own status code
in the body; only body status 200 counts as success.
"""

import logging
from decimal import Decimal
from typing import Optional

import httpx

from config import settings
from services.normalize import COD_FIELD_LABEL, order_ref
from services.remote import build_client, send_json
from utils.errors import NotFoundError, RemoteUnavailableError

logger = logging.getLogger(__name__)

SYSTEM = "Tookan"

# fleet wallet transaction_type codes
TXN_DEBIT = 1
TXN_CREDIT = 2
WALLET_TYPE_WALLET = 1
# customer_wallet_transaction / fleet_wallet_transaction code for a payout
TXN_WITHDRAWAL = 2


class TookanClient:
    def __init__(self, client: Optional[httpx.AsyncClient] = None, api_key: Optional[str] = None):
        self._client = client
        self.api_key = api_key if api_key is not None else settings.TOOKAN_API_KEY

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = build_client(base_url=settings.TOOKAN_BASE_URL)
        return self._client

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _call(self, endpoint: str, payload: dict, not_found_message: Optional[str] = None):
        body = {"api_key": self.api_key, **payload}
        http_status, data = await send_json(self.client, "POST", f"/{endpoint}", SYSTEM, json=body)

        if not isinstance(data, dict):
            raise RemoteUnavailableError(f"{SYSTEM} returned an empty response for {endpoint}")

        platform_status = data.get("status")
        if http_status == 200 and platform_status == 200:
            return data.get("data")

        message = data.get("message") or f"{endpoint} failed"
        if not_found_message and (http_status == 404 or platform_status == 404):
            raise NotFoundError(not_found_message)
        logger.warning(f"⚠️ {SYSTEM} {endpoint} rejected (http={http_status}, status={platform_status}): {message}")
        raise RemoteUnavailableError(f"{SYSTEM} rejected {endpoint}: {message}")

    # ── tasks ────────────────────────────────────────────────────────────────

    async def get_task_details(self, order_id: str) -> dict:
        data = await self._call(
            "get_task_details",
            {"job_id": int(order_ref(order_id))},
            not_found_message=f"Order {order_id} not found",
        )
        if isinstance(data, list):
            data = data[0] if data else None
        if not data:
            raise NotFoundError(f"Order {order_id} not found")
        return data

    async def edit_task(
        self,
        order_id: str,
        cod_amount: Optional[Decimal] = None,
        order_fees: Optional[Decimal] = None,
        notes: Optional[str] = None,
        assigned_driver: Optional[int] = None,
    ) -> None:
        payload = {
            "job_id": int(order_ref(order_id)),
            "custom_field_template": settings.TOOKAN_ORDER_TEMPLATE,
        }
        if cod_amount is not None:
            payload["meta_data"] = [{"label": COD_FIELD_LABEL, "data": str(cod_amount)}]
        if order_fees is not None:
            payload["order_payment"] = str(order_fees)
        if notes is not None:
            payload["job_description"] = notes
        if assigned_driver is not None:
            payload["fleet_id"] = assigned_driver
        await self._call("edit_task", payload, not_found_message=f"Order {order_id} not found")

    async def create_task(
        self,
        customer_name: str,
        customer_phone: str,
        customer_email: str,
        pickup_address: str,
        delivery_address: str,
        cod_amount: Decimal,
        order_fees: Decimal,
        notes: str,
        fleet_id: Optional[int] = None,
    ) -> str:
        payload = {
            "has_pickup": 1,
            "has_delivery": 1,
            "layout_type": 0,
            "customer_username": customer_name,
            "customer_phone": customer_phone,
            "customer_email": customer_email,
            "job_pickup_address": pickup_address,
            "customer_address": delivery_address,
            "job_description": notes,
            "order_payment": str(order_fees),
            "custom_field_template": settings.TOOKAN_ORDER_TEMPLATE,
            "meta_data": [{"label": COD_FIELD_LABEL, "data": str(cod_amount)}],
            "auto_assignment": 0 if fleet_id else 1,
            "timezone": 0,
        }
        if fleet_id:
            payload["fleet_id"] = fleet_id
        data = await self._call("create_task", payload) or {}
        job_id = data.get("delivery_job_id") or data.get("job_id")
        if not job_id:
            raise RemoteUnavailableError(f"{SYSTEM} created the task but returned no job id")
        return str(job_id)

    async def delete_task(self, order_id: str) -> None:
        await self._call("delete_task", {"job_id": int(order_ref(order_id))}, not_found_message=f"Order {order_id} not found")

    # ── wallets ──────────────────────────────────────────────────────────────

    async def fleet_wallet_transaction(self, fleet_id: int, amount: Decimal, description: str, debit: bool) -> dict:
        signed = -abs(amount) if debit else abs(amount)
        payload = {
            "fleet_id": fleet_id,
            "amount": float(signed),
            "description": description,
            "transaction_type": TXN_DEBIT if debit else TXN_CREDIT,
            "wallet_type": WALLET_TYPE_WALLET,
        }
        return await self._call("fleet/wallet/create_transaction", payload) or {}

    async def customer_wallet_payment(self, vendor_id: int, amount: Decimal, description: Optional[str] = None) -> dict:
        payload = {"vendor_id": vendor_id, "amount": float(abs(amount))}
        if description:
            payload["description"] = description
        return await self._call("addCustomerPaymentViaDashboard", payload) or {}

    async def wallet_withdrawal(self, subject_type: str, subject_id: int, amount: Decimal,
                                description: str = "Withdrawal approved") -> dict:
        """Pay out of a merchant (customer) or driver (fleet) wallet."""
        if subject_type == "merchant":
            endpoint, payload = "customer_wallet_transaction", {"vendor_id": subject_id}
        else:
            endpoint, payload = "fleet_wallet_transaction", {"fleet_id": subject_id}
        payload.update({
            "transaction_type": TXN_WITHDRAWAL,
            "amount": float(abs(amount)),
            "transaction_description": description,
        })
        return await self._call(endpoint, payload) or {}


tookan = TookanClient()
