"""
services/supabase_client.py  –  Hosted database over its PostgREST interface

Tables: agents, customers, withdrawal_requests.
Remote procedures: get_driver_daily_cod, get_driver_tasks.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

import httpx

from config import settings
from services.normalize import to_decimal
from services.remote import build_client, send_json
from utils.errors import NotFoundError, RemoteUnavailableError

logger = logging.getLogger(__name__)

SYSTEM = "Hosted database"


class SupabaseClient:
    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            key = settings.SUPABASE_SERVICE_KEY
            self._client = build_client(
                base_url=f"{settings.SUPABASE_URL.rstrip('/')}/rest/v1",
                headers={
                    "apikey": key,
                    "Authorization": f"Bearer {key}",
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs):
        http_status, data = await send_json(self.client, method, path, SYSTEM, **kwargs)
        if 200 <= http_status < 300:
            return data
        message = data.get("message") if isinstance(data, dict) else None
        logger.warning(f"⚠️ {SYSTEM} {method} {path} failed ({http_status}): {message}")
        raise RemoteUnavailableError(f"{SYSTEM} request failed ({http_status}): {message or 'no details'}")

    async def _rows(self, method: str, path: str, **kwargs) -> List[dict]:
        data = await self._request(method, path, **kwargs)
        if data is None:
            return []
        if not isinstance(data, list):
            raise RemoteUnavailableError(f"{SYSTEM} returned an unexpected payload for {path}")
        return data

    # ── remote procedures ────────────────────────────────────────────────────

    async def get_driver_daily_cod(self, fleet_id: int, date_from: date, date_to: date) -> List[dict]:
        return await self._rows("POST", "/rpc/get_driver_daily_cod", json={
            "p_fleet_id": fleet_id,
            "p_date_from": date_from.isoformat(),
            "p_date_to": date_to.isoformat(),
        })

    async def get_driver_tasks(self, fleet_id: int, start: datetime, end: datetime) -> List[dict]:
        return await self._rows("POST", "/rpc/get_driver_tasks", json={
            "p_fleet_id": fleet_id,
            "p_date_from": start.isoformat(),
            "p_date_to": end.isoformat(),
        })

    # ── directory ────────────────────────────────────────────────────────────

    async def list_agents(self) -> List[dict]:
        return await self._rows("GET", "/agents", params={
            "select": "fleet_id,name,phone",
            "order": "name.asc",
        })

    async def list_customers(self) -> List[dict]:
        return await self._rows("GET", "/customers", params={
            "select": "vendor_id,customer_name,customer_phone",
            "order": "customer_name.asc",
        })

    async def get_agent(self, fleet_id: int) -> dict:
        rows = await self._rows("GET", "/agents", params={
            "select": "fleet_id,name,total_paid,balance",
            "fleet_id": f"eq.{fleet_id}",
        })
        if not rows:
            raise NotFoundError(f"Driver with fleet_id {fleet_id} not found")
        return rows[0]

    # ── payments ─────────────────────────────────────────────────────────────

    async def record_agent_payment(self, fleet_id: int, amount: Decimal, reference_total: Optional[Decimal]) -> dict:
        """Add `amount` to the driver's total_paid; balance = reference_total - total_paid."""
        agent = await self.get_agent(fleet_id)
        new_total_paid = to_decimal(agent.get("total_paid")) + amount
        if reference_total is not None:
            new_balance = reference_total - new_total_paid
        else:
            new_balance = to_decimal(agent.get("balance")) - amount

        rows = await self._rows(
            "PATCH",
            "/agents",
            params={"fleet_id": f"eq.{fleet_id}"},
            headers={"Prefer": "return=representation"},
            json={
                "total_paid": str(new_total_paid),
                "balance": str(new_balance),
                "updated_at": datetime.utcnow().isoformat(),
            },
        )
        if not rows:
            raise NotFoundError(f"Driver with fleet_id {fleet_id} not found")
        return rows[0]

    # ── withdrawals ──────────────────────────────────────────────────────────

    async def list_withdrawals(self) -> List[dict]:
        return await self._rows("GET", "/withdrawal_requests", params={
            "select": "*",
            "order": "requested_at.desc",
        })

    async def decide_withdrawal(self, request_id: str, values: dict) -> List[dict]:
        """Update a request only while it is still pending; returns the rows that changed."""
        return await self._rows(
            "PATCH",
            "/withdrawal_requests",
            params={"id": f"eq.{request_id}", "status": "eq.pending"},
            headers={"Prefer": "return=representation"},
            json=values,
        )


supabase = SupabaseClient()
