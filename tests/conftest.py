import os

# Local database in memory and no redis, before config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ.setdefault("TOOKAN_API_KEY", "test-key")
os.environ.setdefault("SUPABASE_URL", "https://hosted.example.test")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-key")

import asyncio
import copy
from decimal import Decimal

import pytest

from database import Base, SessionLocal, engine
from utils.errors import NotFoundError, RemoteUnavailableError


class FakeSupabase:
    """Hosted database double: records every call, serves canned rows."""

    def __init__(self):
        self.daily_rows = []
        self.task_rows = []
        self.daily_error = None
        self.tasks_error = None
        self.agents = {}
        self.customers = []
        self.withdrawals = []
        self.payments = []
        self.payment_error = None
        self.payment_gate = None
        self.calls = {"daily": 0, "tasks": 0, "list_withdrawals": 0, "decide": 0, "agents": 0}

    async def get_driver_daily_cod(self, fleet_id, date_from, date_to):
        self.calls["daily"] += 1
        if self.daily_error:
            raise self.daily_error
        return list(self.daily_rows)

    async def get_driver_tasks(self, fleet_id, start, end):
        self.calls["tasks"] += 1
        if self.tasks_error:
            raise self.tasks_error
        return list(self.task_rows)

    async def list_agents(self):
        self.calls["agents"] += 1
        return [{"fleet_id": fid, **row} for fid, row in self.agents.items()]

    async def list_customers(self):
        return list(self.customers)

    async def record_agent_payment(self, fleet_id, amount, reference_total):
        if self.payment_gate is not None:
            await self.payment_gate.wait()
        if self.payment_error:
            raise self.payment_error
        agent = self.agents.setdefault(fleet_id, {"name": f"Driver {fleet_id}", "total_paid": "0", "balance": "0"})
        total_paid = Decimal(str(agent["total_paid"])) + amount
        balance = (reference_total - total_paid) if reference_total is not None else Decimal(str(agent["balance"])) - amount
        agent["total_paid"], agent["balance"] = str(total_paid), str(balance)
        self.payments.append((fleet_id, amount, reference_total))
        return {"fleet_id": fleet_id, **agent}

    async def list_withdrawals(self):
        self.calls["list_withdrawals"] += 1
        return copy.deepcopy(self.withdrawals)

    async def decide_withdrawal(self, request_id, values):
        self.calls["decide"] += 1
        for row in self.withdrawals:
            if str(row["id"]) == str(request_id) and row["status"] == "pending":
                row.update(values)
                return [dict(row)]
        return []


class FakeTookan:
    """Tookan double keyed by job id; every edit bumps updated_at."""

    def __init__(self):
        self.tasks = {}
        self.edits = []
        self.created = []
        self.deleted = []
        self.wallet_calls = []
        self.wallet_error = None
        self.fail_reads = False
        self.read_delay = 0
        self.edit_error = None
        self._next_id = 9000
        self._clock = 0

    def add_task(self, job_id, **fields):
        task = {
            "job_id": int(job_id),
            "customer_username": "Sara",
            "customer_phone": "+97330000000",
            "customer_email": "sara@example.test",
            "job_pickup_address": "Shop 1, Manama",
            "job_address": "Flat 2, Riffa",
            "order_payment": "1.500",
            "fleet_id": 42,
            "fleet_name": "Ali",
            "job_description": "",
            "job_status": 1,
            "updated_at": "2024-01-02T10:00:00Z",
            "custom_field": [{"label": "CASH_NEEDS_TO_BE_COLLECTED", "data": "12.500"}],
        }
        task.update(fields)
        self.tasks[str(job_id)] = task
        return task

    def touch(self, job_id, updated_at):
        self.tasks[str(job_id)]["updated_at"] = updated_at

    async def get_task_details(self, order_id):
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        if self.fail_reads:
            raise RemoteUnavailableError("Tookan did not answer in time, please retry", retryable=True)
        task = self.tasks.get(str(order_id))
        if task is None:
            raise NotFoundError(f"Order {order_id} not found")
        return copy.deepcopy(task)

    async def edit_task(self, order_id, cod_amount=None, order_fees=None, notes=None, assigned_driver=None):
        if self.edit_error:
            raise self.edit_error
        task = self.tasks[str(order_id)]
        if cod_amount is not None:
            task["custom_field"] = [{"label": "CASH_NEEDS_TO_BE_COLLECTED", "data": str(cod_amount)}]
        if order_fees is not None:
            task["order_payment"] = str(order_fees)
        if notes is not None:
            task["job_description"] = notes
        if assigned_driver is not None:
            task["fleet_id"] = assigned_driver
        self._clock += 1
        task["updated_at"] = f"2024-02-01T00:00:{self._clock:02d}Z"
        self.edits.append((str(order_id), cod_amount, order_fees, notes, assigned_driver))

    async def create_task(self, customer_name, customer_phone, customer_email, pickup_address,
                          delivery_address, cod_amount, order_fees, notes, fleet_id=None):
        self._next_id += 1
        job_id = str(self._next_id)
        self.add_task(
            job_id,
            customer_username=customer_name,
            customer_phone=customer_phone,
            customer_email=customer_email,
            job_pickup_address=pickup_address,
            job_address=delivery_address,
            order_payment=str(order_fees),
            job_description=notes,
            fleet_id=fleet_id,
            custom_field=[{"label": "CASH_NEEDS_TO_BE_COLLECTED", "data": str(cod_amount)}],
        )
        self.created.append(job_id)
        return job_id

    async def delete_task(self, order_id):
        self.deleted.append(str(order_id))
        self.tasks.pop(str(order_id), None)

    async def fleet_wallet_transaction(self, fleet_id, amount, description, debit):
        self.wallet_calls.append(("fleet", fleet_id, amount, description, debit))
        return {}

    async def customer_wallet_payment(self, vendor_id, amount, description=None):
        self.wallet_calls.append(("customer", vendor_id, amount, description))
        return {}

    async def wallet_withdrawal(self, subject_type, subject_id, amount, description="Withdrawal approved"):
        if self.wallet_error:
            raise self.wallet_error
        self.wallet_calls.append(("withdrawal", subject_type, subject_id, amount))
        return {}


@pytest.fixture
def db():
    import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def supabase_fake():
    return FakeSupabase()


@pytest.fixture
def tookan_fake():
    return FakeTookan()


@pytest.fixture
def run():
    return asyncio.run
