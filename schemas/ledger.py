"""
schemas/ledger.py  –  COD ledger types

A ledger is one DailyLedgerEntry per calendar day of the requested range.
LedgerDay is the same day with the operator's unsaved payment overlay applied.
"""

import datetime as dt
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field
import enum


class PaymentStatus(str, enum.Enum):
    pending   = "Pending"
    completed = "Completed"


class DailyLedgerEntry(BaseModel):
    date: dt.date
    cod_received: Decimal = Decimal("0")
    order_count: int = 0


class RawTask(BaseModel):
    """A completed delivery task as returned by the raw task read."""
    job_id: Optional[int] = None
    fleet_id: Optional[int] = None
    fleet_name: str = ""
    customer_name: str = ""
    cod_amount: Decimal = Decimal("0")
    pickup_address: str = ""
    delivery_address: str = ""
    creation_datetime: Optional[dt.datetime] = None


class TaskPaymentEntry(BaseModel):
    job_id: int
    fleet_id: Optional[int] = None
    fleet_name: str = ""
    customer_name: str = ""
    cod_amount: Decimal = Field(default=Decimal("0"), ge=0)
    balance_paid: Decimal = Field(default=Decimal("0"), ge=0)
    status: PaymentStatus = PaymentStatus.pending


class LedgerDay(BaseModel):
    date: dt.date
    cod_received: Decimal
    order_count: int
    amount_paid: Decimal = Decimal("0")
    status: PaymentStatus = PaymentStatus.pending
    has_override: bool = False


class LedgerTotals(BaseModel):
    cod_received: Decimal = Decimal("0")
    order_count: int = 0
    amount_paid: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
