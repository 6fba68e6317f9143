import datetime as dt
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel
import enum


class SubjectType(str, enum.Enum):
    merchant = "merchant"
    driver   = "driver"


class WithdrawalStatus(str, enum.Enum):
    pending  = "Pending"
    approved = "Approved"
    rejected = "Rejected"


class WithdrawalRequest(BaseModel):
    id: str
    subject_type: SubjectType
    subject_id: str
    amount_requested: Decimal
    wallet_balance: Decimal = Decimal("0")
    date: Optional[dt.date] = None
    status: WithdrawalStatus = WithdrawalStatus.pending
    rejection_reason: Optional[str] = None
