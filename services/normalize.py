"""
services/normalize.py  –  External payload -> internal type mapping

Every row coming back from Tookan or the hosted database passes through
exactly one function here. Nothing past this module reads raw field names.
"""

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from schemas import (
    DailyLedgerEntry,
    Driver,
    Merchant,
    OrderRecord,
    RawTask,
    SubjectType,
    WithdrawalRequest,
    WithdrawalStatus,
)
from utils.errors import ValidationError

logger = logging.getLogger(__name__)

# Tookan custom-field label carrying the COD amount on a task
COD_FIELD_LABEL = "CASH_NEEDS_TO_BE_COLLECTED"


# ── scalar helpers ───────────────────────────────────────────────────────────

def to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        logger.debug(f"Unparseable money value {value!r}, using 0")
        return Decimal("0")


def to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def order_ref(value: Any) -> str:
    """Tookan job ids are numeric; anything else is refused before it reaches the platform."""
    job_id = to_int(value)
    if job_id is None or job_id <= 0:
        raise ValidationError("Order id must be numeric")
    return str(job_id)


def parse_day(value: Any) -> Optional[date]:
    """'2024-01-02', '2024-01-02T10:00:00Z' and '2024-01-02 10:00:00' all give 2024-01-02."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


# ── directory ────────────────────────────────────────────────────────────────

def normalize_driver(row: dict) -> Driver:
    """Hosted-database `agents` row."""
    fleet_id = to_int(row.get("fleet_id"))
    return Driver(
        id=str(fleet_id) if fleet_id is not None else "",
        fleet_id=fleet_id,
        name=row.get("name") or "Unknown Driver",
        phone=row.get("phone") or "",
    )


def normalize_merchant(row: dict) -> Merchant:
    """Hosted-database `customers` row."""
    vendor_id = to_int(row.get("vendor_id"))
    return Merchant(
        id=str(vendor_id) if vendor_id is not None else "",
        vendor_id=vendor_id,
        name=row.get("customer_name") or "Unknown Merchant",
        phone=row.get("customer_phone") or "",
    )


# ── ledger sources ───────────────────────────────────────────────────────────

def normalize_daily_row(row: dict) -> Optional[DailyLedgerEntry]:
    """`get_driver_daily_cod` row; None when the date is unusable."""
    day = parse_day(row.get("date"))
    if day is None:
        return None
    return DailyLedgerEntry(
        date=day,
        cod_received=to_decimal(row.get("cod_received")),
        order_count=to_int(row.get("order_count")) or 0,
    )


def normalize_raw_task(row: dict) -> RawTask:
    """`get_driver_tasks` row."""
    return RawTask(
        job_id=to_int(row.get("job_id")),
        fleet_id=to_int(row.get("fleet_id")),
        fleet_name=row.get("fleet_name") or "",
        customer_name=row.get("customer_name") or "",
        cod_amount=to_decimal(row.get("cod_amount")),
        pickup_address=row.get("pickup_address") or "",
        delivery_address=row.get("delivery_address") or "",
        creation_datetime=parse_timestamp(row.get("creation_datetime")),
    )


# ── orders ───────────────────────────────────────────────────────────────────

def _cod_from_custom_fields(task: dict) -> Optional[Decimal]:
    for field in task.get("custom_field") or []:
        if isinstance(field, dict) and field.get("label") == COD_FIELD_LABEL:
            return to_decimal(field.get("data"))
    return None


def normalize_order(task: dict) -> OrderRecord:
    """Tookan `get_task_details` task object."""
    cod = _cod_from_custom_fields(task)
    if cod is None:
        cod = to_decimal(task.get("cod_amount"))

    status = task.get("job_status")
    if isinstance(status, str) and status.strip().isdigit():
        status = int(status)

    return OrderRecord(
        order_id=str(task.get("job_id", "")),
        customer_name=task.get("customer_username") or "",
        customer_phone=task.get("customer_phone") or "",
        customer_email=task.get("customer_email") or "",
        pickup_address=task.get("job_pickup_address") or "",
        delivery_address=task.get("job_address") or "",
        cod_amount=cod,
        order_fees=to_decimal(task.get("order_payment")),
        assigned_driver=to_int(task.get("fleet_id")),
        assigned_driver_name=task.get("fleet_name") or "",
        notes=task.get("job_description") or "",
        status=status,
        last_modified=parse_timestamp(task.get("updated_at") or task.get("creation_datetime")),
    )


# ── withdrawals ──────────────────────────────────────────────────────────────

_WITHDRAWAL_STATUS = {
    "pending": WithdrawalStatus.pending,
    "approved": WithdrawalStatus.approved,
    "rejected": WithdrawalStatus.rejected,
}


def normalize_withdrawal(row: dict) -> WithdrawalRequest:
    """Hosted-database `withdrawal_requests` row."""
    subject_type = SubjectType(row.get("request_type", "merchant"))
    if subject_type == SubjectType.merchant:
        subject_id = row.get("merchant_id") or row.get("vendor_id")
    else:
        subject_id = row.get("driver_id") or row.get("fleet_id")

    status_text = str(row.get("status") or "pending").lower()
    return WithdrawalRequest(
        id=str(row.get("id")),
        subject_type=subject_type,
        subject_id=str(subject_id or ""),
        amount_requested=to_decimal(row.get("amount")),
        wallet_balance=to_decimal(row.get("wallet_balance")),
        date=parse_day(row.get("requested_at")),
        status=_WITHDRAWAL_STATUS.get(status_text, WithdrawalStatus.pending),
        rejection_reason=row.get("rejection_reason"),
    )
