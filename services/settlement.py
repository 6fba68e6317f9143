"""
services/settlement.py  –  Recording COD settlements for drivers

One call = one remote write (the driver's total_paid / balance on the
hosted database). Two guards sit in front of that write:

* an in-flight guard: a second settlement for a driver whose previous one
  has not come back yet is refused;
* an optional idempotency key: a key already present in the local
  settlement log returns the stored outcome instead of paying twice.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from models.settlement_log import SettlementLog, SettlementType
from schemas import PaymentStatus, TaskPaymentEntry
from services.normalize import to_decimal
from utils.audit import record_audit
from utils.errors import BusinessRuleError, DashboardError, ValidationError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class SettlementResult:
    status: str                      # "success" | "error"
    message: str
    fleet_id: int
    amount: Decimal
    total_paid: Optional[Decimal] = None
    balance: Optional[Decimal] = None
    settlement_id: Optional[int] = None
    replayed: bool = False
    error_type: Optional[str] = None
    retryable: bool = False

    @property
    def ok(self) -> bool:
        return self.status == "success"


@dataclass
class DaySettlement:
    day: date
    total_paid: Decimal
    all_completed: bool
    day_status: PaymentStatus
    result: SettlementResult


# ── task-level helpers ───────────────────────────────────────────────────────

def clamp_paid(amount: Decimal, cod_amount: Decimal) -> Decimal:
    if amount < ZERO:
        return ZERO
    if amount > cod_amount:
        return cod_amount
    return amount


def apply_payment_edit(
    entry: TaskPaymentEntry,
    balance_paid: Optional[Decimal] = None,
    status: Optional[PaymentStatus] = None,
) -> TaskPaymentEntry:
    """Return a copy of `entry` with the edit applied; balance_paid stays within [0, cod_amount]."""
    updates = {}
    if balance_paid is not None:
        updates["balance_paid"] = clamp_paid(to_decimal(balance_paid), entry.cod_amount)
    if status is not None:
        updates["status"] = status
    return entry.model_copy(update=updates)


def summarize_tasks(tasks: List[TaskPaymentEntry]) -> Tuple[Decimal, bool]:
    total_paid = sum((clamp_paid(t.balance_paid, t.cod_amount) for t in tasks), ZERO)
    all_completed = bool(tasks) and all(t.status == PaymentStatus.completed for t in tasks)
    return total_paid, all_completed


def day_status(tasks: List[TaskPaymentEntry]) -> PaymentStatus:
    _, all_completed = summarize_tasks(tasks)
    return PaymentStatus.completed if all_completed else PaymentStatus.pending


# ── in-flight guard ──────────────────────────────────────────────────────────

class InFlightGuard:
    def __init__(self):
        self._active = set()

    def acquire(self, fleet_id: int):
        if fleet_id in self._active:
            raise BusinessRuleError(
                f"A settlement for driver {fleet_id} is already in progress; wait for it to finish"
            )
        self._active.add(fleet_id)

    def release(self, fleet_id: int):
        self._active.discard(fleet_id)

    def is_active(self, fleet_id: int) -> bool:
        return fleet_id in self._active


settlement_guard = InFlightGuard()


# ── recorder ─────────────────────────────────────────────────────────────────

class SettlementRecorder:
    def __init__(self, db: Session, source=None, guard: Optional[InFlightGuard] = None):
        if source is None:
            from services.supabase_client import supabase
            source = supabase
        self.db = db
        self.source = source
        self.guard = guard or settlement_guard

    def _replay(self, idempotency_key: Optional[str]) -> Optional[SettlementResult]:
        if not idempotency_key:
            return None
        log = self.db.query(SettlementLog).filter(
            SettlementLog.idempotency_key == idempotency_key
        ).first()
        if not log:
            return None
        logger.info(f"🔁 Settlement key {idempotency_key} already recorded (#{log.settlement_id}), not paying again")
        return SettlementResult(
            status="success",
            message=log.message or "Settlement already recorded",
            fleet_id=log.fleet_id,
            amount=to_decimal(log.amount),
            total_paid=to_decimal(log.total_paid_after) if log.total_paid_after is not None else None,
            balance=to_decimal(log.balance_after) if log.balance_after is not None else None,
            settlement_id=log.settlement_id,
            replayed=True,
        )

    async def record_settlement(
        self,
        fleet_id: Optional[int],
        amount_paid: Decimal,
        reference_total: Optional[Decimal] = None,
        idempotency_key: Optional[str] = None,
        actor=None,
        driver_name: Optional[str] = None,
        settlement_type: SettlementType = SettlementType.calendar,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        task_count: int = 0,
    ) -> SettlementResult:
        if fleet_id is None:
            raise ValidationError("Driver has no fleet id; resolve the driver before settling")
        amount_paid = to_decimal(amount_paid)
        if amount_paid <= ZERO:
            raise ValidationError("Settlement amount must be greater than zero")

        replay = self._replay(idempotency_key)
        if replay is not None:
            return replay

        self.guard.acquire(fleet_id)
        try:
            try:
                agent = await self.source.record_agent_payment(fleet_id, amount_paid, reference_total)
            except DashboardError as e:
                logger.error(f"❌ Settlement of {amount_paid} for fleet {fleet_id} failed: {e.message}")
                return SettlementResult(
                    status="error",
                    message=f"Settlement was not recorded: {e.message}",
                    fleet_id=fleet_id,
                    amount=amount_paid,
                    error_type=e.error_type,
                    retryable=getattr(e, "retryable", False),
                )
        finally:
            self.guard.release(fleet_id)

        total_paid = to_decimal(agent.get("total_paid"))
        balance = to_decimal(agent.get("balance"))
        message = f"Payment of {amount_paid} recorded for driver {driver_name or fleet_id}"

        log = SettlementLog(
            idempotency_key=idempotency_key,
            settled_by_id=getattr(actor, "user_id", None),
            settled_by_email=getattr(actor, "email", None),
            driver_name=driver_name or agent.get("name"),
            fleet_id=fleet_id,
            amount=amount_paid,
            reference_total=reference_total,
            settlement_type=settlement_type,
            date_from=date_from.isoformat() if date_from else None,
            date_to=date_to.isoformat() if date_to else None,
            task_count=task_count,
            total_paid_after=total_paid,
            balance_after=balance,
            message=message,
        )
        self.db.add(log)
        self.db.commit()
        self.db.refresh(log)

        record_audit(
            self.db, actor, "settlement_record", "driver", fleet_id,
            new_value={"amount": amount_paid, "total_paid": total_paid, "balance": balance,
                       "settlement_id": log.settlement_id},
        )
        logger.info(f"✅ {message} (settlement #{log.settlement_id})")

        return SettlementResult(
            status="success",
            message=message,
            fleet_id=fleet_id,
            amount=amount_paid,
            total_paid=total_paid,
            balance=balance,
            settlement_id=log.settlement_id,
        )

    async def settle_day(
        self,
        fleet_id: Optional[int],
        day: date,
        tasks: List[TaskPaymentEntry],
        reference_total: Optional[Decimal] = None,
        idempotency_key: Optional[str] = None,
        actor=None,
        driver_name: Optional[str] = None,
    ) -> DaySettlement:
        """Record a day's task list as one transaction of Σ balance_paid."""
        if not tasks:
            raise ValidationError(f"No tasks to settle for {day.isoformat()}")

        total_paid, all_completed = summarize_tasks(tasks)
        if total_paid <= ZERO:
            raise ValidationError(f"Nothing has been paid on {day.isoformat()}; enter paid amounts first")

        result = await self.record_settlement(
            fleet_id,
            total_paid,
            reference_total=reference_total,
            idempotency_key=idempotency_key,
            actor=actor,
            driver_name=driver_name,
            settlement_type=SettlementType.view_tasks,
            date_from=day,
            date_to=day,
            task_count=len(tasks),
        )
        return DaySettlement(
            day=day,
            total_paid=total_paid,
            all_completed=all_completed,
            day_status=day_status(tasks),
            result=result,
        )
