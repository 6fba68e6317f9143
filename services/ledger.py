"""
services/ledger.py  –  Per-driver daily COD ledger

For a driver and an inclusive date range the aggregator returns one
DailyLedgerEntry per calendar day, ascending:

  1. zero-fill every day of the range
  2. primary source  : get_driver_daily_cod (already grouped by day)
  3. fallback source : get_driver_tasks, only when the primary gave no rows
                       or failed; tasks are filtered and summed per day here

Neither source failing nor both failing ever raises to the caller: the
worst case is the zero-filled skeleton.
"""

import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from config import settings
from schemas import DailyLedgerEntry, LedgerDay, LedgerTotals, PaymentStatus, RawTask, TaskPaymentEntry
from services.normalize import normalize_daily_row, normalize_raw_task
from services.overrides import DayOverride
from utils.errors import DashboardError, ValidationError

logger = logging.getLogger(__name__)

END_OF_DAY = time(23, 59, 59)


def validate_range(date_from: date, date_to: date, max_days: Optional[int] = None):
    if date_from > date_to:
        raise ValidationError("date_from must be on or before date_to")
    max_days = max_days if max_days is not None else settings.LEDGER_MAX_RANGE_DAYS
    span = (date_to - date_from).days + 1
    if span > max_days:
        raise ValidationError(f"Date range covers {span} days; the maximum is {max_days}")


def iter_days(date_from: date, date_to: date) -> Iterable[date]:
    """Calendar-day stepping on `date` values, unaffected by DST."""
    day = date_from
    while day <= date_to:
        yield day
        day += timedelta(days=1)


def zero_fill(date_from: date, date_to: date) -> Dict[date, DailyLedgerEntry]:
    return {day: DailyLedgerEntry(date=day) for day in iter_days(date_from, date_to)}


def _same_address(a: str, b: str) -> bool:
    return a.strip().casefold() == b.strip().casefold()


def is_countable_task(task: RawTask) -> bool:
    """Real COD deliveries only: timestamped, pickup != delivery, positive COD."""
    if task.creation_datetime is None:
        return False
    if _same_address(task.pickup_address, task.delivery_address):
        return False
    return task.cod_amount > 0


def merge_daily_rows(ledger: Dict[date, DailyLedgerEntry], rows: List[dict]) -> int:
    merged = 0
    for row in rows:
        entry = normalize_daily_row(row)
        if entry is None or entry.date not in ledger:
            continue
        ledger[entry.date] = entry
        merged += 1
    return merged


def accumulate_tasks(ledger: Dict[date, DailyLedgerEntry], rows: List[dict]) -> int:
    counted = 0
    for row in rows:
        task = normalize_raw_task(row)
        if not is_countable_task(task):
            continue
        day = task.creation_datetime.date()
        entry = ledger.get(day)
        if entry is None:
            continue
        entry.cod_received += task.cod_amount
        entry.order_count += 1
        counted += 1
    return counted


class LedgerAggregator:
    def __init__(self, source=None):
        if source is None:
            from services.supabase_client import supabase
            source = supabase
        self.source = source

    async def build_ledger(self, fleet_id: int, date_from: date, date_to: date) -> List[DailyLedgerEntry]:
        validate_range(date_from, date_to)
        ledger = zero_fill(date_from, date_to)

        rows = await self._primary_rows(fleet_id, date_from, date_to)
        if rows:
            merged = merge_daily_rows(ledger, rows)
            logger.info(f"📒 Ledger for fleet {fleet_id}: {merged} day(s) from daily aggregate")
        else:
            tasks = await self._fallback_rows(fleet_id, date_from, date_to)
            counted = accumulate_tasks(ledger, tasks)
            logger.info(f"📒 Ledger for fleet {fleet_id}: {counted} task(s) from raw task fallback")

        return [ledger[day] for day in sorted(ledger)]

    async def day_tasks(self, fleet_id: int, day: date) -> List[TaskPaymentEntry]:
        """A day's countable tasks as unpaid entries, for settling the day task by task."""
        rows = await self.source.get_driver_tasks(
            fleet_id, datetime.combine(day, time.min), datetime.combine(day, END_OF_DAY)
        )
        entries = []
        for row in rows or []:
            task = normalize_raw_task(row)
            if not is_countable_task(task) or task.creation_datetime.date() != day:
                continue
            entries.append(TaskPaymentEntry(
                job_id=task.job_id or 0,
                fleet_id=task.fleet_id,
                fleet_name=task.fleet_name,
                customer_name=task.customer_name,
                cod_amount=task.cod_amount,
            ))
        return entries

    async def _primary_rows(self, fleet_id: int, date_from: date, date_to: date) -> List[dict]:
        try:
            return await self.source.get_driver_daily_cod(fleet_id, date_from, date_to) or []
        except DashboardError as e:
            logger.warning(f"⚠️ Daily COD aggregate failed for fleet {fleet_id}, using raw tasks: {e.message}")
            return []

    async def _fallback_rows(self, fleet_id: int, date_from: date, date_to: date) -> List[dict]:
        start = datetime.combine(date_from, time.min)
        end = datetime.combine(date_to, END_OF_DAY)
        try:
            return await self.source.get_driver_tasks(fleet_id, start, end) or []
        except DashboardError as e:
            logger.error(f"❌ Raw task read failed for fleet {fleet_id}, returning empty ledger: {e.message}")
            return []


def apply_overlay(
    entries: List[DailyLedgerEntry],
    overrides: Dict[date, DayOverride],
    settled: Dict[date, DayOverride],
) -> Tuple[List[LedgerDay], LedgerTotals]:
    """Ledger days with the session's unsaved edits (and confirmed settlements) laid over them."""
    days = []
    totals = LedgerTotals()
    for entry in entries:
        layer = overrides.get(entry.date) or settled.get(entry.date)
        amount_paid = layer.amount_paid if layer else Decimal("0")
        status = layer.status if layer else PaymentStatus.pending
        days.append(LedgerDay(
            date=entry.date,
            cod_received=entry.cod_received,
            order_count=entry.order_count,
            amount_paid=amount_paid,
            status=status,
            has_override=entry.date in overrides,
        ))
        totals.cod_received += entry.cod_received
        totals.order_count += entry.order_count
        totals.amount_paid += amount_paid

    totals.balance = totals.cod_received - totals.amount_paid
    return days, totals
