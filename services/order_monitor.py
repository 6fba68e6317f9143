"""
services/order_monitor.py  –  Edit sessions on a single Tookan order

An operator opening an order gets one OrderConflictMonitor. It keeps the
order's last_modified as a baseline and polls the platform every
CONFLICT_POLL_SECONDS; when the remote timestamp moves away from the
baseline the session turns Conflicted and saving is refused until the
operator either refreshes or explicitly keeps the local edits.

    Idle → Loaded → {Clean, Conflicted} → Saving → Loaded

MonitorRegistry makes sure a session never has more than one live
monitor (and so never more than one polling task).
"""

import asyncio
import enum
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, Optional

from config import settings
from schemas import ConflictCheck, OrderRecord
from services.normalize import normalize_order, order_ref, to_decimal, to_int
from utils.errors import (
    BusinessRuleError,
    ConflictError,
    DashboardError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

EDIT_FINANCIALS = "edit_order_financials"

FINANCIAL_FIELDS = frozenset({"cod_amount", "order_fees"})
EDITABLE_FIELDS = FINANCIAL_FIELDS | {"notes", "assigned_driver"}


class MonitorState(str, enum.Enum):
    idle       = "idle"
    loaded     = "loaded"
    clean      = "clean"
    conflicted = "conflicted"
    saving     = "saving"


def can_edit_financials(order: Optional[OrderRecord], permissions: Iterable[str]) -> bool:
    """Financial fields are editable only on a non-terminal order by a permitted actor."""
    if order is None or order.is_terminal:
        return False
    return EDIT_FINANCIALS in set(permissions or ())


def _clean_fields(fields: dict) -> dict:
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

    cleaned = {}
    for name, value in fields.items():
        if value is None:
            continue
        if name in FINANCIAL_FIELDS:
            amount = to_decimal(value)
            if amount < Decimal("0"):
                raise ValidationError(f"{name} cannot be negative")
            cleaned[name] = amount
        elif name == "assigned_driver":
            fleet_id = to_int(value)
            if fleet_id is None:
                raise ValidationError("assigned_driver must be a numeric fleet id")
            cleaned[name] = fleet_id
        else:
            cleaned[name] = str(value)
    if not cleaned:
        raise ValidationError("No changes to save")
    return cleaned


class OrderConflictMonitor:
    def __init__(self, order_id: str, source=None, poll_seconds: Optional[float] = None):
        if source is None:
            from services.tookan_client import tookan
            source = tookan
        self.order_id = order_ref(order_id)
        self.source = source
        self.poll_seconds = poll_seconds if poll_seconds is not None else settings.CONFLICT_POLL_SECONDS

        self.state = MonitorState.idle
        self.order: Optional[OrderRecord] = None
        self.baseline: Optional[datetime] = None
        self.remote_timestamp: Optional[datetime] = None
        self.pending_edits: dict = {}
        self.last_error: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    # ── lifecycle ────────────────────────────────────────────────────────────

    async def _fetch(self) -> OrderRecord:
        return normalize_order(await self.source.get_task_details(self.order_id))

    async def load(self) -> OrderRecord:
        order = await self._fetch()
        if self._closed:
            # replaced or torn down while the first read was in flight
            logger.debug(f"Order {self.order_id} monitor closed during load, not polling")
            return order
        self._adopt(order)
        self.state = MonitorState.loaded
        self._start_polling()
        logger.info(f"📦 Order {self.order_id} loaded (baseline {self.baseline})")
        return order

    def _adopt(self, order: OrderRecord):
        self.order = order
        self.baseline = order.last_modified
        self.remote_timestamp = order.last_modified

    def _start_polling(self):
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.get_running_loop().create_task(
            self._poll(), name=f"order-conflict-{self.order_id}"
        )

    async def _poll(self):
        while True:
            await asyncio.sleep(self.poll_seconds)
            await self.check_now()

    def close(self):
        self._closed = True
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self.state = MonitorState.idle
        logger.debug(f"Order {self.order_id} monitor closed")

    @property
    def polling(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── conflict detection ───────────────────────────────────────────────────

    def _result(self) -> ConflictCheck:
        return ConflictCheck(
            has_conflict=self.state == MonitorState.conflicted,
            local_timestamp=self.baseline,
            remote_timestamp=self.remote_timestamp,
        )

    async def check_now(self) -> ConflictCheck:
        if self.state in (MonitorState.idle, MonitorState.saving):
            return self._result()

        baseline = self.baseline
        try:
            remote = await self._fetch()
        except DashboardError as e:
            logger.warning(f"⚠️ Conflict check for order {self.order_id} failed, keeping state {self.state.value}: {e.message}")
            return self._result()

        # a save or refresh finished while we were waiting
        if self.state in (MonitorState.idle, MonitorState.saving) or self.baseline != baseline:
            return self._result()

        if baseline is None:
            # our own save landed but its reload failed; take the remote order as it is
            self._adopt(remote)
            self.state = MonitorState.clean
            return self._result()

        self.remote_timestamp = remote.last_modified
        if remote.last_modified != baseline:
            if self.state != MonitorState.conflicted:
                logger.warning(
                    f"⚠️ Order {self.order_id} changed remotely "
                    f"(local {baseline}, remote {remote.last_modified})"
                )
            self.state = MonitorState.conflicted
        else:
            self.state = MonitorState.clean
        return self._result()

    async def resolve_refresh(self) -> OrderRecord:
        """Drop local edits and adopt the remote order as the new baseline."""
        order = await self._fetch()
        self._adopt(order)
        self.pending_edits = {}
        self.last_error = None
        self.state = MonitorState.loaded
        return order

    def resolve_keep_local(self) -> ConflictCheck:
        """Dismiss the conflict; the next save overwrites the remote change."""
        if self.state == MonitorState.conflicted:
            self.baseline = self.remote_timestamp
            self.state = MonitorState.clean
            logger.info(f"Order {self.order_id}: operator kept local edits over remote change")
        return self._result()

    # ── saving ───────────────────────────────────────────────────────────────

    async def save(self, fields: dict, permissions: Iterable[str]) -> OrderRecord:
        if self.state == MonitorState.idle or self.order is None:
            raise ValidationError("Open the order before saving changes")
        if self.state == MonitorState.conflicted:
            raise ConflictError(
                "The order was changed by someone else; refresh or keep your edits before saving",
                details=self._result().model_dump(mode="json"),
            )
        if self.state == MonitorState.saving:
            raise BusinessRuleError("A save for this order is already in progress")

        changes = _clean_fields(fields)
        if FINANCIAL_FIELDS & set(changes):
            if self.order.is_terminal:
                raise BusinessRuleError(
                    f"Order {self.order_id} is {self.order.status}; COD and fees can no longer be changed"
                )
            if not can_edit_financials(self.order, permissions):
                raise BusinessRuleError("You do not have permission to edit order financials")

        self.state = MonitorState.saving
        self.pending_edits = dict(changes)
        try:
            await self.source.edit_task(self.order_id, **changes)
        except DashboardError as e:
            self.state = MonitorState.loaded
            self.last_error = e.message
            logger.error(f"❌ Saving order {self.order_id} failed: {e.message}")
            raise

        try:
            order = await self._fetch()
        except DashboardError as e:
            self.order = self.order.model_copy(update=changes)
            self.baseline = None
            self.remote_timestamp = None
            self.pending_edits = {}
            self.last_error = f"Saved, but reloading the order failed: {e.message}"
            self.state = MonitorState.loaded
            logger.warning(f"⚠️ Order {self.order_id} saved but reload failed: {e.message}")
            return self.order

        self._adopt(order)
        self.pending_edits = {}
        self.last_error = None
        self.state = MonitorState.loaded
        logger.info(f"✅ Order {self.order_id} saved: {', '.join(sorted(changes))}")
        return order

    def snapshot(self) -> dict:
        return {
            "order_id": self.order_id,
            "state": self.state.value,
            "order": self.order,
            "conflict": self._result(),
            "pending_edits": self.pending_edits,
            "last_error": self.last_error,
        }


class MonitorRegistry:
    """At most one live monitor per operator session."""

    def __init__(self, source=None, poll_seconds: Optional[float] = None):
        self.source = source
        self.poll_seconds = poll_seconds
        self._monitors: Dict[str, OrderConflictMonitor] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def open(self, session_id: str, order_id: str) -> OrderConflictMonitor:
        order_id = order_ref(order_id)
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        async with lock:
            current = self._monitors.get(session_id)
            if current is not None:
                if current.order_id == order_id and current.state != MonitorState.idle:
                    return current
                current.close()

            monitor = OrderConflictMonitor(order_id, source=self.source, poll_seconds=self.poll_seconds)
            self._monitors[session_id] = monitor
            try:
                await monitor.load()
            except DashboardError:
                monitor.close()
                if self._monitors.get(session_id) is monitor:
                    del self._monitors[session_id]
                raise
            return monitor

    def get(self, session_id: str, order_id: Optional[str] = None) -> OrderConflictMonitor:
        monitor = self._monitors.get(session_id)
        if monitor is None or (order_id is not None and monitor.order_id != str(order_id)):
            raise NotFoundError("No open edit session for this order")
        return monitor

    def close(self, session_id: str, order_id: Optional[str] = None) -> bool:
        """Tear down the session's monitor; with `order_id`, only if it watches that order."""
        monitor = self._monitors.get(session_id)
        if monitor is None or (order_id is not None and monitor.order_id != str(order_id)):
            return False
        del self._monitors[session_id]
        monitor.close()
        return True

    def close_all(self):
        for session_id in list(self._monitors):
            self.close(session_id)

    @property
    def live_count(self) -> int:
        return sum(1 for m in self._monitors.values() if m.polling)


monitor_registry = MonitorRegistry()
