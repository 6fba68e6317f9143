"""
services/overrides.py  –  Unsaved per-day payment edits of an operator session

Overrides belong to the ledger query that produced them: (driver, from, to).
Selecting a different query drops everything recorded under the old one.
Days confirmed by a settlement move from `overrides` to `settled`.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, Optional, Tuple

from schemas import PaymentStatus
from utils.errors import ValidationError

logger = logging.getLogger(__name__)

QueryKey = Tuple[str, date, date]


def query_key(driver_id, date_from: date, date_to: date) -> QueryKey:
    return (str(driver_id), date_from, date_to)


@dataclass
class DayOverride:
    amount_paid: Decimal
    status: PaymentStatus


@dataclass
class SessionOverlay:
    key: QueryKey
    overrides: Dict[date, DayOverride] = field(default_factory=dict)
    settled: Dict[date, DayOverride] = field(default_factory=dict)


class PaymentOverrideCache:
    def __init__(self):
        self._sessions: Dict[str, SessionOverlay] = {}
        self._lock = threading.Lock()

    def select(self, session_id: str, key: QueryKey) -> SessionOverlay:
        """Make `key` the session's current query, invalidating a different one."""
        with self._lock:
            overlay = self._sessions.get(session_id)
            if overlay is None or overlay.key != key:
                if overlay is not None and (overlay.overrides or overlay.settled):
                    logger.info(
                        f"Selection changed for session {session_id}: dropping "
                        f"{len(overlay.overrides)} override(s) of {overlay.key}"
                    )
                overlay = SessionOverlay(key=key)
                self._sessions[session_id] = overlay
            return overlay

    def current(self, session_id: str, key: QueryKey) -> Optional[SessionOverlay]:
        overlay = self._sessions.get(session_id)
        if overlay is None or overlay.key != key:
            return None
        return overlay

    def _require_current(self, session_id: str, key: QueryKey) -> SessionOverlay:
        overlay = self.current(session_id, key)
        if overlay is None:
            raise ValidationError(
                "The ledger selection changed; reload the ledger before editing payments"
            )
        return overlay

    def set_override(
        self,
        session_id: str,
        key: QueryKey,
        day: date,
        amount_paid: Decimal,
        status: PaymentStatus,
    ) -> DayOverride:
        if amount_paid < 0:
            raise ValidationError("Amount paid cannot be negative")
        _, date_from, date_to = key
        if not (date_from <= day <= date_to):
            raise ValidationError(f"{day.isoformat()} is outside the selected range")

        with self._lock:
            overlay = self._require_current(session_id, key)
            entry = DayOverride(amount_paid=amount_paid, status=status)
            overlay.overrides[day] = entry
            return entry

    def overrides(self, session_id: str, key: QueryKey) -> Dict[date, DayOverride]:
        overlay = self.current(session_id, key)
        return dict(overlay.overrides) if overlay else {}

    def settled(self, session_id: str, key: QueryKey) -> Dict[date, DayOverride]:
        overlay = self.current(session_id, key)
        return dict(overlay.settled) if overlay else {}

    def mark_settled(
        self,
        session_id: str,
        key: QueryKey,
        day: date,
        amount_paid: Decimal,
        status: PaymentStatus = PaymentStatus.completed,
    ):
        """Record a day confirmed by the remote and clear its override. A stale key is ignored."""
        with self._lock:
            overlay = self.current(session_id, key)
            if overlay is None:
                return
            overlay.overrides.pop(day, None)
            previous = overlay.settled.get(day)
            total = amount_paid + (previous.amount_paid if previous else Decimal("0"))
            overlay.settled[day] = DayOverride(amount_paid=total, status=status)

    def clear_dates(self, session_id: str, key: QueryKey, days: Iterable[date]):
        with self._lock:
            overlay = self.current(session_id, key)
            if overlay is None:
                return
            for day in days:
                overlay.overrides.pop(day, None)


override_cache = PaymentOverrideCache()
