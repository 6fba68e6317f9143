"""
services/withdrawals.py  –  Approving and rejecting wallet withdrawal requests

Approval pays the amount out of the merchant or driver wallet on Tookan
first; the request only flips to approved once that payout went through.
Every status change is one conditional write (the row must still be
pending) followed by a full reload of the list; nothing is patched locally.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from schemas import SubjectType, WithdrawalRequest, WithdrawalStatus
from services.normalize import normalize_withdrawal, to_int
from utils.errors import BusinessRuleError, NotFoundError

logger = logging.getLogger(__name__)


def pending_total(subject_type: SubjectType, subject_id, requests: List[WithdrawalRequest]) -> Decimal:
    subject_id = str(subject_id)
    return sum(
        (
            r.amount_requested
            for r in requests
            if r.subject_type == subject_type
            and r.subject_id == subject_id
            and r.status == WithdrawalStatus.pending
        ),
        Decimal("0"),
    )


class WithdrawalGate:
    # request ids with a payout in flight, shared by every gate in the process
    _approving: set = set()

    def __init__(self, source=None, wallets=None):
        if source is None:
            from services.supabase_client import supabase
            source = supabase
        if wallets is None:
            from services.tookan_client import tookan
            wallets = tookan
        self.source = source
        self.wallets = wallets

    async def list_requests(self) -> List[WithdrawalRequest]:
        rows = await self.source.list_withdrawals()
        return [normalize_withdrawal(row) for row in rows]

    async def _pending(self, request_id: str) -> WithdrawalRequest:
        requests = await self.list_requests()
        current = next((r for r in requests if r.id == request_id), None)
        if current is None:
            raise NotFoundError(f"Withdrawal request {request_id} not found")
        if current.status != WithdrawalStatus.pending:
            raise BusinessRuleError(f"Request is already {current.status.value.lower()}")
        return current

    async def approve(self, request_id: str, actor=None) -> dict:
        request_id = str(request_id)
        if request_id in self._approving:
            raise BusinessRuleError(f"Withdrawal request {request_id} is already being approved")
        self._approving.add(request_id)
        try:
            request = await self._pending(request_id)
            subject_id = to_int(request.subject_id)
            if subject_id is None:
                raise BusinessRuleError(f"Withdrawal request {request_id} has no {request.subject_type.value} wallet")

            await self.wallets.wallet_withdrawal(request.subject_type.value, subject_id, request.amount_requested)
            logger.info(
                f"💸 Paid {request.amount_requested} out of {request.subject_type.value} "
                f"{subject_id} wallet for request {request_id}"
            )
            return await self._decide(request_id, "approved", actor=actor)
        finally:
            self._approving.discard(request_id)

    async def reject(self, request_id: str, reason: Optional[str] = None, actor=None) -> dict:
        return await self._decide(str(request_id), "rejected", reason=reason, actor=actor)

    async def _decide(self, request_id: str, decision: str, reason: Optional[str] = None, actor=None) -> dict:
        now = datetime.utcnow().isoformat()
        decided_by = getattr(actor, "user_id", None)
        if decision == "approved":
            values = {"status": decision, "approved_at": now, "approved_by": decided_by}
        else:
            values = {
                "status": decision,
                "rejected_at": now,
                "rejected_by": decided_by,
                "rejection_reason": (reason or "").strip() or None,
            }

        changed = await self.source.decide_withdrawal(request_id, values)
        requests = await self.list_requests()

        if not changed:
            current = next((r for r in requests if r.id == request_id), None)
            if current is None:
                raise NotFoundError(f"Withdrawal request {request_id} not found")
            if decision == "approved":
                logger.error(f"❌ Withdrawal request {request_id} was paid out but is now {current.status.value}")
            raise BusinessRuleError(f"Request is already {current.status.value.lower()}")

        logger.info(f"💸 Withdrawal request {request_id} {decision}")
        return {
            "status": "success",
            "message": f"Withdrawal request {decision}",
            "requests": requests,
        }
