"""
utils/dependencies.py  –  FastAPI dependencies shared by the routers

The upstream gateway authenticates operators and forwards who they are:

    X-User-Id      operator id
    X-User-Email   operator email (written to settlement and audit logs)
    X-Permissions  comma separated permission names
    X-Session-Id   dashboard tab/session; defaults to the user id

Service getters exist so tests can swap a service through
app.dependency_overrides without touching the network.
"""

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db

logger = logging.getLogger(__name__)

PERMISSIONS = (
    "edit_order_financials",
    "manage_wallets",
    "perform_reorder",
    "perform_return",
    "delete_ongoing_orders",
    "export_reports",
    "add_cod",
    "confirm_cod_payments",
    "manage_users",
)


@dataclass(frozen=True)
class Actor:
    user_id: Optional[str] = None
    email: Optional[str] = None
    permissions: FrozenSet[str] = field(default_factory=frozenset)
    session_id: str = "anonymous"

    def has(self, permission: str) -> bool:
        return permission in self.permissions


def parse_permissions(raw: Optional[str]) -> FrozenSet[str]:
    if not raw:
        return frozenset()
    names = {p.strip() for p in raw.split(",") if p.strip()}
    unknown = names.difference(PERMISSIONS)
    if unknown:
        logger.warning(f"⚠️ Ignoring unknown permissions: {', '.join(sorted(unknown))}")
    return frozenset(names.intersection(PERMISSIONS))


def get_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    x_permissions: Optional[str] = Header(None),
    x_session_id: Optional[str] = Header(None),
) -> Actor:
    return Actor(
        user_id=x_user_id,
        email=x_user_email,
        permissions=parse_permissions(x_permissions),
        session_id=x_session_id or x_user_id or "anonymous",
    )


def require_permission(permission: str):
    def checker(actor: Actor = Depends(get_actor)) -> Actor:
        if not actor.has(permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission '{permission}' required",
            )
        return actor
    return checker


# ── service getters ──────────────────────────────────────────────────────────

def get_ledger_aggregator():
    from services.ledger import LedgerAggregator
    return LedgerAggregator()


def get_settlement_recorder(db: Session = Depends(get_db)):
    from services.settlement import SettlementRecorder
    return SettlementRecorder(db)


def get_directory():
    from services.directory import DirectoryService
    return DirectoryService()


def get_withdrawal_gate():
    from services.withdrawals import WithdrawalGate
    return WithdrawalGate()


def get_wallet_service():
    from services.wallets import WalletService
    return WalletService()


def get_order_actions():
    from services.orders import OrderActions
    return OrderActions()


def get_monitor_registry():
    from services.order_monitor import monitor_registry
    return monitor_registry


def get_override_cache():
    from services.overrides import override_cache
    return override_cache
