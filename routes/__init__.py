from .directory import router as directory_router
from .reconciliation import router as reconciliation_router
from .settlements import router as settlements_router
from .orders import router as orders_router
from .withdrawals import router as withdrawals_router
from .wallets import router as wallets_router
from .preferences import router as preferences_router
from .audit import router as audit_router

__all__ = [
    "directory_router",
    "reconciliation_router",
    "settlements_router",
    "orders_router",
    "withdrawals_router",
    "wallets_router",
    "preferences_router",
    "audit_router",
]
