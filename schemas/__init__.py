from .directory import Driver, Merchant
from .ledger import (
    PaymentStatus,
    DailyLedgerEntry,
    RawTask,
    TaskPaymentEntry,
    LedgerDay,
    LedgerTotals,
)
from .orders import OrderRecord, ConflictCheck, TERMINAL_STATUSES
from .withdrawals import WithdrawalRequest, WithdrawalStatus, SubjectType

__all__ = [
    "Driver",
    "Merchant",
    "PaymentStatus",
    "DailyLedgerEntry",
    "RawTask",
    "TaskPaymentEntry",
    "LedgerDay",
    "LedgerTotals",
    "OrderRecord",
    "ConflictCheck",
    "TERMINAL_STATUSES",
    "WithdrawalRequest",
    "WithdrawalStatus",
    "SubjectType",
]
