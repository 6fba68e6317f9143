from .settlement_log import SettlementLog, SettlementType
from .audit_log import AuditLog
from .user_preference import UserPreference

__all__ = [
    "SettlementLog",
    "SettlementType",
    "AuditLog",
    "UserPreference",
]
