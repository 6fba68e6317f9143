"""
models/settlement_log.py  –  COD settlement history

One row per settlement write sent to the hosted database.
The optional idempotency key makes a re-submitted settlement a no-op.
"""

from sqlalchemy import Column, Integer, String, DateTime, DECIMAL, Text, Enum as SAEnum
from sqlalchemy.sql import func
from database import Base
import enum


class SettlementType(str, enum.Enum):
    calendar   = "calendar"     # a day settled from the ledger calendar
    view_tasks = "view_tasks"   # a day settled from its task list


class SettlementLog(Base):
    __tablename__ = "settlement_logs"

    settlement_id   = Column(Integer, primary_key=True, index=True, autoincrement=True)
    idempotency_key = Column(String(100), unique=True, nullable=True, index=True)

    settled_by_id    = Column(String(100), nullable=True)
    settled_by_email = Column(String(255), nullable=True)
    driver_name      = Column(String(255), nullable=True)
    fleet_id         = Column(Integer, nullable=False, index=True)

    amount          = Column(DECIMAL(12, 3), nullable=False)
    reference_total = Column(DECIMAL(12, 3), nullable=True)
    settlement_type = Column(SAEnum(SettlementType), default=SettlementType.calendar)
    date_from       = Column(String(10), nullable=True)
    date_to         = Column(String(10), nullable=True)
    task_count      = Column(Integer, default=0)

    # Snapshot of what the remote returned
    total_paid_after = Column(DECIMAL(12, 3), nullable=True)
    balance_after    = Column(DECIMAL(12, 3), nullable=True)
    message          = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), index=True)
