from datetime import datetime
from decimal import Decimal
from typing import Optional, Union
from pydantic import BaseModel

# Order states after which no financial edit is accepted:
# named states plus platform status codes 6-8.
TERMINAL_STATUSES = frozenset({"delivered", "completed", "cancelled", "6", "7", "8"})

# Unassigned (0) and assigned (1); only these may still be deleted.
ONGOING_STATUSES = frozenset({"0", "1"})


class OrderRecord(BaseModel):
    order_id: str
    customer_name: str = ""
    customer_phone: str = ""
    customer_email: str = ""
    pickup_address: str = ""
    delivery_address: str = ""
    cod_amount: Decimal = Decimal("0")
    order_fees: Decimal = Decimal("0")
    assigned_driver: Optional[int] = None
    assigned_driver_name: str = ""
    notes: str = ""
    status: Optional[Union[int, str]] = None
    last_modified: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        if self.status is None:
            return False
        return str(self.status).strip().lower() in TERMINAL_STATUSES

    @property
    def is_ongoing(self) -> bool:
        if self.status is None:
            return True
        return str(self.status).strip() in ONGOING_STATUSES


class ConflictCheck(BaseModel):
    has_conflict: bool
    local_timestamp: Optional[datetime] = None
    remote_timestamp: Optional[datetime] = None
