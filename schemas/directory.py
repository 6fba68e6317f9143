from typing import Optional
from pydantic import BaseModel


class Driver(BaseModel):
    id: str
    fleet_id: Optional[int] = None
    name: str
    phone: str = ""


class Merchant(BaseModel):
    id: str
    vendor_id: Optional[int] = None
    name: str
    phone: str = ""
