from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import Dict, Optional
from ems.models.leave_balance import FUNDED_LEAVE_TYPES

class LeaveRequestCreate(BaseModel):
    leave_type: str
    start_date: date
    end_date: date
    reason: str

class LeaveRejectRequest(BaseModel):
    reason: Optional[str] = None

class LeaveRequestResponse(BaseModel):
    id: int
    user_id: int
    leave_type: str
    start_date: date
    end_date: date
    days: float
    reason: str
    status: str
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class LeaveBalanceResponse(BaseModel):
    user_id: int
    year: int
    allocated: Dict[str, float]
    used: Dict[str, float]
    available: Dict[str, float]

    @classmethod
    def from_balance(cls, balance) -> "LeaveBalanceResponse":
        return cls(
            user_id=balance.user_id,
            year=balance.year,
            allocated={t: balance.allocated(t) for t in FUNDED_LEAVE_TYPES},
            used={t: balance.used(t) for t in FUNDED_LEAVE_TYPES},
            available={t: balance.available(t) for t in FUNDED_LEAVE_TYPES},
        )

class LeaveAllocationUpdate(BaseModel):
    leave_type: str
    amount: float = Field(..., ge=0)
    year: Optional[int] = None
