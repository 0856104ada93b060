from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ems.core.permissions import Caller
from ems.core.schemas import ok
from ems.database import get_db
from ems.routers.auth_deps import get_current_caller
from ems.schemas.leave import (
    LeaveAllocationUpdate,
    LeaveBalanceResponse,
    LeaveRejectRequest,
    LeaveRequestCreate,
    LeaveRequestResponse,
)
from ems.services.leave_service import LeaveService

router = APIRouter(
    prefix="/leaves",
    tags=["leaves"]
)


def _leave_payload(leave) -> dict:
    return LeaveRequestResponse.model_validate(leave).model_dump()


@router.post("")
def apply_leave(
    request: LeaveRequestCreate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    leave = LeaveService(db).submit(
        caller, request.leave_type, request.start_date, request.end_date, request.reason
    )
    return ok(leave=_leave_payload(leave))


@router.get("")
def list_leaves(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    leaves = LeaveService(db).list_leaves(caller, status)
    return ok(data=[_leave_payload(l) for l in leaves])


@router.post("/{leave_id}/approve")
def approve_leave(
    leave_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    leave = LeaveService(db).approve(caller, leave_id)
    return ok(leave=_leave_payload(leave))


@router.post("/{leave_id}/reject")
def reject_leave(
    leave_id: int,
    payload: Optional[LeaveRejectRequest] = None,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    reason = payload.reason if payload else None
    leave = LeaveService(db).reject(caller, leave_id, reason)
    return ok(leave=_leave_payload(leave))


@router.get("/balance")
def get_leave_balance(
    year: Optional[int] = None,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    balance = LeaveService(db).get_balance(caller.user_id, year)
    return ok(balance=LeaveBalanceResponse.from_balance(balance).model_dump())


@router.put("/balance/{user_id}")
def update_leave_balance(
    user_id: int,
    payload: LeaveAllocationUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    balance = LeaveService(db).adjust_allocation(
        caller, user_id, payload.leave_type, payload.amount, payload.year
    )
    return ok(balance=LeaveBalanceResponse.from_balance(balance).model_dump())
