from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ems.core.permissions import Caller
from ems.core.schemas import ok
from ems.database import get_db
from ems.routers.auth_deps import get_current_caller
from ems.schemas.attendance import AttendanceResponse, AttendanceStatusUpdate, GeoCapture
from ems.services.attendance_service import AttendanceService
from ems.utils import dates

router = APIRouter(prefix="/attendance", tags=["attendance"])


def _record(record) -> dict:
    return AttendanceResponse.model_validate(record).model_dump()


@router.post("/check-in")
def check_in(
    capture: GeoCapture,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    record = AttendanceService(db).check_in(
        caller, capture.latitude, capture.longitude, photo=capture.photo, address=capture.address
    )
    return ok(attendance=_record(record))


@router.post("/check-out")
def check_out(
    capture: GeoCapture,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    record = AttendanceService(db).check_out(
        caller, capture.latitude, capture.longitude, photo=capture.photo, address=capture.address
    )
    return ok(attendance=_record(record), total_hours=record.total_hours)


@router.get("/stats")
def attendance_stats(
    month: Optional[int] = None,
    year: Optional[int] = None,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    today = dates.today()
    month = today.month - 1 if month is None else month
    year = today.year if year is None else year
    return ok(stats=AttendanceService(db).monthly_stats(caller.user_id, month, year))


@router.get("/history")
def attendance_history(
    user_id: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    records = AttendanceService(db).history(caller, user_id, start, end)
    return ok(data=[_record(r) for r in records])


@router.put("/{attendance_id}")
def update_attendance_status(
    attendance_id: int,
    payload: AttendanceStatusUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    record = AttendanceService(db).update_status(caller, attendance_id, payload.status, payload.notes)
    return ok(attendance=_record(record))
