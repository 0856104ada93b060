import pytest
from datetime import date, datetime, timedelta, timezone

from ems.core.exceptions import NotFoundError, UnauthorizedError, ValidationError
from ems.models.attendance import Attendance, AttendanceStatus
from ems.services import attendance_service
from ems.services.attendance_service import AttendanceService
from ems.services.leave_service import LeaveService

LAT, LNG = 12.9716, 77.5946

def test_check_in_creates_present_record(db_session, employee_caller):
    record = AttendanceService(db_session).check_in(employee_caller, LAT, LNG, address="Office")
    assert record.status == AttendanceStatus.PRESENT.value
    assert record.check_in_time is not None
    assert record.check_in_latitude == LAT
    assert record.check_in_address == "Office"

def test_double_check_in(db_session, employee_caller):
    service = AttendanceService(db_session)
    service.check_in(employee_caller, LAT, LNG)
    with pytest.raises(ValidationError) as exc:
        service.check_in(employee_caller, LAT, LNG)
    assert exc.value.message == "Already checked in today"

def test_check_out_computes_hours(db_session, employee_caller):
    service = AttendanceService(db_session)
    record = service.check_in(employee_caller, LAT, LNG)
    record.check_in_time = datetime.now(timezone.utc) - timedelta(hours=8)
    db_session.commit()

    record = service.check_out(employee_caller, LAT, LNG)
    assert record.check_out_time is not None
    assert record.total_hours == pytest.approx(8.0, abs=0.02)

def test_check_out_without_check_in(db_session, employee_caller):
    with pytest.raises(ValidationError) as exc:
        AttendanceService(db_session).check_out(employee_caller, LAT, LNG)
    assert exc.value.message == "No check-in record found for today"

def test_double_check_out(db_session, employee_caller):
    service = AttendanceService(db_session)
    service.check_in(employee_caller, LAT, LNG)
    service.check_out(employee_caller, LAT, LNG)
    with pytest.raises(ValidationError) as exc:
        service.check_out(employee_caller, LAT, LNG)
    assert exc.value.message == "Already checked out today"

def test_monthly_stats(db_session, employee_caller):
    statuses = [
        AttendanceStatus.PRESENT, AttendanceStatus.PRESENT, AttendanceStatus.LATE,
        AttendanceStatus.HALF_DAY, AttendanceStatus.ABSENT, AttendanceStatus.ON_LEAVE,
    ]
    for day, status in enumerate(statuses, start=1):
        db_session.add(Attendance(
            user_id=employee_caller.user_id,
            date=date(2024, 4, day),
            status=status.value,
            total_hours=8.0 if status in (AttendanceStatus.PRESENT, AttendanceStatus.LATE) else None,
        ))
    db_session.commit()

    stats = AttendanceService(db_session).monthly_stats(employee_caller.user_id, 3, 2024)
    assert stats == {
        "present": 2,
        "absent": 1,
        "late": 1,
        "half_day": 1,
        "on_leave": 1,
        "total_hours": 24.0,
        "working_days": 4,
    }

def test_update_status(db_session, employee_caller, hr_caller):
    service = AttendanceService(db_session)
    record = service.check_in(employee_caller, LAT, LNG)

    updated = service.update_status(hr_caller, record.id, AttendanceStatus.LATE.value, "Traffic")
    assert updated.status == AttendanceStatus.LATE.value
    assert updated.notes == "Traffic"

def test_update_status_rules(db_session, employee_caller, hr_caller):
    service = AttendanceService(db_session)
    record = service.check_in(employee_caller, LAT, LNG)

    with pytest.raises(UnauthorizedError):
        service.update_status(employee_caller, record.id, AttendanceStatus.ABSENT.value)
    with pytest.raises(ValidationError):
        service.update_status(hr_caller, record.id, "vacation")
    with pytest.raises(NotFoundError):
        service.update_status(hr_caller, 999, AttendanceStatus.ABSENT.value)

def test_history_scoping(db_session, employee_caller, hr_caller, make_caller):
    other = make_caller()
    service = AttendanceService(db_session)
    service.check_in(employee_caller, LAT, LNG)
    service.check_in(other, LAT, LNG)

    assert [r.user_id for r in service.history(employee_caller)] == [employee_caller.user_id]
    # A plain employee cannot read someone else's history
    assert [r.user_id for r in service.history(employee_caller, other.user_id)] == [employee_caller.user_id]
    assert [r.user_id for r in service.history(hr_caller, other.user_id)] == [other.user_id]

# 01:30 on 5 March in Asia/Kolkata, still 4 March in UTC
AFTER_LOCAL_MIDNIGHT = datetime(2026, 3, 4, 20, 0, tzinfo=timezone.utc)

def test_check_in_uses_local_calendar_day(db_session, employee_caller, monkeypatch, kolkata_tz):
    service = AttendanceService(db_session)
    monkeypatch.setattr(attendance_service, "_now", lambda: AFTER_LOCAL_MIDNIGHT)
    record = service.check_in(employee_caller, LAT, LNG)
    assert record.date == date(2026, 3, 5)

    monkeypatch.setattr(attendance_service, "_now", lambda: AFTER_LOCAL_MIDNIGHT + timedelta(hours=8))
    record = service.check_out(employee_caller, LAT, LNG)
    assert record.date == date(2026, 3, 5)
    assert record.total_hours == pytest.approx(8.0)

def test_check_in_after_midnight_reuses_leave_day_row(db_session, employee_caller, hr_caller, monkeypatch, kolkata_tz):
    leaves = LeaveService(db_session)
    leave = leaves.submit(employee_caller, "casual", date(2026, 3, 5), date(2026, 3, 5), "Errand")
    leaves.approve(hr_caller, leave.id)

    monkeypatch.setattr(attendance_service, "_now", lambda: AFTER_LOCAL_MIDNIGHT)
    AttendanceService(db_session).check_in(employee_caller, LAT, LNG)

    rows = db_session.query(Attendance).filter(Attendance.user_id == employee_caller.user_id).all()
    assert [r.date for r in rows] == [date(2026, 3, 5)]
    assert rows[0].check_in_time is not None
