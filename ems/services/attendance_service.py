from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from ems.core.exceptions import ConflictError, NotFoundError, ValidationError
from ems.core.permissions import Caller, Capability, authorize
from ems.models.attendance import Attendance, AttendanceStatus
from ems.services.audit import AuditService
from ems.services.base import BaseService
from ems.utils.dates import local_day, month_bounds

HISTORY_LIMIT = 30
_STATUSES = {s.value for s in AttendanceStatus}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class AttendanceService(BaseService):
    """
    Daily check-in/check-out with geo-location capture.
    Leave approval writes into the same table (see LeaveService).
    """

    def check_in(
        self,
        caller: Caller,
        latitude: float,
        longitude: float,
        photo: Optional[str] = None,
        address: Optional[str] = None,
    ) -> Attendance:
        now = _now()
        today = local_day(now)
        record = self._find(caller.user_id, today)
        if record and record.check_in_time:
            raise ValidationError("Already checked in today")

        try:
            with self.atomic():
                if record is None:
                    record = Attendance(user_id=caller.user_id, date=today, created_at=now)
                    self.db.add(record)
                record.check_in_time = now
                record.check_in_latitude = latitude
                record.check_in_longitude = longitude
                record.check_in_address = address
                record.check_in_photo = photo
                record.status = AttendanceStatus.PRESENT.value
                record.updated_at = now
        except IntegrityError:
            raise ConflictError("Attendance for today was recorded concurrently, please retry")

        self.db.refresh(record)
        self.log_info("Checked in", user_id=caller.user_id, date=today.isoformat())
        return record

    def check_out(
        self,
        caller: Caller,
        latitude: float,
        longitude: float,
        photo: Optional[str] = None,
        address: Optional[str] = None,
    ) -> Attendance:
        now = _now()
        record = self._find(caller.user_id, local_day(now))
        if not record or not record.check_in_time:
            raise ValidationError("No check-in record found for today")
        if record.check_out_time:
            raise ValidationError("Already checked out today")

        elapsed = now - _as_utc(record.check_in_time)
        with self.atomic():
            record.check_out_time = now
            record.check_out_latitude = latitude
            record.check_out_longitude = longitude
            record.check_out_address = address
            record.check_out_photo = photo
            record.total_hours = round(elapsed.total_seconds() / 3600, 2)
            record.updated_at = now

        self.db.refresh(record)
        self.log_info("Checked out", user_id=caller.user_id, total_hours=record.total_hours)
        return record

    def monthly_stats(self, user_id: int, month: int, year: int) -> Dict[str, Any]:
        start, end = month_bounds(month, year)
        records = self.db.query(Attendance).filter(
            Attendance.user_id == user_id,
            Attendance.date >= start,
            Attendance.date <= end,
        ).all()

        counts = {status: 0 for status in _STATUSES}
        for r in records:
            counts[r.status] = counts.get(r.status, 0) + 1
        total_hours = sum(r.total_hours or 0.0 for r in records)

        return {
            "present": counts[AttendanceStatus.PRESENT.value],
            "absent": counts[AttendanceStatus.ABSENT.value],
            "late": counts[AttendanceStatus.LATE.value],
            "half_day": counts[AttendanceStatus.HALF_DAY.value],
            "on_leave": counts[AttendanceStatus.ON_LEAVE.value],
            "total_hours": round(total_hours, 2),
            "working_days": (
                counts[AttendanceStatus.PRESENT.value]
                + counts[AttendanceStatus.LATE.value]
                + counts[AttendanceStatus.HALF_DAY.value]
            ),
        }

    def update_status(
        self,
        caller: Caller,
        attendance_id: int,
        status: str,
        notes: Optional[str] = None,
    ) -> Attendance:
        authorize(caller, Capability.MANAGE_ATTENDANCE)
        if status not in _STATUSES:
            raise ValidationError(f"Unknown attendance status '{status}'")
        record = self.db.query(Attendance).filter(Attendance.id == attendance_id).first()
        if not record:
            raise NotFoundError("Attendance record not found")

        before = {"status": record.status, "notes": record.notes}
        with self.atomic():
            record.status = status
            record.notes = notes
            record.updated_at = _now()
            AuditService.log(
                self.db,
                action="update_attendance_status",
                entity_type="attendance",
                entity_id=record.id,
                caller=caller,
                details={"user_id": record.user_id, "date": record.date},
                before_state=before,
                after_state={"status": status, "notes": notes},
            )
        self.db.refresh(record)
        return record

    def history(
        self,
        caller: Caller,
        user_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[Attendance]:
        """Own records, or any user's records for callers who can view everything."""
        target = caller.user_id
        if user_id is not None and caller.can(Capability.VIEW_ALL):
            target = user_id

        query = self.db.query(Attendance).filter(Attendance.user_id == target)
        if start:
            query = query.filter(Attendance.date >= start)
        if end:
            query = query.filter(Attendance.date <= end)
        return query.order_by(Attendance.date.desc()).limit(HISTORY_LIMIT).all()

    def _find(self, user_id: int, day: date) -> Optional[Attendance]:
        return self.db.query(Attendance).filter(
            Attendance.user_id == user_id,
            Attendance.date == day,
        ).first()
