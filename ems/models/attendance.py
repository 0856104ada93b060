from sqlalchemy import Column, Integer, String, Date, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from ems.database import Base
import enum

class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    HALF_DAY = "half-day"
    LATE = "late"
    ON_LEAVE = "on-leave"

class Attendance(Base):
    """One row per (user, calendar date)."""
    __tablename__ = "attendance"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_attendance_user_date"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)

    check_in_time = Column(DateTime(timezone=True), nullable=True)
    check_in_latitude = Column(Float, nullable=True)
    check_in_longitude = Column(Float, nullable=True)
    check_in_address = Column(String, nullable=True)
    check_in_photo = Column(String, nullable=True)

    check_out_time = Column(DateTime(timezone=True), nullable=True)
    check_out_latitude = Column(Float, nullable=True)
    check_out_longitude = Column(Float, nullable=True)
    check_out_address = Column(String, nullable=True)
    check_out_photo = Column(String, nullable=True)

    total_hours = Column(Float, nullable=True)
    status = Column(String, default=AttendanceStatus.PRESENT.value)
    notes = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
