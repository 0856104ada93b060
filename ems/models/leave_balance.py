from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ems.database import Base

FUNDED_LEAVE_TYPES = ("sick", "casual", "earned", "maternity", "paternity")

class LeaveBalance(Base):
    """One row per (user, year): allocated and used days for each funded leave type."""
    __tablename__ = "leave_balances"
    __table_args__ = (UniqueConstraint("user_id", "year", name="uq_leave_balance_user_year"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    year = Column(Integer, nullable=False)

    sick = Column(Float, default=0.0, nullable=False)
    casual = Column(Float, default=0.0, nullable=False)
    earned = Column(Float, default=0.0, nullable=False)
    maternity = Column(Float, default=0.0, nullable=False)
    paternity = Column(Float, default=0.0, nullable=False)

    used_sick = Column(Float, default=0.0, nullable=False)
    used_casual = Column(Float, default=0.0, nullable=False)
    used_earned = Column(Float, default=0.0, nullable=False)
    used_maternity = Column(Float, default=0.0, nullable=False)
    used_paternity = Column(Float, default=0.0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="leave_balances")

    def allocated(self, leave_type: str) -> float:
        return getattr(self, leave_type) or 0.0

    def used(self, leave_type: str) -> float:
        return getattr(self, f"used_{leave_type}") or 0.0

    def available(self, leave_type: str) -> float:
        return self.allocated(leave_type) - self.used(leave_type)
