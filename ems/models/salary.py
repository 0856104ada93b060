from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ems.database import Base
import enum

class SalaryStatus(str, enum.Enum):
    DRAFT = "draft"
    PROCESSED = "processed"
    PAID = "paid"

class Salary(Base):
    __tablename__ = "salaries"
    __table_args__ = (UniqueConstraint("user_id", "month", "year", name="uq_salary_user_period"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    month = Column(Integer, nullable=False)  # 0-11
    year = Column(Integer, nullable=False)

    basic_salary = Column(Float, default=0.0)
    hourly_rate = Column(Float, nullable=True)
    hours_worked = Column(Float, default=0.0)
    working_days = Column(Integer, default=0)
    gross_salary = Column(Float, default=0.0)
    net_salary = Column(Float, default=0.0)
    leaves_deducted = Column(Float, default=0.0)
    leave_deduction_amount = Column(Float, default=0.0)

    status = Column(String, default=SalaryStatus.DRAFT.value)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    deductions = relationship(
        "SalaryDeduction",
        back_populates="salary",
        cascade="all, delete-orphan",
        order_by="SalaryDeduction.id",
    )

    @property
    def total_deductions(self) -> float:
        return sum(d.amount for d in self.deductions)

class SalaryDeduction(Base):
    __tablename__ = "salary_deductions"

    id = Column(Integer, primary_key=True, index=True)
    salary_id = Column(Integer, ForeignKey("salaries.id"), nullable=False)
    name = Column(String, nullable=False)
    amount = Column(Float, nullable=False)

    salary = relationship("Salary", back_populates="deductions")
