from sqlalchemy import Column, Integer, String, Float, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ems.database import Base
import enum

class SalaryType(str, enum.Enum):
    FIXED = "fixed"
    HOURLY = "hourly"

class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False, index=True)
    employee_code = Column(String, unique=True, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, default="")
    designation = Column(String, nullable=True)
    joining_date = Column(Date, nullable=True)

    salary_type = Column(String, default=SalaryType.FIXED.value)  # Store enum value as string
    salary = Column(Float, default=0.0)  # Monthly amount for fixed salary
    hourly_rate = Column(Float, nullable=True)

    bank_name = Column(String, nullable=True)
    bank_account = Column(String, nullable=True)
    ifsc_code = Column(String, nullable=True)
    account_holder_name = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="employee_profile")

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()

    @property
    def bank_details(self):
        if not self.bank_account:
            return None
        return {
            "bank_name": self.bank_name,
            "account_number": self.bank_account,
            "ifsc_code": self.ifsc_code,
            "account_holder_name": self.account_holder_name,
        }
