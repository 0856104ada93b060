# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (  # noqa: F401
    user, employee,
    leave_balance, leave_request,
    attendance, salary, audit_log
)

# Explicit class exports for cleaner imports
from .user import User, UserRole
from .employee import Employee, SalaryType
from .leave_balance import LeaveBalance
from .leave_request import LeaveRequest, LeaveStatus, LeaveType
from .attendance import Attendance, AttendanceStatus
from .salary import Salary, SalaryDeduction, SalaryStatus
from .audit_log import AuditLog

__all__ = [
    "User",
    "UserRole",
    "Employee",
    "SalaryType",
    "LeaveBalance",
    "LeaveRequest",
    "LeaveStatus",
    "LeaveType",
    "Attendance",
    "AttendanceStatus",
    "Salary",
    "SalaryDeduction",
    "SalaryStatus",
    "AuditLog",
]
