from typing import Optional

from sqlalchemy.orm import Session

from ems.core.exceptions import ValidationError
from ems.models.employee import Employee, SalaryType
from ems.models.user import User, UserRole
from ems.services.leave_service import LeaveService
from ems.utils import dates

_CODE_PREFIX = {UserRole.ADMIN: "ADM", UserRole.HR: "HR", UserRole.EMPLOYEE: "EMP"}


def generate_employee_code(role: UserRole, user_id: int) -> str:
    # Keyed on the user id so concurrent provisions cannot collide
    return f"{_CODE_PREFIX[role]}{user_id:04d}"


def provision_employee(
    db: Session,
    email: str,
    full_name: str,
    role: UserRole = UserRole.EMPLOYEE,
    salary_type: str = SalaryType.FIXED.value,
    salary: float = 0.0,
    hourly_rate: Optional[float] = None,
    designation: Optional[str] = None,
) -> Employee:
    """
    Create a user, its employee profile and the current year's leave balance
    in one transaction.
    """
    if salary_type not in {t.value for t in SalaryType}:
        raise ValidationError(f"Unknown salary type '{salary_type}'")
    if db.query(User).filter(User.email == email.lower()).first():
        raise ValidationError(f"User {email} already exists")

    first_name, _, last_name = full_name.partition(" ")
    try:
        user = User(email=email.lower(), full_name=full_name, role=role, is_active=True)
        db.add(user)
        db.flush()

        employee = Employee(
            user_id=user.id,
            employee_code=generate_employee_code(role, user.id),
            first_name=first_name,
            last_name=last_name,
            designation=designation or ("HR Executive" if role == UserRole.HR else "Employee"),
            joining_date=dates.today(),
            salary_type=salary_type,
            salary=salary,
            hourly_rate=hourly_rate,
        )
        db.add(employee)
        LeaveService(db).provision_balance(user.id, commit=False)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(employee)
    return employee
