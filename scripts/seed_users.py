from ems.core.exceptions import ValidationError
from ems.core.security import create_access_token
from ems.database import SessionLocal, init_db
from ems.models.employee import SalaryType
from ems.models.user import UserRole
from ems.services.employee_service import provision_employee

init_db()
db = SessionLocal()

def create_employee(email, full_name, role, **profile):
    # provision_employee refuses duplicate emails
    try:
        employee = provision_employee(db, email, full_name, role=role, **profile)
    except ValidationError as e:
        print(f"{e.message}. Skipping.")
        return
    token = create_access_token({"sub": str(employee.user_id), "role": role.value})
    print(f"Created {role.value} -> {email} ({employee.employee_code})")
    print(f"  token: {token}")

try:
    # Admin
    create_employee("admin@example.com", "System Admin", UserRole.ADMIN, salary=90000)

    # HR
    create_employee("hr@example.com", "Helen Reyes", UserRole.HR, salary=45000)

    # Fixed-salary employee
    create_employee("employee@example.com", "Evan Stone", UserRole.EMPLOYEE, salary=30000)

    # Hourly employee
    create_employee(
        "contractor@example.com",
        "Casey Hale",
        UserRole.EMPLOYEE,
        salary_type=SalaryType.HOURLY.value,
        hourly_rate=500,
    )
finally:
    db.close()
