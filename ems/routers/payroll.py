"""
Salary Router

Handles HTTP endpoints for payroll operations.
All business logic is delegated to the payroll service layer.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ems.core.permissions import Caller
from ems.core.schemas import ok
from ems.database import get_db
from ems.routers.auth_deps import get_current_caller
from ems.schemas.salary import SalaryCalculateRequest
from ems.services import payroll_service


router = APIRouter(
    prefix="/salaries",
    tags=["salaries"],
)


@router.post("/calculate")
def calculate_salary(
    request: SalaryCalculateRequest,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """
    Calculate the draft salary of one employee for one month.
    """
    if request.period:
        salary = payroll_service.calculate_salary_by_month(db, caller, request.user_id, request.period)
    else:
        salary = payroll_service.calculate_salary(db, caller, request.user_id, request.month, request.year)
    return ok(salary=salary)


@router.get("")
def list_salaries(
    month: Optional[int] = None,
    year: Optional[int] = None,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return ok(data=payroll_service.list_salaries(db, caller, month, year))


@router.get("/history")
def get_salary_history(
    user_id: Optional[int] = None,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return ok(data=payroll_service.get_salary_history(db, caller, user_id))


@router.post("/{salary_id}/process")
def process_salary(
    salary_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return ok(salary=payroll_service.process_salary(db, caller, salary_id))


@router.post("/{salary_id}/pay")
def mark_salary_paid(
    salary_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return ok(salary=payroll_service.mark_salary_paid(db, caller, salary_id))


@router.get("/{salary_id}/payslip")
def get_payslip(
    salary_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return ok(payslip=payroll_service.generate_payslip(db, caller, salary_id))
