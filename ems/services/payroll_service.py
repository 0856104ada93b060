"""
Payroll Service Layer

Computes one employee's pay for one calendar month from raw attendance and
approved unpaid leave, and persists it idempotently per (employee, month, year).

Architecture:
- Router -> Service (this module) -> Models
- `compute_pay` is pure; everything else handles lookups, guards and persistence

Rules:
- fixed salary: per-day pay is salary / 30 regardless of the month's length;
  unpaid leave days inside the month are deducted at that rate.
- hourly salary: hours worked * hourly rate. Unpaid leave produces no hours, so
  no separate leave deduction line exists for hourly employees.
- Deductions from gross: PF at 12%, professional tax of 200 above 15000.
- Salary status: draft -> processed -> paid. A paid month is never recalculated.
"""

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ems.core.config import settings
from ems.core.exceptions import (
    AlreadyPaidError,
    EmployeeNotFoundError,
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from ems.core.permissions import Caller, Capability, authorize
from ems.models.attendance import Attendance, AttendanceStatus
from ems.models.employee import Employee, SalaryType
from ems.models.leave_request import LeaveRequest, LeaveStatus, LeaveType
from ems.models.salary import Salary, SalaryDeduction, SalaryStatus
from ems.services.audit import AuditService
from ems.utils import dates
from ems.utils.dates import month_bounds, overlap_days, parse_month

logger = logging.getLogger(__name__)

_WORKING_STATUSES = (AttendanceStatus.PRESENT.value, AttendanceStatus.LATE.value)


@dataclass
class PayBreakdown:
    basic_salary: float
    gross_salary: float
    net_salary: float
    hours_worked: float
    working_days: int
    leaves_deducted: int
    leave_deduction_amount: float
    hourly_rate: Optional[float] = None
    deductions: List[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "basic_salary": self.basic_salary,
            "gross_salary": self.gross_salary,
            "net_salary": self.net_salary,
            "deductions": list(self.deductions),
            "hours_worked": self.hours_worked,
            "leaves_deducted": self.leaves_deducted,
            "leave_deduction_amount": self.leave_deduction_amount,
            "working_days": self.working_days,
        }


def standard_deductions(gross_salary: float) -> List[Dict[str, Any]]:
    """Built-in deductions computed from gross pay."""
    rules = settings.payroll
    professional_tax = rules.professional_tax if gross_salary > rules.professional_tax_threshold else 0.0
    return [
        {"name": f"PF ({rules.pf_rate * 100:g}%)", "amount": gross_salary * rules.pf_rate},
        {"name": "Professional Tax", "amount": professional_tax},
    ]


def unpaid_leave_days(leaves: Sequence[LeaveRequest], month_start: date, month_end: date) -> int:
    """Days of each leave that fall inside the month, summed."""
    return sum(
        overlap_days(leave.start_date, leave.end_date, month_start, month_end)
        for leave in leaves
    )


def compute_pay(
    employee: Employee,
    attendance: Sequence[Attendance],
    unpaid_leaves: Sequence[LeaveRequest],
    month_start: date,
    month_end: date,
) -> PayBreakdown:
    """
    Pure salary computation for one employee and one month.

    Args:
        employee: Employee carrying salary_type, salary and hourly_rate
        attendance: Attendance rows dated inside the month
        unpaid_leaves: Approved unpaid leaves intersecting the month
        month_start: First day of the month
        month_end: Last day of the month

    Returns:
        PayBreakdown with basic/gross/net pay and the deduction lines
    """
    working_days = sum(1 for a in attendance if a.status in _WORKING_STATUSES)
    total_hours = sum(a.total_hours or 0.0 for a in attendance)
    leave_days = unpaid_leave_days(unpaid_leaves, month_start, month_end)

    if employee.salary_type == SalaryType.HOURLY.value:
        hourly_rate = employee.hourly_rate or 0.0
        basic_salary = total_hours * hourly_rate
        leave_deduction_amount = 0.0
        gross_salary = basic_salary
    else:
        hourly_rate = employee.hourly_rate
        basic_salary = employee.salary or 0.0
        per_day_salary = basic_salary / settings.payroll.per_day_divisor
        leave_deduction_amount = per_day_salary * leave_days
        gross_salary = basic_salary - leave_deduction_amount

    deductions = standard_deductions(gross_salary)
    net_salary = gross_salary - sum(d["amount"] for d in deductions)

    return PayBreakdown(
        basic_salary=basic_salary,
        gross_salary=gross_salary,
        net_salary=net_salary,
        hours_worked=total_hours,
        working_days=working_days,
        leaves_deducted=leave_days,
        leave_deduction_amount=leave_deduction_amount,
        hourly_rate=hourly_rate,
        deductions=deductions,
    )


def calculate_salary(
    db: Session,
    caller: Caller,
    user_id: int,
    month: int,
    year: int,
) -> Dict[str, Any]:
    """
    Calculate and store the draft salary of one employee for one month.

    Args:
        db: Database session
        caller: Identity of the requester (admin or hr)
        user_id: User id of the employee
        month: Zero-based month (0-11)
        year: Calendar year

    Returns:
        Dict with the stored salary record and its breakdown
    """
    authorize(caller, Capability.MANAGE_PAYROLL)
    if user_id is None or month is None or year is None:
        raise ValidationError("Employee, month and year are required")
    month_start, month_end = month_bounds(month, year)

    employee = db.query(Employee).filter(Employee.user_id == user_id).first()
    if not employee:
        raise EmployeeNotFoundError()

    existing = _find_salary(db, user_id, month, year)
    if existing and existing.status == SalaryStatus.PAID.value:
        logger.warning("Recalculation refused for paid salary", extra={"salary_id": existing.id})
        raise AlreadyPaidError()

    attendance = db.query(Attendance).filter(
        Attendance.user_id == user_id,
        Attendance.date >= month_start,
        Attendance.date <= month_end,
    ).all()
    unpaid_leaves = db.query(LeaveRequest).filter(
        LeaveRequest.user_id == user_id,
        LeaveRequest.leave_type == LeaveType.UNPAID.value,
        LeaveRequest.status == LeaveStatus.APPROVED.value,
        LeaveRequest.start_date <= month_end,
        LeaveRequest.end_date >= month_start,
    ).all()

    breakdown = compute_pay(employee, attendance, unpaid_leaves, month_start, month_end)

    try:
        salary = _store(db, caller, existing, user_id, month, year, breakdown)
    except IntegrityError:
        # Another calculation inserted the same period first; overwrite it instead
        db.rollback()
        existing = _find_salary(db, user_id, month, year)
        if existing is None:
            raise
        if existing.status == SalaryStatus.PAID.value:
            raise AlreadyPaidError()
        salary = _store(db, caller, existing, user_id, month, year, breakdown)

    logger.info(
        f"Salary calculated for user {user_id} ({month + 1}/{year})",
        extra={"salary_id": salary.id, "net_salary": breakdown.net_salary},
    )
    result = _salary_to_dict(salary)
    result.update(breakdown.as_dict())
    return result


def calculate_salary_by_month(db: Session, caller: Caller, user_id: int, month: str) -> Dict[str, Any]:
    """Same as calculate_salary with the period given as "YYYY-MM"."""
    authorize(caller, Capability.MANAGE_PAYROLL)
    month0, year = parse_month(month)
    return calculate_salary(db, caller, user_id, month0, year)


def process_salary(db: Session, caller: Caller, salary_id: int) -> Dict[str, Any]:
    """draft -> processed"""
    return _transition(db, caller, salary_id, SalaryStatus.DRAFT, SalaryStatus.PROCESSED)


def mark_salary_paid(db: Session, caller: Caller, salary_id: int) -> Dict[str, Any]:
    """processed -> paid"""
    return _transition(db, caller, salary_id, SalaryStatus.PROCESSED, SalaryStatus.PAID)


def list_salaries(
    db: Session,
    caller: Caller,
    month: Optional[int] = None,
    year: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Salaries of a month (default: current); employees only see their own."""
    today = dates.today()
    month = today.month - 1 if month is None else month
    year = today.year if year is None else year
    month_bounds(month, year)

    query = db.query(Salary).filter(Salary.month == month, Salary.year == year)
    if not caller.can(Capability.VIEW_ALL):
        query = query.filter(Salary.user_id == caller.user_id)
    salaries = query.order_by(Salary.created_at.desc(), Salary.id.desc()).all()

    employees = _employees_by_user(db, [s.user_id for s in salaries])
    results = []
    for s in salaries:
        item = _salary_to_dict(s)
        emp = employees.get(s.user_id)
        item["employee_name"] = emp.name if emp else "Unknown"
        item["employee_code"] = emp.employee_code if emp else "N/A"
        item["salary_type"] = emp.salary_type if emp else SalaryType.FIXED.value
        results.append(item)
    return results


def get_salary_history(db: Session, caller: Caller, user_id: Optional[int] = None, limit: int = 12) -> List[Dict[str, Any]]:
    """Most recent salary records of one employee, newest period first."""
    target = user_id if user_id is not None else caller.user_id
    if not caller.owns(target):
        authorize(caller, Capability.VIEW_ALL)
    salaries = db.query(Salary).filter(
        Salary.user_id == target
    ).order_by(Salary.year.desc(), Salary.month.desc()).limit(limit).all()
    return [_salary_to_dict(s) for s in salaries]


def generate_payslip(db: Session, caller: Caller, salary_id: int) -> Dict[str, Any]:
    """
    Build the payslip view of a salary record.
    Employees may only read their own payslips.
    """
    salary = db.query(Salary).filter(Salary.id == salary_id).first()
    if not salary:
        raise NotFoundError("Salary record not found")
    if not caller.can(Capability.VIEW_ALL) and not caller.owns(salary.user_id):
        raise UnauthorizedError()

    employee = db.query(Employee).filter(Employee.user_id == salary.user_id).first()
    return {
        "company_name": settings.company_name,
        "employee_name": employee.name if employee else "Unknown",
        "employee_code": employee.employee_code if employee else None,
        "designation": employee.designation if employee else None,
        "month": calendar.month_name[salary.month + 1],
        "year": salary.year,
        "basic_salary": salary.basic_salary,
        "gross_salary": salary.gross_salary,
        "net_salary": salary.net_salary,
        "deductions": [{"name": d.name, "amount": d.amount} for d in salary.deductions],
        "hours_worked": salary.hours_worked,
        "leaves_deducted": salary.leaves_deducted,
        "leave_deduction_amount": salary.leave_deduction_amount,
        "bank_details": employee.bank_details if employee else None,
        "status": salary.status,
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }


def _find_salary(db: Session, user_id: int, month: int, year: int) -> Optional[Salary]:
    return db.query(Salary).filter(
        Salary.user_id == user_id,
        Salary.month == month,
        Salary.year == year,
    ).populate_existing().first()


def _store(
    db: Session,
    caller: Caller,
    existing: Optional[Salary],
    user_id: int,
    month: int,
    year: int,
    breakdown: PayBreakdown,
) -> Salary:
    """Upsert the salary row; the overwrite is a compare-and-set against paid."""
    now = datetime.now(timezone.utc)
    values = {
        Salary.basic_salary: breakdown.basic_salary,
        Salary.hourly_rate: breakdown.hourly_rate,
        Salary.hours_worked: breakdown.hours_worked,
        Salary.working_days: breakdown.working_days,
        Salary.gross_salary: breakdown.gross_salary,
        Salary.net_salary: breakdown.net_salary,
        Salary.leaves_deducted: breakdown.leaves_deducted,
        Salary.leave_deduction_amount: breakdown.leave_deduction_amount,
        Salary.status: SalaryStatus.DRAFT.value,
        Salary.updated_at: now,
    }
    try:
        if existing:
            updated = db.query(Salary).filter(
                Salary.id == existing.id,
                Salary.status != SalaryStatus.PAID.value,
            ).update(values, synchronize_session=False)
            if updated != 1:
                raise AlreadyPaidError()
            db.query(SalaryDeduction).filter(
                SalaryDeduction.salary_id == existing.id
            ).delete(synchronize_session=False)
            salary_id = existing.id
            for d in breakdown.deductions:
                db.add(SalaryDeduction(salary_id=salary_id, name=d["name"], amount=d["amount"]))
            action = "recalculate_salary"
        else:
            salary = Salary(
                user_id=user_id,
                month=month,
                year=year,
                created_at=now,
                **{col.key: value for col, value in values.items()},
            )
            salary.deductions = [SalaryDeduction(name=d["name"], amount=d["amount"]) for d in breakdown.deductions]
            db.add(salary)
            db.flush()
            salary_id = salary.id
            action = "calculate_salary"

        AuditService.log(
            db,
            action=action,
            entity_type="salary",
            entity_id=salary_id,
            caller=caller,
            details={"user_id": user_id, "month": month, "year": year},
            after_state={"gross_salary": breakdown.gross_salary, "net_salary": breakdown.net_salary},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    salary = db.query(Salary).filter(Salary.id == salary_id).populate_existing().one()
    return salary


def _transition(
    db: Session,
    caller: Caller,
    salary_id: int,
    source: SalaryStatus,
    target: SalaryStatus,
) -> Dict[str, Any]:
    authorize(caller, Capability.MANAGE_PAYROLL)
    salary = db.query(Salary).filter(Salary.id == salary_id).first()
    if not salary:
        raise NotFoundError("Salary record not found")

    now = datetime.now(timezone.utc)
    values = {Salary.status: target.value, Salary.updated_at: now}
    if target == SalaryStatus.PAID:
        values[Salary.paid_at] = now

    try:
        updated = db.query(Salary).filter(
            Salary.id == salary_id,
            Salary.status == source.value,
        ).update(values, synchronize_session=False)
        if updated != 1:
            raise InvalidTransitionError(
                f"Salary is {salary.status}; only {source.value} salaries can become {target.value}"
            )
        AuditService.log(
            db,
            action=f"salary_{target.value}",
            entity_type="salary",
            entity_id=salary_id,
            caller=caller,
            details={"user_id": salary.user_id, "month": salary.month, "year": salary.year},
            before_state={"status": source.value},
            after_state={"status": target.value},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(salary)
    logger.info(f"Salary {salary_id} moved to {target.value}")
    return _salary_to_dict(salary)


def _employees_by_user(db: Session, user_ids: List[int]) -> Dict[int, Employee]:
    if not user_ids:
        return {}
    employees = db.query(Employee).filter(Employee.user_id.in_(set(user_ids))).all()
    return {e.user_id: e for e in employees}


def _salary_to_dict(salary: Salary) -> Dict[str, Any]:
    """Convert Salary model to dict representation."""
    return {
        "id": salary.id,
        "user_id": salary.user_id,
        "month": salary.month,
        "year": salary.year,
        "basic_salary": salary.basic_salary,
        "hourly_rate": salary.hourly_rate,
        "hours_worked": salary.hours_worked,
        "working_days": salary.working_days,
        "gross_salary": salary.gross_salary,
        "net_salary": salary.net_salary,
        "deductions": [{"name": d.name, "amount": d.amount} for d in salary.deductions],
        "total_deductions": salary.total_deductions,
        "leaves_deducted": salary.leaves_deducted,
        "leave_deduction_amount": salary.leave_deduction_amount,
        "status": salary.status,
        "paid_at": salary.paid_at.isoformat() if salary.paid_at else None,
        "created_at": salary.created_at.isoformat() if salary.created_at else None,
    }
