"""
Leave Ledger Service

Owns the per-employee, per-year leave balances and the lifecycle of leave
requests: pending -> approved | rejected.

Approval is a single transaction: the status compare-and-set, the balance debit
(re-validated against the allocation in the same UPDATE) and the on-leave
attendance rows for every covered day either all commit or none do.
"""
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from ems.core.config import settings
from ems.core.exceptions import (
    AlreadyProcessedError,
    BalanceNotFoundError,
    ConflictError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from ems.core.permissions import Caller, Capability, authorize
from ems.models.attendance import Attendance, AttendanceStatus
from ems.models.leave_balance import FUNDED_LEAVE_TYPES, LeaveBalance
from ems.models.leave_request import LeaveRequest, LeaveStatus, LeaveType
from ems.services.audit import AuditService
from ems.services.base import BaseService
from ems.utils import dates
from ems.utils.dates import inclusive_days, iter_days

_LEAVE_TYPES = {t.value for t in LeaveType}
_OPEN_STATUSES = (LeaveStatus.PENDING.value, LeaveStatus.APPROVED.value)


def _today() -> date:
    return dates.today()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class LeaveService(BaseService):

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------
    def provision_balance(
        self,
        user_id: int,
        year: Optional[int] = None,
        allocations: Optional[Dict[str, float]] = None,
        commit: bool = True,
    ) -> LeaveBalance:
        """Create the yearly balance row for a user; returns the existing row if present."""
        year = year or _today().year
        existing = self._find_balance(user_id, year)
        if existing:
            return existing

        values = dict(settings.leave.default_allocations)
        values.update(allocations or {})
        unknown = set(values) - set(FUNDED_LEAVE_TYPES)
        if unknown:
            raise ValidationError(f"Unknown leave types: {', '.join(sorted(unknown))}")

        balance = LeaveBalance(user_id=user_id, year=year, **values)
        self.db.add(balance)
        if not commit:
            return balance
        try:
            self.db.commit()
        except IntegrityError:
            # Provisioned concurrently; the unique key guarantees a single row
            self.db.rollback()
            return self._find_balance(user_id, year)
        self.db.refresh(balance)
        self.log_info("Leave balance provisioned", user_id=user_id, year=year)
        return balance

    def get_balance(self, user_id: int, year: Optional[int] = None) -> LeaveBalance:
        balance = self._find_balance(user_id, year or _today().year)
        if not balance:
            raise BalanceNotFoundError()
        return balance

    def adjust_allocation(
        self,
        caller: Caller,
        user_id: int,
        leave_type: str,
        amount: float,
        year: Optional[int] = None,
    ) -> LeaveBalance:
        """Set the allocated days of one funded category."""
        authorize(caller, Capability.MANAGE_BALANCES)
        if leave_type not in FUNDED_LEAVE_TYPES:
            raise ValidationError(f"Leave type '{leave_type}' has no allocation")
        if amount is None or amount < 0:
            raise ValidationError("Allocation must be zero or more days")

        balance = self.get_balance(user_id, year)
        used = balance.used(leave_type)
        if amount < used:
            raise ValidationError(
                f"Cannot allocate {amount:g} {leave_type} days: {used:g} already used"
            )

        before = {"allocated": balance.allocated(leave_type)}
        with self.atomic():
            setattr(balance, leave_type, amount)
            AuditService.log(
                self.db,
                action="adjust_leave_allocation",
                entity_type="leave_balance",
                entity_id=balance.id,
                caller=caller,
                details={"user_id": user_id, "leave_type": leave_type, "year": balance.year},
                before_state=before,
                after_state={"allocated": amount},
            )
        self.db.refresh(balance)
        return balance

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------
    def submit(
        self,
        caller: Caller,
        leave_type: Optional[str],
        start_date: Optional[date],
        end_date: Optional[date],
        reason: Optional[str],
    ) -> LeaveRequest:
        """
        File a pending leave request for the caller.

        The balance is only checked here; the debit happens at approval.
        """
        if not leave_type or not start_date or not end_date or not (reason or "").strip():
            raise ValidationError("All fields are required")
        if leave_type not in _LEAVE_TYPES:
            raise ValidationError(f"Unknown leave type '{leave_type}'")
        if start_date > end_date:
            raise ValidationError("Start date must be on or before end date")

        overlapping = self.db.query(LeaveRequest).filter(
            LeaveRequest.user_id == caller.user_id,
            LeaveRequest.status.in_(_OPEN_STATUSES),
            LeaveRequest.start_date <= end_date,
            LeaveRequest.end_date >= start_date,
        ).first()
        if overlapping:
            raise ValidationError(
                f"Leave overlaps an existing {overlapping.status} request "
                f"({overlapping.start_date.isoformat()} to {overlapping.end_date.isoformat()})"
            )

        days = inclusive_days(start_date, end_date)
        year = _today().year
        balance = self._find_balance(caller.user_id, year)
        if not balance:
            raise BalanceNotFoundError()

        if leave_type != LeaveType.UNPAID.value:
            available = balance.available(leave_type)
            if available < days:
                self.log_warning(
                    "Leave refused: insufficient balance",
                    user_id=caller.user_id, leave_type=leave_type, requested=days, available=available,
                )
                raise InsufficientBalanceError(leave_type, available)

        leave = LeaveRequest(
            user_id=caller.user_id,
            leave_type=leave_type,
            start_date=start_date,
            end_date=end_date,
            days=days,
            reason=reason.strip(),
            status=LeaveStatus.PENDING.value,
            balance_year=year,
        )
        with self.atomic():
            self.db.add(leave)
        self.db.refresh(leave)
        self.log_info("Leave submitted", leave_id=leave.id, user_id=caller.user_id, days=days)
        return leave

    def approve(self, caller: Caller, leave_id: int) -> LeaveRequest:
        authorize(caller, Capability.APPROVE_LEAVE)
        leave = self._get_leave(leave_id)
        if leave.status != LeaveStatus.PENDING.value:
            raise AlreadyProcessedError()

        now = _now()
        try:
            with self.atomic():
                self._claim(leave_id, {
                    LeaveRequest.status: LeaveStatus.APPROVED.value,
                    LeaveRequest.approved_by: caller.user_id,
                    LeaveRequest.approved_at: now,
                    LeaveRequest.updated_at: now,
                })
                if leave.is_funded:
                    self._debit_balance(leave, now)
                marked = self._mark_days_on_leave(leave, now)
                AuditService.log(
                    self.db,
                    action="approve_leave",
                    entity_type="leave_request",
                    entity_id=leave_id,
                    caller=caller,
                    details={
                        "user_id": leave.user_id,
                        "leave_type": leave.leave_type,
                        "days": leave.days,
                        "attendance_days_marked": marked,
                    },
                    before_state={"status": LeaveStatus.PENDING.value},
                    after_state={"status": LeaveStatus.APPROVED.value},
                )
        except IntegrityError:
            # A check-in created one of the covered days between our read and the insert
            raise ConflictError()

        self.db.refresh(leave)
        self.log_info("Leave approved", leave_id=leave_id, approver_id=caller.user_id)
        return leave

    def reject(self, caller: Caller, leave_id: int, reason: Optional[str] = None) -> LeaveRequest:
        authorize(caller, Capability.APPROVE_LEAVE)
        leave = self._get_leave(leave_id)
        if leave.status != LeaveStatus.PENDING.value:
            raise AlreadyProcessedError()

        now = _now()
        with self.atomic():
            self._claim(leave_id, {
                LeaveRequest.status: LeaveStatus.REJECTED.value,
                LeaveRequest.rejection_reason: reason,
                LeaveRequest.approved_by: caller.user_id,
                LeaveRequest.approved_at: now,
                LeaveRequest.updated_at: now,
            })
            AuditService.log(
                self.db,
                action="reject_leave",
                entity_type="leave_request",
                entity_id=leave_id,
                caller=caller,
                details={"user_id": leave.user_id, "leave_type": leave.leave_type, "reason": reason},
                before_state={"status": LeaveStatus.PENDING.value},
                after_state={"status": LeaveStatus.REJECTED.value},
            )
        self.db.refresh(leave)
        self.log_info("Leave rejected", leave_id=leave_id, approver_id=caller.user_id)
        return leave

    def list_leaves(self, caller: Caller, status: Optional[str] = None) -> List[LeaveRequest]:
        query = self.db.query(LeaveRequest)
        if not caller.can(Capability.VIEW_ALL):
            query = query.filter(LeaveRequest.user_id == caller.user_id)
        if status and status != "all":
            query = query.filter(LeaveRequest.status == status)
        return query.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc()).all()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _find_balance(self, user_id: int, year: int) -> Optional[LeaveBalance]:
        return self.db.query(LeaveBalance).filter(
            LeaveBalance.user_id == user_id,
            LeaveBalance.year == year,
        ).populate_existing().first()

    def _get_leave(self, leave_id: int) -> LeaveRequest:
        leave = self.db.query(LeaveRequest).filter(LeaveRequest.id == leave_id).first()
        if not leave:
            raise NotFoundError("Leave request not found")
        return leave

    def _claim(self, leave_id: int, values: dict) -> None:
        """Compare-and-set out of pending; only one concurrent caller can win."""
        updated = self.db.query(LeaveRequest).filter(
            LeaveRequest.id == leave_id,
            LeaveRequest.status == LeaveStatus.PENDING.value,
        ).update(values, synchronize_session=False)
        if updated != 1:
            raise AlreadyProcessedError()

    def _debit_balance(self, leave: LeaveRequest, now: datetime) -> None:
        allocated_col = getattr(LeaveBalance, leave.leave_type)
        used_col = getattr(LeaveBalance, f"used_{leave.leave_type}")
        year = leave.balance_year or _today().year

        debited = self.db.query(LeaveBalance).filter(
            LeaveBalance.user_id == leave.user_id,
            LeaveBalance.year == year,
            used_col + leave.days <= allocated_col,
        ).update({used_col: used_col + leave.days, LeaveBalance.updated_at: now}, synchronize_session=False)
        if debited == 1:
            return

        balance = self._find_balance(leave.user_id, year)
        if not balance:
            raise BalanceNotFoundError()
        self.log_warning(
            "Approval refused: balance exhausted since submission",
            leave_id=leave.id, leave_type=leave.leave_type, available=balance.available(leave.leave_type),
        )
        raise InsufficientBalanceError(leave.leave_type, balance.available(leave.leave_type))

    def _mark_days_on_leave(self, leave: LeaveRequest, now: datetime) -> int:
        """Upsert an on-leave attendance row for every day of the leave."""
        note = f"{leave.leave_type} leave"
        existing = {
            row.date: row
            for row in self.db.query(Attendance).filter(
                Attendance.user_id == leave.user_id,
                Attendance.date >= leave.start_date,
                Attendance.date <= leave.end_date,
            ).all()
        }
        count = 0
        for day in iter_days(leave.start_date, leave.end_date):
            row = existing.get(day)
            if row is None:
                self.db.add(Attendance(
                    user_id=leave.user_id,
                    date=day,
                    status=AttendanceStatus.ON_LEAVE.value,
                    notes=note,
                    created_at=now,
                ))
            else:
                row.status = AttendanceStatus.ON_LEAVE.value
                row.notes = note
                row.updated_at = now
            count += 1
        return count
