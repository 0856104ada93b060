import pytest
from datetime import date

from ems.core.exceptions import (
    AlreadyProcessedError,
    BalanceNotFoundError,
    ConflictError,
    InsufficientBalanceError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from ems.models.attendance import Attendance, AttendanceStatus
from ems.models.audit_log import AuditLog
from ems.models.leave_balance import LeaveBalance
from ems.models.leave_request import LeaveRequest, LeaveStatus
from ems.services.leave_service import LeaveService

YEAR = date.today().year

def _balance(db_session, user_id):
    return db_session.query(LeaveBalance).filter(
        LeaveBalance.user_id == user_id, LeaveBalance.year == YEAR
    ).populate_existing().one()

def _attendance(db_session, user_id):
    return {
        a.date: a
        for a in db_session.query(Attendance).filter(Attendance.user_id == user_id).populate_existing().all()
    }

def _submit(db_session, caller, leave_type="sick", start=(3, 4), end=(3, 6), reason="Flu"):
    return LeaveService(db_session).submit(
        caller, leave_type, date(YEAR, *start), date(YEAR, *end), reason
    )

# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

def test_submit_creates_pending_request(db_session, employee_caller):
    leave = _submit(db_session, employee_caller)
    assert leave.status == LeaveStatus.PENDING.value
    assert leave.days == 3
    assert leave.balance_year == YEAR
    # Submission never debits
    assert _balance(db_session, employee_caller.user_id).used_sick == 0

def test_submit_insufficient_balance_writes_nothing(db_session, employee_caller):
    with pytest.raises(InsufficientBalanceError) as exc:
        _submit(db_session, employee_caller, start=(3, 1), end=(3, 20))
    assert exc.value.message == "Insufficient sick leave balance. Available: 12 days"
    assert exc.value.details == {"leave_type": "sick", "available": 12.0}
    assert db_session.query(LeaveRequest).count() == 0

def test_submit_exactly_available_days(db_session, employee_caller):
    leave = _submit(db_session, employee_caller, start=(3, 1), end=(3, 12))
    assert leave.days == 12

def test_submit_requires_all_fields(db_session, employee_caller):
    with pytest.raises(ValidationError) as exc:
        _submit(db_session, employee_caller, reason="   ")
    assert exc.value.message == "All fields are required"

def test_submit_rejects_unknown_type(db_session, employee_caller):
    with pytest.raises(ValidationError):
        _submit(db_session, employee_caller, leave_type="sabbatical")

def test_submit_rejects_inverted_range(db_session, employee_caller):
    with pytest.raises(ValidationError):
        _submit(db_session, employee_caller, start=(3, 10), end=(3, 5))

def test_submit_rejects_overlap_with_open_request(db_session, employee_caller):
    _submit(db_session, employee_caller, start=(3, 4), end=(3, 6))
    with pytest.raises(ValidationError) as exc:
        _submit(db_session, employee_caller, leave_type="casual", start=(3, 6), end=(3, 8))
    assert "overlaps" in exc.value.message

def test_submit_allows_overlap_with_rejected_request(db_session, employee_caller, hr_caller):
    first = _submit(db_session, employee_caller)
    LeaveService(db_session).reject(hr_caller, first.id)
    second = _submit(db_session, employee_caller, leave_type="casual")
    assert second.status == LeaveStatus.PENDING.value

def test_submit_without_balance_row(db_session, employee_caller):
    db_session.query(LeaveBalance).delete()
    db_session.commit()
    with pytest.raises(BalanceNotFoundError) as exc:
        _submit(db_session, employee_caller)
    assert exc.value.message == "Leave balance not found"

def test_unpaid_leave_skips_availability(db_session, employee_caller):
    leave = _submit(db_session, employee_caller, leave_type="unpaid", start=(3, 1), end=(3, 31))
    assert leave.days == 31

# ---------------------------------------------------------------------------
# Approval
# ---------------------------------------------------------------------------

def test_approve_debits_balance_and_marks_attendance(db_session, employee_caller, hr_caller):
    leave = _submit(db_session, employee_caller)
    approved = LeaveService(db_session).approve(hr_caller, leave.id)

    assert approved.status == LeaveStatus.APPROVED.value
    assert approved.approved_by == hr_caller.user_id
    assert approved.approved_at is not None

    balance = _balance(db_session, employee_caller.user_id)
    assert balance.used_sick == 3
    assert balance.available("sick") == 9

    rows = _attendance(db_session, employee_caller.user_id)
    assert sorted(rows) == [date(YEAR, 3, 4), date(YEAR, 3, 5), date(YEAR, 3, 6)]
    for row in rows.values():
        assert row.status == AttendanceStatus.ON_LEAVE.value
        assert row.notes == "sick leave"

def test_approve_overwrites_existing_attendance(db_session, employee_caller, hr_caller):
    db_session.add(Attendance(
        user_id=employee_caller.user_id,
        date=date(YEAR, 3, 5),
        status=AttendanceStatus.ABSENT.value,
    ))
    db_session.commit()

    leave = _submit(db_session, employee_caller)
    LeaveService(db_session).approve(hr_caller, leave.id)

    rows = _attendance(db_session, employee_caller.user_id)
    assert len(rows) == 3
    assert rows[date(YEAR, 3, 5)].status == AttendanceStatus.ON_LEAVE.value

def test_approve_twice_fails_and_debits_once(db_session, employee_caller, hr_caller):
    leave = _submit(db_session, employee_caller)
    service = LeaveService(db_session)
    service.approve(hr_caller, leave.id)

    with pytest.raises(AlreadyProcessedError) as exc:
        service.approve(hr_caller, leave.id)
    assert exc.value.message == "Leave request already processed"
    assert _balance(db_session, employee_caller.user_id).used_sick == 3

def test_approve_rechecks_balance(db_session, employee_caller, hr_caller):
    # Both fit individually at submission; together they exceed the allocation
    first = _submit(db_session, employee_caller, start=(3, 1), end=(3, 8))
    second = _submit(db_session, employee_caller, start=(4, 1), end=(4, 8))
    service = LeaveService(db_session)
    service.approve(hr_caller, first.id)

    with pytest.raises(InsufficientBalanceError) as exc:
        service.approve(hr_caller, second.id)
    assert exc.value.available == 4

    # Nothing from the failed approval survives
    assert db_session.get(LeaveRequest, second.id).status == LeaveStatus.PENDING.value
    assert _balance(db_session, employee_caller.user_id).used_sick == 8
    rows = _attendance(db_session, employee_caller.user_id)
    assert all(day.month == 3 for day in rows)

def test_approve_after_allocation_cut(db_session, employee_caller, hr_caller):
    leave = _submit(db_session, employee_caller)
    LeaveService(db_session).adjust_allocation(hr_caller, employee_caller.user_id, "sick", 2)

    with pytest.raises(InsufficientBalanceError):
        LeaveService(db_session).approve(hr_caller, leave.id)
    assert db_session.get(LeaveRequest, leave.id).status == LeaveStatus.PENDING.value

def test_approve_unpaid_leave_marks_days_without_debit(db_session, employee_caller, hr_caller):
    leave = _submit(db_session, employee_caller, leave_type="unpaid", start=(5, 1), end=(5, 2))
    LeaveService(db_session).approve(hr_caller, leave.id)

    balance = _balance(db_session, employee_caller.user_id)
    assert all(balance.used(t) == 0 for t in ("sick", "casual", "earned", "maternity", "paternity"))
    rows = _attendance(db_session, employee_caller.user_id)
    assert [r.notes for r in rows.values()] == ["unpaid leave", "unpaid leave"]

def test_employee_cannot_approve(db_session, employee_caller, make_caller):
    other = make_caller()
    leave = _submit(db_session, employee_caller)
    with pytest.raises(UnauthorizedError):
        LeaveService(db_session).approve(other, leave.id)
    assert db_session.get(LeaveRequest, leave.id).status == LeaveStatus.PENDING.value

def test_approve_unknown_leave(db_session, hr_caller):
    with pytest.raises(NotFoundError):
        LeaveService(db_session).approve(hr_caller, 999)

def test_approval_is_audited(db_session, employee_caller, hr_caller):
    leave = _submit(db_session, employee_caller)
    LeaveService(db_session).approve(hr_caller, leave.id)
    entry = db_session.query(AuditLog).filter(AuditLog.action == "approve_leave").one()
    assert entry.entity_id == leave.id
    assert entry.details["attendance_days_marked"] == 3

def test_approve_rolls_back_when_a_check_in_lands_on_a_leave_day(db_session, employee_caller, hr_caller, monkeypatch):
    leave = _submit(db_session, employee_caller)
    mark_days = LeaveService._mark_days_on_leave

    def mark_days_then_check_in(self, leave, now):
        marked = mark_days(self, leave, now)
        # Same (user, date) key as one of the rows just marked
        self.db.add(Attendance(
            user_id=leave.user_id,
            date=leave.start_date,
            status=AttendanceStatus.PRESENT.value,
        ))
        return marked

    monkeypatch.setattr(LeaveService, "_mark_days_on_leave", mark_days_then_check_in)
    with pytest.raises(ConflictError):
        LeaveService(db_session).approve(hr_caller, leave.id)

    stored = db_session.query(LeaveRequest).filter(LeaveRequest.id == leave.id).populate_existing().one()
    assert stored.status == LeaveStatus.PENDING.value
    assert stored.approved_by is None
    assert _balance(db_session, employee_caller.user_id).used_sick == 0
    assert _attendance(db_session, employee_caller.user_id) == {}
    assert db_session.query(AuditLog).filter(AuditLog.action == "approve_leave").count() == 0

# ---------------------------------------------------------------------------
# Rejection
# ---------------------------------------------------------------------------

def test_reject_leaves_balance_untouched(db_session, employee_caller, hr_caller):
    leave = _submit(db_session, employee_caller)
    rejected = LeaveService(db_session).reject(hr_caller, leave.id, "Team offsite")

    assert rejected.status == LeaveStatus.REJECTED.value
    assert rejected.rejection_reason == "Team offsite"
    assert _balance(db_session, employee_caller.user_id).used_sick == 0
    assert _attendance(db_session, employee_caller.user_id) == {}

def test_reject_after_approve_fails(db_session, employee_caller, hr_caller):
    leave = _submit(db_session, employee_caller)
    service = LeaveService(db_session)
    service.approve(hr_caller, leave.id)
    with pytest.raises(AlreadyProcessedError):
        service.reject(hr_caller, leave.id)

# ---------------------------------------------------------------------------
# Balances and listing
# ---------------------------------------------------------------------------

def test_provision_balance_is_idempotent(db_session, employee_caller):
    service = LeaveService(db_session)
    first = service.provision_balance(employee_caller.user_id, YEAR)
    second = service.provision_balance(employee_caller.user_id, YEAR)
    assert first.id == second.id
    assert db_session.query(LeaveBalance).filter(LeaveBalance.user_id == employee_caller.user_id).count() == 1

def test_provision_uses_default_allocations(db_session, employee_caller):
    balance = LeaveService(db_session).provision_balance(employee_caller.user_id, YEAR + 1)
    assert balance.sick == 12
    assert balance.earned == 15
    assert balance.maternity == 180

def test_adjust_allocation_below_used(db_session, employee_caller, hr_caller):
    service = LeaveService(db_session)
    leave = _submit(db_session, employee_caller)
    service.approve(hr_caller, leave.id)
    with pytest.raises(ValidationError):
        service.adjust_allocation(hr_caller, employee_caller.user_id, "sick", 2)

def test_adjust_allocation_requires_capability(db_session, employee_caller):
    with pytest.raises(UnauthorizedError):
        LeaveService(db_session).adjust_allocation(employee_caller, employee_caller.user_id, "sick", 30)

def test_list_leaves_scoping(db_session, employee_caller, hr_caller, make_caller):
    other = make_caller()
    _submit(db_session, employee_caller)
    _submit(db_session, other)

    service = LeaveService(db_session)
    assert len(service.list_leaves(employee_caller)) == 1
    assert len(service.list_leaves(hr_caller)) == 2
    assert len(service.list_leaves(hr_caller, "approved")) == 0
    assert len(service.list_leaves(hr_caller, "all")) == 2
