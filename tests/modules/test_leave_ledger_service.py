"""
Tests for the leave ledger.

Covers:
- The accrued - taken - pending balance across submit/approve/reject/cancel
- Insufficient balance and negative-balance leave types
- Accrual, carry-over forfeiture and manual adjustment
- Closing balances at termination
- Overview and calendar read models
- The balance identity after any mix of submit, approve, reject and cancel
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from payroll_kernel.exceptions import (
    EntityNotFoundError,
    InsufficientBalanceError,
    InvalidStateError,
    ValidationError,
)
from payroll_modules.leave.models import LeaveRequestStatus

# Mon 2 Feb 2026 .. Wed 4 Feb 2026: three business days
FEB_START = date(2026, 2, 2)
FEB_END = date(2026, 2, 4)


@pytest.fixture
def employee(create_employee):
    return create_employee()


@pytest.fixture
def funded(employee, annual_leave, open_balance):
    """Annual balance with 15 accrued and 5 taken."""
    open_balance(employee.id, annual_leave.id, accrued="15", taken="5")
    return employee, annual_leave


class TestRequestLifecycle:

    def test_submit_reserves_pending_days(self, funded, leave_ledger, test_actor_id):
        employee, leave_type = funded

        request = leave_ledger.submit_request(
            employee.id, leave_type.id, FEB_START, FEB_END, "Holiday", actor_id=test_actor_id,
        )

        balance = leave_ledger.get_balance(employee.id, leave_type.id)
        assert request.days == Decimal("3")
        assert request.status == LeaveRequestStatus.PENDING
        assert balance.pending == Decimal("3")
        assert balance.available == Decimal("7")

    def test_approve_moves_pending_to_taken(self, funded, leave_ledger, test_actor_id):
        employee, leave_type = funded
        request = leave_ledger.submit_request(
            employee.id, leave_type.id, FEB_START, FEB_END, "Holiday", actor_id=test_actor_id,
        )
        approver = uuid4()

        approved = leave_ledger.approve(request.id, approver)

        balance = leave_ledger.get_balance(employee.id, leave_type.id)
        assert approved.status == LeaveRequestStatus.APPROVED
        assert approved.approved_by == approver
        assert balance.taken == Decimal("8")
        assert balance.pending == Decimal("0")
        assert balance.available == Decimal("7")

    def test_reject_returns_days(self, funded, leave_ledger, test_actor_id):
        employee, leave_type = funded
        request = leave_ledger.submit_request(
            employee.id, leave_type.id, FEB_START, FEB_END, None, actor_id=test_actor_id,
        )

        rejected = leave_ledger.reject(request.id, uuid4(), "Peak season")

        balance = leave_ledger.get_balance(employee.id, leave_type.id)
        assert rejected.rejection_reason == "Peak season"
        assert balance.pending == Decimal("0")
        assert balance.available == Decimal("10")

    def test_reject_requires_reason(self, funded, leave_ledger, test_actor_id):
        employee, leave_type = funded
        request = leave_ledger.submit_request(
            employee.id, leave_type.id, FEB_START, FEB_END, None, actor_id=test_actor_id,
        )

        with pytest.raises(ValidationError):
            leave_ledger.reject(request.id, uuid4(), "  ")

    def test_cancel_approved_before_start(self, funded, leave_ledger, test_actor_id):
        employee, leave_type = funded
        request = leave_ledger.submit_request(
            employee.id, leave_type.id, FEB_START, FEB_END, None, actor_id=test_actor_id,
        )
        leave_ledger.approve(request.id, uuid4())

        cancelled = leave_ledger.cancel(request.id, test_actor_id)

        balance = leave_ledger.get_balance(employee.id, leave_type.id)
        assert cancelled.status == LeaveRequestStatus.CANCELLED
        assert balance.taken == Decimal("5")
        assert balance.available == Decimal("10")

    def test_cancel_approved_after_start_rejected(
        self, funded, leave_ledger, test_actor_id, deterministic_clock,
    ):
        employee, leave_type = funded
        request = leave_ledger.submit_request(
            employee.id, leave_type.id, FEB_START, FEB_END, None, actor_id=test_actor_id,
        )
        leave_ledger.approve(request.id, uuid4())
        deterministic_clock.set_date(FEB_START)

        with pytest.raises(InvalidStateError):
            leave_ledger.cancel(request.id, test_actor_id)
        assert leave_ledger.get_balance(employee.id, leave_type.id).taken == Decimal("8")

    def test_decision_on_rejected_request_fails(self, funded, leave_ledger, test_actor_id):
        employee, leave_type = funded
        request = leave_ledger.submit_request(
            employee.id, leave_type.id, FEB_START, FEB_END, None, actor_id=test_actor_id,
        )
        leave_ledger.reject(request.id, uuid4(), "No cover")

        with pytest.raises(InvalidStateError):
            leave_ledger.approve(request.id, uuid4())

    def test_lifecycle_audited(self, funded, leave_ledger, auditor_service, test_actor_id):
        employee, leave_type = funded
        request = leave_ledger.submit_request(
            employee.id, leave_type.id, FEB_START, FEB_END, None, actor_id=test_actor_id,
        )
        leave_ledger.approve(request.id, uuid4())

        trace = auditor_service.get_trace("LeaveRequest", request.id)
        assert trace.actions == ("leave_requested", "leave_approved")
        assert auditor_service.validate_chain()


class TestRequestValidation:

    def test_insufficient_balance(self, funded, leave_ledger, test_actor_id):
        employee, leave_type = funded

        with pytest.raises(InsufficientBalanceError) as exc_info:
            leave_ledger.submit_request(
                employee.id, leave_type.id, date(2026, 2, 2), date(2026, 2, 16), None,
                actor_id=test_actor_id,
            )

        assert exc_info.value.available == Decimal("10")
        assert exc_info.value.requested == Decimal("11")
        assert leave_ledger.get_balance(employee.id, leave_type.id).pending == Decimal("0")

    def test_negative_allowed_for_flagged_type(
        self, employee, create_leave_type, leave_ledger, test_actor_id,
    ):
        unpaid = create_leave_type("UNPAID", allow_negative_balance=True, is_paid=False)

        leave_ledger.submit_request(
            employee.id, unpaid.id, FEB_START, FEB_END, None, actor_id=test_actor_id,
        )

        balance = leave_ledger.get_balance(employee.id, unpaid.id)
        assert balance.available == Decimal("-3")
        assert balance.is_negative

    def test_weekend_only_range_rejected(self, funded, leave_ledger, test_actor_id):
        employee, leave_type = funded

        with pytest.raises(ValidationError) as exc_info:
            leave_ledger.submit_request(
                employee.id, leave_type.id, date(2026, 2, 7), date(2026, 2, 8), None,
                actor_id=test_actor_id,
            )

        assert exc_info.value.field == "days"

    def test_reversed_range_rejected(self, funded, leave_ledger, test_actor_id):
        employee, leave_type = funded

        with pytest.raises(ValidationError):
            leave_ledger.submit_request(
                employee.id, leave_type.id, FEB_END, FEB_START, None, actor_id=test_actor_id,
            )

    def test_attachment_required(self, employee, create_leave_type, leave_ledger, test_actor_id):
        sick = create_leave_type("SICK", requires_attachment=True, allow_negative_balance=True)

        with pytest.raises(ValidationError):
            leave_ledger.submit_request(
                employee.id, sick.id, FEB_START, FEB_END, None, actor_id=test_actor_id,
            )
        request = leave_ledger.submit_request(
            employee.id, sick.id, FEB_START, FEB_END, None,
            actor_id=test_actor_id, attachment_ref="docs/note.pdf",
        )
        assert request.attachment_ref == "docs/note.pdf"

    def test_inactive_type_rejected(self, employee, create_leave_type, leave_ledger, test_actor_id):
        retired = create_leave_type("STUDY", is_active=False)

        with pytest.raises(ValidationError):
            leave_ledger.submit_request(
                employee.id, retired.id, FEB_START, FEB_END, None, actor_id=test_actor_id,
            )


class TestBalanceMaintenance:

    def test_monthly_accrual(self, employee, annual_leave, open_balance, leave_ledger, test_actor_id):
        open_balance(employee.id, annual_leave.id, as_of=date(2026, 1, 1))

        balance = leave_ledger.run_accrual(employee.id, annual_leave.id, date(2026, 4, 1), test_actor_id)

        assert balance.accrued == Decimal("3.7500")
        assert balance.accrued_through == date(2026, 4, 1)

    def test_accrual_is_idempotent_for_past_dates(
        self, employee, annual_leave, open_balance, leave_ledger, test_actor_id,
    ):
        open_balance(employee.id, annual_leave.id, as_of=date(2026, 1, 1))
        leave_ledger.run_accrual(employee.id, annual_leave.id, date(2026, 4, 1), test_actor_id)

        again = leave_ledger.run_accrual(employee.id, annual_leave.id, date(2026, 3, 1), test_actor_id)

        assert again.accrued == Decimal("3.7500")

    def test_cycle_start_caps_carry_over(
        self, employee, annual_leave, open_balance, leave_ledger, test_actor_id,
    ):
        open_balance(employee.id, annual_leave.id, accrued="10", as_of=date(2025, 12, 15))

        balance = leave_ledger.run_accrual(employee.id, annual_leave.id, date(2026, 1, 1), test_actor_id)

        # 10 capped to 5 carried over, plus January's 1.25
        assert balance.carried_over == Decimal("5.0000")
        assert balance.carry_over_expires_on == date(2026, 7, 1)
        assert balance.accrued == Decimal("6.2500")

    def test_adjustment(self, funded, leave_ledger, test_actor_id):
        employee, leave_type = funded

        balance = leave_ledger.adjust_balance(
            employee.id, leave_type.id, Decimal("2.5"), "Long service bonus", test_actor_id,
        )

        assert balance.accrued == Decimal("17.5000")
        assert balance.available == Decimal("12.5000")

    def test_adjustment_cannot_overdraw(self, funded, leave_ledger, test_actor_id):
        employee, leave_type = funded

        with pytest.raises(InsufficientBalanceError):
            leave_ledger.adjust_balance(
                employee.id, leave_type.id, Decimal("-11"), "Correction", test_actor_id,
            )

    def test_duplicate_balance_rejected(self, funded, open_balance):
        employee, leave_type = funded

        with pytest.raises(ValidationError):
            open_balance(employee.id, leave_type.id)

    def test_missing_balance(self, employee, annual_leave, leave_ledger):
        with pytest.raises(EntityNotFoundError):
            leave_ledger.get_balance(employee.id, annual_leave.id)
        assert leave_ledger.annual_leave_available(employee.id, "ANNUAL") == Decimal("0")


class TestCloseBalances:

    def test_close_cancels_pending_and_locks(self, funded, leave_ledger, test_actor_id):
        employee, leave_type = funded
        request = leave_ledger.submit_request(
            employee.id, leave_type.id, FEB_START, FEB_END, None, actor_id=test_actor_id,
        )

        closed = leave_ledger.close_balances(employee.id, test_actor_id)

        assert len(closed) == 1
        assert closed[0].is_locked
        assert closed[0].available == Decimal("0")
        assert leave_ledger.get_request(request.id).status == LeaveRequestStatus.CANCELLED

    def test_locked_balance_rejects_mutation(self, funded, leave_ledger, test_actor_id):
        employee, leave_type = funded
        leave_ledger.close_balances(employee.id, test_actor_id)

        with pytest.raises(InvalidStateError):
            leave_ledger.submit_request(
                employee.id, leave_type.id, FEB_START, FEB_END, None, actor_id=test_actor_id,
            )
        with pytest.raises(InvalidStateError):
            leave_ledger.adjust_balance(employee.id, leave_type.id, Decimal("1"), "x", test_actor_id)


class TestReadModels:

    def test_overview(self, funded, leave_ledger, test_actor_id, deterministic_clock):
        employee, leave_type = funded
        approved = leave_ledger.submit_request(
            employee.id, leave_type.id, FEB_START, FEB_END, None, actor_id=test_actor_id,
        )
        leave_ledger.approve(approved.id, uuid4())
        pending = leave_ledger.submit_request(
            employee.id, leave_type.id, date(2026, 3, 2), date(2026, 3, 2), None,
            actor_id=test_actor_id,
        )

        upcoming = leave_ledger.overview(as_of=date(2026, 1, 15))
        during = leave_ledger.overview(as_of=date(2026, 2, 3))

        assert [r.id for r in upcoming.upcoming] == [approved.id]
        assert [r.id for r in upcoming.pending_approvals] == [pending.id]
        assert [r.id for r in during.on_leave] == [approved.id]
        assert upcoming.negative_balances == ()

    def test_calendar_events(self, funded, leave_ledger, test_actor_id):
        employee, leave_type = funded
        request = leave_ledger.submit_request(
            employee.id, leave_type.id, FEB_START, FEB_END, None, actor_id=test_actor_id,
        )
        leave_ledger.approve(request.id, uuid4())

        events = leave_ledger.calendar_events(2026, 2)

        assert len(events) == 1
        assert events[0].leave_type_code == "ANNUAL"
        assert leave_ledger.calendar_events(2026, 3) == []

    def test_list_requests_filters(self, funded, leave_ledger, test_actor_id):
        employee, leave_type = funded
        leave_ledger.submit_request(
            employee.id, leave_type.id, FEB_START, FEB_END, None, actor_id=test_actor_id,
        )

        assert len(leave_ledger.list_requests(status=LeaveRequestStatus.PENDING)) == 1
        assert leave_ledger.list_requests(status=LeaveRequestStatus.APPROVED) == []
        assert len(leave_ledger.list_requests(employee_id=employee.id)) == 1


# (action, request pick or week offset, business days)
LEAVE_ACTIONS = st.lists(
    st.tuples(
        st.sampled_from(["submit", "approve", "reject", "cancel"]),
        st.integers(min_value=0, max_value=7),
        st.integers(min_value=1, max_value=5),
    ),
    min_size=1,
    max_size=12,
)

# Legal moves and their effect on (pending, taken) per requested day
_MOVES = {
    ("approve", "pending"): ("approved", -1, 1),
    ("reject", "pending"): ("rejected", -1, 0),
    ("cancel", "pending"): ("cancelled", -1, 0),
    ("cancel", "approved"): ("cancelled", 0, -1),
}


class TestBalanceIdentityUnderAnySequence:

    @settings(
        max_examples=40,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    @given(actions=LEAVE_ACTIONS, allow_negative=st.booleans())
    def test_available_is_accrued_minus_taken_minus_pending(
        self, leave_ledger, create_leave_type, open_balance, test_actor_id, actions, allow_negative,
    ):
        leave_type = create_leave_type(f"L{uuid4().hex[:8].upper()}", allow_negative_balance=allow_negative)
        employee_id = uuid4()
        open_balance(employee_id, leave_type.id, accrued="10", taken="2")
        accrued, taken, pending = Decimal("10"), Decimal("2"), Decimal("0")
        requests: list[tuple[UUID, Decimal]] = []
        statuses: dict[UUID, str] = {}

        for action, pick, length in actions:
            if action == "submit":
                start = FEB_START + timedelta(weeks=pick)
                days = Decimal(length)
                if accrued - taken - pending - days < 0 and not allow_negative:
                    with pytest.raises(InsufficientBalanceError):
                        leave_ledger.submit_request(
                            employee_id, leave_type.id, start, start + timedelta(days=length - 1), None,
                            actor_id=test_actor_id,
                        )
                else:
                    request = leave_ledger.submit_request(
                        employee_id, leave_type.id, start, start + timedelta(days=length - 1), None,
                        actor_id=test_actor_id,
                    )
                    requests.append((request.id, days))
                    statuses[request.id] = "pending"
                    pending += days
            elif requests:
                request_id, days = requests[pick % len(requests)]
                move = _MOVES.get((action, statuses[request_id]))
                decide = {
                    "approve": lambda: leave_ledger.approve(request_id, uuid4()),
                    "reject": lambda: leave_ledger.reject(request_id, uuid4(), "Team coverage"),
                    "cancel": lambda: leave_ledger.cancel(request_id, test_actor_id),
                }[action]
                if move is None:
                    with pytest.raises(InvalidStateError):
                        decide()
                else:
                    decide()
                    statuses[request_id], pending_sign, taken_sign = move
                    pending += pending_sign * days
                    taken += taken_sign * days

            balance = leave_ledger.get_balance(employee_id, leave_type.id)
            assert balance.pending == pending
            assert balance.taken == taken
            assert balance.available == balance.accrued - balance.taken - balance.pending
            assert balance.available == accrued - taken - pending
            assert balance.is_negative == (accrued - taken - pending < 0)
            if not allow_negative:
                assert not balance.is_negative
