from datetime import timedelta

import pytest

from lending import lifecycle
from lending.errors import AlreadyRated, InvalidTransition, ValidationError
from lending.models import LoanStatus, Role, User


# ── create ──────────────────────────────────────────────────────────────
def test_create_loan_is_pending_with_flat_interest(pending_loan, borrower):
    assert pending_loan.status is LoanStatus.PENDING
    assert pending_loan.borrower == borrower
    assert pending_loan.lender is None
    assert pending_loan.total_repayable == 10200.0
    assert pending_loan.amount_repaid == 0


@pytest.mark.parametrize("amount, duration", [
    (500, 30),
    (200000, 30),
    (5000, 3),
    (5000, 120),
    ("lots", 30),
])
def test_create_loan_rejects_out_of_bounds(borrower, amount, duration):
    with pytest.raises(ValidationError):
        lifecycle.create_loan(borrower, amount, duration, "Rent")


def test_create_loan_needs_purpose(borrower):
    with pytest.raises(ValidationError):
        lifecycle.create_loan(borrower, 5000, 30, "   ")


def test_create_loan_caps_interest(borrower):
    with pytest.raises(ValidationError):
        lifecycle.create_loan(borrower, 5000, 30, "Rent", interest_rate=9)


@pytest.mark.parametrize("rate", ["abc", float("nan"), [2]])
def test_create_loan_interest_must_be_a_number(borrower, rate):
    with pytest.raises(ValidationError):
        lifecycle.create_loan(borrower, 5000, 30, "Rent", interest_rate=rate)


def test_only_borrowers_create_loans():
    lender = User(id="l1", role=Role.LENDER, account_status="approved")
    with pytest.raises(ValidationError):
        lifecycle.create_loan(lender, 5000, 30, "Rent")


# ── accept / decline / cancel ───────────────────────────────────────────
@pytest.mark.parametrize("status", list(LoanStatus))
def test_accept_succeeds_only_when_pending(pending_loan, lender, status):
    loan = pending_loan.model_copy(update={"status": status})
    if status is LoanStatus.PENDING:
        accepted = lifecycle.accept(loan, lender)
        assert accepted.status is LoanStatus.ACCEPTED
        assert accepted.lender == lender
        assert accepted.accepted_at is not None
    else:
        with pytest.raises(InvalidTransition):
            lifecycle.accept(loan, lender)


def test_transitions_leave_input_untouched(pending_loan, lender):
    lifecycle.accept(pending_loan, lender)
    assert pending_loan.status is LoanStatus.PENDING
    assert pending_loan.lender is None


def test_decline_and_cancel(pending_loan):
    assert lifecycle.decline(pending_loan).status is LoanStatus.REJECTED
    assert lifecycle.cancel(pending_loan).status is LoanStatus.CANCELLED
    with pytest.raises(InvalidTransition):
        lifecycle.cancel(lifecycle.decline(pending_loan))


def test_confirm_receipt_starts_clock(pending_loan, lender, now):
    loan = lifecycle.confirm_receipt(lifecycle.accept(pending_loan, lender, now), now=now)
    assert loan.status is LoanStatus.IN_PROGRESS
    assert loan.due_date == now + timedelta(days=30)
    with pytest.raises(InvalidTransition):
        lifecycle.confirm_receipt(pending_loan)


@pytest.mark.parametrize("total", ["abc", float("nan")])
def test_confirm_receipt_total_must_be_a_number(pending_loan, lender, total):
    with pytest.raises(ValidationError):
        lifecycle.confirm_receipt(lifecycle.accept(pending_loan, lender), total_repayable=total)


# ── repayments ──────────────────────────────────────────────────────────
def test_repayment_accounting(active_loan, now):
    loan = lifecycle.record_repayment(active_loan, 3000, now=now)
    loan = lifecycle.record_repayment(loan, 1200.50, now=now, payment_method="bank")
    assert loan.amount_repaid == 4200.50
    assert loan.remaining_amount == 5999.50
    assert [r.amount for r in loan.repayments] == [3000, 1200.50]
    assert loan.repayments[1].payment_method == "bank"
    assert loan.status is LoanStatus.IN_PROGRESS


def test_overpayment_is_rejected_and_changes_nothing(active_loan):
    loan = lifecycle.record_repayment(active_loan, 10000)
    with pytest.raises(ValidationError):
        lifecycle.record_repayment(loan, 201)
    assert loan.amount_repaid == 10000
    assert len(loan.repayments) == 1


@pytest.mark.parametrize("amount", [0, -5, "abc", None, float("nan"), float("inf"), "nan"])
def test_repayment_amount_must_be_positive_number(active_loan, amount):
    with pytest.raises(ValidationError):
        lifecycle.record_repayment(active_loan, amount)


def test_full_repayment_completes_once(active_loan, now):
    loan = lifecycle.record_repayment(active_loan, 10200, now=now)
    assert loan.status is LoanStatus.COMPLETED
    assert loan.completed_at == now
    assert loan.remaining_amount == 0
    with pytest.raises(InvalidTransition):
        lifecycle.record_repayment(loan, 1)


def test_late_repayment_is_flagged(active_loan, now):
    loan = lifecycle.record_repayment(active_loan, 100, now=now + timedelta(days=32, hours=1))
    repayment = loan.repayments[-1]
    assert repayment.is_late
    assert repayment.days_late == 3


def test_repayment_before_receipt_is_invalid(pending_loan, lender):
    with pytest.raises(InvalidTransition):
        lifecycle.record_repayment(lifecycle.accept(pending_loan, lender), 100)


# ── overdue / default / dispute ─────────────────────────────────────────
def test_overdue_then_default(active_loan, now):
    with pytest.raises(InvalidTransition):
        lifecycle.mark_overdue(active_loan, now=now + timedelta(days=10))
    overdue = lifecycle.mark_overdue(active_loan, now=now + timedelta(days=31))
    assert overdue.status is LoanStatus.OVERDUE

    with pytest.raises(InvalidTransition):
        lifecycle.mark_defaulted(overdue, now=now + timedelta(days=33), grace_days=5)
    defaulted = lifecycle.mark_defaulted(overdue, now=now + timedelta(days=36), grace_days=5)
    assert defaulted.status is LoanStatus.DEFAULTED
    assert defaulted.is_terminal


def test_overdue_loan_still_accepts_repayment(active_loan, now):
    overdue = lifecycle.mark_overdue(active_loan, now=now + timedelta(days=31))
    loan = lifecycle.record_repayment(overdue, 10200, now=now + timedelta(days=32))
    assert loan.status is LoanStatus.COMPLETED


def test_dispute(active_loan, pending_loan):
    disputed = lifecycle.raise_dispute(active_loan, Role.BORROWER)
    assert disputed.status is LoanStatus.DISPUTED
    assert disputed.status_before_dispute is LoanStatus.IN_PROGRESS
    with pytest.raises(InvalidTransition):
        lifecycle.raise_dispute(disputed, Role.LENDER)
    with pytest.raises(InvalidTransition):
        lifecycle.raise_dispute(pending_loan, Role.LENDER)
    with pytest.raises(ValidationError):
        lifecycle.raise_dispute(active_loan, Role.ADMIN)


def test_settled_dispute_resumes_prior_status(active_loan, now):
    overdue = lifecycle.mark_overdue(active_loan, now=now + timedelta(days=31))
    settled = lifecycle.settle_dispute(lifecycle.raise_dispute(overdue, Role.LENDER))
    assert settled.status is LoanStatus.OVERDUE
    assert settled.status_before_dispute is None
    assert "record_repayment" in lifecycle.allowed_actions(settled, Role.LENDER)


def test_only_disputed_loans_settle(active_loan):
    with pytest.raises(InvalidTransition):
        lifecycle.settle_dispute(active_loan)


# ── ratings ─────────────────────────────────────────────────────────────
@pytest.fixture
def completed_loan(active_loan):
    return lifecycle.record_repayment(active_loan, 10200)


def test_each_party_rates_once(completed_loan):
    loan = lifecycle.rate(completed_loan, Role.BORROWER, 5, "Quick and fair")
    loan = lifecycle.rate(loan, Role.LENDER, 4)
    assert loan.borrower_rating.score == 5
    assert loan.lender_rating.score == 4
    with pytest.raises(AlreadyRated):
        lifecycle.rate(loan, Role.BORROWER, 3)


def test_rating_requires_completed_loan(active_loan):
    with pytest.raises(InvalidTransition):
        lifecycle.rate(active_loan, Role.BORROWER, 5)


@pytest.mark.parametrize("score", [0, 6, 4.5, True])
def test_rating_score_range(completed_loan, score):
    with pytest.raises(ValidationError):
        lifecycle.rate(completed_loan, Role.LENDER, score)


def test_admin_cannot_rate(completed_loan):
    with pytest.raises(ValidationError):
        lifecycle.rate(completed_loan, Role.ADMIN, 5)


def test_apply_rating_updates_average():
    user = User(id="u", role=Role.LENDER, average_rating=4.0, total_ratings=3)
    rated = lifecycle.apply_rating(user, 5)
    assert rated.total_ratings == 4
    assert rated.average_rating == 4.25


# ── allowed actions ─────────────────────────────────────────────────────
def test_allowed_actions(pending_loan, active_loan, completed_loan):
    assert lifecycle.allowed_actions(pending_loan, Role.LENDER) == {"accept", "decline"}
    assert lifecycle.allowed_actions(pending_loan, Role.BORROWER) == {"cancel"}
    assert lifecycle.allowed_actions(active_loan, Role.LENDER) == {"record_repayment", "dispute"}
    assert lifecycle.allowed_actions(active_loan, Role.ADMIN) == set()

    rated = lifecycle.rate(completed_loan, Role.BORROWER, 5)
    assert lifecycle.allowed_actions(rated, Role.BORROWER) == set()
    assert lifecycle.allowed_actions(rated, Role.LENDER) == {"rate"}
