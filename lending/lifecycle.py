"""Loan lifecycle — the state machine from request to closure.

Every transition is a pure function: it takes a Loan and returns a new
Loan, leaving the input untouched.  Guard failures raise typed errors;
nothing here retries.

    pending ─accept→ accepted ─confirm_receipt→ in_progress ─repay…→ completed
       │                │                           │
       ├─cancel→ cancelled                          ├─mark_overdue→ overdue ─mark_defaulted→ defaulted
       └─decline→ rejected        accepted/in_progress/overdue ─raise_dispute→ disputed
                                  disputed ─settle_dispute→ status before the dispute
"""

import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from config import (
    MIN_LOAN_AMOUNT,
    MAX_LOAN_AMOUNT,
    MIN_DURATION_DAYS,
    MAX_DURATION_DAYS,
    DEFAULT_INTEREST_RATE,
    MAX_INTEREST_RATE,
    OVERDUE_GRACE_DAYS,
)
from lending.errors import AlreadyRated, InvalidTransition, ValidationError
from lending.models import Loan, LoanStatus, Rating, Repayment, Role, User, UserSummary, utcnow


@dataclass(frozen=True)
class LoanBounds:
    min_amount: float = MIN_LOAN_AMOUNT
    max_amount: float = MAX_LOAN_AMOUNT
    min_duration: int = MIN_DURATION_DAYS
    max_duration: int = MAX_DURATION_DAYS
    default_interest_rate: float = DEFAULT_INTEREST_RATE
    max_interest_rate: float = MAX_INTEREST_RATE


# ── Transition table ────────────────────────────────────────────────────
# action → (allowed source states, target state)
TRANSITIONS: dict[str, tuple[frozenset, LoanStatus]] = {
    "accept": (frozenset({LoanStatus.PENDING}), LoanStatus.ACCEPTED),
    "decline": (frozenset({LoanStatus.PENDING}), LoanStatus.REJECTED),
    "cancel": (frozenset({LoanStatus.PENDING}), LoanStatus.CANCELLED),
    "confirm_receipt": (frozenset({LoanStatus.ACCEPTED}), LoanStatus.IN_PROGRESS),
    "record_repayment": (frozenset({LoanStatus.IN_PROGRESS, LoanStatus.OVERDUE}), LoanStatus.IN_PROGRESS),
    "mark_overdue": (frozenset({LoanStatus.IN_PROGRESS}), LoanStatus.OVERDUE),
    "mark_defaulted": (frozenset({LoanStatus.OVERDUE}), LoanStatus.DEFAULTED),
    "dispute": (
        frozenset({LoanStatus.ACCEPTED, LoanStatus.IN_PROGRESS, LoanStatus.OVERDUE}),
        LoanStatus.DISPUTED,
    ),
    "rate": (frozenset({LoanStatus.COMPLETED}), LoanStatus.COMPLETED),
    # target is the status stored when the dispute was raised
    "settle_dispute": (frozenset({LoanStatus.DISPUTED}), LoanStatus.IN_PROGRESS),
}

# Which party may trigger each action
ACTION_ROLES: dict[str, frozenset] = {
    "accept": frozenset({Role.LENDER}),
    "decline": frozenset({Role.LENDER}),
    "cancel": frozenset({Role.BORROWER}),
    "confirm_receipt": frozenset({Role.BORROWER}),
    "record_repayment": frozenset({Role.LENDER}),
    "dispute": frozenset({Role.BORROWER, Role.LENDER}),
    "rate": frozenset({Role.BORROWER, Role.LENDER}),
}


def _guard(loan: Loan, action: str) -> LoanStatus:
    sources, target = TRANSITIONS[action]
    if loan.status not in sources:
        raise InvalidTransition(f"cannot {action.replace('_', ' ')} a loan that is {loan.status.value}")
    return target


def _money(value: float) -> float:
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"not a finite amount: {value!r}")
    return round(value, 2)


def flat_total_repayable(amount: float, interest_rate: float) -> float:
    """Principal plus flat interest for the whole term."""
    return _money(amount * (1 + interest_rate / 100))


# ── Transitions ─────────────────────────────────────────────────────────
def create_loan(
    borrower,
    amount: float,
    duration: int,
    purpose: str,
    description: str = "",
    interest_rate: Optional[float] = None,
    bounds: LoanBounds = LoanBounds(),
    now: Optional[datetime] = None,
) -> Loan:
    """Borrower opens a new request (pending)."""
    if isinstance(borrower, User):
        if borrower.role is not Role.BORROWER:
            raise ValidationError("only borrowers can request loans")
        borrower = borrower.summary()

    try:
        amount = _money(amount)
        duration = int(duration)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("amount and duration must be numbers")

    if not bounds.min_amount <= amount <= bounds.max_amount:
        raise ValidationError(
            f"amount must be between {bounds.min_amount:,.0f} and {bounds.max_amount:,.0f}"
        )
    if not bounds.min_duration <= duration <= bounds.max_duration:
        raise ValidationError(
            f"duration must be between {bounds.min_duration} and {bounds.max_duration} days"
        )
    if not purpose or not purpose.strip():
        raise ValidationError("purpose is required")

    try:
        rate = bounds.default_interest_rate if interest_rate is None else _money(interest_rate)
    except (TypeError, ValueError):
        raise ValidationError("interest rate must be a number")
    if not 0 <= rate <= bounds.max_interest_rate:
        raise ValidationError(f"interest rate must be between 0 and {bounds.max_interest_rate}")

    return Loan(
        id=f"loan-{uuid.uuid4().hex[:12]}",
        amount=amount,
        duration=duration,
        interest_rate=rate,
        purpose=purpose.strip(),
        description=description,
        status=LoanStatus.PENDING,
        borrower=borrower,
        total_repayable=flat_total_repayable(amount, rate),
        created_at=now or utcnow(),
    )


def accept(loan: Loan, lender: UserSummary, now: Optional[datetime] = None) -> Loan:
    target = _guard(loan, "accept")
    return loan.model_copy(update={
        "status": target,
        "lender": lender,
        "accepted_at": now or utcnow(),
    })


def decline(loan: Loan) -> Loan:
    return loan.model_copy(update={"status": _guard(loan, "decline")})


def cancel(loan: Loan) -> Loan:
    return loan.model_copy(update={"status": _guard(loan, "cancel")})


def confirm_receipt(
    loan: Loan,
    now: Optional[datetime] = None,
    total_repayable: Optional[float] = None,
) -> Loan:
    """Borrower confirms the money arrived; the repayment clock starts."""
    target = _guard(loan, "confirm_receipt")
    now = now or utcnow()
    if total_repayable is None:
        total_repayable = flat_total_repayable(loan.amount, loan.interest_rate)
    try:
        total_repayable = _money(total_repayable)
    except (TypeError, ValueError):
        raise ValidationError("totalRepayable must be a number")
    if total_repayable < loan.amount_repaid:
        raise ValidationError("totalRepayable cannot be below the amount already repaid")
    return loan.model_copy(update={
        "status": target,
        "due_date": now + timedelta(days=loan.duration),
        "total_repayable": total_repayable,
    })


def record_repayment(
    loan: Loan,
    amount: float,
    now: Optional[datetime] = None,
    payment_method: str = "upi",
    transaction_reference: Optional[str] = None,
    remarks: Optional[str] = None,
) -> Loan:
    """
    Lender records money received.  Overdue loans still accept repayments;
    the loan completes when amountRepaid reaches totalRepayable.
    """
    _guard(loan, "record_repayment")
    now = now or utcnow()

    try:
        amount = _money(amount)
    except (TypeError, ValueError):
        raise ValidationError("repayment amount must be a number")
    remaining = loan.remaining_amount or 0.0
    if amount <= 0:
        raise ValidationError("repayment amount must be positive")
    if amount > remaining:
        raise ValidationError(f"repayment of {amount:,.2f} exceeds the remaining {remaining:,.2f}")

    is_late = loan.due_date is not None and now > loan.due_date
    days_late = math.ceil((now - loan.due_date).total_seconds() / 86400) if is_late else 0

    repayment = Repayment(
        id=f"rep-{uuid.uuid4().hex[:12]}",
        amount=amount,
        payment_date=now,
        payment_method=payment_method or "upi",
        transaction_reference=transaction_reference or None,
        remarks=remarks or None,
        confirmed_by_lender=True,
        is_late=is_late,
        days_late=days_late,
    )
    repaid = _money(loan.amount_repaid + amount)
    update = {
        "amount_repaid": repaid,
        "repayments": [*loan.repayments, repayment],
    }
    if repaid >= loan.total_repayable:
        update["status"] = LoanStatus.COMPLETED
        update["completed_at"] = now
    return loan.model_copy(update=update)


def mark_overdue(loan: Loan, now: Optional[datetime] = None) -> Loan:
    """Time-driven: the due date passed with money still owed."""
    target = _guard(loan, "mark_overdue")
    now = now or utcnow()
    if loan.due_date is None or now <= loan.due_date:
        raise InvalidTransition("loan is not past its due date")
    if (loan.remaining_amount or 0) <= 0:
        raise InvalidTransition("loan is fully repaid")
    return loan.model_copy(update={"status": target})


def mark_defaulted(
    loan: Loan,
    now: Optional[datetime] = None,
    grace_days: int = OVERDUE_GRACE_DAYS,
) -> Loan:
    """Overdue loans default once the grace period after the due date runs out."""
    target = _guard(loan, "mark_defaulted")
    now = now or utcnow()
    if now <= loan.due_date + timedelta(days=grace_days):
        raise InvalidTransition(f"grace period of {grace_days} days has not run out")
    return loan.model_copy(update={"status": target})


def raise_dispute(loan: Loan, role: Role) -> Loan:
    if Role(role) not in ACTION_ROLES["dispute"]:
        raise ValidationError("only the borrower or the lender can dispute a loan")
    return loan.model_copy(update={
        "status": _guard(loan, "dispute"),
        "status_before_dispute": loan.status,
    })


def settle_dispute(loan: Loan) -> Loan:
    """The dispute is closed; the loan resumes where it was when it was raised."""
    target = _guard(loan, "settle_dispute")
    return loan.model_copy(update={
        "status": loan.status_before_dispute or target,
        "status_before_dispute": None,
    })


# Mapping: rater role → rating slot on the loan
RATING_SLOTS: dict[Role, str] = {
    Role.BORROWER: "borrower_rating",
    Role.LENDER: "lender_rating",
}


def rate(
    loan: Loan,
    role: Role,
    score: int,
    review: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Loan:
    """A party rates the other once the loan is completed, at most once each."""
    slot = RATING_SLOTS.get(Role(role))
    if slot is None:
        raise ValidationError("only the borrower or the lender can rate a loan")
    _guard(loan, "rate")
    if not isinstance(score, int) or isinstance(score, bool) or not 1 <= score <= 5:
        raise ValidationError("rating must be an integer from 1 to 5")
    if getattr(loan, slot) is not None:
        raise AlreadyRated(f"the {Role(role).value} has already rated this loan")
    rating = Rating(score=score, review=review or None, created_at=now or utcnow())
    return loan.model_copy(update={slot: rating})


def apply_rating(user, score: int):
    """Fold one more rating into a user's running average."""
    total = user.total_ratings + 1
    average = round((user.average_rating * user.total_ratings + score) / total, 2)
    return user.model_copy(update={"average_rating": average, "total_ratings": total})


def allowed_actions(loan: Loan, role: Role) -> set[str]:
    """Actions the given party may take on the loan right now."""
    role = Role(role)
    actions = set()
    for action, roles in ACTION_ROLES.items():
        if role not in roles:
            continue
        sources, _ = TRANSITIONS[action]
        if loan.status not in sources:
            continue
        if action == "rate" and getattr(loan, RATING_SLOTS[role]) is not None:
            continue
        actions.add(action)
    return actions
