from datetime import datetime, timezone

import pytest

from backends.fixture import FixtureBackend
from backends.fixture_data import seed
from lending import lifecycle
from lending.models import AccountStatus, Role, User, UserSummary

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_user():
    def _make(role=Role.BORROWER, status=AccountStatus.APPROVED, **kwargs):
        kwargs.setdefault("id", f"{Role(role).value}-1")
        return User(role=role, account_status=status, first_name="Test", last_name="User", **kwargs)
    return _make


@pytest.fixture
def borrower():
    return UserSummary(id="borrower-1", first_name="Amit", last_name="Patel")


@pytest.fixture
def lender():
    return UserSummary(id="lender-1", first_name="Priya", last_name="Sharma")


@pytest.fixture
def pending_loan(borrower, now):
    return lifecycle.create_loan(borrower, 10000, 30, "Education", interest_rate=2, now=now)


@pytest.fixture
def active_loan(pending_loan, lender, now):
    """In progress: 10,200 owed, due 30 days after `now`."""
    loan = lifecycle.accept(pending_loan, lender, now=now)
    return lifecycle.confirm_receipt(loan, now=now)


@pytest.fixture
def backend():
    return FixtureBackend(dataset=seed(NOW), latency=(0, 0))


@pytest.fixture
def strict_backend():
    return FixtureBackend(dataset=seed(NOW), latency=(0, 0), strict=True)
