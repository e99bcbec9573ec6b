import pytest
from pydantic import ValidationError as ModelError

from lending.models import AccountStatus, Loan, Role, User, account_status_from_flags


@pytest.mark.parametrize("complete, verified, status, expected", [
    (False, False, "none", AccountStatus.ONBOARDING),
    (False, False, None, AccountStatus.ONBOARDING),
    (True, False, "pending", AccountStatus.PENDING),
    (True, False, "none", AccountStatus.PENDING),
    (True, False, "rejected", AccountStatus.REJECTED),
    (True, True, "approved", AccountStatus.APPROVED),
    (True, True, "none", AccountStatus.APPROVED),
    (True, False, "approved", AccountStatus.APPROVED),
    (False, False, "approved", AccountStatus.APPROVED),
])
def test_flags_collapse_to_one_status(complete, verified, status, expected):
    assert account_status_from_flags(complete, verified, status) is expected


@pytest.mark.parametrize("verified, status", [
    (True, "rejected"),
    (True, "pending"),
])
def test_contradictory_flags_are_rejected(verified, status):
    with pytest.raises(ValueError):
        account_status_from_flags(True, verified, status)


def test_user_from_legacy_payload_round_trips_flags():
    user = User.model_validate({
        "id": "u1",
        "role": "lender",
        "isOnboardingComplete": True,
        "isAdminVerified": False,
        "verificationStatus": "rejected",
        "rejectedDocuments": [{"type": "selfie", "reason": "face not visible"}],
    })
    assert user.account_status is AccountStatus.REJECTED
    payload = user.to_payload()
    assert payload["isOnboardingComplete"] is True
    assert payload["isAdminVerified"] is False
    assert payload["verificationStatus"] == "rejected"
    assert payload["rejectedDocuments"] == [{"type": "selfie", "reason": "face not visible"}]


def test_user_payload_with_contradiction_fails_validation():
    with pytest.raises(ModelError):
        User.model_validate({
            "id": "u1", "role": "borrower",
            "isOnboardingComplete": True, "isAdminVerified": True, "verificationStatus": "rejected",
        })


def test_rejected_documents_require_rejected_status():
    with pytest.raises(ModelError):
        User(id="u1", role=Role.BORROWER, account_status=AccountStatus.APPROVED,
             rejected_documents=[{"type": "identity", "reason": "blurry"}])


def test_admin_is_always_verified():
    admin = User(id="a1", role=Role.ADMIN, account_status=AccountStatus.ONBOARDING)
    assert admin.is_admin_verified


def test_listing_status():
    assert User(id="u", role="borrower", account_status="pending").listing_status == "pending_verification"
    assert User(id="u", role="borrower", is_blocked=True).listing_status == "blocked"


def test_loan_cannot_be_overpaid(borrower):
    with pytest.raises(ModelError):
        Loan(id="l1", amount=1000, duration=7, purpose="x", borrower=borrower,
             total_repayable=1020, amount_repaid=1500)


def test_loan_remaining_amount(active_loan):
    assert active_loan.remaining_amount == 10200.0
    assert active_loan.to_payload()["remainingAmount"] == 10200.0


def test_approved_status_without_admin_flag_loads():
    user = User.model_validate({
        "id": "u1", "role": "borrower",
        "isOnboardingComplete": True, "isAdminVerified": False, "verificationStatus": "approved",
    })
    assert user.account_status is AccountStatus.APPROVED
    assert user.to_payload()["isAdminVerified"] is True
