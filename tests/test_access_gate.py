import pytest

from lending.access import (
    ALLOW,
    SHOW_LOADING,
    AuthSnapshot,
    RedirectTo,
    decide_access,
    decide_onboarding_access,
    decide_public_access,
    decide_route,
    decide_verification_access,
    role_home_path,
)
from lending.models import AccountStatus, Role, User


def signed_in(role="borrower", **flags):
    user = User.model_validate({"id": "u1", "role": role, **flags})
    return AuthSnapshot(user=user, token="t")


def test_loading_wins_over_everything(make_user):
    snapshot = AuthSnapshot(loading=True, user=make_user(Role.ADMIN), token="t")
    assert decide_access(snapshot, ["borrower"]) == SHOW_LOADING
    assert decide_onboarding_access(snapshot) == SHOW_LOADING
    assert decide_verification_access(snapshot) == SHOW_LOADING
    assert decide_public_access(snapshot) == SHOW_LOADING


def test_anonymous_goes_to_login():
    assert decide_access(AuthSnapshot()) == RedirectTo("/login")
    assert decide_onboarding_access(AuthSnapshot()) == RedirectTo("/login")
    assert decide_public_access(AuthSnapshot()) == ALLOW


def test_incomplete_onboarding_redirects_even_with_matching_role():
    snapshot = signed_in("borrower", isOnboardingComplete=False)
    assert decide_access(snapshot, ["borrower"]) == RedirectTo("/onboarding")


def test_rejected_lender_waits_for_verification():
    snapshot = signed_in(
        "lender", isOnboardingComplete=True, isAdminVerified=False, verificationStatus="rejected",
    )
    assert decide_access(snapshot) == RedirectTo("/verification-pending")


def test_wrong_role_goes_home_before_onboarding_check():
    snapshot = signed_in("lender", isOnboardingComplete=False)
    assert decide_access(snapshot, ["borrower"]) == RedirectTo("/lender")


def test_admin_skips_onboarding_and_verification(make_user):
    snapshot = AuthSnapshot(user=make_user(Role.ADMIN, AccountStatus.ONBOARDING), token="t")
    assert decide_access(snapshot, ["admin"]) == ALLOW


def test_approved_user_allowed(make_user):
    snapshot = AuthSnapshot(user=make_user(Role.BORROWER), token="t")
    assert decide_access(snapshot, [Role.BORROWER, Role.LENDER]) == ALLOW
    assert decide_access(snapshot) == ALLOW


@pytest.mark.parametrize("role, home", [
    ("admin", "/admin"),
    ("lender", "/lender"),
    ("borrower", "/borrower"),
    ("auditor", "/login"),
])
def test_role_home_path(role, home):
    assert role_home_path(role) == home


class TestOnboardingGate:
    def test_pending_user_sent_to_verification(self, make_user):
        snapshot = AuthSnapshot(user=make_user(status=AccountStatus.PENDING), token="t")
        assert decide_onboarding_access(snapshot) == RedirectTo("/verification-pending")

    def test_rejected_user_may_resubmit(self):
        snapshot = signed_in(
            "borrower", isOnboardingComplete=True, verificationStatus="rejected",
            rejectedDocuments=[{"type": "identity", "reason": "blurry"}],
        )
        assert decide_onboarding_access(snapshot) == ALLOW

    def test_verified_user_sent_home(self, make_user):
        snapshot = AuthSnapshot(user=make_user(Role.LENDER), token="t")
        assert decide_onboarding_access(snapshot) == RedirectTo("/lender")

    def test_new_user_allowed(self, make_user):
        snapshot = AuthSnapshot(user=make_user(status=AccountStatus.ONBOARDING), token="t")
        assert decide_onboarding_access(snapshot) == ALLOW


class TestVerificationGate:
    def test_onboarding_first(self, make_user):
        snapshot = AuthSnapshot(user=make_user(status=AccountStatus.ONBOARDING), token="t")
        assert decide_verification_access(snapshot) == RedirectTo("/onboarding")

    def test_verified_user_sent_home(self, make_user):
        snapshot = AuthSnapshot(user=make_user(Role.BORROWER), token="t")
        assert decide_verification_access(snapshot) == RedirectTo("/borrower")

    @pytest.mark.parametrize("status", [AccountStatus.PENDING, AccountStatus.REJECTED])
    def test_waiting_user_allowed(self, make_user, status):
        snapshot = AuthSnapshot(user=make_user(status=status), token="t")
        assert decide_verification_access(snapshot) == ALLOW


class TestPublicGate:
    def test_pending_user_sent_to_verification(self, make_user):
        snapshot = AuthSnapshot(user=make_user(status=AccountStatus.PENDING), token="t")
        assert decide_public_access(snapshot) == RedirectTo("/verification-pending")

    def test_signed_in_user_sent_home(self, make_user):
        snapshot = AuthSnapshot(user=make_user(Role.ADMIN), token="t")
        assert decide_public_access(snapshot) == RedirectTo("/admin")


class TestRouteTable:
    def test_role_areas_use_longest_prefix(self, make_user):
        snapshot = AuthSnapshot(user=make_user(Role.LENDER), token="t")
        assert decide_route("/lender/requests", snapshot) == ALLOW
        assert decide_route("/borrower/loans", snapshot) == RedirectTo("/lender")
        assert decide_route("/admin", snapshot) == RedirectTo("/lender")

    def test_public_and_landing(self):
        assert decide_route("/login", AuthSnapshot()) == ALLOW
        assert decide_route("/", AuthSnapshot()) == ALLOW

    def test_unknown_path_goes_to_landing(self):
        assert decide_route("/nowhere", AuthSnapshot()) == RedirectTo("/")

    def test_prefix_must_match_whole_segment(self, make_user):
        snapshot = AuthSnapshot(user=make_user(Role.ADMIN), token="t")
        assert decide_route("/administrator", snapshot) == RedirectTo("/")
