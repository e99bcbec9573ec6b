"""Access gate — NO side effects, pure rule-based routing decisions.

Each gate maps an auth snapshot to one Outcome.  The checks run in a
fixed priority order because their conditions overlap.
"""

from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Union

from lending.models import AccountStatus, Role, User


# ── Outcomes ────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class ShowLoading:
    pass


@dataclass(frozen=True)
class RedirectTo:
    path: str


@dataclass(frozen=True)
class Allow:
    pass


Outcome = Union[ShowLoading, RedirectTo, Allow]

SHOW_LOADING = ShowLoading()
ALLOW = Allow()

LOGIN_PATH = "/login"
ONBOARDING_PATH = "/onboarding"
VERIFICATION_PATH = "/verification-pending"

# Mapping: role → dashboard
ROLE_HOME: dict[Role, str] = {
    Role.ADMIN: "/admin",
    Role.LENDER: "/lender",
    Role.BORROWER: "/borrower",
}


@dataclass(frozen=True)
class AuthSnapshot:
    """What the session store knows at one instant."""

    loading: bool = False
    user: Optional[User] = None
    token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


def role_home_path(role) -> str:
    """Dashboard for a role; unrecognized roles degrade to the login page."""
    try:
        return ROLE_HOME[Role(role)]
    except ValueError:
        return LOGIN_PATH


def _needs_onboarding(user: User) -> bool:
    return user.role is not Role.ADMIN and not user.is_onboarding_complete


def _awaiting_review(user: User, statuses=(AccountStatus.PENDING, AccountStatus.REJECTED)) -> bool:
    return (
        user.role is not Role.ADMIN
        and user.is_onboarding_complete
        and not user.is_admin_verified
        and user.account_status in statuses
    )


# ── Gates ───────────────────────────────────────────────────────────────
def decide_access(snapshot: AuthSnapshot, required_roles: Optional[Iterable] = None) -> Outcome:
    """
    Guard for role areas.
    Priority: loading > login > role > onboarding > verification > allow.
    """
    if snapshot.loading:
        return SHOW_LOADING

    if not snapshot.is_authenticated:
        return RedirectTo(LOGIN_PATH)

    user = snapshot.user
    if required_roles is not None:
        # Role is a str enum, so plain strings compare equal to members
        if user.role not in set(required_roles):
            return RedirectTo(role_home_path(user.role))

    if _needs_onboarding(user):
        return RedirectTo(ONBOARDING_PATH)

    if _awaiting_review(user):
        return RedirectTo(VERIFICATION_PATH)

    return ALLOW


def decide_onboarding_access(snapshot: AuthSnapshot) -> Outcome:
    """
    Guard for the onboarding page.  Rejected users are let back in so they
    can resubmit documents.
    """
    if snapshot.loading:
        return SHOW_LOADING

    if not snapshot.is_authenticated:
        return RedirectTo(LOGIN_PATH)

    user = snapshot.user
    if user.is_onboarding_complete and user.account_status is not AccountStatus.REJECTED:
        if _awaiting_review(user, statuses=(AccountStatus.PENDING,)):
            return RedirectTo(VERIFICATION_PATH)
        if user.is_admin_verified:
            return RedirectTo(role_home_path(user.role))

    return ALLOW


def decide_verification_access(snapshot: AuthSnapshot) -> Outcome:
    """Guard for the verification-pending page."""
    if snapshot.loading:
        return SHOW_LOADING

    if not snapshot.is_authenticated:
        return RedirectTo(LOGIN_PATH)

    user = snapshot.user
    if _needs_onboarding(user):
        return RedirectTo(ONBOARDING_PATH)

    if user.is_admin_verified:
        return RedirectTo(role_home_path(user.role))

    return ALLOW


def decide_public_access(snapshot: AuthSnapshot) -> Outcome:
    """Guard for login/register pages: signed-in users are sent onward."""
    if snapshot.loading:
        return SHOW_LOADING

    if not snapshot.is_authenticated:
        return ALLOW

    user = snapshot.user
    if _needs_onboarding(user):
        return RedirectTo(ONBOARDING_PATH)

    if _awaiting_review(user, statuses=(AccountStatus.PENDING,)):
        return RedirectTo(VERIFICATION_PATH)

    return RedirectTo(role_home_path(user.role))


# ── Route table ─────────────────────────────────────────────────────────
def _role_area(role: Role) -> Callable[[AuthSnapshot], Outcome]:
    def gate(snapshot: AuthSnapshot) -> Outcome:
        return decide_access(snapshot, required_roles=[role])
    return gate


def _landing(snapshot: AuthSnapshot) -> Outcome:
    return ALLOW


# Longest prefix wins; "/" is the landing page
ROUTE_TABLE: dict[str, Callable[[AuthSnapshot], Outcome]] = {
    "/login": decide_public_access,
    "/register": decide_public_access,
    "/forgot-password": decide_public_access,
    ONBOARDING_PATH: decide_onboarding_access,
    VERIFICATION_PATH: decide_verification_access,
    "/admin": _role_area(Role.ADMIN),
    "/lender": _role_area(Role.LENDER),
    "/borrower": _role_area(Role.BORROWER),
    "/": _landing,
}


def decide_route(path: str, snapshot: AuthSnapshot) -> Outcome:
    """Resolve a URL path to its guard; unknown paths redirect to the landing page."""
    path = "/" + path.strip("/")
    if path == "/":
        return ROUTE_TABLE["/"](snapshot)
    for prefix in sorted(ROUTE_TABLE, key=len, reverse=True):
        if prefix == "/":
            continue
        if path == prefix or path.startswith(prefix + "/"):
            return ROUTE_TABLE[prefix](snapshot)
    return RedirectTo("/")
