"""FixtureBackend — in-memory demo backend, no network.

Serves the same envelopes as the REST API with a simulated 0.3–0.5s
latency.  Mutations go through the lifecycle / verification engines and
update the seeded dataset, so later reads in the same session agree.

Permissive by default, like a demo should be:
  • a lookup that misses falls back to a default record (logged)
  • a state-guard violation (InvalidTransition, AlreadyRated) is logged and
    the record is returned unchanged
  • a caller who is not a party to the loan gets the record back unchanged
With strict=True all three raise instead (a non-party as ValidationError),
which is what the dev API server uses.
Bad input (ValidationError) is raised in either mode.
"""

import asyncio
import logging
import random
import uuid
from typing import Any, Callable, Mapping, Optional

from config import (
    DEMO_LATENCY_MAX,
    DEMO_LATENCY_MIN,
    DEMO_TOKEN,
    FIXTURE_STRICT,
    MIN_PASSWORD_LENGTH,
    VERIFICATION_CODE_LENGTH,
)
from backends.base import Envelope, LendingBackend, ok, page
from backends.fixture_data import DEMO_USERS, FixtureDataset, registered_user, seed
from lending import cases, lifecycle
from lending.errors import AlreadyRated, InvalidTransition, NotFound, ValidationError
from lending.models import (
    AccountStatus,
    ActivityLog,
    Dispute,
    DisputeNote,
    DocumentType,
    Loan,
    LoanStatus,
    Notification,
    Report,
    Role,
    User,
)
from lending.verification import apply_outcome, complete_onboarding, decide, resubmit_documents

logger = logging.getLogger(__name__)

DEFAULT_LOAN_ID = "borrower-loan-001"
ACTIVE_STATUSES = frozenset({LoanStatus.ACCEPTED, LoanStatus.IN_PROGRESS, LoanStatus.OVERDUE})

# Profile fields a user may edit themselves (wire name → model field)
_PROFILE_FIELDS = {
    "firstName": "first_name",
    "lastName": "last_name",
    "phone": "phone",
    "city": "city",
    "state": "state",
}


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.lower() in ("true", "1", "yes")
    return bool(value)


def _wants(params: Mapping, key: str) -> Optional[str]:
    """A filter value, ignoring blanks and the UI's "all"."""
    value = params.get(key)
    if value in (None, "", "all"):
        return None
    return str(value)


def _newest_first(items: list) -> list:
    return sorted(items, key=lambda item: item.created_at, reverse=True)


class FixtureBackend(LendingBackend):
    is_demo = True

    def __init__(
        self,
        dataset: Optional[FixtureDataset] = None,
        latency: tuple[float, float] = (DEMO_LATENCY_MIN, DEMO_LATENCY_MAX),
        strict: bool = FIXTURE_STRICT,
        current_user_id: Optional[str] = None,
    ):
        self.data = dataset or seed()
        self.latency = latency
        self.strict = strict
        self.current_user_id = current_user_id
        # (user id, "email" | "phone") → last code sent
        self.codes: dict[tuple[str, str], str] = {}

    # ── Helpers ─────────────────────────────────────────────────────────
    async def _delay(self) -> None:
        low, high = self.latency
        if high > 0:
            await asyncio.sleep(random.uniform(low, high))

    def _me(self, role: Optional[Role] = None) -> User:
        """The signed-in user, or the demo account for the requested role."""
        user = self.data.user(self.current_user_id) if self.current_user_id else None
        if user is not None and (role is None or user.role is role):
            return user
        fallback = self.data.user(DEMO_USERS[role or Role.BORROWER]["id"])
        return fallback or self.data.users[0]

    def _missing(self, kind: str, key: str):
        if self.strict:
            raise NotFound(f"{kind} {key} not found")
        logger.info(f"Demo lookup miss: {kind} {key!r}, serving default record")

    def _find_loan(self, loan_id: str) -> Loan:
        loan = self.data.loan(loan_id)
        if loan is None:
            self._missing("loan", loan_id)
            loan = self.data.loan(DEFAULT_LOAN_ID) or self.data.loans[0]
        return loan

    def _find_user(self, user_id: str) -> User:
        user = self.data.user(user_id)
        if user is None:
            self._missing("user", user_id)
            user = self.data.users[0]
        return user

    def _find(self, items: list, item_id: str, kind: str):
        found = next((item for item in items if item.id == item_id), None)
        if found is None:
            self._missing(kind, item_id)
        return found

    def _apply(self, record, transition: Callable[[], Any]):
        """Run an engine transition; in permissive mode guard failures keep the record."""
        try:
            return transition()
        except (InvalidTransition, AlreadyRated) as e:
            if self.strict:
                raise
            logger.warning(f"Demo ignored {e.code} on {record.id}: {e.message}")
            return record

    def _is_party(self, loan: Loan, me: User, *sides: str) -> bool:
        """Whether ``me`` is the loan's borrower or lender (whichever sides are named)."""
        parties = {
            "borrower": loan.borrower.id,
            "lender": loan.lender.id if loan.lender is not None else None,
        }
        if me.id in {parties[side] for side in sides}:
            return True
        message = f"{me.id} is not the {' or '.join(sides)} of loan {loan.id}"
        if self.strict:
            raise ValidationError(message)
        logger.warning(f"Demo ignored: {message}")
        return False

    @staticmethod
    def _replace(items: list, record) -> None:
        for i, item in enumerate(items):
            if item.id == record.id:
                items[i] = record
                return
        items.insert(0, record)

    def _log(self, action: str, description: str, user_id: Optional[str] = None) -> None:
        self.data.activity_logs.insert(0, ActivityLog(
            id=f"log-{uuid.uuid4().hex[:8]}",
            action=action,
            description=description,
            user_id=user_id,
        ))

    def _notify(self, type_: str, title: str, message: str) -> None:
        self.data.notifications.insert(0, Notification(
            id=f"notif-{uuid.uuid4().hex[:8]}",
            type=type_,
            title=title,
            message=message,
        ))

    def _bounds(self) -> lifecycle.LoanBounds:
        s = self.data.settings
        return lifecycle.LoanBounds(
            min_amount=float(s["minLoanAmount"]),
            max_amount=float(s["maxLoanAmount"]),
            min_duration=int(s["minDuration"]),
            max_duration=int(s["maxDuration"]),
            default_interest_rate=float(s["defaultInterestRate"]),
            max_interest_rate=float(s["maxInterestRate"]),
        )

    def _loans_page(self, loans: list[Loan], params: Optional[Mapping], key: str = "loans") -> dict:
        status = _wants(params or {}, "status")
        if status:
            loans = [l for l in loans if l.status.value == status]
        return page(key, [l.to_payload() for l in _newest_first(loans)])

    # ── Auth ────────────────────────────────────────────────────────────
    async def register(self, data: Mapping) -> Envelope:
        await self._delay()
        user = registered_user(data)
        self.data.users.append(user)
        self.current_user_id = user.id
        self._log("user_registered", f"New user registration: {user.full_name}", user.id)
        return ok(
            {"user": user.to_payload(), "token": DEMO_TOKEN},
            "Registration successful! Welcome to the Udhaar Check demo.",
        )

    async def login(self, email: str, password: str) -> Envelope:
        await self._delay()
        email = (email or "").strip().lower()
        user = next((u for u in self.data.users if u.email.lower() == email), None)
        if user is None:
            if self.strict:
                raise ValidationError("invalid email or password")
            logger.info(f"Demo login for unknown email {email!r}, using demo borrower")
            user = self._me(Role.BORROWER)
        self.current_user_id = user.id
        return ok({"user": user.to_payload(), "token": DEMO_TOKEN}, "Login successful")

    async def get_profile(self) -> Envelope:
        await self._delay()
        return ok(self._me().to_payload())

    async def update_profile(self, data: Mapping) -> Envelope:
        await self._delay()
        me = self._me()
        update = {field: data[key] for key, field in _PROFILE_FIELDS.items() if key in data}
        me = me.model_copy(update=update)
        self._replace(self.data.users, me)
        return ok(me.to_payload(), "Profile updated successfully")

    async def complete_onboarding(self, data: Mapping) -> Envelope:
        await self._delay()
        me = self._me()
        documents = data.get("documents") or {
            t.value: data[t.value] for t in DocumentType if data.get(t.value)
        }
        if me.account_status is AccountStatus.REJECTED:
            me = resubmit_documents(me, documents)
        else:
            me = complete_onboarding(me, documents)
        self._replace(self.data.users, me)
        self._log("onboarding_completed", f"Documents submitted for review: {me.full_name}", me.id)
        return ok(me.to_payload(), "Onboarding completed")

    # ── Account ─────────────────────────────────────────────────────────
    async def change_password(self, data: Mapping) -> Envelope:
        await self._delay()
        current, new = data.get("currentPassword") or "", data.get("newPassword") or ""
        if not current or not new:
            raise ValidationError("current and new password are required")
        if len(new) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
        if new == current:
            raise ValidationError("new password must differ from the current one")
        me = self._me()
        self._log("password_changed", f"Password changed: {me.full_name}", me.id)
        return ok(message="Password changed successfully")

    async def reset_password(self, data: Mapping) -> Envelope:
        await self._delay()
        email = (data.get("email") or "").strip().lower()
        new = data.get("newPassword") or ""
        if not email or not new:
            raise ValidationError("email and new password are required")
        if len(new) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
        user = next((u for u in self.data.users if u.email.lower() == email), None)
        if user is None:
            self._missing("account", email)
        else:
            self._log("password_reset", f"Password reset: {user.full_name}", user.id)
        return ok(message="Password reset successful")

    async def upload_profile_picture(self, data: Mapping) -> Envelope:
        await self._delay()
        photo = data.get("profilePhoto")
        if not photo:
            raise ValidationError("profilePhoto is required")
        me = self._me().model_copy(update={"profile_photo": str(photo)})
        self._replace(self.data.users, me)
        return ok(me.to_payload(), "Profile picture updated")

    def _send_code(self, channel: str) -> Envelope:
        me = self._me()
        code = "".join(random.choices("0123456789", k=VERIFICATION_CODE_LENGTH))
        self.codes[(me.id, channel)] = code
        # the demo hands the code back, as the backend does in development
        return ok({"code": code}, f"Verification code sent to your {channel}")

    def _check_code(self, channel: str, data: Mapping) -> User:
        me = self._me()
        code = str(data.get("code") or "").strip()
        if not code:
            raise ValidationError("verification code is required")
        if self.codes.get((me.id, channel)) != code:
            raise ValidationError("invalid or expired verification code")
        del self.codes[(me.id, channel)]
        me = me.model_copy(update={f"is_{channel}_verified": True})
        self._replace(self.data.users, me)
        return me

    async def send_email_verification(self) -> Envelope:
        await self._delay()
        return self._send_code("email")

    async def verify_email(self, data: Mapping) -> Envelope:
        await self._delay()
        return ok(self._check_code("email", data).to_payload(), "Email verified")

    async def send_phone_verification(self) -> Envelope:
        await self._delay()
        return self._send_code("phone")

    async def verify_phone(self, data: Mapping) -> Envelope:
        await self._delay()
        return ok(self._check_code("phone", data).to_payload(), "Phone verified")

    # ── Loans: borrower ─────────────────────────────────────────────────
    async def create_request(self, data: Mapping) -> Envelope:
        await self._delay()
        me = self._me(Role.BORROWER)
        loan = lifecycle.create_loan(
            me,
            amount=data.get("amount"),
            duration=data.get("duration"),
            purpose=data.get("purpose", ""),
            description=data.get("description", ""),
            interest_rate=data.get("interestRate"),
            bounds=self._bounds(),
        )
        self.data.loans.insert(0, loan)
        self._log("loan_created", f"New loan request: ₹{loan.amount:,.0f} by {me.full_name}", me.id)
        return ok(loan.to_payload(), "Loan request created successfully")

    async def get_my_borrowings(self, params: Optional[Mapping] = None) -> Envelope:
        await self._delay()
        me = self._me(Role.BORROWER)
        return ok(self._loans_page([l for l in self.data.loans if l.borrower.id == me.id], params))

    async def mark_fulfilled(self, loan_id: str) -> Envelope:
        await self._delay()
        loan = self._find_loan(loan_id)
        if self._is_party(loan, self._me(Role.BORROWER), "borrower"):
            loan = self._apply(loan, lambda: lifecycle.confirm_receipt(loan))
            self._replace(self.data.loans, loan)
        return ok(loan.to_payload(), "Marked as fulfilled")

    async def cancel_request(self, loan_id: str) -> Envelope:
        await self._delay()
        loan = self._find_loan(loan_id)
        if self._is_party(loan, self._me(Role.BORROWER), "borrower"):
            loan = self._apply(loan, lambda: lifecycle.cancel(loan))
            self._replace(self.data.loans, loan)
        return ok(loan.to_payload(), "Request cancelled")

    # ── Loans: lender ───────────────────────────────────────────────────
    async def get_pending_requests(self, params: Optional[Mapping] = None) -> Envelope:
        await self._delay()
        me = self._me(Role.LENDER)
        pending = [
            l for l in self.data.loans
            if l.status is LoanStatus.PENDING and l.borrower.id != me.id
        ]
        return ok(self._loans_page(pending, params, key="requests"))

    async def get_my_lending(self, params: Optional[Mapping] = None) -> Envelope:
        await self._delay()
        me = self._me(Role.LENDER)
        return ok(self._loans_page(
            [l for l in self.data.loans if l.lender is not None and l.lender.id == me.id], params
        ))

    async def accept_request(self, loan_id: str) -> Envelope:
        await self._delay()
        me = self._me(Role.LENDER)
        before = self._find_loan(loan_id)
        loan = self._apply(before, lambda: lifecycle.accept(before, me.summary()))
        self._replace(self.data.loans, loan)
        if loan is not before:
            self._notify("loan_accepted", "Loan Request Accepted",
                         f"Your loan request of ₹{loan.amount:,.0f} has been accepted by {me.full_name}")
            self._log("loan_accepted", f"Loan accepted: ₹{loan.amount:,.0f} by {me.full_name}", me.id)
        return ok(loan.to_payload(), "Request accepted")

    async def decline_request(self, loan_id: str) -> Envelope:
        await self._delay()
        loan = self._find_loan(loan_id)
        loan = self._apply(loan, lambda: lifecycle.decline(loan))
        self._replace(self.data.loans, loan)
        return ok(loan.to_payload(), "Request declined")

    async def record_repayment(self, loan_id: str, data: Mapping) -> Envelope:
        await self._delay()
        before = self._find_loan(loan_id)
        if not self._is_party(before, self._me(Role.LENDER), "lender"):
            return ok(before.to_payload(), "Repayment recorded")
        loan = self._apply(before, lambda: lifecycle.record_repayment(
            before,
            data.get("amount"),
            payment_method=data.get("paymentMethod", "upi"),
            transaction_reference=data.get("transactionReference"),
            remarks=data.get("remarks"),
        ))
        self._replace(self.data.loans, loan)
        if loan is not before:
            paid = loan.repayments[-1].amount
            self._log("payment_received",
                      f"Payment received: ₹{paid:,.0f} from {loan.borrower.first_name} {loan.borrower.last_name}",
                      loan.borrower.id)
        return ok(loan.to_payload(), "Repayment recorded")

    # ── Loans: common ───────────────────────────────────────────────────
    async def get_loan_details(self, loan_id: str) -> Envelope:
        await self._delay()
        return ok(self._find_loan(loan_id).to_payload())

    async def rate_user(self, loan_id: str, data: Mapping) -> Envelope:
        await self._delay()
        me = self._me()
        before = self._find_loan(loan_id)
        score = data.get("rating", data.get("score"))
        try:
            score = int(score)
        except (TypeError, ValueError):
            raise ValidationError("rating must be an integer from 1 to 5")
        side = me.role.value if me.role in lifecycle.RATING_SLOTS else None
        if side is not None and not self._is_party(before, me, side):
            return ok(before.to_payload(), "Rating submitted")
        loan = self._apply(before, lambda: lifecycle.rate(before, me.role, score, data.get("review")))
        self._replace(self.data.loans, loan)
        if loan is not before:
            rated = loan.lender if me.role is Role.BORROWER else loan.borrower
            rated_user = self.data.user(rated.id) if rated else None
            if rated_user is not None:
                self._replace(self.data.users, lifecycle.apply_rating(rated_user, score))
        return ok(loan.to_payload(), "Rating submitted")

    # ── Reports ─────────────────────────────────────────────────────────
    async def create_report(self, data: Mapping) -> Envelope:
        await self._delay()
        me = self._me()
        reported = self.data.user(data.get("reportedUserId") or data.get("reportedUser") or "")
        report = Report(
            id=f"report-{uuid.uuid4().hex[:8]}",
            report_type=data.get("reportType") or data.get("type") or "other",
            title=data.get("title", ""),
            description=data.get("description") or data.get("reason") or "",
            reported_by=me.summary(),
            reported_user=reported.summary() if reported else None,
            loan_id=data.get("loanId"),
        )
        self.data.reports.insert(0, report)
        return ok(report.to_payload(), "Report submitted successfully")

    async def get_my_reports(self, params: Optional[Mapping] = None) -> Envelope:
        await self._delay()
        me = self._me()
        mine = [r for r in self.data.reports if r.reported_by.id == me.id]
        return ok(page("reports", [r.to_payload() for r in _newest_first(mine)]))

    async def get_reports(self, params: Optional[Mapping] = None) -> Envelope:
        await self._delay()
        status = _wants(params or {}, "status")
        reports = [r for r in self.data.reports if not status or r.status.value == status]
        return ok(page("reports", [r.to_payload() for r in _newest_first(reports)]))

    def _update_case(self, case, data: Mapping):
        status = data.get("status", "")
        note = data.get("adminNote") or data.get("adminNotes")
        if status == "investigating":
            return self._apply(case, lambda: cases.start_investigation(case))
        return self._apply(case, lambda: cases.resolve_case(case, status, note))

    async def resolve_report(self, report_id: str, data: Mapping) -> Envelope:
        await self._delay()
        report = self._find(self.data.reports, report_id, "report")
        if report is None:
            return ok(message="Report resolved")
        report = self._update_case(report, data)
        self._replace(self.data.reports, report)
        return ok(report.to_payload(), "Report resolved")

    # ── Disputes ────────────────────────────────────────────────────────
    async def create_dispute(self, data: Mapping) -> Envelope:
        await self._delay()
        me = self._me()
        before = self._find_loan(data.get("loanId", ""))
        if not self._is_party(before, me, "borrower", "lender"):
            return ok(message="Dispute created")
        loan = self._apply(before, lambda: lifecycle.raise_dispute(before, me.role))
        self._replace(self.data.loans, loan)
        dispute = Dispute(
            id=f"dispute-{uuid.uuid4().hex[:8]}",
            loan_id=loan.id,
            dispute_type=data.get("disputeType") or data.get("type") or "other",
            title=data.get("title", ""),
            description=data.get("description") or data.get("reason") or "",
            raised_by=me.summary(),
        )
        self.data.disputes.insert(0, dispute)
        return ok(dispute.to_payload(), "Dispute created")

    async def get_my_disputes(self, params: Optional[Mapping] = None) -> Envelope:
        await self._delay()
        me = self._me()
        my_loans = {
            l.id for l in self.data.loans
            if l.borrower.id == me.id or (l.lender is not None and l.lender.id == me.id)
        }
        mine = [d for d in self.data.disputes if d.raised_by.id == me.id or d.loan_id in my_loans]
        return ok(page("disputes", [d.to_payload() for d in _newest_first(mine)]))

    async def add_dispute_note(self, dispute_id: str, data: Mapping) -> Envelope:
        await self._delay()
        dispute = self._find(self.data.disputes, dispute_id, "dispute")
        if dispute is None:
            return ok(message="Note added")
        text = (data.get("note") or data.get("text") or "").strip()
        if not text:
            raise ValidationError("note text is required")
        note = DisputeNote(author_id=self._me().id, text=text)
        dispute = dispute.model_copy(update={"notes": [*dispute.notes, note]})
        self._replace(self.data.disputes, dispute)
        return ok(dispute.to_payload(), "Note added")

    async def get_disputes(self, params: Optional[Mapping] = None) -> Envelope:
        await self._delay()
        status = _wants(params or {}, "status")
        disputes = [d for d in self.data.disputes if not status or d.status.value == status]
        return ok(page("disputes", [d.to_payload() for d in _newest_first(disputes)]))

    async def resolve_dispute(self, dispute_id: str, data: Mapping) -> Envelope:
        await self._delay()
        dispute = self._find(self.data.disputes, dispute_id, "dispute")
        if dispute is None:
            return ok(message="Dispute resolved")
        before, dispute = dispute, self._update_case(dispute, data)
        self._replace(self.data.disputes, dispute)
        if dispute is not before and not cases.is_open(dispute):
            self._settle_loan(dispute.loan_id)
        return ok(dispute.to_payload(), "Dispute resolved")

    def _settle_loan(self, loan_id: str) -> None:
        """Return a disputed loan to its prior status once none of its disputes is open."""
        loan = self.data.loan(loan_id)
        if loan is None or loan.status is not LoanStatus.DISPUTED:
            return
        if any(d.loan_id == loan_id and cases.is_open(d) for d in self.data.disputes):
            return
        loan = lifecycle.settle_dispute(loan)
        self._replace(self.data.loans, loan)
        self._log("dispute_settled", f"Loan {loan.id} back to {loan.status.value}", loan.borrower.id)

    # ── Notifications ───────────────────────────────────────────────────
    async def get_notifications(self, params: Optional[Mapping] = None) -> Envelope:
        await self._delay()
        items = _newest_first(self.data.notifications)
        if _as_bool((params or {}).get("unreadOnly", False)):
            items = [n for n in items if not n.is_read]
        return ok({"notifications": [n.to_payload() for n in items], "total": len(items)})

    async def get_unread_count(self) -> Envelope:
        await self._delay()
        return ok({"count": sum(1 for n in self.data.notifications if not n.is_read)})

    async def mark_notification_read(self, notification_id: str) -> Envelope:
        await self._delay()
        notification = self._find(self.data.notifications, notification_id, "notification")
        if notification is not None:
            self._replace(self.data.notifications, notification.model_copy(update={"is_read": True}))
        return ok(message="Marked as read")

    async def mark_all_notifications_read(self) -> Envelope:
        await self._delay()
        self.data.notifications = [n.model_copy(update={"is_read": True}) for n in self.data.notifications]
        return ok(message="All marked as read")

    async def delete_notification(self, notification_id: str) -> Envelope:
        await self._delay()
        if self._find(self.data.notifications, notification_id, "notification") is not None:
            self.data.notifications = [n for n in self.data.notifications if n.id != notification_id]
        return ok(message="Notification deleted")

    # ── Admin ───────────────────────────────────────────────────────────
    async def get_dashboard_stats(self) -> Envelope:
        await self._delay()
        users, loans = self.data.users, self.data.loans
        completed = sum(1 for l in loans if l.status is LoanStatus.COMPLETED)
        defaulted = sum(1 for l in loans if l.status is LoanStatus.DEFAULTED)
        funded = [l for l in loans if l.lender is not None]
        stats = {
            "totalUsers": len(users),
            "totalLenders": sum(1 for u in users if u.role is Role.LENDER),
            "totalBorrowers": sum(1 for u in users if u.role is Role.BORROWER),
            "activeLoans": sum(1 for l in loans if l.status in ACTIVE_STATUSES),
            "completedLoans": completed,
            "defaultedLoans": defaulted,
            "totalLentAmount": round(sum(l.amount for l in funded), 2),
            "averageLoanAmount": round(sum(l.amount for l in loans) / len(loans), 2) if loans else 0,
            "pendingReports": sum(1 for r in self.data.reports if cases.is_open(r)),
            "openDisputes": sum(1 for d in self.data.disputes if cases.is_open(d)),
            "pendingVerifications": sum(1 for u in users if u.account_status is AccountStatus.PENDING),
            "repaymentRate": round(100 * completed / (completed + defaulted), 1) if completed + defaulted else 100.0,
        }
        return ok({
            "stats": stats,
            "recentLoans": [l.to_payload() for l in _newest_first(loans)[:5]],
            "recentUsers": [u.to_payload() for u in _newest_first(users)[:5]],
        })

    async def get_users(self, params: Optional[Mapping] = None) -> Envelope:
        await self._delay()
        params = params or {}
        users = list(self.data.users)
        role = _wants(params, "role")
        if role:
            users = [u for u in users if u.role.value == role]
        status = _wants(params, "status")
        if status:
            users = [u for u in users if u.listing_status == status]
        verification = _wants(params, "verificationStatus")
        if verification:
            users = [u for u in users if u.verification_status == verification]
        if params.get("isOnboardingComplete") not in (None, ""):
            wanted = _as_bool(params["isOnboardingComplete"])
            users = [u for u in users if u.is_onboarding_complete == wanted]
        return ok({"users": [u.to_payload() for u in users], "total": len(users), "pages": 1, "page": 1})

    async def get_user_details(self, user_id: str) -> Envelope:
        await self._delay()
        return ok(self._find_user(user_id).to_payload())

    async def toggle_block_user(self, user_id: str, data: Mapping) -> Envelope:
        await self._delay()
        user = self._find_user(user_id)
        block = _as_bool(data["block"]) if "block" in data else not user.is_blocked
        user = user.model_copy(update={
            "is_blocked": block,
            "block_reason": data.get("reason") if block else None,
        })
        self._replace(self.data.users, user)
        self._log("user_blocked" if block else "user_unblocked", f"User status updated: {user.full_name}", user.id)
        return ok(user.to_payload(), "User status updated")

    async def delete_user(self, user_id: str) -> Envelope:
        await self._delay()
        if self._find(self.data.users, user_id, "user") is not None:
            self.data.users = [u for u in self.data.users if u.id != user_id]
            self._log("user_deleted", f"User deleted: {user_id}", user_id)
        return ok(message="User deleted")

    def _verify(self, user_id: str, decisions: Mapping, action: str) -> User:
        before = self._find_user(user_id)
        user = self._apply(before, lambda: apply_outcome(before, decide(decisions)))
        if user is not before:
            self._replace(self.data.users, user)
            self._log(action, f"User verification {action.split('_')[-1]}: {user.full_name}", user.id)
        return user

    @staticmethod
    def _rejection_reasons(rejections) -> dict[str, str]:
        """Document type → reason; every entry must name a known document type."""
        reasons = {}
        for rejection in rejections:
            kind = rejection.get("type") if isinstance(rejection, Mapping) else None
            if not kind:
                raise ValidationError("each rejection needs a document type")
            try:
                reasons[DocumentType(kind).value] = rejection.get("reason") or ""
            except ValueError:
                raise ValidationError(f"unknown document type: {kind!r}")
        return reasons

    async def approve_verification(self, user_id: str, data: Optional[Mapping] = None) -> Envelope:
        await self._delay()
        user = self._verify(user_id, {t.value: "approved" for t in DocumentType}, "user_verified")
        return ok(user.to_payload(), "Verification approved")

    async def reject_verification(self, user_id: str, data: Mapping) -> Envelope:
        await self._delay()
        reasons = self._rejection_reasons(data.get("rejections") or [])
        fallback = data.get("reason") or "Verification rejected"
        decisions = {t.value: ("rejected", reasons.get(t.value) or fallback) for t in DocumentType}
        user = self._verify(user_id, decisions, "user_rejected")
        return ok(user.to_payload(), "Verification rejected")

    async def partial_reject_verification(self, user_id: str, data: Mapping) -> Envelope:
        await self._delay()
        rejections = data.get("rejections") or []
        if not rejections:
            raise ValidationError("at least one rejected document is required")
        reasons = self._rejection_reasons(rejections)
        decisions = {
            t.value: ("rejected", reasons[t.value]) if t.value in reasons else "approved"
            for t in DocumentType
        }
        user = self._verify(user_id, decisions, "user_partially_rejected")
        return ok(user.to_payload(), "Partial rejection applied")

    async def get_loans(self, params: Optional[Mapping] = None) -> Envelope:
        await self._delay()
        return ok(self._loans_page(self.data.loans, params))

    async def get_settings(self) -> Envelope:
        await self._delay()
        return ok(dict(self.data.settings))

    async def update_setting(self, data: Mapping) -> Envelope:
        await self._delay()
        key, value = data.get("key"), data.get("value")
        if not key:
            raise ValidationError("setting key is required")
        current = self.data.settings.get(key)
        try:
            if isinstance(current, bool):
                value = _as_bool(value)
            elif isinstance(current, int):
                value = int(float(value))
            elif isinstance(current, float):
                value = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"invalid value for {key}: {value!r}")
        self.data.settings[key] = value
        self._log("setting_updated", f"Setting updated: {key} = {value}")
        return ok({key: value}, "Setting updated")

    async def get_activity_logs(self, params: Optional[Mapping] = None) -> Envelope:
        await self._delay()
        logs = _newest_first(self.data.activity_logs)
        return ok(page("logs", [log.to_payload() for log in logs]))

    async def get_pending_verifications_count(self) -> Envelope:
        await self._delay()
        return ok({"count": sum(1 for u in self.data.users if u.account_status is AccountStatus.PENDING)})

    async def get_pending_reports_count(self) -> Envelope:
        await self._delay()
        return ok({"count": sum(1 for r in self.data.reports if cases.is_open(r))})

    async def get_pending_disputes_count(self) -> Envelope:
        await self._delay()
        return ok({"count": sum(1 for d in self.data.disputes if cases.is_open(d))})
