"""Seed dataset for demo mode.

seed() builds a fresh, self-consistent dataset every time it is called so
that each FixtureBackend (and each test) owns its own copy.  Timestamps are
relative to the moment of seeding.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from config import (
    MIN_LOAN_AMOUNT,
    MAX_LOAN_AMOUNT,
    MIN_DURATION_DAYS,
    MAX_DURATION_DAYS,
    DEFAULT_INTEREST_RATE,
    MAX_INTEREST_RATE,
    OVERDUE_GRACE_DAYS,
)
from lending.errors import ValidationError
from lending.lifecycle import flat_total_repayable
from lending.models import (
    AccountStatus,
    ActivityLog,
    Dispute,
    DisputeStatus,
    Loan,
    LoanStatus,
    Notification,
    Report,
    ReportStatus,
    Role,
    User,
    utcnow,
)

# ── Demo accounts (legacy flag shape, as the API sends them) ────────────
DEMO_USERS: dict[Role, dict[str, Any]] = {
    Role.ADMIN: {
        "id": "demo-admin-001",
        "email": "admin@udhaar.demo",
        "firstName": "Rajesh",
        "lastName": "Kumar",
        "role": "admin",
        "phone": "+91 98765 43210",
        "isOnboardingComplete": True,
        "isAdminVerified": True,
        "verificationStatus": "approved",
        "trustScore": 100,
        "repaymentScore": 100,
        "createdAt": "2024-01-15T10:30:00Z",
        "city": "Mumbai",
        "state": "Maharashtra",
    },
    Role.LENDER: {
        "id": "demo-lender-001",
        "email": "lender@udhaar.demo",
        "firstName": "Priya",
        "lastName": "Sharma",
        "role": "lender",
        "phone": "+91 87654 32109",
        "isOnboardingComplete": True,
        "isAdminVerified": True,
        "verificationStatus": "approved",
        "trustScore": 92,
        "repaymentScore": 95,
        "totalLent": 250000,
        "availableBalance": 75000,
        "createdAt": "2024-02-20T14:45:00Z",
        "city": "Delhi",
        "state": "Delhi",
    },
    Role.BORROWER: {
        "id": "demo-borrower-001",
        "email": "borrower@udhaar.demo",
        "firstName": "Amit",
        "lastName": "Patel",
        "role": "borrower",
        "phone": "+91 76543 21098",
        "isOnboardingComplete": True,
        "isAdminVerified": True,
        "verificationStatus": "approved",
        "trustScore": 78,
        "repaymentScore": 85,
        "createdAt": "2024-03-10T09:15:00Z",
        "city": "Bangalore",
        "state": "Karnataka",
    },
}


def demo_user(role: Role) -> User:
    return User.model_validate(DEMO_USERS[Role(role)])


def registered_user(data: Mapping) -> User:
    """A fresh onboarding account built from registration form data."""
    try:
        role = Role(data.get("role") or Role.BORROWER)
    except ValueError:
        raise ValidationError(f"unknown role: {data.get('role')!r}")
    if role is Role.ADMIN:
        raise ValidationError("admins cannot self-register")
    return User(
        id=f"demo-{role.value}-{uuid.uuid4().hex[:8]}",
        role=role,
        email=data.get("email", ""),
        first_name=data.get("firstName", ""),
        last_name=data.get("lastName", ""),
        phone=data.get("phone", ""),
    )


# (id, first, last, city, state, trust, repayment)
_BORROWERS = [
    ("borrower-002", "Sneha", "Reddy", "Hyderabad", "Telangana", 82, 90),
    ("borrower-003", "Vikram", "Singh", "Jaipur", "Rajasthan", 65, 72),
    ("borrower-004", "Neha", "Gupta", "Pune", "Maharashtra", 88, 92),
    ("borrower-005", "Rahul", "Verma", "Chennai", "Tamil Nadu", 71, 68),
]

_LENDERS = [
    ("lender-002", "Suresh", "Menon", "Kochi", "Kerala", 88, 91, 180000),
]

# (id, first, last, role, city, state, days ago)
_PENDING_REVIEW = [
    ("pending-user-001", "Rohit", "Verma", Role.BORROWER, "Pune", "Maharashtra", 1),
    ("pending-user-002", "Sneha", "Patil", Role.LENDER, "Bangalore", "Karnataka", 2),
    ("pending-user-003", "Arjun", "Desai", Role.BORROWER, "Hyderabad", "Telangana", 3),
]

DEFAULT_SETTINGS: dict[str, Any] = {
    "minLoanAmount": MIN_LOAN_AMOUNT,
    "maxLoanAmount": MAX_LOAN_AMOUNT,
    "minDuration": MIN_DURATION_DAYS,
    "maxDuration": MAX_DURATION_DAYS,
    "defaultInterestRate": DEFAULT_INTEREST_RATE,
    "maxInterestRate": MAX_INTEREST_RATE,
    "platformFee": 1,
    "minTrustScore": 40,
    "minRepaymentScore": 35,
    "autoApproveThreshold": 80,
    "maxActiveLoansPerBorrower": 3,
    "maxActiveLoansPerLender": 10,
    "reminderDaysBefore": 3,
    "overdueGracePeriod": OVERDUE_GRACE_DAYS,
    "maintenanceMode": False,
}


@dataclass
class FixtureDataset:
    users: list[User] = field(default_factory=list)
    loans: list[Loan] = field(default_factory=list)
    notifications: list[Notification] = field(default_factory=list)
    reports: list[Report] = field(default_factory=list)
    disputes: list[Dispute] = field(default_factory=list)
    activity_logs: list[ActivityLog] = field(default_factory=list)
    settings: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_SETTINGS))

    def user(self, user_id: str) -> Optional[User]:
        return next((u for u in self.users if u.id == user_id), None)

    def loan(self, loan_id: str) -> Optional[Loan]:
        return next((l for l in self.loans if l.id == loan_id), None)


def _loan(
    now: datetime,
    loan_id: str,
    amount: float,
    duration: int,
    purpose: str,
    description: str,
    borrower: User,
    lender: Optional[User] = None,
    status: LoanStatus = LoanStatus.PENDING,
    rate: float = 2.0,
    created_days: float = 0,
    repaid: Optional[float] = None,
    disputed: bool = False,
) -> Loan:
    total = flat_total_repayable(amount, rate)
    created = now - timedelta(days=created_days)
    accepted = created + timedelta(days=1) if lender else None
    due = accepted + timedelta(days=duration) if status is LoanStatus.IN_PROGRESS else None
    if status is LoanStatus.COMPLETED:
        repaid = total
    loan = Loan(
        id=loan_id,
        amount=amount,
        duration=duration,
        interest_rate=rate,
        purpose=purpose,
        description=description,
        status=status,
        borrower=borrower.summary(),
        lender=lender.summary() if lender else None,
        total_repayable=total,
        amount_repaid=repaid or 0.0,
        due_date=due,
        created_at=created,
        accepted_at=accepted,
        completed_at=accepted + timedelta(days=duration // 2) if status is LoanStatus.COMPLETED else None,
    )
    if disputed:
        loan = loan.model_copy(update={"status": LoanStatus.DISPUTED, "status_before_dispute": status})
    return loan


def seed(now: Optional[datetime] = None) -> FixtureDataset:
    now = now or utcnow()
    admin, lender, borrower = (demo_user(r) for r in (Role.ADMIN, Role.LENDER, Role.BORROWER))

    borrowers = [
        User(
            id=uid, role=Role.BORROWER, first_name=first, last_name=last,
            email=f"{first.lower()}@example.com", city=city, state=state,
            trust_score=trust, repayment_score=repay,
            account_status=AccountStatus.PENDING if uid == "borrower-003" else AccountStatus.APPROVED,
            created_at=now - timedelta(days=60),
        )
        for uid, first, last, city, state, trust, repay in _BORROWERS
    ]
    lenders = [
        User(
            id=uid, role=Role.LENDER, first_name=first, last_name=last,
            email=f"{first.lower()}@example.com", city=city, state=state,
            trust_score=trust, repayment_score=repay, total_lent=lent,
            account_status=AccountStatus.APPROVED,
            created_at=now - timedelta(days=90),
        )
        for uid, first, last, city, state, trust, repay, lent in _LENDERS
    ]
    pending_review = [
        User(
            id=uid, role=role, first_name=first, last_name=last,
            email=f"{first.lower()}.{last.lower()}@example.com", city=city, state=state,
            account_status=AccountStatus.PENDING,
            documents={
                "identity": f"/uploads/documents/{uid}-aadhaar.jpg",
                "address": f"/uploads/documents/{uid}-address.jpg",
                "selfie": f"/uploads/selfies/{uid}-selfie.jpg",
            },
            created_at=now - timedelta(days=days),
        )
        for uid, first, last, role, city, state, days in _PENDING_REVIEW
    ]
    blocked = User(
        id="user-blocked-001", role=Role.BORROWER, first_name="Blocked", last_name="User",
        email="blocked@example.com", city="Mumbai", state="Maharashtra",
        trust_score=25, repayment_score=30, is_blocked=True,
        account_status=AccountStatus.APPROVED,
        created_at=now - timedelta(days=200),
    )
    sneha, vikram, neha, rahul = borrowers
    suresh = lenders[0]

    loans = [
        # Open requests from other borrowers (lender marketplace)
        _loan(now, "loan-pending-001", 8000, 15, "Education", "Course fee payment deadline approaching",
              sneha, created_days=0.2),
        _loan(now, "loan-pending-002", 25000, 45, "Business", "Inventory purchase for small business expansion",
              vikram, rate=2.5, created_days=1),
        _loan(now, "loan-pending-003", 5000, 7, "Personal", "Short-term personal requirement",
              neha, rate=1.5, created_days=0.1),
        _loan(now, "loan-pending-004", 12000, 30, "Rent", "Need help with this month's rent payment",
              rahul, created_days=0.3),
        # The demo lender's book
        _loan(now, "loan-active-001", 20000, 30, "Medical Emergency", "Hospital bills",
              sneha, lender, LoanStatus.IN_PROGRESS, created_days=15, repaid=10000, disputed=True),
        _loan(now, "loan-active-002", 10000, 15, "Education", "Exam fees",
              neha, lender, LoanStatus.COMPLETED, created_days=30),
        _loan(now, "loan-active-003", 35000, 60, "Business", "Working capital",
              vikram, lender, LoanStatus.IN_PROGRESS, rate=2.5, created_days=20, repaid=15000, disputed=True),
        _loan(now, "loan-active-004", 18000, 30, "Home Repair", "Roof repair before monsoon",
              neha, lender, LoanStatus.IN_PROGRESS, created_days=12, repaid=4000, disputed=True),
        # The demo borrower's history
        _loan(now, "borrower-loan-001", 15000, 30, "Medical Emergency", "Urgent hospital bills",
              borrower, lender, LoanStatus.IN_PROGRESS, created_days=10, repaid=5000),
        _loan(now, "borrower-loan-002", 8000, 15, "Education", "Course fees",
              borrower, suresh, LoanStatus.COMPLETED, created_days=45),
        _loan(now, "borrower-loan-003", 5000, 7, "Personal", "Emergency personal expense",
              borrower, rate=1.5, created_days=0.04),
    ]

    notifications = [
        Notification(id="notif-001", type="loan_accepted", title="Loan Request Accepted",
                     message="Your loan request of ₹15,000 has been accepted by Priya Sharma",
                     created_at=now - timedelta(hours=2)),
        Notification(id="notif-002", type="payment_received", title="Payment Received",
                     message="You received a repayment of ₹5,000 from Amit Patel",
                     created_at=now - timedelta(hours=5)),
        Notification(id="notif-003", type="reminder", title="Payment Reminder",
                     message="Your loan payment of ₹10,300 is due in 5 days", is_read=True,
                     created_at=now - timedelta(days=1)),
        Notification(id="notif-004", type="verification", title="Verification Approved",
                     message="Your identity verification has been approved. Your trust score has been updated.",
                     is_read=True, created_at=now - timedelta(days=3)),
        Notification(id="notif-005", type="new_request", title="New Loan Request",
                     message="Sneha Reddy is requesting ₹8,000 for Education",
                     created_at=now - timedelta(minutes=30)),
    ]

    reports = [
        Report(id="report-001", report_type="fraud", title="Suspicious Activity Report",
               description="User attempted to create multiple accounts with different emails",
               reported_by=borrower.summary(), reported_user=rahul.summary(),
               created_at=now - timedelta(days=2)),
        Report(id="report-002", report_type="harassment", title="Harassment Report",
               description="Aggressive collection messages and threatening calls",
               status=ReportStatus.INVESTIGATING, reported_by=sneha.summary(),
               reported_user=lender.summary(), created_at=now - timedelta(days=5)),
        Report(id="report-003", report_type="payment_issue", title="Payment Dispute",
               description="Payment marked as received but not actually received",
               status=ReportStatus.RESOLVED, reported_by=suresh.summary(),
               reported_user=vikram.summary(), admin_note="Payment trail verified with both parties",
               created_at=now - timedelta(days=10), resolved_at=now - timedelta(days=7)),
        Report(id="report-004", report_type="fake_profile", title="Fake Profile Report",
               description="User profile appears to have fake or stolen identity documents",
               reported_by=lender.summary(), reported_user=neha.summary(),
               created_at=now - timedelta(days=1)),
        Report(id="report-005", report_type="non_payment", title="Non-Payment Report",
               description="Borrower has not responded to repayment requests for 2 weeks",
               status=ReportStatus.INVESTIGATING, reported_by=suresh.summary(),
               reported_user=rahul.summary(), created_at=now - timedelta(days=3)),
    ]

    disputes = [
        Dispute(id="dispute-001", loan_id="loan-active-001", dispute_type="repayment",
                title="Repayment Amount Dispute",
                description="Borrower claims to have paid more than recorded in the system",
                raised_by=sneha.summary(), created_at=now - timedelta(days=3)),
        Dispute(id="dispute-002", loan_id="loan-active-003", dispute_type="terms",
                title="Interest Rate Dispute",
                description="Disagreement on agreed interest rate - borrower says 1.5%, lender recorded 2.5%",
                status=DisputeStatus.INVESTIGATING, raised_by=vikram.summary(),
                created_at=now - timedelta(days=7)),
        Dispute(id="dispute-003", loan_id="loan-active-004", dispute_type="loan_terms",
                title="Loan Duration Dispute",
                description="Borrower claims the agreed duration was 45 days, not 30 days",
                raised_by=neha.summary(), created_at=now - timedelta(days=1)),
    ]

    activity_logs = [
        ActivityLog(id="log-001", action="user_registered", description="New user registration: Rohit Verma",
                    user_id="pending-user-001", created_at=now - timedelta(hours=1)),
        ActivityLog(id="log-002", action="loan_created", description="New loan request: ₹8,000 by Sneha Reddy",
                    user_id="borrower-002", created_at=now - timedelta(hours=2)),
        ActivityLog(id="log-003", action="loan_accepted", description="Loan accepted: ₹20,000 by Priya Sharma",
                    user_id="demo-lender-001", created_at=now - timedelta(hours=5)),
        ActivityLog(id="log-004", action="payment_received", description="Payment received: ₹5,000 from Amit Patel",
                    user_id="demo-borrower-001", created_at=now - timedelta(hours=8)),
        ActivityLog(id="log-005", action="user_verified", description="User verification approved: Neha Gupta",
                    user_id="borrower-004", created_at=now - timedelta(days=1)),
    ]

    return FixtureDataset(
        users=[admin, lender, borrower, *borrowers, *lenders, *pending_review, blocked],
        loans=loans,
        notifications=notifications,
        reports=reports,
        disputes=disputes,
        activity_logs=activity_logs,
    )
