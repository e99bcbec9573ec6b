"""Domain records — single source of truth for users, loans and cases.

Every model serializes with camelCase aliases (``isOnboardingComplete``,
``amountRepaid``, ...) so payloads match the REST API byte for byte.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict with wire (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True)


# ── Enums ───────────────────────────────────────────────────────────────
class Role(str, Enum):
    BORROWER = "borrower"
    LENDER = "lender"
    ADMIN = "admin"


class AccountStatus(str, Enum):
    """Onboarding / verification progress, one value instead of three flags.

    onboarding → pending → approved
                        ↘ rejected → pending (resubmission)
    """

    ONBOARDING = "onboarding"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DocumentType(str, Enum):
    IDENTITY = "identity"
    ADDRESS = "address"
    SELFIE = "selfie"


DOCUMENT_TYPES: tuple[DocumentType, ...] = tuple(DocumentType)


class LoanStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    DEFAULTED = "defaulted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


TERMINAL_STATUSES = frozenset({
    LoanStatus.COMPLETED,
    LoanStatus.REJECTED,
    LoanStatus.CANCELLED,
    LoanStatus.DEFAULTED,
})


class ReportStatus(str, Enum):
    PENDING = "pending"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class DisputeStatus(str, Enum):
    OPEN = "open"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    CLOSED = "closed"


# ── Flag collapsing ─────────────────────────────────────────────────────
def _pick(data: dict, camel: str, snake: str, default: Any = None) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake, default)


def account_status_from_flags(
    is_onboarding_complete: bool,
    is_admin_verified: bool,
    verification_status: Optional[str],
) -> AccountStatus:
    """
    Collapse the legacy (isOnboardingComplete, isAdminVerified,
    verificationStatus) triple into one AccountStatus.
    Raises ValueError for combinations that have no meaning.
    """
    status = verification_status or "none"
    if is_admin_verified:
        if status in ("pending", "rejected"):
            raise ValueError(f"admin-verified user cannot have verificationStatus={status!r}")
        return AccountStatus.APPROVED
    if status == "approved":
        # verificationStatus alone counts as approval
        return AccountStatus.APPROVED
    if status == "rejected":
        return AccountStatus.REJECTED
    if not is_onboarding_complete:
        return AccountStatus.ONBOARDING
    # Finishing onboarding submits the documents for review
    return AccountStatus.PENDING


_FLAG_KEYS = (
    "isOnboardingComplete", "is_onboarding_complete",
    "isAdminVerified", "is_admin_verified",
    "verificationStatus", "verification_status",
)


# ── Users ───────────────────────────────────────────────────────────────
class RejectedDocument(CamelModel):
    type: DocumentType
    reason: str = Field(min_length=1)


class UserSummary(CamelModel):
    """The slice of a user embedded in loans, reports and disputes."""

    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    city: str = ""
    state: str = ""
    trust_score: int = 50
    repayment_score: int = 50
    average_rating: float = 0.0
    total_ratings: int = 0


class User(CamelModel):
    id: str
    role: Role
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    city: str = ""
    state: str = ""
    profile_photo: Optional[str] = None
    is_email_verified: bool = False
    is_phone_verified: bool = False
    account_status: AccountStatus = AccountStatus.ONBOARDING
    rejected_documents: list[RejectedDocument] = Field(default_factory=list)
    documents: dict[DocumentType, str] = Field(default_factory=dict)
    trust_score: int = Field(50, ge=0, le=100)
    repayment_score: int = Field(50, ge=0, le=100)
    average_rating: float = Field(0.0, ge=0)
    total_ratings: int = Field(0, ge=0)
    is_blocked: bool = False
    block_reason: Optional[str] = None
    total_lent: Optional[float] = None
    available_balance: Optional[float] = None
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="before")
    @classmethod
    def _collapse_flags(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if "accountStatus" in data or "account_status" in data:
            return data
        if not any(key in data for key in _FLAG_KEYS):
            return data
        data = dict(data)
        data["accountStatus"] = account_status_from_flags(
            bool(_pick(data, "isOnboardingComplete", "is_onboarding_complete", False)),
            bool(_pick(data, "isAdminVerified", "is_admin_verified", False)),
            _pick(data, "verificationStatus", "verification_status"),
        )
        return data

    @model_validator(mode="after")
    def _check_rejections(self) -> "User":
        if self.rejected_documents and self.account_status is not AccountStatus.REJECTED:
            raise ValueError("rejectedDocuments require verificationStatus='rejected'")
        return self

    @computed_field(alias="isOnboardingComplete")
    @property
    def is_onboarding_complete(self) -> bool:
        return self.account_status is not AccountStatus.ONBOARDING

    @computed_field(alias="isAdminVerified")
    @property
    def is_admin_verified(self) -> bool:
        # Admins are implicitly verified
        return self.role is Role.ADMIN or self.account_status is AccountStatus.APPROVED

    @computed_field(alias="verificationStatus")
    @property
    def verification_status(self) -> str:
        if self.account_status is AccountStatus.ONBOARDING:
            return "none"
        return self.account_status.value

    @computed_field(alias="status")
    @property
    def listing_status(self) -> str:
        if self.is_blocked:
            return "blocked"
        if self.account_status is AccountStatus.PENDING:
            return "pending_verification"
        return "active"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def summary(self) -> UserSummary:
        return UserSummary(
            id=self.id,
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            city=self.city,
            state=self.state,
            trust_score=self.trust_score,
            repayment_score=self.repayment_score,
            average_rating=self.average_rating,
            total_ratings=self.total_ratings,
        )


# ── Loans ───────────────────────────────────────────────────────────────
class Repayment(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    amount: float = Field(gt=0)
    payment_date: datetime
    payment_method: str = "upi"
    transaction_reference: Optional[str] = None
    remarks: Optional[str] = None
    confirmed_by_lender: bool = True
    is_late: bool = False
    days_late: int = Field(0, ge=0)


class Rating(CamelModel):
    score: int = Field(ge=1, le=5)
    review: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Loan(CamelModel):
    id: str
    amount: float = Field(gt=0)
    duration: int = Field(gt=0)
    interest_rate: float = Field(0.0, ge=0)
    purpose: str
    description: str = ""
    status: LoanStatus = LoanStatus.PENDING
    # Where a disputed loan returns once the dispute is settled
    status_before_dispute: Optional[LoanStatus] = None
    borrower: UserSummary
    lender: Optional[UserSummary] = None
    total_repayable: Optional[float] = None
    amount_repaid: float = Field(0.0, ge=0)
    due_date: Optional[datetime] = None
    repayments: list[Repayment] = Field(default_factory=list)
    borrower_rating: Optional[Rating] = None
    lender_rating: Optional[Rating] = None
    created_at: datetime = Field(default_factory=utcnow)
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_repaid(self) -> "Loan":
        if self.total_repayable is not None and self.amount_repaid > self.total_repayable:
            raise ValueError("amountRepaid cannot exceed totalRepayable")
        return self

    @computed_field(alias="remainingAmount")
    @property
    def remaining_amount(self) -> Optional[float]:
        if self.total_repayable is None:
            return None
        return round(self.total_repayable - self.amount_repaid, 2)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


# ── Reports, disputes, notifications ────────────────────────────────────
class Report(CamelModel):
    id: str
    report_type: str
    title: str = ""
    description: str = ""
    status: ReportStatus = ReportStatus.PENDING
    reported_by: UserSummary
    reported_user: Optional[UserSummary] = None
    loan_id: Optional[str] = None
    admin_note: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None


class DisputeNote(CamelModel):
    author_id: str
    text: str
    created_at: datetime = Field(default_factory=utcnow)


class Dispute(CamelModel):
    id: str
    loan_id: str
    dispute_type: str
    title: str = ""
    description: str = ""
    status: DisputeStatus = DisputeStatus.OPEN
    raised_by: UserSummary
    notes: list[DisputeNote] = Field(default_factory=list)
    admin_note: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None


class Notification(CamelModel):
    id: str
    type: str
    title: str
    message: str
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class ActivityLog(CamelModel):
    id: str
    action: str
    description: str
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
