"""Verification decisions — admin review of identity, address and selfie.

Three independent per-document decisions collapse into one outcome:

  • all approved        → FullApproval
  • 1 or 2 rejected     → PartialRejection  (approved documents are kept)
  • all three rejected  → FullRejection     (every document is discarded)

Re-rejecting a user replaces their rejectedDocuments list; it never
accumulates.
"""

from dataclasses import dataclass
from typing import Mapping, Union

from lending.errors import InvalidTransition, ValidationError
from lending.models import (
    DOCUMENT_TYPES,
    AccountStatus,
    DocumentType,
    RejectedDocument,
    Role,
    User,
)

APPROVED = "approved"
REJECTED = "rejected"

# A decision needs submitted documents; rejected users may be decided again
REVIEWABLE_STATUSES = frozenset({AccountStatus.PENDING, AccountStatus.REJECTED})


@dataclass(frozen=True)
class DocumentDecision:
    decision: str
    reason: str = ""

    @property
    def rejected(self) -> bool:
        return self.decision == REJECTED


@dataclass(frozen=True)
class FullApproval:
    pass


@dataclass(frozen=True)
class PartialRejection:
    rejected_documents: tuple[RejectedDocument, ...]

    @property
    def rejected_types(self) -> frozenset:
        return frozenset(doc.type for doc in self.rejected_documents)


@dataclass(frozen=True)
class FullRejection:
    rejected_documents: tuple[RejectedDocument, ...]


VerificationOutcome = Union[FullApproval, PartialRejection, FullRejection]


def _coerce(value) -> DocumentDecision:
    """Accept a DocumentDecision, a bare "approved"/"rejected", a (decision, reason) pair or a dict."""
    if isinstance(value, DocumentDecision):
        return value
    if isinstance(value, str):
        return DocumentDecision(value)
    if isinstance(value, (tuple, list)) and len(value) == 2:
        return DocumentDecision(value[0], value[1] or "")
    if isinstance(value, Mapping):
        return DocumentDecision(
            value.get("decision") or value.get("status", ""),
            value.get("reason") or "",
        )
    raise ValidationError(f"unrecognized decision: {value!r}")


def decide(decisions: Mapping) -> VerificationOutcome:
    """
    Turn one decision per document type into an outcome.
    Raises ValidationError (and changes nothing) when a decision is missing,
    unknown, or rejected without a reason.
    """
    parsed: dict[DocumentType, DocumentDecision] = {}
    for key, value in decisions.items():
        try:
            doc_type = DocumentType(key)
        except ValueError:
            raise ValidationError(f"unknown document type: {key!r}")
        parsed[doc_type] = _coerce(value)

    missing = [t.value for t in DOCUMENT_TYPES if t not in parsed]
    if missing:
        raise ValidationError(f"missing decision for: {', '.join(missing)}")

    rejected = []
    for doc_type in DOCUMENT_TYPES:
        decision = parsed[doc_type]
        if decision.decision not in (APPROVED, REJECTED):
            raise ValidationError(f"{doc_type.value}: decision must be approved or rejected")
        if decision.rejected:
            if not decision.reason.strip():
                raise ValidationError(f"{doc_type.value}: a rejection needs a reason")
            rejected.append(RejectedDocument(type=doc_type, reason=decision.reason.strip()))

    if not rejected:
        return FullApproval()
    if len(rejected) == len(DOCUMENT_TYPES):
        return FullRejection(tuple(rejected))
    return PartialRejection(tuple(rejected))


def apply_outcome(user: User, outcome: VerificationOutcome) -> User:
    """Return the user as it stands after the admin's decision."""
    if user.role is Role.ADMIN:
        raise ValidationError("admins are not subject to verification")
    if user.account_status not in REVIEWABLE_STATUSES:
        raise InvalidTransition(
            f"cannot decide verification for a user who is {user.account_status.value}"
        )

    if isinstance(outcome, FullApproval):
        return user.model_copy(update={
            "account_status": AccountStatus.APPROVED,
            "rejected_documents": [],
        })

    if isinstance(outcome, PartialRejection):
        dropped = outcome.rejected_types
        return user.model_copy(update={
            "account_status": AccountStatus.REJECTED,
            "rejected_documents": list(outcome.rejected_documents),
            "documents": {k: v for k, v in user.documents.items() if k not in dropped},
        })

    if isinstance(outcome, FullRejection):
        return user.model_copy(update={
            "account_status": AccountStatus.REJECTED,
            "rejected_documents": list(outcome.rejected_documents),
            "documents": {},
        })

    raise ValidationError(f"unknown verification outcome: {outcome!r}")


# ── Onboarding transitions ──────────────────────────────────────────────
def _documents(documents: Mapping) -> dict[DocumentType, str]:
    result = {}
    for key, ref in documents.items():
        try:
            doc_type = DocumentType(key)
        except ValueError:
            raise ValidationError(f"unknown document type: {key!r}")
        if ref:
            result[doc_type] = str(ref)
    return result


def complete_onboarding(user: User, documents: Mapping) -> User:
    """onboarding → pending, with every document submitted."""
    if user.account_status is not AccountStatus.ONBOARDING:
        raise ValidationError(f"onboarding already submitted (status {user.account_status.value})")
    docs = _documents(documents)
    missing = [t.value for t in DOCUMENT_TYPES if t not in docs]
    if missing:
        raise ValidationError(f"missing documents: {', '.join(missing)}")
    return user.model_copy(update={"account_status": AccountStatus.PENDING, "documents": docs})


def resubmit_documents(user: User, documents: Mapping) -> User:
    """rejected → pending, replacing exactly the documents that were rejected."""
    if user.account_status is not AccountStatus.REJECTED:
        raise ValidationError("only rejected users can resubmit documents")
    docs = _documents(documents)
    required = {doc.type for doc in user.rejected_documents} or set(DOCUMENT_TYPES)
    missing = [t.value for t in DOCUMENT_TYPES if t in required and t not in docs]
    if missing:
        raise ValidationError(f"missing resubmitted documents: {', '.join(missing)}")
    merged = {**user.documents, **{k: v for k, v in docs.items() if k in required}}
    return user.model_copy(update={
        "account_status": AccountStatus.PENDING,
        "rejected_documents": [],
        "documents": merged,
    })
