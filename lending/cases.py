"""Report and dispute resolution rules."""

from datetime import datetime
from typing import Optional, Union

from lending.errors import InvalidTransition, ValidationError
from lending.models import Dispute, DisputeStatus, Report, ReportStatus, utcnow

Case = Union[Report, Dispute]

OPEN_REPORT_STATUSES = frozenset({ReportStatus.PENDING, ReportStatus.INVESTIGATING})
OPEN_DISPUTE_STATUSES = frozenset({DisputeStatus.OPEN, DisputeStatus.INVESTIGATING})

# Admin screens send "dismissed" for both kinds of case
_DISPUTE_ALIASES = {"dismissed": DisputeStatus.CLOSED.value}


def is_open(case: Case) -> bool:
    if isinstance(case, Report):
        return case.status in OPEN_REPORT_STATUSES
    return case.status in OPEN_DISPUTE_STATUSES


def _target(case: Case, status: str):
    try:
        if isinstance(case, Report):
            target = ReportStatus(status)
            closing = (ReportStatus.RESOLVED, ReportStatus.DISMISSED)
        else:
            target = DisputeStatus(_DISPUTE_ALIASES.get(status, status))
            closing = (DisputeStatus.RESOLVED, DisputeStatus.CLOSED)
    except ValueError:
        raise ValidationError(f"unknown status: {status!r}")
    if target not in closing:
        raise ValidationError(f"a case can only be closed as {' or '.join(s.value for s in closing)}")
    return target


def resolve_case(
    case: Case,
    status: str,
    admin_note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Case:
    """Close an open report or dispute with the admin's note."""
    target = _target(case, status)
    if not is_open(case):
        raise InvalidTransition(f"case {case.id} is already {case.status.value}")
    return case.model_copy(update={
        "status": target,
        "admin_note": admin_note or None,
        "resolved_at": now or utcnow(),
    })


def start_investigation(case: Case) -> Case:
    """Move a freshly filed case under review."""
    if isinstance(case, Report):
        source, target = ReportStatus.PENDING, ReportStatus.INVESTIGATING
    else:
        source, target = DisputeStatus.OPEN, DisputeStatus.INVESTIGATING
    if case.status is not source:
        raise InvalidTransition(f"case {case.id} is {case.status.value}, not {source.value}")
    return case.model_copy(update={"status": target})
