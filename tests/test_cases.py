import pytest

from lending import cases
from lending.errors import InvalidTransition, ValidationError
from lending.models import Dispute, DisputeStatus, Report, ReportStatus


@pytest.fixture
def report(borrower):
    return Report(id="r1", report_type="fraud", title="Fake profile", reported_by=borrower)


@pytest.fixture
def dispute(borrower):
    return Dispute(id="d1", loan_id="l1", dispute_type="repayment", raised_by=borrower)


def test_resolve_report(report, now):
    resolved = cases.resolve_case(report, "resolved", "Account suspended", now=now)
    assert resolved.status is ReportStatus.RESOLVED
    assert resolved.admin_note == "Account suspended"
    assert resolved.resolved_at == now
    assert not cases.is_open(resolved)


def test_closed_case_cannot_be_resolved_again(report):
    dismissed = cases.resolve_case(report, "dismissed")
    with pytest.raises(InvalidTransition):
        cases.resolve_case(dismissed, "resolved")


def test_dispute_accepts_dismissed_as_closed(dispute):
    assert cases.resolve_case(dispute, "dismissed").status is DisputeStatus.CLOSED


@pytest.mark.parametrize("status", ["pending", "investigating", "archived"])
def test_resolution_status_must_close(report, status):
    with pytest.raises(ValidationError):
        cases.resolve_case(report, status)


def test_investigation_keeps_case_open(report, dispute):
    investigating = cases.start_investigation(report)
    assert investigating.status is ReportStatus.INVESTIGATING
    assert cases.is_open(investigating)
    assert cases.start_investigation(dispute).status is DisputeStatus.INVESTIGATING
    with pytest.raises(InvalidTransition):
        cases.start_investigation(investigating)
