"""LendingBackend — the one interface the client talks to.

Two implementations exist, picked once at composition time (see
backends/builder.py): HttpBackend for the REST API and FixtureBackend for
demo mode.  Every operation resolves to the same envelope:

    {"success": bool, "data": ..., "message": ...}
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from lending.verification import FullApproval, FullRejection, PartialRejection, decide

Envelope = dict[str, Any]


def ok(data: Any = None, message: Optional[str] = None) -> Envelope:
    body: Envelope = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return body


def err(message: str, code: str = "BackendError") -> Envelope:
    return {"success": False, "message": message, "error": code}


def page(key: str, items: list, **extra) -> dict[str, Any]:
    """List payload: {key: items, total, totalPages}."""
    return {key: items, "total": len(items), "totalPages": 1, **extra}


def _setting_text(value: Any) -> str:
    """Settings travel as text; booleans in lowercase."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class LendingBackend(ABC):
    """Async operations mirroring the REST API, one method per endpoint."""

    is_demo = False

    # ── Auth ────────────────────────────────────────────────────────────
    @abstractmethod
    async def register(self, data: Mapping) -> Envelope: ...

    @abstractmethod
    async def login(self, email: str, password: str) -> Envelope: ...

    @abstractmethod
    async def get_profile(self) -> Envelope: ...

    @abstractmethod
    async def update_profile(self, data: Mapping) -> Envelope: ...

    @abstractmethod
    async def complete_onboarding(self, data: Mapping) -> Envelope: ...

    @abstractmethod
    async def change_password(self, data: Mapping) -> Envelope: ...

    @abstractmethod
    async def reset_password(self, data: Mapping) -> Envelope:
        """Public: {email, newPassword}, no bearer token."""

    @abstractmethod
    async def upload_profile_picture(self, data: Mapping) -> Envelope: ...

    @abstractmethod
    async def send_email_verification(self) -> Envelope: ...

    @abstractmethod
    async def verify_email(self, data: Mapping) -> Envelope: ...

    @abstractmethod
    async def send_phone_verification(self) -> Envelope: ...

    @abstractmethod
    async def verify_phone(self, data: Mapping) -> Envelope: ...

    # ── Loans ───────────────────────────────────────────────────────────
    @abstractmethod
    async def create_request(self, data: Mapping) -> Envelope: ...

    @abstractmethod
    async def get_my_borrowings(self, params: Optional[Mapping] = None) -> Envelope: ...

    @abstractmethod
    async def mark_fulfilled(self, loan_id: str) -> Envelope: ...

    @abstractmethod
    async def cancel_request(self, loan_id: str) -> Envelope: ...

    @abstractmethod
    async def get_pending_requests(self, params: Optional[Mapping] = None) -> Envelope: ...

    @abstractmethod
    async def get_my_lending(self, params: Optional[Mapping] = None) -> Envelope: ...

    @abstractmethod
    async def accept_request(self, loan_id: str) -> Envelope: ...

    @abstractmethod
    async def decline_request(self, loan_id: str) -> Envelope: ...

    @abstractmethod
    async def record_repayment(self, loan_id: str, data: Mapping) -> Envelope: ...

    @abstractmethod
    async def get_loan_details(self, loan_id: str) -> Envelope: ...

    @abstractmethod
    async def rate_user(self, loan_id: str, data: Mapping) -> Envelope: ...

    # ── Reports & disputes ──────────────────────────────────────────────
    @abstractmethod
    async def create_report(self, data: Mapping) -> Envelope: ...

    @abstractmethod
    async def get_my_reports(self, params: Optional[Mapping] = None) -> Envelope: ...

    @abstractmethod
    async def get_reports(self, params: Optional[Mapping] = None) -> Envelope: ...

    @abstractmethod
    async def resolve_report(self, report_id: str, data: Mapping) -> Envelope: ...

    @abstractmethod
    async def create_dispute(self, data: Mapping) -> Envelope: ...

    @abstractmethod
    async def get_my_disputes(self, params: Optional[Mapping] = None) -> Envelope: ...

    @abstractmethod
    async def add_dispute_note(self, dispute_id: str, data: Mapping) -> Envelope: ...

    @abstractmethod
    async def get_disputes(self, params: Optional[Mapping] = None) -> Envelope: ...

    @abstractmethod
    async def resolve_dispute(self, dispute_id: str, data: Mapping) -> Envelope: ...

    # ── Notifications ───────────────────────────────────────────────────
    @abstractmethod
    async def get_notifications(self, params: Optional[Mapping] = None) -> Envelope: ...

    @abstractmethod
    async def get_unread_count(self) -> Envelope: ...

    @abstractmethod
    async def mark_notification_read(self, notification_id: str) -> Envelope: ...

    @abstractmethod
    async def mark_all_notifications_read(self) -> Envelope: ...

    @abstractmethod
    async def delete_notification(self, notification_id: str) -> Envelope: ...

    # ── Admin ───────────────────────────────────────────────────────────
    @abstractmethod
    async def get_dashboard_stats(self) -> Envelope: ...

    @abstractmethod
    async def get_users(self, params: Optional[Mapping] = None) -> Envelope: ...

    @abstractmethod
    async def get_user_details(self, user_id: str) -> Envelope: ...

    @abstractmethod
    async def toggle_block_user(self, user_id: str, data: Mapping) -> Envelope: ...

    @abstractmethod
    async def delete_user(self, user_id: str) -> Envelope: ...

    @abstractmethod
    async def approve_verification(self, user_id: str, data: Optional[Mapping] = None) -> Envelope: ...

    @abstractmethod
    async def reject_verification(self, user_id: str, data: Mapping) -> Envelope: ...

    @abstractmethod
    async def partial_reject_verification(self, user_id: str, data: Mapping) -> Envelope: ...

    @abstractmethod
    async def get_loans(self, params: Optional[Mapping] = None) -> Envelope: ...

    @abstractmethod
    async def get_settings(self) -> Envelope: ...

    @abstractmethod
    async def update_setting(self, data: Mapping) -> Envelope: ...

    @abstractmethod
    async def get_activity_logs(self, params: Optional[Mapping] = None) -> Envelope: ...

    @abstractmethod
    async def get_pending_verifications_count(self) -> Envelope: ...

    @abstractmethod
    async def get_pending_reports_count(self) -> Envelope: ...

    @abstractmethod
    async def get_pending_disputes_count(self) -> Envelope: ...

    # ── Composite ───────────────────────────────────────────────────────
    async def submit_verification(self, user_id: str, decisions: Mapping) -> Envelope:
        """
        Decide once, then call the matching admin endpoint.
        ValidationError from decide() is raised before any request is made.
        """
        outcome = decide(decisions)
        if isinstance(outcome, FullApproval):
            return await self.approve_verification(user_id, {"approve": True})
        if isinstance(outcome, FullRejection):
            lines = "\n".join(f"- {doc.type.value.title()}: {doc.reason}" for doc in outcome.rejected_documents)
            return await self.reject_verification(user_id, {
                "reason": f"All verifications rejected:\n{lines}",
                "rejections": [doc.to_payload() for doc in outcome.rejected_documents],
            })
        assert isinstance(outcome, PartialRejection)
        return await self.partial_reject_verification(user_id, {
            "rejections": [doc.to_payload() for doc in outcome.rejected_documents],
        })

    async def update_settings(self, settings: Mapping) -> Envelope:
        """Save several settings at once, one update_setting call per key, concurrently."""
        await asyncio.gather(*(
            self.update_setting({"key": key, "value": _setting_text(value)})
            for key, value in settings.items()
        ))
        return ok(message="Settings updated")

    async def aclose(self) -> None:
        """Release network resources, if any."""
