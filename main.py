"""FastAPI entrypoint — serves the lending REST contract from the demo dataset.

A local stand-in for the real API: every route answers with the same
envelope the client expects, backed by a strict FixtureBackend so guard
violations come back as errors instead of being smoothed over.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as ModelError

from config import DEMO_TOKEN, HOST, LOG_LEVEL, PORT
from backends.base import LendingBackend, err
from backends.fixture import FixtureBackend
from lending.errors import AuthExpired, LendingError

logger = logging.getLogger(__name__)

Payload = dict[str, Any]


# ── Auth dependency ─────────────────────────────────────────────────────
def require_bearer(request: Request) -> str:
    """Every route except login/register needs the issued bearer token."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or token != DEMO_TOKEN:
        raise AuthExpired("Not authorized, please log in again")
    return token


def _params(request: Request) -> dict[str, str]:
    return dict(request.query_params)


# ── App factory ─────────────────────────────────────────────────────────
def create_app(backend: Optional[LendingBackend] = None) -> FastAPI:
    if backend is None:
        backend = FixtureBackend(strict=True, latency=(0, 0))

    app = FastAPI(title="Udhaar Check API", version="1.0.0")
    app.state.backend = backend

    @app.exception_handler(LendingError)
    async def lending_error(request: Request, exc: LendingError):
        if exc.http_status >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.message}")
        return JSONResponse(err(exc.message, exc.code), status_code=exc.http_status)

    @app.exception_handler(ModelError)
    async def model_error(request: Request, exc: ModelError):
        return JSONResponse(err(str(exc), "ValidationError"), status_code=400)

    public = APIRouter(prefix="/api")
    api = APIRouter(prefix="/api", dependencies=[Depends(require_bearer)])

    # ── Auth ────────────────────────────────────────────────────────────
    @public.post("/auth/register")
    async def register(data: Payload = Body(default_factory=dict)):
        return await backend.register(data)

    @public.post("/auth/login")
    async def login(data: Payload = Body(default_factory=dict)):
        return await backend.login(data.get("email", ""), data.get("password", ""))

    @api.get("/auth/profile")
    async def get_profile():
        return await backend.get_profile()

    @api.put("/auth/profile")
    async def update_profile(data: Payload = Body(default_factory=dict)):
        return await backend.update_profile(data)

    @api.post("/auth/onboarding")
    async def complete_onboarding(data: Payload = Body(default_factory=dict)):
        return await backend.complete_onboarding(data)

    @public.post("/auth/reset-password")
    async def reset_password(data: Payload = Body(default_factory=dict)):
        return await backend.reset_password(data)

    @api.post("/auth/change-password")
    async def change_password(data: Payload = Body(default_factory=dict)):
        return await backend.change_password(data)

    @api.post("/auth/profile-picture")
    async def upload_profile_picture(data: Payload = Body(default_factory=dict)):
        return await backend.upload_profile_picture(data)

    @api.post("/auth/send-email-verification")
    async def send_email_verification():
        return await backend.send_email_verification()

    @api.post("/auth/verify-email")
    async def verify_email(data: Payload = Body(default_factory=dict)):
        return await backend.verify_email(data)

    @api.post("/auth/send-phone-verification")
    async def send_phone_verification():
        return await backend.send_phone_verification()

    @api.post("/auth/verify-phone")
    async def verify_phone(data: Payload = Body(default_factory=dict)):
        return await backend.verify_phone(data)

    # ── Loans ───────────────────────────────────────────────────────────
    @api.post("/loans/request")
    async def create_request(data: Payload = Body(default_factory=dict)):
        return await backend.create_request(data)

    @api.get("/loans/my-requests")
    async def get_my_borrowings(params: dict = Depends(_params)):
        return await backend.get_my_borrowings(params)

    @api.get("/loans/pending")
    async def get_pending_requests(params: dict = Depends(_params)):
        return await backend.get_pending_requests(params)

    @api.get("/loans/my-lending")
    async def get_my_lending(params: dict = Depends(_params)):
        return await backend.get_my_lending(params)

    @api.post("/loans/{loan_id}/fulfill")
    async def mark_fulfilled(loan_id: str):
        return await backend.mark_fulfilled(loan_id)

    @api.post("/loans/{loan_id}/cancel")
    async def cancel_request(loan_id: str):
        return await backend.cancel_request(loan_id)

    @api.post("/loans/{loan_id}/accept")
    async def accept_request(loan_id: str):
        return await backend.accept_request(loan_id)

    @api.post("/loans/{loan_id}/decline")
    async def decline_request(loan_id: str):
        return await backend.decline_request(loan_id)

    @api.post("/loans/{loan_id}/repayment")
    async def record_repayment(loan_id: str, data: Payload = Body(default_factory=dict)):
        return await backend.record_repayment(loan_id, data)

    @api.post("/loans/{loan_id}/rate")
    async def rate_user(loan_id: str, data: Payload = Body(default_factory=dict)):
        return await backend.rate_user(loan_id, data)

    @api.get("/loans/{loan_id}")
    async def get_loan_details(loan_id: str):
        return await backend.get_loan_details(loan_id)

    # ── Reports & disputes ──────────────────────────────────────────────
    @api.post("/reports")
    async def create_report(data: Payload = Body(default_factory=dict)):
        return await backend.create_report(data)

    @api.get("/reports/my-reports")
    async def get_my_reports(params: dict = Depends(_params)):
        return await backend.get_my_reports(params)

    @api.post("/disputes")
    async def create_dispute(data: Payload = Body(default_factory=dict)):
        return await backend.create_dispute(data)

    @api.get("/disputes/my-disputes")
    async def get_my_disputes(params: dict = Depends(_params)):
        return await backend.get_my_disputes(params)

    @api.post("/disputes/{dispute_id}/note")
    async def add_dispute_note(dispute_id: str, data: Payload = Body(default_factory=dict)):
        return await backend.add_dispute_note(dispute_id, data)

    # ── Notifications ───────────────────────────────────────────────────
    @api.get("/notifications")
    async def get_notifications(params: dict = Depends(_params)):
        return await backend.get_notifications(params)

    @api.get("/notifications/unread-count")
    async def get_unread_count():
        return await backend.get_unread_count()

    @api.put("/notifications/read-all")
    async def mark_all_notifications_read():
        return await backend.mark_all_notifications_read()

    @api.put("/notifications/{notification_id}/read")
    async def mark_notification_read(notification_id: str):
        return await backend.mark_notification_read(notification_id)

    @api.delete("/notifications/{notification_id}")
    async def delete_notification(notification_id: str):
        return await backend.delete_notification(notification_id)

    # ── Admin ───────────────────────────────────────────────────────────
    @api.get("/admin/dashboard")
    async def get_dashboard_stats():
        return await backend.get_dashboard_stats()

    @api.get("/admin/users")
    async def get_users(params: dict = Depends(_params)):
        return await backend.get_users(params)

    @api.get("/admin/users/{user_id}")
    async def get_user_details(user_id: str):
        return await backend.get_user_details(user_id)

    @api.put("/admin/users/{user_id}/block")
    async def toggle_block_user(user_id: str, data: Payload = Body(default_factory=dict)):
        return await backend.toggle_block_user(user_id, data)

    @api.delete("/admin/users/{user_id}")
    async def delete_user(user_id: str):
        return await backend.delete_user(user_id)

    @api.put("/admin/users/{user_id}/verify")
    async def approve_verification(user_id: str, data: Payload = Body(default_factory=dict)):
        return await backend.approve_verification(user_id, data)

    @api.put("/admin/users/{user_id}/reject")
    async def reject_verification(user_id: str, data: Payload = Body(default_factory=dict)):
        return await backend.reject_verification(user_id, data)

    @api.put("/admin/users/{user_id}/partial-reject")
    async def partial_reject_verification(user_id: str, data: Payload = Body(default_factory=dict)):
        return await backend.partial_reject_verification(user_id, data)

    @api.get("/admin/loans")
    async def get_loans(params: dict = Depends(_params)):
        return await backend.get_loans(params)

    @api.get("/admin/reports/pending-count")
    async def get_pending_reports_count():
        return await backend.get_pending_reports_count()

    @api.get("/admin/reports")
    async def get_reports(params: dict = Depends(_params)):
        return await backend.get_reports(params)

    @api.put("/admin/reports/{report_id}")
    async def resolve_report(report_id: str, data: Payload = Body(default_factory=dict)):
        return await backend.resolve_report(report_id, data)

    @api.get("/admin/disputes/pending-count")
    async def get_pending_disputes_count():
        return await backend.get_pending_disputes_count()

    @api.get("/admin/disputes")
    async def get_disputes(params: dict = Depends(_params)):
        return await backend.get_disputes(params)

    @api.put("/admin/disputes/{dispute_id}")
    async def resolve_dispute(dispute_id: str, data: Payload = Body(default_factory=dict)):
        return await backend.resolve_dispute(dispute_id, data)

    @api.get("/admin/verifications/pending-count")
    async def get_pending_verifications_count():
        return await backend.get_pending_verifications_count()

    @api.get("/admin/settings")
    async def get_settings():
        return await backend.get_settings()

    @api.put("/admin/settings")
    async def update_setting(data: Payload = Body(default_factory=dict)):
        return await backend.update_setting(data)

    @api.get("/admin/activity-logs")
    async def get_activity_logs(params: dict = Depends(_params)):
        return await backend.get_activity_logs(params)

    app.include_router(public)
    app.include_router(api)
    return app


# ── App ─────────────────────────────────────────────────────────────────
app = create_app()


# ── Run ─────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("main:app", host=HOST, port=PORT, reload=True)
