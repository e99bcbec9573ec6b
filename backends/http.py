"""HttpBackend — the real REST API over httpx.

A 401 clears the session once, here, through the on_auth_expired callback
and surfaces as AuthExpired.  Other failed envelopes are mapped back to
the typed error named in their "error" field.  Nothing is retried.
"""

import logging
from typing import Any, Callable, Mapping, Optional

import httpx

from config import API_URL, DEMO_TOKEN, HTTP_TIMEOUT
from backends.base import Envelope, LendingBackend, ok
from backends.fixture_data import registered_user
from lending.errors import ERRORS_BY_CODE, AuthExpired, BackendError, LendingError

logger = logging.getLogger(__name__)


def _query(params: Optional[Mapping]) -> dict[str, Any]:
    """Drop empty filters; send booleans the way the API expects them."""
    query = {}
    for key, value in (params or {}).items():
        if value is None or value == "":
            continue
        query[key] = str(value).lower() if isinstance(value, bool) else value
    return query


def _body(response: httpx.Response) -> dict[str, Any]:
    if response.is_success and not response.content.strip():
        return {"success": True}
    try:
        body = response.json()
    except ValueError:
        return {"success": False, "message": response.text or response.reason_phrase}
    return body if isinstance(body, dict) else {"success": True, "data": body}


def error_from_response(status: int, body: Mapping) -> LendingError:
    message = body.get("message") or f"request failed with status {status}"
    cls = ERRORS_BY_CODE.get(body.get("error"))
    if cls is not None:
        return cls(message)
    return BackendError(message, status=status)


class HttpBackend(LendingBackend):
    def __init__(
        self,
        base_url: str = API_URL,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        on_auth_expired: Optional[Callable[[], None]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = HTTP_TIMEOUT,
    ):
        self.token_provider = token_provider
        self.on_auth_expired = on_auth_expired
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Mapping] = None,
        params: Optional[Mapping] = None,
    ) -> Envelope:
        headers = {}
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"

        response = await self.client.request(
            method, path, json=dict(json) if json is not None else None,
            params=_query(params), headers=headers,
        )
        body = _body(response)

        if response.status_code == 401:
            logger.warning(f"{method} {path} answered 401, clearing session")
            if self.on_auth_expired is not None:
                self.on_auth_expired()
            raise AuthExpired(body.get("message") or "session expired")

        if response.is_error or not body.get("success", False):
            logger.error(f"{method} {path} failed with {response.status_code}: {body.get('message')}")
            raise error_from_response(response.status_code, body)
        return body

    def _get(self, path, params=None):
        return self._request("GET", path, params=params)

    def _post(self, path, json=None):
        return self._request("POST", path, json=json or {})

    def _put(self, path, json=None):
        return self._request("PUT", path, json=json or {})

    def _delete(self, path):
        return self._request("DELETE", path)

    # ── Auth ────────────────────────────────────────────────────────────
    async def register(self, data):
        try:
            return await self._post("/auth/register", data)
        except httpx.TransportError as e:
            logger.warning(f"Backend unreachable ({e!r}), registering in demo mode")
            return ok(
                {"user": registered_user(data).to_payload(), "token": DEMO_TOKEN},
                "Registration successful (demo mode, backend unavailable)",
            )

    async def login(self, email, password):
        return await self._post("/auth/login", {"email": email, "password": password})

    async def get_profile(self):
        return await self._get("/auth/profile")

    async def update_profile(self, data):
        return await self._put("/auth/profile", data)

    async def complete_onboarding(self, data):
        return await self._post("/auth/onboarding", data)

    async def change_password(self, data):
        return await self._post("/auth/change-password", data)

    async def reset_password(self, data):
        return await self._post("/auth/reset-password", data)

    async def upload_profile_picture(self, data):
        return await self._post("/auth/profile-picture", data)

    async def send_email_verification(self):
        return await self._post("/auth/send-email-verification")

    async def verify_email(self, data):
        return await self._post("/auth/verify-email", data)

    async def send_phone_verification(self):
        return await self._post("/auth/send-phone-verification")

    async def verify_phone(self, data):
        return await self._post("/auth/verify-phone", data)

    # ── Loans ───────────────────────────────────────────────────────────
    async def create_request(self, data):
        return await self._post("/loans/request", data)

    async def get_my_borrowings(self, params=None):
        return await self._get("/loans/my-requests", params)

    async def mark_fulfilled(self, loan_id):
        return await self._post(f"/loans/{loan_id}/fulfill")

    async def cancel_request(self, loan_id):
        return await self._post(f"/loans/{loan_id}/cancel")

    async def get_pending_requests(self, params=None):
        return await self._get("/loans/pending", params)

    async def get_my_lending(self, params=None):
        return await self._get("/loans/my-lending", params)

    async def accept_request(self, loan_id):
        return await self._post(f"/loans/{loan_id}/accept")

    async def decline_request(self, loan_id):
        return await self._post(f"/loans/{loan_id}/decline")

    async def record_repayment(self, loan_id, data):
        return await self._post(f"/loans/{loan_id}/repayment", data)

    async def get_loan_details(self, loan_id):
        return await self._get(f"/loans/{loan_id}")

    async def rate_user(self, loan_id, data):
        return await self._post(f"/loans/{loan_id}/rate", data)

    # ── Reports & disputes ──────────────────────────────────────────────
    async def create_report(self, data):
        return await self._post("/reports", data)

    async def get_my_reports(self, params=None):
        return await self._get("/reports/my-reports", params)

    async def get_reports(self, params=None):
        return await self._get("/admin/reports", params)

    async def resolve_report(self, report_id, data):
        return await self._put(f"/admin/reports/{report_id}", data)

    async def create_dispute(self, data):
        return await self._post("/disputes", data)

    async def get_my_disputes(self, params=None):
        return await self._get("/disputes/my-disputes", params)

    async def add_dispute_note(self, dispute_id, data):
        return await self._post(f"/disputes/{dispute_id}/note", data)

    async def get_disputes(self, params=None):
        return await self._get("/admin/disputes", params)

    async def resolve_dispute(self, dispute_id, data):
        return await self._put(f"/admin/disputes/{dispute_id}", data)

    # ── Notifications ───────────────────────────────────────────────────
    async def get_notifications(self, params=None):
        return await self._get("/notifications", params)

    async def get_unread_count(self):
        return await self._get("/notifications/unread-count")

    async def mark_notification_read(self, notification_id):
        return await self._put(f"/notifications/{notification_id}/read")

    async def mark_all_notifications_read(self):
        return await self._put("/notifications/read-all")

    async def delete_notification(self, notification_id):
        return await self._delete(f"/notifications/{notification_id}")

    # ── Admin ───────────────────────────────────────────────────────────
    async def get_dashboard_stats(self):
        return await self._get("/admin/dashboard")

    async def get_users(self, params=None):
        return await self._get("/admin/users", params)

    async def get_user_details(self, user_id):
        return await self._get(f"/admin/users/{user_id}")

    async def toggle_block_user(self, user_id, data):
        return await self._put(f"/admin/users/{user_id}/block", data)

    async def delete_user(self, user_id):
        return await self._delete(f"/admin/users/{user_id}")

    async def approve_verification(self, user_id, data=None):
        return await self._put(f"/admin/users/{user_id}/verify", data)

    async def reject_verification(self, user_id, data):
        return await self._put(f"/admin/users/{user_id}/reject", data)

    async def partial_reject_verification(self, user_id, data):
        return await self._put(f"/admin/users/{user_id}/partial-reject", data)

    async def get_loans(self, params=None):
        return await self._get("/admin/loans", params)

    async def get_settings(self):
        return await self._get("/admin/settings")

    async def update_setting(self, data):
        return await self._put("/admin/settings", data)

    async def get_activity_logs(self, params=None):
        return await self._get("/admin/activity-logs", params)

    async def get_pending_verifications_count(self):
        return await self._get("/admin/verifications/pending-count")

    async def get_pending_reports_count(self):
        return await self._get("/admin/reports/pending-count")

    async def get_pending_disputes_count(self):
        return await self._get("/admin/disputes/pending-count")
