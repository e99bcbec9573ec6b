import asyncio
import json

import httpx
import pytest

from backends.builder import build_client
from backends.fixture import FixtureBackend
from backends.fixture_data import seed
from backends.http import HttpBackend, error_from_response
from lending.errors import AlreadyRated, AuthExpired, BackendError, InvalidTransition, NotFound, ValidationError
from lending.models import User
from main import create_app
from session.storage import MemoryStorage

BASE_URL = "http://testserver/api"


@pytest.fixture
def server(now):
    return create_app(FixtureBackend(dataset=seed(now), latency=(0, 0), strict=True))


def client_for(app, storage=None):
    return build_client(
        storage or MemoryStorage(),
        demo=False,
        base_url=BASE_URL,
        transport=httpx.ASGITransport(app=app),
    )


def test_login_then_create_and_list(server):
    client = client_for(server)

    async def scenario():
        try:
            user = await client.session.login("borrower@udhaar.demo", "secret")
            created = await client.backend.create_request({"amount": 4000, "duration": 14, "purpose": "Books"})
            listing = await client.backend.get_my_borrowings({"status": "pending"})
            return user, created["data"], listing["data"]["loans"]
        finally:
            await client.aclose()

    user, created, loans = asyncio.run(scenario())
    assert user.id == "demo-borrower-001"
    assert client.session.token == "demo-token"
    assert created["id"] in {loan["id"] for loan in loans}


def test_typed_errors_survive_the_wire(server):
    client = client_for(server, MemoryStorage({"token": "demo-token"}))
    backend = client.backend
    raised = []

    async def scenario():
        calls = [
            backend.accept_request("loan-active-001"),
            backend.get_loan_details("no-such-loan"),
            backend.create_request({"amount": 10, "duration": 14, "purpose": "Books"}),
        ]
        try:
            for call in calls:
                try:
                    await call
                except Exception as e:
                    raised.append(type(e))
        finally:
            await client.aclose()

    asyncio.run(scenario())
    assert raised == [InvalidTransition, NotFound, ValidationError]


def test_unauthorized_clears_session_once(server):
    storage = MemoryStorage({"token": "expired-token", "user": "{}"})
    client = client_for(server, storage)
    cleared = []
    client.session.subscribe(lambda snap: cleared.append(snap.token))

    async def scenario():
        try:
            await client.backend.get_profile()
        finally:
            await client.aclose()

    with pytest.raises(AuthExpired):
        asyncio.run(scenario())
    assert storage.get("token") is None
    assert storage.get("user") is None
    assert cleared == [None]


def test_login_needs_no_token(server):
    client = client_for(server)

    async def scenario():
        try:
            return await client.backend.login("admin@udhaar.demo", "x")
        finally:
            await client.aclose()

    assert asyncio.run(scenario())["data"]["user"]["role"] == "admin"


def test_reset_password_needs_no_token(server):
    client = client_for(server)

    async def scenario():
        try:
            return await client.backend.reset_password({"email": "borrower@udhaar.demo", "newPassword": "fresh-secret"})
        finally:
            await client.aclose()

    assert asyncio.run(scenario())["success"] is True


def test_email_verification_over_the_wire(server):
    client = client_for(server, MemoryStorage({"token": "demo-token"}))

    async def scenario():
        try:
            sent = await client.backend.send_email_verification()
            verified = await client.backend.verify_email({"code": sent["data"]["code"]})
            client.session.update_user(User.model_validate(verified["data"]))
        finally:
            await client.aclose()

    asyncio.run(scenario())
    assert client.session.get_snapshot().user.is_email_verified is True


class TestMockTransport:
    def run(self, handler, call):
        backend = HttpBackend(
            base_url=BASE_URL,
            token_provider=lambda: "jwt-123",
            transport=httpx.MockTransport(handler),
        )

        async def scenario():
            try:
                return await call(backend)
            finally:
                await backend.aclose()

        return asyncio.run(scenario())

    def test_sends_bearer_and_drops_empty_filters(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"success": True, "data": {"loans": []}})

        self.run(handler, lambda b: b.get_loans({"status": "", "page": 2, "unreadOnly": True, "q": None}))
        assert seen["auth"] == "Bearer jwt-123"
        assert seen["params"] == {"page": "2", "unreadOnly": "true"}

    def test_named_error_in_envelope(self):
        def handler(request):
            return httpx.Response(409, json={"success": False, "error": "AlreadyRated", "message": "done"})

        with pytest.raises(AlreadyRated):
            self.run(handler, lambda b: b.rate_user("l1", {"rating": 5}))

    def test_unparseable_failure_is_backend_error(self):
        def handler(request):
            return httpx.Response(502, text="Bad Gateway")

        with pytest.raises(BackendError) as info:
            self.run(handler, lambda b: b.get_settings())
        assert info.value.http_status == 502

    def test_success_false_with_ok_status_still_fails(self):
        def handler(request):
            return httpx.Response(200, json={"success": False, "message": "maintenance"})

        with pytest.raises(BackendError):
            self.run(handler, lambda b: b.get_dashboard_stats())

    def test_empty_success_body_is_ok(self):
        def handler(request):
            return httpx.Response(204)

        assert self.run(handler, lambda b: b.delete_notification("n1")) == {"success": True}

    def test_empty_failure_body_still_fails(self):
        def handler(request):
            return httpx.Response(500)

        with pytest.raises(BackendError):
            self.run(handler, lambda b: b.delete_notification("n1"))

    def test_update_settings_sends_one_put_per_key(self):
        bodies = []

        def handler(request):
            bodies.append((request.method, request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={"success": True, "message": "Setting updated"})

        response = self.run(handler, lambda b: b.update_settings({"maxLoanAmount": 60000, "autoApprove": False}))
        assert response == {"success": True, "message": "Settings updated"}
        assert sorted(bodies, key=lambda b: b[2]["key"]) == [
            ("PUT", "/api/admin/settings", {"key": "autoApprove", "value": "false"}),
            ("PUT", "/api/admin/settings", {"key": "maxLoanAmount", "value": "60000"}),
        ]

    def test_register_falls_back_to_demo_when_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        data = {"email": "new@example.com", "firstName": "Kiran", "lastName": "Rao", "role": "lender"}
        response = self.run(handler, lambda b: b.register(data))
        assert response["data"]["token"] == "demo-token"
        user = response["data"]["user"]
        assert user["role"] == "lender"
        assert user["email"] == "new@example.com"
        assert user["isOnboardingComplete"] is False

    def test_other_calls_do_not_fall_back(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(httpx.ConnectError):
            self.run(handler, lambda b: b.login("a@example.com", "x"))


def test_error_from_response_defaults_message():
    error = error_from_response(500, {})
    assert isinstance(error, BackendError)
    assert "500" in error.message
