import asyncio
import json

import pytest

from backends.builder import build_client
from backends.fixture import FixtureBackend
from backends.http import HttpBackend
from lending.access import RedirectTo, decide_access
from lending.errors import ValidationError
from lending.models import Role, User
from session.storage import JsonFileStorage, MemoryStorage
from session.store import SessionStore


@pytest.fixture
def store(backend):
    return SessionStore(MemoryStorage(), backend)


def test_starts_loading_until_checked(store):
    assert store.get_snapshot().loading
    snapshot = asyncio.run(store.check_auth())
    assert not snapshot.loading
    assert not snapshot.is_authenticated


def test_login_persists_token_and_user(store):
    user = asyncio.run(store.login("lender@udhaar.demo", "secret"))
    assert user.role is Role.LENDER
    assert store.storage.get("token") == "demo-token"
    stored = User.model_validate_json(store.storage.get("user"))
    assert stored.id == "demo-lender-001"
    assert store.get_snapshot().user == user


def test_check_auth_hydrates_from_stored_token(backend):
    storage = MemoryStorage({"token": "demo-token"})
    store = SessionStore(storage, backend)
    snapshot = asyncio.run(store.check_auth())
    assert snapshot.user.id == "demo-borrower-001"
    assert not snapshot.loading


def test_check_auth_failure_signs_out():
    class Refusing(FixtureBackend):
        async def get_profile(self):
            raise ValidationError("token revoked")

    storage = MemoryStorage({"token": "stale"})
    store = SessionStore(storage, Refusing(latency=(0, 0)))
    snapshot = asyncio.run(store.check_auth())
    assert not snapshot.is_authenticated
    assert storage.get("token") is None


def test_login_demo_and_logout(store):
    user = store.login_demo("admin")
    assert user.id == "demo-admin-001"
    assert store.token == "demo-token"
    store.logout()
    assert store.get_snapshot().user is None
    assert store.storage.get("user") is None


def test_login_demo_rejects_unknown_role(store):
    with pytest.raises(ValueError):
        store.login_demo("auditor")


def test_listeners_see_every_change_until_unsubscribed(store):
    seen = []
    unsubscribe = store.subscribe(lambda snap: seen.append(snap.user.id if snap.user else None))
    store.login_demo(Role.LENDER)
    store.logout()
    unsubscribe()
    store.login_demo(Role.BORROWER)
    assert seen == ["demo-lender-001", None]


def test_snapshot_feeds_access_gate(store):
    store.login_demo(Role.BORROWER)
    assert decide_access(store.get_snapshot(), ["lender"]) == RedirectTo("/borrower")


def test_refresh_user_picks_up_backend_changes(store, backend):
    user = store.login_demo(Role.BORROWER)
    backend.current_user_id = user.id
    asyncio.run(backend.update_profile({"city": "Surat"}))
    refreshed = asyncio.run(store.refresh_user())
    assert refreshed.city == "Surat"
    assert store.get_snapshot().user.city == "Surat"


def test_storage_only_accepts_known_keys():
    with pytest.raises(KeyError):
        MemoryStorage().set("theme", "dark")


def test_file_storage_survives_restart(tmp_path):
    path = str(tmp_path / "session.json")
    storage = JsonFileStorage(path)
    storage.set("token", "abc")
    storage.set("user", "{}")
    storage.remove("user")

    with open(path, encoding="utf-8") as f:
        assert json.load(f) == {"token": "abc"}
    assert JsonFileStorage(path).get("token") == "abc"


def test_file_storage_ignores_corrupt_file(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{not json", encoding="utf-8")
    assert JsonFileStorage(str(path)).get("token") is None


class TestComposition:
    def test_demo_token_selects_fixture_backend(self):
        client = build_client(MemoryStorage({"token": "demo-token"}))
        assert isinstance(client.backend, FixtureBackend)
        assert client.is_demo

    def test_real_token_selects_http_backend(self):
        client = build_client(MemoryStorage({"token": "jwt"}), demo=False)
        assert isinstance(client.backend, HttpBackend)
        asyncio.run(client.aclose())

    def test_fixture_follows_signed_in_user(self):
        client = build_client(MemoryStorage(), demo=True, latency=(0, 0))
        client.session.login_demo(Role.LENDER)
        profile = asyncio.run(client.backend.get_profile())
        assert profile["data"]["id"] == "demo-lender-001"

    def test_login_demo_switches_backend(self):
        client = build_client(MemoryStorage(), demo=False)

        async def scenario():
            user = await client.login_demo(Role.BORROWER)
            profile = await client.backend.get_profile()
            return user, profile

        user, profile = asyncio.run(scenario())
        assert client.is_demo
        assert client.session.backend is client.backend
        assert profile["data"]["id"] == user.id
