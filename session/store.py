"""Session store — the single writer of auth identity.

Holds the current user, token and loading flag, mirrors them into durable
storage (keys ``token`` and ``user``) and notifies subscribers after every
change.  Readers take immutable AuthSnapshot values via get_snapshot().
"""

import logging
import threading
from dataclasses import replace
from typing import Any, Callable, Mapping, Optional

from config import DEMO_TOKEN
from backends.base import LendingBackend
from backends.fixture_data import demo_user
from lending.access import AuthSnapshot
from lending.models import Role, User
from session.storage import TOKEN_KEY, USER_KEY, Storage

logger = logging.getLogger(__name__)

Listener = Callable[[AuthSnapshot], None]


class SessionStore:
    def __init__(self, storage: Storage, backend: Optional[LendingBackend] = None):
        self.storage = storage
        self.backend = backend
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []
        token = storage.get(TOKEN_KEY)
        self._snapshot = AuthSnapshot(
            loading=True,
            user=self._stored_user() if token else None,
            token=token,
        )

    # ── Reading ─────────────────────────────────────────────────────────
    def get_snapshot(self) -> AuthSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def token(self) -> Optional[str]:
        return self.get_snapshot().token

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns the function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _stored_user(self) -> Optional[User]:
        raw = self.storage.get(USER_KEY)
        if not raw:
            return None
        try:
            return User.model_validate_json(raw)
        except ValueError as e:
            logger.warning(f"Discarding unreadable stored user: {e}")
            return None

    # ── Writing ─────────────────────────────────────────────────────────
    def _set(self, **changes: Any) -> None:
        with self._lock:
            self._snapshot = replace(self._snapshot, **changes)
            snapshot, listeners = self._snapshot, list(self._listeners)
        for listener in listeners:
            listener(snapshot)

    def _establish(self, token: str, user: User) -> User:
        self.storage.set(TOKEN_KEY, token)
        self.storage.set(USER_KEY, user.model_dump_json(by_alias=True))
        self._set(loading=False, user=user, token=token)
        return user

    def _require_backend(self) -> LendingBackend:
        if self.backend is None:
            raise RuntimeError("SessionStore has no backend bound")
        return self.backend

    async def check_auth(self) -> AuthSnapshot:
        """Startup hydration: a stored token is confirmed against the profile endpoint."""
        token = self.storage.get(TOKEN_KEY)
        if not token:
            self._set(loading=False, user=None, token=None)
            return self.get_snapshot()
        try:
            response = await self._require_backend().get_profile()
            self._establish(token, User.model_validate(response["data"]))
        except Exception as e:
            logger.warning(f"Stored session rejected, signing out: {e}")
            self.clear()
        return self.get_snapshot()

    async def login(self, email: str, password: str) -> User:
        response = await self._require_backend().login(email, password)
        data = response["data"]
        return self._establish(data["token"], User.model_validate(data["user"]))

    async def register(self, data: Mapping) -> User:
        response = await self._require_backend().register(data)
        payload = response["data"]
        return self._establish(payload["token"], User.model_validate(payload["user"]))

    def login_demo(self, role: Role) -> User:
        """Sign in as one of the seeded demo accounts; takes effect without a backend call."""
        try:
            user = demo_user(Role(role))
        except ValueError:
            raise ValueError(f"Invalid demo role: {role!r}")
        return self._establish(DEMO_TOKEN, user)

    def update_user(self, user: User) -> None:
        self.storage.set(USER_KEY, user.model_dump_json(by_alias=True))
        self._set(user=user)

    async def refresh_user(self) -> Optional[User]:
        try:
            response = await self._require_backend().get_profile()
            user = User.model_validate(response["data"])
        except Exception as e:
            logger.error(f"Failed to refresh user: {e}")
            return None
        self.update_user(user)
        return user

    def logout(self) -> None:
        self.storage.remove(TOKEN_KEY)
        self.storage.remove(USER_KEY)
        self._set(loading=False, user=None, token=None)

    # 401 handling and logout leave the same state behind
    clear = logout
