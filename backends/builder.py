"""Client assembly — picks the backend once and wires it to the session store."""

import logging
from dataclasses import dataclass
from typing import Optional

from config import API_URL, DEMO_MODE, DEMO_TOKEN, SESSION_FILE
from backends.base import LendingBackend
from backends.fixture import FixtureBackend
from backends.http import HttpBackend
from lending.models import Role, User
from session.polling import Poller, unread_count_poller
from session.storage import TOKEN_KEY, JsonFileStorage
from session.store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class LendingClient:
    session: SessionStore
    backend: LendingBackend

    @property
    def is_demo(self) -> bool:
        return self.backend.is_demo

    async def login_demo(self, role: Role) -> User:
        """Sign in to a demo account; swaps in the fixture backend when needed."""
        if not self.backend.is_demo:
            logger.info("Switching client to demo backend")
            await self.backend.aclose()
            self.backend = _fixture_backend(self.session)
            self.session.backend = self.backend
        return self.session.login_demo(role)

    def unread_poller(self, on_count, interval: Optional[float] = None) -> Poller:
        if interval is None:
            return unread_count_poller(self.backend, on_count)
        return unread_count_poller(self.backend, on_count, interval)

    async def aclose(self) -> None:
        await self.backend.aclose()


def _fixture_backend(session: SessionStore, **kwargs) -> FixtureBackend:
    backend = FixtureBackend(**kwargs)
    snapshot = session.get_snapshot()
    if snapshot.user is not None:
        backend.current_user_id = snapshot.user.id

    def follow(snap) -> None:
        backend.current_user_id = snap.user.id if snap.user else None

    session.subscribe(follow)
    return backend


def build_backend(session: SessionStore, demo: bool, **kwargs) -> LendingBackend:
    if demo:
        return _fixture_backend(session, **kwargs)
    return HttpBackend(
        base_url=kwargs.get("base_url", API_URL),
        token_provider=lambda: session.token,
        on_auth_expired=session.clear,
        transport=kwargs.get("transport"),
    )


def build_client(storage=None, demo: Optional[bool] = None, **kwargs) -> LendingClient:
    """
    Compose a client. Demo mode is on when configured, requested, or when the
    stored token is the demo token left by a previous demo session.
    """
    if storage is None:
        storage = JsonFileStorage(SESSION_FILE)
    if demo is None:
        demo = DEMO_MODE or storage.get(TOKEN_KEY) == DEMO_TOKEN

    session = SessionStore(storage)
    backend = build_backend(session, demo, **kwargs)
    session.backend = backend
    logger.info(f"Client composed with {type(backend).__name__}")
    return LendingClient(session=session, backend=backend)
