from pathlib import Path
from typing import AsyncGenerator
from urllib.parse import parse_qs, urlparse

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from templink.config import Settings
from templink.database import Database
from templink.main import create_app
from templink.security import PasswordHasher, SessionSigner
from templink.services.accounts import AccountService
from templink.services.links import LinkService
from templink.services.notifications import MessageKind
from templink.services.tokens import TokenService

# bcrypt's minimum cost keeps the suite fast.
TEST_ROUNDS = 4


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float = 0, minutes: float = 0):
        self.now += int((seconds + minutes * 60) * 1000)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def deliver(self, address, kind, payload):
        self.sent.append((address, kind, payload))
        return True

    def last_secret(self, kind: MessageKind) -> str:
        for _, sent_kind, payload in reversed(self.sent):
            if sent_kind is kind:
                return parse_qs(urlparse(payload["url"]).query)["token"][0]
        raise AssertionError(f"no {kind.value} message sent")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=TEST_ROUNDS)


@pytest.fixture
def signer() -> SessionSigner:
    return SessionSigner("test-secret")


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    # One SQLite file per test keeps tests isolated.
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'templink.db'}")
    await db.open()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def db(database: Database):
    async with database.session() as session:
        yield session


@pytest.fixture
def link_service(hasher, clock) -> LinkService:
    return LinkService(hasher, clock=clock)


@pytest.fixture
def token_service(clock) -> TokenService:
    return TokenService(clock=clock)


@pytest.fixture
def account_service(hasher, signer, token_service, notifier, clock) -> AccountService:
    return AccountService(hasher, signer, token_service, notifier, base_url="http://test", clock=clock)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        REDIS_URL=None,
        ENVIRONMENT="test",
        BASE_URL="http://test",
        JWT_SECRET="test-secret",
        BCRYPT_ROUNDS=TEST_ROUNDS,
    )


@pytest_asyncio.fixture
async def app(test_settings, notifier, clock) -> AsyncGenerator[FastAPI, None]:
    application = create_app(app_settings=test_settings, notifier=notifier, clock=clock)
    # ASGITransport does not run the lifespan, so enter it by hand.
    async with application.router.lifespan_context(application):
        yield application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
