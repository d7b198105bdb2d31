"""Test fixtures — a fresh in-memory database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own in-memory SQLite engine (StaticPool, so every
   session sees the same database) with the schema created from the
   models and the two roles seeded.
2. The session-context binder is installed on that engine exactly as in
   production, so scoped sessions really do stamp the account id.
3. The app's dependencies are overridden to use the test engine, a
   frozen clock, a token issuer on that clock, and an email dispatcher
   that records instead of sending.

Settings are read once at import, so the environment is set up here,
before anything from wayfarer is imported.
"""

import os

os.environ.setdefault("WAYFARER_ENVIRONMENT", "test")
os.environ.setdefault("WAYFARER_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("WAYFARER_PASSWORD_HASH_ROUNDS", "1")
os.environ.setdefault("WAYFARER_JWT_SECRET", "test-secret-0123456789abcdefghijklmnopqrstuvwxyz")

from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import Depends  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from wayfarer.auth.dependencies import (  # noqa: E402
    get_clock,
    get_current_principal,
    get_scoped_db,
)
from wayfarer.auth.jwt import TokenIssuer, get_token_issuer  # noqa: E402
from wayfarer.auth.password import get_password_hasher  # noqa: E402
from wayfarer.auth.principal import Principal  # noqa: E402
from wayfarer.cache.redis import set_redis  # noqa: E402
from wayfarer.config import settings  # noqa: E402
from wayfarer.db.engine import RowSecuredSession, engine as app_engine, get_db  # noqa: E402
from wayfarer.db.models import Base, Role  # noqa: E402
from wayfarer.db.session_context import SessionContextBinder  # noqa: E402
from wayfarer.main import app  # noqa: E402
from wayfarer.services.auth_service import AuthService  # noqa: E402
from wayfarer.services.email import EmailDispatcher, get_email_dispatcher  # noqa: E402

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"
TEST_SECRET = settings.jwt_secret


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class RecordingEmailDispatcher(EmailDispatcher):
    """Keeps every reset link instead of sending it."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.fail_with: Optional[Exception] = None

    async def send_password_reset(self, email: str, reset_link: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((email, reset_link))

    @property
    def last_token(self) -> str:
        return self.sent[-1][1].rsplit("token=", 1)[1]


async def create_schema(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with AsyncSession(engine) as session:
        session.add_all([Role(name="User"), Role(name="Admin")])
        await session.commit()


@pytest.fixture()
def clock():
    return FrozenClock()


@pytest.fixture()
def issuer(clock):
    return TokenIssuer(
        secret=TEST_SECRET,
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
        access_ttl_minutes=settings.access_token_expire_minutes,
        refresh_ttl_days=settings.refresh_token_expire_days,
        clock=clock,
    )


@pytest.fixture()
def mailer():
    return RecordingEmailDispatcher()


@pytest.fixture()
def binder():
    return SessionContextBinder(settings.rls_session_variable)


@pytest_asyncio.fixture()
async def engine(binder):
    """Fresh in-memory database with schema, roles and the binder installed."""
    engine = create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    binder.install(engine)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    """Session for seeding and inspecting data directly."""
    async with session_factory() as session:
        yield session


@pytest.fixture()
def auth_service(db_session, issuer, mailer, clock):
    return AuthService(
        db=db_session,
        hasher=get_password_hasher(),
        issuer=issuer,
        email=mailer,
        settings=settings,
        clock=clock,
    )


@pytest_asyncio.fixture()
async def client(engine, session_factory, binder, issuer, mailer, clock):
    """HTTP client with the app wired to the test database.

    Learn: Only infrastructure is overridden. Authentication runs for
    real: protected routes need a genuine access token from /auth/login.
    """

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_scoped_db(
        principal: Principal = Depends(get_current_principal),
    ):
        async with AsyncSession(
            bind=binder.bind_engine(engine, principal),
            expire_on_commit=False,
            sync_session_class=RowSecuredSession,
        ) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_scoped_db] = override_get_scoped_db
    app.dependency_overrides[get_token_issuer] = lambda: issuer
    app.dependency_overrides[get_email_dispatcher] = lambda: mailer
    app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    # /health talks to the app engine directly; drop its connection with this loop.
    await app_engine.dispose()


# ─── Helpers ────────────────────────────────────────────

PASSWORD = "Passw0rd!"


async def register_and_login(
    client: AsyncClient,
    email: str = "alice@example.com",
    password: str = PASSWORD,
    user_name: str = "alice",
) -> dict:
    """Register an account and log in. Returns the login response body."""
    r = await client.post(
        "/api/v1/auth/register",
        json={"userName": user_name, "email": email, "password": password},
    )
    assert r.status_code == 201, r.text
    r = await client.post(
        "/api/v1/auth/login", json={"email": email, "password": password}
    )
    assert r.status_code == 200, r.text
    return r.json()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class FakeRedis:
    """Just enough of redis.asyncio.Redis for rate limiting and /health."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.counters: dict[str, int] = {}
        self.ttls: dict[str, int] = {}

    async def ping(self):
        if self.fail:
            raise ConnectionError("connection refused")
        return True

    async def incr(self, key: str) -> int:
        if self.fail:
            raise ConnectionError("connection refused")
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    async def expire(self, key: str, seconds: int) -> bool:
        self.ttls[key] = seconds
        return True


@pytest.fixture()
def fake_redis():
    """Install a FakeRedis as the shared client; removed afterwards."""

    def install(**kwargs) -> FakeRedis:
        fake = FakeRedis(**kwargs)
        set_redis(fake)
        return fake

    yield install
    set_redis(None)
