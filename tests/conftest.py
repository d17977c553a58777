"""Shared test fixtures.

Tests run against in-memory SQLite (one shared connection) with Redis absent.
A throwaway RSA key pair is generated once per session for JWTs.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncGenerator, Awaitable, Callable

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


def _write_test_keys() -> tuple[str, str]:
    """Generate an RSA key pair into a temp directory."""
    tmpdir = tempfile.mkdtemp(prefix="coursepath_test_keys_")
    private_path = os.path.join(tmpdir, "jwt_private.pem")
    public_path = os.path.join(tmpdir, "jwt_public.pem")

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    with open(private_path, "wb") as fh:
        fh.write(key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ))
    with open(public_path, "wb") as fh:
        fh.write(key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ))
    return private_path, public_path


_private_path, _public_path = _write_test_keys()
os.environ["CP_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CP_REDIS_URL"] = ""
os.environ["CP_LOG_FORMAT"] = "console"
os.environ["CP_CHALLENGE_LENGTH"] = "21"
os.environ["CP_JWT_PRIVATE_KEY_PATH"] = _private_path
os.environ["CP_JWT_PUBLIC_KEY_PATH"] = _public_path
os.environ["CP_COMPLETION_RETRY_BASE_DELAY_SECONDS"] = "0"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from coursepath.auth.jwt import create_access_token, reset_keys  # noqa: E402
from coursepath.config import Settings, get_settings  # noqa: E402
from coursepath.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from coursepath.db.base import Base  # noqa: E402
from coursepath.db.models import User  # noqa: E402
from coursepath.main import create_app  # noqa: E402
from coursepath.redis_client import close_redis, init_redis  # noqa: E402
from coursepath.rewards.seed import seed_badges  # noqa: E402
from coursepath.users.service import get_or_create_user  # noqa: E402

get_settings.cache_clear()
reset_keys()


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest_asyncio.fixture
async def database(settings: Settings) -> AsyncGenerator[None, None]:
    """Fresh in-memory schema with the badge catalog seeded."""
    await init_db(settings.database_url)
    await init_redis(None)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with get_session_factory()() as session:
        await seed_badges(session)

    yield

    await close_redis()
    await close_db()


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for setup and assertions."""
    async with get_session_factory()() as session:
        yield session


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    """Factory creating committed users: ``await make_user("a@x.io", is_admin=True)``."""
    counter = {"n": 0}

    async def _make(email: str | None = None, **flags: object) -> User:
        counter["n"] += 1
        timezone_name = flags.pop("timezone", None)
        user, _ = await get_or_create_user(
            db_session,
            email or f"learner{counter['n']}@example.com",
            timezone_name=timezone_name,  # type: ignore[arg-type]
        )
        for name, value in flags.items():
            setattr(user, name, value)
        await db_session.commit()
        return user

    return _make


@pytest_asyncio.fixture
async def user(make_user: Callable[..., Awaitable[User]]) -> User:
    return await make_user("learner@example.com")


@pytest_asyncio.fixture
async def client(database: None) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client against the app (lifespan is not run)."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def bearer(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, is_admin=user.is_admin)}"}


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    """Bearer header factory: ``client.get(url, headers=auth_headers(user))``."""
    return bearer


@pytest_asyncio.fixture
async def authed_client(client: AsyncClient, user: User) -> AsyncClient:
    """Client authenticated as the default ``user``."""
    client.headers.update(bearer(user))
    return client
