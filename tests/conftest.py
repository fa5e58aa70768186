"""Shared test fixtures — async SQLite in-memory DB + test client."""

import os
from collections.abc import AsyncGenerator

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

# Import all models so metadata is populated
import teamchat.models  # noqa: E402, F401
from teamchat.core.database import get_session  # noqa: E402
from teamchat.core.security import create_jwt  # noqa: E402
from teamchat.main import app  # noqa: E402
from teamchat.models.tenant import Tenant  # noqa: E402
from teamchat.models.user import User, UserRole  # noqa: E402


@pytest.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)

    # aiosqlite defers BEGIN on its own, which breaks SAVEPOINT handling.
    @event.listens_for(eng.sync_engine, "connect")
    def _connect(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def test_session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest.fixture
async def client(session) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB session override."""

    async def _override_session():
        yield session

    app.dependency_overrides[get_session] = _override_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def auth_headers(user: User) -> dict:
    token = create_jwt(subject=str(user.id), tenant_id=str(user.tenant_id), role=user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def drain():
    """Pop every frame queued on a connection's outbox without waiting."""

    def _drain(conn) -> list[dict]:
        frames = []
        while not conn.outbox.empty():
            frame = conn.outbox.get_nowait()
            if frame is not None:
                frames.append(frame)
        return frames

    return _drain


@pytest.fixture
def seed_tenant(session):
    """Factory: create a tenant with the named users. Commits."""

    async def _seed(slug: str, **people: tuple[str, UserRole]) -> dict:
        tenant = Tenant(name=f"{slug} Co", slug=slug)
        session.add(tenant)
        await session.flush()

        users = {}
        for key, (display_name, role) in people.items():
            user = User(
                tenant_id=tenant.id,
                email=f"{key}@{slug}.test",
                display_name=display_name,
                role=role,
            )
            session.add(user)
            users[key] = user
        await session.commit()

        return {
            "tenant": tenant,
            "users": users,
            "headers": {key: auth_headers(u) for key, u in users.items()},
        }

    return _seed


@pytest.fixture
async def team(seed_tenant) -> dict:
    """Tenant with an admin (alice), a member (bob) and a member (carol)."""
    return await seed_tenant(
        "acme",
        alice=("Alice Admin", UserRole.ADMIN),
        bob=("Bob Builder", UserRole.MEMBER),
        carol=("", UserRole.MEMBER),
    )
