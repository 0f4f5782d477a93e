"""
Test fixtures for the League Ledger test suite.

This module provides shared fixtures used across all test files:

  - db_url / db_engine / session_factory: Fresh SQLite database per test
  - client: Async HTTP test client (unauthenticated)
  - make_user: Factory that signs a user up and optionally elevates it
  - admin: A pre-registered ADMIN user (id, token, headers)
  - admin_client: Test client with the ADMIN token set
  - league: A league with its system account and two team accounts
  - issue: Helper that mints currency into an account as the admin
  - director: An approved participant directing team A

Key design decisions:
  - In-memory SQLite (sqlite+aiosqlite://) is used for speed and isolation.
    Tests that need separate connections (real lock contention) override
    the db_url fixture with a file in tmp_path.
  - We override FastAPI's get_db dependency to inject our test sessions,
    so the application code works exactly as it does in production.
  - Users sign up through the real endpoint. Elevated roles are then written
    directly to the database, the way an operator provisions the first
    admin.
"""

import os
import uuid

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import update
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from league_ledger.database import Base, get_db
from league_ledger.main import app
from league_ledger.models.user import Role, User


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"

PASSWORD = "SecurePass123!"


@pytest.fixture
def db_url():
    return TEST_DATABASE_URL


@pytest_asyncio.fixture
async def db_engine(db_url):
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(db_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Provide an async session bound to the test engine."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    """
    Async HTTP test client with the test database injected.

    This overrides the get_db dependency so all requests hit the test
    database instead of the real one.
    """

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(client, session_factory):
    """
    Factory: sign a user up, then set role/permissions directly in the DB.

    Returns a dict with id, email, token and ready-to-use headers.
    """

    async def _make_user(
        email: str,
        nickname: str | None = None,
        role: Role = Role.USER,
        permissions: list[str] | None = None,
    ) -> dict:
        response = await client.post(
            "/auth/signup",
            json={
                "email": email,
                "password": PASSWORD,
                "nickname": nickname or email.split("@")[0],
            },
        )
        assert response.status_code == 201, f"Signup failed: {response.text}"
        body = response.json()
        user_id = uuid.UUID(body["user_id"])

        if role != Role.USER or permissions:
            async with session_factory() as session:
                await session.execute(
                    update(User)
                    .where(User.id == user_id)
                    .values(role=role, permissions=sorted(permissions or []))
                )
                await session.commit()

        return {
            "id": user_id,
            "email": email,
            "token": body["token"],
            "headers": {"Authorization": f"Bearer {body['token']}"},
        }

    return _make_user


@pytest_asyncio.fixture
async def admin(make_user):
    return await make_user("admin@example.com", nickname="Race Control", role=Role.ADMIN)


@pytest_asyncio.fixture
async def admin_client(client, admin):
    """Test client with the ADMIN token set on every request."""
    client.headers["Authorization"] = f"Bearer {admin['token']}"
    return client


@pytest_asyncio.fixture
async def league(client, admin):
    """
    A league with two teams.

    Returns ids of the league, its system account and both team accounts.
    """
    response = await client.post(
        "/admin/leagues",
        json={"name": "GT3 Sprint Cup", "season": 1},
        headers=admin["headers"],
    )
    assert response.status_code == 201, response.text
    league_id = response.json()["id"]

    teams = {}
    for key, name, color in (("team_a", "Apex Racing", "#FF0000"), ("team_b", "Blue Flag", None)):
        response = await client.post(
            f"/admin/leagues/{league_id}/teams",
            json={"name": name, "color": color},
            headers=admin["headers"],
        )
        assert response.status_code == 201, response.text
        body = response.json()
        teams[key] = {"id": body["team"]["id"], "account_id": body["account"]["id"]}

    accounts = await client.get(f"/leagues/{league_id}/accounts", headers=admin["headers"])
    system = next(a for a in accounts.json()["accounts"] if a["owner_type"] == "system")

    return {
        "id": league_id,
        "system_account_id": system["id"],
        **teams,
    }


@pytest.fixture
def issue(client, admin, league):
    """Helper: mint `amount` into an account from the system account."""

    async def _issue(account_id: str, amount: int, category: str = "sponsorship"):
        response = await client.post(
            f"/admin/leagues/{league['id']}/transactions",
            json={
                "from_account_id": league["system_account_id"],
                "to_account_id": account_id,
                "amount": amount,
                "category": category,
                "use_balance": False,
            },
            headers=admin["headers"],
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _issue


@pytest_asyncio.fixture
async def director(client, admin, league, make_user):
    """An approved participant with the director role on team A."""
    user = await make_user("director@example.com", nickname="Team Boss")
    response = await client.post(
        f"/admin/leagues/{league['id']}/participants",
        json={
            "user_id": str(user["id"]),
            "team_id": league["team_a"]["id"],
            "roles": ["director"],
        },
        headers=admin["headers"],
    )
    assert response.status_code == 201, response.text
    user["participant_account_id"] = response.json()["account"]["id"]
    return user


@pytest.fixture
def balance_of(client, admin):
    """Helper: current balance of an account, read as the admin."""

    async def _balance_of(account_id: str) -> int:
        response = await client.get(f"/accounts/{account_id}", headers=admin["headers"])
        assert response.status_code == 200, response.text
        return response.json()["balance"]

    return _balance_of
