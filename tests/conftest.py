import os

# Settings are read at import time, so the environment has to be in place first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["ADMIN_EMAIL"] = "accounts@college.edu"
os.environ.pop("EMAIL_PASSWORD", None)

from typing import AsyncGenerator, Dict

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from feeledger.db.session import Base, get_db
from feeledger.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
ADMIN_EMAIL = "accounts@college.edu"
ADMIN_PASSWORD = "StrongPass123"


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test, wired into the FastAPI dependency."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.pop(get_db, None)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
async def auth_headers(client: AsyncClient) -> Dict[str, str]:
    """Register the single admin and return a bearer header for it."""
    resp = await client.post("/api/v1/auth/register", json={"password": ADMIN_PASSWORD, "name": "Accounts Admin"})
    assert resp.status_code == 201, resp.text
    token = resp.json()["data"]["token"]
    return {"Authorization": f"Bearer {token}"}


async def add_student(client: AsyncClient, headers: Dict[str, str], prn: str, **fields) -> dict:
    payload = {"prn": prn, "name": fields.pop("name", f"Student {prn}"), **fields}
    resp = await client.post("/api/v1/students/add", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


async def add_payment(client: AsyncClient, headers: Dict[str, str], prn: str, amount, **fields) -> dict:
    payload = {"amount": amount, "sendEmail": False, **fields}
    resp = await client.post(f"/api/v1/students/add-fine/{prn}", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]
