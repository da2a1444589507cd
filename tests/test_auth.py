from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.models import Admin
from feeledger.core import notifier
from feeledger.core.exceptions import ExternalServiceError

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD


@pytest.mark.asyncio
async def test_setup_status_before_and_after_register(client: AsyncClient) -> None:
    resp = await client.get("/api/v1/auth/setup-status")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["setupRequired"] is True
    assert data["adminEmail"] == "ac***s@college.edu"

    resp = await client.post("/api/v1/auth/register", json={"password": ADMIN_PASSWORD})
    assert resp.status_code == 201

    resp = await client.get("/api/v1/auth/setup-status")
    assert resp.json()["data"]["setupRequired"] is False


@pytest.mark.asyncio
async def test_register_uses_configured_email(client: AsyncClient, db_session: AsyncSession) -> None:
    resp = await client.post("/api/v1/auth/register", json={"password": ADMIN_PASSWORD, "name": "  "})
    assert resp.status_code == 201
    data = resp.json()
    assert data["success"] is True
    assert data["data"]["email"] == ADMIN_EMAIL
    assert data["data"]["name"] == "System Admin"
    assert data["data"]["token"]

    admin = (await db_session.execute(select(Admin))).scalar_one()
    assert admin.password_hash != ADMIN_PASSWORD


@pytest.mark.asyncio
async def test_second_registration_is_forbidden(client: AsyncClient, auth_headers) -> None:
    resp = await client.post("/api/v1/auth/register", json={"password": "AnotherPass1"})
    assert resp.status_code == 403
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "ForbiddenError"


@pytest.mark.asyncio
async def test_login_success_and_failure(client: AsyncClient, auth_headers) -> None:
    resp = await client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL.upper(), "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["token"]
    assert data["lastLogin"] is not None

    resp = await client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": "wrong-password"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid email or password"


@pytest.mark.asyncio
async def test_protected_routes_require_token(client: AsyncClient) -> None:
    resp = await client.get("/api/v1/students")
    assert resp.status_code == 401
    assert resp.json()["success"] is False

    resp = await client.get("/api/v1/auth/profile", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_change_password(client: AsyncClient, auth_headers) -> None:
    resp = await client.put(
        "/api/v1/auth/change-password",
        json={"currentPassword": "nope", "newPassword": "NewPass456"},
        headers=auth_headers,
    )
    assert resp.status_code == 403

    resp = await client.put(
        "/api/v1/auth/change-password",
        json={"currentPassword": ADMIN_PASSWORD, "newPassword": "NewPass456"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["token"]

    resp = await client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": "NewPass456"})
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_update_profile_name(client: AsyncClient, auth_headers) -> None:
    resp = await client.put("/api/v1/auth/update-profile", json={"name": "Bursar"}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["name"] == "Bursar"

    resp = await client.get("/api/v1/auth/profile", headers=auth_headers)
    assert resp.json()["data"]["name"] == "Bursar"


@pytest.mark.asyncio
async def test_password_reset_flow(client: AsyncClient, auth_headers, monkeypatch) -> None:
    sent = {}

    def fake_send_otp(email: str, otp: str) -> None:
        sent["email"] = email
        sent["otp"] = otp

    monkeypatch.setattr(notifier, "send_otp", fake_send_otp)

    resp = await client.post("/api/v1/auth/forgot-password")
    assert resp.status_code == 200
    assert sent["email"] == ADMIN_EMAIL
    assert len(sent["otp"]) == 6

    # Reset is refused until the OTP is verified
    resp = await client.post("/api/v1/auth/reset-password", json={"newPassword": "Changed789"})
    assert resp.status_code == 400

    resp = await client.post("/api/v1/auth/verify-otp", json={"otp": "000000"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid OTP"

    resp = await client.post("/api/v1/auth/verify-otp", json={"otp": sent["otp"]})
    assert resp.status_code == 200

    resp = await client.post("/api/v1/auth/reset-password", json={"newPassword": "Changed789"})
    assert resp.status_code == 200

    resp = await client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": "Changed789"})
    assert resp.status_code == 200

    # The flow is single-use
    resp = await client.post("/api/v1/auth/reset-password", json={"newPassword": "Another000"})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_expired_otp_clears_reset_state(
    client: AsyncClient, db_session: AsyncSession, auth_headers, monkeypatch
) -> None:
    sent = {}
    monkeypatch.setattr(notifier, "send_otp", lambda email, otp: sent.update(otp=otp))

    resp = await client.post("/api/v1/auth/forgot-password")
    assert resp.status_code == 200

    admin = (await db_session.execute(select(Admin))).scalar_one()
    admin.reset_otp_expiry = datetime.utcnow() - timedelta(minutes=1)
    await db_session.commit()

    resp = await client.post("/api/v1/auth/verify-otp", json={"otp": sent["otp"]})
    assert resp.status_code == 400
    assert "expired" in resp.json()["message"]

    await db_session.refresh(admin)
    assert admin.reset_otp is None
    assert admin.reset_otp_expiry is None
    assert admin.otp_verified is False


@pytest.mark.asyncio
async def test_failed_otp_delivery_rolls_back_request(
    client: AsyncClient, db_session: AsyncSession, auth_headers, monkeypatch
) -> None:
    def failing_send(email: str, otp: str) -> None:
        raise ExternalServiceError("Failed to send OTP email. Please try again.")

    monkeypatch.setattr(notifier, "send_otp", failing_send)

    resp = await client.post("/api/v1/auth/forgot-password")
    assert resp.status_code == 502
    assert resp.json()["error"] == "ExternalServiceError"

    admin = (await db_session.execute(select(Admin))).scalar_one()
    await db_session.refresh(admin)
    assert admin.reset_otp is None
    assert admin.otp_verified is False


@pytest.mark.asyncio
async def test_forgot_password_without_email_config(client: AsyncClient, auth_headers) -> None:
    resp = await client.post("/api/v1/auth/forgot-password")
    assert resp.status_code == 502
    assert resp.json()["message"] == "Email configuration not found"
