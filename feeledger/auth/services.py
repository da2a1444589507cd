import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from feeledger.auth.models import Admin
from feeledger.auth.schemas import (
    AdminInfo,
    AuthData,
    ChangePasswordRequest,
    LoginRequest,
    MaskedEmail,
    RegisterRequest,
    ResetPasswordRequest,
    SetupStatus,
    TokenData,
    UpdateProfileRequest,
    VerifyOtpRequest,
)
from feeledger.auth.security import create_access_token, generate_otp, hash_password, verify_password
from feeledger.core import notifier
from feeledger.core.config import settings
from feeledger.core.exceptions import (
    AuthenticationError,
    ExternalServiceError,
    ForbiddenError,
    NotFoundError,
    ServiceError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def mask_email(email: Optional[str]) -> str:
    if not email or "@" not in email:
        return "***@***.***"
    user, domain = email.split("@", 1)
    return f"{user[:2]}***{user[-1:]}@{domain}"


def _issue_token(admin: Admin) -> str:
    return create_access_token(admin.id, admin.email)


def _to_info(admin: Admin) -> AdminInfo:
    return AdminInfo(
        id=admin.id,
        email=admin.email,
        name=admin.name,
        created_at=admin.created_at,
        last_login=admin.last_login,
    )


async def _get_admin(db: AsyncSession, admin_id: UUID) -> Admin:
    admin = await db.get(Admin, admin_id)
    if not admin:
        raise NotFoundError("Admin not found")
    return admin


async def _get_single_admin(db: AsyncSession) -> Admin:
    admin = (await db.execute(select(Admin).order_by(Admin.created_at).limit(1))).scalar_one_or_none()
    if not admin:
        raise NotFoundError("No admin account exists")
    return admin


async def get_setup_status(db: AsyncSession) -> SetupStatus:
    count = (await db.execute(select(func.count(Admin.id)))).scalar() or 0
    return SetupStatus(setup_required=count == 0, admin_email=mask_email(settings.admin_email))


async def register_admin(db: AsyncSession, payload: RegisterRequest) -> AuthData:
    """Bootstrap the one admin account. Closed for good once any admin exists."""
    count = (await db.execute(select(func.count(Admin.id)))).scalar() or 0
    if count > 0:
        raise ForbiddenError("System is already configured. Registration is disabled.")

    if not settings.admin_email:
        raise ServiceError("ADMIN_EMAIL not configured in environment", status.HTTP_500_INTERNAL_SERVER_ERROR)

    admin = Admin(
        email=settings.admin_email.strip().lower(),
        password_hash=hash_password(payload.password),
        name=(payload.name or "").strip() or "System Admin",
    )
    db.add(admin)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ForbiddenError("System is already configured. Registration is disabled.") from e
    await db.refresh(admin)
    logger.info("Admin account %s registered", admin.email)
    return AuthData(**_to_info(admin).model_dump(), token=_issue_token(admin))


async def login_admin(db: AsyncSession, payload: LoginRequest) -> AuthData:
    stmt = select(Admin).where(func.lower(Admin.email) == payload.email.lower())
    admin: Optional[Admin] = (await db.execute(stmt)).scalar_one_or_none()
    if not admin or not verify_password(payload.password, admin.password_hash):
        raise AuthenticationError("Invalid email or password")

    admin.last_login = datetime.utcnow()
    await db.commit()
    return AuthData(**_to_info(admin).model_dump(), token=_issue_token(admin))


async def get_profile(db: AsyncSession, admin_id: UUID) -> AdminInfo:
    return _to_info(await _get_admin(db, admin_id))


async def change_password(db: AsyncSession, admin_id: UUID, payload: ChangePasswordRequest) -> TokenData:
    admin = await _get_admin(db, admin_id)
    if not verify_password(payload.current_password, admin.password_hash):
        raise ForbiddenError("Current password is incorrect")
    admin.password_hash = hash_password(payload.new_password)
    await db.commit()
    return TokenData(token=_issue_token(admin))


async def update_profile(db: AsyncSession, admin_id: UUID, payload: UpdateProfileRequest) -> AdminInfo:
    admin = await _get_admin(db, admin_id)
    name = (payload.name or "").strip()
    if name:
        admin.name = name
    await db.commit()
    return _to_info(admin)


# --- Password reset: requested -> otp verified -> completed ---
def _clear_reset_state(admin: Admin) -> None:
    admin.reset_otp = None
    admin.reset_otp_expiry = None
    admin.otp_verified = False


async def request_password_reset(db: AsyncSession) -> MaskedEmail:
    admin = await _get_single_admin(db)

    otp = generate_otp()
    admin.reset_otp = otp
    admin.reset_otp_expiry = datetime.utcnow() + timedelta(minutes=settings.otp_expire_minutes)
    admin.otp_verified = False
    await db.commit()

    try:
        await run_in_threadpool(notifier.send_otp, admin.email, otp)
    except ExternalServiceError:
        # Un-request: an OTP nobody received must not stay valid.
        _clear_reset_state(admin)
        await db.commit()
        raise

    logger.info("Password reset requested for %s", admin.email)
    return MaskedEmail(email=mask_email(admin.email))


async def verify_reset_otp(db: AsyncSession, payload: VerifyOtpRequest) -> None:
    admin = await _get_single_admin(db)

    if not admin.reset_otp or not admin.reset_otp_expiry:
        raise ValidationError("No OTP request found. Please request a new OTP.")

    if datetime.utcnow() > admin.reset_otp_expiry:
        _clear_reset_state(admin)
        await db.commit()
        raise ValidationError("OTP has expired. Please request a new one.")

    if not secrets.compare_digest(admin.reset_otp, payload.otp.strip()):
        raise ValidationError("Invalid OTP")

    admin.otp_verified = True
    await db.commit()


async def reset_password(db: AsyncSession, payload: ResetPasswordRequest) -> None:
    admin = await _get_single_admin(db)
    if not admin.otp_verified:
        raise ValidationError("Please verify OTP first")

    admin.password_hash = hash_password(payload.new_password)
    _clear_reset_state(admin)
    await db.commit()
    logger.info("Password reset completed for %s", admin.email)
