from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth import services
from feeledger.auth.dependencies import get_current_admin
from feeledger.auth.schemas import (
    AdminInfo,
    AuthData,
    ChangePasswordRequest,
    CurrentAdmin,
    LoginRequest,
    MaskedEmail,
    RegisterRequest,
    ResetPasswordRequest,
    SetupStatus,
    TokenData,
    UpdateProfileRequest,
    VerifyOtpRequest,
)
from feeledger.core.schemas import ApiResponse, MessageResponse
from feeledger.db.session import get_db

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.get("/setup-status", response_model=ApiResponse[SetupStatus])
async def setup_status(db: AsyncSession = Depends(get_db)) -> ApiResponse[SetupStatus]:
    return ApiResponse(data=await services.get_setup_status(db))


@router.post(
    "/register",
    response_model=ApiResponse[AuthData],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[AuthData]:
    data = await services.register_admin(db, payload)
    return ApiResponse(message="Admin registered successfully", data=data)


@router.post("/login", response_model=ApiResponse[AuthData])
async def login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[AuthData]:
    data = await services.login_admin(db, payload)
    return ApiResponse(message="Login successful", data=data)


@router.post("/login-oauth")
async def login_oauth(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    payload = LoginRequest(
        email=form_data.username.strip(),
        password=form_data.password,
    )
    result = await services.login_admin(db, payload)
    return {
        "access_token": result.token,
        "token_type": "bearer",
    }


@router.get("/profile", response_model=ApiResponse[AdminInfo])
async def profile(
    db: AsyncSession = Depends(get_db),
    current_admin: CurrentAdmin = Depends(get_current_admin),
) -> ApiResponse[AdminInfo]:
    return ApiResponse(data=await services.get_profile(db, current_admin.id))


@router.put("/change-password", response_model=ApiResponse[TokenData])
async def change_password(
    payload: ChangePasswordRequest,
    db: AsyncSession = Depends(get_db),
    current_admin: CurrentAdmin = Depends(get_current_admin),
) -> ApiResponse[TokenData]:
    data = await services.change_password(db, current_admin.id, payload)
    return ApiResponse(message="Password changed successfully", data=data)


@router.put("/update-profile", response_model=ApiResponse[AdminInfo])
async def update_profile(
    payload: UpdateProfileRequest,
    db: AsyncSession = Depends(get_db),
    current_admin: CurrentAdmin = Depends(get_current_admin),
) -> ApiResponse[AdminInfo]:
    data = await services.update_profile(db, current_admin.id, payload)
    return ApiResponse(message="Profile updated successfully", data=data)


@router.post("/forgot-password", response_model=ApiResponse[MaskedEmail])
async def forgot_password(db: AsyncSession = Depends(get_db)) -> ApiResponse[MaskedEmail]:
    data = await services.request_password_reset(db)
    return ApiResponse(message="OTP sent successfully", data=data)


@router.post("/verify-otp", response_model=MessageResponse)
async def verify_otp(
    payload: VerifyOtpRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await services.verify_reset_otp(db, payload)
    return MessageResponse(message="OTP verified successfully")


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    payload: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await services.reset_password(db, payload)
    return MessageResponse(message="Password reset successfully")
