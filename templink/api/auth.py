from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User
from ..schemas import (
    AuthResponse,
    ChangePasswordRequest,
    DeleteAccountRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    ProfileResponse,
    ProfileUpdate,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
    UserStatsResponse,
)
from ..services.accounts import AccountService, AuthResult
from ..services.rate_limiter import api_rate_limit
from .deps import get_account_service, get_current_user

router = APIRouter(prefix="/auth", tags=["auth"], dependencies=[Depends(api_rate_limit)])

RESET_REQUESTED = "If that email exists, a reset link has been sent"


def _auth_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(user=UserResponse.model_validate(result.user), token=result.token)


@router.post("/register", response_model=AuthResponse)
async def register(
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
):
    return _auth_response(await accounts.register(db, data.email, data.password, data.name))


@router.post("/login", response_model=AuthResponse)
async def login(
    data: LoginRequest,
    db: AsyncSession = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
):
    return _auth_response(await accounts.login(db, data.email, data.password))


@router.get("/me", response_model=ProfileResponse)
async def me(
    db: AsyncSession = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
    current_user: User = Depends(get_current_user),
):
    stats = await accounts.user_stats(db, current_user.id)
    return ProfileResponse(
        **UserResponse.model_validate(current_user).model_dump(),
        stats=UserStatsResponse(total_links=stats.total_links, total_views=stats.total_views),
    )


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    data: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
):
    await accounts.request_password_reset(db, data.email)
    return MessageResponse(message=RESET_REQUESTED)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    data: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
):
    await accounts.reset_password(db, data.token, data.password)
    return MessageResponse(message="Password reset successfully")


@router.get("/verify-email", response_model=MessageResponse)
async def verify_email(
    token: str,
    db: AsyncSession = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
):
    await accounts.verify_email(db, token)
    return MessageResponse(message="Email verified successfully")


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    db: AsyncSession = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
    current_user: User = Depends(get_current_user),
):
    await accounts.request_email_verification(db, current_user.id)
    return MessageResponse(message="Verification email sent")


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    data: ChangePasswordRequest,
    db: AsyncSession = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
    current_user: User = Depends(get_current_user),
):
    await accounts.change_password(db, current_user.id, data.current_password, data.new_password)
    return MessageResponse(message="Password changed successfully")


@router.put("/profile", response_model=UserResponse)
async def update_profile(
    data: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
    current_user: User = Depends(get_current_user),
):
    user = await accounts.update_profile(db, current_user.id, name=data.name, email=data.email)
    return UserResponse.model_validate(user)


@router.delete("/account", response_model=MessageResponse)
async def delete_account(
    data: DeleteAccountRequest,
    db: AsyncSession = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
    current_user: User = Depends(get_current_user),
):
    await accounts.deactivate_account(db, current_user.id, data.password)
    return MessageResponse(message="Account deleted successfully")
