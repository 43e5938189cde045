from datetime import datetime, timezone
from http import HTTPStatus

import redis
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from rizara.api.dependencies import (get_auth_service, get_bearer_token,
                                     get_current_user)
from rizara.core.redis import get_redis
from rizara.models.user import User
from rizara.schemas.base import ApiResponse
from rizara.schemas.user import (ChangePasswordRequest,
                                 CompleteRegistrationRequest,
                                 ConfirmEmailChangeRequest,
                                 EmailChangeRequest, ForgotPasswordRequest,
                                 LoginRequest, RegisterRequest,
                                 ResetPasswordRequest, UserResponse)
from rizara.services.auth_service import AuthService

router = APIRouter()


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


# ==================== PUBLIC ROUTES ====================

@router.post("/register", response_model=ApiResponse)
async def register(user_data: RegisterRequest,
                   auth_service: AuthService = Depends(get_auth_service)):
    """Registration step 1: email a verification code"""
    result = await auth_service.register(user_data)
    return ApiResponse(
        success=True,
        message="Verification code sent. Please check your email to complete registration.",
        timestamp=datetime.now(timezone.utc),
        data=result
    )


@router.post("/register/complete", response_model=ApiResponse, status_code=HTTPStatus.CREATED)
async def complete_registration(user_data: CompleteRegistrationRequest,
                                auth_service: AuthService = Depends(get_auth_service)):
    """Registration step 2: verify the code and create the account"""
    result = await auth_service.complete_registration(user_data)
    return ApiResponse(
        success=True,
        message="Registration successful",
        timestamp=datetime.now(timezone.utc),
        data=result
    )


@router.post("/login", response_model=ApiResponse)
async def login(login_data: LoginRequest, request: Request,
                auth_service: AuthService = Depends(get_auth_service)):
    """User login"""
    result = await auth_service.login(login_data, client_ip=_client_ip(request))
    return ApiResponse(
        success=True,
        message="Login successful",
        timestamp=datetime.now(timezone.utc),
        data=result
    )


@router.post("/forgot-password", response_model=ApiResponse)
async def forgot_password(request: ForgotPasswordRequest, background_tasks: BackgroundTasks,
                          auth_service: AuthService = Depends(get_auth_service)):
    """Request a password reset code"""
    message = await auth_service.forgot_password(request.email, background_tasks)
    return ApiResponse(
        success=True,
        message=message,
        timestamp=datetime.now(timezone.utc),
    )


@router.post("/reset-password", response_model=ApiResponse)
async def reset_password(request: ResetPasswordRequest,
                         auth_service: AuthService = Depends(get_auth_service)):
    """Reset the password with an emailed code"""
    await auth_service.reset_password(request)
    return ApiResponse(
        success=True,
        message="Password reset successful. You can now login with your new password.",
        timestamp=datetime.now(timezone.utc),
    )


@router.post("/verify-email/request", response_model=ApiResponse)
async def request_email_verification(current_user: User = Depends(get_current_user),
                                     auth_service: AuthService = Depends(get_auth_service)):
    """Email a verification link (legacy link-based path)"""
    token = await auth_service.request_email_verification(str(current_user.id))
    return ApiResponse(
        success=True,
        message="Verification email sent. Please check your inbox.",
        timestamp=datetime.now(timezone.utc),
        data={"token": token} if token else None,
    )


@router.post("/verify-email/{token}", response_model=ApiResponse)
async def verify_email(token: str, auth_service: AuthService = Depends(get_auth_service)):
    """Confirm an email address from a verification link"""
    await auth_service.verify_email(token)
    return ApiResponse(
        success=True,
        message="Email verified successfully",
        timestamp=datetime.now(timezone.utc),
        data={"email_verified": True},
    )


# ==================== PROTECTED ROUTES ====================

@router.get("/me", response_model=ApiResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Current authenticated user"""
    return ApiResponse(
        success=True,
        message="User retrieved successfully",
        timestamp=datetime.now(timezone.utc),
        data={"user": UserResponse.model_validate(current_user).model_dump()},
    )


@router.post("/logout", response_model=ApiResponse)
async def logout(token: str = Depends(get_bearer_token),
                 current_user: User = Depends(get_current_user),
                 redis_client: redis.Redis = Depends(get_redis),
                 auth_service: AuthService = Depends(get_auth_service)):
    """Revoke the current session token"""
    await auth_service.revoke_token(token, redis_client)
    return ApiResponse(
        success=True, message="Logout successful", timestamp=datetime.now(timezone.utc)
    )


@router.post("/refresh", response_model=ApiResponse)
async def refresh_token(current_user: User = Depends(get_current_user),
                        auth_service: AuthService = Depends(get_auth_service)):
    """Issue a fresh session token"""
    new_token = await auth_service.refresh_token(current_user)
    return ApiResponse(
        success=True,
        message="Token refreshed successfully",
        timestamp=datetime.now(timezone.utc),
        data={"token": new_token},
    )


@router.post("/change-password/request", response_model=ApiResponse)
async def request_password_change(current_user: User = Depends(get_current_user),
                                  auth_service: AuthService = Depends(get_auth_service)):
    """Email a code that authorizes a password change"""
    await auth_service.request_password_change(str(current_user.id))
    return ApiResponse(
        success=True,
        message="Verification code sent to your email.",
        timestamp=datetime.now(timezone.utc),
    )


@router.put("/change-password", response_model=ApiResponse)
async def change_password(request: ChangePasswordRequest,
                          current_user: User = Depends(get_current_user),
                          auth_service: AuthService = Depends(get_auth_service)):
    """Change the password with a code and the current password"""
    await auth_service.change_password(str(current_user.id), request)
    return ApiResponse(
        success=True,
        message="Password changed successfully",
        timestamp=datetime.now(timezone.utc),
    )


@router.post("/change-email/request", response_model=ApiResponse)
async def request_email_change(request: EmailChangeRequest,
                               current_user: User = Depends(get_current_user),
                               auth_service: AuthService = Depends(get_auth_service)):
    """Email a confirmation code to the new address"""
    await auth_service.request_email_change(str(current_user.id), request.new_email)
    return ApiResponse(
        success=True,
        message="Verification code sent to your new email.",
        timestamp=datetime.now(timezone.utc),
    )


@router.put("/change-email", response_model=ApiResponse)
async def change_email(request: ConfirmEmailChangeRequest,
                       current_user: User = Depends(get_current_user),
                       auth_service: AuthService = Depends(get_auth_service)):
    """Switch to the new address once its code is confirmed"""
    result = await auth_service.change_email(str(current_user.id), request)
    return ApiResponse(
        success=True,
        message="Email changed successfully",
        timestamp=datetime.now(timezone.utc),
        data=result,
    )
