import time
from typing import Optional

import redis
from fastapi import BackgroundTasks
from jose import ExpiredSignatureError, JWTError
from sqlalchemy.orm import Session
from rizara.config import settings
from rizara.core.auth import (EMAIL_VERIFICATION_TOKEN_TYPE,
                              create_email_verification_token,
                              create_session_token, decode_token,
                              get_password_hash, verify_password)
from rizara.core.exceptions import (AuthenticationError, AuthorizationError,
                                    BusinessError, ConflictError,
                                    NotFoundError, OTPVerificationError,
                                    RateLimitError, ValidationError)
from rizara.models.user import User
from rizara.schemas.otp import OTPPurpose
from rizara.schemas.user import (AuthResponseData, ChangePasswordRequest,
                                 CompleteRegistrationRequest,
                                 ConfirmEmailChangeRequest, LoginRequest,
                                 RegisterRequest, ResetPasswordRequest,
                                 UserResponse)
from rizara.services.otp_service import (PASSWORD_RESET_SENT_MESSAGE,
                                         OTPService, validate_email_field,
                                         validate_otp_field)
from rizara.services.rate_limiter import RateLimiter
from rizara.services.user_service import UserService
from rizara.services.verification_service import GENERIC_OTP_MESSAGE
from rizara.utils.logger import auth_logger
from rizara.utils.otp_utils import password_strength_error

REVOKED_TOKEN_PREFIX = "revoked_token:"


def validate_password_field(password: Optional[str]) -> str:
    error = password_strength_error(password)
    if error:
        raise ValidationError(error)
    return password


def is_token_revoked(redis_client: redis.Redis, token: str) -> bool:
    try:
        return bool(redis_client.exists(f"{REVOKED_TOKEN_PREFIX}{token}"))
    except redis.RedisError as e:
        auth_logger.error(f"Error checking token revocation: {e}")
        return False


class AuthService:
    """Account flows guarded by one-time codes, plus session handling"""

    def __init__(self, db: Session, rate_limiter: RateLimiter, notifier,
                 otp_service: Optional[OTPService] = None):
        self.db = db
        self.users = UserService(db)
        self.rate_limiter = rate_limiter
        self.notifier = notifier
        self.otp = otp_service or OTPService(db, rate_limiter, notifier)

    @staticmethod
    def _auth_payload(user: User) -> dict:
        return AuthResponseData(
            user=UserResponse.model_validate(user),
            token=create_session_token(user),
        ).model_dump()

    def _get_user(self, user_id: str) -> User:
        user = self.users.get_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def _validate_registration(self, user_data: RegisterRequest) -> str:
        if not user_data.name or not user_data.name.strip():
            raise ValidationError("Name, email, and password are required")
        email = validate_email_field(user_data.email)
        validate_password_field(user_data.password)
        if self.users.exists(email):
            raise ConflictError()
        return email

    # ==================== REGISTRATION ====================

    async def register(self, user_data: RegisterRequest) -> dict:
        """Step 1: validate the account details and email a registration code"""
        email = self._validate_registration(user_data)
        reservation = await self.otp.issue(
            email, OTPPurpose.registration, user_data.name.strip())
        auth_logger.info(f"Registration OTP issued for {email}")
        return {
            "requiresOTP": True,
            "email": email,
            "expiresIn": self.otp.expires_in,
            "attemptsRemaining": reservation.attempts_remaining,
        }

    async def complete_registration(self, user_data: CompleteRegistrationRequest) -> dict:
        """Step 2: verify the code, then create the account"""
        validate_otp_field(user_data.otp)
        email = self._validate_registration(user_data)

        self.otp.engine.require(email, user_data.otp, OTPPurpose.registration.value)

        # the email may have been taken since the check above; insert raises ConflictError
        user = self.users.insert(
            name=user_data.name,
            email=email,
            hashed_password=get_password_hash(user_data.password),
            phone=user_data.phone,
            email_verified=True,
        )
        self.otp.store.delete(email, OTPPurpose.registration.value)
        auth_logger.info(f"New user registered: {user.email}")

        try:
            await self.notifier.send_welcome_email(user.email, user.name)
        except Exception as e:
            auth_logger.warning(f"Welcome email not sent to {user.email}: {e}")

        return self._auth_payload(user)

    # ==================== LOGIN / SESSION ====================

    async def login(self, login_data: LoginRequest, client_ip: str = "unknown") -> dict:
        if not login_data.email or not login_data.password:
            raise ValidationError("Email and password are required")

        limit = self.rate_limiter.check_limit(
            client_ip,
            max_attempts=settings.login_max_attempts,
            window_minutes=settings.login_window_minutes,
            scope="login",
        )
        if not limit.allowed:
            auth_logger.warning(f"Login rate limit exceeded for IP: {client_ip}")
            raise RateLimitError(
                "Too many login attempts. Please try again later.", limit.reset_in or 1)

        user = self.users.find_by_email(login_data.email)
        if not user or not verify_password(login_data.password, str(user.hashed_password)):
            raise AuthenticationError("Invalid email or password", "INVALID_CREDENTIALS")

        if not bool(user.is_active):
            raise AuthorizationError(
                "Account is deactivated. Please contact support.", "ACCOUNT_INACTIVE")

        self.users.touch_last_login(user)
        self.rate_limiter.reset(client_ip, scope="login")
        auth_logger.info(f"User logged in: {user.email}")
        return self._auth_payload(user)

    async def refresh_token(self, user: User) -> str:
        """Issue a new session token from the current user row"""
        return create_session_token(user)

    async def revoke_token(self, token: str, redis_client: redis.Redis) -> None:
        """Logout: block the token until it would have expired anyway"""
        try:
            payload = decode_token(token)
        except JWTError:
            return

        exp = payload.get("exp")
        if not exp:
            return
        ttl = int(exp) - int(time.time())
        if ttl <= 0:
            return
        try:
            redis_client.setex(f"{REVOKED_TOKEN_PREFIX}{token}", ttl, "1")
        except redis.RedisError as e:
            auth_logger.error(f"Error revoking token: {e}")
        auth_logger.info(f"User logged out: {payload.get('email', 'unknown')}")

    # ==================== PASSWORD RESET ====================

    async def forgot_password(self, email: Optional[str],
                              background_tasks: Optional[BackgroundTasks] = None) -> str:
        """Always answers the same way; the code is only sent to existing accounts"""
        email = validate_email_field(email)
        reservation = self.otp.reserve(email)
        if background_tasks is not None:
            background_tasks.add_task(
                self.otp.deliver_password_reset, email, reservation)
        else:
            await self.otp.deliver_password_reset(email, reservation)
        return PASSWORD_RESET_SENT_MESSAGE

    async def reset_password(self, request: ResetPasswordRequest) -> None:
        email = validate_email_field(request.email)
        validate_otp_field(request.otp)
        validate_password_field(request.password)

        self.otp.engine.require(
            email, request.otp, OTPPurpose.password_reset.value, generic=True)

        user = self.users.find_by_email(email, active_only=True)
        if not user:
            raise OTPVerificationError(GENERIC_OTP_MESSAGE)

        self.users.update_password(user, get_password_hash(request.password))
        self.otp.store.delete(email, OTPPurpose.password_reset.value)
        auth_logger.info(f"Password reset successful for: {email}")

    # ==================== PASSWORD CHANGE ====================

    async def request_password_change(self, user_id: str) -> None:
        user = self._get_user(user_id)
        await self.otp.issue(user.email, OTPPurpose.password_change, user.name)
        auth_logger.info(f"Password change OTP issued for user ID: {user_id}")

    async def change_password(self, user_id: str, request: ChangePasswordRequest) -> None:
        """Both the code and the current password must check out before anything changes"""
        validate_otp_field(request.otp)
        if not request.current_password:
            raise ValidationError("Current password and new password are required")
        validate_password_field(request.new_password)

        user = self._get_user(user_id)
        self.otp.engine.require(
            user.email, request.otp, OTPPurpose.password_change.value)

        if not verify_password(request.current_password, str(user.hashed_password)):
            raise AuthenticationError("Current password is incorrect", "INVALID_PASSWORD")

        self.users.update_password(user, get_password_hash(request.new_password))
        self.otp.store.delete(user.email, OTPPurpose.password_change.value)
        auth_logger.info(f"Password changed for user ID: {user_id}")

    # ==================== EMAIL CHANGE ====================

    def _validate_new_email(self, user: User, new_email: Optional[str]) -> str:
        new_email = validate_email_field(new_email)
        if new_email == user.email:
            raise ValidationError("New email must be different from the current email")
        if self.users.exists(new_email):
            raise ConflictError()
        return new_email

    async def request_email_change(self, user_id: str, new_email: Optional[str]) -> None:
        """Send a confirmation code to the address the user wants to move to"""
        user = self._get_user(user_id)
        new_email = self._validate_new_email(user, new_email)
        await self.otp.issue(new_email, OTPPurpose.email_change, user.name)
        auth_logger.info(f"Email change OTP issued for user ID: {user_id}")

    async def change_email(self, user_id: str, request: ConfirmEmailChangeRequest) -> dict:
        validate_otp_field(request.otp)
        user = self._get_user(user_id)
        new_email = self._validate_new_email(user, request.new_email)

        self.otp.engine.require(new_email, request.otp, OTPPurpose.email_change.value)

        user = self.users.update_email(user, new_email)
        self.otp.store.delete(new_email, OTPPurpose.email_change.value)
        auth_logger.info(f"Email changed for user ID: {user_id}")
        return self._auth_payload(user)

    # ==================== EMAIL VERIFICATION (link) ====================

    async def request_email_verification(self, user_id: str) -> Optional[str]:
        """Email a verification link; returns the token only in debug mode"""
        user = self.users.get_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        if bool(user.email_verified):
            raise BusinessError("Email already verified", "EMAIL_ALREADY_VERIFIED")

        token = create_email_verification_token(user)
        await self.notifier.send_verification_link(user.email, user.name, token)

        auth_logger.info(f"Email verification link sent to: {user.email}")
        return token if settings.debug else None

    async def verify_email(self, token: str) -> None:
        try:
            payload = decode_token(token)
        except ExpiredSignatureError:
            raise BusinessError(
                "Verification link expired. Please request a new one.", "TOKEN_EXPIRED")
        except JWTError:
            raise BusinessError("Invalid verification token", "INVALID_TOKEN")

        if payload.get("type") != EMAIL_VERIFICATION_TOKEN_TYPE:
            raise BusinessError("Invalid verification token", "INVALID_TOKEN")

        user = self.users.mark_email_verified(payload.get("id"), payload.get("email", ""))
        auth_logger.info(f"Email verified: {user.email}")
