from typing import Any, Callable, Dict, Optional

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from rizara.config import settings
from rizara.core.exceptions import (AppException, ConflictError,
                                    NotificationError, RateLimitError,
                                    ValidationError)
from rizara.schemas.otp import PUBLIC_OTP_PURPOSES, OTPPurpose
from rizara.services.otp_store import IssuedOTP, OTPStore
from rizara.services.rate_limiter import RateLimiter, RateLimitResult
from rizara.services.user_service import UserService
from rizara.services.verification_service import VerificationEngine
from rizara.utils.logger import otp_logger
from rizara.utils.otp_utils import (is_valid_email, is_valid_otp_format,
                                    normalize_email, utc_now)

PASSWORD_RESET_SENT_MESSAGE = "If the email exists, an OTP has been sent."


def validate_email_field(email: Optional[str]) -> str:
    if not email or not email.strip():
        raise ValidationError("Email is required")
    if not is_valid_email(email):
        raise ValidationError("Invalid email format")
    return normalize_email(email)


def validate_otp_field(code: Optional[str]) -> str:
    if not is_valid_otp_format(code):
        raise ValidationError("Invalid OTP format. Must be 6 digits.")
    return code


def parse_purpose(value: Optional[str], allowed=PUBLIC_OTP_PURPOSES) -> OTPPurpose:
    try:
        purpose = OTPPurpose(value)
    except ValueError:
        raise ValidationError("Invalid OTP type")
    if purpose not in allowed:
        raise ValidationError("Invalid OTP type")
    return purpose


class OTPService:
    """Issues and checks one-time codes: rate limit, store, deliver"""

    def __init__(self, db: Session, rate_limiter: RateLimiter, notifier,
                 clock: Callable = utc_now):
        self.db = db
        self.store = OTPStore(db, clock=clock)
        self.engine = VerificationEngine(self.store)
        self.users = UserService(db)
        self.rate_limiter = rate_limiter
        self.notifier = notifier

    @property
    def expires_in(self) -> int:
        return settings.otp_expire_minutes * 60

    def reserve(self, email: str, max_attempts: Optional[int] = None) -> RateLimitResult:
        """Take a slot in the email's issuance window or raise RateLimitError"""
        result = self.rate_limiter.check_limit(
            email,
            max_attempts=max_attempts or settings.otp_send_max_attempts,
            window_minutes=settings.otp_rate_limit_window_minutes,
        )
        if not result.allowed:
            raise RateLimitError(result.message, result.reset_in or 1)
        return result

    async def deliver(self, email: str, purpose: OTPPurpose, name: str,
                      reservation: Optional[RateLimitResult] = None) -> IssuedOTP:
        """Store a new code and email it; roll both back if delivery fails"""
        issued = self.store.create(email, purpose.value)
        try:
            await self.notifier.send_otp(email, issued.code, purpose.value, name or "User")
        except Exception as e:
            otp_logger.error(f"Email send error for {email} (type: {purpose.value}): {e}")
            self.store.delete(email, purpose.value)
            if reservation is not None:
                self.rate_limiter.release(reservation)
            raise NotificationError("Failed to send OTP email. Please try again.") from e

        otp_logger.info(f"OTP sent to {email} (type: {purpose.value})")
        return issued

    async def issue(self, email: str, purpose: OTPPurpose, name: str = "User",
                    max_attempts: Optional[int] = None) -> RateLimitResult:
        """Rate limit, then create and deliver a code"""
        reservation = self.reserve(email, max_attempts)
        await self.deliver(email, purpose, name, reservation)
        return reservation

    async def send_otp(self, email: str, purpose_value: str, name: Optional[str] = None,
                       resend: bool = False,
                       background_tasks: Optional[BackgroundTasks] = None) -> Dict[str, Any]:
        """POST /otp/send and /otp/resend"""
        email = validate_email_field(email)
        purpose = parse_purpose(purpose_value)
        max_attempts = settings.otp_resend_max_attempts if resend else settings.otp_send_max_attempts

        reservation = self.reserve(email, max_attempts)

        if purpose in (OTPPurpose.registration, OTPPurpose.email_change) and self.users.exists(email):
            self.rate_limiter.release(reservation)
            raise ConflictError()

        if purpose == OTPPurpose.password_reset:
            # lookup and delivery happen after the response for both branches,
            # so neither content nor timing reveals whether the account exists
            if background_tasks is not None:
                background_tasks.add_task(
                    self.deliver_password_reset, email, reservation, resend)
            else:
                await self.deliver_password_reset(email, reservation, resend)
            return {
                "message": PASSWORD_RESET_SENT_MESSAGE,
                "attempts_remaining": reservation.attempts_remaining,
                "expires_in": self.expires_in,
            }

        if resend:
            self.store.delete(email, purpose.value)

        await self.deliver(email, purpose, name or "User", reservation)

        if resend:
            message = "OTP resent successfully. Please check your email."
        else:
            message = "OTP sent successfully. Please check your email."

        return {
            "message": message,
            "attempts_remaining": reservation.attempts_remaining,
            "expires_in": self.expires_in,
        }

    def verify_otp(self, email: str, code: str, purpose_value: str) -> str:
        """POST /otp/verify; returns the consumed record id"""
        email = validate_email_field(email)
        purpose = parse_purpose(purpose_value)
        validate_otp_field(code)
        return self.engine.require(email, code, purpose.value)

    def check_verified(self, email: str, purpose_value: str) -> bool:
        email = validate_email_field(email)
        purpose = parse_purpose(purpose_value)
        return self.store.has_valid_verified_otp(email, purpose.value)

    async def deliver_password_reset(self, email: str, reservation: Optional[RateLimitResult] = None,
                                     resend: bool = False) -> None:
        """Issue a password reset code if the account exists.

        Runs as a background task, so failures are logged rather than raised.
        """
        try:
            user = self.users.find_by_email(email, active_only=True)
        except SQLAlchemyError as e:
            self.db.rollback()
            otp_logger.error(f"Password reset lookup failed for {email}: {e}")
            if reservation is not None:
                self.rate_limiter.release(reservation)
            return

        if not user:
            otp_logger.info(f"Password reset requested for unknown email {email}")
            return

        if resend:
            self.store.delete(email, OTPPurpose.password_reset.value)

        try:
            await self.deliver(email, OTPPurpose.password_reset, user.name, reservation)
        except AppException as e:
            otp_logger.error(f"Password reset OTP not delivered to {email}: {e.message}")
