"""OTP code generation, expiry and input format helpers"""
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from rizara.config import settings

OTP_LENGTH = 6
OTP_MIN = 100000
OTP_MAX = 999999

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
OTP_REGEX = re.compile(r"[0-9]{6}")
PASSWORD_REGEX = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")
MIN_PASSWORD_LENGTH = 8


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, the form stored in the database"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_code() -> str:
    """Random 6-digit code in 100000..999999, so it never needs zero padding"""
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def generate_expiry(now: Optional[datetime] = None) -> datetime:
    """Expiry timestamp for a code issued at `now`"""
    now = now or utc_now()
    return now + timedelta(minutes=settings.otp_expire_minutes)


def is_expired(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    """True once `now` is strictly past `expires_at`"""
    now = now or utc_now()
    if expires_at.tzinfo is not None:
        expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
    return now > expires_at


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_REGEX.match(email.strip()) is not None


def is_valid_otp_format(code: Optional[str]) -> bool:
    return isinstance(code, str) and OTP_REGEX.fullmatch(code) is not None


def password_strength_error(password: Optional[str]) -> Optional[str]:
    """
    Return the reason a password is too weak, or None if it is acceptable.

    Rules: at least 8 characters with one uppercase letter, one lowercase
    letter and one digit.
    """
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    if not PASSWORD_REGEX.match(password):
        return ("Password must contain at least one uppercase letter, "
                "one lowercase letter, and one number")
    return None
