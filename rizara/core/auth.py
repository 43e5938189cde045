from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt
from passlib.context import CryptContext
from rizara.config import settings

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

EMAIL_VERIFICATION_TOKEN_TYPE = "email_verification"


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a session token"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + \
            timedelta(days=settings.access_token_expire_days)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(
        to_encode, settings.secret_key, algorithm=settings.algorithm)
    return encoded_jwt


def create_session_token(user) -> str:
    """Sign the login session claims for a user row"""
    return create_access_token(data={
        "sub": str(user.id),
        "id": str(user.id),
        "email": user.email,
        "name": user.name,
        "email_verified": bool(user.email_verified),
    })


def create_email_verification_token(user) -> str:
    """Short-lived token for the link-based email verification path"""
    return create_access_token(
        data={"id": str(user.id), "email": user.email,
              "type": EMAIL_VERIFICATION_TOKEN_TYPE},
        expires_delta=timedelta(
            hours=settings.email_verification_token_expire_hours),
    )


def decode_token(token: str) -> dict:
    """Decode a token, raising jose errors (ExpiredSignatureError, JWTError)"""
    return jwt.decode(token, settings.secret_key,
                      algorithms=[settings.algorithm])


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a password against its hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password"""
    return pwd_context.hash(password)
