from typing import Optional

import redis
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError
from sqlalchemy.orm import Session
from rizara.core.auth import decode_token
from rizara.core.database import get_db
from rizara.core.exceptions import AuthenticationError
from rizara.core.redis import get_redis
from rizara.models.user import User
from rizara.services.auth_service import AuthService, is_token_revoked
from rizara.services.email_service import EmailService
from rizara.services.otp_service import OTPService
from rizara.services.rate_limiter import RateLimiter
from rizara.services.user_service import UserService
from rizara.utils.logger import api_logger

security = HTTPBearer(auto_error=False)


def get_notifier() -> EmailService:
    """Email delivery dependency"""
    return EmailService()


def get_rate_limiter(redis_client: redis.Redis = Depends(get_redis)) -> RateLimiter:
    return RateLimiter(redis_client)


def get_otp_service(
    db: Session = Depends(get_db),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    notifier=Depends(get_notifier),
) -> OTPService:
    return OTPService(db, rate_limiter, notifier)


def get_auth_service(
    db: Session = Depends(get_db),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    notifier=Depends(get_notifier),
) -> AuthService:
    return AuthService(db, rate_limiter, notifier)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("No token provided")
    return credentials.credentials


async def get_current_user(
    request: Request,
    token: str = Depends(get_bearer_token),
    db: Session = Depends(get_db),
    redis_client: redis.Redis = Depends(get_redis),
) -> User:
    """Resolve the session token to an active user"""
    try:
        payload = decode_token(token)
    except ExpiredSignatureError:
        raise AuthenticationError("Token expired", "TOKEN_EXPIRED")
    except JWTError:
        raise AuthenticationError("Invalid token", "INVALID_TOKEN")

    user_id = payload.get("sub") or payload.get("id")
    if not user_id or payload.get("type"):
        # typed tokens (email verification links) are not sessions
        raise AuthenticationError("Invalid token payload", "INVALID_TOKEN")

    if is_token_revoked(redis_client, token):
        raise AuthenticationError("Token has been revoked", "TOKEN_REVOKED")

    user = UserService(db).get_by_id(user_id)
    if not user:
        raise AuthenticationError("User not found or inactive", "USER_INACTIVE")

    api_logger.info(f"{user.email} accessed {request.method} {request.url.path}")
    return user
