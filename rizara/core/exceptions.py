from typing import Any, Dict, Optional


class AppException(Exception):
    """Base class for application errors"""

    def __init__(self, message: str, code: str = "APP_ERROR", status_code: int = 400,
                 extra: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.extra = extra or {}
        super().__init__(self.message)


class AuthenticationError(AppException):
    """Authentication failed"""

    def __init__(self, message: str = "Authentication failed", code: str = "AUTH_ERROR"):
        super().__init__(message, code, 401)


class AuthorizationError(AppException):
    """Permission denied"""

    def __init__(self, message: str = "Permission denied", code: str = "PERMISSION_DENIED"):
        super().__init__(message, code, 403)


class NotFoundError(AppException):
    """Resource not found"""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, "NOT_FOUND", 404)


class ValidationError(AppException):
    """Request validation failed"""

    def __init__(self, message: str = "Validation failed"):
        super().__init__(message, "VALIDATION_ERROR", 400)


class ConflictError(AppException):
    """Resource already exists"""

    def __init__(self, message: str = "Email already registered", code: str = "EMAIL_EXISTS"):
        super().__init__(message, code, 409)


class RateLimitError(AppException):
    """Too many requests; carries the retry hint in minutes"""

    def __init__(self, message: str, reset_in: int):
        super().__init__(message, "RATE_LIMITED", 429, extra={"resetIn": reset_in})
        self.reset_in = reset_in


class OTPVerificationError(AppException):
    """OTP did not verify (INVALID_OTP / OTP_EXPIRED)"""

    def __init__(self, message: str, code: str = "INVALID_OTP"):
        super().__init__(message, code, 400)


class BusinessError(AppException):
    """Business rule violation"""

    def __init__(self, message: str, code: str = "BUSINESS_ERROR"):
        super().__init__(message, code, 400)


class NotificationError(AppException):
    """Email delivery failed"""

    def __init__(self, message: str = "Failed to send email"):
        super().__init__(message, "DELIVERY_ERROR", 500)


class DatabaseError(AppException):
    """Storage failure"""

    def __init__(self, message: str = "Database error"):
        super().__init__(message, "DATABASE_ERROR", 500)
