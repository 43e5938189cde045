# import every model so it is registered with SQLAlchemy
from rizara.models.otp import EmailOTP
from rizara.models.user import User

__all__ = [
    "User",
    "EmailOTP",
]
