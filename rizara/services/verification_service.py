from enum import Enum

from rizara.core.exceptions import OTPVerificationError
from rizara.services.otp_store import (OTP_EXPIRED, OTPStore,
                                       VerificationResult)
from rizara.utils.logger import otp_logger

GENERIC_OTP_MESSAGE = "Invalid or expired OTP"


class VerificationOutcome(str, Enum):
    VERIFIED = "VERIFIED"
    EXPIRED = "EXPIRED"
    INVALID = "INVALID"


def outcome_of(result: VerificationResult) -> VerificationOutcome:
    if result.success:
        return VerificationOutcome.VERIFIED
    if result.error == OTP_EXPIRED:
        return VerificationOutcome.EXPIRED
    return VerificationOutcome.INVALID


class VerificationEngine:
    """Runs one verification attempt against the OTP store.

    Callers check the 6-digit format first; the engine only decides between
    VERIFIED, EXPIRED and INVALID.
    """

    def __init__(self, store: OTPStore):
        self.store = store

    def verify(self, email: str, code: str, purpose: str) -> VerificationResult:
        result = self.store.verify(email, code, purpose)
        if not result.success:
            otp_logger.info(
                f"OTP rejected for {email} (type: {purpose}): {result.error}")
        return result

    def require(self, email: str, code: str, purpose: str, generic: bool = False) -> str:
        """Verify or raise OTPVerificationError; returns the consumed record id.

        With `generic` the response does not say whether the code was wrong or
        expired; the distinction is only logged.
        """
        result = self.verify(email, code, purpose)
        if not result.success:
            if generic:
                raise OTPVerificationError(GENERIC_OTP_MESSAGE, "INVALID_OTP")
            raise OTPVerificationError(result.message, result.error or "INVALID_OTP")
        return result.otp_id
