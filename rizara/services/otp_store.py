"""Persistence of one-time codes in the email_otps table"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from rizara.core.exceptions import DatabaseError
from rizara.models.otp import EmailOTP
from rizara.utils.logger import otp_logger
from rizara.utils.otp_utils import (generate_code, generate_expiry,
                                    is_expired, normalize_email, utc_now)

INVALID_OTP = "INVALID_OTP"
OTP_EXPIRED = "OTP_EXPIRED"


@dataclass
class IssuedOTP:
    id: str
    code: str
    expires_at: datetime


@dataclass
class VerificationResult:
    success: bool
    message: str
    error: Optional[str] = None
    otp_id: Optional[str] = None


class OTPStore:
    """Create, verify and clean up OTP records.

    Each instance works on the session it is given; the clock is injectable
    so expiry can be exercised without waiting.
    """

    create_retries = 3

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock

    def create(self, email: str, purpose: str) -> IssuedOTP:
        """Replace any code for (email, purpose) with a fresh one.

        The delete and insert share one transaction and the unique constraint
        on (email, purpose) rejects a concurrent insert, which is retried.
        """
        email = normalize_email(email)
        last_error: Optional[Exception] = None

        for _ in range(self.create_retries):
            now = self.clock()
            record = EmailOTP(
                id=str(uuid.uuid4()),
                email=email,
                code=generate_code(),
                purpose=purpose,
                verified=False,
                created_at=now,
                expires_at=generate_expiry(now),
            )
            try:
                self.db.query(EmailOTP).filter(
                    EmailOTP.email == email,
                    EmailOTP.purpose == purpose,
                ).delete(synchronize_session=False)
                self.db.add(record)
                issued = IssuedOTP(id=record.id, code=record.code,
                                   expires_at=record.expires_at)
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                last_error = e
                otp_logger.warning(
                    f"Concurrent OTP issue for {email} ({purpose}), retrying")
                continue
            except SQLAlchemyError as e:
                self.db.rollback()
                otp_logger.error(f"Error creating OTP for {email}: {e}")
                raise DatabaseError("Failed to generate OTP") from e

            otp_logger.info(f"OTP created for {email} (type: {purpose})")
            return issued

        otp_logger.error(f"Error creating OTP for {email}: {last_error}")
        raise DatabaseError("Failed to generate OTP")

    def verify(self, email: str, code: str, purpose: str) -> VerificationResult:
        """Match a submitted code and consume it.

        Wrong code, wrong purpose, an already consumed record and a code that
        was never issued all give INVALID_OTP.
        """
        email = normalize_email(email)
        try:
            record = self.db.query(EmailOTP).filter(
                EmailOTP.email == email,
                EmailOTP.code == code,
                EmailOTP.purpose == purpose,
                EmailOTP.verified.is_(False),
            ).order_by(EmailOTP.created_at.desc()).first()

            if record is None:
                return VerificationResult(
                    success=False, error=INVALID_OTP,
                    message="Invalid or expired OTP")

            otp_id = record.id
            if is_expired(record.expires_at, self.clock()):
                self._delete_by_id(otp_id)
                return VerificationResult(
                    success=False, error=OTP_EXPIRED,
                    message="OTP has expired. Please request a new one.")

            # conditional update so two concurrent submissions cannot both win
            result = self.db.execute(
                update(EmailOTP)
                .where(EmailOTP.id == otp_id, EmailOTP.verified.is_(False))
                .values(verified=True)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            otp_logger.error(f"Error verifying OTP for {email}: {e}")
            raise DatabaseError("OTP verification failed") from e

        if result.rowcount != 1:
            return VerificationResult(
                success=False, error=INVALID_OTP,
                message="Invalid or expired OTP")

        otp_logger.info(f"OTP verified for {email} (type: {purpose})")
        return VerificationResult(
            success=True, message="OTP verified successfully",
            otp_id=otp_id)

    def has_valid_verified_otp(self, email: str, purpose: str) -> bool:
        """Whether the latest code for (email, purpose) is verified and still fresh"""
        email = normalize_email(email)
        try:
            record = self.db.query(EmailOTP).filter(
                EmailOTP.email == email,
                EmailOTP.purpose == purpose,
                EmailOTP.verified.is_(True),
            ).order_by(EmailOTP.created_at.desc()).first()
        except SQLAlchemyError as e:
            self.db.rollback()
            otp_logger.error(f"Error checking verified OTP for {email}: {e}")
            raise DatabaseError("Failed to check verification status") from e

        if record is None:
            return False

        if is_expired(record.expires_at, self.clock()):
            self._delete_by_id(record.id)
            return False

        return True

    def delete(self, email: str, purpose: str) -> None:
        """Remove the code for (email, purpose); failures are only logged"""
        email = normalize_email(email)
        try:
            self.db.query(EmailOTP).filter(
                EmailOTP.email == email,
                EmailOTP.purpose == purpose,
            ).delete(synchronize_session=False)
            self.db.commit()
            otp_logger.info(f"OTP deleted for {email} (type: {purpose})")
        except SQLAlchemyError as e:
            self.db.rollback()
            otp_logger.error(f"Error deleting OTP for {email}: {e}")

    def cleanup_expired(self) -> int:
        """Delete every expired record and return how many were removed"""
        try:
            deleted_count = self.db.query(EmailOTP).filter(
                EmailOTP.expires_at < self.clock()
            ).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            otp_logger.error(f"Error cleaning up expired OTPs: {e}")
            return 0

        if deleted_count > 0:
            otp_logger.info(f"Cleaned up {deleted_count} expired OTP(s)")
        return deleted_count

    def get_stats(self, email: str) -> Dict[str, Any]:
        """OTP history summary for one email (monitoring/debugging)"""
        email = normalize_email(email)
        try:
            records = self.db.query(EmailOTP).filter(
                EmailOTP.email == email
            ).order_by(EmailOTP.created_at.desc()).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            otp_logger.error(f"Error getting OTP stats for {email}: {e}")
            return {"total": 0, "verified": 0, "pending": 0, "recent": []}

        return {
            "total": len(records),
            "verified": sum(1 for r in records if r.verified),
            "pending": sum(1 for r in records if not r.verified),
            "recent": [
                {
                    "type": r.purpose,
                    "verified": bool(r.verified),
                    "created_at": r.created_at.isoformat(),
                    "expires_at": r.expires_at.isoformat(),
                }
                for r in records[:5]
            ],
        }

    def _delete_by_id(self, otp_id: str) -> None:
        try:
            self.db.query(EmailOTP).filter(
                EmailOTP.id == otp_id
            ).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            otp_logger.error(f"Error deleting OTP {otp_id}: {e}")
