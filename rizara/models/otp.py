import uuid

from sqlalchemy import (Boolean, Column, DateTime, Index, String,
                        UniqueConstraint)
from rizara.core.database import Base
from rizara.utils.otp_utils import utc_now


class EmailOTP(Base):
    """One-time codes, at most one row per (email, purpose)"""
    __tablename__ = "email_otps"
    __table_args__ = (
        UniqueConstraint("email", "purpose", name="uq_email_otps_email_purpose"),
        Index("ix_email_otps_expires_at", "expires_at"),
    )

    id = Column(String(36), primary_key=True,
                default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=False, index=True)
    code = Column(String(6), nullable=False)
    # registration, password_reset, email_change, password_change
    purpose = Column(String(32), nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    # naive UTC, see utils.otp_utils.utc_now
    created_at = Column(DateTime, default=utc_now, nullable=False)
    expires_at = Column(DateTime, nullable=False)
