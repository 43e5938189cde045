from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class OTPPurpose(str, Enum):
    registration = "registration"
    password_reset = "password_reset"
    email_change = "email_change"
    password_change = "password_change"


# purposes a client may request through the public /otp endpoints;
# password_change is only issued to an authenticated session
PUBLIC_OTP_PURPOSES = (
    OTPPurpose.registration,
    OTPPurpose.password_reset,
    OTPPurpose.email_change,
)


class OTPSendRequest(BaseModel):
    email: str = Field(..., description="Email address")
    type: str = Field(..., description="OTP purpose")
    name: Optional[str] = Field(None, description="Recipient name for the email greeting")


class OTPVerifyRequest(BaseModel):
    email: str = Field(..., description="Email address")
    otp: str = Field(..., description="6-digit code")
    type: str = Field(..., description="OTP purpose")


class OTPSendResponse(BaseModel):
    success: bool = Field(True, description="Whether the request succeeded")
    message: str = Field(..., description="Response message")
    timestamp: datetime = Field(..., description="Response timestamp")
    attempts_remaining: Optional[int] = Field(
        None, alias="attemptsRemaining", description="Sends left in the current window")
    expires_in: Optional[int] = Field(
        None, alias="expiresIn", description="Code lifetime in seconds")

    class Config:
        populate_by_name = True


class OTPVerifyResponse(BaseModel):
    success: bool = Field(True, description="Whether the request succeeded")
    message: str = Field(..., description="Response message")
    timestamp: datetime = Field(..., description="Response timestamp")
    verified: bool = Field(..., description="Verification state")
