from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class UserBase(BaseModel):
    email: str = Field(..., description="Email address")
    name: str = Field(..., description="Full name")
    phone: Optional[str] = Field(None, description="Phone number")


class RegisterRequest(UserBase):
    password: str = Field(..., description="Password (8+ chars, upper, lower and digit)")


class CompleteRegistrationRequest(RegisterRequest):
    otp: str = Field(..., description="Registration OTP")


class LoginRequest(BaseModel):
    email: str = Field(..., description="Email address")
    password: str = Field(..., description="Password")


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., description="Email address")


class ResetPasswordRequest(BaseModel):
    email: str = Field(..., description="Email address")
    otp: str = Field(..., description="Password reset OTP")
    password: str = Field(..., description="New password")


class ChangePasswordRequest(BaseModel):
    otp: str = Field(..., description="Password change OTP")
    current_password: str = Field(..., alias="currentPassword", description="Current password")
    new_password: str = Field(..., alias="newPassword", description="New password")

    class Config:
        populate_by_name = True


class EmailChangeRequest(BaseModel):
    new_email: str = Field(..., alias="newEmail", description="New email address")

    class Config:
        populate_by_name = True


class ConfirmEmailChangeRequest(EmailChangeRequest):
    otp: str = Field(..., description="Email change OTP sent to the new address")


class UserResponse(UserBase):
    id: str = Field(..., description="User ID")
    email_verified: bool = Field(..., description="Whether the email is confirmed")
    created_at: Optional[datetime] = Field(None, description="Created at")
    last_login: Optional[datetime] = Field(None, description="Last login")

    class Config:
        from_attributes = True


class AuthResponseData(BaseModel):
    user: UserResponse = Field(..., description="User information")
    token: str = Field(..., description="Session token")
