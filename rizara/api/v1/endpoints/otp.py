from datetime import datetime, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from rizara.api.dependencies import get_otp_service
from rizara.schemas.otp import (OTPSendRequest, OTPSendResponse,
                                OTPVerifyRequest, OTPVerifyResponse)
from rizara.services.otp_service import OTPService

router = APIRouter()


def _send_response(result: dict) -> OTPSendResponse:
    return OTPSendResponse(
        success=True,
        message=result["message"],
        timestamp=datetime.now(timezone.utc),
        attemptsRemaining=result["attempts_remaining"],
        expiresIn=result["expires_in"],
    )


@router.post("/send", response_model=OTPSendResponse, response_model_by_alias=True)
async def send_otp(request: OTPSendRequest, background_tasks: BackgroundTasks,
                   otp_service: OTPService = Depends(get_otp_service)):
    """Send an OTP to an email address"""
    result = await otp_service.send_otp(
        request.email, request.type, request.name, background_tasks=background_tasks)
    return _send_response(result)


@router.post("/verify", response_model=OTPVerifyResponse)
async def verify_otp(request: OTPVerifyRequest,
                     otp_service: OTPService = Depends(get_otp_service)):
    """Verify an OTP"""
    otp_service.verify_otp(request.email, request.otp, request.type)
    return OTPVerifyResponse(
        success=True,
        message="OTP verified successfully",
        timestamp=datetime.now(timezone.utc),
        verified=True,
    )


@router.post("/resend", response_model=OTPSendResponse, response_model_by_alias=True)
async def resend_otp(request: OTPSendRequest, background_tasks: BackgroundTasks,
                     otp_service: OTPService = Depends(get_otp_service)):
    """Replace the current OTP with a new one"""
    result = await otp_service.send_otp(
        request.email, request.type, request.name, resend=True,
        background_tasks=background_tasks)
    return _send_response(result)


@router.get("/check-verified", response_model=OTPVerifyResponse)
async def check_verified(email: str = Query(..., description="Email address"),
                         type: str = Query(..., description="OTP purpose"),
                         otp_service: OTPService = Depends(get_otp_service)):
    """Whether a verified, unexpired OTP exists"""
    verified = otp_service.check_verified(email, type)
    return OTPVerifyResponse(
        success=True,
        message="Verification status retrieved",
        timestamp=datetime.now(timezone.utc),
        verified=verified,
    )
