from fastapi import APIRouter
from rizara.api.v1.endpoints import auth, otp

api_router = APIRouter()

# authentication and account flows
api_router.include_router(
    auth.router, prefix="/auth", tags=["auth"])

# one-time codes
api_router.include_router(
    otp.router, prefix="/otp", tags=["otp"])
