"""Periodic removal of expired OTP records"""
import asyncio
from typing import Callable

from sqlalchemy.orm import Session
from rizara.core.database import SessionLocal
from rizara.services.otp_store import OTPStore
from rizara.utils.logger import otp_logger


def sweep_expired_otps(session_factory: Callable[[], Session] = SessionLocal) -> int:
    """Run one sweep in its own session; safe alongside live requests"""
    db = session_factory()
    try:
        return OTPStore(db).cleanup_expired()
    finally:
        db.close()


async def otp_cleanup_loop(interval_minutes: int,
                           session_factory: Callable[[], Session] = SessionLocal) -> None:
    """Sweep forever until cancelled (started from the app lifespan)"""
    otp_logger.info(f"OTP cleanup scheduled every {interval_minutes} minute(s)")
    while True:
        await asyncio.sleep(interval_minutes * 60)
        deleted = await asyncio.to_thread(sweep_expired_otps, session_factory)
        otp_logger.debug(f"OTP cleanup pass removed {deleted} record(s)")
