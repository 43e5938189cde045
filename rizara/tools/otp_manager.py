"""OTP maintenance tool"""
import json
import sys
from typing import Any, Dict

from rizara.core.database import SessionLocal
from rizara.services.cleanup_service import sweep_expired_otps
from rizara.services.otp_store import OTPStore


class OTPManager:
    """Inspect and clean up stored OTPs outside the request cycle"""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def get_stats(self, email: str) -> Dict[str, Any]:
        db = self.session_factory()
        try:
            return OTPStore(db).get_stats(email)
        finally:
            db.close()

    def cleanup(self) -> Dict[str, int]:
        return {"deleted_count": sweep_expired_otps(self.session_factory)}


USAGE = """Usage:
  python -m rizara.tools.otp_manager stats <email> - show OTP history for an email
  python -m rizara.tools.otp_manager cleanup       - delete expired OTPs"""


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print(USAGE)
        return 1

    manager = OTPManager()
    command = argv[0]

    if command == "stats":
        if len(argv) < 2:
            print(USAGE)
            return 1
        stats = manager.get_stats(argv[1])
        print(json.dumps(stats, indent=2))
    elif command == "cleanup":
        result = manager.cleanup()
        print(f"Cleanup done, removed {result['deleted_count']} expired OTP(s)")
    else:
        print(f"Unknown command: {command}")
        print(USAGE)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
