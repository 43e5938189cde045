import os

# must be set before rizara.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OTP_CLEANUP_ENABLED"] = "false"
os.environ["DEBUG"] = "true"
os.environ["RATE_LIMIT_FAIL_OPEN"] = "true"

import fakeredis
import pytest
from fastapi.testclient import TestClient

import rizara.models  # noqa: F401
from rizara.api.dependencies import get_notifier
from rizara.core.auth import create_session_token, get_password_hash
from rizara.core.database import Base, SessionLocal, engine
from rizara.core.exceptions import NotificationError
from rizara.core.redis import get_redis
from rizara.main import app
from rizara.models.otp import EmailOTP
from rizara.services.user_service import UserService

DEFAULT_PASSWORD = "Secret123"


class RecordingNotifier:
    """Stands in for EmailService and keeps what would have been sent"""

    def __init__(self):
        self.sent = []
        self.welcome = []
        self.links = []
        self.fail = False

    async def send_otp(self, to, code, purpose, name="User"):
        if self.fail:
            raise NotificationError("Email send failed: 502")
        self.sent.append({"to": to, "code": code, "purpose": purpose, "name": name})
        return {"success": True}

    async def send_welcome_email(self, to, name):
        if self.fail:
            raise NotificationError("Email send failed: 502")
        self.welcome.append({"to": to, "name": name})
        return {"success": True}

    async def send_verification_link(self, to, name, token):
        if self.fail:
            raise NotificationError("Email send failed: 502")
        self.links.append({"to": to, "name": name, "token": token})
        return {"success": True}

    def last_code(self, to=None, purpose=None):
        for message in reversed(self.sent):
            if (to is None or message["to"] == to) and (purpose is None or message["purpose"] == purpose):
                return message["code"]
        return None


@pytest.fixture(scope="function")
def db_session():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture(scope="function")
def notifier():
    return RecordingNotifier()


@pytest.fixture(scope="function")
def client(db_session, redis_client, notifier):
    app.dependency_overrides[get_redis] = lambda: redis_client
    app.dependency_overrides[get_notifier] = lambda: notifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def create_user(db_session):
    def _create_user(email="jane@example.com", password=DEFAULT_PASSWORD,
                     name="Jane Doe", is_active=True, email_verified=True):
        user = UserService(db_session).insert(
            name=name,
            email=email,
            hashed_password=get_password_hash(password),
            email_verified=email_verified,
        )
        if not is_active:
            user.is_active = False
            db_session.commit()
        return user
    return _create_user


@pytest.fixture(scope="function")
def auth_headers():
    def _auth_headers(user):
        return {"Authorization": f"Bearer {create_session_token(user)}"}
    return _auth_headers


@pytest.fixture(scope="function")
def otp_rows(db_session):
    """Fresh view of stored OTPs for an email"""
    def _otp_rows(email, purpose=None):
        db_session.expire_all()
        query = db_session.query(EmailOTP).filter(EmailOTP.email == email)
        if purpose is not None:
            query = query.filter(EmailOTP.purpose == purpose)
        return query.all()
    return _otp_rows
