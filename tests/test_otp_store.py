from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from rizara.core.exceptions import DatabaseError, OTPVerificationError
from rizara.models.otp import EmailOTP
from rizara.services.otp_store import INVALID_OTP, OTP_EXPIRED, OTPStore
from rizara.services.verification_service import (GENERIC_OTP_MESSAGE,
                                                  VerificationEngine,
                                                  VerificationOutcome,
                                                  outcome_of)

EMAIL = "jane@example.com"
T0 = datetime(2026, 3, 1, 9, 0, 0)


class Clock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store(db_session, clock):
    return OTPStore(db_session, clock=clock)


@pytest.fixture
def fixed_codes(monkeypatch):
    codes = iter(["111111", "222222", "333333", "444444"])
    monkeypatch.setattr("rizara.services.otp_store.generate_code", lambda: next(codes))


def test_create_returns_code_and_expiry(store, otp_rows):
    issued = store.create(EMAIL, "registration")

    assert len(issued.code) == 6 and issued.code.isdigit()
    assert issued.expires_at == T0 + timedelta(minutes=10)

    rows = otp_rows(EMAIL)
    assert len(rows) == 1
    assert rows[0].id == issued.id
    assert rows[0].verified is False


def test_create_normalizes_email(store, otp_rows):
    store.create("  Jane@Example.com ", "registration")
    assert len(otp_rows(EMAIL)) == 1


def test_create_replaces_previous_code(store, otp_rows, fixed_codes):
    first = store.create(EMAIL, "registration")
    second = store.create(EMAIL, "registration")

    rows = otp_rows(EMAIL, "registration")
    assert len(rows) == 1
    assert rows[0].code == second.code

    assert store.verify(EMAIL, first.code, "registration").error == INVALID_OTP
    assert store.verify(EMAIL, second.code, "registration").success


def test_purposes_are_independent(store, otp_rows):
    store.create(EMAIL, "registration")
    store.create(EMAIL, "password_reset")
    assert len(otp_rows(EMAIL)) == 2


def test_verify_consumes_code_once(store, otp_rows):
    issued = store.create(EMAIL, "registration")

    first = store.verify(EMAIL, issued.code, "registration")
    assert first.success
    assert first.otp_id == issued.id

    second = store.verify(EMAIL, issued.code, "registration")
    assert not second.success
    assert second.error == INVALID_OTP
    assert otp_rows(EMAIL)[0].verified is True


def test_verify_rejects_wrong_code_and_purpose(store, fixed_codes):
    store.create(EMAIL, "registration")

    assert store.verify(EMAIL, "999999", "registration").error == INVALID_OTP
    assert store.verify(EMAIL, "111111", "password_reset").error == INVALID_OTP
    assert store.verify("other@example.com", "111111", "registration").error == INVALID_OTP
    # the failed attempts do not burn the real code
    assert store.verify(EMAIL, "111111", "registration").success


def test_verify_at_expiry_boundary(store, clock):
    issued = store.create(EMAIL, "registration")

    clock.advance(minutes=10)
    assert store.verify(EMAIL, issued.code, "registration").success


def test_verify_expired_code_is_deleted(store, clock, otp_rows):
    issued = store.create(EMAIL, "registration")

    clock.advance(minutes=10, seconds=1)
    result = store.verify(EMAIL, issued.code, "registration")

    assert not result.success
    assert result.error == OTP_EXPIRED
    assert otp_rows(EMAIL) == []


def test_verify_then_new_code_starts_fresh(store, fixed_codes, otp_rows):
    store.create(EMAIL, "registration")
    assert store.verify(EMAIL, "111111", "registration").success

    store.create(EMAIL, "registration")
    rows = otp_rows(EMAIL)
    assert len(rows) == 1
    assert rows[0].verified is False
    assert store.verify(EMAIL, "222222", "registration").success


def test_delete_removes_code(store, otp_rows):
    issued = store.create(EMAIL, "registration")
    store.delete(EMAIL, "registration")

    assert otp_rows(EMAIL) == []
    assert store.verify(EMAIL, issued.code, "registration").error == INVALID_OTP


def test_delete_missing_code_is_noop(store):
    store.delete(EMAIL, "registration")


def test_has_valid_verified_otp(store, clock, otp_rows):
    issued = store.create(EMAIL, "registration")
    assert store.has_valid_verified_otp(EMAIL, "registration") is False

    store.verify(EMAIL, issued.code, "registration")
    assert store.has_valid_verified_otp(EMAIL, "registration") is True
    assert store.has_valid_verified_otp(EMAIL, "password_reset") is False

    clock.advance(minutes=11)
    assert store.has_valid_verified_otp(EMAIL, "registration") is False
    assert otp_rows(EMAIL) == []


def test_cleanup_expired_removes_only_expired(store, clock, db_session, otp_rows):
    store.create(EMAIL, "registration")
    store.create("old@example.com", "password_reset")
    db_session.query(EmailOTP).filter(EmailOTP.email == "old@example.com").update(
        {"expires_at": T0 - timedelta(minutes=1)})
    db_session.commit()

    assert store.cleanup_expired() == 1
    assert len(otp_rows(EMAIL)) == 1
    assert otp_rows("old@example.com") == []

    clock.advance(minutes=30)
    assert store.cleanup_expired() == 1
    assert store.cleanup_expired() == 0


def test_get_stats(store, fixed_codes):
    store.create(EMAIL, "registration")
    store.create(EMAIL, "password_reset")
    store.verify(EMAIL, "111111", "registration")

    stats = store.get_stats(EMAIL)
    assert stats["total"] == 2
    assert stats["verified"] == 1
    assert stats["pending"] == 1
    assert {r["type"] for r in stats["recent"]} == {"registration", "password_reset"}


def test_create_raises_database_error_on_storage_failure():
    db = MagicMock()
    db.commit.side_effect = OperationalError("INSERT", {}, Exception("connection lost"))

    with pytest.raises(DatabaseError):
        OTPStore(db).create(EMAIL, "registration")
    db.rollback.assert_called_once()


def test_create_retries_on_unique_conflict():
    db = MagicMock()
    db.commit.side_effect = IntegrityError("INSERT", {}, Exception("duplicate"))

    with pytest.raises(DatabaseError):
        OTPStore(db).create(EMAIL, "registration")
    assert db.commit.call_count == OTPStore.create_retries
    assert db.rollback.call_count == OTPStore.create_retries


def test_verify_raises_database_error_on_storage_failure():
    db = MagicMock()
    db.query.side_effect = OperationalError("SELECT", {}, Exception("connection lost"))

    with pytest.raises(DatabaseError):
        OTPStore(db).verify(EMAIL, "123456", "registration")


def test_engine_outcomes(store, clock, fixed_codes):
    engine = VerificationEngine(store)
    store.create(EMAIL, "registration")
    store.create(EMAIL, "password_reset")

    assert outcome_of(engine.verify(EMAIL, "000000", "registration")) == VerificationOutcome.INVALID
    assert outcome_of(engine.verify(EMAIL, "111111", "registration")) == VerificationOutcome.VERIFIED

    clock.advance(minutes=15)
    assert outcome_of(engine.verify(EMAIL, "222222", "password_reset")) == VerificationOutcome.EXPIRED


def test_engine_require_reports_expiry(store, clock):
    issued = store.create(EMAIL, "registration")
    clock.advance(minutes=11)

    with pytest.raises(OTPVerificationError) as exc_info:
        VerificationEngine(store).require(EMAIL, issued.code, "registration")
    assert exc_info.value.code == OTP_EXPIRED


def test_engine_require_generic_hides_expiry(store, clock):
    issued = store.create(EMAIL, "password_reset")
    clock.advance(minutes=11)

    with pytest.raises(OTPVerificationError) as exc_info:
        VerificationEngine(store).require(EMAIL, issued.code, "password_reset", generic=True)
    assert exc_info.value.code == INVALID_OTP
    assert exc_info.value.message == GENERIC_OTP_MESSAGE
