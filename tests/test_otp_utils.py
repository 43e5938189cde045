from datetime import datetime, timedelta, timezone

import pytest

from rizara.utils.otp_utils import (OTP_MAX, OTP_MIN, generate_code,
                                    generate_expiry, is_expired,
                                    is_valid_email, is_valid_otp_format,
                                    normalize_email, password_strength_error)


def test_generate_code_is_six_digits_in_range():
    for _ in range(500):
        code = generate_code()
        assert len(code) == 6
        assert code.isdigit()
        assert OTP_MIN <= int(code) <= OTP_MAX


def test_generate_expiry_is_ten_minutes_out():
    now = datetime(2026, 1, 1, 12, 0, 0)
    assert generate_expiry(now) == now + timedelta(minutes=10)


def test_is_expired_only_strictly_after_expiry():
    expires_at = datetime(2026, 1, 1, 12, 10, 0)
    assert not is_expired(expires_at, datetime(2026, 1, 1, 12, 9, 59))
    assert not is_expired(expires_at, expires_at)
    assert is_expired(expires_at, expires_at + timedelta(seconds=1))


def test_is_expired_accepts_aware_timestamps():
    expires_at = datetime(2026, 1, 1, 12, 10, 0, tzinfo=timezone.utc)
    assert is_expired(expires_at, datetime(2026, 1, 1, 12, 11, 0))
    assert not is_expired(expires_at, datetime(2026, 1, 1, 12, 5, 0))


@pytest.mark.parametrize("code,valid", [
    ("123456", True),
    ("000000", True),
    ("12345", False),
    ("1234567", False),
    ("12a456", False),
    ("123456\n", False),
    ("١٢٣٤٥٦", False),
    (None, False),
])
def test_otp_format(code, valid):
    assert is_valid_otp_format(code) is valid


@pytest.mark.parametrize("email,valid", [
    ("jane@example.com", True),
    ("  jane@example.com ", True),
    ("jane@example", False),
    ("jane example@x.com", False),
    ("", False),
    (None, False),
])
def test_email_format(email, valid):
    assert is_valid_email(email) is valid


def test_normalize_email():
    assert normalize_email("  Jane.Doe@Example.COM ") == "jane.doe@example.com"


def test_password_strength():
    assert password_strength_error("Secret123") is None
    assert "8 characters" in password_strength_error("Ab1")
    assert "uppercase" in password_strength_error("secret123")
    assert "uppercase" in password_strength_error("SecretPassword")
    assert password_strength_error(None) is not None
