from datetime import timedelta
from unittest.mock import MagicMock

import redis

from rizara.core.redis import get_redis
from rizara.main import app
from rizara.utils.otp_utils import utc_now

EMAIL = "jane@example.com"


def send(client, email=EMAIL, type="registration", **extra):
    return client.post("/api/otp/send", json={"email": email, "type": type, **extra})


def test_send_otp(client, notifier, otp_rows):
    response = send(client, name="Jane")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["attemptsRemaining"] == 2
    assert body["expiresIn"] == 600
    assert "timestamp" in body

    assert len(notifier.sent) == 1
    assert notifier.sent[0]["to"] == EMAIL
    assert notifier.sent[0]["purpose"] == "registration"
    assert notifier.sent[0]["name"] == "Jane"
    assert otp_rows(EMAIL)[0].code == notifier.sent[0]["code"]


def test_send_otp_normalizes_email(client, notifier, otp_rows):
    send(client, email="  Jane@Example.COM ")
    assert notifier.sent[0]["to"] == EMAIL
    assert len(otp_rows(EMAIL)) == 1


def test_send_otp_validation(client, notifier):
    assert send(client, email="not-an-email").status_code == 400
    assert send(client, type="login").json()["message"] == "Invalid OTP type"
    # password_change codes are only issued to a signed-in user
    assert send(client, type="password_change").status_code == 400

    missing = client.post("/api/otp/send", json={"email": EMAIL})
    assert missing.status_code == 400
    assert missing.json()["code"] == "VALIDATION_ERROR"
    assert notifier.sent == []


def test_send_registration_otp_for_existing_account(client, create_user, notifier, otp_rows):
    create_user(email=EMAIL)

    response = send(client)
    assert response.status_code == 409
    assert response.json()["code"] == "EMAIL_EXISTS"
    assert notifier.sent == []
    assert otp_rows(EMAIL) == []


def test_send_email_change_otp_for_taken_address(client, create_user):
    create_user(email=EMAIL)
    assert send(client, type="email_change").status_code == 409


def test_send_otp_rate_limited(client, notifier):
    for _ in range(3):
        assert send(client).status_code == 200

    response = send(client)
    assert response.status_code == 429
    body = response.json()
    assert body["code"] == "RATE_LIMITED"
    assert body["resetIn"] == 15
    assert response.headers["Retry-After"] == str(15 * 60)
    assert len(notifier.sent) == 3


def test_delivery_failure_rolls_back(client, notifier, otp_rows, redis_client):
    notifier.fail = True

    response = send(client)
    assert response.status_code == 500
    assert response.json()["code"] == "DELIVERY_ERROR"
    assert otp_rows(EMAIL) == []
    assert redis_client.zcard(f"rate_limit:otp:{EMAIL}") == 0

    notifier.fail = False
    assert send(client).json()["attemptsRemaining"] == 2


def test_send_otp_when_redis_is_down(client, notifier):
    broken = MagicMock()
    broken.pipeline.return_value.execute.side_effect = redis.ConnectionError("Connection refused")
    app.dependency_overrides[get_redis] = lambda: broken

    response = send(client)
    assert response.status_code == 200
    assert len(notifier.sent) == 1


def test_password_reset_otp_response_does_not_reveal_account(client, create_user, notifier):
    create_user(email=EMAIL)

    known = send(client, type="password_reset")
    unknown = send(client, email="nobody@example.com", type="password_reset")

    assert known.status_code == unknown.status_code == 200
    known_body, unknown_body = known.json(), unknown.json()
    known_body.pop("timestamp")
    unknown_body.pop("timestamp")
    assert known_body == unknown_body

    assert [m["to"] for m in notifier.sent] == [EMAIL]
    assert notifier.sent[0]["purpose"] == "password_reset"


def test_verify_otp(client, notifier, otp_rows):
    send(client)
    code = notifier.last_code(EMAIL)

    response = client.post("/api/otp/verify", json={"email": EMAIL, "otp": code, "type": "registration"})
    assert response.status_code == 200
    assert response.json()["verified"] is True
    assert otp_rows(EMAIL)[0].verified is True

    again = client.post("/api/otp/verify", json={"email": EMAIL, "otp": code, "type": "registration"})
    assert again.status_code == 400
    assert again.json()["code"] == "INVALID_OTP"


def test_verify_otp_wrong_code(client, notifier):
    send(client)
    wrong = "100000" if notifier.last_code(EMAIL) != "100000" else "100001"

    response = client.post("/api/otp/verify", json={"email": EMAIL, "otp": wrong, "type": "registration"})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_OTP"
    assert response.json()["message"] == "Invalid or expired OTP"


def test_verify_otp_bad_format(client):
    response = client.post("/api/otp/verify", json={"email": EMAIL, "otp": "12ab56", "type": "registration"})
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid OTP format. Must be 6 digits."


def test_verify_otp_expired(client, notifier, otp_rows, db_session):
    send(client)
    code = notifier.last_code(EMAIL)
    row = otp_rows(EMAIL)[0]
    row.expires_at = utc_now() - timedelta(seconds=1)
    db_session.commit()

    response = client.post("/api/otp/verify", json={"email": EMAIL, "otp": code, "type": "registration"})
    assert response.status_code == 400
    assert response.json()["code"] == "OTP_EXPIRED"
    assert otp_rows(EMAIL) == []


def test_resend_replaces_code(client, notifier, otp_rows):
    send(client)
    first_code = notifier.last_code(EMAIL)

    response = client.post("/api/otp/resend", json={"email": EMAIL, "type": "registration"})
    assert response.status_code == 200
    assert "resent" in response.json()["message"]
    second_code = notifier.last_code(EMAIL)

    rows = otp_rows(EMAIL)
    assert len(rows) == 1
    assert rows[0].code == second_code
    if first_code != second_code:
        bad = client.post("/api/otp/verify", json={"email": EMAIL, "otp": first_code, "type": "registration"})
        assert bad.status_code == 400


def test_resend_allows_more_attempts_than_send(client):
    for _ in range(3):
        send(client)
    assert send(client).status_code == 429

    first = client.post("/api/otp/resend", json={"email": EMAIL, "type": "registration"})
    assert first.status_code == 200
    assert first.json()["attemptsRemaining"] == 1
    assert client.post("/api/otp/resend", json={"email": EMAIL, "type": "registration"}).status_code == 200
    assert client.post("/api/otp/resend", json={"email": EMAIL, "type": "registration"}).status_code == 429


def test_check_verified(client, notifier):
    params = {"email": EMAIL, "type": "registration"}
    assert client.get("/api/otp/check-verified", params=params).json()["verified"] is False

    send(client)
    client.post("/api/otp/verify", json={"email": EMAIL, "otp": notifier.last_code(EMAIL), "type": "registration"})

    response = client.get("/api/otp/check-verified", params=params)
    assert response.status_code == 200
    assert response.json()["verified"] is True


def test_check_verified_requires_params(client):
    assert client.get("/api/otp/check-verified", params={"email": EMAIL}).status_code == 400
    assert client.get("/api/otp/check-verified", params={"email": EMAIL, "type": "bogus"}).status_code == 400


def test_security_headers(client):
    response = send(client)
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert "X-Request-ID" in response.headers
