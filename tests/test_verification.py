from datetime import timedelta

from sqlalchemy import select

from storefront.db import main_session
from storefront.models import User, VerificationCode, utcnow
from storefront.verification import generate_code, store_code


def test_generate_code_is_six_digits():
    for _ in range(50):
        code = generate_code()
        assert len(code) == 6 and code.isdigit()
        assert 100000 <= int(code) <= 999999


def test_send_requires_valid_email(client, mailer):
    r = client.post("/api/email/send-verification", json={"email": "nope"})
    assert r.status_code == 400
    assert mailer.verifications == []


def test_send_and_verify_marks_user_verified(app, client, mailer):
    client.post("/api/auth/register", json={"email": "code@example.com", "password": "pw"})
    r = client.post("/api/email/send-verification", json={"email": "code@example.com"})
    assert r.status_code == 200
    assert r.get_json()["success"] is True
    email, code = mailer.verifications[-1]
    assert email == "code@example.com"

    r = client.post("/api/email/verify-code", json={"email": "code@example.com", "code": code})
    assert r.status_code == 200

    with app.app_context():
        with main_session() as db:
            u = db.execute(select(User).where(User.email == "code@example.com")).scalar_one()
            assert u.email_verified
            assert db.get(VerificationCode, "code@example.com") is None

    r = client.post("/api/auth/login", json={"email": "code@example.com", "password": "pw"})
    assert r.status_code == 200


def test_verify_errors(app, client, mailer):
    assert client.post("/api/email/verify-code", json={"email": "x@example.com"}).status_code == 400

    r = client.post("/api/email/verify-code", json={"email": "none@example.com", "code": "123456"})
    assert r.get_json()["error"] == "No verification code found for this email"

    client.post("/api/email/send-verification", json={"email": "w@example.com"})
    _, code = mailer.verifications[-1]
    wrong = "000000" if code != "000000" else "111111"
    r = client.post("/api/email/verify-code", json={"email": "w@example.com", "code": wrong})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Invalid verification code"
    # a wrong guess leaves the code usable
    r = client.post("/api/email/verify-code", json={"email": "w@example.com", "code": code})
    assert r.status_code == 200


def test_expired_code_is_removed(app, client, mailer):
    client.post("/api/email/send-verification", json={"email": "old@example.com"})
    _, code = mailer.verifications[-1]
    with app.app_context():
        with main_session() as db:
            db.get(VerificationCode, "old@example.com").expires_at = utcnow() - timedelta(seconds=1)
            db.commit()

    r = client.post("/api/email/verify-code", json={"email": "old@example.com", "code": code})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Verification code has expired"
    r = client.post("/api/email/verify-code", json={"email": "old@example.com", "code": code})
    assert r.get_json()["error"] == "No verification code found for this email"


def test_storing_a_code_purges_expired_codes(app, client, mailer):
    with app.app_context():
        with main_session() as db:
            db.add_all([
                VerificationCode(email="stale@example.com", code="111111",
                                 expires_at=utcnow() - timedelta(minutes=1)),
                VerificationCode(email="live@example.com", code="222222",
                                 expires_at=utcnow() + timedelta(minutes=5)),
            ])
            db.commit()

    with app.app_context():
        with main_session() as db:
            store_code(db, "fresh@example.com", "333333", 10)

    with app.app_context():
        with main_session() as db:
            emails = set(db.scalars(select(VerificationCode.email)))
    assert emails == {"live@example.com", "fresh@example.com"}

    client.post("/api/email/send-verification", json={"email": "other@example.com"})
    with app.app_context():
        with main_session() as db:
            db.get(VerificationCode, "live@example.com").expires_at = utcnow() - timedelta(seconds=1)
            db.commit()
    client.post("/api/email/send-verification", json={"email": "other@example.com"})
    with app.app_context():
        with main_session() as db:
            emails = set(db.scalars(select(VerificationCode.email)))
    assert emails == {"fresh@example.com", "other@example.com"}


def test_resend_replaces_previous_code(client, mailer):
    client.post("/api/email/send-verification", json={"email": "re@example.com"})
    client.post("/api/email/send-verification", json={"email": "re@example.com"})
    first, second = mailer.verifications[0][1], mailer.verifications[1][1]
    if first != second:
        r = client.post("/api/email/verify-code", json={"email": "re@example.com", "code": first})
        assert r.status_code == 400
    r = client.post("/api/email/verify-code", json={"email": "re@example.com", "code": second})
    assert r.status_code == 200


def test_send_failure_reports_details(client, mailer):
    mailer.fail = True
    r = client.post("/api/email/send-verification", json={"email": "down@example.com"})
    assert r.status_code == 500
    body = r.get_json()
    assert body["error"] == "Failed to send verification email"
    assert "smtp down" in body["details"]
