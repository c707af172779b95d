from datetime import timedelta

import pytest

from conftest import TEST_PASSWORD, bearer, login
from models import db
from models.login_attempt import LoginAttempt
from models.user import User
from security.bruteforce import BruteForceGuard
from security.email_verification import EmailVerificationFlow, VerificationState
from utils.responses import ApiError

NEW_USER = {"username": "newseeker", "email": "New.Seeker@Example.com", "password": TEST_PASSWORD}


def register(client, **overrides):
    return client.post("/auth/register", json={**NEW_USER, **overrides})


def test_register_then_login_blocked_then_verify_gives_session(client, mailer):
    resp = register(client)
    assert resp.status_code == 201
    assert resp.get_json()["requireEmailVerification"] is True
    token = resp.get_json()["verificationToken"]

    blocked = login(client, "newseeker")
    assert blocked.status_code == 403
    body = blocked.get_json()
    assert body["code"] == "EMAIL_NOT_VERIFIED"
    assert body["requireEmailVerification"] is True

    otp = mailer.last_otp("new.seeker@example.com")
    verified = client.post("/auth/verify-email", json={"otp": otp, "token": token})
    assert verified.status_code == 200

    me = client.get("/auth/me", headers=bearer(verified.get_json()["token"]))
    assert me.status_code == 200
    assert me.get_json()["user"]["isEmailVerified"] is True

    assert login(client, "newseeker").status_code == 200


def test_verification_mail_carries_otp_and_link(client, mailer):
    token = register(client).get_json()["verificationToken"]
    html = mailer.last_to("new.seeker@example.com")["html"]
    assert f"http://frontend.test/auth/verify-email?token={token}" in html
    assert mailer.last_otp("new.seeker@example.com").isdigit()


def test_token_can_be_redeemed_once(client, mailer):
    token = register(client).get_json()["verificationToken"]
    otp = mailer.last_otp("new.seeker@example.com")

    first = client.post("/auth/verify-email", json={"otp": otp, "token": token})
    second = client.post("/auth/verify-email", json={"otp": otp, "token": token})
    assert first.status_code == 200
    assert second.status_code == 400
    assert second.get_json()["code"] == "INVALID_OTP"


def test_otp_without_token(client, mailer):
    register(client)
    otp = mailer.last_otp("new.seeker@example.com")

    resp = client.post("/auth/verify-email", json={"otp": otp})
    assert resp.status_code == 200


def test_wrong_otp_with_valid_token(client, mailer):
    token = register(client).get_json()["verificationToken"]
    otp = mailer.last_otp("new.seeker@example.com")
    wrong = "000000" if otp != "000000" else "111111"

    resp = client.post("/auth/verify-email", json={"otp": wrong, "token": token})
    assert resp.status_code == 400
    assert User.query.filter_by(username="newseeker").one().is_email_verified is False


def test_missing_otp(client):
    resp = client.post("/auth/verify-email", json={"token": "abc"})
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "MISSING_OTP"


def test_welcome_mail_after_verification(client, mailer):
    token = register(client).get_json()["verificationToken"]
    client.post("/auth/verify-email", json={"otp": mailer.last_otp("new.seeker@example.com"), "token": token})

    assert mailer.last_to("new.seeker@example.com")["subject"].startswith("Welcome")


def test_verify_email_token_endpoint(client):
    token = register(client).get_json()["verificationToken"]

    ok = client.post("/auth/verify-email-token", json={"token": token})
    assert ok.status_code == 200
    assert ok.get_json()["email"] == "ne********@example.com"

    bad = client.post("/auth/verify-email-token", json={"token": "f" * 64})
    assert bad.status_code == 400
    assert bad.get_json()["code"] == "INVALID_TOKEN"


def test_verification_resets_lockout_counters(client, mailer, services):
    token = register(client).get_json()["verificationToken"]
    for _ in range(3):
        login(client, "newseeker", password="WrongPass1")

    assert services.guard.check("127.0.0.1", "new.seeker@example.com").attempts_remaining == 2

    client.post("/auth/verify-email", json={"otp": mailer.last_otp("new.seeker@example.com"), "token": token})
    assert services.guard.check("127.0.0.1", "new.seeker@example.com").attempts_remaining == 5


def test_resend_is_generic(client, mailer, make_user):
    make_user(username="verified1", email="verified1@example.com")

    unknown = client.post("/auth/resend-verification", json={"email": "nobody@example.com"})
    verified = client.post("/auth/resend-verification", json={"email": "verified1@example.com"})
    assert unknown.status_code == verified.status_code == 200
    assert unknown.get_json() == verified.get_json()
    assert mailer.sent == []


def test_resend_is_throttled(client, mailer):
    register(client)
    sent = len(mailer.sent)

    resp = client.post("/auth/resend-verification", json={"email": "new.seeker@example.com"})
    assert resp.status_code == 200
    assert len(mailer.sent) == sent


def test_resend_requires_email(client):
    assert client.post("/auth/resend-verification", json={}).status_code == 400


@pytest.fixture
def flow(services, clock, mailer):
    guard = BruteForceGuard(services.store, services.policy, clock)
    return EmailVerificationFlow(services.store, services.tokens, guard, mailer, services.policy, clock)


def test_resend_after_interval_sends_new_code(flow, clock, mailer, make_user):
    user = make_user(verified=False)
    flow.start(user)
    first_otp = user.two_factor_otp

    flow.resend(user.email)
    assert user.two_factor_otp == first_otp

    clock.advance(seconds=61)
    flow.resend(user.email)
    assert len(mailer.sent) == 2


def test_expired_code_is_rejected(flow, clock, make_user):
    user = make_user(verified=False)
    started = flow.start(user)
    clock.advance(minutes=11)

    with pytest.raises(ApiError) as err:
        flow.verify_with_otp(user.two_factor_otp, token=started.token)
    assert err.value.code == "INVALID_OTP"
    assert VerificationState.of(db.session.get(User, user.id)) is VerificationState.UNVERIFIED


def test_start_reports_failed_send(flow, clock, mailer, make_user):
    user = make_user(verified=False)
    mailer.fail = True
    started = flow.start(user)
    assert started.sent is False
    assert started.expires_at == clock.now + timedelta(minutes=10)


def wrong_code(otp):
    return "000000" if otp != "000000" else "111111"


def test_guessing_the_code_locks_out_even_the_right_code(flow, clock, make_user):
    user = make_user(verified=False)
    started = flow.start(user)
    good_otp = user.two_factor_otp

    for _ in range(4):
        with pytest.raises(ApiError) as err:
            flow.verify_with_otp(wrong_code(good_otp), token=started.token, ip="10.0.0.7")
        assert err.value.code == "INVALID_OTP"

    with pytest.raises(ApiError) as fifth:
        flow.verify_with_otp(wrong_code(good_otp), token=started.token, ip="10.0.0.7")
    assert fifth.value.status == 429
    assert fifth.value.code == "ACCOUNT_LOCKED"

    with pytest.raises(ApiError) as locked:
        flow.verify_with_otp(good_otp, token=started.token, ip="10.0.0.7")
    assert locked.value.code == "ACCOUNT_LOCKED"
    assert VerificationState.of(db.session.get(User, user.id)) is VerificationState.UNVERIFIED

    clock.advance(seconds=301)
    result = flow.verify_with_otp(good_otp, token=started.token, ip="10.0.0.7")
    assert result.user.is_email_verified is True


def test_code_only_guesses_are_counted_per_client(flow, make_user):
    user = make_user(verified=False)
    flow.start(user)
    wrong = wrong_code(user.two_factor_otp)

    for _ in range(4):
        with pytest.raises(ApiError):
            flow.verify_with_otp(wrong, ip="10.0.0.8")
    with pytest.raises(ApiError) as fifth:
        flow.verify_with_otp(wrong, ip="10.0.0.8")
    assert fifth.value.code == "ACCOUNT_LOCKED"

    rows = LoginAttempt.query.filter_by(ip_address="10.0.0.8").all()
    assert {r.username_or_email for r in rows} == {"verify-email:10.0.0.8"}
    assert all(r.is_success is False for r in rows)


def test_verify_email_endpoint_locks_after_five_wrong_codes(client, mailer):
    token = register(client).get_json()["verificationToken"]
    good_otp = mailer.last_otp("new.seeker@example.com")

    codes = [
        client.post("/auth/verify-email", json={"otp": wrong_code(good_otp), "token": token}).status_code
        for _ in range(5)
    ]
    assert codes == [400, 400, 400, 400, 429]

    resp = client.post("/auth/verify-email", json={"otp": good_otp, "token": token})
    assert resp.status_code == 429
    assert resp.get_json()["code"] == "ACCOUNT_LOCKED"


def test_unverified_login_is_recorded(client):
    register(client)

    assert login(client, "newseeker", deviceId="phone").status_code == 403

    row = LoginAttempt.query.filter_by(username_or_email="newseeker").one()
    assert row.is_success is True
    assert row.device_id == "phone"
    assert row.user_id == User.query.filter_by(username="newseeker").one().id


def test_repeated_unverified_logins_send_one_code(client, mailer, make_user):
    make_user(username="pending", verified=False)

    first = login(client, "pending")
    second = login(client, "pending")
    assert first.status_code == second.status_code == 403
    assert first.get_json()["verificationToken"]
    assert second.get_json()["verificationToken"] is None
    assert second.get_json()["code"] == "EMAIL_NOT_VERIFIED"
    assert len([m for m in mailer.sent if m["to"] == "pending@example.com"]) == 1


def test_start_if_due_respects_the_resend_interval(flow, clock, mailer, make_user):
    user = make_user(verified=False)
    assert flow.start_if_due(user) is not None
    assert flow.start_if_due(user) is None

    clock.advance(seconds=61)
    assert flow.start_if_due(user) is not None
    assert len(mailer.sent) == 2


def test_resend_ignores_a_non_string_email(flow, mailer):
    flow.resend(12345)
    assert mailer.sent == []
