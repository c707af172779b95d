"""
Shared fixtures.

Every test gets a fresh app on in-memory SQLite, bcrypt at its cheapest cost
and a FakeMailer that records outgoing mail instead of talking SMTP.
"""
import re
from datetime import datetime, timedelta

import pytest

from app import create_app
from models import db
from models.user import FederatedAccount, LocalAccount
from security.password import hash_password
from security.services import get_services

TEST_PASSWORD = "Passw0rd!"

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "SECRET_KEY": "test-secret-key-0123456789abcdef0123456789",
    "JWT_SECRET": "test-jwt-secret-0123456789abcdef0123456789",
    "BCRYPT_ROUNDS": 4,
    "LOG_LEVEL": "WARNING",
    "FRONTEND_URL": "http://frontend.test",
    "TRUSTED_DEVICE_TTL_SECONDS": 3600,
    "ACCOUNT_CLEANUP_ENABLED": True,
}

_OTP_IN_MAIL = re.compile(r">(\d{6})<")
_TOKEN_IN_MAIL = re.compile(r"token=([0-9a-f]{64})")


class FakeMailer:

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to_email, subject, html):
        if self.fail:
            return False
        self.sent.append({"to": to_email, "subject": subject, "html": html})
        return True

    def send_detached(self, to_email, subject, html):
        # synchronous so tests can assert on it
        self.send(to_email, subject, html)

    def last_to(self, email):
        for message in reversed(self.sent):
            if message["to"] == email:
                return message
        return None

    def last_otp(self, email):
        return _OTP_IN_MAIL.search(self.last_to(email)["html"]).group(1)

    def last_link_token(self, email):
        return _TOKEN_IN_MAIL.search(self.last_to(email)["html"]).group(1)


class Clock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 15, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def app(mailer):
    app = create_app(mailer=mailer, **TEST_CONFIG)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return get_services()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(username=None, email=None, password=TEST_PASSWORD, verified=True, two_factor=False, **fields):
        counter["n"] += 1
        username = username or f"seeker{counter['n']}"
        user = LocalAccount(
            username=username,
            email=email or f"{username}@example.com",
            password_hash=hash_password(password, rounds=4),
            provider="local",
            is_email_verified=verified,
            two_factor_enabled=two_factor,
            **fields,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_federated_user(app):
    def _make(username="googler", email="googler@example.com", provider="google", provider_id="g-123", **fields):
        user = FederatedAccount(
            username=username,
            email=email,
            provider=provider,
            provider_id=provider_id,
            is_email_verified=True,
            **fields,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make


def login(client, identifier, password=TEST_PASSWORD, **extra):
    return client.post("/auth/login", json={"usernameOrEmail": identifier, "password": password, **extra})


def bearer(token):
    return {"Authorization": f"Bearer {token}"}
