from datetime import timedelta

import pytest

from models import db
from models.login_attempt import LoginAttempt
from models.trusted_device import TrustedDevice
from models.user import User
from utils.account_cleanup import cleanup_unverified_accounts


@pytest.fixture
def sweep(services, mailer, clock):
    def _sweep(send_warnings=True):
        return cleanup_unverified_accounts(
            services.store, mailer, services.policy, 3, 7, send_warnings, clock=clock,
        )
    return _sweep


@pytest.fixture
def aged_user(make_user, clock):
    def _make(days_old, verified=False, **fields):
        return make_user(verified=verified, created_at=clock.now - timedelta(days=days_old), **fields)
    return _make


def test_warns_and_deletes_by_age(sweep, aged_user, mailer):
    expired = aged_user(8)
    warned = aged_user(4)
    fresh = aged_user(1)
    verified_old = aged_user(30, verified=True)
    expired_id = expired.id

    result = sweep()
    assert result.deleted_count == 1
    assert result.warning_emails_sent == 1

    assert db.session.get(User, expired_id) is None
    assert db.session.get(User, verified_old.id) is not None
    assert db.session.get(User, fresh.id) is not None
    assert [m["to"] for m in mailer.sent] == [warned.email]
    assert "3 days" in mailer.sent[0]["subject"]
    assert warned.warning_email_count == 1


def test_running_twice_does_nothing_more(sweep, aged_user, mailer):
    aged_user(8)
    aged_user(4)

    sweep()
    second = sweep()
    assert second.deleted_count == 0
    assert second.warning_emails_sent == 0
    assert len(mailer.sent) == 1


def test_warning_repeats_after_the_interval_up_to_the_cap(sweep, aged_user, clock, mailer):
    user = aged_user(3, username="slowpoke")

    for _ in range(5):
        sweep()
        clock.advance(hours=25)
        if clock.now - user.created_at >= timedelta(days=7):
            break

    assert user.warning_email_count == 3
    assert len(mailer.sent) == 3


def test_failed_warning_is_not_counted(sweep, aged_user, mailer):
    user = aged_user(4)
    mailer.fail = True

    assert sweep().warning_emails_sent == 0
    assert user.warning_email_count == 0
    assert user.last_warning_email_sent_at is None


def test_warnings_can_be_skipped(sweep, aged_user, mailer):
    aged_user(4)
    aged_user(8)

    result = sweep(send_warnings=False)
    assert result.deleted_count == 1
    assert mailer.sent == []


def test_deletion_removes_devices_and_detaches_attempts(sweep, aged_user, services):
    user = aged_user(8)
    user_id = user.id
    services.devices.trust(user_id, "laptop")
    services.store.add_login_attempt(
        ip_address="10.0.0.1", username_or_email=user.username, is_success=False, user_id=user_id,
    )

    sweep()
    assert TrustedDevice.query.filter_by(user_id=user_id).count() == 0
    attempt = LoginAttempt.query.one()
    assert attempt.user_id is None


def test_cli_command(app, aged_user):
    aged_user(30)
    result = app.test_cli_runner().invoke(args=["cleanup-unverified", "--no-warnings"])
    assert result.exit_code == 0
    assert "Deleted 1 account(s)" in result.output


def test_cli_command_respects_the_switch(app, aged_user):
    aged_user(30)
    app.config["ACCOUNT_CLEANUP_ENABLED"] = False
    result = app.test_cli_runner().invoke(args=["cleanup-unverified"])
    assert "disabled" in result.output
    assert User.query.count() == 1
