from datetime import timedelta

import pytest

from models.store import CredentialStore
from models.trusted_device import TrustedDevice
from security.policy import SecurityPolicy
from security.trusted_devices import TrustedDeviceRegistry


@pytest.fixture
def registry(app, clock):
    policy = SecurityPolicy(jwt_secret="x" * 32, trusted_device_ttl=timedelta(hours=1))
    return TrustedDeviceRegistry(CredentialStore(), policy, clock)


def test_trusted_until_expiry(registry, clock, make_user):
    user = make_user()
    registry.trust(user.id, "laptop")
    assert registry.is_trusted(user.id, "laptop")

    clock.advance(minutes=59)
    assert registry.is_trusted(user.id, "laptop")

    clock.advance(minutes=2)
    assert not registry.is_trusted(user.id, "laptop")


def test_trusting_again_slides_expiry_without_duplicates(registry, clock, make_user):
    user = make_user()
    registry.trust(user.id, "laptop")
    clock.advance(minutes=50)
    registry.trust(user.id, "laptop")
    clock.advance(minutes=50)

    assert registry.is_trusted(user.id, "laptop")
    assert TrustedDevice.query.filter_by(user_id=user.id).count() == 1


def test_unknown_or_missing_device_is_not_trusted(registry, make_user):
    user = make_user()
    registry.trust(user.id, "laptop")
    assert not registry.is_trusted(user.id, "phone")
    assert not registry.is_trusted(user.id, None)
    assert not registry.is_trusted(user.id, "")


def test_trust_is_per_user(registry, make_user):
    alice = make_user()
    bob = make_user()
    registry.trust(alice.id, "shared-pc")
    assert not registry.is_trusted(bob.id, "shared-pc")


def test_revoke_all(registry, make_user):
    user = make_user()
    registry.trust(user.id, "laptop")
    registry.trust(user.id, "phone")

    assert registry.revoke_all(user.id) == 2
    assert not registry.is_trusted(user.id, "laptop")
    assert registry.revoke_all(user.id) == 0


class BrokenStore(CredentialStore):

    def find_trusted_device(self, user_id, device_id):
        raise RuntimeError("database unavailable")


def test_lookup_errors_mean_untrusted(app, clock, make_user):
    user = make_user()
    registry = TrustedDeviceRegistry(BrokenStore(), SecurityPolicy(jwt_secret="x" * 32), clock)
    assert registry.is_trusted(user.id, "laptop") is False
