import re

import pytest

from models.user import FederatedAccount, User
from security.federation import FederationError, resolve_federated_identity
from security.registration import generate_username


def resolve(services, **fields):
    identity = {
        "provider": "google",
        "provider_id": "g-1",
        "email": "Jane.Doe@Gmail.com",
        "display_name": "Jane Doe",
        "profile_image": "https://img.example.com/jane.png",
    }
    identity.update(fields)
    return resolve_federated_identity(services.store, services.policy, **identity)


def test_new_identity_creates_a_verified_federated_account(services):
    user = resolve(services)
    assert isinstance(user, FederatedAccount)
    assert user.username == "janedoe"
    assert user.email == "jane.doe@gmail.com"
    assert user.is_email_verified is True
    assert user.password_hash is None


def test_known_identity_is_reused_and_image_refreshed(services):
    first = resolve(services)
    again = resolve(services, profile_image="https://img.example.com/new.png")
    assert again.id == first.id
    assert again.profile_image == "https://img.example.com/new.png"
    assert User.query.count() == 1


def test_missing_email(services):
    with pytest.raises(FederationError) as err:
        resolve(services, email=None)
    assert err.value.code == "EMAIL_MISSING"


def test_email_owned_by_a_local_account(services, make_user):
    make_user(username="jane", email="jane.doe@gmail.com")
    with pytest.raises(FederationError) as err:
        resolve(services)
    assert err.value.code == "EMAIL_EXISTS_AS_LOCAL"


def test_email_owned_by_another_provider(services, make_federated_user):
    make_federated_user(username="janegh", email="jane.doe@gmail.com", provider="github", provider_id="gh-9")
    with pytest.raises(FederationError) as err:
        resolve(services)
    assert err.value.code == "EMAIL_LINKED_TO_OTHER_PROVIDER"
    assert "github" in err.value.message
    assert "password" not in err.value.message


def test_same_provider_new_subject_relinks(services):
    first = resolve(services)
    relinked = resolve(services, provider_id="g-2")
    assert relinked.id == first.id
    assert relinked.provider_id == "g-2"


def test_username_collisions_get_numeric_suffixes(services, make_user):
    make_user(username="janedoe", email="someone@example.com")
    make_user(username="janedoe1", email="someone1@example.com")
    assert generate_username(services.store, "Jane Doe") == "janedoe2"


def test_punctuation_and_underscores_are_stripped(services):
    assert generate_username(services.store, "Jane_Doe") == "janedoe"
    assert generate_username(services.store, "O'Brien-Smith, Jr.") == "obriensmithjr"
    assert generate_username(services.store, "__") == "user"


def test_short_and_long_names(services):
    assert generate_username(services.store, "Al") == "aluser"
    assert generate_username(services.store, "") == "user"
    long_name = generate_username(services.store, "Maximilian Alexander Montgomery")
    assert long_name == "maximilianalexa"


def test_random_suffix_after_the_numeric_ones_run_out(services, make_user):
    make_user(username="janedoe", email="a@example.com")
    make_user(username="janedoe1", email="b@example.com")
    make_user(username="janedoe2", email="c@example.com")

    name = generate_username(services.store, "Jane Doe", max_suffix_attempts=2)
    assert re.fullmatch(r"janedoe[0-9a-f]{4}", name)
    assert len(name) <= 20


def test_federated_account_cannot_use_password_login(client, services):
    user = resolve(services)
    resp = client.post("/auth/login", json={"usernameOrEmail": user.email, "password": "Passw0rd!"})
    assert resp.status_code == 401
