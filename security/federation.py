"""
Accounts backed by an external identity provider (e.g. Google).

The provider has already authenticated the person; this module decides
whether that identity maps onto an existing account, a new one, or neither.
"""
import logging
from typing import Optional

from models.store import CredentialStore
from models.user import FederatedAccount, User
from security.policy import SecurityPolicy
from security.registration import generate_username

logger = logging.getLogger(__name__)


class FederationError(Exception):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def resolve_federated_identity(
    store: CredentialStore,
    policy: SecurityPolicy,
    provider: str,
    provider_id: str,
    email: Optional[str],
    display_name: Optional[str] = None,
    profile_image: Optional[str] = None,
) -> User:
    user = store.find_user_by_provider(provider, provider_id)
    if user is not None:
        if profile_image and profile_image != user.profile_image:
            store.update_user(user, profile_image=profile_image)
        return user

    if not email:
        raise FederationError("EMAIL_MISSING", f"{provider} did not share an email address")

    user = store.find_user_by_email(email)
    if user is not None:
        if user.provider != provider:
            logger.warning(
                "Federated sign-in for an email owned by another account",
                extra={"provider": provider, "existing_provider": user.provider, "user_id": user.id},
            )
            if isinstance(user, FederatedAccount):
                raise FederationError(
                    "EMAIL_LINKED_TO_OTHER_PROVIDER",
                    f"This email is already linked to a {user.provider} account. Sign in with {user.provider} instead",
                )
            raise FederationError(
                "EMAIL_EXISTS_AS_LOCAL",
                "This email is already registered. Sign in with your password instead",
            )
        # same provider, new subject id for the same mailbox
        store.update_user(user, provider_id=provider_id, profile_image=profile_image or user.profile_image)
        logger.info("Federated identity relinked", extra={"provider": provider, "user_id": user.id})
        return user

    user = store.add_user(FederatedAccount(
        username=generate_username(store, display_name, policy.username_max_suffix_attempts),
        email=email.strip().lower(),
        full_name=display_name,
        profile_image=profile_image,
        provider=provider,
        provider_id=provider_id,
        is_email_verified=True,
    ))
    logger.info("Federated account created", extra={"provider": provider, "user_id": user.id})
    return user
