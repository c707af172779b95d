import logging
import re
import secrets
from dataclasses import dataclass
from typing import Optional

from models.store import CredentialStore
from models.user import LocalAccount, User
from security.email_verification import EmailVerificationFlow
from security.password import hash_password
from security.policy import SecurityPolicy
from security.validation import validate_email, validate_password, validate_username
from utils.responses import ApiError

logger = logging.getLogger(__name__)

USERNAME_BASE_MAX_LEN = 15
USERNAME_MIN_LEN = 3


@dataclass(frozen=True)
class Registration:
    user: User
    verification_token: str
    email_sent: bool


def register(
    store: CredentialStore,
    verification: EmailVerificationFlow,
    policy: SecurityPolicy,
    username,
    email,
    password,
    full_name: Optional[str] = None,
) -> Registration:
    username = username.strip() if isinstance(username, str) else username
    email = email.strip().lower() if isinstance(email, str) else email

    details = []
    for validate, value in (
        (validate_username, username),
        (validate_email, email),
        (validate_password, password),
    ):
        _, errors = validate(value)
        details.extend(errors)
    if details:
        raise ApiError(400, "Invalid registration details", "VALIDATION_ERROR", details=details)

    if store.find_user_by_username(username):
        raise ApiError(400, "Username is already taken", "USERNAME_TAKEN")
    if store.find_user_by_email(email):
        raise ApiError(400, "Email is already registered", "EMAIL_TAKEN")

    user = store.add_user(LocalAccount(
        username=username,
        email=email,
        full_name=(full_name.strip() or None) if isinstance(full_name, str) else None,
        password_hash=hash_password(password, rounds=policy.bcrypt_rounds),
        provider="local",
        is_email_verified=False,
    ))

    started = verification.start(user)
    if not started.sent:
        logger.error("Registration verification email not sent", extra={"user_id": user.id})

    logger.info("User registered", extra={"user_id": user.id})
    return Registration(user=user, verification_token=started.token, email_sent=started.sent)


def generate_username(store: CredentialStore, display_name: Optional[str], max_suffix_attempts: int = 100) -> str:
    """
    Derive a free username from a display name: "Jane Doe" -> "janedoe",
    then "janedoe1", "janedoe2", ... and finally a random hex suffix.
    """
    base = re.sub(r"[^a-z0-9]", "", (display_name or "").lower())[:USERNAME_BASE_MAX_LEN]
    if len(base) < USERNAME_MIN_LEN:
        base = (base + "user")[:USERNAME_BASE_MAX_LEN]

    if not store.username_exists(base):
        return base

    for suffix in range(1, max_suffix_attempts + 1):
        candidate = f"{base}{suffix}"
        if not store.username_exists(candidate):
            return candidate

    while True:
        candidate = f"{base}{secrets.token_hex(2)}"
        if not store.username_exists(candidate):
            return candidate
