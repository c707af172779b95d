import logging
from datetime import datetime
from typing import Callable, Optional

from models.db import utcnow
from models.store import CredentialStore
from models.user import LocalAccount, User
from security.password import hash_password, verify_password
from security.policy import SecurityPolicy
from security.secrets_util import generate_token, hash_string
from security.trusted_devices import TrustedDeviceRegistry
from security.validation import validate_password
from utils.email_templates import password_reset_email
from utils.responses import ApiError

logger = logging.getLogger(__name__)


class PasswordResetFlow:
    """Forgot / reset / change password. Every path that sets a new password forgets trusted devices."""

    def __init__(
        self,
        store: CredentialStore,
        devices: TrustedDeviceRegistry,
        mailer,
        policy: SecurityPolicy,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._devices = devices
        self._mailer = mailer
        self._policy = policy
        self._clock = clock

    def forgot_password(self, email: Optional[str]) -> None:
        if not email:
            raise ApiError(400, "Email is required", "MISSING_EMAIL")
        if not isinstance(email, str):
            raise ApiError(400, "email must be a string", "VALIDATION_ERROR", field="email")

        user = self._store.find_user_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return
        if not isinstance(user, LocalAccount):
            logger.info("Password reset requested for federated account", extra={"user_id": user.id})
            return

        now = self._clock()
        if user.reset_password_expires is not None and user.reset_password_expires > now:
            issued_at = user.reset_password_expires - self._policy.reset_token_ttl
            if now - issued_at < self._policy.reset_request_interval:
                logger.info("Password reset throttled", extra={"user_id": user.id})
                return

        raw_token = generate_token()
        self._store.update_user(
            user,
            reset_password_token=hash_string(raw_token),
            reset_password_expires=now + self._policy.reset_token_ttl,
        )

        html = password_reset_email(
            self._policy.app_name,
            user.display_name,
            f"{self._policy.frontend_url}/auth/reset-password?token={raw_token}",
            int(self._policy.reset_token_ttl.total_seconds() // 60),
        )
        if not self._mailer.send(user.email, f"{self._policy.app_name} - Reset your password", html):
            self._store.update_user(user, reset_password_token=None, reset_password_expires=None)
            logger.error("Password reset email failed", extra={"user_id": user.id})
            raise ApiError(500, "Could not send the password reset email. Please try again", "EMAIL_SEND_FAILED")

        logger.info("Password reset email sent", extra={"user_id": user.id})

    def _user_for_token(self, token: Optional[str]) -> User:
        if not token:
            raise ApiError(400, "Reset token is required", "MISSING_TOKEN")
        user = self._store.find_user_by_reset_token(hash_string(token), self._clock())
        if user is None:
            raise ApiError(400, "Reset link is invalid or expired", "INVALID_TOKEN")
        return user

    def verify_reset_token(self, token: Optional[str]) -> User:
        return self._user_for_token(token)

    def reset_password(self, token: Optional[str], password) -> User:
        valid, errors = validate_password(password)
        if not valid:
            raise ApiError(400, "Password does not meet policy", "INVALID_PASSWORD", details=errors)

        user = self._user_for_token(token)
        self._store.update_user(
            user,
            password_hash=hash_password(password, rounds=self._policy.bcrypt_rounds),
            reset_password_token=None,
            reset_password_expires=None,
        )
        self._forget_devices(user)
        logger.info("Password reset", extra={"user_id": user.id})
        return user

    def change_password(self, user: User, current_password, new_password) -> User:
        if not isinstance(user, LocalAccount):
            raise ApiError(400, "Accounts signed in through a provider have no password", "OAUTH_ACCOUNT")
        if not current_password or not new_password:
            raise ApiError(400, "Current and new password are required", "MISSING_FIELDS")
        if not verify_password(current_password, user.password_hash):
            logger.warning("Password change with wrong current password", extra={"user_id": user.id})
            raise ApiError(401, "Current password is incorrect", "INCORRECT_PASSWORD")

        valid, errors = validate_password(new_password)
        if not valid:
            raise ApiError(400, "Password does not meet policy", "INVALID_PASSWORD", details=errors)

        self._store.update_user(user, password_hash=hash_password(new_password, rounds=self._policy.bcrypt_rounds))
        self._forget_devices(user)
        logger.info("Password changed", extra={"user_id": user.id})
        return user

    def _forget_devices(self, user: User) -> None:
        try:
            self._devices.revoke_all(user.id)
        except Exception:
            self._store.rollback()
            logger.exception("Could not revoke trusted devices", extra={"user_id": user.id})
