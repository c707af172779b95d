"""
Email OTP second factor.

A login on an untrusted device gets a temporary token plus an emailed OTP.
Only the most recently issued temp token is accepted: issuing a new one
overwrites users.last_temp_token, and verifying clears it.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from models.db import utcnow
from models.store import CredentialStore
from models.user import User
from security.bruteforce import BruteForceGuard
from security.policy import SecurityPolicy
from security.secrets_util import constant_time_compare, generate_otp
from security.tokens import TokenClaims, TokenError, TokenService
from security.trusted_devices import TrustedDeviceRegistry
from utils.email_templates import two_factor_email
from utils.responses import ApiError

logger = logging.getLogger(__name__)


class TwoFactorState(Enum):
    NO_2FA = "no_2fa"
    CHALLENGE_REQUIRED = "challenge_required"
    TRUSTED_DEVICE = "trusted_device"


class OtpCheck(Enum):
    OK = "ok"
    INVALID_TOKEN = "invalid_token"
    OUTDATED_TOKEN = "outdated_token"
    INVALID_OTP = "invalid_otp"


# status, code, message for each failed check; one message for mismatch and expiry
OTP_CHECK_ERRORS = {
    OtpCheck.INVALID_TOKEN: (400, "INVALID_TOKEN", "Verification token is invalid or expired"),
    OtpCheck.OUTDATED_TOKEN: (400, "TOKEN_OUTDATED", "This verification link is no longer valid. Please log in again"),
    OtpCheck.INVALID_OTP: (400, "INVALID_OTP", "Verification code is invalid or expired"),
}


@dataclass(frozen=True)
class Challenge:
    temp_token: str
    expires_at: datetime


@dataclass(frozen=True)
class OtpResult:
    check: OtpCheck
    user: Optional[User] = None
    token: Optional[str] = None

    def raise_for_failure(self) -> None:
        if self.check is OtpCheck.OK:
            return
        status, code, message = OTP_CHECK_ERRORS[self.check]
        raise ApiError(status, message, code)


class TwoFactorFlow:

    def __init__(
        self,
        store: CredentialStore,
        tokens: TokenService,
        devices: TrustedDeviceRegistry,
        guard: BruteForceGuard,
        mailer,
        policy: SecurityPolicy,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._tokens = tokens
        self._devices = devices
        self._guard = guard
        self._mailer = mailer
        self._policy = policy
        self._clock = clock

    def state_for(self, user: User, device_id: Optional[str]) -> TwoFactorState:
        if not user.two_factor_enabled:
            return TwoFactorState.NO_2FA
        if self._devices.is_trusted(user.id, device_id):
            return TwoFactorState.TRUSTED_DEVICE
        return TwoFactorState.CHALLENGE_REQUIRED

    def issue_challenge(self, user: User, device_id: Optional[str]) -> Challenge:
        snapshot = {
            "two_factor_otp": user.two_factor_otp,
            "two_factor_expires": user.two_factor_expires,
            "last_temp_token": user.last_temp_token,
        }

        otp = generate_otp()
        expires_at = self._clock() + self._policy.otp_ttl
        temp_token = self._tokens.issue_temp_token(user, device_id)
        self._store.update_user(
            user,
            two_factor_otp=otp,
            two_factor_expires=expires_at,
            last_temp_token=temp_token,
        )

        html = two_factor_email(
            self._policy.app_name,
            user.display_name,
            otp,
            f"{self._policy.frontend_url}/auth/verify-otp/{temp_token}",
            int(self._policy.otp_ttl.total_seconds() // 60),
        )
        if not self._mailer.send(user.email, f"{self._policy.app_name} - Your verification code", html):
            # restore the previous challenge
            self._store.update_user(user, **snapshot)
            logger.error("OTP email failed; challenge rolled back", extra={"user_id": user.id})
            raise ApiError(500, "Could not send the verification code. Please try again", "OTP_DELIVERY_FAILED")

        logger.info("2FA challenge issued", extra={"user_id": user.id, "device_id": device_id})
        return Challenge(temp_token=temp_token, expires_at=expires_at)

    def _load_pending(self, temp_token: str):
        try:
            claims = self._tokens.decode_temp(temp_token)
        except TokenError as exc:
            logger.info("Temp token rejected", extra={"reason": exc.code})
            return OtpCheck.INVALID_TOKEN, None, None

        user = self._store.get_user(claims.user_id)
        if user is None:
            return OtpCheck.INVALID_TOKEN, None, claims
        if not user.last_temp_token or not constant_time_compare(temp_token, user.last_temp_token):
            return OtpCheck.OUTDATED_TOKEN, user, claims
        return OtpCheck.OK, user, claims

    def verify_temp_token(self, temp_token: str) -> OtpCheck:
        check, _, _ = self._load_pending(temp_token)
        return check

    def verify_otp(
        self,
        otp: str,
        temp_token: str,
        remember_device: bool = False,
        ip: str = "unknown",
        user_agent: Optional[str] = None,
    ) -> OtpResult:
        """
        Wrong codes count as failed attempts against the account's email, so
        the login lockout also stops OTP guessing. Raises ApiError 429 while
        locked, even for the right code.
        """
        check, user, claims = self._load_pending(temp_token)
        if check is not OtpCheck.OK:
            return OtpResult(check)

        self._guard.check(ip, user.email, claims.device_id).raise_if_locked()

        now = self._clock()
        if (
            not user.two_factor_otp
            or user.two_factor_expires is None
            or user.two_factor_expires <= now
            or not constant_time_compare(str(otp), user.two_factor_otp)
        ):
            logger.warning("OTP rejected", extra={"user_id": user.id, "ip": ip})
            self._guard.record_attempt(user.email, False, ip, user_agent, claims.device_id, user.id)
            self._guard.check(ip, user.email, claims.device_id).raise_if_locked()
            return OtpResult(OtpCheck.INVALID_OTP)

        self._guard.reset_failed_attempts(user.email, ip, claims.device_id, user.id, user_agent)

        self._store.update_user(
            user,
            two_factor_otp=None,
            two_factor_expires=None,
            last_temp_token=None,
        )

        if remember_device and claims.device_id:
            self._remember(user, claims)

        logger.info("OTP verified", extra={"user_id": user.id})
        return OtpResult(OtpCheck.OK, user=user, token=self._tokens.issue_session_token(user))

    def _remember(self, user: User, claims: TokenClaims) -> None:
        try:
            self._devices.trust(user.id, claims.device_id)
        except Exception:
            self._store.rollback()
            logger.exception("Could not save trusted device", extra={"user_id": user.id})

    def regenerate_otp(self, temp_token: str) -> Challenge:
        check, user, claims = self._load_pending(temp_token)
        if check is not OtpCheck.OK:
            OtpResult(check).raise_for_failure()

        if user.two_factor_expires is not None:
            issued_at = user.two_factor_expires - self._policy.otp_ttl
            elapsed = (self._clock() - issued_at).total_seconds()
            interval = self._policy.otp_resend_interval.total_seconds()
            if elapsed < interval:
                retry_after = math.ceil(interval - elapsed)
                raise ApiError(
                    429,
                    f"Please wait {retry_after} seconds before requesting a new code",
                    "OTP_THROTTLED",
                    retryAfter=retry_after,
                )

        return self.issue_challenge(user, claims.device_id)

    def set_two_factor(self, user: User, enable) -> bool:
        if not isinstance(enable, bool):
            raise ApiError(400, "enable must be true or false", "VALIDATION_ERROR")

        fields = {"two_factor_enabled": enable}
        if not enable:
            fields.update(two_factor_otp=None, two_factor_expires=None, last_temp_token=None)
        self._store.update_user(user, **fields)

        if not enable:
            self._devices.revoke_all(user.id)
        logger.info("2FA toggled", extra={"user_id": user.id, "enabled": enable})
        return enable
