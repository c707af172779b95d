"""
Email verification: an account starts UNVERIFIED and moves to VERIFIED once
the owner proves the mailbox with the emailed OTP. The OTP shares the
users.two_factor_otp column with 2FA; an unverified account never reaches
the 2FA step, so the two uses do not collide.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from models.db import utcnow
from models.store import CredentialStore
from models.user import User
from security.bruteforce import BruteForceGuard
from security.policy import SecurityPolicy
from security.secrets_util import constant_time_compare, generate_otp, generate_token, hash_string
from security.tokens import TokenService
from utils.email_templates import email_verification_email, welcome_email
from utils.responses import ApiError

logger = logging.getLogger(__name__)


class VerificationState(Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"

    @classmethod
    def of(cls, user: User) -> "VerificationState":
        return cls.VERIFIED if user.is_email_verified else cls.UNVERIFIED


@dataclass(frozen=True)
class VerificationStart:
    token: str
    expires_at: datetime
    sent: bool


@dataclass(frozen=True)
class VerificationResult:
    user: User
    token: str


class EmailVerificationFlow:

    def __init__(
        self,
        store: CredentialStore,
        tokens: TokenService,
        guard: BruteForceGuard,
        mailer,
        policy: SecurityPolicy,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._tokens = tokens
        self._guard = guard
        self._mailer = mailer
        self._policy = policy
        self._clock = clock

    def start(self, user: User) -> VerificationStart:
        otp = generate_otp()
        raw_token = generate_token()
        expires_at = self._clock() + self._policy.otp_ttl

        self._store.update_user(
            user,
            two_factor_otp=otp,
            email_verify_token=hash_string(raw_token),
            email_verify_expires=expires_at,
        )

        html = email_verification_email(
            self._policy.app_name,
            user.display_name,
            otp,
            f"{self._policy.frontend_url}/auth/verify-email?token={raw_token}",
            int(self._policy.otp_ttl.total_seconds() // 60),
        )
        sent = self._mailer.send(user.email, f"{self._policy.app_name} - Verify your email", html)
        if sent:
            logger.info("Verification email sent", extra={"user_id": user.id})
        else:
            logger.error("Verification email failed", extra={"user_id": user.id})
        return VerificationStart(token=raw_token, expires_at=expires_at, sent=sent)

    def check_token(self, token: Optional[str]) -> User:
        if not token:
            raise ApiError(400, "Verification token is required", "MISSING_TOKEN")
        user = self._store.find_user_by_verify_token(hash_string(token), self._clock())
        if user is None:
            logger.warning("Invalid or expired email verification token", extra={"token_prefix": token[:8]})
            raise ApiError(400, "Verification token is invalid or expired", "INVALID_TOKEN")
        return user

    def verify_with_otp(
        self,
        otp: Optional[str],
        token: Optional[str] = None,
        ip: Optional[str] = None,
        device_id: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> VerificationResult:
        if not otp:
            raise ApiError(400, "Verification code is required", "MISSING_OTP")
        otp = str(otp)
        ip = ip or "unknown"
        now = self._clock()

        owner = self._store.find_user_by_verify_token(hash_string(token), now) if token else None
        # guesses without a known owner are counted per client
        identifier = owner.email if owner is not None else f"verify-email:{ip}"
        self._guard.check(ip, identifier, device_id).raise_if_locked()

        if token:
            user = owner
            if user is not None and not constant_time_compare(otp, user.two_factor_otp or ""):
                logger.warning("Wrong OTP with a valid verification token", extra={"user_id": user.id})
                user = None
        else:
            user = self._store.find_unverified_user_by_otp(otp, now)

        if user is None or VerificationState.of(user) is VerificationState.VERIFIED:
            self._guard.record_attempt(
                identifier, False, ip, user_agent, device_id, owner.id if owner is not None else None
            )
            self._guard.check(ip, identifier, device_id).raise_if_locked()
            raise ApiError(400, "Verification code is invalid or expired", "INVALID_OTP")

        self._store.update_user(
            user,
            is_email_verified=True,
            two_factor_otp=None,
            email_verify_token=None,
            email_verify_expires=None,
        )

        self._guard.reset_failed_attempts(
            user.email,
            ip,
            device_id=device_id,
            user_id=user.id,
            user_agent=user_agent or "email-verification",
        )

        self._mailer.send_detached(
            user.email,
            f"Welcome to {self._policy.app_name}",
            welcome_email(self._policy.app_name, user.display_name, f"{self._policy.frontend_url}/auth/login"),
        )

        logger.info("Email verified", extra={"user_id": user.id})
        return VerificationResult(user=user, token=self._tokens.issue_session_token(user))

    def resend(self, email: Optional[str]) -> None:
        """Never tells the caller whether anything was sent."""
        if not isinstance(email, str):
            logger.warning("Verification resend without a usable email")
            return
        user = self._store.find_user_by_email(email)
        if user is None:
            logger.warning("Verification resend for unknown email")
            return
        if VerificationState.of(user) is VerificationState.VERIFIED:
            logger.info("Verification resend for verified account", extra={"user_id": user.id})
            return

        self.start_if_due(user)

    def start_if_due(self, user: User) -> Optional[VerificationStart]:
        """Like start, but returns None if the last code went out too recently."""
        if user.email_verify_expires is not None:
            issued_at = user.email_verify_expires - self._policy.otp_ttl
            if self._clock() - issued_at < self._policy.otp_resend_interval:
                logger.info("Verification restart throttled", extra={"user_id": user.id})
                return None
        return self.start(user)
