"""
Password login: lockout check, credential check, email verification gate,
then the 2FA state machine.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from models.store import CredentialStore
from models.user import LocalAccount, User
from security.bruteforce import BruteForceGuard
from security.email_verification import EmailVerificationFlow, VerificationState
from security.password import verify_password
from security.tokens import TokenService
from security.two_factor import TwoFactorFlow, TwoFactorState
from utils.audit import log_event
from utils.responses import ApiError

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid username/email or password"


@dataclass(frozen=True)
class LoginOutcome:
    user: User
    device_id: str
    state: TwoFactorState
    token: Optional[str] = None
    temp_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    @property
    def requires_two_factor(self) -> bool:
        return self.state is TwoFactorState.CHALLENGE_REQUIRED


class LoginFlow:

    def __init__(
        self,
        store: CredentialStore,
        guard: BruteForceGuard,
        tokens: TokenService,
        verification: EmailVerificationFlow,
        two_factor: TwoFactorFlow,
    ):
        self._store = store
        self._guard = guard
        self._tokens = tokens
        self._verification = verification
        self._two_factor = two_factor

    def login(
        self,
        identifier,
        password,
        device_id: Optional[str] = None,
        remember_me: bool = False,
        ip: str = "unknown",
        user_agent: Optional[str] = None,
    ) -> LoginOutcome:
        if not isinstance(identifier, str) or not identifier.strip() or not password:
            raise ApiError(400, "Username/email and password are required", "MISSING_CREDENTIALS")
        identifier = identifier.strip()
        device_id = device_id or str(uuid.uuid4())

        status = self._guard.check(ip, identifier, device_id)
        if status.locked:
            logger.warning("Login refused: locked", extra={"identifier": identifier, "ip": ip})
            log_event("LOGIN_LOCKED", metadata={"identifier": identifier, "seconds_left": status.remaining_seconds})
            status.raise_if_locked()

        user = self._store.find_user_by_identifier(identifier)
        reason = None
        if user is None:
            reason = "unknown_user"
        elif not isinstance(user, LocalAccount):
            reason = "federated_account"
        elif not verify_password(password, user.password_hash):
            reason = "wrong_password"

        if reason is not None:
            self._guard.record_attempt(identifier, False, ip, user_agent, device_id, user.id if user else None)
            logger.info("Login failed", extra={"identifier": identifier, "reason": reason})
            log_event("LOGIN_FAIL", user_id=user.id if user else None, metadata={"identifier": identifier, "reason": reason})

            status = self._guard.check(ip, identifier, device_id)
            status.raise_if_locked()
            raise ApiError(401, INVALID_CREDENTIALS, "INVALID_CREDENTIALS", attemptsRemaining=status.attempts_remaining)

        if VerificationState.of(user) is VerificationState.UNVERIFIED:
            # correct password, logged as a success
            self._guard.record_attempt(identifier, True, ip, user_agent, device_id, user.id)
            started = self._verification.start_if_due(user)
            logger.info(
                "Login blocked until email is verified",
                extra={"user_id": user.id, "code_sent": started is not None},
            )
            log_event("LOGIN_UNVERIFIED", user_id=user.id, entity="user", entity_id=user.id)
            if started is None:
                message = "Please verify your email before logging in. A code was sent recently, check your inbox"
            else:
                message = "Please verify your email before logging in. A new code has been sent"
            raise ApiError(
                403,
                message,
                "EMAIL_NOT_VERIFIED",
                requireEmailVerification=True,
                verificationToken=started.token if started is not None else None,
                email=user.email,
            )

        self._guard.reset_failed_attempts(identifier, ip, device_id, user.id, user_agent)

        state = self._two_factor.state_for(user, device_id)
        if state is TwoFactorState.CHALLENGE_REQUIRED:
            challenge = self._two_factor.issue_challenge(user, device_id)
            log_event("OTP_ISSUED", user_id=user.id, entity="user", entity_id=user.id)
            return LoginOutcome(
                user=user,
                device_id=device_id,
                state=state,
                temp_token=challenge.temp_token,
                expires_at=challenge.expires_at,
            )

        log_event("LOGIN_SUCCESS", user_id=user.id, metadata={"trusted_device": state is TwoFactorState.TRUSTED_DEVICE})
        return LoginOutcome(
            user=user,
            device_id=device_id,
            state=state,
            token=self._tokens.issue_session_token(user, remember_me=bool(remember_me)),
        )
