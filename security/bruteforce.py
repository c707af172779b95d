"""
Brute-force / account-lockout protection.

Attempts are grouped by ip OR identifier OR device id, so rotating any single
dimension does not reset the count. Nothing is stored about the lock itself:
the state is recomputed from the login_attempts rows on every check.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from models.db import utcnow
from models.store import CredentialStore
from security.policy import SecurityPolicy
from utils.responses import ApiError

logger = logging.getLogger(__name__)


class LockState(Enum):
    UNLOCKED = "unlocked"
    LOCKED = "locked"


@dataclass(frozen=True)
class LockStatus:
    state: LockState
    attempts_remaining: int = 0
    locked_until: Optional[datetime] = None
    remaining_seconds: int = 0

    @property
    def locked(self) -> bool:
        return self.state is LockState.LOCKED

    @property
    def message(self) -> str:
        if not self.locked:
            return ""
        return lock_message(self.remaining_seconds)

    def raise_if_locked(self) -> None:
        if self.locked:
            raise ApiError(429, self.message, "ACCOUNT_LOCKED", lockoutRemaining=self.remaining_seconds)


def lock_message(remaining_seconds: int) -> str:
    minutes, seconds = divmod(max(int(remaining_seconds), 0), 60)
    return f"Account temporarily locked. Try again in {minutes}:{seconds:02d}."


class BruteForceGuard:

    def __init__(
        self,
        store: CredentialStore,
        policy: SecurityPolicy,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._max_attempts = policy.max_login_attempts
        self._window = policy.attempt_window
        self._lockout = policy.lockout_duration
        self._clock = clock

    def check(self, ip: str, identifier: str, device_id: Optional[str] = None) -> LockStatus:
        try:
            return self._evaluate(ip, identifier, device_id)
        except Exception:
            # fail open
            self._store.rollback()
            logger.exception("Lockout check failed; allowing attempt", extra={"identifier": identifier})
            return LockStatus(LockState.UNLOCKED, attempts_remaining=self._max_attempts)

    def _evaluate(self, ip: str, identifier: str, device_id: Optional[str]) -> LockStatus:
        now = self._clock()
        since = now - self._window

        last_success = self._store.last_successful_attempt(ip, identifier, device_id)
        if last_success is not None and last_success.created_at > since:
            since = last_success.created_at

        count = self._store.count_failures_since(ip, identifier, device_id, since)
        if count < self._max_attempts:
            return LockStatus(LockState.UNLOCKED, attempts_remaining=self._max_attempts - count)

        # Replay the failures: every N in a row starts a lockout, and a failure
        # landing after a lockout ended starts a new count.
        streak = 0
        locked_until = None
        for attempt in self._store.failures_since(ip, identifier, device_id, since):
            if locked_until is not None:
                if attempt.created_at < locked_until:
                    continue
                locked_until = None
            streak += 1
            if streak >= self._max_attempts:
                locked_until = attempt.created_at + self._lockout
                streak = 0

        if locked_until is not None and now < locked_until:
            remaining = math.ceil((locked_until - now).total_seconds())
            return LockStatus(
                LockState.LOCKED,
                attempts_remaining=0,
                locked_until=locked_until,
                remaining_seconds=max(remaining, 1),
            )
        return LockStatus(LockState.UNLOCKED, attempts_remaining=self._max_attempts - streak)

    def record_attempt(
        self,
        identifier: str,
        is_success: bool,
        ip: str,
        user_agent: Optional[str] = None,
        device_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> None:
        try:
            self._store.add_login_attempt(
                ip_address=ip,
                username_or_email=identifier,
                device_id=device_id,
                is_success=is_success,
                user_agent=(user_agent or "")[:255] or None,
                user_id=user_id,
                created_at=self._clock(),
            )
        except Exception:
            self._store.rollback()
            logger.exception("Could not record login attempt", extra={"identifier": identifier})

    def reset_failed_attempts(
        self,
        identifier: str,
        ip: str,
        device_id: Optional[str] = None,
        user_id: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """A success row ends the current streak for every matching dimension."""
        self.record_attempt(identifier, True, ip, user_agent, device_id, user_id)
        if not user_id:
            return
        try:
            self._store.backfill_attempt_user(
                ip, identifier, device_id, self._clock() - self._window, user_id
            )
        except Exception:
            self._store.rollback()
            logger.exception("Could not backfill login attempts", extra={"user_id": user_id})
