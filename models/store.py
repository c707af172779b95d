"""
Typed read/write access to the auth tables.

Every write commits. Undoing a write is another write.
"""
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import or_

from models.db import db
from models.login_attempt import LoginAttempt
from models.trusted_device import TrustedDevice
from models.user import User


def _attempt_dimensions(ip: str, identifier: str, device_id: Optional[str]):
    clauses = [
        LoginAttempt.ip_address == ip,
        LoginAttempt.username_or_email == identifier,
    ]
    # an absent device id must not match every device-less row
    if device_id:
        clauses.append(LoginAttempt.device_id == device_id)
    return or_(*clauses)


class CredentialStore:

    # ---- users -----------------------------------------------------------

    def get_user(self, user_id) -> Optional[User]:
        if not user_id:
            return None
        return db.session.get(User, str(user_id))

    def find_user_by_username(self, username: str) -> Optional[User]:
        return User.query.filter_by(username=username).first()

    def find_user_by_email(self, email: str) -> Optional[User]:
        return User.query.filter_by(email=(email or "").strip().lower()).first()

    def find_user_by_identifier(self, identifier: str) -> Optional[User]:
        if "@" in identifier:
            return self.find_user_by_email(identifier)
        return self.find_user_by_username(identifier)

    def find_user_by_provider(self, provider: str, provider_id: str) -> Optional[User]:
        return User.query.filter_by(provider=provider, provider_id=provider_id).first()

    def find_user_by_verify_token(self, token_digest: str, now: datetime) -> Optional[User]:
        return (
            User.query
            .filter(User.email_verify_token == token_digest)
            .filter(User.email_verify_expires > now)
            .first()
        )

    def find_unverified_user_by_otp(self, otp: str, now: datetime) -> Optional[User]:
        return (
            User.query
            .filter(User.is_email_verified.is_(False))
            .filter(User.two_factor_otp == otp)
            .filter(User.email_verify_expires > now)
            .first()
        )

    def find_user_by_reset_token(self, token_digest: str, now: datetime) -> Optional[User]:
        return (
            User.query
            .filter(User.reset_password_token == token_digest)
            .filter(User.reset_password_expires > now)
            .first()
        )

    def username_exists(self, username: str) -> bool:
        return db.session.query(User.id).filter_by(username=username).first() is not None

    def add_user(self, user: User) -> User:
        db.session.add(user)
        db.session.commit()
        return user

    def update_user(self, user: User, **fields) -> User:
        for name, value in fields.items():
            if not hasattr(User, name):
                raise AttributeError(f"User has no field {name!r}")
            setattr(user, name, value)
        db.session.commit()
        return user

    def delete_users(self, users: Iterable[User]) -> int:
        users = list(users)
        if not users:
            return 0
        ids = [u.id for u in users]
        (
            LoginAttempt.query
            .filter(LoginAttempt.user_id.in_(ids))
            .update({LoginAttempt.user_id: None}, synchronize_session=False)
        )
        for user in users:
            db.session.delete(user)  # trusted devices go with the relationship cascade
        db.session.commit()
        return len(ids)

    def unverified_users_created_before(self, cutoff: datetime) -> List[User]:
        return (
            User.query
            .filter(User.is_email_verified.is_(False))
            .filter(User.created_at < cutoff)
            .all()
        )

    def unverified_users_due_warning(
        self,
        created_on_or_before: datetime,
        created_after: datetime,
        max_warnings: int,
        last_warned_before: datetime,
    ) -> List[User]:
        return (
            User.query
            .filter(User.is_email_verified.is_(False))
            .filter(User.created_at <= created_on_or_before)
            .filter(User.created_at > created_after)
            .filter(User.warning_email_count < max_warnings)
            .filter(or_(
                User.last_warning_email_sent_at.is_(None),
                User.last_warning_email_sent_at < last_warned_before,
            ))
            .all()
        )

    # ---- login attempts -------------------------------------------------

    def add_login_attempt(self, **fields) -> LoginAttempt:
        row = LoginAttempt(**fields)
        db.session.add(row)
        db.session.commit()
        return row

    def last_successful_attempt(self, ip: str, identifier: str, device_id: Optional[str]) -> Optional[LoginAttempt]:
        return (
            LoginAttempt.query
            .filter(_attempt_dimensions(ip, identifier, device_id))
            .filter(LoginAttempt.is_success.is_(True))
            .order_by(LoginAttempt.created_at.desc(), LoginAttempt.id.desc())
            .first()
        )

    def _failures_since(self, ip: str, identifier: str, device_id: Optional[str], since: datetime):
        return (
            LoginAttempt.query
            .filter(_attempt_dimensions(ip, identifier, device_id))
            .filter(LoginAttempt.is_success.is_(False))
            .filter(LoginAttempt.created_at > since)
        )

    def count_failures_since(self, ip: str, identifier: str, device_id: Optional[str], since: datetime) -> int:
        return self._failures_since(ip, identifier, device_id, since).count()

    def failures_since(self, ip: str, identifier: str, device_id: Optional[str], since: datetime) -> List[LoginAttempt]:
        return (
            self._failures_since(ip, identifier, device_id, since)
            .order_by(LoginAttempt.created_at.asc(), LoginAttempt.id.asc())
            .all()
        )

    def backfill_attempt_user(
        self, ip: str, identifier: str, device_id: Optional[str], since: datetime, user_id: str
    ) -> int:
        count = (
            LoginAttempt.query
            .filter(_attempt_dimensions(ip, identifier, device_id))
            .filter(LoginAttempt.user_id.is_(None))
            .filter(LoginAttempt.created_at >= since)
            .update({LoginAttempt.user_id: user_id}, synchronize_session=False)
        )
        db.session.commit()
        return count

    # ---- trusted devices -----------------------------------------------

    def find_trusted_device(self, user_id: str, device_id: str) -> Optional[TrustedDevice]:
        return TrustedDevice.query.filter_by(user_id=user_id, device_id=device_id).first()

    def upsert_trusted_device(self, user_id: str, device_id: str, expires_at: datetime) -> TrustedDevice:
        row = self.find_trusted_device(user_id, device_id)
        if row is None:
            row = TrustedDevice(user_id=user_id, device_id=device_id, expires_at=expires_at)
            db.session.add(row)
        else:
            row.expires_at = expires_at
        db.session.commit()
        return row

    def delete_trusted_devices(self, user_id: str) -> int:
        count = TrustedDevice.query.filter_by(user_id=user_id).delete()
        db.session.commit()
        return count

    def rollback(self) -> None:
        db.session.rollback()
