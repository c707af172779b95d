"""
Sweep for accounts that never verified their email.

Accounts older than `warning_days` get a reminder (at most
ACCOUNT_CLEANUP_MAX_WARNINGS of them, one per warning interval); accounts
older than `deletion_days` are deleted. Safe to run repeatedly.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional
from urllib.parse import quote

from models.db import utcnow
from models.store import CredentialStore
from security.policy import SecurityPolicy
from utils.email_templates import deletion_warning_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleanupResult:
    deleted_count: int
    warning_emails_sent: int


def cleanup_unverified_accounts(
    store: CredentialStore,
    mailer,
    policy: SecurityPolicy,
    warning_days: int = 3,
    deletion_days: int = 7,
    send_warnings: bool = True,
    clock: Optional[Callable[[], datetime]] = None,
) -> CleanupResult:
    now = (clock or utcnow)()
    warning_cutoff = now - timedelta(days=warning_days)
    deletion_cutoff = now - timedelta(days=deletion_days)

    warnings_sent = 0
    if send_warnings:
        due = store.unverified_users_due_warning(
            created_on_or_before=warning_cutoff,
            created_after=deletion_cutoff,
            max_warnings=policy.cleanup_max_warnings,
            last_warned_before=now - policy.cleanup_warning_interval,
        )
        for user in due:
            deletes_at = user.created_at + timedelta(days=deletion_days)
            days_left = max(math.ceil((deletes_at - now).total_seconds() / 86400), 1)

            html = deletion_warning_email(
                policy.app_name,
                user.display_name,
                days_left,
                f"{policy.frontend_url}/auth/resend-verification?email={quote(user.email)}",
            )
            subject = f"{policy.app_name} - Your account will be deleted in {days_left} day{'s' if days_left != 1 else ''}"
            if not mailer.send(user.email, subject, html):
                logger.warning("Deletion warning not sent", extra={"user_id": user.id})
                continue

            store.update_user(
                user,
                last_warning_email_sent_at=now,
                warning_email_count=(user.warning_email_count or 0) + 1,
            )
            warnings_sent += 1

    expired = store.unverified_users_created_before(deletion_cutoff)
    deleted = store.delete_users(expired)

    logger.info(
        "Unverified account cleanup finished",
        extra={"deleted_count": deleted, "warning_emails_sent": warnings_sent},
    )
    return CleanupResult(deleted_count=deleted, warning_emails_sent=warnings_sent)
