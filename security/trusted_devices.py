import logging
from datetime import datetime
from typing import Callable, Optional

from models.db import utcnow
from models.store import CredentialStore
from security.policy import SecurityPolicy

logger = logging.getLogger(__name__)


class TrustedDeviceRegistry:
    """Devices that passed a 2FA challenge with "remember this device" ticked."""

    def __init__(
        self,
        store: CredentialStore,
        policy: SecurityPolicy,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._ttl = policy.trusted_device_ttl
        self._clock = clock

    def is_trusted(self, user_id: str, device_id: Optional[str]) -> bool:
        if not user_id or not device_id:
            return False
        try:
            row = self._store.find_trusted_device(user_id, device_id)
        except Exception:
            self._store.rollback()
            logger.exception("Trusted device lookup failed", extra={"user_id": user_id})
            return False
        return row is not None and row.expires_at > self._clock()

    def trust(self, user_id: str, device_id: str):
        # sliding expiry: trusting an already trusted device extends it
        expires_at = self._clock() + self._ttl
        row = self._store.upsert_trusted_device(user_id, device_id, expires_at)
        logger.info("Device trusted", extra={"user_id": user_id, "expires_at": expires_at})
        return row

    def revoke_all(self, user_id: str) -> int:
        count = self._store.delete_trusted_devices(user_id)
        if count:
            logger.info("Trusted devices revoked", extra={"user_id": user_id, "count": count})
        return count
