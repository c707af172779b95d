"""
Signed session and temporary (2FA pending) tokens.

A session token carries {id, email}. A temporary token additionally carries
temp=True, the device id the login came from and a random jti, so two temp
tokens issued for the same user within the same second still differ.
"""
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from security.policy import SecurityPolicy

ALGORITHM = "HS256"


class TokenError(Exception):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    email: str
    temp: bool
    device_id: Optional[str]
    expires_at: datetime


class TokenService:

    def __init__(self, policy: SecurityPolicy):
        self._secret = policy.jwt_secret
        self._session_ttl = policy.session_ttl
        self._remember_ttl = policy.remember_ttl
        self._temp_ttl = policy.temp_token_ttl

    def _sign(self, payload: dict, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = dict(payload, iat=now, exp=now + ttl)
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def issue_session_token(self, user, remember_me: bool = False) -> str:
        ttl = self._remember_ttl if remember_me else self._session_ttl
        return self._sign({"id": user.id, "email": user.email}, ttl)

    def issue_temp_token(self, user, device_id: Optional[str] = None) -> str:
        payload = {
            "id": user.id,
            "email": user.email,
            "temp": True,
            "deviceId": device_id,
            "jti": secrets.token_hex(8),
        }
        return self._sign(payload, self._temp_ttl)

    def decode(self, token: str) -> TokenClaims:
        if not token or not isinstance(token, str):
            raise TokenError("NO_TOKEN", "Authentication token is required")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenError("TOKEN_EXPIRED", "Token has expired")
        except jwt.InvalidTokenError:
            raise TokenError("INVALID_TOKEN", "Token is invalid")

        if not payload.get("id") or not payload.get("email"):
            raise TokenError("INVALID_TOKEN", "Token is invalid")

        return TokenClaims(
            user_id=str(payload["id"]),
            email=payload["email"],
            temp=bool(payload.get("temp", False)),
            device_id=payload.get("deviceId"),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    def decode_temp(self, token: str) -> TokenClaims:
        claims = self.decode(token)
        if not claims.temp:
            raise TokenError("INVALID_TOKEN", "Token is not a verification token")
        return claims
