from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping


@dataclass(frozen=True)
class SecurityPolicy:
    """Security knobs, frozen at app construction and handed to each component."""

    jwt_secret: str
    session_ttl: timedelta = timedelta(days=1)
    remember_ttl: timedelta = timedelta(days=30)
    temp_token_ttl: timedelta = timedelta(minutes=10)

    bcrypt_rounds: int = 12

    max_login_attempts: int = 5
    attempt_window: timedelta = timedelta(minutes=30)
    lockout_duration: timedelta = timedelta(minutes=5)

    otp_ttl: timedelta = timedelta(minutes=10)
    otp_resend_interval: timedelta = timedelta(seconds=60)

    trusted_device_ttl: timedelta = timedelta(days=30)

    reset_token_ttl: timedelta = timedelta(minutes=10)
    reset_request_interval: timedelta = timedelta(seconds=60)

    username_max_suffix_attempts: int = 100

    cleanup_max_warnings: int = 3
    cleanup_warning_interval: timedelta = timedelta(days=1)

    app_name: str = "JobsDB"
    frontend_url: str = "http://localhost:3000"

    @classmethod
    def from_config(cls, config: Mapping) -> "SecurityPolicy":
        def seconds(name: str, default: int) -> timedelta:
            return timedelta(seconds=int(config.get(name, default)))

        return cls(
            jwt_secret=config.get("JWT_SECRET") or config["SECRET_KEY"],
            session_ttl=seconds("JWT_SESSION_TTL_SECONDS", 86400),
            remember_ttl=seconds("JWT_REMEMBER_TTL_SECONDS", 30 * 86400),
            temp_token_ttl=seconds("JWT_TEMP_TTL_SECONDS", 600),
            bcrypt_rounds=int(config.get("BCRYPT_ROUNDS", 12)),
            max_login_attempts=int(config.get("MAX_LOGIN_ATTEMPTS", 5)),
            attempt_window=seconds("LOGIN_ATTEMPT_WINDOW_SECONDS", 1800),
            lockout_duration=seconds("LOCKOUT_SECONDS", 300),
            otp_ttl=seconds("OTP_TTL_SECONDS", 600),
            otp_resend_interval=seconds("OTP_RESEND_INTERVAL_SECONDS", 60),
            trusted_device_ttl=seconds("TRUSTED_DEVICE_TTL_SECONDS", 30 * 86400),
            reset_token_ttl=seconds("RESET_TOKEN_TTL_SECONDS", 600),
            reset_request_interval=seconds("RESET_REQUEST_INTERVAL_SECONDS", 60),
            username_max_suffix_attempts=int(config.get("USERNAME_MAX_SUFFIX_ATTEMPTS", 100)),
            cleanup_max_warnings=int(config.get("ACCOUNT_CLEANUP_MAX_WARNINGS", 3)),
            cleanup_warning_interval=seconds("ACCOUNT_CLEANUP_WARNING_INTERVAL_SECONDS", 86400),
            app_name=config.get("APP_NAME", "JobsDB"),
            frontend_url=(config.get("FRONTEND_URL") or "http://localhost:3000").rstrip("/"),
        )
