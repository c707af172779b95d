import os

from dotenv import load_dotenv

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

load_dotenv(os.path.join(BASE_DIR, ".env"))


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")
    JWT_SECRET = os.getenv("JWT_SECRET", SECRET_KEY)

    # SQLite database file stored next to app.py as jobboard_auth.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "jobboard_auth.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    APP_NAME = os.getenv("APP_NAME", "JobsDB")
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Token lifetimes
    JWT_SESSION_TTL_SECONDS = 24 * 60 * 60          # 1 day
    JWT_REMEMBER_TTL_SECONDS = 30 * 24 * 60 * 60    # 30 days ("remember me")
    JWT_TEMP_TTL_SECONDS = 10 * 60                  # 2FA pending

    # Password hashing
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Brute-force protection
    MAX_LOGIN_ATTEMPTS = 5
    LOGIN_ATTEMPT_WINDOW_SECONDS = 30 * 60
    LOCKOUT_SECONDS = 5 * 60

    # Email OTP (2FA + email verification)
    OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", "600"))
    OTP_RESEND_INTERVAL_SECONDS = 60

    # Trusted devices skip the 2FA challenge until they expire
    TRUSTED_DEVICE_TTL_SECONDS = int(os.getenv("TRUSTED_DEVICE_TTL_SECONDS", str(30 * 24 * 60 * 60)))

    # Password reset
    RESET_TOKEN_TTL_SECONDS = 10 * 60
    RESET_REQUEST_INTERVAL_SECONDS = 60

    # Federated sign-up
    USERNAME_MAX_SUFFIX_ATTEMPTS = 100

    # Unverified account cleanup (run by `flask cleanup-unverified`)
    ACCOUNT_CLEANUP_ENABLED = _env_bool("ACCOUNT_CLEANUP_ENABLED", "true")
    ACCOUNT_CLEANUP_WARNING_DAYS = int(os.getenv("ACCOUNT_CLEANUP_DAYS_WARNING", "3"))
    ACCOUNT_CLEANUP_DELETION_DAYS = int(os.getenv("ACCOUNT_CLEANUP_DAYS_DELETION", "7"))
    ACCOUNT_CLEANUP_MAX_WARNINGS = 3
    ACCOUNT_CLEANUP_WARNING_INTERVAL_SECONDS = 24 * 60 * 60

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", "true")
    SMTP_TIMEOUT_SECONDS = 10

    # Basic app settings
    DEBUG = False
