from datetime import datetime
from typing import Callable

from flask import current_app

from models.db import utcnow
from models.store import CredentialStore
from security.bruteforce import BruteForceGuard
from security.email_verification import EmailVerificationFlow
from security.login import LoginFlow
from security.password_reset import PasswordResetFlow
from security.policy import SecurityPolicy
from security.tokens import TokenService
from security.trusted_devices import TrustedDeviceRegistry
from security.two_factor import TwoFactorFlow

EXTENSION_KEY = "auth"


class AuthServices:
    """Wires the auth components together once per app."""

    def __init__(self, policy: SecurityPolicy, mailer, clock: Callable[[], datetime] = utcnow):
        self.policy = policy
        self.mailer = mailer
        self.store = CredentialStore()
        self.tokens = TokenService(policy)
        self.guard = BruteForceGuard(self.store, policy, clock)
        self.devices = TrustedDeviceRegistry(self.store, policy, clock)
        self.two_factor = TwoFactorFlow(self.store, self.tokens, self.devices, self.guard, mailer, policy, clock)
        self.verification = EmailVerificationFlow(self.store, self.tokens, self.guard, mailer, policy, clock)
        self.password_reset = PasswordResetFlow(self.store, self.devices, mailer, policy, clock)
        self.login = LoginFlow(self.store, self.guard, self.tokens, self.verification, self.two_factor)

    def init_app(self, app) -> None:
        app.extensions[EXTENSION_KEY] = self


def get_services() -> AuthServices:
    return current_app.extensions[EXTENSION_KEY]
