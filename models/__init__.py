from .db import db
from .user import User, LocalAccount, FederatedAccount
from .trusted_device import TrustedDevice
from .login_attempt import LoginAttempt
from .audit_log import AuditLog
