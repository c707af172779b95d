import uuid

from models.db import db, utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)

    # "local" or "federated"; picks the concrete account class on load
    account_type = db.Column(db.String(16), nullable=False)

    username = db.Column(db.String(20), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(120), nullable=True)
    profile_image = db.Column(db.String(512), nullable=True)

    password_hash = db.Column(db.String(255), nullable=True)  # None for federated accounts
    provider = db.Column(db.String(32), nullable=False, default="local")
    provider_id = db.Column(db.String(255), nullable=True, index=True)

    is_email_verified = db.Column(db.Boolean, default=False, nullable=False)
    email_verify_token = db.Column(db.String(128), nullable=True, index=True)  # sha256 of the link token
    email_verify_expires = db.Column(db.DateTime, nullable=True)

    two_factor_enabled = db.Column(db.Boolean, default=False, nullable=False)
    two_factor_otp = db.Column(db.String(6), nullable=True)
    two_factor_expires = db.Column(db.DateTime, nullable=True)
    last_temp_token = db.Column(db.Text, nullable=True)

    reset_password_token = db.Column(db.String(128), nullable=True, index=True)  # sha256 of the link token
    reset_password_expires = db.Column(db.DateTime, nullable=True)

    last_warning_email_sent_at = db.Column(db.DateTime, nullable=True)
    warning_email_count = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    trusted_devices = db.relationship(
        "TrustedDevice",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"polymorphic_on": account_type}

    @property
    def display_name(self) -> str:
        return self.full_name or self.username

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "fullName": self.full_name,
            "email": self.email,
            "profileImage": self.profile_image,
            "provider": self.provider,
            "twoFactorEnabled": self.two_factor_enabled,
            "isEmailVerified": self.is_email_verified,
        }

    def __repr__(self):
        return f"<{type(self).__name__} {self.email}>"


class LocalAccount(User):
    """Registered with a username + password; starts unverified."""

    __mapper_args__ = {"polymorphic_identity": "local"}


class FederatedAccount(User):
    """Created from an external identity provider; never has a password."""

    __mapper_args__ = {"polymorphic_identity": "federated"}
