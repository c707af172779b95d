from models.db import db, utcnow


class LoginAttempt(db.Model):
    __tablename__ = "login_attempts"

    id = db.Column(db.Integer, primary_key=True)

    # Each dimension is tracked on its own so rotating one of them does not reset the count
    ip_address = db.Column(db.String(64), nullable=False)
    username_or_email = db.Column(db.String(255), nullable=False)  # as typed, not normalized
    device_id = db.Column(db.String(128), nullable=True)

    is_success = db.Column(db.Boolean, default=False, nullable=False)
    user_agent = db.Column(db.String(255), nullable=True)

    # set on success, or backfilled once the identifier is tied to a user
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        db.Index("ix_login_attempts_ip_created", "ip_address", "created_at"),
        db.Index("ix_login_attempts_identifier_created", "username_or_email", "created_at"),
        db.Index("ix_login_attempts_device_created", "device_id", "created_at"),
        db.Index("ix_login_attempts_user_created", "user_id", "created_at"),
    )
