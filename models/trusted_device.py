from models.db import db, utcnow


class TrustedDevice(db.Model):
    __tablename__ = "trusted_devices"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    device_id = db.Column(db.String(128), nullable=False)

    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    user = db.relationship("User", back_populates="trusted_devices")

    __table_args__ = (
        # One trust record per device per user; repeat trust slides the expiry
        db.UniqueConstraint("user_id", "device_id", name="uq_trusted_device_user_device"),
    )
