from flask import Blueprint, jsonify

from models.db import utcnow

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
def health():
    return jsonify(success=True, status="ok", timestamp=utcnow().isoformat() + "Z"), 200
