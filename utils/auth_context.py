from functools import wraps

from flask import g, request

from security.services import get_services
from security.tokens import TokenError
from utils.responses import fail


def _bearer_token():
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def load_current_user():
    """Resolve the bearer token once per request; errors are kept for login_required."""
    g.user = None
    g.auth_error = None

    token = _bearer_token()
    if token is None:
        g.auth_error = (401, "Authentication required", "NO_TOKEN")
        return

    services = get_services()
    try:
        claims = services.tokens.decode(token)
    except TokenError as exc:
        g.auth_error = (401, exc.message, exc.code)
        return

    if claims.temp:
        g.auth_error = (401, "Two-factor verification required", "REQUIRES_2FA")
        return

    user = services.store.get_user(claims.user_id)
    if user is None:
        g.auth_error = (401, "User no longer exists", "USER_NOT_FOUND")
        return
    if not user.is_email_verified:
        g.auth_error = (403, "Please verify your email first", "EMAIL_NOT_VERIFIED")
        return

    g.user = user


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            status, message, code = getattr(g, "auth_error", None) or (401, "Authentication required", "NO_TOKEN")
            return fail(status, message, code)
        return fn(*args, **kwargs)
    return wrapper
