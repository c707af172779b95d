from flask import Blueprint, g, request

from security.registration import register as register_account
from security.services import get_services
from security.two_factor import OtpCheck, OtpResult
from security.validation import mask_email
from utils.audit import log_event
from utils.auth_context import login_required
from utils.responses import ApiError, ok

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

GENERIC_RESET_MESSAGE = "If an account exists for this email, a password reset link has been sent"
GENERIC_RESEND_MESSAGE = "If this email is registered and unverified, a new verification code has been sent"


def _client_ip() -> str:
    return request.headers.get("X-Forwarded-For", request.remote_addr) or "unknown"


# body fields that must be JSON strings when present
TEXT_FIELDS = (
    "username",
    "email",
    "password",
    "fullName",
    "usernameOrEmail",
    "deviceId",
    "token",
    "tempToken",
    "currentPassword",
    "newPassword",
)


def _json() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return {}
    for field in TEXT_FIELDS:
        value = data.get(field)
        if value is not None and not isinstance(value, str):
            raise ApiError(400, f"{field} must be a string", "VALIDATION_ERROR", field=field)
    return data


def _iso(value):
    return value.isoformat() + "Z" if value else None


@auth_bp.post("/register")
def register():
    data = _json()
    services = get_services()

    result = register_account(
        services.store,
        services.verification,
        services.policy,
        data.get("username"),
        data.get("email"),
        data.get("password"),
        data.get("fullName"),
    )
    log_event("REGISTER_SUCCESS", user_id=result.user.id, entity="user", entity_id=result.user.id)

    return ok(
        "Registration successful. Please check your email for the verification code",
        status=201,
        user=result.user.to_public_dict(),
        requireEmailVerification=True,
        verificationToken=result.verification_token,
    )


@auth_bp.post("/login")
def login():
    data = _json()
    outcome = get_services().login.login(
        data.get("usernameOrEmail") or data.get("email") or data.get("username"),
        data.get("password"),
        device_id=data.get("deviceId"),
        remember_me=bool(data.get("rememberMe", False)),
        ip=_client_ip(),
        user_agent=request.headers.get("User-Agent"),
    )

    if outcome.requires_two_factor:
        return ok(
            "A verification code has been sent to your email",
            requireTwoFactor=True,
            tempToken=outcome.temp_token,
            expiresAt=_iso(outcome.expires_at),
            deviceId=outcome.device_id,
        )

    return ok(
        "Login successful",
        token=outcome.token,
        user=outcome.user.to_public_dict(),
        deviceId=outcome.device_id,
    )


@auth_bp.post("/verify-otp")
def verify_otp():
    data = _json()
    otp = data.get("otp")
    temp_token = data.get("tempToken")
    if not otp or not temp_token:
        raise ApiError(400, "Verification code and token are required", "MISSING_FIELDS")

    result = get_services().two_factor.verify_otp(
        str(otp),
        temp_token,
        remember_device=bool(data.get("rememberDevice", False)),
        ip=_client_ip(),
        user_agent=request.headers.get("User-Agent"),
    )
    if result.check is not OtpCheck.OK:
        log_event("OTP_FAIL", metadata={"check": result.check.value})
    result.raise_for_failure()

    log_event("OTP_VERIFIED", user_id=result.user.id, entity="user", entity_id=result.user.id)
    return ok("Verification successful", token=result.token, user=result.user.to_public_dict())


@auth_bp.post("/resend-otp")
def resend_otp():
    temp_token = _json().get("tempToken")
    if not temp_token:
        raise ApiError(400, "Verification token is required", "MISSING_TOKEN")

    challenge = get_services().two_factor.regenerate_otp(temp_token)
    return ok(
        "A new verification code has been sent",
        tempToken=challenge.temp_token,
        expiresAt=_iso(challenge.expires_at),
    )


@auth_bp.post("/verify-temp-token")
def verify_temp_token():
    token = _json().get("token")
    if not token:
        raise ApiError(400, "Token is required", "MISSING_TOKEN")

    check = get_services().two_factor.verify_temp_token(token)
    if check is OtpCheck.INVALID_TOKEN:
        OtpResult(check).raise_for_failure()
    if check is OtpCheck.OUTDATED_TOKEN:
        # still a 200: the page exists, the link is just stale
        return ok(success=False, message="This verification link is no longer valid", code="TOKEN_OUTDATED")
    return ok("Token is valid")


@auth_bp.post("/two-factor")
@login_required
def toggle_two_factor():
    enabled = get_services().two_factor.set_two_factor(g.user, _json().get("enable"))
    log_event("2FA_ENABLED" if enabled else "2FA_DISABLED", user_id=g.user.id, entity="user", entity_id=g.user.id)
    return ok(
        "Two-factor authentication enabled" if enabled else "Two-factor authentication disabled",
        twoFactorEnabled=enabled,
    )


@auth_bp.get("/me")
@login_required
def me():
    return ok(user=g.user.to_public_dict())


@auth_bp.post("/verify-email")
def verify_email():
    data = _json()
    result = get_services().verification.verify_with_otp(
        data.get("otp"),
        token=data.get("token"),
        ip=_client_ip(),
        device_id=data.get("deviceId"),
        user_agent=request.headers.get("User-Agent"),
    )
    log_event("EMAIL_VERIFIED", user_id=result.user.id, entity="user", entity_id=result.user.id)
    return ok("Email verified", token=result.token, user=result.user.to_public_dict())


@auth_bp.post("/verify-email-token")
def verify_email_token():
    user = get_services().verification.check_token(_json().get("token"))
    return ok("Token is valid", email=mask_email(user.email), expiresAt=_iso(user.email_verify_expires))


@auth_bp.post("/resend-verification")
def resend_verification():
    email = _json().get("email")
    if not email:
        raise ApiError(400, "Email is required", "MISSING_EMAIL")
    get_services().verification.resend(email)
    return ok(GENERIC_RESEND_MESSAGE)


@auth_bp.post("/forgot-password")
def forgot_password():
    get_services().password_reset.forgot_password(_json().get("email"))
    return ok(GENERIC_RESET_MESSAGE)


@auth_bp.post("/verify-reset-token")
def verify_reset_token():
    user = get_services().password_reset.verify_reset_token(_json().get("token"))
    return ok("Token is valid", email=mask_email(user.email), expiresAt=_iso(user.reset_password_expires))


@auth_bp.post("/reset-password")
def reset_password():
    data = _json()
    user = get_services().password_reset.reset_password(data.get("token"), data.get("password"))
    log_event("PASSWORD_RESET", user_id=user.id, entity="user", entity_id=user.id)
    return ok("Password has been reset. You can now log in")


@auth_bp.post("/change-password")
@login_required
def change_password():
    data = _json()
    get_services().password_reset.change_password(g.user, data.get("currentPassword"), data.get("newPassword"))
    log_event("PASSWORD_CHANGED", user_id=g.user.id, entity="user", entity_id=g.user.id)
    return ok("Password changed")
