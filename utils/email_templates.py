from datetime import datetime, timezone
from html import escape

_LAYOUT = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; border: 1px solid #e0e0e0; border-radius: 5px;">
  <div style="text-align: center; margin-bottom: 20px;">
    <h1 style="color: #3b82f6;">{app}</h1>
    <p style="color: #666;">{heading}</p>
  </div>
  <div style="padding: 20px; background-color: #f9fafb; border-radius: 5px;">
    <p>Hi {name},</p>
    {body}
  </div>
  <div style="margin-top: 20px; padding-top: 20px; border-top: 1px solid #e0e0e0; text-align: center; color: #666; font-size: 12px;">
    <p>&copy; {year} {app}. All rights reserved.</p>
  </div>
</div>
"""

_CODE = (
    '<div style="text-align: center; margin: 30px 0;">'
    '<div style="font-size: 28px; letter-spacing: 8px; font-weight: bold; color: #3b82f6; '
    'background-color: #e0f2fe; padding: 15px; border-radius: 5px;">{code}</div></div>'
)

_BUTTON = (
    '<div style="text-align: center; margin: 30px 0;">'
    '<a href="{url}" style="background-color: #3b82f6; color: white; padding: 12px 24px; '
    'text-decoration: none; border-radius: 5px; font-weight: bold;">{label}</a></div>'
)


def _render(app: str, heading: str, name: str, body: str) -> str:
    return _LAYOUT.format(
        app=escape(app),
        heading=escape(heading),
        name=escape(name or "there"),
        body=body,
        year=datetime.now(timezone.utc).year,
    )


def two_factor_email(app: str, name: str, otp: str, verify_url: str, ttl_minutes: int) -> str:
    body = (
        "<p>Here is your sign-in verification code:</p>"
        + _CODE.format(code=escape(otp))
        + f"<p>This code expires in {ttl_minutes} minutes.</p>"
        + _BUTTON.format(url=escape(verify_url, quote=True), label="Open the verification page")
        + "<p>If you did not try to sign in, ignore this email or contact support.</p>"
    )
    return _render(app, "Two-factor verification code", name, body)


def email_verification_email(app: str, name: str, otp: str, verify_url: str, ttl_minutes: int) -> str:
    body = (
        "<p>Confirm your email address with this code:</p>"
        + _CODE.format(code=escape(otp))
        + _BUTTON.format(url=escape(verify_url, quote=True), label="Verify my email")
        + f"<p>The code and link expire in {ttl_minutes} minutes.</p>"
        + "<p>If you did not create an account, you can ignore this email.</p>"
    )
    return _render(app, "Verify your email address", name, body)


def password_reset_email(app: str, name: str, reset_url: str, ttl_minutes: int) -> str:
    body = (
        "<p>We received a request to reset your password. Use the button below to choose a new one:</p>"
        + _BUTTON.format(url=escape(reset_url, quote=True), label="Reset password")
        + f"<p>This link expires in {ttl_minutes} minutes.</p>"
        + "<p>If you did not ask for a reset, ignore this email or contact support.</p>"
    )
    return _render(app, "Password reset", name, body)


def deletion_warning_email(app: str, name: str, days_left: int, verify_url: str) -> str:
    body = (
        "<p>Your account has not been verified yet.</p>"
        + f"<p>Unverified accounts are removed automatically. Yours will be deleted in "
        + f"<strong>{days_left} day{'s' if days_left != 1 else ''}</strong> unless you verify your email.</p>"
        + _BUTTON.format(url=escape(verify_url, quote=True), label="Verify my account")
    )
    return _render(app, "Your account will be deleted soon", name, body)


def welcome_email(app: str, name: str, login_url: str) -> str:
    body = (
        f"<p>Your email is verified and your {escape(app)} account is ready.</p>"
        + _BUTTON.format(url=escape(login_url, quote=True), label="Start searching jobs")
    )
    return _render(app, "Welcome aboard", name, body)
