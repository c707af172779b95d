import re
from typing import List, Tuple

_USERNAME = re.compile(r"^[A-Za-z0-9_]+$")
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"\d")

USERNAME_MIN_LEN = 3
USERNAME_MAX_LEN = 20
EMAIL_MAX_LEN = 255
PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128


def validate_username(username) -> Tuple[bool, List[str]]:
    if not isinstance(username, str) or not username:
        return False, ["Username is required"]

    errors: List[str] = []
    if not _USERNAME.match(username):
        errors.append("Username may only contain letters, numbers and underscores")
    if len(username) < USERNAME_MIN_LEN or len(username) > USERNAME_MAX_LEN:
        errors.append(f"Username must be {USERNAME_MIN_LEN}-{USERNAME_MAX_LEN} characters")
    return (len(errors) == 0), errors


def validate_email(email) -> Tuple[bool, List[str]]:
    if not isinstance(email, str) or not email:
        return False, ["Email is required"]
    if len(email) > EMAIL_MAX_LEN or not _EMAIL.match(email):
        return False, ["Invalid email format"]
    return True, []


def validate_password(pw) -> Tuple[bool, List[str]]:
    errors: List[str] = []

    if not isinstance(pw, str):
        return False, ["Password must be a string"]

    if len(pw) < PASSWORD_MIN_LEN:
        errors.append(f"Password must be at least {PASSWORD_MIN_LEN} characters")
    if len(pw) > PASSWORD_MAX_LEN:
        errors.append(f"Password must be at most {PASSWORD_MAX_LEN} characters")

    if not _UPPER.search(pw):
        errors.append("Password must include at least 1 uppercase letter")
    if not _LOWER.search(pw):
        errors.append("Password must include at least 1 lowercase letter")
    if not _DIGIT.search(pw):
        errors.append("Password must include at least 1 number")
    # symbols are allowed but not required

    return (len(errors) == 0), errors


def mask_email(email: str) -> str:
    """al***@example.com"""
    local, _, domain = email.partition("@")
    if len(local) <= 2:
        return f"{local}@{domain}"
    return f"{local[:2]}{'*' * (len(local) - 2)}@{domain}"
