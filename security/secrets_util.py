import hashlib
import hmac
import secrets

OTP_MIN = 100000
OTP_MAX = 999999


def generate_otp() -> str:
    """Six digits, uniform over 100000-999999."""
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def generate_token(nbytes: int = 32) -> str:
    return secrets.token_hex(nbytes)


def hash_string(value: str) -> str:
    # SHA-256 is fine for hashing random link tokens
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def constant_time_compare(a: str, b: str) -> bool:
    """
    True iff a == b. Both sides are padded to the longer length first so the
    work done does not depend on where they differ or on a length mismatch.
    """
    if not isinstance(a, str) or not isinstance(b, str):
        return False

    a_bytes = a.encode("utf-8")
    b_bytes = b.encode("utf-8")
    width = max(len(a_bytes), len(b_bytes))

    same_content = hmac.compare_digest(a_bytes.ljust(width, b"\0"), b_bytes.ljust(width, b"\0"))
    same_length = len(a_bytes) == len(b_bytes)
    return same_content & same_length
