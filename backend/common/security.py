"""
Security utilities: CORS origins, log sanitization, password hashing and session tokens
"""
import base64
import hashlib
import hmac
import json
import os
import logging
import secrets
import time
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

PASSWORD_ITERATIONS = 260000
SESSION_TTL_SECONDS = 86400  # 1 day


class InvalidTokenError(Exception):
    """Session token is malformed, forged or expired"""
    pass


def get_cors_origins() -> List[str]:
    """
    Return allowed CORS origins based on environment configuration

    Returns:
        List of origins, ["*"] when unrestricted
    """
    cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000")
    if cors_origins == "*":
        return ["*"]
    return [origin.strip() for origin in cors_origins.split(",") if origin.strip()]


def sanitize_log_data(data: Any) -> Any:
    """
    Remove sensitive information from log data

    Args:
        data: Data to sanitize (dict, list, or other)

    Returns:
        Sanitized data with sensitive fields redacted
    """
    if isinstance(data, list):
        return [sanitize_log_data(item) for item in data]

    if not isinstance(data, dict):
        return data

    sensitive_keys = ['password', 'token', 'key', 'secret', 'api_key', 'access_key', 'credentials']
    sanitized = {}

    for key, value in data.items():
        if any(sensitive in key.lower() for sensitive in sensitive_keys):
            sanitized[key] = '***REDACTED***'
        elif isinstance(value, (dict, list)):
            sanitized[key] = sanitize_log_data(value)
        else:
            sanitized[key] = value

    return sanitized


def hash_password(password: str, iterations: int = PASSWORD_ITERATIONS) -> str:
    """
    Hash a password with salted PBKDF2-SHA256

    Returns:
        "pbkdf2_sha256$<iterations>$<salt>$<hash>"
    """
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a hash produced by hash_password"""
    try:
        algorithm, iterations, salt, expected = password_hash.split("$")
    except (AttributeError, ValueError):
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _sign(payload: str, secret: str) -> str:
    return _b64encode(hmac.new(secret.encode(), payload.encode(), hashlib.sha256).digest())


def create_session_token(
    user_id: str,
    secret: str,
    expires_in: int = SESSION_TTL_SECONDS,
    now: Optional[float] = None
) -> str:
    """
    Issue a signed session token asserting a user identity

    Args:
        user_id: User store id
        secret: Signing key
        expires_in: Lifetime in seconds
        now: Issue time (epoch seconds), defaults to the current time

    Returns:
        "<payload>.<signature>", both base64url encoded
    """
    issued_at = int(now if now is not None else time.time())
    claims = {"userId": user_id, "iat": issued_at, "exp": issued_at + expires_in}
    payload = _b64encode(json.dumps(claims, separators=(",", ":")).encode())
    return f"{payload}.{_sign(payload, secret)}"


def verify_session_token(token: str, secret: str, now: Optional[float] = None) -> Dict[str, Any]:
    """
    Verify a session token and return its claims

    Raises:
        InvalidTokenError: bad format, bad signature or expired
    """
    try:
        payload, signature = token.split(".")
    except (AttributeError, ValueError):
        raise InvalidTokenError("Malformed token")

    if not hmac.compare_digest(_sign(payload, secret), signature):
        raise InvalidTokenError("Invalid token signature")

    try:
        claims = json.loads(_b64decode(payload))
    except ValueError:
        raise InvalidTokenError("Malformed token payload")

    current = now if now is not None else time.time()
    if not isinstance(claims, dict) or "userId" not in claims or claims.get("exp", 0) < current:
        raise InvalidTokenError("Token expired")

    return claims
