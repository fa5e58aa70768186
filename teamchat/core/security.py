"""JWT helpers.

Tokens are minted by the identity service. This service only verifies them;
``create_jwt`` exists for local tooling and tests.
"""

from datetime import datetime, timedelta, timezone

from jose import jwt

from teamchat.core.config import get_settings

settings = get_settings()

DEFAULT_EXPIRY = timedelta(minutes=60)


def create_jwt(
    subject: str,
    tenant_id: str,
    role: str,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or DEFAULT_EXPIRY)
    payload = {
        "sub": subject,
        "tid": tenant_id,
        "role": role,
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jose.JWTError on failure."""
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
