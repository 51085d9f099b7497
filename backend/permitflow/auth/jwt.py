"""JWT access token creation and validation.

Tokens are issued by the identity provider and carry the profile attributes
the workflow needs: user_type, staff_unit, staff_position.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from permitflow.config import settings

ALGORITHM = "HS256"


def create_access_token(
    user_id: str,
    *,
    user_type: str = "public",
    staff_unit: str | None = None,
    staff_position: str | None = None,
    email: str | None = None,
) -> str:
    """Create a short-lived access token (used by tests and local tooling)."""
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": str(user_id),
        "email": email,
        "user_type": user_type,
        "staff_unit": staff_unit,
        "staff_position": staff_position,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Decode and validate an access token. Raises JWTError on failure."""
    payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    if payload.get("type") != "access":
        raise JWTError("Invalid token type")
    return payload
