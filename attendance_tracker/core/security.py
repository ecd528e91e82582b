from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from .config import AppSettings
from .errors import ConfigurationError

ALGORITHM = "HS256"
AUDIENCE = "attendance-tracker-clients"
ISSUER = "attendance-tracker"


class TokenPayload(BaseModel):
    sub: str
    exp: datetime
    iat: datetime
    aud: str
    iss: str


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def require_secret(settings: AppSettings) -> str:
    secret = (settings.JWT_SECRET or "").strip()
    if not secret:
        raise ConfigurationError("JWT_SECRET is not configured")
    return secret


def issue_token(settings: AppSettings, subject: str, *, now: datetime | None = None) -> str:
    secret = require_secret(settings)
    issued_at = now or _now()
    payload: dict[str, Any] = {
        "sub": subject,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + timedelta(days=settings.JWT_TTL_DAYS)).timestamp()),
        "aud": AUDIENCE,
        "iss": ISSUER,
    }
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def decode_token(settings: AppSettings, token: str) -> TokenPayload:
    """Verify signature, expiry, audience and issuer, then parse the claims.

    Raises ``ValueError`` for anything wrong with the token itself and
    ``ConfigurationError`` when no signing secret is configured.
    """

    secret = require_secret(settings)
    try:
        decoded = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            audience=AUDIENCE,
            issuer=ISSUER,
        )
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    try:
        payload = TokenPayload.model_validate(decoded)
    except ValidationError as exc:
        raise ValueError("Invalid token payload") from exc
    if not payload.sub.strip():
        raise ValueError("Invalid token subject")
    return payload


def hash_password(plain: str, rounds: int = 10) -> str:
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False
