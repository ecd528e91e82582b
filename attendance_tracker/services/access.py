"""Bearer-token gate in front of every attendance operation."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi.security.utils import get_authorization_scheme_param

from ..core.config import AppSettings
from ..core.security import decode_token


@dataclass(frozen=True)
class Unauthenticated:
    """No usable ``Authorization: Bearer ...`` header was sent."""

    reason: str = "Access token required"


@dataclass(frozen=True)
class InvalidCredential:
    """A token was sent but did not verify (signature, expiry, claims)."""

    reason: str = "Invalid or expired token"


class AccessGate:
    def __init__(self, settings: AppSettings) -> None:
        self._settings = settings

    def verify(self, authorization: str | None) -> int | Unauthenticated | InvalidCredential:
        scheme, credentials = get_authorization_scheme_param(authorization)
        if scheme.lower() != "bearer" or not credentials.strip():
            return Unauthenticated()
        try:
            payload = decode_token(self._settings, credentials.strip())
        except ValueError:
            return InvalidCredential()
        if not (payload.sub.isascii() and payload.sub.isdigit()):
            return InvalidCredential()
        return int(payload.sub)
