"""Registration and login on top of the identity store."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..core.config import AppSettings
from ..core.security import hash_password, issue_token, require_secret, verify_password
from ..crud.users import EmailAlreadyRegistered, SqlUserStore
from ..schemas.user import User, normalize_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Authenticated:
    user: User
    token: str


@dataclass(frozen=True)
class EmailTaken:
    email: str


@dataclass(frozen=True)
class InvalidLogin:
    pass


class AccountService:
    def __init__(self, users: SqlUserStore, settings: AppSettings) -> None:
        self._users = users
        self._settings = settings

    def register(self, email: str, password: str, full_name: str) -> Authenticated | EmailTaken:
        # Fail before writing anything if tokens cannot be issued.
        require_secret(self._settings)
        email = normalize_email(email)
        if self._users.get_by_email(email) is not None:
            logger.info("account.register.duplicate")
            return EmailTaken(email)
        try:
            user = self._users.create(
                email=email,
                password_hash=hash_password(password, rounds=self._settings.BCRYPT_ROUNDS),
                full_name=full_name,
            )
        except EmailAlreadyRegistered:
            logger.info("account.register.duplicate")
            return EmailTaken(email)
        logger.info("account.register", extra={"extra_data": {"user_id": user.id}})
        return Authenticated(user=user, token=issue_token(self._settings, str(user.id)))

    def login(self, email: str, password: str) -> Authenticated | InvalidLogin:
        require_secret(self._settings)
        user = self._users.get_by_email(normalize_email(email))
        if user is None or not verify_password(password, user.password_hash):
            logger.info("account.login.rejected")
            return InvalidLogin()
        logger.info("account.login", extra={"extra_data": {"user_id": user.id}})
        return Authenticated(user=user, token=issue_token(self._settings, str(user.id)))

    def profile(self, user_id: int) -> User | None:
        return self._users.get(user_id)
