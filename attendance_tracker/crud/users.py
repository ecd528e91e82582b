"""SQL-backed identity store."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from ..db.session import session_scope
from ..models.user import User as UserRow
from ..schemas.user import User


class EmailAlreadyRegistered(Exception):
    def __init__(self, email: str) -> None:
        super().__init__(f"{email} is already registered")
        self.email = email


def to_user(row: UserRow) -> User:
    created_at = row.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password,
        full_name=row.full_name,
        created_at=created_at,
    )


class SqlUserStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get(self, user_id: int) -> User | None:
        with session_scope(self._session_factory) as db:
            row = db.get(UserRow, user_id)
            return to_user(row) if row else None

    def get_by_email(self, email: str) -> User | None:
        with session_scope(self._session_factory) as db:
            row = db.execute(select(UserRow).where(UserRow.email == email)).scalars().first()
            return to_user(row) if row else None

    def create(self, *, email: str, password_hash: str, full_name: str, created_at: datetime | None = None) -> User:
        """Insert a user, or raise :class:`EmailAlreadyRegistered` on a taken email."""

        row = UserRow(
            email=email,
            password=password_hash,
            full_name=full_name,
            created_at=created_at or datetime.now(tz=timezone.utc),
        )
        with session_scope(self._session_factory) as db:
            db.add(row)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise EmailAlreadyRegistered(email) from exc
            db.refresh(row)
            return to_user(row)
