"""SQLAlchemy model for registered users."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Index, Integer, Text

from ..db.session import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("uq_users_email", "email", unique=True),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True)
    email = Column(Text, nullable=False)
    # bcrypt hash; the column keeps its historical name.
    password = Column(Text, nullable=False)
    full_name = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


__all__ = ["User"]
