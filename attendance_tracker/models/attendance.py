"""SQLAlchemy model for attendance sessions.

A row is inserted with ``status = 'checked-in'`` and no ``check_out`` when a
user checks in, and updated exactly once to ``'checked-out'`` on check-out.
The partial unique index below is what keeps a user from holding two open
rows, no matter how many processes write to the table.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Text, text

from ..db.session import Base

STATUS_OPEN = "checked-in"
STATUS_CLOSED = "checked-out"

OPEN_SESSION_INDEX = "uq_attendance_open_session"
OPEN_SESSION_PREDICATE = f"status = '{STATUS_OPEN}'"


class Attendance(Base):
    __tablename__ = "attendance"
    __table_args__ = (
        Index(
            OPEN_SESSION_INDEX,
            "user_id",
            unique=True,
            sqlite_where=text(OPEN_SESSION_PREDICATE),
            postgresql_where=text(OPEN_SESSION_PREDICATE),
        ),
        Index("ix_attendance_user_check_in", "user_id", "check_in"),
        {"sqlite_autoincrement": True},
    )

    # Monotonic ids double as insertion order for history tie-breaks.
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    check_in = Column(DateTime(timezone=True), nullable=False)
    check_out = Column(DateTime(timezone=True), nullable=True)
    status = Column(Text, nullable=False, default=STATUS_OPEN)


__all__ = ["Attendance", "STATUS_OPEN", "STATUS_CLOSED", "OPEN_SESSION_INDEX"]
