"""SQL-backed attendance store.

This is the only module that knows about ``attendance`` rows; everything it
hands back is an :class:`AttendanceRecord`.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import asc, desc, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from ..db.session import session_scope
from ..models.attendance import STATUS_CLOSED, STATUS_OPEN, Attendance
from ..schemas.attendance import AttendanceRecord, AttendanceStatus


class OpenSessionExists(Exception):
    """The store refused a second open record for the same user."""

    def __init__(self, user_id: int) -> None:
        super().__init__(f"user {user_id} already has an open attendance record")
        self.user_id = user_id


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything we write is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_record(row: Attendance) -> AttendanceRecord:
    return AttendanceRecord(
        id=row.id,
        user_id=row.user_id,
        check_in=_as_utc(row.check_in),
        check_out=_as_utc(row.check_out),
        status=AttendanceStatus(row.status),
    )


class SqlAttendanceStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def find_open(self, user_id: int) -> AttendanceRecord | None:
        stmt = (
            select(Attendance)
            .where(Attendance.user_id == user_id, Attendance.status == STATUS_OPEN)
            .order_by(desc(Attendance.check_in), desc(Attendance.id))
            .limit(1)
        )
        with session_scope(self._session_factory) as db:
            row = db.execute(stmt).scalars().first()
            return to_record(row) if row else None

    def create_open(self, user_id: int, check_in: datetime) -> AttendanceRecord:
        """Insert an open record, or raise :class:`OpenSessionExists`."""

        with session_scope(self._session_factory) as db:
            row = Attendance(user_id=user_id, check_in=_as_utc(check_in), check_out=None, status=STATUS_OPEN)
            db.add(row)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                # The insert can also fail on the user foreign key; only the
                # open-session index is a conflict.
                if self.find_open(user_id) is not None:
                    raise OpenSessionExists(user_id) from None
                raise
            db.refresh(row)
            return to_record(row)

    def close(self, record_id: int, check_out: datetime) -> AttendanceRecord | None:
        """Close ``record_id`` if it is still open; ``None`` when it is not."""

        stmt = (
            update(Attendance)
            .where(Attendance.id == record_id, Attendance.status == STATUS_OPEN)
            .values(check_out=_as_utc(check_out), status=STATUS_CLOSED)
        )
        with session_scope(self._session_factory) as db:
            result = db.execute(stmt)
            db.commit()
            if result.rowcount != 1:
                return None
            row = db.get(Attendance, record_id)
            return to_record(row) if row else None

    def list_for_user(self, user_id: int) -> list[AttendanceRecord]:
        stmt = (
            select(Attendance)
            .where(Attendance.user_id == user_id)
            .order_by(desc(Attendance.check_in), asc(Attendance.id))
        )
        with session_scope(self._session_factory) as db:
            return [to_record(row) for row in db.execute(stmt).scalars().all()]
