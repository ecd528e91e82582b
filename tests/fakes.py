"""In-memory stand-ins used by the engine tests."""

from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone

from attendance_tracker.crud.attendance import OpenSessionExists
from attendance_tracker.schemas.attendance import AttendanceRecord, AttendanceStatus


class InMemoryAttendanceStore:
    """Dict-backed store that enforces one open record per user itself.

    ``read_delay`` makes ``find_open`` sleep after reading, which widens the
    window between the engine's check and its insert.
    """

    def __init__(self, read_delay: float = 0.0) -> None:
        self._lock = threading.Lock()
        self._rows: dict[int, AttendanceRecord] = {}
        self._next_id = 1
        self.read_delay = read_delay
        self.insert_attempts = 0

    def find_open(self, user_id: int) -> AttendanceRecord | None:
        with self._lock:
            found = next((r for r in self._rows.values() if r.user_id == user_id and r.is_open), None)
        if self.read_delay:
            time.sleep(self.read_delay)
        return found

    def create_open(self, user_id: int, check_in: datetime) -> AttendanceRecord:
        with self._lock:
            self.insert_attempts += 1
            if any(r.user_id == user_id and r.is_open for r in self._rows.values()):
                raise OpenSessionExists(user_id)
            return self._insert(user_id, check_in, None)

    def close(self, record_id: int, check_out: datetime) -> AttendanceRecord | None:
        with self._lock:
            row = self._rows.get(record_id)
            if row is None or not row.is_open:
                return None
            closed = row.model_copy(update={"check_out": check_out, "status": AttendanceStatus.CLOSED})
            self._rows[record_id] = closed
            return closed

    def list_for_user(self, user_id: int) -> list[AttendanceRecord]:
        # Deliberately unordered: the engine owns history ordering.
        with self._lock:
            rows = [r for r in self._rows.values() if r.user_id == user_id]
        return rows[::-1]

    def seed(self, user_id: int, check_in: datetime, check_out: datetime) -> AttendanceRecord:
        with self._lock:
            return self._insert(user_id, check_in, check_out)

    def all_records(self) -> list[AttendanceRecord]:
        with self._lock:
            return list(self._rows.values())

    def _insert(self, user_id: int, check_in: datetime, check_out: datetime | None) -> AttendanceRecord:
        record = AttendanceRecord(
            id=self._next_id,
            user_id=user_id,
            check_in=check_in,
            check_out=check_out,
            status=AttendanceStatus.OPEN if check_out is None else AttendanceStatus.CLOSED,
        )
        self._rows[record.id] = record
        self._next_id += 1
        return record


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self.now

    def advance(self, **kwargs) -> datetime:
        with self._lock:
            self.now = self.now + timedelta(**kwargs)
            return self.now
