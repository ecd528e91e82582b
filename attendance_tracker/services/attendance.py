"""Check-in / check-out state machine.

Each user is either checked out (no open record) or checked in (exactly one
open record). ``check_in`` and ``check_out`` move between the two states and
return the affected record; calling either one from the wrong state returns
:class:`AlreadyCheckedIn` / :class:`NotCheckedIn` instead of raising, so the
HTTP layer decides how to present the conflict.

Two mechanisms keep a user from ending up with two open records:

* a per-user lock around the read-then-insert pair, which serialises requests
  handled by this process;
* the store's own uniqueness guarantee (a partial unique index for the SQL
  store), which catches writers in other processes. A rejected insert is
  reported as :class:`AlreadyCheckedIn` with the record that won.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional, Protocol

from ..crud.attendance import OpenSessionExists
from ..schemas.attendance import AttendanceRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlreadyCheckedIn:
    # ``None`` only if the winning record was closed again before it could be read.
    record: Optional[AttendanceRecord]


@dataclass(frozen=True)
class NotCheckedIn:
    pass


class AttendanceStore(Protocol):
    def find_open(self, user_id: int) -> AttendanceRecord | None: ...

    def create_open(self, user_id: int, check_in: datetime) -> AttendanceRecord: ...

    def close(self, record_id: int, check_out: datetime) -> AttendanceRecord | None: ...

    def list_for_user(self, user_id: int) -> list[AttendanceRecord]: ...


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class UserLocks:
    """One mutex per user id, dropped again once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[int, list] = {}

    @contextmanager
    def hold(self, user_id: int) -> Iterator[None]:
        with self._guard:
            entry = self._entries.setdefault(user_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[user_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


class AttendanceEngine:
    def __init__(self, store: AttendanceStore, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock
        self._locks = UserLocks()

    def check_in(self, user_id: int) -> AttendanceRecord | AlreadyCheckedIn:
        with self._locks.hold(user_id):
            existing = self._store.find_open(user_id)
            if existing is not None:
                logger.info(
                    "attendance.check_in.conflict",
                    extra={"extra_data": {"user_id": user_id, "record_id": existing.id}},
                )
                return AlreadyCheckedIn(existing)
            try:
                record = self._store.create_open(user_id, self._clock())
            except OpenSessionExists:
                winner = self._store.find_open(user_id)
                logger.info(
                    "attendance.check_in.conflict",
                    extra={"extra_data": {"user_id": user_id, "record_id": winner.id if winner else None, "source": "store"}},
                )
                return AlreadyCheckedIn(winner)
        logger.info("attendance.check_in", extra={"extra_data": {"user_id": user_id, "record_id": record.id}})
        return record

    def check_out(self, user_id: int) -> AttendanceRecord | NotCheckedIn:
        with self._locks.hold(user_id):
            current = self._store.find_open(user_id)
            if current is None:
                logger.info("attendance.check_out.conflict", extra={"extra_data": {"user_id": user_id}})
                return NotCheckedIn()
            now = self._clock()
            if now < current.check_in:
                # Clock went backwards relative to the stored check-in; record a
                # zero-length session instead of a negative one.
                logger.warning(
                    "attendance.check_out.clamped",
                    extra={
                        "extra_data": {
                            "user_id": user_id,
                            "record_id": current.id,
                            "check_in": current.check_in.isoformat(),
                            "clock": now.isoformat(),
                        }
                    },
                )
                now = current.check_in
            closed = self._store.close(current.id, now)
            if closed is None:
                # Closed by a writer outside this process in the meantime.
                return NotCheckedIn()
        logger.info(
            "attendance.check_out",
            extra={"extra_data": {"user_id": user_id, "record_id": closed.id, "check_out": closed.check_out.isoformat()}},
        )
        return closed

    def history(self, user_id: int) -> list[AttendanceRecord]:
        """Every record for ``user_id``, latest check-in first.

        Records sharing a check-in time stay in insertion (id) order.
        """

        by_insertion = sorted(self._store.list_for_user(user_id), key=lambda record: record.id)
        return sorted(by_insertion, key=lambda record: record.check_in, reverse=True)
