"""Idempotent schema touch-ups applied at startup.

``create_all`` only creates missing tables. Tables that already exist (for
example from an earlier deployment) may lack the uniqueness indexes the
application depends on, so they are added here when absent.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, inspect, select
from sqlalchemy.engine import Engine

from ..models.attendance import STATUS_OPEN, Attendance
from ..models.user import User

logger = logging.getLogger(__name__)


class MigrationError(RuntimeError):
    pass


def _existing_indexes(engine: Engine, table: str) -> set[str]:
    return {record["name"] for record in inspect(engine).get_indexes(table) if record.get("name")}


def _users_with_several_open_sessions(engine: Engine) -> list[int]:
    stmt = (
        select(Attendance.user_id)
        .where(Attendance.status == STATUS_OPEN)
        .group_by(Attendance.user_id)
        .having(func.count(Attendance.id) > 1)
    )
    with engine.connect() as conn:
        return [row[0] for row in conn.execute(stmt)]


def _duplicate_emails(engine: Engine) -> list[str]:
    stmt = select(User.email).group_by(User.email).having(func.count(User.id) > 1)
    with engine.connect() as conn:
        return [row[0] for row in conn.execute(stmt)]


def run_migrations(engine: Engine) -> None:
    """Create any missing model index, refusing to paper over bad data."""

    checks = {
        User.__tablename__: _duplicate_emails,
        Attendance.__tablename__: _users_with_several_open_sessions,
    }
    for model in (User, Attendance):
        table = model.__table__
        present = _existing_indexes(engine, table.name)
        missing = [index for index in table.indexes if index.name not in present]
        if not missing:
            continue
        if any(index.unique for index in missing):
            offenders = checks[table.name](engine)
            if offenders:
                raise MigrationError(
                    f"cannot add unique index to {table.name}: conflicting rows for {offenders!r}"
                )
        for index in missing:
            index.create(bind=engine, checkfirst=True)
            logger.info("migration.index_created", extra={"extra_data": {"table": table.name, "index": index.name}})
