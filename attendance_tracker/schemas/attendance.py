"""Attendance records as the engine and the API see them."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from ..models.attendance import STATUS_CLOSED, STATUS_OPEN


class AttendanceStatus(str, Enum):
    OPEN = STATUS_OPEN
    CLOSED = STATUS_CLOSED


class AttendanceRecord(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        json_schema_extra={
            "example": {
                "id": 1,
                "userId": 7,
                "checkIn": "2024-05-01T09:00:00Z",
                "checkOut": None,
                "status": "checked-in",
            }
        },
    )

    id: int
    user_id: int
    check_in: datetime
    check_out: Optional[datetime] = None
    status: AttendanceStatus

    @model_validator(mode="after")
    def _check_lifecycle(self) -> "AttendanceRecord":
        if (self.status is AttendanceStatus.OPEN) != (self.check_out is None):
            raise ValueError("an open record has no check_out and a closed one always has one")
        if self.check_out is not None and self.check_out < self.check_in:
            raise ValueError("check_out precedes check_in")
        return self

    @property
    def is_open(self) -> bool:
        return self.status is AttendanceStatus.OPEN


class CheckRequest(BaseModel):
    model_config = ConfigDict(json_schema_extra={"example": {"action": "check-in"}})

    action: Literal["check-in", "check-out"]


class AttendanceConflict(BaseModel):
    error: str
    attendance: Optional[AttendanceRecord] = None
