from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status

from ..core.errors import ErrorEnvelope
from ..deps import get_engine
from ..deps.auth import require_account
from ..schemas.attendance import AttendanceConflict, AttendanceRecord, CheckRequest
from ..services.attendance import AlreadyCheckedIn, AttendanceEngine, NotCheckedIn

router = APIRouter(prefix="/api/attendance", tags=["attendance"])


@router.post(
    "/check",
    response_model=AttendanceRecord,
    status_code=status.HTTP_200_OK,
    responses={
        201: {"model": AttendanceRecord, "description": "Checked in"},
        400: {"model": AttendanceConflict, "description": "Already checked in / not checked in"},
        404: {"description": "Token names a user that no longer exists"},
    },
    summary="Check in or check out",
)
def check(
    payload: CheckRequest,
    request: Request,
    response: Response,
    user_id: int = Depends(require_account),
    engine: AttendanceEngine = Depends(get_engine),
):
    request.state.action = payload.action
    if payload.action == "check-in":
        outcome = engine.check_in(user_id)
        if isinstance(outcome, AlreadyCheckedIn):
            request.state.outcome = "already-checked-in"
            extra = {}
            if outcome.record is not None:
                extra["attendance"] = outcome.record.model_dump(mode="json", by_alias=True)
            return ErrorEnvelope(
                status_code=status.HTTP_400_BAD_REQUEST,
                error="You are already checked in",
                extra=extra,
            )
        request.state.outcome = outcome.status.value
        request.state.attendance_id = outcome.id
        response.status_code = status.HTTP_201_CREATED
        return outcome

    outcome = engine.check_out(user_id)
    if isinstance(outcome, NotCheckedIn):
        request.state.outcome = "not-checked-in"
        return ErrorEnvelope(status_code=status.HTTP_400_BAD_REQUEST, error="You are not currently checked in")
    request.state.outcome = outcome.status.value
    request.state.attendance_id = outcome.id
    return outcome


@router.get("/me", response_model=list[AttendanceRecord], summary="Attendance history, latest first")
def my_history(user_id: int = Depends(require_account), engine: AttendanceEngine = Depends(get_engine)):
    return engine.history(user_id)
