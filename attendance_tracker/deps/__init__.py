"""FastAPI dependencies that hand routers the objects built in ``create_app``."""

from __future__ import annotations

from fastapi import Request

from ..services.accounts import AccountService
from ..services.attendance import AttendanceEngine


def get_engine(request: Request) -> AttendanceEngine:
    return request.app.state.engine


def get_accounts(request: Request) -> AccountService:
    return request.app.state.accounts
