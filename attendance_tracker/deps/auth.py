from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request, status

from ..middlewares import principal_ctx_var
from ..services.access import AccessGate, Unauthenticated
from ..services.accounts import AccountService
from . import get_accounts


def get_gate(request: Request) -> AccessGate:
    return request.app.state.gate


def _set_principal(request: Request, user_id: int) -> None:
    principal = f"user:{user_id}"
    principal_ctx_var.set(principal)
    request.state.principal = principal
    request.state.user_id = user_id


async def require_user(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    gate: AccessGate = Depends(get_gate),
) -> int:
    """Resolve the bearer token to a user id or stop the request.

    Kept ``async`` so the principal context var is set on the request task and
    carried into the worker thread that runs the endpoint.
    """

    outcome = gate.verify(authorization)
    if isinstance(outcome, int):
        _set_principal(request, outcome)
        return outcome
    if isinstance(outcome, Unauthenticated):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=outcome.reason,
            headers={"WWW-Authenticate": "Bearer"},
        )
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=outcome.reason)


def require_account(
    user_id: int = Depends(require_user),
    accounts: AccountService = Depends(get_accounts),
) -> int:
    """Like :func:`require_user`, but 404 when the token names a deleted user."""

    if accounts.profile(user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user_id
