from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ..core.errors import ErrorEnvelope
from ..deps import get_accounts
from ..deps.auth import require_user
from ..services.accounts import AccountService, EmailTaken, InvalidLogin
from ..schemas.user import AuthResponse, LoginRequest, RegisterRequest, UserOut

router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/register", response_model=AuthResponse, status_code=201, summary="Create an account")
def register(payload: RegisterRequest, accounts: AccountService = Depends(get_accounts)):
    outcome = accounts.register(payload.email, payload.password, payload.full_name)
    if isinstance(outcome, EmailTaken):
        return ErrorEnvelope(status_code=status.HTTP_400_BAD_REQUEST, error="User with this email already exists")
    return AuthResponse(user=UserOut.from_user(outcome.user), token=outcome.token)


@router.post("/login", response_model=AuthResponse, summary="Exchange email and password for a token")
def login(payload: LoginRequest, accounts: AccountService = Depends(get_accounts)):
    outcome = accounts.login(payload.email, payload.password)
    if isinstance(outcome, InvalidLogin):
        return ErrorEnvelope(status_code=status.HTTP_401_UNAUTHORIZED, error="Invalid email or password")
    return AuthResponse(user=UserOut.from_user(outcome.user), token=outcome.token)


@router.get("/me", response_model=UserOut, summary="Current user's profile")
def me(user_id: int = Depends(require_user), accounts: AccountService = Depends(get_accounts)):
    user = accounts.profile(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserOut.from_user(user)
