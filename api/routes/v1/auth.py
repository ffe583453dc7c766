"""
api/routes/v1/auth.py -- Registration, login, logout and profile endpoints.

Routes:
  POST /api/v1/auth/register   -- create account; returns first token (public)
  POST /api/v1/auth/login      -- password login; returns token (public)
  GET  /api/v1/auth/me         -- current user (requires auth)
  POST /api/v1/auth/logout     -- revoke every token of the caller (requires auth)

Rate limits (on top of the router-wide general limit applied in api/main.py):
  register: Settings.register_rate_limit per client (default 3 per hour)
  login:    Settings.login_rate_limit per client (default 5 per 15 minutes)
The login limit counts every attempt, so the sixth attempt inside a window
is rejected with 429 whether or not its credentials are correct.

Security:
  Cache-Control: no-store on every response that carries a token.
  Login failure responses never say whether the email exists.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import RateLimit, RouteClass
from api.models import (
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    UserResponse,
)
from auth.accounts import AccountService
from auth.dependencies import get_current_identity
from auth.models import Identity, Role

router = APIRouter()


def _no_store(content: dict, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=content)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/auth/register",
    response_model=RegisterResponse,
    status_code=201,
    dependencies=[Depends(RateLimit(RouteClass.register))],
)
async def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a customer or supplier account.

    Suppliers are created unapproved. The token returned here is refused with
    403 PendingApproval until an admin approves the account; it then starts
    working without a new login.
    """
    accounts: AccountService = request.app.state.accounts
    session = await accounts.register(
        email=body.email,
        password=body.password,
        role=body.role,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    user = session.user
    return _no_store(
        RegisterResponse(
            message="User registered successfully",
            user=UserResponse.from_user(user),
            token=session.token,
            requires_approval=user.role == Role.supplier and not user.is_approved,
        ).model_dump(mode="json"),
        status_code=201,
    )


@router.post(
    "/auth/login",
    response_model=LoginResponse,
    dependencies=[Depends(RateLimit(RouteClass.login))],
)
async def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password and return a bearer token."""
    accounts: AccountService = request.app.state.accounts
    session = await accounts.login(body.email, body.password)
    return _no_store(
        LoginResponse(
            message="Login successful",
            user=UserResponse.from_user(session.user),
            token=session.token,
        ).model_dump(mode="json")
    )


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
async def me(identity: Identity = Depends(get_current_identity)) -> MeResponse:
    """Return the live record of the authenticated user."""
    return MeResponse(user=UserResponse.from_user(identity.user))


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(request: Request, identity: Identity = Depends(get_current_identity)) -> MessageResponse:
    """Invalidate every outstanding token for the caller by bumping their epoch."""
    accounts: AccountService = request.app.state.accounts
    await accounts.logout(identity)
    return MessageResponse(message="Logout successful")
