"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond trivial
properties). Stores and services do the work; routes map these to the
Pydantic transport models in api/models.py.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Closed set of marketplace roles.

    Subclassing str keeps the value JSON- and SQL-friendly while still letting
    Pydantic reject anything outside the set at the request boundary.
    """

    customer = "customer"
    supplier = "supplier"
    admin = "admin"


@dataclass
class User:
    """A marketplace account as held by the user store.

    email is always stored lowercased; UserStore normalizes on write and on
    lookup so that email comparison is case-insensitive.

    is_approved only matters for suppliers. Customers and admins are created
    approved; suppliers wait for an admin.

    token_version is the revocation epoch. Every token embeds the value it
    was issued under; bumping it invalidates all of them at once.
    """

    email: str
    role: Role
    password_hash: str = ""
    id: int | None = None
    first_name: str | None = None
    last_name: str | None = None
    is_active: bool = True
    is_approved: bool = True
    token_version: int = 0
    last_login: str | None = None
    created_at: str | None = None
    approved_by: int | None = None
    approved_at: str | None = None


@dataclass(frozen=True)
class TokenPayload:
    """Claims carried inside a signed bearer token. Never persisted."""

    user_id: int
    email: str
    role: Role
    token_version: int
    issued_at: int
    expires_at: int


@dataclass(frozen=True)
class Identity:
    """A verified token paired with the live user record it names.

    user is None when the account no longer exists; the guard pipeline turns
    that into a Revoked denial before any route sees the identity.
    """

    claims: TokenPayload
    user: User | None

    @property
    def role(self) -> Role:
        # The live record wins: a role change applies on the next request.
        return self.user.role if self.user is not None else self.claims.role

    @property
    def user_id(self) -> int:
        return self.claims.user_id
