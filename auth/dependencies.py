"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_current_identity() authenticates the Authorization: Bearer header through
the AccessControl instance on app.state and stores the result on
request.state.identity for anything downstream that wants it.

RequireRoles(...) runs after get_current_identity() and applies a role check.
It is a small class rather than a closure factory so each route's allowed
role set is a plain, inspectable object.

Both are plain `def` functions. FastAPI runs sync dependencies in its
threadpool, so the live user lookup does not block the event loop.

auth/dependencies.py may import from fastapi (Depends/Request) because this
module is part of the FastAPI dependency injection system. It does not import
from api/.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.access import AccessControl
from auth.models import Identity, Role


def get_current_identity(request: Request) -> Identity:
    """Require a valid bearer token. Raises an AuthError subclass otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: Identity = Depends(get_current_identity)): ...
    """
    access: AccessControl = request.app.state.access
    identity = access.authenticate(request.headers.get("Authorization"))
    request.state.identity = identity
    return identity


class RequireRoles:
    """Dependency that admits only identities holding one of the given roles.

    Use as:
        require_admin = RequireRoles(Role.admin)
        @router.get("/admin-only")
        async def route(identity: Identity = Depends(require_admin)): ...
    """

    def __init__(self, *roles: Role) -> None:
        self.roles = tuple(Role(r) for r in roles)

    def __call__(self, request: Request, identity: Identity = Depends(get_current_identity)) -> Identity:
        access: AccessControl = request.app.state.access
        return access.authorize(identity, self.roles)


require_admin = RequireRoles(Role.admin)
# Supplier-facing routes also admit admins.
require_supplier = RequireRoles(Role.admin, Role.supplier)
