"""
auth/guards.py -- Ordered access guards evaluated against a resolved Identity.

Pattern: Chain of Responsibility with a fixed order. Each guard answers one
question with evaluate(identity) -> Decision. GuardPipeline walks its guards
in order and stops at the first denial. There are no dynamically built
closures: the authentication chain is the AUTHENTICATION_GUARDS tuple below,
and per-route role checks add one RoleGuard after it.

Order matters. The live-record check runs first so a revoked or deleted
account is reported as Revoked even if it was also deactivated.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from auth.errors import AuthError, Deactivated, Forbidden, PendingApproval, Revoked
from auth.models import Identity, Role


@dataclass(frozen=True)
class Decision:
    """Outcome of one guard: allowed, or denied with the error to surface."""

    allowed: bool
    denial: AuthError | None = None


ALLOW = Decision(allowed=True)


def deny(error: AuthError) -> Decision:
    return Decision(allowed=False, denial=error)


class Guard:
    """Base class. Subclasses implement evaluate()."""

    def evaluate(self, identity: Identity) -> Decision:
        raise NotImplementedError


class LiveRecordGuard(Guard):
    """The account must still exist and its epoch must match the token's."""

    def evaluate(self, identity: Identity) -> Decision:
        user = identity.user
        if user is None or user.token_version != identity.claims.token_version:
            return deny(Revoked())
        return ALLOW


class ActiveAccountGuard(Guard):
    def evaluate(self, identity: Identity) -> Decision:
        if identity.user is not None and not identity.user.is_active:
            return deny(Deactivated())
        return ALLOW


class SupplierApprovalGuard(Guard):
    """Suppliers stay locked out until an admin approves them."""

    def evaluate(self, identity: Identity) -> Decision:
        user = identity.user
        if user is not None and user.role == Role.supplier and not user.is_approved:
            return deny(PendingApproval())
        return ALLOW


class RoleGuard(Guard):
    """Allow only identities whose live role is in allowed_roles."""

    def __init__(self, allowed_roles: Iterable[Role | str]) -> None:
        self.allowed_roles = frozenset(Role(r) for r in allowed_roles)
        if not self.allowed_roles:
            raise ValueError("RoleGuard needs at least one allowed role.")

    def evaluate(self, identity: Identity) -> Decision:
        if identity.role not in self.allowed_roles:
            return deny(Forbidden())
        return ALLOW

    def __repr__(self) -> str:
        roles = ",".join(sorted(r.value for r in self.allowed_roles))
        return f"RoleGuard({roles})"


class GuardPipeline:
    """Run guards in order; the first denial wins."""

    def __init__(self, guards: Sequence[Guard]) -> None:
        self.guards = tuple(guards)

    def evaluate(self, identity: Identity) -> Decision:
        for guard in self.guards:
            decision = guard.evaluate(identity)
            if not decision.allowed:
                return decision
        return ALLOW


AUTHENTICATION_GUARDS: tuple[Guard, ...] = (
    LiveRecordGuard(),
    ActiveAccountGuard(),
    SupplierApprovalGuard(),
)
