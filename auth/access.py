"""
auth/access.py -- Request authentication and role authorization.

authenticate() is the per-request state machine:
  1. Bearer token present?                      no  -> MissingCredentials (401)
  2. TokenService.verify() ok?                  no  -> MalformedToken / ExpiredToken (403)
  3. Live user loaded, epoch matches?           no  -> Revoked (403)
  4. Account active?                            no  -> Deactivated (403)
  5. Supplier approved (suppliers only)?        no  -> PendingApproval (403)
  6. Return the Identity.

Step 3 runs on every request. The token alone cannot say whether it has been
revoked, because revocation state lives only in the user record. Skipping
the lookup would leave logout and deactivation unenforced until the token
expires on its own.

authorize() adds a RoleGuard after authentication -> Forbidden (403).

Storage exceptions from the user lookup are not caught here. They surface as
a generic 500 from the API layer.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from auth.errors import InvalidToken, MissingCredentials
from auth.guards import AUTHENTICATION_GUARDS, Guard, GuardPipeline, RoleGuard
from auth.models import Identity, Role

if TYPE_CHECKING:
    from auth.store import UserStore
    from auth.tokens import TokenService

logger = logging.getLogger("marketplace.auth")

_BEARER_PREFIX = "bearer "


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an 'Authorization: Bearer <token>' value, or None."""
    if not authorization:
        return None
    if authorization[: len(_BEARER_PREFIX)].lower() != _BEARER_PREFIX:
        return None
    token = authorization[len(_BEARER_PREFIX) :].strip()
    return token or None


class AccessControl:
    """Resolves bearer tokens to identities and applies role checks."""

    def __init__(
        self,
        tokens: TokenService,
        store: UserStore,
        guards: Sequence[Guard] = AUTHENTICATION_GUARDS,
    ) -> None:
        self.tokens = tokens
        self.store = store
        self.pipeline = GuardPipeline(guards)

    def authenticate(self, authorization: str | None) -> Identity:
        """Return the Identity for an Authorization header value or raise an AuthError."""
        token = extract_bearer_token(authorization)
        if token is None:
            raise MissingCredentials()

        result = self.tokens.verify(token)
        if isinstance(result, InvalidToken):
            logger.info("Token rejected: %s", result.reason)
            raise result

        identity = Identity(claims=result, user=self.store.get_by_id(result.user_id))
        decision = self.pipeline.evaluate(identity)
        if not decision.allowed:
            logger.info("Authentication denied for user_id=%d: %s", result.user_id, decision.denial.reason)
            raise decision.denial
        return identity

    def authorize(self, identity: Identity, allowed_roles: Iterable[Role | str]) -> Identity:
        """Return identity unchanged if its role is allowed, else raise Forbidden."""
        guard = RoleGuard(allowed_roles)
        decision = guard.evaluate(identity)
        if not decision.allowed:
            logger.info(
                "Authorization denied for user_id=%d (role=%s, %r)",
                identity.user_id,
                identity.role.value,
                guard,
            )
            raise decision.denial
        return identity
