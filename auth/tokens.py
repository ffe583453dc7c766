"""
auth/tokens.py -- Bearer token issuance, verification and revocation.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry the user id (sub), email, role,
       the revocation epoch (tv), iat and exp. The signing key and TTL are
       constructor arguments; TokenService never reads configuration itself.

  verify() never raises. It returns either a TokenPayload or an InvalidToken
       instance (MalformedToken / ExpiredToken) so a caller cannot mistake a
       swallowed parse exception for a valid token.

  Expiry is checked here as now >= exp rather than by jose. jose only rejects
       exp < now, which would let a token issued with a zero TTL live for the
       rest of its issuing second.

  verify() cannot see revocation. The epoch comparison against the live user
       record happens in auth/access.py on every request. revoke() bumps the
       epoch in the store; there is no denylist.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from jose import JWTError, jwt

from auth.errors import ExpiredToken, InvalidToken, MalformedToken
from auth.models import Role, TokenPayload, User

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("marketplace.auth")

_ALGORITHM = "HS256"

_REQUIRED_CLAIMS = ("sub", "email", "role", "tv", "iat", "exp")


class TokenService:
    """Signs and verifies marketplace bearer tokens.

    Usage:
        tokens = TokenService(settings.secret_key, settings.token_ttl_seconds, user_store)
        token = tokens.issue(user, user.token_version)
        result = tokens.verify(token)
        if isinstance(result, InvalidToken): ...
    """

    def __init__(self, secret_key: str, ttl_seconds: int, store: UserStore) -> None:
        if not secret_key:
            raise ValueError("TokenService requires a signing key.")
        self._secret_key = secret_key
        self.ttl_seconds = ttl_seconds
        self._store = store

    def issue(self, user: User, token_version: int, ttl_seconds: int | None = None) -> str:
        """Encode a signed token for user under the given revocation epoch.

        ttl_seconds overrides the configured TTL for this token only. A value
        <= 0 yields a token that is already expired.
        """
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        issued_at = int(time.time())
        claims = {
            "sub": str(user.id),
            "email": user.email,
            "role": Role(user.role).value,
            "tv": token_version,
            "iat": issued_at,
            "exp": issued_at + ttl,
        }
        return jwt.encode(claims, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> TokenPayload | InvalidToken:
        """Check signature, claim structure and expiry.

        Returns the decoded TokenPayload, or a MalformedToken / ExpiredToken
        instance. Does not consult the user store.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False, "verify_iat": False},
            )
        except JWTError:
            return MalformedToken()

        if any(name not in claims for name in _REQUIRED_CLAIMS):
            return MalformedToken()
        try:
            payload = TokenPayload(
                user_id=int(claims["sub"]),
                email=str(claims["email"]),
                role=Role(claims["role"]),
                token_version=int(claims["tv"]),
                issued_at=int(claims["iat"]),
                expires_at=int(claims["exp"]),
            )
        except (TypeError, ValueError):
            return MalformedToken()

        if time.time() >= payload.expires_at:
            return ExpiredToken()
        return payload

    def revoke(self, user_id: int) -> None:
        """Invalidate every outstanding token for user_id by bumping its epoch.

        A no-op (logged) for an unknown user_id. Storage errors propagate.
        """
        if self._store.increment_token_version(user_id):
            logger.info("Revoked all tokens for user_id=%d", user_id)
        else:
            logger.warning("Revocation requested for unknown user_id=%d", user_id)
