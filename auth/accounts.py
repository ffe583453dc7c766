"""
auth/accounts.py -- Account lifecycle: registration, login, logout, admin actions.

AccountService orchestrates CredentialStore, TokenService and UserStore for
the account routes. Route handlers stay thin: they validate input, call one
method here, and shape the response.

Concurrency:
  bcrypt work goes through CredentialStore's dedicated pool. Blocking store
  calls go through starlette's run_in_threadpool. Neither runs on the event
  loop thread.

Security:
  Unknown email and wrong password raise the same CredentialMismatch and cost
  the same bcrypt work, so login responses do not reveal which accounts exist.
  Deactivation bumps the revocation epoch as well as clearing is_active, so
  outstanding tokens stop working even if the account is later reactivated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from starlette.concurrency import run_in_threadpool

from auth.credentials import CredentialStore
from auth.errors import (
    CredentialMismatch,
    Deactivated,
    EmailAlreadyRegistered,
    InvalidAccountAction,
    PendingApproval,
    UserNotFound,
)
from auth.models import Identity, Role, User
from auth.store import UserStore
from auth.tokens import TokenService

logger = logging.getLogger("marketplace.auth")


@dataclass(frozen=True)
class IssuedSession:
    """A user together with a freshly issued bearer token."""

    user: User
    token: str


class AccountService:
    def __init__(self, store: UserStore, credentials: CredentialStore, tokens: TokenService) -> None:
        self.store = store
        self.credentials = credentials
        self.tokens = tokens

    # ------------------------------------------------------------------
    # Self-service
    # ------------------------------------------------------------------

    async def register(
        self,
        email: str,
        password: str,
        role: Role = Role.customer,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> IssuedSession:
        """Create an account and issue its first token.

        Suppliers start unapproved. Their token is issued anyway but will be
        refused with PendingApproval until an admin approves the account.
        """
        if await run_in_threadpool(self.store.get_by_email, email) is not None:
            raise EmailAlreadyRegistered()

        password_hash = await self.credentials.hash_async(password)
        new_user = User(
            email=email,
            role=role,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            is_approved=role != Role.supplier,
        )
        try:
            user_id = await run_in_threadpool(self.store.create_user, new_user)
        except IntegrityError as exc:
            # Lost a race with a concurrent registration for the same email.
            raise EmailAlreadyRegistered() from exc

        user = await run_in_threadpool(self.store.get_by_id, user_id)
        logger.info("Registered user_id=%d role=%s approved=%s", user.id, user.role.value, user.is_approved)
        return IssuedSession(user=user, token=self.tokens.issue(user, user.token_version))

    async def login(self, email: str, password: str) -> IssuedSession:
        """Check credentials and account state, then issue a token under the current epoch."""
        user = await run_in_threadpool(self.store.get_by_email, email)
        if user is None:
            await self.credentials.dummy_verify_async(password)
            logger.info("Login failed: unknown email")
            raise CredentialMismatch()
        if not await self.credentials.verify_async(password, user.password_hash):
            logger.info("Login failed: bad password for user_id=%d", user.id)
            raise CredentialMismatch()
        if not user.is_active:
            raise Deactivated("Account has been deactivated")
        if user.role == Role.supplier and not user.is_approved:
            raise PendingApproval()

        await run_in_threadpool(self.store.update_last_login, user.id)
        user = await run_in_threadpool(self.store.get_by_id, user.id)
        logger.info("Login succeeded for user_id=%d", user.id)
        return IssuedSession(user=user, token=self.tokens.issue(user, user.token_version))

    async def logout(self, identity: Identity) -> None:
        """Revoke every token of the calling user, not just the presented one."""
        await run_in_threadpool(self.tokens.revoke, identity.user_id)

    # ------------------------------------------------------------------
    # Admin actions
    # ------------------------------------------------------------------

    async def pending_suppliers(self) -> list[User]:
        return await run_in_threadpool(self.store.list_pending_suppliers)

    async def approve_supplier(self, supplier_id: int, admin: Identity) -> User:
        target = await run_in_threadpool(self.store.get_by_id, supplier_id)
        if target is None or target.role != Role.supplier:
            raise UserNotFound("Supplier not found")
        approved = await run_in_threadpool(self.store.approve_supplier, supplier_id, admin.user_id)
        if approved is None:
            raise UserNotFound("Supplier not found")
        logger.info("Supplier user_id=%d approved by admin user_id=%d", supplier_id, admin.user_id)
        return approved

    async def deactivate_user(self, user_id: int, admin: Identity) -> User:
        if user_id == admin.user_id:
            raise InvalidAccountAction("You cannot deactivate your own account")
        deactivated = await run_in_threadpool(self.store.deactivate_user, user_id)
        if deactivated is None:
            raise UserNotFound()
        await run_in_threadpool(self.tokens.revoke, user_id)
        logger.info("User user_id=%d deactivated by admin user_id=%d", user_id, admin.user_id)
        return await run_in_threadpool(self.store.get_by_id, user_id)
