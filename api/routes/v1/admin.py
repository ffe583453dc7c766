"""
api/routes/v1/admin.py -- Admin-only account moderation endpoints.

Routes (all require role=admin via require_admin):
  GET  /api/v1/admin/pending-suppliers          -- suppliers awaiting approval
  POST /api/v1/admin/approve-supplier/{id}      -- approve a supplier
  POST /api/v1/admin/deactivate-user/{id}       -- deactivate an account and revoke its tokens

Approval does not touch the supplier's revocation epoch, so a token issued
at registration starts working as soon as the approval commits.
Deactivation blocks the account and bumps the epoch; an admin cannot
deactivate their own account.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import PendingSuppliersResponse, SupplierApprovedResponse, UserDeactivatedResponse, UserResponse
from auth.accounts import AccountService
from auth.dependencies import require_admin
from auth.models import Identity

router = APIRouter()


@router.get("/admin/pending-suppliers", response_model=PendingSuppliersResponse)
async def pending_suppliers(
    request: Request,
    admin: Identity = Depends(require_admin),
) -> PendingSuppliersResponse:
    accounts: AccountService = request.app.state.accounts
    suppliers = await accounts.pending_suppliers()
    return PendingSuppliersResponse(suppliers=[UserResponse.from_user(s) for s in suppliers])


@router.post("/admin/approve-supplier/{supplier_id}", response_model=SupplierApprovedResponse)
async def approve_supplier(
    request: Request,
    supplier_id: int,
    admin: Identity = Depends(require_admin),
) -> SupplierApprovedResponse:
    """Approve a pending supplier. 404 if the id is unknown or not a supplier."""
    accounts: AccountService = request.app.state.accounts
    supplier = await accounts.approve_supplier(supplier_id, admin)
    return SupplierApprovedResponse(
        message="Supplier approved successfully",
        supplier=UserResponse.from_user(supplier),
    )


@router.post("/admin/deactivate-user/{user_id}", response_model=UserDeactivatedResponse)
async def deactivate_user(
    request: Request,
    user_id: int,
    admin: Identity = Depends(require_admin),
) -> UserDeactivatedResponse:
    accounts: AccountService = request.app.state.accounts
    user = await accounts.deactivate_user(user_id, admin)
    return UserDeactivatedResponse(
        message="User deactivated successfully",
        user=UserResponse.from_user(user),
    )
