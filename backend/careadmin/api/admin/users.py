"""
Admin API endpoints for user management.

Every endpoint narrows by organization scope before checking the
permission rules, so users outside the caller's scope read as 404.
"""
from uuid import UUID

from fastapi import APIRouter, Depends, status

from ...auth.scope import OrganizationScopeFilter
from ...dependencies import (
    RequestContext,
    get_request_context,
    get_scope_filter,
    get_user_administration,
)
from ...errors import NotFoundError
from ...schemas.user import BanRequest, RoleChange, UserCreate, UserResponse
from ...services.users import UserAdministration

router = APIRouter(prefix="/users", tags=["admin-users"])


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: UUID,
    context: RequestContext = Depends(get_request_context),
    users: UserAdministration = Depends(get_user_administration),
):
    return await users.get_user(context.identity, user_id)


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    context: RequestContext = Depends(get_request_context),
    users: UserAdministration = Depends(get_user_administration),
    scope: OrganizationScopeFilter = Depends(get_scope_filter),
):
    organization = await scope.get_organization(payload.organization_id)
    if organization is None:
        raise NotFoundError("Organization not found")
    return await users.create_user(
        context.identity,
        organization,
        email=payload.email,
        name=payload.name,
        role=payload.role,
    )


@router.patch("/{user_id}/role", response_model=UserResponse)
async def change_role(
    user_id: UUID,
    payload: RoleChange,
    context: RequestContext = Depends(get_request_context),
    users: UserAdministration = Depends(get_user_administration),
):
    return await users.change_role(context.identity, user_id, payload.role)


@router.post("/{user_id}/ban", response_model=UserResponse)
async def ban_user(
    user_id: UUID,
    payload: BanRequest,
    context: RequestContext = Depends(get_request_context),
    users: UserAdministration = Depends(get_user_administration),
):
    return await users.ban(
        context.identity,
        user_id,
        reason=payload.reason,
        expires_at=payload.expires_at,
    )


@router.post("/{user_id}/unban", response_model=UserResponse)
async def unban_user(
    user_id: UUID,
    context: RequestContext = Depends(get_request_context),
    users: UserAdministration = Depends(get_user_administration),
):
    return await users.unban(context.identity, user_id)
