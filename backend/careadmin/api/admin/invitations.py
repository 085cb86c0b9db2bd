from uuid import UUID

from fastapi import APIRouter, Depends, status

from ...auth.scope import OrganizationScopeFilter
from ...dependencies import (
    RequestContext,
    get_invitation_lifecycle,
    get_request_context,
    get_scope_filter,
)
from ...errors import NotFoundError
from ...schemas.invitation import InvitationCreate, InvitationResponse
from ...services.invitations import InvitationLifecycle

router = APIRouter(tags=["admin-invitations"])


@router.post(
    "/organizations/{organization_id}/invitations",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_invitation(
    organization_id: UUID,
    payload: InvitationCreate,
    context: RequestContext = Depends(get_request_context),
    lifecycle: InvitationLifecycle = Depends(get_invitation_lifecycle),
    scope: OrganizationScopeFilter = Depends(get_scope_filter),
):
    organization = await scope.get_organization(organization_id)
    if organization is None:
        raise NotFoundError("Organization not found")
    return await lifecycle.create(context.identity, organization, payload.email, payload.role)


@router.get(
    "/organizations/{organization_id}/invitations",
    response_model=list[InvitationResponse],
)
async def list_invitations(
    organization_id: UUID,
    context: RequestContext = Depends(get_request_context),
    lifecycle: InvitationLifecycle = Depends(get_invitation_lifecycle),
):
    return await lifecycle.list_for_organization(context.identity, organization_id)


@router.post("/invitations/{invitation_id}/cancel", response_model=InvitationResponse)
async def cancel_invitation(
    invitation_id: UUID,
    context: RequestContext = Depends(get_request_context),
    lifecycle: InvitationLifecycle = Depends(get_invitation_lifecycle),
):
    """Cancel a pending invitation. Repeating the call is a no-op."""
    return await lifecycle.cancel(context.identity, invitation_id)
