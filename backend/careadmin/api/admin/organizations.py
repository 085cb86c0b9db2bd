from fastapi import APIRouter, Depends

from ...auth.scope import OrganizationScopeFilter
from ...dependencies import RequestContext, get_request_context, get_scope_filter
from ...schemas.organization import OrganizationResponse

router = APIRouter(prefix="/organizations", tags=["admin-organizations"])


@router.get("/", response_model=list[OrganizationResponse])
async def list_organizations(
    context: RequestContext = Depends(get_request_context),
    scope: OrganizationScopeFilter = Depends(get_scope_filter),
):
    """
    Organizations visible to the current identity.

    An empty list is a normal answer, e.g. for an agent with no assignments.
    """
    organizations = await scope.accessible_organizations(context.identity)
    return [
        OrganizationResponse.model_validate(org)
        for org in sorted(organizations, key=lambda org: (org.name, str(org.id)))
    ]
