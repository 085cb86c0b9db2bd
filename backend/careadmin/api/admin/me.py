from fastapi import APIRouter, Depends

from ...auth.permissions import capabilities_for
from ...dependencies import RequestContext, get_request_context
from ...schemas.user import CapabilitiesResponse, MeResponse, UserResponse

router = APIRouter(tags=["admin-me"])


@router.get("/me", response_model=MeResponse)
async def read_me(context: RequestContext = Depends(get_request_context)):
    """Identity this session is acting as, with its coarse capabilities."""
    identity = context.identity
    return MeResponse(
        user=UserResponse.model_validate(identity),
        impersonated_by=identity.impersonated_by,
        capabilities=CapabilitiesResponse.model_validate(capabilities_for(identity.role)),
    )
