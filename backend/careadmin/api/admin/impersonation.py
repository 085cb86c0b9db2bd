"""
Admin API endpoints for impersonation.

These endpoints always act as the real authenticated actor, never as the
overlaid identity, so an active impersonation can always be stopped.
"""
from fastapi import APIRouter, Depends

from ...crud.user import UserRepository
from ...dependencies import (
    AuthenticatedActor,
    get_authenticated_actor,
    get_impersonation_manager,
    get_user_directory,
)
from ...errors import NotFoundError
from ...schemas.impersonation import (
    ImpersonationStart,
    ImpersonationStartResponse,
    ImpersonationStatusResponse,
    ImpersonationStopResponse,
)
from ...services.impersonation import ImpersonationSessionManager

router = APIRouter(prefix="/impersonation", tags=["admin-impersonation"])


@router.post("/", response_model=ImpersonationStartResponse)
async def start_impersonation(
    payload: ImpersonationStart,
    authenticated: AuthenticatedActor = Depends(get_authenticated_actor),
    manager: ImpersonationSessionManager = Depends(get_impersonation_manager),
    directory: UserRepository = Depends(get_user_directory),
):
    target = await directory.get_principal(payload.target_user_id)
    if target is None:
        raise NotFoundError("User not found")
    result = await manager.start(authenticated.session_id, authenticated.actor, target)
    return ImpersonationStartResponse(
        actor_id=result.actor.id,
        target_id=result.overlay.id,
        started_at=result.started_at,
        requires_refresh=result.requires_refresh,
    )


@router.delete("/", response_model=ImpersonationStopResponse)
async def stop_impersonation(
    authenticated: AuthenticatedActor = Depends(get_authenticated_actor),
    manager: ImpersonationSessionManager = Depends(get_impersonation_manager),
):
    stopped = await manager.stop(authenticated.session_id, authenticated.actor)
    return ImpersonationStopResponse(stopped=stopped, requires_refresh=stopped)


@router.get("/", response_model=ImpersonationStatusResponse)
async def impersonation_status(
    authenticated: AuthenticatedActor = Depends(get_authenticated_actor),
    manager: ImpersonationSessionManager = Depends(get_impersonation_manager),
):
    return await manager.status(authenticated.session_id)
