import hashlib
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from .auth.scope import OrganizationScopeFilter
from .config import settings
from .crud.audit_log import AuditLogRepository
from .crud.auth_session import AuthSessionRepository
from .crud.invitation import InvitationRepository
from .crud.membership import MembershipRepository
from .crud.user import UserRepository
from .database import get_session
from .domain.identity import Principal
from .errors import AuthError
from .infrastructure.impersonation_store import RedisIdentityOverlay, RedisImpersonationStore
from .infrastructure.notifier import LoggingInvitationNotifier
from .infrastructure.redis import RedisClient, get_redis
from .services.audit import AuditService
from .services.impersonation import ImpersonationSessionManager, KeyedLock
from .services.invitations import InvitationLifecycle
from .services.users import UserAdministration

bearer_scheme = HTTPBearer(auto_error=False)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class AuthenticatedActor:
    session_id: str
    actor: Principal


@dataclass(frozen=True)
class RequestContext:
    """The real actor plus the identity this request is authorized as."""

    session_id: str
    actor: Principal
    identity: Principal

    @property
    def is_impersonating(self) -> bool:
        return self.identity.impersonated_by is not None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session():
        yield session


def get_redis_client() -> RedisClient:
    return get_redis()


def get_user_directory(db: AsyncSession = Depends(get_db)) -> UserRepository:
    return UserRepository(db)


def get_membership_store(db: AsyncSession = Depends(get_db)) -> MembershipRepository:
    return MembershipRepository(db)


def get_audit_service(db: AsyncSession = Depends(get_db)) -> AuditService:
    return AuditService(AuditLogRepository(db))


def get_scope_filter(
    store: MembershipRepository = Depends(get_membership_store),
) -> OrganizationScopeFilter:
    return OrganizationScopeFilter(
        store,
        max_attempts=settings.scope_lookup_max_attempts,
        backoff_seconds=settings.scope_lookup_backoff_seconds,
    )


def get_impersonation_locks(request: Request) -> KeyedLock:
    return request.app.state.impersonation_locks


def get_impersonation_manager(
    redis: RedisClient = Depends(get_redis_client),
    audit: AuditService = Depends(get_audit_service),
    locks: KeyedLock = Depends(get_impersonation_locks),
) -> ImpersonationSessionManager:
    return ImpersonationSessionManager(
        RedisImpersonationStore(redis),
        RedisIdentityOverlay(redis, settings.impersonation_ttl_seconds),
        audit,
        ttl_seconds=settings.impersonation_ttl_seconds,
        locks=locks,
    )


def get_invitation_lifecycle(
    db: AsyncSession = Depends(get_db),
    store: MembershipRepository = Depends(get_membership_store),
    audit: AuditService = Depends(get_audit_service),
) -> InvitationLifecycle:
    return InvitationLifecycle(
        InvitationRepository(db),
        store,
        LoggingInvitationNotifier(),
        audit,
        ttl_days=settings.invitation_ttl_days,
    )


def get_user_administration(
    directory: UserRepository = Depends(get_user_directory),
    scope: OrganizationScopeFilter = Depends(get_scope_filter),
    audit: AuditService = Depends(get_audit_service),
) -> UserAdministration:
    return UserAdministration(directory, scope, audit)


async def get_authenticated_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    directory: UserRepository = Depends(get_user_directory),
) -> AuthenticatedActor:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthError("Not authenticated")

    auth_session = await AuthSessionRepository(db).get_active(
        hash_token(credentials.credentials), datetime.now(timezone.utc)
    )
    if auth_session is None:
        raise AuthError("Session not found or expired")

    actor = await directory.get_principal(auth_session.user_id)
    if actor is None:
        raise AuthError("User not found")
    if actor.is_banned():
        raise AuthError("Account is banned")

    return AuthenticatedActor(session_id=str(auth_session.id), actor=actor)


async def get_request_context(
    authenticated: AuthenticatedActor = Depends(get_authenticated_actor),
    manager: ImpersonationSessionManager = Depends(get_impersonation_manager),
    directory: UserRepository = Depends(get_user_directory),
) -> RequestContext:
    identity = await manager.effective_identity(
        authenticated.session_id, authenticated.actor, directory.get_principal
    )
    return RequestContext(
        session_id=authenticated.session_id,
        actor=authenticated.actor,
        identity=identity,
    )
