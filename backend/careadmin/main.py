import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.router import router as admin_router
from .background.audit_retention import AuditRetentionWorker
from .background.invitation_expiry import InvitationExpiryWorker
from .config import settings
from .crud.audit_log import AuditLogRepository
from .crud.invitation import InvitationRepository
from .crud.membership import MembershipRepository
from .database import AsyncSessionLocal, engine
from .errors import (
    AppError,
    AuthError,
    ConflictError,
    InternalError,
    NotFoundError,
    Unauthorized,
    ValidationError,
    error_payload,
    resolve_error_code,
)
from .infrastructure.notifier import LoggingInvitationNotifier
from .infrastructure.redis import close_redis, init_redis
from .services.audit import AuditService
from .services.impersonation import KeyedLock
from .services.invitations import InvitationLifecycle

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()


def _resolve_log_level(value: str) -> int:
    level = logging.getLevelName(value)
    return level if isinstance(level, int) else logging.INFO


log_level = _resolve_log_level(log_level_name)

if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
logger = logging.getLogger("careadmin")
logger.setLevel(log_level)


def _invitation_lifecycle_for(session: AsyncSession) -> InvitationLifecycle:
    return InvitationLifecycle(
        InvitationRepository(session),
        MembershipRepository(session),
        LoggingInvitationNotifier(),
        AuditService(AuditLogRepository(session)),
        ttl_days=settings.invitation_ttl_days,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application")
    if settings.debug:
        logger.warning("DEBUG=true, do not use in production")

    await init_redis(settings.redis_url)
    workers = [
        AuditRetentionWorker(
            session_factory=AsyncSessionLocal,
            retention_days=settings.audit_retention_days,
            interval_seconds=settings.audit_retention_interval_seconds,
        ),
        InvitationExpiryWorker(
            session_factory=AsyncSessionLocal,
            lifecycle_factory=_invitation_lifecycle_for,
            interval_seconds=settings.invitation_expiry_interval_seconds,
        ),
    ]
    for worker in workers:
        await worker.start()
    app.state.workers = workers

    yield

    for worker in workers:
        await worker.stop()
    await close_redis()
    logger.info("Application stopped")


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
# Shared by every request in this process; see ImpersonationSessionManager
app.state.impersonation_locks = KeyedLock()

app.include_router(admin_router)

SAFE_HTTP_MESSAGES: dict[int, str] = {
    status.HTTP_400_BAD_REQUEST: ValidationError.message,
    status.HTTP_401_UNAUTHORIZED: AuthError.message,
    status.HTTP_403_FORBIDDEN: Unauthorized.message,
    status.HTTP_404_NOT_FOUND: NotFoundError.message,
    status.HTTP_409_CONFLICT: ConflictError.message,
    status.HTTP_422_UNPROCESSABLE_ENTITY: ValidationError.message,
}


def _log_error(request: Request, status_code: int, code: str, message: str, exc: Exception | None = None) -> None:
    request_id = request.headers.get("x-request-id")
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(
            "[%s] path=%s request_id=%s message=%s",
            code,
            request.url.path,
            request_id or "n/a",
            message,
            exc_info=exc,
        )
    else:
        logger.warning(
            "[%s] path=%s request_id=%s message=%s",
            code,
            request.url.path,
            request_id or "n/a",
            message,
        )


@app.exception_handler(AppError)
async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    _log_error(request, exc.status_code, exc.code, exc.message, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(exc.code, exc.message, exc.details),
    )


@app.exception_handler(HTTPException)
async def handle_http_exception(
    request: Request, exc: HTTPException | StarletteHTTPException
) -> JSONResponse:
    safe_message = SAFE_HTTP_MESSAGES.get(
        exc.status_code,
        InternalError.message if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR else "Request failed",
    )
    detail = exc.detail
    detail_message = detail if isinstance(detail, str) else ""
    code = resolve_error_code(exc.status_code)
    _log_error(request, exc.status_code, code, detail_message.strip() or safe_message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(code, safe_message, detail),
    )


@app.exception_handler(StarletteHTTPException)
async def handle_starlette_http_exception(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return await handle_http_exception(request, exc)


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    message = "Request validation failed"
    _log_error(request, status.HTTP_422_UNPROCESSABLE_ENTITY, ValidationError.code, message, exc)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_payload(ValidationError.code, message, exc.errors()),
    )


@app.exception_handler(IntegrityError)
async def handle_integrity_error(request: Request, exc: IntegrityError) -> JSONResponse:
    message = "Request could not be completed due to a conflict"
    _log_error(request, status.HTTP_409_CONFLICT, ConflictError.code, message, exc)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=error_payload(ConflictError.code, message),
    )


@app.exception_handler(Exception)
async def handle_unhandled_exception(
    request: Request, exc: Exception
) -> JSONResponse:
    _log_error(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        InternalError.code,
        InternalError.message,
        exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_payload(InternalError.code, InternalError.message),
    )


@app.get("/health", tags=["health"])
async def healthcheck() -> Response:
    try:
        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Healthcheck database probe failed: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"status": "error"}
        )

    return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "ok"})
