from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from sitejo.api.routes import auth, documents, ping, tickets, users, verify
from sitejo.core.config import Settings, get_settings
from sitejo.core.exceptions import (
    AuthenticationError,
    InputValidationError,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
    StateConflictError,
)
from sitejo.core.logging import configure_logging, init_tracer, shutdown_tracer
from sitejo.db.session import build_engine, build_session_factory
from sitejo.documents.service import DocumentService
from sitejo.documents.storage import LocalFileStorage
from sitejo.security.tokens import TokenCodec
from sitejo.services.database import DatabaseConnectionTester
from sitejo.tickets.repository import TicketRepository
from sitejo.tickets.service import TicketService
from sitejo.users.repository import UserRepository
from sitejo.users.service import UserService

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[ServiceError], int], ...] = (
    (InputValidationError, 422),
    (NotFoundError, 404),
    (PermissionDeniedError, 403),
    (StateConflictError, 409),
    (AuthenticationError, 401),
)


@dataclass(slots=True)
class Services:
    tickets: TicketService
    documents: DocumentService
    users: UserService
    db_tester: DatabaseConnectionTester


def build_services(
    settings: Settings,
    engine: AsyncEngine,
    session_factory: async_sessionmaker[AsyncSession],
) -> Services:
    """Wire repositories and services for one engine."""

    storage = LocalFileStorage(settings.storage_root)
    ticket_repository = TicketRepository(session_factory, engine=engine)
    user_repository = UserRepository(session_factory)
    token_codec = TokenCodec(
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        ttl_seconds=settings.access_token_ttl_seconds,
    )
    return Services(
        tickets=TicketService(ticket_repository, storage=storage, per_page=settings.tickets_per_page),
        documents=DocumentService(ticket_repository, storage, max_upload_bytes=settings.max_upload_bytes),
        users=UserService(user_repository, token_codec, password_rounds=settings.password_hash_rounds),
        db_tester=DatabaseConnectionTester(engine),
    )


def install_services(app: FastAPI, services: Services | None) -> None:
    app.state.ticket_service = services.tickets if services else None
    app.state.document_service = services.documents if services else None
    app.state.user_service = services.users if services else None
    app.state.db_tester = services.db_tester if services else None


async def _bootstrap_admin(settings: Settings, services: Services) -> None:
    if not settings.bootstrap_admin_configured:
        return
    await services.users.ensure_admin(
        name=settings.bootstrap_admin_name or "Administrator",
        email=settings.bootstrap_admin_email or "",
        nim_nip=settings.bootstrap_admin_nim_nip or "",
        password=settings.bootstrap_admin_password or "",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    app_logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = app_logger
    app.state.tracer_provider = tracer_provider
    install_services(app, None)
    db_engine: AsyncEngine | None = None
    try:
        db_engine = build_engine(settings.database_dsn, echo=settings.database_echo)
        services = build_services(settings, db_engine, build_session_factory(db_engine))
        await services.tickets.ensure_schema()
        await _bootstrap_admin(settings, services)
        install_services(app, services)
    except Exception:
        # Start anyway so /ping answers; service routes report 503.
        app_logger.exception("Service initialisation failed")
        install_services(app, None)
        if db_engine is not None:
            await db_engine.dispose()
            db_engine = None
    try:
        yield
    finally:
        if db_engine is not None:
            await db_engine.dispose()
        shutdown_tracer(tracer_provider)


def _error_body(message: str, errors: dict[str, list[str]] | None = None) -> dict[str, object]:
    body: dict[str, object] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


def register_exception_handlers(app: FastAPI) -> None:
    async def handle_service_error(request: Request, exc: ServiceError) -> JSONResponse:
        for error_type, status_code in _STATUS_BY_ERROR:
            if isinstance(exc, error_type):
                errors = exc.errors if isinstance(exc, InputValidationError) else None
                headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
                return JSONResponse(status_code=status_code, content=_error_body(exc.message, errors), headers=headers)
        logger.error("Unmapped service error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content=_error_body("Internal server error"))

    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors: dict[str, list[str]] = {}
        for error in exc.errors():
            location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "form")]
            errors.setdefault(".".join(location) or "request", []).append(str(error.get("msg", "Invalid value")))
        return JSONResponse(status_code=422, content=_error_body("The given data was invalid.", errors))

    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content=_error_body("Internal server error"))

    app.add_exception_handler(ServiceError, handle_service_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(Exception, handle_unexpected)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(ping.router)
    app.include_router(auth.router)
    app.include_router(tickets.router)
    app.include_router(documents.router)
    app.include_router(users.router)
    app.include_router(verify.router)
    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn; the ``sitejo`` console script."""

    settings = get_settings()
    # Logging is configured by the lifespan, not by uvicorn's defaults.
    uvicorn.run("sitejo.main:app", host=settings.api_host, port=settings.api_port, log_config=None)
