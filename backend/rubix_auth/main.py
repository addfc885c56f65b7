import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.roles import router as roles_router
from .config import Settings, get_settings
from .database import build_engine, build_session_factory
from .domain.ports.identity import TokenResolver
from .domain.ports.role_requests import RoleUnitOfWorkFactory
from .errors import (
    AppError,
    InternalError,
    ValidationError,
    error_payload,
    resolve_error_code,
)
from .infra.identity_toolkit import IdentityToolkitProvider
from .infra.redis import RedisSecureStore, get_async_redis_client
from .infra.sql import sql_unit_of_work
from .security.encryption import ValueCipher

logger = logging.getLogger("rubix_auth")


def _resolve_log_level(value: str) -> int:
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level_name: str) -> None:
    level = _resolve_log_level(level_name)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logger.setLevel(level)


def _log_error(request: Request, status_code: int, code: str, message: str, exc: Exception | None = None) -> None:
    request_id = request.headers.get("x-request-id")
    log_message = f"[{code}] path={request.url.path} request_id={request_id or 'n/a'} message={message}"
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(log_message, exc_info=exc)
    else:
        logger.warning(log_message)


def create_app(
    settings: Settings | None = None,
    *,
    uow_factory: RoleUnitOfWorkFactory | None = None,
    token_resolver: TokenResolver | None = None,
) -> FastAPI:
    """
    Build the role administration app.

    Collaborators passed in are used as-is; anything missing is built from
    settings when the app starts.
    """
    if uow_factory is None or token_resolver is None:
        settings = settings or get_settings()
    if settings is not None:
        configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = None
        redis_client = None
        if app.state.uow_factory is None:
            engine = build_engine(settings.database_url, echo=settings.debug)
            app.state.uow_factory = sql_unit_of_work(build_session_factory(engine))
        if app.state.token_resolver is None:
            redis_client = get_async_redis_client(settings.redis_url)
            app.state.token_resolver = IdentityToolkitProvider(
                api_key=settings.identity_api_key,
                token_store=RedisSecureStore(
                    redis_client, ValueCipher(settings.session_cache_secret)
                ),
                base_url=settings.identity_base_url,
                token_url=settings.identity_token_url,
                timeout_seconds=settings.identity_timeout_seconds,
            )
        logger.info("Starting application")

        yield

        if redis_client is not None:
            await redis_client.aclose()
        if engine is not None:
            await engine.dispose()
        logger.info("Application stopped")

    app = FastAPI(
        title=settings.app_name if settings else "Rubix Auth Core",
        debug=settings.debug if settings else False,
        lifespan=lifespan,
    )
    app.state.uow_factory = uow_factory
    app.state.token_resolver = token_resolver
    app.include_router(roles_router)

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        _log_error(request, exc.status_code, exc.code, exc.message, exc)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_payload(exc.code, exc.message, exc.details),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(
        request: Request, exc: HTTPException | StarletteHTTPException
    ) -> JSONResponse:
        code = resolve_error_code(exc.status_code)
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        _log_error(request, exc.status_code, code, message)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_payload(code, message),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        message = "Request validation failed"
        _log_error(request, status.HTTP_422_UNPROCESSABLE_ENTITY, ValidationError.code, message)
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_payload(ValidationError.code, message, exc.errors()),
        )

    @app.exception_handler(Exception)
    async def handle_unhandled_exception(request: Request, exc: Exception) -> JSONResponse:
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
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
