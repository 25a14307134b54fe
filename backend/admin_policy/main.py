import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, NoResultFound, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.router import router as api_router
from .config import settings
from .database import engine
from .domain.invariants import InvariantViolation
from .errors import (
    AppError,
    AuthError,
    ConflictError,
    InternalError,
    NotFoundError,
    PermissionError,
    ValidationError,
    error_payload,
    resolve_error_code,
)
from .infrastructure.redis import close_redis, init_redis

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
logger = logging.getLogger("admin_policy")
logger.setLevel(log_level)


def _health_response(status_text: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": status_text})


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application")
    if settings.debug:
        logger.warning("DEBUG=true - do not use in production")

    await init_redis(settings.redis_url)

    yield

    await close_redis()
    await engine.dispose()


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)

if settings.allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["content-type", "x-admin-id", "x-request-id"],
    )

app.include_router(api_router)


SAFE_HTTP_MESSAGES: dict[int, str] = {
    status.HTTP_400_BAD_REQUEST: ValidationError.message,
    status.HTTP_401_UNAUTHORIZED: AuthError.message,
    status.HTTP_403_FORBIDDEN: PermissionError.message,
    status.HTTP_404_NOT_FOUND: NotFoundError.message,
    status.HTTP_409_CONFLICT: ConflictError.message,
    status.HTTP_422_UNPROCESSABLE_ENTITY: ValidationError.message,
}

# Database lookups and writes that escape a service become client errors.
DATABASE_ERRORS: dict[type[Exception], tuple[int, str, str]] = {
    IntegrityError: (
        status.HTTP_409_CONFLICT,
        ConflictError.code,
        "Request could not be completed due to a conflict",
    ),
    NoResultFound: (
        status.HTTP_404_NOT_FOUND,
        NotFoundError.code,
        "Requested resource was not found",
    ),
}


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details=None,
    *,
    log_message: str | None = None,
    exc: Exception | None = None,
) -> JSONResponse:
    request_id = request.headers.get("x-request-id") or "n/a"
    line = f"[{code}] path={request.url.path} request_id={request_id} message={log_message or message}"
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(line, exc_info=exc)
    else:
        logger.warning(line)
    return JSONResponse(status_code=status_code, content=error_payload(code, message, details))


@app.exception_handler(AppError)
async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    return _error_response(request, exc.status_code, exc.code, exc.message, exc.details, exc=exc)


@app.exception_handler(InvariantViolation)
async def handle_invariant_violation(request: Request, exc: InvariantViolation) -> JSONResponse:
    # InvariantViolation logs itself at error level when raised.
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=error_payload(
            ConflictError.code, exc.message, {"invariant": exc.invariant, **exc.details}
        ),
    )


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        fallback = InternalError.message
    else:
        fallback = "Request failed"
    safe_message = SAFE_HTTP_MESSAGES.get(exc.status_code, fallback)
    detail_text = exc.detail.strip() if isinstance(exc.detail, str) else ""
    return _error_response(
        request,
        exc.status_code,
        resolve_error_code(exc.status_code),
        safe_message,
        exc.detail,
        log_message=detail_text or safe_message,
    )


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {key: value for key, value in error.items() if key in {"loc", "msg", "type"}}
        for error in exc.errors()
    ]
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        ValidationError.code,
        "Request validation failed",
        errors,
    )


@app.exception_handler(ValueError)
async def handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    reason = str(exc).strip() or "Invalid request"
    return _error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        ValidationError.code,
        "Invalid request",
        reason,
        log_message=reason,
    )


@app.exception_handler(IntegrityError)
@app.exception_handler(NoResultFound)
async def handle_database_error(request: Request, exc: Exception) -> JSONResponse:
    for error_type, (status_code, code, message) in DATABASE_ERRORS.items():
        if isinstance(exc, error_type):
            return _error_response(request, status_code, code, message)
    return await handle_unhandled_exception(request, exc)


@app.exception_handler(Exception)
async def handle_unhandled_exception(request: Request, exc: Exception) -> JSONResponse:
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        InternalError.code,
        InternalError.message,
        exc=exc,
    )


@app.get("/health", tags=["health"])
async def healthcheck() -> Response:
    try:
        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("health_check_failed error=%s", exc)
        return _health_response("error", status.HTTP_503_SERVICE_UNAVAILABLE)
    return _health_response("ok", status.HTTP_200_OK)
