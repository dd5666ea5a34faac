from contextlib import asynccontextmanager
import logging
import time

import asyncpg  # type: ignore[import-untyped]
from fastapi import FastAPI
from fastapi.exception_handlers import http_exception_handler
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ella_rises.api.rendering import notice_redirect, render
from ella_rises.api.router import api_router
from ella_rises.core.config import get_settings
from ella_rises.core.security import AuthorizationError
from ella_rises.core.telemetry import TelemetryRuntime, setup_api_telemetry, shutdown_api_telemetry
from ella_rises.schemas.reports import HomePage
from ella_rises.services.reporting import load_home_page
from ella_rises.services.repository import RepositoryError, RepositoryUnavailableError, get_repository

settings = get_settings()
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Something went wrong. Please try again."


def _repository():
    # Honour dependency overrides so tests never reach a real database.
    return app.dependency_overrides.get(get_repository, get_repository)()


@asynccontextmanager
async def lifespan(_: FastAPI):
    try:
        await _repository().ping()
    except (RepositoryError, asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
        logger.warning("database ping failed at startup: %s", exc)
    try:
        yield
    finally:
        if _telemetry_runtime is not None:
            shutdown_api_telemetry(app, _telemetry_runtime)
        # Ensure asyncpg pool shuts down on app teardown.
        await get_repository().close()
        get_repository.cache_clear()


app = FastAPI(title=settings.app_name, lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)
_telemetry_runtime = setup_api_telemetry(app, settings)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    session_cookie=settings.session_cookie,
    max_age=settings.session_max_age_seconds,
    same_site="lax",
    https_only=settings.environment == "production",
)


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError) -> Response:
    logger.info("guard rejected path=%s reason=%s", request.url.path, type(exc).__name__)
    return notice_redirect(request, exc.redirect_to, exc.notice)


@app.exception_handler(RepositoryUnavailableError)
async def repository_unavailable_handler(request: Request, exc: RepositoryUnavailableError) -> Response:
    logger.error("database unavailable path=%s: %s", request.url.path, exc)
    return notice_redirect(request, "/", "The database is currently unavailable. Please try again later.")


async def database_error_handler(request: Request, exc: Exception) -> Response:
    logger.exception("database error path=%s", request.url.path, exc_info=exc)
    return notice_redirect(request, "/", GENERIC_FAILURE)


# Server-side errors and client-side connection failures (closed or broken connections).
for _database_error in (asyncpg.PostgresError, asyncpg.InterfaceError):
    app.add_exception_handler(_database_error, database_error_handler)


@app.exception_handler(OSError)
async def os_error_handler(request: Request, exc: OSError) -> Response:
    logger.exception("i/o error path=%s", request.url.path, exc_info=exc)
    return notice_redirect(request, "/", GENERIC_FAILURE)


@app.exception_handler(StarletteHTTPException)
async def not_found_handler(request: Request, exc: StarletteHTTPException) -> Response:
    if exc.status_code != 404:
        return await http_exception_handler(request, exc)
    try:
        page = await load_home_page(_repository(), events_limit=settings.not_found_events_limit)
    except (RepositoryError, asyncpg.PostgresError, asyncpg.InterfaceError, OSError):
        logger.exception("not-found page aggregates unavailable")
        page = HomePage()
    return render(request, "public/home.html", {"page": page, "not_found": True}, status_code=404)


app.include_router(api_router)
