"""FastAPI application factory for the PayFlow backend."""

import logging
from contextlib import asynccontextmanager
from typing import Mapping, Optional

import redis.asyncio as aioredis
from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware

from payflow.api import accounts, system
from payflow.api.routes import ACCOUNTS, ROUTE_GROUPS, mount_not_found, mount_routes, unavailable_router
from payflow.config import Settings, get_settings
from payflow.db.engine import build_engine, build_session_factory, create_schema
from payflow.middleware.cors import CORSPolicyMiddleware, OriginPolicy
from payflow.middleware.errors import ErrorHandlerMiddleware, register_exception_handlers
from payflow.middleware.rate_limit import RateLimitMiddleware
from payflow.middleware.security import (
    InputSanitizerMiddleware,
    RequestGuardMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from payflow.services.accounts import AccountService
from payflow.services.rate_limiter import InMemoryRateLimiter, RedisRateLimiter
from payflow.services.tokens import TokenService
from payflow.startup import default_steps, run_startup

logger = logging.getLogger(__name__)


async def _connect_redis(app: FastAPI, settings: Settings) -> None:
    """Share rate-limit counters through Redis when it is reachable."""
    app.state.redis = None
    if not settings.redis_url:
        return
    client = aioredis.from_url(settings.redis_url, decode_responses=True)
    try:
        await client.ping()
    except Exception:
        logger.warning("Redis not available at %s; rate limiting stays in-process", settings.redis_url)
        await client.close()
        return
    app.state.redis = client
    app.state.rate_limiter = RedisRateLimiter(
        client,
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    logger.info("Redis connected at %s", settings.redis_url)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create tables, connect Redis, run the startup sequence. Shutdown: cleanup."""
    settings: Settings = app.state.settings
    logger.info("Starting %s backend (%s)", settings.project_name, settings.environment)

    await create_schema(app.state.engine)
    await _connect_redis(app, settings)

    steps = default_steps(settings, app.state.token_service, app.state.account_service)
    app.state.startup_outcomes = await run_startup(steps, timeout=settings.startup_step_timeout_seconds)

    yield

    # Shutdown
    logger.info("Shutting down %s backend", settings.project_name)
    if app.state.redis is not None:
        await app.state.redis.close()
    await app.state.engine.dispose()


def default_routers() -> dict[str, APIRouter]:
    routers = {prefix: unavailable_router(name) for prefix, name in ROUTE_GROUPS.items()}
    routers[ACCOUNTS] = accounts.router
    return routers


def create_app(
    settings: Optional[Settings] = None,
    routers: Optional[Mapping[str, APIRouter]] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Configuration; read from the environment when omitted.
        routers: Sub-handler routers keyed by prefix.  Groups left out
            get their default router.
    """
    settings = settings or get_settings()
    app = FastAPI(
        title=f"{settings.project_name} API",
        version=settings.version,
        description=settings.project_description,
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        openapi_url=None if settings.is_production else "/openapi.json",
    )

    app.state.settings = settings
    app.state.redis = None
    app.state.startup_outcomes = []
    app.state.rate_limiter = InMemoryRateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.state.engine = build_engine(settings.database_url)
    app.state.session_factory = build_session_factory(app.state.engine)
    app.state.token_service = TokenService(app.state.session_factory)
    app.state.account_service = AccountService(app.state.session_factory)

    policy = OriginPolicy(settings.allowed_origins, settings.cors_preview_origin_pattern)
    logger.info("CORS allow_origins=%s preview_pattern=%s", sorted(policy.allowed_origins), settings.cors_preview_origin_pattern)

    # Last added runs first: security headers -> origin gate -> CORS headers
    # -> rate limit -> body guard -> sanitizer -> access log -> gzip
    # -> error handler -> routes.
    app.add_middleware(ErrorHandlerMiddleware, show_details=settings.show_error_details)
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware, route_prefixes=list(ROUTE_GROUPS))
    app.add_middleware(InputSanitizerMiddleware)
    app.add_middleware(RequestGuardMiddleware, max_body_bytes=settings.max_body_bytes)
    app.add_middleware(RateLimitMiddleware, api_prefix=settings.api_prefix)
    app.add_middleware(CORSMiddleware, **policy.middleware_options())
    app.add_middleware(CORSPolicyMiddleware, policy=policy)
    app.add_middleware(SecurityHeadersMiddleware)

    register_exception_handlers(app, show_details=settings.show_error_details)

    # Routers
    app.include_router(system.router, tags=["system"])
    mount_routes(app, {**default_routers(), **(routers or {})})
    mount_not_found(app)

    return app


app = create_app()
