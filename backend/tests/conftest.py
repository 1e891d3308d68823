"""Test fixtures for the PayFlow backend.

Every app gets its own in-memory SQLite database and runs its real
lifespan, so startup seeding has happened before the first request.
"""

import json
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional
from urllib.parse import parse_qsl

import pytest
from fastapi import APIRouter, FastAPI, Request
from httpx import ASGITransport, AsyncClient

# Keep the module-level app in payflow.main off the on-disk database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from payflow.config import Settings, reset_settings  # noqa: E402
from payflow.main import create_app  # noqa: E402
from payflow.middleware.security import media_type  # noqa: E402

ALLOWED_ORIGIN = "http://localhost:3000"


@pytest.fixture(autouse=True)
def _clean_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Build Settings isolated from the process environment's .env file."""

    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "database_url": "sqlite+aiosqlite://",
            "environment": "development",
            "frontend_url": ALLOWED_ORIGIN,
            "redis_url": None,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def client_for():
    """Async context manager yielding a client bound to a freshly started app."""

    @asynccontextmanager
    async def _client_for(
        settings: Settings, routers: Optional[dict[str, APIRouter]] = None
    ) -> AsyncGenerator[AsyncClient, None]:
        app = create_app(settings, routers=routers)
        async with app.router.lifespan_context(app):
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
                ac.app = app  # type: ignore[attr-defined]
                yield ac

    return _client_for


@pytest.fixture
async def app(settings: Settings) -> AsyncGenerator[FastAPI, None]:
    """FastAPI application with its lifespan entered."""
    app = create_app(settings)
    async with app.router.lifespan_context(app):
        yield app


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX AsyncClient bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def counting_router() -> tuple[APIRouter, list[str]]:
    """Router that records every request path it handles."""
    router = APIRouter()
    calls: list[str] = []

    @router.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE"])
    async def record(path: str):
        calls.append(path)
        return {"success": True, "path": path}

    return router, calls


@pytest.fixture
def failing_router() -> APIRouter:
    """Router whose handler raises, standing in for a broken downstream service."""
    router = APIRouter()

    @router.get("/boom")
    async def boom():
        try:
            raise ConnectionError("ledger node unreachable")
        except ConnectionError as e:
            raise RuntimeError("payment service exploded") from e

    return router


@pytest.fixture
def body_router() -> tuple[APIRouter, list[int]]:
    """Router that reads the raw body itself and records its size."""
    router = APIRouter()
    seen: list[int] = []

    @router.post("/{path:path}")
    async def charge(path: str, request: Request):
        body = await request.body()
        seen.append(len(body))
        return {"success": True, "size": len(body)}

    return router, seen


@pytest.fixture
def echo_router() -> APIRouter:
    """Router that echoes the query string and body exactly as it received them."""
    router = APIRouter()

    @router.post("/echo")
    async def echo(request: Request):
        raw = await request.body()
        if media_type(request.headers.get("content-type")) == "application/json":
            body = json.loads(raw)
        else:
            body = dict(parse_qsl(raw.decode("utf-8"), keep_blank_values=True))
        return {"query": dict(request.query_params), "body": body}

    return router
