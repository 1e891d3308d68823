import pytest
from httpx import AsyncClient

from payflow.config import LOCAL_DEV_ORIGINS
from payflow.exceptions import OriginNotAllowedError
from payflow.middleware.cors import OriginPolicy

PREVIEW_PATTERN = r"https://.+\.vercel\.app"


class TestOriginPolicy:
    def setup_method(self) -> None:
        self.policy = OriginPolicy(["http://localhost:3000", *LOCAL_DEV_ORIGINS], PREVIEW_PATTERN)

    def test_missing_origin_allowed(self) -> None:
        assert self.policy.is_allowed(None)
        assert self.policy.is_allowed("")

    @pytest.mark.parametrize("origin", ["http://localhost:3000", *LOCAL_DEV_ORIGINS])
    def test_listed_origins_allowed(self, origin: str) -> None:
        assert self.policy.is_allowed(origin)

    @pytest.mark.parametrize(
        "origin",
        ["https://feature-x.vercel.app", "https://afripayflow-git-main-team.vercel.app"],
    )
    def test_preview_origins_allowed(self, origin: str) -> None:
        assert self.policy.is_allowed(origin)

    @pytest.mark.parametrize(
        "origin",
        [
            "https://evil.example",
            "http://feature-x.vercel.app",
            "https://vercel.app",
            "https://feature-x.vercel.app.evil.example",
            "http://localhost:4000",
        ],
    )
    def test_other_origins_denied(self, origin: str) -> None:
        assert not self.policy.is_allowed(origin)
        with pytest.raises(OriginNotAllowedError):
            self.policy.check(origin)

    def test_trailing_slash_in_config_is_ignored(self) -> None:
        policy = OriginPolicy(["https://app.example.com/"])
        assert policy.is_allowed("https://app.example.com")


async def test_allowed_origin_gets_credentialed_headers(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"Origin": "http://127.0.0.1:3002"})
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://127.0.0.1:3002"
    assert response.headers["access-control-allow-credentials"] == "true"
    assert "Origin" in response.headers["vary"]


async def test_preview_origin_gets_credentialed_headers(client: AsyncClient) -> None:
    origin = "https://pr-42.vercel.app"
    response = await client.get("/api", headers={"Origin": origin})
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == origin


async def test_frontend_url_override(client_for, make_settings) -> None:
    settings = make_settings(frontend_url="https://pay.example.africa")
    async with client_for(settings) as client:
        ok = await client.get("/health", headers={"Origin": "https://pay.example.africa"})
        default = await client.get("/health", headers={"Origin": "http://localhost:3000"})
    assert ok.status_code == 200
    assert default.status_code == 403


async def test_disallowed_origin_rejected(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"Origin": "https://evil.example"})
    assert response.status_code == 403
    assert response.json() == {"success": False, "message": "Not allowed by CORS"}
    assert "access-control-allow-origin" not in response.headers


async def test_no_origin_passes_without_cors_headers(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert "access-control-allow-origin" not in response.headers


def _split(header: str) -> set[str]:
    return {part.strip().lower() for part in header.split(",")}


async def test_preflight_answered_without_reaching_routes(client_for, settings, counting_router) -> None:
    router, calls = counting_router
    async with client_for(settings, routers={"/api/payments": router}) as client:
        response = await client.options(
            "/api/payments/charge",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type,authorization",
            },
        )
    assert response.status_code == 200
    assert calls == []
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert response.headers["access-control-allow-credentials"] == "true"
    assert response.headers["access-control-max-age"] == "600"
    assert _split(response.headers["access-control-allow-methods"]) == {"get", "post", "put", "delete", "options"}
    assert {"content-type", "authorization", "x-requested-with"} <= _split(
        response.headers["access-control-allow-headers"]
    )


async def test_preflight_for_unlisted_header_refused(client_for, settings, counting_router) -> None:
    router, calls = counting_router
    async with client_for(settings, routers={"/api/payments": router}) as client:
        response = await client.options(
            "/api/payments/charge",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "x-ledger-override",
            },
        )
    assert response.status_code == 400
    assert calls == []


async def test_plain_options_answered_at_gate(client_for, settings, counting_router) -> None:
    router, calls = counting_router
    async with client_for(settings, routers={"/api/payments": router}) as client:
        with_origin = await client.options("/api/payments/charge", headers={"Origin": "http://localhost:3000"})
        without_origin = await client.options("/api/payments/charge")
    assert with_origin.status_code == 204
    assert without_origin.status_code == 204
    assert calls == []


async def test_preflight_on_unknown_path(client: AsyncClient) -> None:
    response = await client.options(
        "/does/not/exist",
        headers={"Origin": "https://preview.vercel.app", "Access-Control-Request-Method": "GET"},
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "https://preview.vercel.app"


def test_cors_middleware_options() -> None:
    policy = OriginPolicy(["http://localhost:3000/"], PREVIEW_PATTERN)
    options = policy.middleware_options()
    assert options["allow_origins"] == ["http://localhost:3000"]
    assert options["allow_origin_regex"] == PREVIEW_PATTERN
    assert options["allow_credentials"] is True
    assert options["allow_methods"] == ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    assert options["allow_headers"] == ["Content-Type", "Authorization", "X-Requested-With"]


async def test_preflight_from_disallowed_origin_rejected(client: AsyncClient) -> None:
    response = await client.options(
        "/api/payments",
        headers={"Origin": "https://evil.example", "Access-Control-Request-Method": "GET"},
    )
    assert response.status_code == 403
    assert "access-control-allow-origin" not in response.headers


async def test_preflight_not_counted_by_rate_limit(client_for, make_settings) -> None:
    async with client_for(make_settings(rate_limit_max_requests=1)) as client:
        for _ in range(3):
            pre = await client.options(
                "/api",
                headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "GET"},
            )
            assert pre.status_code == 200
            plain = await client.options("/api", headers={"Origin": "http://localhost:3000"})
            assert plain.status_code == 204
        response = await client.get("/api")
    assert response.status_code == 200
