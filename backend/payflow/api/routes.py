"""Route groups mounted under /api and the catch-all 404.

The payment, withdrawal, deposit, balance and transaction handlers are
separate services; create_app() receives them as routers keyed by
prefix.  A group nobody supplied answers 503 until it is configured.
"""

from typing import Iterable, Mapping, Optional

from fastapi import APIRouter, FastAPI

from payflow.exceptions import NotFoundError, ServiceUnavailableError

PAYMENTS = "/api/payments"
ACCOUNTS = "/api/accounts"
WITHDRAWALS = "/api/withdrawals"
DIRECT_DEPOSIT = "/api/direct-deposit"
BALANCES = "/api/v1/balances"
TRANSACTIONS = "/api/v1/transactions"

# prefix -> human readable group name
ROUTE_GROUPS: dict[str, str] = {
    PAYMENTS: "Payments",
    ACCOUNTS: "Accounts",
    WITHDRAWALS: "Withdrawals",
    DIRECT_DEPOSIT: "Direct deposit",
    BALANCES: "Balances",
    TRANSACTIONS: "Transactions",
}

ANY_METHOD = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"]


def longest_prefix(path: str, prefixes: Iterable[str]) -> Optional[str]:
    """Return the longest prefix that ``path`` falls under, on segment boundaries."""
    best: Optional[str] = None
    for prefix in prefixes:
        if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
            if best is None or len(prefix) > len(best):
                best = prefix
    return best


def unavailable_router(group: str) -> APIRouter:
    """Router that answers every request with 503 for an unconfigured group."""
    router = APIRouter()

    async def unavailable(path: str = ""):
        raise ServiceUnavailableError(f"{group} service is not configured")

    router.add_api_route("", unavailable, methods=ANY_METHOD, include_in_schema=False)
    router.add_api_route("/{path:path}", unavailable, methods=ANY_METHOD, include_in_schema=False)
    return router


def mount_routes(app: FastAPI, routers: Mapping[str, APIRouter]) -> None:
    """Include each group's router, longest prefix first so it wins any overlap."""
    for prefix in sorted(routers, key=len, reverse=True):
        tag = ROUTE_GROUPS.get(prefix, prefix.rsplit("/", 1)[-1])
        app.include_router(routers[prefix], prefix=prefix, tags=[tag.lower()])


def mount_not_found(app: FastAPI) -> None:
    """Catch-all registered last: anything unmatched is a 404 envelope."""

    @app.api_route("/{path:path}", methods=ANY_METHOD, include_in_schema=False)
    async def route_not_found(path: str):
        raise NotFoundError("Route not found")
