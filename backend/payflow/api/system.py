"""Health and service descriptor endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

router = APIRouter()


def iso_timestamp(moment: datetime | None = None) -> str:
    """UTC timestamp with millisecond precision and a ``Z`` suffix."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@router.get("/health")
async def health(request: Request):
    settings = request.app.state.settings
    return {
        "status": "OK",
        "timestamp": iso_timestamp(),
        "environment": settings.environment,
        "project": settings.project_name,
    }


@router.get("/api")
async def api_info(request: Request):
    settings = request.app.state.settings
    return {
        "project": settings.project_name,
        "description": settings.project_description,
        "version": settings.version,
    }
