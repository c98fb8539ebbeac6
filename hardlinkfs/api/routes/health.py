from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from hardlinkfs.core.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
def get_health(request: Request) -> dict[str, object]:
    settings = get_settings()
    manager = getattr(request.app.state, "scan_manager", None)
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.environment,
        "data_root": str(settings.data_root),
        "active_scans": manager.registry.active_count() if manager is not None else 0,
        "timestamp": datetime.now(tz=timezone.utc),
    }
