from datetime import datetime, UTC
from time import time
from typing import Dict, Any

import psutil
from fastapi import APIRouter

from taskgraph import __version__
from taskgraph.core.config import settings, startup_time
from taskgraph.db.client import check_database_connection

router = APIRouter(prefix="/health", tags=["Health"])


def _service_info() -> Dict[str, Any]:
    elapsed = time() - startup_time
    minutes, seconds = divmod(int(elapsed), 60)
    hours, minutes = divmod(minutes, 60)
    return {
        "version": __version__,
        "environment": settings.ENVIRONMENT,
        "timestamp": datetime.now(UTC).isoformat(),
        "uptime_seconds": round(elapsed, 2),
        "uptime_formatted": f"{hours}h {minutes}m {seconds}s",
    }


@router.get("/")
async def health_check():
    """Liveness probe, never touches the task store."""
    return {"status": "healthy", **_service_info()}


@router.get("/details")
async def health_check_details():
    """
    Readiness probe.
    Reports ``degraded`` while the task store is unreachable, plus host load from psutil.
    """
    store_up = await check_database_connection()
    memory = psutil.virtual_memory()
    return {
        "status": "healthy" if store_up else "degraded",
        "database": "up" if store_up else "down",
        "cpu_usage": psutil.cpu_percent(interval=None),
        "memory_total": memory.total,
        "memory_used": memory.used,
        "memory_percent": memory.percent,
        **_service_info(),
    }
