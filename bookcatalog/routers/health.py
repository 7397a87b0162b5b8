from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request) -> dict[str, Any]:
    """Liveness probe; answers even when the database is unreachable."""
    state = request.app.state
    database = getattr(state, "database", None)
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - state.started_at, 3),
        "environment": state.settings.environment,
        "database": "connected" if database is not None and database.available else "unavailable",
    }
