"""Health check endpoints.

- /health: liveness, always 200 while the process runs
- /healthz: checks database connectivity when a database is configured
"""

import json
from typing import Any

from fastapi import APIRouter, Response
from sqlalchemy import text

from backend.app.config import Settings, get_settings
from backend.app.db.engine import get_async_engine


async def check_db(settings: Settings) -> tuple[bool, str]:
    """Check database connectivity.

    Returns:
        (is_ok, status_message)
    """
    if not settings.database_url:
        return (True, "in_memory")

    try:
        async with get_async_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return (True, "ok")
    except Exception as e:
        return (False, f"error: {type(e).__name__}")


def check_embeddings(settings: Settings) -> str:
    """Report which embedding provider is configured."""
    api_key = settings.openai_api_key
    return "openai" if api_key and api_key.get_secret_value() else "stub"


router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple health check for Docker/k8s.

    Returns:
        200 OK always (application is running)
    """
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz() -> dict[str, Any] | Response:
    """Health check endpoint.

    Returns:
        200 with component status if the database is reachable
        503 otherwise
    """
    settings = get_settings()

    db_ok, db_status = await check_db(settings)

    response_body = {
        "status": "ok" if db_ok else "degraded",
        "components": {
            "db": db_status,
            "embeddings": check_embeddings(settings),
        },
    }

    if not db_ok:
        return Response(
            content=json.dumps(response_body),
            status_code=503,
            media_type="application/json",
        )

    return response_body
