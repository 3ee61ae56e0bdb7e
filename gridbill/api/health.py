"""
Health check endpoint.

GET /health returns {"status": "ok"} without authentication, for container
health checks and load balancers.

CHANGELOG:
- 2026-10-16: Initial creation (STORY-028)
"""

from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Return a simple liveness status."""
    return {"status": "ok"}
