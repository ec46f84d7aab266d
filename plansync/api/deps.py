"""FastAPI dependencies."""

from typing import Optional

from fastapi import Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from plansync.config import settings
from plansync.db.session import get_db
from plansync.ingest.retailers import RetailerRegistry
from plansync.sync.service import SyncService


async def get_database() -> AsyncSession:
    """Dependency for database session."""
    async for session in get_db():
        yield session
        break  # Only yield once, as FastAPI handles the session lifecycle


def get_sync_service(request: Request) -> SyncService:
    """The process-wide sync service built at startup."""
    service = getattr(request.app.state, "sync_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync service not initialised",
        )
    return service


def get_registry(request: Request) -> RetailerRegistry:
    return request.app.state.registry


async def require_admin_api_key(
    x_admin_api_key: Optional[str] = Header(None, alias="X-Admin-API-Key")
) -> None:
    """
    Protect the manual sync endpoint when an admin key is configured.

    Args:
        x_admin_api_key: Admin API key from X-Admin-API-Key header

    Raises:
        HTTPException: 401 if header missing, 403 if invalid
    """
    if not settings.admin_api_key:
        return

    if not x_admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing admin API key"
        )

    if x_admin_api_key != settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin API key"
        )


async def require_cron_secret(
    authorization: Optional[str] = Header(None)
) -> None:
    """
    Require ``Authorization: Bearer <cron_secret>``.

    Raises:
        HTTPException: 401 if the header is missing or wrong
    """
    if authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized - invalid cron secret"
        )
