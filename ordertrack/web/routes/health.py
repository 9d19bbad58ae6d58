"""Health check route."""

from fastapi import APIRouter, Depends, status

from ordertrack.services import Services
from ordertrack.web.dependencies import get_services

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("", status_code=status.HTTP_200_OK)
async def health_check(services: Services = Depends(get_services)):
    """Check application health by reading from the archive partition."""
    try:
        await services.orders.list_archived(limit=1)
        return {"status": "ok", "database": "connected"}
    except Exception as e:
        return {
            "status": "error",
            "database": "disconnected",
            "detail": str(e),
        }
