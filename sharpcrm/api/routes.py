from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from sharpcrm.core.auth import get_current_identity
from sharpcrm.core.config import get_settings
from sharpcrm.crm.api import router as crm_router
from sharpcrm.crm.schemas import IdentityRead
from sharpcrm.metrics import generate_metrics_payload, metrics_content_type
from sharpcrm.platform.security.context import Identity, Role

router = APIRouter()
router.include_router(crm_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"], response_model=IdentityRead)
async def me(identity: Identity = Depends(get_current_identity)) -> IdentityRead:
    return IdentityRead.model_validate(identity)


@router.get("/metrics", tags=["system"])
def metrics(identity: Identity = Depends(get_current_identity)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if identity.role != Role.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Metrics require the ADMIN role")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
