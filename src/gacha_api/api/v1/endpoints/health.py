from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gacha_api.core.settings import settings
from gacha_api.db.session import get_session


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
        components["database"] = ComponentStatus(status="ready")
    except SQLAlchemyError as exc:
        logger.warning("Readiness database probe failed", error=str(exc))
        components["database"] = ComponentStatus(status="error", detail="Database unreachable")
        status = "error"

    worker = getattr(request.app.state, "redemption_expiry_worker", None)
    if settings.redemption_expiry_worker_enabled and worker is not None:
        running = bool(getattr(worker, "is_running", False))
        detail = None if running else "Redemption expiry worker not running"
        if not running and status == "ready":
            status = "degraded"
        components["redemption_expiry"] = ComponentStatus(status="ready" if running else "starting", detail=detail)
    else:
        components["redemption_expiry"] = ComponentStatus(
            status="disabled",
            detail="Redemption expiry worker disabled via settings",
        )

    return ReadinessPayload(status=status, components=components)
