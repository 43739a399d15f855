from fastapi import APIRouter

from .endpoints import (
    admin,
    gacha,
    health,
    inventory,
    merchants,
    observability,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(gacha.router)
router.include_router(inventory.router)
router.include_router(merchants.router)
router.include_router(admin.router)
router.include_router(observability.router)
