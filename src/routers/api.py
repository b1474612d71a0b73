from fastapi import APIRouter

from routers import admin, connectivity, devices, direct, incidents, live, relay

router = APIRouter()

# include sub-routers
router.include_router(relay.router)
router.include_router(direct.router)
router.include_router(devices.router)
router.include_router(incidents.router)
router.include_router(connectivity.router)
router.include_router(live.router)
router.include_router(admin.router)
