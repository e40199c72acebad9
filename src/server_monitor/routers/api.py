from fastapi import APIRouter

from server_monitor.routers import appliance, status, trends

router = APIRouter()

# include sub-routers
router.include_router(status.router)
router.include_router(trends.router)
router.include_router(appliance.router)
