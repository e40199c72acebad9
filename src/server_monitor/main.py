from contextlib import asynccontextmanager
import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from server_monitor.core.config_loader import load_settings
from server_monitor.core.services.service_manager import service_manager
from server_monitor.routers.api import router as api_router
from server_monitor.schemas import AppHealthOK

settings = load_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Components are built here; no I/O happens until the lifespan starts them
service_manager.configure(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the appliance link and collector, stop them on shutdown."""
    appliance_state = "configured" if settings.appliance_configured else "not configured"
    logger.info(f"Starting background services (appliance {appliance_state})")
    await service_manager.start_services()
    try:
        yield
    finally:
        logger.info("Stopping background services")
        await service_manager.stop_services()


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.get("/", tags=["meta"])
async def read_root() -> dict[str, str]:
    return {
        "message": f"{settings.app_name} is running",
        "status": "/api/status",
        "trends": "/api/trends",
    }


@app.get("/health", tags=["meta"], response_model=AppHealthOK)
async def healthcheck() -> AppHealthOK:
    collector = service_manager.collector
    return AppHealthOK(
        status="ok",
        app=settings.app_name,
        appliance_configured=service_manager.appliance_client is not None,
        trend_points=collector.trend_store.size() if collector is not None else 0,
    )


# mount API router under /api
app.include_router(api_router, prefix="/api")
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def run() -> None:
    uvicorn.run("server_monitor.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
