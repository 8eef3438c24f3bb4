from fastapi import FastAPI

from app.api.routes.analytics import router as analytics_router
from app.api.routes.health import router as health_router
from app.api.routes.tracking import router as tracking_router
from app.core.config import settings
from app.core.logging import setup_logging


def create_app() -> FastAPI:
    setup_logging(settings.log_level)
    application = FastAPI(title="Attribution Tracker API")
    application.include_router(health_router)
    application.include_router(tracking_router)
    application.include_router(analytics_router)
    return application


app = create_app()
