from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .database import create_schema
from .observability import RequestTimingLoggingMiddleware, add_exception_handlers, configure_logging
from .routers import health
from .routers import events as events_router
from .routers import exports as exports_router
from .routers import logs as logs_router
from .routers import stats as stats_router
from .routers import visitors as visitors_router

# Ensure schema is present when the module is imported (helps tests using TestClient without lifespan)
create_schema()


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_schema()
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)
    application = FastAPI(title="CheckMe Visitor Attendance API", version="0.1.0", lifespan=lifespan)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(RequestTimingLoggingMiddleware)

    add_exception_handlers(application)

    application.include_router(health.router)
    application.include_router(visitors_router.router)
    application.include_router(events_router.router)
    application.include_router(logs_router.router)
    application.include_router(stats_router.router)
    application.include_router(exports_router.router)

    return application


app = create_app()
