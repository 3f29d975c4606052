import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy import inspect

from .config import settings
from .db import Base, engine
from .errors import FieldHubError, fieldhub_error_handler
from .logging import RequestIdMiddleware, setup_logging, structlog
from .models import models  # noqa: F401  registers the tables on Base
from .auth.router import router as auth_router
from .routes.absences import router as absences_router
from .routes.assets import router as assets_router
from .routes.audit import router as audit_router
from .routes.companies import router as companies_router
from .routes.daily_reports import activities_router, router as daily_reports_router, ws_router as feed_router
from .routes.employees import router as employees_router
from .routes.files import router as files_router
from .routes.fleet import router as fleet_router
from .routes.measurements import router as measurements_router
from .routes.opec import router as opec_router
from .routes.reports import router as reports_router
from .routes.tasks import router as tasks_router
from .routes.teams import router as teams_router
from .routes.users import router as users_router


log = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_exception_handler(FieldHubError, fieldhub_error_handler)

    # Routers
    app.include_router(auth_router)
    app.include_router(companies_router)
    app.include_router(users_router)
    app.include_router(teams_router)
    app.include_router(employees_router)
    app.include_router(absences_router)
    app.include_router(assets_router)
    app.include_router(tasks_router)
    app.include_router(fleet_router)
    app.include_router(opec_router)
    app.include_router(daily_reports_router)
    app.include_router(activities_router)
    app.include_router(feed_router)
    app.include_router(measurements_router)
    app.include_router(reports_router)
    app.include_router(audit_router)
    app.include_router(files_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health():
        return {"status": "ok", "environment": settings.environment}

    @app.on_event("startup")
    def _startup():
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            existing = set(inspect(engine).get_table_names())
            missing = [t for t in Base.metadata.sorted_tables if t.name not in existing]
            if missing:
                Base.metadata.create_all(bind=engine, tables=missing)
            log.info("database_ready", created=[t.name for t in missing])
        log.info("startup_complete", app=settings.app_name, environment=settings.environment)

    return app


app = create_app()
