import os

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy import inspect, text

from .config import settings
from .db import Base, engine
from .errors import CompletionError
from .logging import RequestIdMiddleware, setup_logging
from .routes.analytics import router as analytics_router
from .routes.checklist import router as checklist_router
from .routes.completion import router as completion_router
from .routes.ledger import router as ledger_router
from .routes.photos import router as photos_router

log = structlog.get_logger(__name__)


def _ensure_tables() -> None:
    # Ensure local SQLite directory exists
    if settings.database_url.startswith("sqlite:///./"):
        os.makedirs("var", exist_ok=True)
    existing_tables = set(inspect(engine).get_table_names())
    missing = set(Base.metadata.tables.keys()) - existing_tables
    if missing:
        log.info("creating_tables", tables=sorted(missing))
        Base.metadata.create_all(bind=engine)
    else:
        log.info("tables_present", count=len(existing_tables))


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

    @app.exception_handler(CompletionError)
    async def completion_error_handler(request: Request, exc: CompletionError):
        log.warning(
            "completion_error",
            code=exc.code,
            detail=exc.message,
            path=request.url.path,
            **{k: str(v) for k, v in exc.context.items()},
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # Routers
    app.include_router(completion_router)
    app.include_router(ledger_router)
    app.include_router(photos_router)
    app.include_router(checklist_router)
    app.include_router(analytics_router)

    # Local photo objects behind the URLs LocalStorageProvider hands out
    if settings.storage_provider == "local" and not settings.azure_blob_connection:
        app.mount(
            "/files/local",
            StaticFiles(directory=os.path.join(settings.local_storage_dir, "uploads"), check_dir=False),
            name="local-files",
        )

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/healthz")
    def healthz():
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"status": "ok", "environment": settings.environment}

    @app.on_event("startup")
    def _startup():
        log.info("startup", app=settings.app_name, environment=settings.environment)
        if settings.auto_create_db:
            _ensure_tables()

    return app


app = create_app()
