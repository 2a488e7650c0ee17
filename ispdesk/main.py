import os
import threading
import time

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .db import Base, engine, SessionLocal
from .logging import setup_logging, RequestIdMiddleware
from .routes.users import router as users_router
from .routes.internet_connections import router as connections_router
from .routes.equipment import router as equipment_router
from .routes.equipment_templates import router as templates_router
from .routes.equipment_batches import router as batches_router
from .routes.equipment_requests import router as equipment_requests_router
from .routes.tickets import router as tickets_router
from .routes.technicians import router as technicians_router, categories_router as ticket_categories_router
from .routes.ticket_costs import router as ticket_costs_router
from .routes.expenses import router as expenses_router, categories_router as expense_categories_router
from .routes.stations import router as stations_router
from .routes.station_tasks import router as station_tasks_router
from .routes.public_forms import router as public_forms_router
from .services.connection_lifecycle import sweep_expired


logger = structlog.get_logger("ispdesk")


def _sweep_once(session_factory=SessionLocal) -> int:
    db = session_factory()
    try:
        deleted = sweep_expired(db)
        if deleted:
            logger.info("cleanup_sweep", deleted=deleted)
        return deleted
    except Exception:
        db.rollback()
        logger.exception("cleanup_sweep_failed")
        return 0
    finally:
        db.close()


def _run_cleanup_sweeper(stop: threading.Event) -> None:
    """Delete connections whose grace period has elapsed, every cleanup_interval_seconds."""
    while not stop.wait(settings.cleanup_interval_seconds):
        _sweep_once()


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"error": message, "details": errors})

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("unhandled_error", path=request.url.path, method=request.method)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


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

    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit],
        enabled=settings.rate_limit_enabled,
    )
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    _register_error_handlers(app)

    # Routers
    app.include_router(users_router)
    app.include_router(connections_router)
    app.include_router(equipment_router)
    app.include_router(templates_router)
    app.include_router(batches_router)
    app.include_router(equipment_requests_router)
    app.include_router(tickets_router)
    app.include_router(technicians_router)
    app.include_router(ticket_categories_router)
    app.include_router(ticket_costs_router)
    app.include_router(expenses_router)
    app.include_router(expense_categories_router)
    app.include_router(stations_router)
    app.include_router(station_tasks_router)
    app.include_router(public_forms_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    stop_sweeper = threading.Event()

    @app.on_event("startup")
    def _startup():
        logger.info("startup", environment=settings.environment)
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            started = time.perf_counter()
            Base.metadata.create_all(bind=engine)
            logger.info("tables_verified", duration_ms=round((time.perf_counter() - started) * 1000, 1))
        if settings.enable_cleanup_sweeper:
            sweeper = threading.Thread(target=_run_cleanup_sweeper, args=(stop_sweeper,), daemon=True)
            sweeper.start()
            logger.info("cleanup_sweeper_started", interval_seconds=settings.cleanup_interval_seconds)

    @app.on_event("shutdown")
    def _shutdown():
        stop_sweeper.set()

    return app


app = create_app()
