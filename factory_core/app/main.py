import logging
import os
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .db import create_db_and_tables
from .routers.inventory import router as inventory_router
from .routers.customers import router as customers_router
from .routers.sales import router as sales_router
from .routers.production import router as production_router
from .routers.cashbook import router as cashbook_router
from .routers.transport import router as transport_router
from .routers.members import router as members_router
from .routers.reports import router as reports_router
from .services.errors import (
    FactoryError, ValidationError, InvalidOperationError, InsufficientStockError,
    NotFoundError, PersistenceFailure, PartialFailure
)

logger = logging.getLogger(__name__)


def configure_logging():
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def get_cors_origins():
    """Get CORS origins from environment or use defaults for development"""
    origins_env = os.getenv("CORS_ORIGINS", "")
    if origins_env:
        return [o.strip() for o in origins_env.split(",") if o.strip()]
    # Default development origins
    return [
        "http://127.0.0.1:5173",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://localhost:3000",
    ]


def _error_body(exc: FactoryError, **extra) -> dict:
    body = {"detail": str(exc), "error": type(exc).__name__, "retryable": exc.retryable}
    body.update(extra)
    return body


def register_error_handlers(app: FastAPI):
    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content=_error_body(exc))

    @app.exception_handler(InvalidOperationError)
    async def invalid_operation(request: Request, exc: InvalidOperationError):
        return JSONResponse(status_code=409, content=_error_body(exc))

    @app.exception_handler(InsufficientStockError)
    async def insufficient_stock(request: Request, exc: InsufficientStockError):
        return JSONResponse(status_code=409, content=_error_body(
            exc,
            entity=exc.entity,
            entity_id=exc.entity_id,
            available=float(exc.available),
            requested=float(exc.requested),
        ))

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content=_error_body(exc, entity=exc.entity))

    @app.exception_handler(PersistenceFailure)
    async def persistence_failure(request: Request, exc: PersistenceFailure):
        return JSONResponse(status_code=503, content=_error_body(exc))

    @app.exception_handler(PartialFailure)
    async def partial_failure(request: Request, exc: PartialFailure):
        return JSONResponse(status_code=503, content=_error_body(
            exc,
            operation=exc.operation,
            failed_step=exc.failed_step,
            completed_steps=exc.completed_steps,
        ))


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Interlock Block Factory",
        description="Inventory, production, sales and cashbook for an interlock block factory",
        version="1.0.0"
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    app.include_router(inventory_router)
    app.include_router(customers_router)
    app.include_router(sales_router)
    app.include_router(production_router)
    app.include_router(cashbook_router)
    app.include_router(transport_router)
    app.include_router(members_router)
    app.include_router(reports_router)

    @app.on_event("startup")
    def on_startup():
        logger.info("Creating database tables at startup...")
        create_db_and_tables()

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
