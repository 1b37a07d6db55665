"""
Dice Wager Ledger Service entry point.
FastAPI application holding the authoritative balance book.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from dicewager.config import AppConfig, settings
from dicewager.core.database import LedgerDatabase
from dicewager.core.exceptions import IdempotencyConflict, LedgerRejected
from dicewager.core.ledger import Ledger
from dicewager.core.logger import get_logger, init_logging
from dicewager.routers import ledger as ledger_router

logger = get_logger("main")


# ==================== Application Setup ====================


def create_app(config: AppConfig = None, ledger: Ledger = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    config = config or settings

    if ledger is None:
        ledger = Ledger(LedgerDatabase(config.paths.get_db_path()), config.ledger)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            f"Ledger '{config.server.name}' serving account {ledger.account_id}",
            extra={"database": str(ledger.db.db_path)},
        )
        yield
        ledger.db.close()

    app = FastAPI(
        title=config.server.name,
        docs_url="/docs" if config.server.debug else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.ledger = ledger
    app.state.config = config

    app.state.limiter = ledger_router.limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # The game client runs in a browser on another origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Idempotency-Key"],
    )

    @app.exception_handler(LedgerRejected)
    async def ledger_rejected_handler(request: Request, exc: LedgerRejected):
        logger.info(f"Rejected {request.url.path}: {exc}")
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(IdempotencyConflict)
    async def idempotency_conflict_handler(request: Request, exc: IdempotencyConflict):
        logger.warning(f"Rejected {request.url.path}: {exc}")
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unhandled exceptions gracefully."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if config.server.debug else None,
            },
        )

    app.include_router(ledger_router.router)

    return app


init_logging(
    level=settings.logging.level,
    log_to_file=settings.logging.log_to_file,
    formatter=settings.logging.formatter,
    log_file_path=settings.paths.get_log_path(),
)

app = create_app()
