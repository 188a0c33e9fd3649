"""
FastAPI application entry point.

This is the main application that ties together all components:
- API routes for invoice management
- Database lifecycle management
- Background Solana payment watcher
- CORS configuration for frontend access
- Error handling and logging
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fluida import __version__
from fluida.api.routes import health, invoices
from fluida.api.schemas import ErrorResponse
from fluida.config import Settings, get_settings
from fluida.domain.matching import PaymentMatcher
from fluida.errors import StorageError
from fluida.infrastructure.database import close_db, get_session_factory, init_db
from fluida.infrastructure.repository import InvoiceRepository, SQLAlchemyInvoiceRepository
from fluida.services.invoices import InvoiceService
from fluida.services.solana import ChainClient, SolanaChainClient, SolanaNetwork
from fluida.services.watcher import PaymentWatcher

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
)
logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


def build_watcher(
    settings: Settings,
    repository: InvoiceRepository,
    chain_client: ChainClient,
) -> PaymentWatcher:
    """Wire the payment watcher from settings."""
    matcher = PaymentMatcher(
        token_mint=settings.token_mint,
        token_decimals=settings.token_decimals,
        tolerance=settings.amount_tolerance,
    )
    return PaymentWatcher(
        repository,
        chain_client,
        matcher,
        poll_interval=settings.poll_interval_seconds,
        cycle_timeout=settings.cycle_timeout_seconds,
        signature_limit=settings.signature_limit,
    )


def create_app(
    settings: Settings | None = None,
    repository: InvoiceRepository | None = None,
    chain_client: ChainClient | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings. Loaded from the environment if None.
        repository: Invoice storage. SQLAlchemy on ``database_url`` if None.
        chain_client: Solana access. Public RPC for the configured network if None.

    Returns:
        Configured FastAPI instance ready to serve requests.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Startup: initialize database tables, build services, start the watcher.
        Shutdown: stop the watcher first, then release the RPC client and
        database connections it was using.
        """
        logger.info(f"Starting Fluida v{__version__}")
        logger.info(f"Solana network: {settings.solana_network}")
        logger.info(f"Payment token: {settings.token_symbol} ({settings.token_mint})")

        owns_database = repository is None
        repo = repository
        if repo is None:
            await init_db()
            repo = SQLAlchemyInvoiceRepository(get_session_factory())
            logger.info("Database initialized")

        client = chain_client or SolanaChainClient(
            network=SolanaNetwork(settings.solana_network),
            custom_url=settings.solana_rpc_url,
        )
        watcher = build_watcher(settings, repo, client)

        app.state.repository = repo
        app.state.invoice_service = InvoiceService(repo)
        app.state.watcher = watcher

        if settings.watcher_enabled:
            watcher.start()
        else:
            logger.warning("Payment watcher disabled; payments will not be detected")

        yield  # Application runs here

        # Shutdown
        logger.info("Shutting down Fluida")
        await watcher.stop()
        await client.close()
        if owns_database:
            await close_db()

    app = FastAPI(
        title="Fluida Invoice API",
        description=(
            "Invoice management with automatic detection of SPL token "
            "payments on Solana."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Accept", "Authorization", "Content-Type"],
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

    # Register routers
    app.include_router(health.router)
    app.include_router(health.router, prefix="/api/v1")
    app.include_router(invoices.router, prefix="/api/v1")

    @app.exception_handler(StorageError)
    async def storage_exception_handler(request: Request, exc: StorageError):
        """Repository failures are transient from the client's point of view."""
        logger.error(f"Storage error on {request.url.path}: {exc}")
        error = ErrorResponse(
            error="Service Unavailable",
            detail=str(exc) if settings.debug else "Storage temporarily unavailable",
            code="storage_unavailable",
        )
        return JSONResponse(status_code=503, content=error.model_dump(exclude_none=True))

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler for unhandled errors."""
        logger.exception(f"Unhandled error: {exc}")

        # Don't expose internal errors in production
        if settings.debug:
            detail = str(exc)
        else:
            detail = "An internal error occurred"

        error = ErrorResponse(error="Internal Server Error", detail=detail)
        return JSONResponse(status_code=500, content=error.model_dump(exclude_none=True))

    return app


# Development server entry point
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "fluida.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8080,
        reload=True,
    )
