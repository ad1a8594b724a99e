"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tokenswallet.config import get_settings
from tokenswallet.errors import SubmissionUnconfirmed, WalletError
from tokenswallet.ledger.database import close_db, init_db
from tokenswallet.vault import create_secret_store
from tokenswallet.wallets import Chain, create_backends

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    await init_db()
    app.state.secret_store = create_secret_store()
    app.state.backends = create_backends()

    # Probe the Substrate node once up front; requests retry if it is down
    substrate = app.state.backends[Chain.SUBSTRATE]
    try:
        await substrate.ensure_ready()
    except WalletError as e:
        logger.warning(f"Substrate node not ready at startup: {e}")

    yield

    # Shutdown
    for backend in app.state.backends.values():
        await backend.close()
    await app.state.secret_store.close()
    await close_db()


async def wallet_error_handler(request: Request, exc: WalletError) -> JSONResponse:
    """Map typed custody/transfer errors to HTTP responses."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")
    content = {
        "detail": str(exc),
        "error": type(exc).__name__,
        "retryable": exc.retryable,
    }
    if isinstance(exc, SubmissionUnconfirmed):
        content["tx_hash"] = exc.tx_hash
    return JSONResponse(status_code=exc.status_code, content=content)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Tokens Wallet API",
        description="Custodial wallet backend for Ethereum and Substrate chains",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(WalletError, wallet_error_handler)

    # Register routes
    from tokenswallet.api.routers import accounts, health, wallets

    app.include_router(health.router, tags=["Health"])
    app.include_router(accounts.router, tags=["Accounts"])
    app.include_router(wallets.router, tags=["Wallets"])

    return app
