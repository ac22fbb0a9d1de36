"""
PEAC Shop Backend - FastAPI Application

x402 pay-per-request checkout that issues PEAC receipts: signed, offline
verifiable proofs binding a payment to the exact order bytes returned.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Any, Optional
import logging

from .config import Settings, load_settings
from .dependencies import build_services
from .exceptions import PeacError
from .api import cart_router, checkout_router, catalog_router, verify_router

logger = logging.getLogger(__name__)

NO_STORE = {"Cache-Control": "no-store"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Services are built in create_app(); shutdown releases the idempotency
    store's database connections.
    """
    settings = app.state.services.settings
    logger.info("Starting PEAC shop backend...")
    logger.info(f"Demo mode: {settings.demo_mode}")
    logger.info(f"Public origin: {settings.public_origin}")

    yield

    logger.info("Shutting down PEAC shop backend...")
    try:
        await app.state.services.close()
    except Exception as e:
        logger.error(f"Error closing idempotency store: {e}")


def create_app(settings: Optional[Settings] = None, **overrides: Any) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment when omitted
        **overrides: Collaborator overrides passed to build_services()
    """
    settings = settings or load_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    app = FastAPI(
        title="PEAC Shop API",
        description="x402 checkout with PEAC receipts",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = build_services(settings, **overrides)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["PEAC-Receipt"],
    )

    @app.exception_handler(PeacError)
    async def peac_error_handler(request: Request, exc: PeacError):
        """
        Handle checkout protocol errors with the standard body.

        {"error": code, "message": str, ...details}
        """
        logger.warning(f"PEAC error on {request.url.path}: {exc.error_code} - {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Malformed JSON or wrongly typed body."""
        logger.warning(f"Request validation failed on {request.url.path}: {len(exc.errors())} errors")
        return JSONResponse(
            status_code=400,
            content={
                "error": "validation_error",
                "message": "Request body is not valid JSON of the expected shape",
            },
            headers=NO_STORE,
        )

    @app.exception_handler(Exception)
    async def general_error_handler(request: Request, exc: Exception):
        """
        Catch-all handler for unexpected errors.

        Logs full exception for debugging but returns generic message to client.
        """
        logger.error(f"Unexpected error: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "An unexpected error occurred",
            },
            headers=NO_STORE,
        )

    @app.get("/api/health")
    async def health_check():
        """
        Health check endpoint for monitoring and load balancers.

        Returns:
            Server status and signing key id
        """
        return {
            "status": "healthy",
            "version": "0.1.0",
            "demo_mode": settings.demo_mode,
            "kid": app.state.services.key_manager.kid,
        }

    app.include_router(cart_router, prefix="/api/shop", tags=["Cart"])
    app.include_router(checkout_router, prefix="/api/shop", tags=["Checkout"])
    app.include_router(verify_router, prefix="/api", tags=["Receipts"])
    app.include_router(catalog_router, tags=["Catalog"])

    return app


def main():
    """Run the server with uvicorn."""
    import uvicorn
    settings = load_settings()
    uvicorn.run(
        "peac_shop.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.demo_mode,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
