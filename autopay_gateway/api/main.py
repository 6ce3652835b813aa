"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from autopay_gateway.api.middleware import MetricsMiddleware, RequestIDMiddleware
from autopay_gateway.api.v1 import budgets, incomes, operations, payments
from autopay_gateway.config import settings
from autopay_gateway.infrastructure.observability.logging import setup_logging

# Setup structured logging
setup_logging(settings.log_level, settings.service_name)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Autopay Gateway",
        description="Recurring payment and income scheduler with waterfall funding",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(payments.router, prefix="/v1", tags=["auto-payments"])
    app.include_router(incomes.router, prefix="/v1", tags=["auto-incomes"])
    app.include_router(budgets.router, prefix="/v1", tags=["budgets"])
    app.include_router(operations.router, prefix="/v1", tags=["operations"])

    return app


app = create_app()
