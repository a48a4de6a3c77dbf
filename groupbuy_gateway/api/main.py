"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from groupbuy_gateway.api.errors import register_exception_handlers
from groupbuy_gateway.api.middleware import MetricsMiddleware, RequestIDMiddleware
from groupbuy_gateway.api.v1 import bids, credit, groups, orders
from groupbuy_gateway.config import settings
from groupbuy_gateway.infrastructure.database.session import engine, init_db
from groupbuy_gateway.infrastructure.observability.logging import setup_logging

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Group Buying Gateway",
        description="Buying groups, supplier bidding and buyer trade credit",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    if settings.create_schema_on_startup:
        init_db(engine)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(groups.router, prefix="/v1", tags=["groups"])
    app.include_router(orders.router, prefix="/v1", tags=["orders"])
    app.include_router(bids.router, prefix="/v1", tags=["bids"])
    app.include_router(credit.router, prefix="/v1", tags=["credit"])

    return app


app = create_app()
