"""
BrandBuddy Operations API
Main FastAPI application
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.gzip import GZipMiddleware

from brandbuddy import __version__
from brandbuddy.api import dashboard, health, inventory, orders, reports, sla, suggestions
from brandbuddy.api.responses import error_response, invalid_request_response, method_not_allowed_response
from brandbuddy.config import get_settings
from brandbuddy.utils.logger import log

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}, tenant brand: {settings.tenant_brand}")
    yield
    log.info("Shutting down application")


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Operational analytics for a single-brand 3PL dashboard

    Reads the product and inbound-shipment feeds, filters them to the
    tenant brand and serves per-page KPIs, supplier scorecards, risk
    tables and LLM insights with rule-based fallbacks.

    Every page endpoint accepts ?mode=fast (no insights) or
    ?mode=insights (insights only).
    """,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=500)

app.include_router(health.router, tags=["health"])
app.include_router(dashboard.router)
app.include_router(orders.router)
app.include_router(inventory.router)
app.include_router(sla.router)
app.include_router(suggestions.router)
app.include_router(reports.router)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 405:
        log.warning(f"{request.method} not allowed on {request.url.path}")
        return method_not_allowed_response(request.method, request.url.path)
    return error_response(str(exc.detail), f"{request.method} {request.url.path}", status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    log.warning(f"Malformed request body on {request.url.path}")
    return invalid_request_response("Request body must be a JSON object")


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "app": settings.app_name,
        "version": __version__,
        "description": "Operational analytics backend for a single-brand 3PL dashboard",
        "docs": "/docs",
        "health": "/health",
        "status": "/status",
        "features": {
            "llm_insights": settings.enable_llm_insights
        },
        "endpoints": {
            "dashboard": "GET /dashboard-data",
            "dashboard_fast": "GET /dashboard-data-fast",
            "dashboard_insights": "GET /dashboard-insights",
            "orders": "GET /orders-data",
            "inbound": "GET /inbound-data",
            "inventory": "GET /inventory-data",
            "replenishment": "GET /replenishment-data",
            "sla": "GET /sla-data",
            "analytics": "GET /analytics-data",
            "reports": "GET /reports-data",
            "inventory_suggestion": "POST /inventory-suggestion",
            "replenishment_suggestion": "POST /replenishment-suggestion",
            "order_suggestion": "POST /order-suggestion",
            "historical_sku_analysis": "POST /historical-sku-analysis"
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "brandbuddy.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
