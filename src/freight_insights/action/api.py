"""FastAPI application exposing the pipeline analyses."""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import settings
from freight_insights.ingestion.deal_loader import DealLoadError

logger = logging.getLogger(__name__)

app = FastAPI(title="Freight Insights API", version="1.0.0")

# ---------------------------------------------------------------------------
# Include modular routers
# ---------------------------------------------------------------------------
from freight_insights.action.routers.analytics import router as analytics_router  # noqa: E402
from freight_insights.action.routers.forecasting import router as forecasting_router  # noqa: E402
from freight_insights.action.routers.trends import router as trends_router  # noqa: E402

app.include_router(analytics_router)
app.include_router(forecasting_router)
app.include_router(trends_router)


@app.exception_handler(DealLoadError)
async def _deal_load_error_handler(request: Request, exc: DealLoadError):
    """The deal export is unreadable; report it instead of a bare 500."""
    logger.error("Deal export rejected on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Failed to load deals", "message": str(exc)},
    )


@app.exception_handler(Exception)
async def _global_error_handler(request: Request, exc: Exception):
    """Catch-all: ensure every unhandled error returns JSON, not raw HTML."""
    logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "message": str(exc)},
    )


# CORS: lock down in production via CORS_ORIGINS (comma-separated).
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "version": "1.0.0"}
