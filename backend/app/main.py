r"""backend\app\main.py

Main entrypoint for the FastAPI application.

The API exposes the consumption analytics reports (restock prediction, user
consumption, sector monthly, coffee machine, cleaning, general inventory and
the food-station views) plus per-product predictive analysis.  A health
endpoint is provided for readiness/liveness checks.  Configuration is read
from environment variables and YAML files in `configs/`.
"""


import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

# Load .env from repo root before settings are read
BASE_DIR = Path(__file__).resolve().parents[2]  # repo root
load_dotenv(BASE_DIR / ".env")

from .api.v1 import analytics, configs, data, health, reports  # noqa: E402
from .core.config import get_settings  # noqa: E402
from .core.observability import TokenAndRateLimitMiddleware, metrics_endpoint  # noqa: E402

_settings = get_settings()
logging.getLogger(__name__).info(
    "Reading inventory tables from %s (max concurrency=%d, fetch timeout=%.1fs)",
    _settings.data_dir,
    _settings.report_max_concurrency,
    _settings.report_fetch_timeout_seconds,
)

app = FastAPI(title="Consumption Analytics API", version="0.1.0")

# Allow cross-origin requests from the dashboard (and others).
origins_env = os.getenv("CORS_ORIGINS", "")
origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,  # In production specify your UI domain(s)
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TokenAndRateLimitMiddleware)

# Include versioned routers
app.include_router(health.router, prefix="/api/v1")
app.include_router(reports.router, prefix="/api/v1")
app.include_router(analytics.router, prefix="/api/v1")
app.include_router(configs.router, prefix="/api/v1")
app.include_router(data.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
def _root() -> RedirectResponse:
    """Redirect the root path to the interactive docs."""

    return RedirectResponse(url="/docs")


@app.get("/metrics", include_in_schema=False)
async def _metrics() -> Response:
    """Expose Prometheus metrics."""

    return metrics_endpoint()
