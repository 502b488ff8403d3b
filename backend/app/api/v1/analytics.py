r"""backend/app/api/v1/analytics.py

Per-product predictive analysis."""

from __future__ import annotations

from fastapi import APIRouter, Query

from ...models import schemas
from ...services.reporting_service import ReportingService
from .reports import compose_or_raise

router = APIRouter()

_reporting_service = ReportingService()


@router.get(
    "/analytics/products/{product_id}",
    response_model=schemas.ProductAnalysisResponse,
)
async def product_analysis(
    product_id: int,
    days: int = Query(15, ge=1, le=365, description="Lookback window in days"),
    horizon: int = Query(15, ge=1, le=90, description="Projection horizon in days"),
) -> schemas.ProductAnalysisResponse:
    return await compose_or_raise(
        "product_analysis",
        _reporting_service.product_analysis(product_id, days=days, horizon_days=horizon),
    )
