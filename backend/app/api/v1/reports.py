r"""backend/app/api/v1/reports.py

Routes for the analytics reports.

Each route validates its parameters (unsupported cadences, malformed months
and out-of-range windows are rejected with 422 before any data is read) and
delegates to the shared :class:`ReportingService`.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Awaitable, Optional, TypeVar

from fastapi import APIRouter, HTTPException, Query, status

from ...core.errors import DataUnavailableError, InvalidPeriodError, NotFoundError
from ...models import schemas
from ...services.periods import MONTH_PATTERN
from ...services.reporting_service import OVERVIEW_DAYS, ReportingService

LOGGER = logging.getLogger(__name__)

router = APIRouter()

T = TypeVar("T")

_reporting_service = ReportingService()


class SectorCadence(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class CoffeeCadence(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"


class CleaningCadence(str, Enum):
    FIRST_HALF = "first_half"
    SECOND_HALF = "second_half"
    FULL_MONTH = "full_month"


def _error_payload(code: str, message: str) -> dict[str, str]:
    """Return a standardised error payload."""

    return {"error": code, "message": message}


async def compose_or_raise(kind: str, report: Awaitable[T]) -> T:
    """Await a report and translate service errors into HTTP responses."""

    try:
        return await report
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error_payload(exc.code, exc.message),
        ) from exc
    except InvalidPeriodError as exc:
        LOGGER.warning("%s report rejected: %s", kind, exc.message)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_error_payload(exc.code, exc.message),
        ) from exc
    except DataUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=_error_payload(exc.code, exc.message),
        ) from exc
    except FileNotFoundError as exc:
        LOGGER.exception("%s report failed due to missing inventory tables", kind)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=_error_payload(
                "data_unavailable",
                "Required inventory tables are missing. Export sectors and products to DATA_DIR and retry.",
            ),
        ) from exc
    except Exception as exc:  # pragma: no cover - unexpected failures
        LOGGER.exception("Unexpected error while building %s report", kind)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_error_payload("report_failed", "An unexpected error occurred while building the report."),
        ) from exc


@router.get(
    "/reports/restock-prediction/{sector_id}",
    response_model=schemas.RestockPredictionReport,
)
async def restock_prediction(sector_id: int) -> schemas.RestockPredictionReport:
    return await compose_or_raise(
        "restock_prediction", _reporting_service.restock_prediction_report(sector_id)
    )


@router.get(
    "/reports/users/{user_id}/consumption",
    response_model=schemas.UserConsumptionReport,
)
async def user_consumption(
    user_id: int,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
) -> schemas.UserConsumptionReport:
    return await compose_or_raise(
        "user_consumption", _reporting_service.user_consumption_report(user_id, start, end)
    )


@router.get(
    "/reports/sectors/{sector_id}/monthly",
    response_model=schemas.SectorMonthlyReport,
)
async def sector_monthly(
    sector_id: int,
    cadence: SectorCadence = Query(SectorCadence.MONTHLY),
    compare_with_previous: bool = Query(False),
) -> schemas.SectorMonthlyReport:
    return await compose_or_raise(
        "sector_monthly",
        _reporting_service.sector_monthly_report(
            sector_id,
            cadence=schemas.Cadence(cadence.value),
            compare_with_previous=compare_with_previous,
        ),
    )


@router.get(
    "/reports/sectors/{sector_id}/product-management",
    response_model=schemas.SectorProductManagementReport,
)
async def sector_product_management(
    sector_id: int,
    days: int = Query(30, ge=1, le=365),
) -> schemas.SectorProductManagementReport:
    return await compose_or_raise(
        "sector_product_management",
        _reporting_service.sector_product_management_report(sector_id, days=days),
    )


@router.get("/reports/coffee-machine", response_model=schemas.CoffeeMachineReport)
async def coffee_machine(
    sector_id: Optional[int] = Query(None),
    cadence: CoffeeCadence = Query(CoffeeCadence.WEEKLY),
    weeks: int = Query(4, ge=1, le=52),
) -> schemas.CoffeeMachineReport:
    return await compose_or_raise(
        "coffee_machine",
        _reporting_service.coffee_machine_report(
            sector_id, cadence=schemas.Cadence(cadence.value), weeks=weeks
        ),
    )


@router.get("/reports/cleaning", response_model=schemas.CleaningSectorReport)
async def cleaning(
    month: Optional[str] = Query(None, pattern=MONTH_PATTERN.pattern),
    cadence: CleaningCadence = Query(CleaningCadence.FULL_MONTH),
    sector_id: Optional[int] = Query(None),
    compare_with_previous: bool = Query(False),
) -> schemas.CleaningSectorReport:
    return await compose_or_raise(
        "cleaning",
        _reporting_service.cleaning_sector_report(
            month=month,
            cadence=schemas.Cadence(cadence.value),
            sector_id=sector_id,
            compare_with_previous=compare_with_previous,
        ),
    )


@router.get("/reports/general-inventory", response_model=schemas.GeneralInventoryReport)
async def general_inventory(
    sector_id: Optional[int] = Query(None),
    keyword: Optional[str] = Query(None, max_length=100),
    include_out_of_stock: bool = Query(True),
) -> schemas.GeneralInventoryReport:
    return await compose_or_raise(
        "general_inventory",
        _reporting_service.general_inventory_report(
            sector_id=sector_id, keyword=keyword, include_out_of_stock=include_out_of_stock
        ),
    )


@router.get("/reports/foodstation/overview", response_model=schemas.FoodStationOverviewReport)
async def foodstation_overview(
    days: int = Query(30, description="One of 7, 15 or 30"),
) -> schemas.FoodStationOverviewReport:
    if days not in OVERVIEW_DAYS:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=_error_payload("invalid_days", "days must be one of 7, 15 or 30."),
        )
    return await compose_or_raise(
        "foodstation_overview", _reporting_service.foodstation_overview_report(days=days)
    )


@router.get("/reports/foodstation/consumptions", response_model=schemas.ConsumptionLedgerReport)
async def foodstation_consumptions(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    group_by: schemas.GroupBy = Query(schemas.GroupBy.NONE),
    format: schemas.ExportFormat = Query(schemas.ExportFormat.DETAILED),
) -> schemas.ConsumptionLedgerReport:
    return await compose_or_raise(
        "foodstation_consumptions",
        _reporting_service.foodstation_consumptions_report(
            start, end, group_by=group_by, export_format=format
        ),
    )


@router.get("/reports/consumption-control", response_model=schemas.ConsumptionControlReport)
async def consumption_control(
    user_id: Optional[int] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
) -> schemas.ConsumptionControlReport:
    return await compose_or_raise(
        "consumption_control",
        _reporting_service.consumption_control_report(user_id, start, end),
    )
