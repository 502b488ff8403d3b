r"""backend\app\models\schemas.py

Pydantic models used throughout the API.

These models serve as both service return values and response serialisation
schemas.  Every report is a plain value: it carries no identity, is never
stored and is recomputed on each request.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class StockoutRisk(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ConsumptionFrequency(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ReorderCadence(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class Cadence(str, Enum):
    """Shape of a reporting period."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    FIRST_HALF = "first_half"
    SECOND_HALF = "second_half"
    FULL_MONTH = "full_month"


class StockStatus(str, Enum):
    OK = "ok"
    LOW = "low"
    CRITICAL = "critical"
    OUT_OF_STOCK = "out_of_stock"
    OVERSTOCKED = "overstocked"


class SubjectKind(str, Enum):
    SECTOR = "sector"
    USER = "user"
    GLOBAL = "global"


class GroupBy(str, Enum):
    USER = "user"
    PRODUCT = "product"
    DATE = "date"
    NONE = "none"


class ExportFormat(str, Enum):
    DETAILED = "detailed"
    CONSOLIDATED = "consolidated"


# ---------------------------------------------------------------------------
# Store views


class Sector(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    full_name: str
    matricula: str = ""
    role: str = "user"


class ProductSnapshot(BaseModel):
    """Read-only view of a product taken at the start of a report run."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    sector_id: Optional[int] = None
    sector_name: Optional[str] = None
    category: Optional[str] = None
    current_stock: float = Field(0.0, ge=0)
    min_quantity: Optional[float] = None
    max_quantity: Optional[float] = None
    unit_price: float = Field(0.0, ge=0)
    low_stock_threshold: Optional[float] = None
    photo_ref: Optional[str] = None


class ConsumptionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: Optional[int] = None
    user_name: str = ""
    matricula: str = ""
    product_id: int
    product_name: str = ""
    sector_id: Optional[int] = None
    quantity: float = Field(..., ge=0)
    unit_price: float = Field(0.0, ge=0)
    total_price: float = Field(0.0, ge=0)
    consumed_at: datetime
    photo_ref: Optional[str] = None


class StockTransaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    product_id: int
    sector_id: Optional[int] = None
    change: float
    transaction_type: Optional[str] = None
    created_at: datetime


class HistoryPoint(BaseModel):
    """One aggregated day returned by the store's history query."""

    date: date
    qty: float


# ---------------------------------------------------------------------------
# Analytics building blocks


class DailyPoint(BaseModel):
    date: date
    quantity: float = Field(..., ge=0)


class TrendResult(BaseModel):
    slope: float
    direction: TrendDirection


class PredictiveAnalysis(BaseModel):
    """Forecast, reorder and risk figures derived for a single product."""

    product_id: int
    product_name: str
    current_stock: float = Field(..., ge=0)
    min_quantity: Optional[float] = None
    max_quantity: Optional[float] = None
    unit_price: float = Field(0.0, ge=0)
    daily_consumption: List[float]
    average_daily_consumption: float = Field(..., ge=0)
    trend: TrendResult
    horizon_days: int = Field(..., gt=0)
    predicted_consumption: int = Field(..., ge=0)
    safety_buffer: int = Field(..., ge=0)
    recommended_reorder: int = Field(..., ge=0)
    confidence_level: ConfidenceLevel
    stockout_risk: StockoutRisk
    days_until_stockout: float = Field(..., ge=0)
    photo_ref: Optional[str] = None


class Subject(BaseModel):
    kind: SubjectKind
    id: Optional[int] = None
    name: Optional[str] = None


class Period(BaseModel):
    start: datetime
    end: datetime
    cadence: Optional[Cadence] = None
    days: int = Field(..., ge=0)


class ComparisonRow(BaseModel):
    product_id: int
    product_name: str
    current_consumption: float = Field(..., ge=0)
    previous_consumption: float = Field(..., ge=0)
    variance: float
    variance_percent: float


class TopConsumedItem(BaseModel):
    product_id: int
    product_name: str
    total_qty: float = Field(..., ge=0)
    total_value: float = Field(0.0, ge=0)
    frequency: Optional[ConsumptionFrequency] = None
    photo_ref: Optional[str] = None


class ReportBase(BaseModel):
    subject: Subject
    period: Period
    currency: str
    generated_at: datetime


# ---------------------------------------------------------------------------
# Restock prediction


class RestockSummary(BaseModel):
    total_products: int = Field(..., ge=0)
    total_recommended_items: int = Field(..., ge=0)
    high_risk_items: int = Field(..., ge=0)
    total_recommended_value: float = Field(..., ge=0)


class RestockPredictionReport(ReportBase):
    projected_period: Period
    products: List[PredictiveAnalysis]
    summary: RestockSummary


class ProductAnalysisResponse(BaseModel):
    product: ProductSnapshot
    analysis: PredictiveAnalysis
    period: Period
    generated_at: datetime


# ---------------------------------------------------------------------------
# User consumption


class DailyConsumptionTotal(BaseModel):
    date: date
    total_value: float = Field(..., ge=0)
    total_items: float = Field(..., ge=0)


class UserConsumptionSummary(BaseModel):
    total_value: float = Field(..., ge=0)
    total_items: float = Field(..., ge=0)
    consumption_count: int = Field(..., ge=0)


class UserConsumptionReport(ReportBase):
    consumptions: List[ConsumptionRecord]
    daily_totals: List[DailyConsumptionTotal]
    summary: UserConsumptionSummary


# ---------------------------------------------------------------------------
# Sector monthly / weekly


class StockSnapshotRow(BaseModel):
    product_id: int
    product_name: str
    quantity: float = Field(..., ge=0)
    value: float = Field(..., ge=0)
    photo_ref: Optional[str] = None


class PurchaseRecommendation(BaseModel):
    product_id: int
    product_name: str
    current_stock: float = Field(..., ge=0)
    recommended_quantity: int = Field(..., ge=0)
    estimated_cost: float = Field(..., ge=0)
    priority: StockoutRisk
    photo_ref: Optional[str] = None


class FrequencyRow(BaseModel):
    product_id: int
    product_name: str
    restock_frequency: float = Field(..., ge=0, le=1)
    average_daily_usage: float = Field(..., ge=0)


class SectorMonthlySummary(BaseModel):
    total_consumption_value: float = Field(..., ge=0)
    total_items_consumed: float = Field(..., ge=0)
    total_recommended_value: float = Field(..., ge=0)
    recommended_items: int = Field(..., ge=0)
    high_priority_items: int = Field(..., ge=0)


class SectorMonthlyReport(ReportBase):
    opening_stock: List[StockSnapshotRow]
    closing_stock: List[StockSnapshotRow]
    recommended_purchases: List[PurchaseRecommendation]
    frequency_analysis: List[FrequencyRow]
    sector_trend: TrendResult
    summary: SectorMonthlySummary
    comparison: Optional[List[ComparisonRow]] = None


# ---------------------------------------------------------------------------
# Coffee machine


class CoffeeMachineProductRow(BaseModel):
    product_id: int
    product_name: str
    category: Optional[str] = None
    opening_stock: float = Field(..., ge=0)
    entries: float = Field(..., ge=0)
    exits: float = Field(..., ge=0)
    current_stock: float = Field(..., ge=0)
    weekly_avg_consumption: float = Field(..., ge=0)
    biweekly_avg_consumption: float = Field(..., ge=0)
    consumption_frequency: ConsumptionFrequency
    suggested_reorder_cadence: ReorderCadence
    unit_price: float = Field(..., ge=0)
    photo_ref: Optional[str] = None


class CoffeeMachineKPIs(BaseModel):
    total_products: int = Field(..., ge=0)
    total_exits: float = Field(..., ge=0)
    total_value_exits: float = Field(..., ge=0)
    high_frequency_items: int = Field(..., ge=0)
    avg_weekly_consumption: float = Field(..., ge=0)


class CoffeeMachineReport(ReportBase):
    weeks: int = Field(..., gt=0)
    products: List[CoffeeMachineProductRow]
    top_consumed: List[TopConsumedItem]
    kpis: CoffeeMachineKPIs


# ---------------------------------------------------------------------------
# Cleaning sector


class CleaningProductRow(BaseModel):
    product_id: int
    product_name: str
    category: Optional[str] = None
    opening_stock: float = Field(..., ge=0)
    entries: float = Field(..., ge=0)
    exits: float = Field(..., ge=0)
    closing_stock: float = Field(..., ge=0)
    consumption_total: float = Field(..., ge=0)
    unit_price: float = Field(..., ge=0)
    consumption_value: float = Field(..., ge=0)
    recommended_purchase: int = Field(..., ge=0)
    estimated_cost: float = Field(..., ge=0)
    photo_ref: Optional[str] = None


class CleaningSummary(BaseModel):
    total_products: int = Field(..., ge=0)
    total_consumption_value: float = Field(..., ge=0)
    total_items_consumed: float = Field(..., ge=0)
    total_purchase_value: float = Field(..., ge=0)
    total_entries: float = Field(..., ge=0)
    total_exits: float = Field(..., ge=0)


class CleaningSectorReport(ReportBase):
    products: List[CleaningProductRow]
    summary: CleaningSummary
    comparison: Optional[List[ComparisonRow]] = None


# ---------------------------------------------------------------------------
# General inventory


class GeneralInventoryRow(BaseModel):
    product_id: int
    product_name: str
    sector_id: int
    sector_name: str
    category: Optional[str] = None
    current_stock: float = Field(..., ge=0)
    unit_price: float = Field(..., ge=0)
    total_value: float = Field(..., ge=0)
    stock_status: StockStatus
    photo_ref: Optional[str] = None


class SectorInventoryGroup(BaseModel):
    sector_id: int
    sector_name: str
    total_products: int = Field(..., ge=0)
    total_value: float = Field(..., ge=0)
    products: List[GeneralInventoryRow]


class GeneralInventoryKPIs(BaseModel):
    total_products: int = Field(..., ge=0)
    total_sectors: int = Field(..., ge=0)
    total_inventory_value: float = Field(..., ge=0)
    low_stock_items: int = Field(..., ge=0)
    out_of_stock_items: int = Field(..., ge=0)


class GeneralInventoryReport(ReportBase):
    kpis: GeneralInventoryKPIs
    by_sector: List[SectorInventoryGroup]
    products: List[GeneralInventoryRow]


# ---------------------------------------------------------------------------
# FoodStation overview


class OverviewProductRow(BaseModel):
    product_id: int
    product_name: str
    category: Optional[str] = None
    current_stock: float = Field(..., ge=0)
    min_stock: Optional[float] = None
    unit_price: float = Field(..., ge=0)
    total_exits: float = Field(..., ge=0)
    total_value_exits: float = Field(..., ge=0)
    stock_status: StockStatus
    analysis: PredictiveAnalysis


class OverviewKPIs(BaseModel):
    total_exits: float = Field(..., ge=0)
    total_value: float = Field(..., ge=0)
    unique_products_consumed: int = Field(..., ge=0)
    total_restock_value: float = Field(..., ge=0)
    high_risk_items: int = Field(..., ge=0)


class FoodStationOverviewReport(ReportBase):
    kpis: OverviewKPIs
    products: List[OverviewProductRow]
    top_consumed: List[TopConsumedItem]


# ---------------------------------------------------------------------------
# Consumption ledgers


class ConsumptionGroup(BaseModel):
    """Totals for one ``group_by`` bucket; exactly one key field is set."""

    user_id: Optional[int] = None
    product_id: Optional[int] = None
    day: Optional[date] = None
    label: str
    total_value: float = Field(..., ge=0)
    total_items: float = Field(..., ge=0)
    consumption_count: int = Field(..., ge=0)


class ConsumptionLedgerReport(ReportBase):
    group_by: GroupBy
    format: ExportFormat
    records: Optional[List[ConsumptionRecord]] = None
    summary: Optional[List[ConsumptionGroup]] = None
    total_value: float = Field(..., ge=0)
    total_items: float = Field(..., ge=0)


class UserTotal(BaseModel):
    user_id: Optional[int] = None
    matricula: str
    user_name: str
    total_value: float = Field(..., ge=0)


class ConsumptionControlReport(ReportBase):
    records: List[ConsumptionRecord]
    user_totals: List[UserTotal]
    total_value: float = Field(..., ge=0)
    total_items: float = Field(..., ge=0)


# ---------------------------------------------------------------------------
# Sector product management


class ManagementProductRow(BaseModel):
    product_id: int
    product_name: str
    category: Optional[str] = None
    current_stock: float = Field(..., ge=0)
    total_entries: float = Field(..., ge=0)
    total_exits: float = Field(..., ge=0)
    unit_price: float = Field(..., ge=0)
    total_value: float = Field(..., ge=0)
    avg_daily_consumption: float = Field(..., ge=0)
    trend: TrendResult
    predicted_consumption: int = Field(..., ge=0)
    recommended_reorder: int = Field(..., ge=0)
    stockout_risk: StockoutRisk
    days_until_stockout: Optional[int] = None
    next_order_date: Optional[datetime] = None
    stock_status: StockStatus
    photo_ref: Optional[str] = None


class ManagementKPIs(BaseModel):
    total_products: int = Field(..., ge=0)
    total_entries: float = Field(..., ge=0)
    total_exits: float = Field(..., ge=0)
    total_inventory_value: float = Field(..., ge=0)
    total_reorder_value: float = Field(..., ge=0)


class SectorProductManagementReport(ReportBase):
    horizon_days: int = Field(..., gt=0)
    kpis: ManagementKPIs
    products: List[ManagementProductRow]
    top_exits: List[TopConsumedItem]
