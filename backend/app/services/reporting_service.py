r"""backend\app\services\reporting_service.py

Report composition.

Every report follows the same shape: resolve the subject, resolve the
period, read snapshots and histories from the store, run the analytics
per product, aggregate KPIs and sort the rows.  Store reads are blocking and
run in worker threads; per-product reads fan out under a semaphore and each
one is bounded by ``REPORT_FETCH_TIMEOUT_SECONDS``.

Reports are values: calling a method twice with the same data and the same
``now`` returns equal results.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

import anyio

from ..core.config import AnalyticsThresholds, Settings, get_settings
from ..core.errors import DataUnavailableError, InvalidPeriodError, NotFoundError
from ..core.observability import REPORT_FETCH_TIMEOUTS, REPORT_GENERATION_SECONDS
from ..models.schemas import (
    Cadence,
    CleaningProductRow,
    CleaningSectorReport,
    CleaningSummary,
    CoffeeMachineKPIs,
    CoffeeMachineProductRow,
    CoffeeMachineReport,
    ComparisonRow,
    ConsumptionControlReport,
    ConsumptionFrequency,
    ConsumptionGroup,
    ConsumptionLedgerReport,
    ConsumptionRecord,
    ExportFormat,
    FoodStationOverviewReport,
    FrequencyRow,
    GeneralInventoryKPIs,
    GeneralInventoryReport,
    GeneralInventoryRow,
    GroupBy,
    HistoryPoint,
    ManagementKPIs,
    ManagementProductRow,
    OverviewKPIs,
    OverviewProductRow,
    Period,
    PredictiveAnalysis,
    ProductAnalysisResponse,
    ProductSnapshot,
    PurchaseRecommendation,
    RestockPredictionReport,
    RestockSummary,
    Sector,
    SectorInventoryGroup,
    SectorMonthlyReport,
    SectorMonthlySummary,
    SectorProductManagementReport,
    StockSnapshotRow,
    StockStatus,
    StockTransaction,
    StockoutRisk,
    Subject,
    SubjectKind,
    TopConsumedItem,
    UserConsumptionReport,
    UserConsumptionSummary,
    UserTotal,
)
from .analytics_service import (
    INFINITE_RUNWAY_DAYS,
    analyze_product,
    ceil_quantity,
    classify_frequency,
    estimate_trend,
    overview_stock_status,
    risk_sort_key,
    stock_status,
)
from .inventory_store import InventoryStore
from .periods import (
    MonthlyRule,
    ResolvedPeriod,
    as_naive_utc,
    date_range_period,
    lookback_period,
    previous_period,
    resolve_period,
    rolling_period,
    utcnow,
)
from .timeseries import build_daily_series, quantities

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

COFFEE_KEYWORDS = ("café", "coffee")
CLEANING_KEYWORDS = ("limpeza", "cleaning")
FOODSTATION_KEYWORDS = ("foodstation",)

ANALYSIS_LOOKBACK_DAYS = 15
RESTOCK_HORIZON_DAYS = 15
MANAGEMENT_HORIZON_DAYS = 30
OVERVIEW_DAYS = (7, 15, 30)

SECTOR_MONTHLY_CADENCES = (Cadence.WEEKLY, Cadence.BIWEEKLY, Cadence.MONTHLY)
COFFEE_CADENCES = (Cadence.WEEKLY, Cadence.BIWEEKLY)
CLEANING_CADENCES = (Cadence.FIRST_HALF, Cadence.SECOND_HALF, Cadence.FULL_MONTH)


# ---------------------------------------------------------------------------
# Typed aggregation helpers


@dataclass
class _Totals:
    label: str = ""
    total_value: float = 0.0
    total_items: float = 0.0
    count: int = 0

    def add(self, record: ConsumptionRecord) -> None:
        self.total_value += record.total_price
        self.total_items += record.quantity
        self.count += 1


@dataclass
class _SectorGroup:
    sector_id: int
    sector_name: str
    rows: List[GeneralInventoryRow] = field(default_factory=list)

    def to_model(self) -> SectorInventoryGroup:
        return SectorInventoryGroup(
            sector_id=self.sector_id,
            sector_name=self.sector_name,
            total_products=len(self.rows),
            total_value=sum(row.total_value for row in self.rows),
            products=self.rows,
        )


def _quantity_by_product(records: Iterable[ConsumptionRecord]) -> Dict[int, float]:
    totals: Dict[int, float] = {}
    for record in records:
        totals[record.product_id] = totals.get(record.product_id, 0.0) + record.quantity
    return totals


def _within(moment: datetime, period: ResolvedPeriod) -> bool:
    return period.start <= moment <= period.end


def _entries_by_product(
    transactions: Iterable[StockTransaction], period: ResolvedPeriod
) -> Dict[int, float]:
    totals: Dict[int, float] = {}
    for transaction in transactions:
        if transaction.change > 0 and _within(transaction.created_at, period):
            totals[transaction.product_id] = totals.get(transaction.product_id, 0.0) + transaction.change
    return totals


def _withdrawals_by_product(
    transactions: Iterable[StockTransaction], period: ResolvedPeriod
) -> Dict[int, float]:
    totals: Dict[int, float] = {}
    for transaction in transactions:
        if transaction.change < 0 and _within(transaction.created_at, period):
            totals[transaction.product_id] = totals.get(transaction.product_id, 0.0) - transaction.change
    return totals


def _opening_stock(closing: float, entries: float, exits: float) -> float:
    return max(closing - entries + exits, 0.0)


def _top_items(items: Sequence[TopConsumedItem], limit: int) -> List[TopConsumedItem]:
    """Largest quantity first; items with nothing consumed are left out."""

    consumed = [item for item in items if item.total_qty > 0]
    consumed.sort(key=lambda item: (-item.total_qty, item.product_id))
    return consumed[:limit]


def comparison_rows(
    current: Dict[int, Tuple[str, float]],
    previous: Dict[int, float],
) -> List[ComparisonRow]:
    """Per-product variance of ``current`` against ``previous`` consumption."""

    rows: List[ComparisonRow] = []
    for product_id, (name, current_qty) in current.items():
        previous_qty = previous.get(product_id, 0.0)
        variance = current_qty - previous_qty
        variance_percent = variance / previous_qty * 100 if previous_qty > 0 else 0.0
        rows.append(
            ComparisonRow(
                product_id=product_id,
                product_name=name,
                current_consumption=current_qty,
                previous_consumption=previous_qty,
                variance=variance,
                variance_percent=variance_percent,
            )
        )
    return rows


def _sector_subject(sector: Sector) -> Subject:
    return Subject(kind=SubjectKind.SECTOR, id=sector.id, name=sector.name)


# ---------------------------------------------------------------------------
# Service


class ReportingService:
    """Compose analytics reports from an :class:`InventoryStore`."""

    def __init__(
        self,
        store: Optional[InventoryStore] = None,
        thresholds: Optional[AnalyticsThresholds] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store or InventoryStore(data_root=self.settings.data_dir)
        self._thresholds = thresholds

    @property
    def thresholds(self) -> AnalyticsThresholds:
        """Explicit thresholds, or the current contents of ``analytics.yaml``."""

        if self._thresholds is not None:
            return self._thresholds
        return AnalyticsThresholds.from_config_dir(self.settings.config_dir)

    # ------------------------------------------------------------------
    # Fetching

    async def _fetch(self, kind: str, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking store read in a worker thread under the fetch timeout."""

        timeout = self.settings.report_fetch_timeout_seconds
        try:
            return await asyncio.wait_for(
                anyio.to_thread.run_sync(func, *args, abandon_on_cancel=True),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            REPORT_FETCH_TIMEOUTS.labels(kind).inc()
            name = getattr(func, "__name__", "store read")
            LOGGER.warning("Store read %s timed out after %.1fs for %s report", name, timeout, kind)
            raise DataUnavailableError(
                f"The inventory store did not answer {name} within {timeout:.1f}s.",
                details={"kind": kind},
            ) from exc

    async def _gather_bounded(
        self,
        kind: str,
        products: Sequence[ProductSnapshot],
        worker: Callable[[ProductSnapshot], Awaitable[R]],
    ) -> List[R]:
        """Run ``worker`` for every product with bounded concurrency.

        Products whose reads time out are dropped from the result; any other
        error cancels the remaining workers and propagates.  Input order is
        preserved.
        """

        semaphore = asyncio.Semaphore(max(1, self.settings.report_max_concurrency))

        async def _run(product: ProductSnapshot) -> Optional[R]:
            async with semaphore:
                try:
                    return await worker(product)
                except DataUnavailableError:
                    LOGGER.warning("Dropping product %s from %s report after fetch timeout", product.id, kind)
                    return None

        tasks = [asyncio.ensure_future(_run(product)) for product in products]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return [result for result in results if result is not None]

    async def _analyze(
        self,
        kind: str,
        product: ProductSnapshot,
        now: datetime,
        horizon_days: int,
        thresholds: AnalyticsThresholds,
        lookback_days: int = ANALYSIS_LOOKBACK_DAYS,
        extra_history: Sequence[HistoryPoint] = (),
    ) -> PredictiveAnalysis:
        history = await self._fetch(kind, self.store.history, product.id, lookback_days, now)
        series = build_daily_series(list(history) + list(extra_history), lookback_days, now)
        return analyze_product(product, series, horizon_days, thresholds)

    async def _resolve_sector(
        self, kind: str, sector_id: Optional[int], keywords: Sequence[str]
    ) -> Sector:
        if sector_id is not None:
            return await self._fetch(kind, self.store.sector, sector_id)
        sector = await self._fetch(kind, self.store.find_sector, keywords)
        if sector is None:
            raise NotFoundError("sector", "/".join(keywords))
        return sector

    async def _compare_consumption(
        self,
        kind: str,
        sector_id: int,
        period: ResolvedPeriod,
        current: Dict[int, Tuple[str, float]],
    ) -> Optional[List[ComparisonRow]]:
        """Compare against the period right before ``period``.

        Runs once for an already resolved period.  Any failure, or a prior
        period without consumption, yields ``None``.
        """

        previous = previous_period(period)
        try:
            records = await self._fetch(
                kind,
                self.store.consumptions_by_sector_and_period,
                sector_id,
                previous.start,
                previous.end,
            )
        except Exception as exc:
            LOGGER.warning("Comparison omitted for %s report of sector %s: %r", kind, sector_id, exc)
            return None

        if not records:
            LOGGER.info(
                "Comparison omitted for %s report of sector %s: no consumption between %s and %s",
                kind,
                sector_id,
                previous.start,
                previous.end,
            )
            return None
        return comparison_rows(current, _quantity_by_product(records))

    # ------------------------------------------------------------------
    # Single product

    async def product_analysis(
        self,
        product_id: int,
        days: int = ANALYSIS_LOOKBACK_DAYS,
        horizon_days: int = RESTOCK_HORIZON_DAYS,
        now: Optional[datetime] = None,
    ) -> ProductAnalysisResponse:
        kind = "product_analysis"
        now = as_naive_utc(now) or utcnow()
        if horizon_days <= 0:
            raise InvalidPeriodError("horizon must be a positive integer.")
        period = lookback_period(days, now)

        with REPORT_GENERATION_SECONDS.labels(kind).time():
            product = await self._fetch(kind, self.store.product_snapshot, product_id)
            analysis = await self._analyze(
                kind, product, now, horizon_days, self.thresholds, lookback_days=days
            )

        return ProductAnalysisResponse(
            product=product, analysis=analysis, period=period.to_period(), generated_at=now
        )

    # ------------------------------------------------------------------
    # Restock prediction

    async def restock_prediction_report(
        self, sector_id: int, now: Optional[datetime] = None
    ) -> RestockPredictionReport:
        kind = "restock_prediction"
        now = as_naive_utc(now) or utcnow()
        thresholds = self.thresholds
        LOGGER.info("Building restock prediction for sector %s", sector_id)

        with REPORT_GENERATION_SECONDS.labels(kind).time():
            sector = await self._fetch(kind, self.store.sector, sector_id)
            products = await self._fetch(kind, self.store.products_by_sector, sector.id)

            async def _worker(product: ProductSnapshot) -> PredictiveAnalysis:
                return await self._analyze(kind, product, now, RESTOCK_HORIZON_DAYS, thresholds)

            analyses = await self._gather_bounded(kind, products, _worker)

        analyses.sort(key=lambda a: (*risk_sort_key(a.stockout_risk, a.recommended_reorder), a.product_id))

        summary = RestockSummary(
            total_products=len(analyses),
            total_recommended_items=sum(1 for a in analyses if a.recommended_reorder > 0),
            high_risk_items=sum(1 for a in analyses if a.stockout_risk is StockoutRisk.HIGH),
            total_recommended_value=sum(a.recommended_reorder * a.unit_price for a in analyses),
        )
        return RestockPredictionReport(
            subject=_sector_subject(sector),
            period=lookback_period(ANALYSIS_LOOKBACK_DAYS, now).to_period(),
            projected_period=Period(
                start=now, end=now + timedelta(days=RESTOCK_HORIZON_DAYS), days=RESTOCK_HORIZON_DAYS
            ),
            currency=self.settings.currency,
            generated_at=now,
            products=analyses,
            summary=summary,
        )

    # ------------------------------------------------------------------
    # User consumption

    async def user_consumption_report(
        self,
        user_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> UserConsumptionReport:
        kind = "user_consumption"
        now = as_naive_utc(now) or utcnow()
        period = date_range_period(start, end, now)

        with REPORT_GENERATION_SECONDS.labels(kind).time():
            user = await self._fetch(kind, self.store.user, user_id)
            consumptions = await self._fetch(
                kind, self.store.user_consumptions, user.id, period.start, period.end
            )
            daily_totals = await self._fetch(
                kind, self.store.daily_consumption_totals, user.id, period.start, period.end
            )

        summary = UserConsumptionSummary(
            total_value=sum(c.total_price for c in consumptions),
            total_items=sum(c.quantity for c in consumptions),
            consumption_count=len(consumptions),
        )
        return UserConsumptionReport(
            subject=Subject(kind=SubjectKind.USER, id=user.id, name=user.full_name),
            period=period.to_period(),
            currency=self.settings.currency,
            generated_at=now,
            consumptions=consumptions,
            daily_totals=daily_totals,
            summary=summary,
        )

    # ------------------------------------------------------------------
    # Sector monthly / biweekly / weekly

    async def sector_monthly_report(
        self,
        sector_id: int,
        cadence: Cadence = Cadence.MONTHLY,
        compare_with_previous: bool = False,
        now: Optional[datetime] = None,
    ) -> SectorMonthlyReport:
        kind = "sector_monthly"
        now = as_naive_utc(now) or utcnow()
        thresholds = self.thresholds
        period = resolve_period(
            cadence, now, monthly_rule=MonthlyRule.MONTH_TO_DATE, allowed=SECTOR_MONTHLY_CADENCES
        )

        with REPORT_GENERATION_SECONDS.labels(kind).time():
            sector = await self._fetch(kind, self.store.sector, sector_id)
            products = await self._fetch(kind, self.store.products_by_sector, sector.id)
            consumptions = await self._fetch(
                kind, self.store.consumptions_by_sector_and_period, sector.id, period.start, period.end
            )

            async def _worker(product: ProductSnapshot) -> Tuple[PredictiveAnalysis, FrequencyRow]:
                analysis = await self._analyze(kind, product, now, RESTOCK_HORIZON_DAYS, thresholds)
                history = await self._fetch(kind, self.store.history, product.id, period.days, now)
                usage = quantities(build_daily_series(history, period.days, now))
                frequency = FrequencyRow(
                    product_id=product.id,
                    product_name=product.name,
                    restock_frequency=sum(1 for qty in usage if qty > 0) / period.days,
                    average_daily_usage=sum(usage) / period.days,
                )
                return analysis, frequency

            results = await self._gather_bounded(kind, products, _worker)
            sector_history = await self._fetch(kind, self.store.sector_history, sector.id, period.days, now)

        consumed = _quantity_by_product(consumptions)
        opening_stock = [
            StockSnapshotRow(
                product_id=p.id,
                product_name=p.name,
                quantity=p.current_stock + consumed.get(p.id, 0.0),
                value=(p.current_stock + consumed.get(p.id, 0.0)) * p.unit_price,
                photo_ref=p.photo_ref,
            )
            for p in products
        ]
        closing_stock = [
            StockSnapshotRow(
                product_id=p.id,
                product_name=p.name,
                quantity=p.current_stock,
                value=p.current_stock * p.unit_price,
                photo_ref=p.photo_ref,
            )
            for p in products
        ]

        recommendations = [
            PurchaseRecommendation(
                product_id=analysis.product_id,
                product_name=analysis.product_name,
                current_stock=analysis.current_stock,
                recommended_quantity=analysis.recommended_reorder,
                estimated_cost=analysis.recommended_reorder * analysis.unit_price,
                priority=analysis.stockout_risk,
                photo_ref=analysis.photo_ref,
            )
            for analysis, _ in results
            if analysis.recommended_reorder > 0
        ]
        recommendations.sort(
            key=lambda r: (*risk_sort_key(r.priority, r.recommended_quantity), r.product_id)
        )

        frequency_analysis = sorted(
            (frequency for _, frequency in results),
            key=lambda f: (-f.restock_frequency, f.product_id),
        )

        summary = SectorMonthlySummary(
            total_consumption_value=sum(c.total_price for c in consumptions),
            total_items_consumed=sum(c.quantity for c in consumptions),
            total_recommended_value=sum(r.estimated_cost for r in recommendations),
            recommended_items=len(recommendations),
            high_priority_items=sum(1 for r in recommendations if r.priority is StockoutRisk.HIGH),
        )

        comparison = None
        if compare_with_previous:
            current = {p.id: (p.name, consumed.get(p.id, 0.0)) for p in products}
            comparison = await self._compare_consumption(kind, sector.id, period, current)

        return SectorMonthlyReport(
            subject=_sector_subject(sector),
            period=period.to_period(),
            currency=self.settings.currency,
            generated_at=now,
            opening_stock=opening_stock,
            closing_stock=closing_stock,
            recommended_purchases=recommendations,
            frequency_analysis=frequency_analysis,
            sector_trend=estimate_trend(
                quantities(build_daily_series(sector_history, period.days, now)), thresholds
            ),
            summary=summary,
            comparison=comparison,
        )

    # ------------------------------------------------------------------
    # Coffee machine

    async def coffee_machine_report(
        self,
        sector_id: Optional[int] = None,
        cadence: Cadence = Cadence.WEEKLY,
        weeks: int = 4,
        now: Optional[datetime] = None,
    ) -> CoffeeMachineReport:
        kind = "coffee_machine"
        now = as_naive_utc(now) or utcnow()
        thresholds = self.thresholds
        cadence = resolve_period(cadence, now, allowed=COFFEE_CADENCES).cadence
        if weeks <= 0:
            raise InvalidPeriodError("weeks must be a positive integer.")
        period = ResolvedPeriod(
            start=now - timedelta(days=weeks * 7), end=now, days=weeks * 7, cadence=cadence
        )

        with REPORT_GENERATION_SECONDS.labels(kind).time():
            sector = await self._resolve_sector(kind, sector_id, COFFEE_KEYWORDS)
            products = await self._fetch(kind, self.store.products_by_sector, sector.id)
            transactions = await self._fetch(kind, self.store.stock_transactions_by_sector, sector.id)
            consumptions = await self._fetch(
                kind, self.store.consumptions_by_sector_and_period, sector.id, period.start, period.end
            )

        entries = _entries_by_product(transactions, period)
        exits = _quantity_by_product(consumptions)

        rows: List[CoffeeMachineProductRow] = []
        for product in products:
            product_entries = entries.get(product.id, 0.0)
            product_exits = exits.get(product.id, 0.0)
            weekly_average = product_exits / weeks
            frequency, reorder_cadence = classify_frequency(weekly_average, thresholds)
            rows.append(
                CoffeeMachineProductRow(
                    product_id=product.id,
                    product_name=product.name,
                    category=product.category,
                    opening_stock=_opening_stock(product.current_stock, product_entries, product_exits),
                    entries=product_entries,
                    exits=product_exits,
                    current_stock=product.current_stock,
                    weekly_avg_consumption=weekly_average,
                    biweekly_avg_consumption=product_exits / (weeks / 2),
                    consumption_frequency=frequency,
                    suggested_reorder_cadence=reorder_cadence,
                    unit_price=product.unit_price,
                    photo_ref=product.photo_ref,
                )
            )

        total_exits = sum(row.exits for row in rows)
        kpis = CoffeeMachineKPIs(
            total_products=len(rows),
            total_exits=total_exits,
            total_value_exits=sum(row.exits * row.unit_price for row in rows),
            high_frequency_items=sum(1 for row in rows if row.consumption_frequency is ConsumptionFrequency.HIGH),
            avg_weekly_consumption=total_exits / weeks,
        )
        top_consumed = _top_items(
            [
                TopConsumedItem(
                    product_id=row.product_id,
                    product_name=row.product_name,
                    total_qty=row.exits,
                    total_value=row.exits * row.unit_price,
                    frequency=row.consumption_frequency,
                    photo_ref=row.photo_ref,
                )
                for row in rows
            ],
            thresholds.top_n,
        )

        return CoffeeMachineReport(
            subject=_sector_subject(sector),
            period=period.to_period(),
            currency=self.settings.currency,
            generated_at=now,
            weeks=weeks,
            products=rows,
            top_consumed=top_consumed,
            kpis=kpis,
        )

    # ------------------------------------------------------------------
    # Cleaning sector

    async def cleaning_sector_report(
        self,
        month: Optional[str] = None,
        cadence: Cadence = Cadence.FULL_MONTH,
        sector_id: Optional[int] = None,
        compare_with_previous: bool = False,
        now: Optional[datetime] = None,
    ) -> CleaningSectorReport:
        kind = "cleaning"
        now = as_naive_utc(now) or utcnow()
        thresholds = self.thresholds
        period = resolve_period(cadence, now, month=month, allowed=CLEANING_CADENCES)

        with REPORT_GENERATION_SECONDS.labels(kind).time():
            sector = await self._resolve_sector(kind, sector_id, CLEANING_KEYWORDS)
            products = await self._fetch(kind, self.store.products_by_sector, sector.id)
            transactions = await self._fetch(kind, self.store.stock_transactions_by_sector, sector.id)
            consumptions = await self._fetch(
                kind, self.store.consumptions_by_sector_and_period, sector.id, period.start, period.end
            )

        entries = _entries_by_product(transactions, period)
        exits = _quantity_by_product(consumptions)
        purchase_factor = 1 + thresholds.cleaning_purchase_buffer

        rows: List[CleaningProductRow] = []
        for product in products:
            product_entries = entries.get(product.id, 0.0)
            product_exits = exits.get(product.id, 0.0)
            recommended = ceil_quantity(product_exits * purchase_factor)
            rows.append(
                CleaningProductRow(
                    product_id=product.id,
                    product_name=product.name,
                    category=product.category,
                    opening_stock=_opening_stock(product.current_stock, product_entries, product_exits),
                    entries=product_entries,
                    exits=product_exits,
                    closing_stock=product.current_stock,
                    consumption_total=product_exits,
                    unit_price=product.unit_price,
                    consumption_value=product_exits * product.unit_price,
                    recommended_purchase=recommended,
                    estimated_cost=recommended * product.unit_price,
                    photo_ref=product.photo_ref,
                )
            )

        summary = CleaningSummary(
            total_products=len(rows),
            total_consumption_value=sum(row.consumption_value for row in rows),
            total_items_consumed=sum(row.consumption_total for row in rows),
            total_purchase_value=sum(row.estimated_cost for row in rows),
            total_entries=sum(row.entries for row in rows),
            total_exits=sum(row.exits for row in rows),
        )

        comparison = None
        if compare_with_previous:
            current = {row.product_id: (row.product_name, row.consumption_total) for row in rows}
            comparison = await self._compare_consumption(kind, sector.id, period, current)

        return CleaningSectorReport(
            subject=_sector_subject(sector),
            period=period.to_period(),
            currency=self.settings.currency,
            generated_at=now,
            products=rows,
            summary=summary,
            comparison=comparison,
        )

    # ------------------------------------------------------------------
    # General inventory

    async def general_inventory_report(
        self,
        sector_id: Optional[int] = None,
        keyword: Optional[str] = None,
        include_out_of_stock: bool = True,
        now: Optional[datetime] = None,
    ) -> GeneralInventoryReport:
        kind = "general_inventory"
        now = as_naive_utc(now) or utcnow()

        with REPORT_GENERATION_SECONDS.labels(kind).time():
            subject = Subject(kind=SubjectKind.GLOBAL)
            if sector_id is not None:
                subject = _sector_subject(await self._fetch(kind, self.store.sector, sector_id))
            products = await self._fetch(kind, self.store.all_products)

        selected = [p for p in products if p.sector_id is not None]
        if sector_id is not None:
            selected = [p for p in selected if p.sector_id == sector_id]
        if keyword:
            needle = keyword.lower()
            selected = [
                p
                for p in selected
                if needle in p.name.lower() or (p.category and needle in p.category.lower())
            ]
        if not include_out_of_stock:
            selected = [p for p in selected if p.current_stock > 0]

        rows = [
            GeneralInventoryRow(
                product_id=p.id,
                product_name=p.name,
                sector_id=p.sector_id,
                sector_name=p.sector_name or "N/A",
                category=p.category,
                current_stock=p.current_stock,
                unit_price=p.unit_price,
                total_value=p.current_stock * p.unit_price,
                stock_status=stock_status(p.current_stock, p.low_stock_threshold, p.max_quantity),
                photo_ref=p.photo_ref,
            )
            for p in selected
        ]

        groups: Dict[int, _SectorGroup] = {}
        for row in rows:
            group = groups.setdefault(row.sector_id, _SectorGroup(row.sector_id, row.sector_name))
            group.rows.append(row)

        kpis = GeneralInventoryKPIs(
            total_products=len(rows),
            total_sectors=len(groups),
            total_inventory_value=sum(row.total_value for row in rows),
            low_stock_items=sum(1 for row in rows if row.stock_status is StockStatus.LOW),
            out_of_stock_items=sum(1 for row in rows if row.stock_status is StockStatus.OUT_OF_STOCK),
        )
        return GeneralInventoryReport(
            subject=subject,
            period=Period(start=now, end=now, days=0),
            currency=self.settings.currency,
            generated_at=now,
            kpis=kpis,
            by_sector=[groups[key].to_model() for key in sorted(groups)],
            products=rows,
        )

    # ------------------------------------------------------------------
    # FoodStation

    async def foodstation_overview_report(
        self, days: int = 30, now: Optional[datetime] = None
    ) -> FoodStationOverviewReport:
        kind = "foodstation_overview"
        now = as_naive_utc(now) or utcnow()
        thresholds = self.thresholds
        if days not in OVERVIEW_DAYS:
            raise InvalidPeriodError(f"days must be one of {', '.join(map(str, OVERVIEW_DAYS))}.")
        period = rolling_period(days, now)

        with REPORT_GENERATION_SECONDS.labels(kind).time():
            sector = await self._resolve_sector(kind, None, FOODSTATION_KEYWORDS)
            products = await self._fetch(kind, self.store.products_by_sector, sector.id)
            consumptions = await self._fetch(
                kind, self.store.consumptions_by_sector_and_period, sector.id, period.start, period.end
            )
            exits = _quantity_by_product(consumptions)

            async def _worker(product: ProductSnapshot) -> OverviewProductRow:
                analysis = await self._analyze(kind, product, now, RESTOCK_HORIZON_DAYS, thresholds)
                product_exits = exits.get(product.id, 0.0)
                return OverviewProductRow(
                    product_id=product.id,
                    product_name=product.name,
                    category=product.category,
                    current_stock=product.current_stock,
                    min_stock=product.low_stock_threshold,
                    unit_price=product.unit_price,
                    total_exits=product_exits,
                    total_value_exits=product_exits * product.unit_price,
                    stock_status=overview_stock_status(
                        product.current_stock, product.low_stock_threshold, thresholds
                    ),
                    analysis=analysis,
                )

            rows = await self._gather_bounded(kind, products, _worker)

        rows.sort(
            key=lambda r: (
                *risk_sort_key(r.analysis.stockout_risk, r.analysis.recommended_reorder),
                r.product_id,
            )
        )
        kpis = OverviewKPIs(
            total_exits=sum(row.total_exits for row in rows),
            total_value=sum(row.total_value_exits for row in rows),
            unique_products_consumed=sum(1 for row in rows if row.total_exits > 0),
            total_restock_value=sum(row.analysis.recommended_reorder * row.unit_price for row in rows),
            high_risk_items=sum(1 for row in rows if row.analysis.stockout_risk is StockoutRisk.HIGH),
        )
        top_consumed = _top_items(
            [
                TopConsumedItem(
                    product_id=row.product_id,
                    product_name=row.product_name,
                    total_qty=row.total_exits,
                    total_value=row.total_value_exits,
                    photo_ref=row.analysis.photo_ref,
                )
                for row in rows
            ],
            thresholds.top_n,
        )
        return FoodStationOverviewReport(
            subject=_sector_subject(sector),
            period=period.to_period(),
            currency=self.settings.currency,
            generated_at=now,
            kpis=kpis,
            products=rows,
            top_consumed=top_consumed,
        )

    async def foodstation_consumptions_report(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        group_by: GroupBy = GroupBy.NONE,
        export_format: ExportFormat = ExportFormat.DETAILED,
        now: Optional[datetime] = None,
    ) -> ConsumptionLedgerReport:
        kind = "foodstation_consumptions"
        now = as_naive_utc(now) or utcnow()
        period = date_range_period(start, end, now)
        group_by = GroupBy(group_by)
        export_format = ExportFormat(export_format)

        with REPORT_GENERATION_SECONDS.labels(kind).time():
            sector = await self._resolve_sector(kind, None, FOODSTATION_KEYWORDS)
            records = await self._fetch(
                kind, self.store.consumptions_by_sector_and_period, sector.id, period.start, period.end
            )

        return ConsumptionLedgerReport(
            subject=_sector_subject(sector),
            period=period.to_period(),
            currency=self.settings.currency,
            generated_at=now,
            group_by=group_by,
            format=export_format,
            records=records if export_format is ExportFormat.DETAILED else None,
            summary=group_consumptions(records, group_by),
            total_value=sum(r.total_price for r in records),
            total_items=sum(r.quantity for r in records),
        )

    async def consumption_control_report(
        self,
        user_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> ConsumptionControlReport:
        kind = "consumption_control"
        now = as_naive_utc(now) or utcnow()
        period = date_range_period(start, end, now)

        with REPORT_GENERATION_SECONDS.labels(kind).time():
            if user_id is not None:
                user = await self._fetch(kind, self.store.user, user_id)
                subject = Subject(kind=SubjectKind.USER, id=user.id, name=user.full_name)
                records = await self._fetch(
                    kind, self.store.user_consumptions, user.id, period.start, period.end
                )
            else:
                subject = Subject(kind=SubjectKind.GLOBAL)
                records = await self._fetch(
                    kind, self.store.consumptions_by_period, period.start, period.end
                )

        return ConsumptionControlReport(
            subject=subject,
            period=period.to_period(),
            currency=self.settings.currency,
            generated_at=now,
            records=records,
            user_totals=user_totals(records),
            total_value=sum(r.total_price for r in records),
            total_items=sum(r.quantity for r in records),
        )

    # ------------------------------------------------------------------
    # Sector product management

    async def sector_product_management_report(
        self,
        sector_id: int,
        days: int = 30,
        now: Optional[datetime] = None,
    ) -> SectorProductManagementReport:
        kind = "sector_product_management"
        now = as_naive_utc(now) or utcnow()
        thresholds = self.thresholds
        period = rolling_period(days, now)

        with REPORT_GENERATION_SECONDS.labels(kind).time():
            sector = await self._fetch(kind, self.store.sector, sector_id)
            products = await self._fetch(kind, self.store.products_by_sector, sector.id)
            transactions = await self._fetch(
                kind, self.store.stock_transactions_by_period, period.start, period.end
            )
            consumptions = await self._fetch(
                kind, self.store.consumptions_by_sector_and_period, sector.id, period.start, period.end
            )

            entries = _entries_by_product(transactions, period)
            withdrawals = _withdrawals_by_product(transactions, period)
            consumed = _quantity_by_product(consumptions)
            withdrawal_days: Dict[int, List[HistoryPoint]] = {}
            for transaction in transactions:
                if transaction.change < 0:
                    withdrawal_days.setdefault(transaction.product_id, []).append(
                        HistoryPoint(date=transaction.created_at.date(), qty=-transaction.change)
                    )

            async def _worker(product: ProductSnapshot) -> ManagementProductRow:
                analysis = await self._analyze(
                    kind,
                    product,
                    now,
                    MANAGEMENT_HORIZON_DAYS,
                    thresholds,
                    lookback_days=days,
                    extra_history=withdrawal_days.get(product.id, ()),
                )
                return self._management_row(
                    product,
                    analysis,
                    entries.get(product.id, 0.0),
                    withdrawals.get(product.id, 0.0) + consumed.get(product.id, 0.0),
                    now,
                    thresholds,
                )

            rows = await self._gather_bounded(kind, products, _worker)

        rows.sort(key=lambda r: (*risk_sort_key(r.stockout_risk, r.recommended_reorder), r.product_id))
        kpis = ManagementKPIs(
            total_products=len(rows),
            total_entries=sum(row.total_entries for row in rows),
            total_exits=sum(row.total_exits for row in rows),
            total_inventory_value=sum(row.total_value for row in rows),
            total_reorder_value=sum(row.recommended_reorder * row.unit_price for row in rows),
        )
        top_exits = _top_items(
            [
                TopConsumedItem(
                    product_id=row.product_id,
                    product_name=row.product_name,
                    total_qty=row.total_exits,
                    total_value=row.total_exits * row.unit_price,
                    photo_ref=row.photo_ref,
                )
                for row in rows
            ],
            thresholds.top_n,
        )
        return SectorProductManagementReport(
            subject=_sector_subject(sector),
            period=period.to_period(),
            currency=self.settings.currency,
            generated_at=now,
            horizon_days=MANAGEMENT_HORIZON_DAYS,
            kpis=kpis,
            products=rows,
            top_exits=top_exits,
        )

    @staticmethod
    def _management_row(
        product: ProductSnapshot,
        analysis: PredictiveAnalysis,
        total_entries: float,
        total_exits: float,
        now: datetime,
        thresholds: AnalyticsThresholds,
    ) -> ManagementProductRow:
        # No runway without consumption, even when stock is already zero.
        runway: Optional[int] = None
        if analysis.average_daily_consumption > 0 and analysis.days_until_stockout < INFINITE_RUNWAY_DAYS:
            runway = int(math.floor(analysis.days_until_stockout))

        next_order_date = None
        if runway is not None and runway < thresholds.reorder_window_days:
            next_order_date = now + timedelta(days=runway - thresholds.reorder_lead_days)

        return ManagementProductRow(
            product_id=product.id,
            product_name=product.name,
            category=product.category,
            current_stock=product.current_stock,
            total_entries=total_entries,
            total_exits=total_exits,
            unit_price=product.unit_price,
            total_value=product.current_stock * product.unit_price,
            avg_daily_consumption=analysis.average_daily_consumption,
            trend=analysis.trend,
            predicted_consumption=analysis.predicted_consumption,
            recommended_reorder=analysis.recommended_reorder,
            stockout_risk=analysis.stockout_risk,
            days_until_stockout=runway,
            next_order_date=next_order_date,
            stock_status=stock_status(product.current_stock, product.low_stock_threshold, product.max_quantity),
            photo_ref=product.photo_ref,
        )


# ---------------------------------------------------------------------------
# Ledger grouping


def group_consumptions(
    records: Sequence[ConsumptionRecord], group_by: GroupBy
) -> Optional[List[ConsumptionGroup]]:
    """Aggregate ledger records by user id, product id or calendar day."""

    if group_by is GroupBy.NONE:
        return None

    if group_by is GroupBy.USER:
        by_user: Dict[Optional[int], _Totals] = {}
        for record in records:
            label = " - ".join(part for part in (record.matricula, record.user_name) if part)
            by_user.setdefault(record.user_id, _Totals(label=label)).add(record)
        groups = [_group(totals, user_id=user_id) for user_id, totals in by_user.items()]
        return sorted(groups, key=lambda g: (-g.total_value, g.label))

    if group_by is GroupBy.PRODUCT:
        by_product: Dict[int, _Totals] = {}
        for record in records:
            by_product.setdefault(record.product_id, _Totals(label=record.product_name)).add(record)
        groups = [_group(totals, product_id=product_id) for product_id, totals in by_product.items()]
        return sorted(groups, key=lambda g: (-g.total_items, g.product_id))

    by_day: Dict[date, _Totals] = {}
    for record in records:
        day = record.consumed_at.date()
        by_day.setdefault(day, _Totals(label=day.isoformat())).add(record)
    return [_group(by_day[day], day=day) for day in sorted(by_day)]


def _group(totals: _Totals, **key: Any) -> ConsumptionGroup:
    return ConsumptionGroup(
        label=totals.label,
        total_value=totals.total_value,
        total_items=totals.total_items,
        consumption_count=totals.count,
        **key,
    )


def user_totals(records: Sequence[ConsumptionRecord]) -> List[UserTotal]:
    """Spend per user id, highest first."""

    totals: Dict[Optional[int], UserTotal] = {}
    for record in records:
        current = totals.get(record.user_id)
        if current is None:
            current = UserTotal(
                user_id=record.user_id,
                matricula=record.matricula,
                user_name=record.user_name,
                total_value=0.0,
            )
        totals[record.user_id] = current.model_copy(
            update={"total_value": current.total_value + record.total_price}
        )
    return sorted(totals.values(), key=lambda t: (-t.total_value, t.user_id or 0))
