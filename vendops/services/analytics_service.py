"""
Analytics Service for the vending operations dashboard
Normalizes already-fetched raw records, reports data-quality signals and
dispatches to the specialized inventory, sales, stockout, route and
pipeline services
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from vendops.config.logging import get_logger, log_data_quality
from vendops.config.settings import Settings, get_settings
from vendops.config.thresholds import AnalyticsThresholds, DEFAULT_THRESHOLDS
from vendops.services.inventory_service import InventoryService
from vendops.services.normalizer import (
    PROSPECT_FIELDS,
    RUN_FIELDS,
    SALE_FIELDS,
    RecordNormalizer,
    count_invalid_timestamps,
    normalize_prospects,
    normalize_runs,
    normalize_stops,
)
from vendops.services.prospect_service import ProspectService
from vendops.services.route_service import RouteService
from vendops.services.sales_service import KEY_FUNCTIONS, SalesService
from vendops.services.stockout_service import StockoutService
from vendops.utils.date_utils import DateUtils

logger = get_logger(__name__)

RawRecords = Optional[List[Mapping[str, Any]]]


class AnalyticsService:
    """Entry point used by the API: raw rows in, plain result dicts out"""

    def __init__(self, settings: Optional[Settings] = None, thresholds: Optional[AnalyticsThresholds] = None):
        self.settings = settings or get_settings()
        self.thresholds = thresholds or DEFAULT_THRESHOLDS
        self.inventory_service = InventoryService(self.thresholds)
        self.stockout_service = StockoutService(self.thresholds)
        self.sales_service = SalesService(self.thresholds)
        self.route_service = RouteService()
        self.prospect_service = ProspectService(self.thresholds)

    def _normalizer(self, lookups: Optional[Mapping[str, Any]]) -> RecordNormalizer:
        lookups = lookups or {}
        return RecordNormalizer(
            products=lookups.get("products"),
            machines=lookups.get("machines"),
            locations=lookups.get("locations"),
            thresholds=self.thresholds,
        )

    def _report_bad_timestamps(self, raw_records: RawRecords, aliases, label: str):
        log_data_quality(
            "invalid_timestamp",
            count_invalid_timestamps(raw_records or [], aliases),
            f"{label} excluded from date-bucketed metrics",
        )

    def _sales(self, normalizer: RecordNormalizer, raw_sales: RawRecords):
        self._report_bad_timestamps(raw_sales, SALE_FIELDS["occurred_at"], "sales")
        return normalizer.sales(raw_sales)

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def get_inventory_risk(
        self,
        raw_inventory: RawRecords,
        raw_sales: RawRecords = None,
        lookups: Optional[Mapping[str, Any]] = None,
        window_days: Optional[int] = None,
        top_n: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Inventory health report; sales, when given, recompute velocity"""
        normalizer = self._normalizer(lookups)
        snapshots = normalizer.inventory_levels(raw_inventory)
        if raw_sales is not None:
            snapshots = self.inventory_service.enrich_with_sales(
                snapshots,
                self._sales(normalizer, raw_sales),
                window_days or self.settings.DEFAULT_WINDOW_DAYS,
            )

        log_data_quality(
            "missing_par_level",
            sum(1 for item in snapshots if not item.has_par_level),
        )
        log_data_quality(
            "missing_reorder_point",
            sum(1 for item in snapshots if not item.has_reorder_point),
            "treated as needing restock",
        )
        return self.inventory_service.get_inventory_report(snapshots, top_n or self.settings.DEFAULT_TOP_N)

    def get_stockout_predictions(
        self,
        raw_inventory: RawRecords,
        raw_sales: RawRecords = None,
        lookups: Optional[Mapping[str, Any]] = None,
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        normalizer = self._normalizer(lookups)
        snapshots = normalizer.inventory_levels(raw_inventory)
        if raw_sales is not None:
            snapshots = self.inventory_service.enrich_with_sales(
                snapshots,
                self._sales(normalizer, raw_sales),
                window_days or self.settings.DEFAULT_WINDOW_DAYS,
            )
        return self.inventory_service.get_stockout_predictions(snapshots, now or DateUtils.get_utc_now())

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def get_stockout_candidates(
        self,
        raw_current_sales: RawRecords,
        raw_previous_sales: RawRecords = None,
        days: Optional[int] = None,
        now: Optional[datetime] = None,
        raw_planogram: RawRecords = None,
        lookups: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Stockout candidates for the window ending on the UTC date of ``now``.

        Pairs that are stocked (``raw_planogram``) but never sold in either
        window are listed under ``never_sold`` and are not candidates.
        """
        days = days or self.settings.DEFAULT_WINDOW_DAYS
        end_day = DateUtils.to_utc(now or DateUtils.get_utc_now()).date()
        normalizer = self._normalizer(lookups)
        current = self._sales(normalizer, raw_current_sales)
        previous = self._sales(normalizer, raw_previous_sales)

        candidates = self.stockout_service.find_candidates(current, previous, days, end_day)
        never_sold = []
        if raw_planogram is not None:
            never_sold = self.stockout_service.find_never_sold(
                normalizer.inventory_levels(raw_planogram), current, previous, days, end_day
            )
            log_data_quality("never_sold_pair", len(never_sold), "possible planogram or setup error")

        return {
            "days": days,
            "end_date": end_day.isoformat(),
            "candidates": candidates,
            "never_sold": never_sold,
        }

    def get_movers(
        self,
        raw_current_sales: RawRecords,
        raw_previous_sales: RawRecords,
        group_by: str = "machine",
        top_n: Optional[int] = None,
        lookups: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Gainers and decliners; ``group_by`` must be a key of ``KEY_FUNCTIONS``"""
        normalizer = self._normalizer(lookups)
        movers = self.sales_service.get_movers(
            self._sales(normalizer, raw_current_sales),
            self._sales(normalizer, raw_previous_sales),
            KEY_FUNCTIONS[group_by],
            top_n or self.settings.DEFAULT_TOP_N,
        )
        return {"group_by": group_by, **movers}

    def get_machine_summary(
        self,
        raw_current_sales: RawRecords,
        raw_previous_sales: RawRecords = None,
        now: Optional[datetime] = None,
        lookups: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        normalizer = self._normalizer(lookups)
        current = self._sales(normalizer, raw_current_sales)
        previous = self._sales(normalizer, raw_previous_sales)
        machines = self.sales_service.summarize_machines(current, previous, now or DateUtils.get_utc_now())

        statuses = {"online": 0, "idle": 0, "offline": 0}
        for machine in machines:
            statuses[machine["status"]] += 1

        return {
            "machines": machines,
            "status_counts": statuses,
            "daily_trend": self.sales_service.get_daily_trend(current),
        }

    # ------------------------------------------------------------------
    # Routes and pipeline
    # ------------------------------------------------------------------

    def get_route_efficiency(
        self,
        raw_runs: RawRecords,
        raw_stops: RawRecords = None,
        raw_sales: RawRecords = None,
        top_n: Optional[int] = None,
        lookups: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Route and driver report; ``raw_runs=None`` means no run table"""
        if raw_runs is None:
            logger.info("Route runs unavailable, returning empty route report")
            return self.route_service.get_route_analytics(None, [], [])

        self._report_bad_timestamps(raw_runs, RUN_FIELDS["started_at"], "route runs")
        normalizer = self._normalizer(lookups)
        return self.route_service.get_route_analytics(
            normalize_runs(raw_runs),
            normalize_stops(raw_stops),
            self._sales(normalizer, raw_sales),
            top_n or self.settings.DEFAULT_TOP_N,
        )

    def get_pipeline_kpis(self, raw_prospects: RawRecords, now: Optional[datetime] = None) -> Dict[str, Any]:
        self._report_bad_timestamps(raw_prospects, PROSPECT_FIELDS["created_at"], "prospects")
        prospects = normalize_prospects(raw_prospects)

        unrecognized = sorted({p.raw_stage for p in prospects if not p.stage_recognized})
        log_data_quality(
            "unrecognized_stage",
            sum(1 for p in prospects if not p.stage_recognized),
            f"mapped to 'new': {', '.join(unrecognized)}" if unrecognized else None,
        )
        return self.prospect_service.get_pipeline_kpis(prospects, now or DateUtils.get_utc_now())
