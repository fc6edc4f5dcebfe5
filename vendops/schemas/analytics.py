from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Union
from datetime import datetime
from enum import Enum


RawRows = List[Dict[str, Any]]
Lookup = Optional[Union[Dict[str, Any], List[Dict[str, Any]]]]


class MoverGrouping(str, Enum):
    MACHINE = "machine"
    PRODUCT = "product"
    LOCATION = "location"
    CATEGORY = "category"


class LookupTables(BaseModel):
    """Name lookups keyed by id, either ``{id: row}`` or a list of rows with ``id``"""
    products: Lookup = None
    machines: Lookup = None
    locations: Lookup = None


# =============================================================================
# REQUESTS
# =============================================================================

class InventoryRiskRequest(BaseModel):
    inventory: RawRows = Field(default_factory=list)
    sales: Optional[RawRows] = Field(None, description="Sales used to recompute velocity")
    window_days: Optional[int] = None
    top_n: Optional[int] = Field(None, ge=1)
    lookups: LookupTables = Field(default_factory=LookupTables)


class InventoryPredictionRequest(BaseModel):
    inventory: RawRows = Field(default_factory=list)
    sales: Optional[RawRows] = None
    window_days: Optional[int] = None
    now: Optional[datetime] = None
    lookups: LookupTables = Field(default_factory=LookupTables)


class StockoutRequest(BaseModel):
    current_sales: RawRows = Field(default_factory=list)
    previous_sales: RawRows = Field(default_factory=list)
    days: Optional[int] = None
    now: Optional[datetime] = Field(None, description="Reference time; the window ends on its UTC date")
    planogram: Optional[RawRows] = Field(None, description="Stocked slots, enables never-sold detection")
    lookups: LookupTables = Field(default_factory=LookupTables)


class MoversRequest(BaseModel):
    current_sales: RawRows = Field(default_factory=list)
    previous_sales: RawRows = Field(default_factory=list)
    group_by: str = MoverGrouping.MACHINE.value
    top_n: Optional[int] = Field(None, ge=1)
    lookups: LookupTables = Field(default_factory=LookupTables)


class MachineSummaryRequest(BaseModel):
    current_sales: RawRows = Field(default_factory=list)
    previous_sales: RawRows = Field(default_factory=list)
    now: Optional[datetime] = None
    lookups: LookupTables = Field(default_factory=LookupTables)


class RouteEfficiencyRequest(BaseModel):
    runs: Optional[RawRows] = Field(None, description="None when the run table is unavailable")
    stops: RawRows = Field(default_factory=list)
    sales: RawRows = Field(default_factory=list)
    top_n: Optional[int] = Field(None, ge=1)
    lookups: LookupTables = Field(default_factory=LookupTables)


class PipelineKPIRequest(BaseModel):
    prospects: RawRows = Field(default_factory=list)
    now: Optional[datetime] = None


# =============================================================================
# INVENTORY RESPONSES
# =============================================================================

class RiskItem(BaseModel):
    machine_id: str
    machine_name: str
    location_name: str
    product_id: str
    product_name: str
    category: str
    slot_id: str
    current_qty: int
    par_level: float
    reorder_point: float
    sales_velocity: float
    days_of_supply: float
    score: int = Field(..., ge=0, le=100)
    stock_health: str
    urgency: Optional[str] = None
    needs_restock: bool
    recommended_restock_qty: int
    fill_rate: float


class MachineRisk(BaseModel):
    machine_id: str
    machine_name: Optional[str] = None
    location_name: Optional[str] = None
    slots: int
    out_of_stock: int
    low_stock: int
    critical: int
    high: int
    medium: int
    max_score: Optional[int] = None


class InventoryReportResponse(BaseModel):
    total_items: int
    stock_distribution: Dict[str, int]
    out_of_stock_count: int
    low_stock_count: int
    needs_restock_count: int
    avg_days_of_supply: float
    avg_fill_rate: float
    fast_moving_items: int
    slow_moving_items: int
    critical_items: List[RiskItem]
    machines: List[MachineRisk]
    items: List[RiskItem]


class StockoutPrediction(BaseModel):
    machine_id: str
    machine_name: str
    location_name: str
    product_id: str
    product_name: str
    par_level: float
    current_qty: int
    velocity_per_day: float
    days_to_stockout: Optional[int] = None
    restock_by: Optional[str] = None
    urgency: str


# =============================================================================
# SALES RESPONSES
# =============================================================================

class StockoutCandidate(BaseModel):
    key: str
    machine_id: str
    machine: str
    product_id: str
    product: str
    location: str
    streak: int
    curr_tx: int
    prev_tx: int
    drop_pct: int
    urgency: str


class NeverSoldPair(BaseModel):
    key: str
    machine_id: str
    machine: str
    product_id: str
    product: str


class StockoutResponse(BaseModel):
    days: int
    end_date: str
    candidates: List[StockoutCandidate]
    never_sold: List[NeverSoldPair]


class MoverEntry(BaseModel):
    key: str
    curr: float
    prev: float
    delta: float
    pct_label: str
    tx_curr: int
    tx_prev: int


class MoversResponse(BaseModel):
    group_by: str
    gainers: List[MoverEntry]
    decliners: List[MoverEntry]


class MachineSummaryRow(BaseModel):
    machine: str
    location: str
    tx: int
    revenue: float
    prev_revenue: float
    delta: float
    pct_label: str
    last_sale: Optional[str] = None
    status: str


class DailySales(BaseModel):
    date: str
    revenue: float
    tx: int
    units: int


class MachineSummaryResponse(BaseModel):
    machines: List[MachineSummaryRow]
    status_counts: Dict[str, int]
    daily_trend: List[DailySales]


# =============================================================================
# ROUTE RESPONSES
# =============================================================================

class RunMetric(BaseModel):
    runs: int
    revenue: float
    miles: float
    stops: int
    duration_hours: float
    avg_revenue: float
    avg_stops: float
    efficiency: float


class RouteMetric(RunMetric):
    route: str


class DriverMetric(RunMetric):
    driver: str


class EfficiencyMetrics(BaseModel):
    miles_per_hour: float
    revenue_per_hour: float
    stops_per_hour: float


class RouteDailyTrend(BaseModel):
    date: str
    runs: int
    revenue: float
    miles: float
    stops: int


class RouteEfficiencyResponse(BaseModel):
    total_runs: int
    total_miles: float
    total_revenue: float
    total_stops: int
    total_duration_hours: float
    avg_stops_per_run: float
    avg_miles_per_run: float
    avg_revenue_per_run: float
    avg_service_time_per_stop: float
    efficiency: EfficiencyMetrics
    top_routes: List[RouteMetric]
    top_drivers: List[DriverMetric]
    daily_trends: List[RouteDailyTrend]
    attribution: str
    double_counted_machine_days: int


# =============================================================================
# PIPELINE RESPONSES
# =============================================================================

class SourceStats(BaseModel):
    source: str
    total: int
    won: int
    qualified: int
    conversion_rate: float
    qualification_rate: float


class StalledProspect(BaseModel):
    id: str
    stage: str
    source: str
    estimated_value: float
    age_days: float


class PipelineKPIResponse(BaseModel):
    total_prospects: int
    active_prospects: int
    won_prospects: int
    lost_prospects: int
    new_last_7_days: int
    new_last_30_days: int
    won_this_month: int
    won_last_month: int
    monthly_growth: float
    sales_velocity: float
    conversion_rate: float
    qualification_rate: float
    avg_sales_cycle: Optional[float] = None
    avg_active_age: Optional[float] = None
    pipeline_value: float
    avg_deal_size: float
    overdue_followups: int
    next_30_days_followups: int
    top_sources: List[SourceStats]
    stage_distribution: Dict[str, int]
    stalled_prospects: int
    stalled_list: List[StalledProspect]
    unrecognized_stages: int
