from typing import List

from fastapi import APIRouter, Depends

from vendops.config.settings import Settings
from vendops.core.dependencies import (
    get_analytics_service,
    get_app_settings,
    validate_grouping,
    validate_window,
)
from vendops.schemas.analytics import (
    InventoryPredictionRequest,
    InventoryReportResponse,
    InventoryRiskRequest,
    MachineSummaryRequest,
    MachineSummaryResponse,
    MoversRequest,
    MoversResponse,
    PipelineKPIRequest,
    PipelineKPIResponse,
    RouteEfficiencyRequest,
    RouteEfficiencyResponse,
    StockoutPrediction,
    StockoutRequest,
    StockoutResponse,
)
from vendops.services.analytics_service import AnalyticsService

router = APIRouter()


@router.post("/inventory/risk", response_model=InventoryReportResponse)
async def get_inventory_risk(
    request: InventoryRiskRequest,
    service: AnalyticsService = Depends(get_analytics_service),
    settings: Settings = Depends(get_app_settings),
):
    """
    Risk scores, stock-health buckets and restock urgency per slot
    """
    window_days = validate_window(request.window_days or settings.DEFAULT_WINDOW_DAYS, settings)
    return service.get_inventory_risk(
        raw_inventory=request.inventory,
        raw_sales=request.sales,
        lookups=request.lookups.model_dump(),
        window_days=window_days,
        top_n=request.top_n,
    )


@router.post("/inventory/predictions", response_model=List[StockoutPrediction])
async def get_inventory_predictions(
    request: InventoryPredictionRequest,
    service: AnalyticsService = Depends(get_analytics_service),
    settings: Settings = Depends(get_app_settings),
):
    """
    Days until each slot runs out at its current sales velocity
    """
    window_days = validate_window(request.window_days or settings.DEFAULT_WINDOW_DAYS, settings)
    return service.get_stockout_predictions(
        raw_inventory=request.inventory,
        raw_sales=request.sales,
        lookups=request.lookups.model_dump(),
        window_days=window_days,
        now=request.now,
    )


@router.post("/stockouts", response_model=StockoutResponse)
async def get_stockout_candidates(
    request: StockoutRequest,
    service: AnalyticsService = Depends(get_analytics_service),
    settings: Settings = Depends(get_app_settings),
):
    """
    Machine/product pairs whose recent sales look like an empty slot
    """
    days = validate_window(request.days or settings.DEFAULT_WINDOW_DAYS, settings)
    return service.get_stockout_candidates(
        raw_current_sales=request.current_sales,
        raw_previous_sales=request.previous_sales,
        days=days,
        now=request.now,
        raw_planogram=request.planogram,
        lookups=request.lookups.model_dump(),
    )


@router.post("/movers", response_model=MoversResponse)
async def get_movers(
    request: MoversRequest,
    service: AnalyticsService = Depends(get_analytics_service),
):
    """
    Top gainers and decliners by revenue between two windows
    """
    group_by = validate_grouping(request.group_by)
    return service.get_movers(
        raw_current_sales=request.current_sales,
        raw_previous_sales=request.previous_sales,
        group_by=group_by,
        top_n=request.top_n,
        lookups=request.lookups.model_dump(),
    )


@router.post("/machines/summary", response_model=MachineSummaryResponse)
async def get_machine_summary(
    request: MachineSummaryRequest,
    service: AnalyticsService = Depends(get_analytics_service),
):
    """
    Per-machine revenue comparison with online/idle/offline status
    """
    return service.get_machine_summary(
        raw_current_sales=request.current_sales,
        raw_previous_sales=request.previous_sales,
        now=request.now,
        lookups=request.lookups.model_dump(),
    )


@router.post("/routes/efficiency", response_model=RouteEfficiencyResponse)
async def get_route_efficiency(
    request: RouteEfficiencyRequest,
    service: AnalyticsService = Depends(get_analytics_service),
):
    """
    Route and driver efficiency rankings
    """
    return service.get_route_efficiency(
        raw_runs=request.runs,
        raw_stops=request.stops,
        raw_sales=request.sales,
        top_n=request.top_n,
        lookups=request.lookups.model_dump(),
    )


@router.post("/prospects/kpis", response_model=PipelineKPIResponse)
async def get_pipeline_kpis(
    request: PipelineKPIRequest,
    service: AnalyticsService = Depends(get_analytics_service),
):
    """
    Pipeline KPIs: cohorts, conversion, sales cycle and stalled prospects
    """
    return service.get_pipeline_kpis(raw_prospects=request.prospects, now=request.now)
