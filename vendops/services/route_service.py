# Route and driver efficiency service
# Joins route runs, their stops and same-day machine sales into per-route and per-driver ratios


from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from vendops.config.logging import get_logger, log_performance
from vendops.models.records import UNKNOWN, RouteRun, RouteStop, SaleRecord
from vendops.utils.aggregation import Sum, group_and_aggregate, safe_ratio
from vendops.utils.date_utils import DateUtils

logger = get_logger(__name__)

# Revenue is attributed per machine-day: every run that visits a machine on a
# given day is credited with that machine's whole day of sales.
ATTRIBUTION_MACHINE_DAY = "machine_day"


@dataclass
class RunTotals:
    """Running totals for one route, driver or day"""
    runs: int = 0
    revenue: float = 0.0
    miles: float = 0.0
    stops: int = 0
    duration_hours: float = 0.0

    def add(self, revenue: float, miles: float, stops: int, duration_hours: float):
        self.runs += 1
        self.revenue += revenue
        self.miles += miles
        self.stops += stops
        self.duration_hours += duration_hours

    @property
    def efficiency(self) -> float:
        return safe_ratio(self.revenue, self.duration_hours)


@dataclass
class RunSummary:
    """Per-run figures before they are rolled up"""
    run: RouteRun
    miles: float
    service_minutes: float
    stop_count: int
    duration_hours: float
    machines: Set[str] = field(default_factory=set)
    revenue: float = 0.0


class RouteService:
    """Route and driver efficiency rollups"""

    @log_performance("vendops.services.route")
    def get_route_analytics(
        self,
        runs: Optional[Iterable[RouteRun]],
        stops: Iterable[RouteStop],
        sales: Iterable[SaleRecord],
        top_n: int = 5,
    ) -> Dict[str, Any]:
        """Efficiency report over a window of runs.

        ``runs=None`` means the run table is unavailable; both that and an
        empty list give the all-zero report.
        """
        runs = list(runs or [])
        if not runs:
            return self._empty_analytics()

        stops_by_run = defaultdict(list)
        for stop in stops or []:
            stops_by_run[stop.run_id].append(stop)

        revenue_by_machine_day = group_and_aggregate(
            sales or [],
            key_fn=lambda sale: f"{sale.machine_id}|{sale.day.isoformat()}",
            aggregators={"revenue": Sum("revenue")},
            predicate=lambda sale: sale.day is not None,
        )

        summaries = [self._summarize_run(run, stops_by_run.get(run.id, [])) for run in runs]
        visits = defaultdict(int)
        for summary in summaries:
            if summary.run.started_at is None:
                continue
            day = summary.run.started_at.date().isoformat()
            for machine_id in summary.machines:
                key = f"{machine_id}|{day}"
                visits[key] += 1
                summary.revenue += revenue_by_machine_day.get(key, {}).get("revenue", 0)

        totals = RunTotals()
        total_service_minutes = 0.0
        by_route: Dict[str, RunTotals] = defaultdict(RunTotals)
        by_driver: Dict[str, RunTotals] = defaultdict(RunTotals)
        by_day: Dict[str, RunTotals] = defaultdict(RunTotals)

        for summary in summaries:
            figures = (summary.revenue, summary.miles, summary.stop_count, summary.duration_hours)
            totals.add(*figures)
            total_service_minutes += summary.service_minutes
            by_route[summary.run.route_name].add(*figures)
            by_driver[summary.run.driver_name].add(*figures)
            if summary.run.started_at is not None:
                by_day[summary.run.started_at.date().isoformat()].add(*figures)

        double_counted = sum(1 for count in visits.values() if count > 1)
        if double_counted:
            logger.debug(f"{double_counted} machine-days credited to more than one run")

        return {
            "total_runs": totals.runs,
            "total_miles": round(totals.miles, 2),
            "total_revenue": round(totals.revenue, 2),
            "total_stops": totals.stops,
            "total_duration_hours": round(totals.duration_hours, 2),
            "avg_stops_per_run": round(safe_ratio(totals.stops, totals.runs), 2),
            "avg_miles_per_run": round(safe_ratio(totals.miles, totals.runs), 2),
            "avg_revenue_per_run": round(safe_ratio(totals.revenue, totals.runs), 2),
            "avg_service_time_per_stop": round(safe_ratio(total_service_minutes, totals.stops), 2),
            "efficiency": {
                "miles_per_hour": round(safe_ratio(totals.miles, totals.duration_hours), 2),
                "revenue_per_hour": round(safe_ratio(totals.revenue, totals.duration_hours), 2),
                "stops_per_hour": round(safe_ratio(totals.stops, totals.duration_hours), 2),
            },
            "top_routes": self._rank(by_route, "route", top_n),
            "top_drivers": self._rank(by_driver, "driver", top_n),
            "daily_trends": [
                {
                    "date": day,
                    "runs": data.runs,
                    "revenue": round(data.revenue, 2),
                    "miles": round(data.miles, 2),
                    "stops": data.stops,
                }
                for day, data in sorted(by_day.items())
            ],
            "attribution": ATTRIBUTION_MACHINE_DAY,
            "double_counted_machine_days": double_counted,
        }

    def _summarize_run(self, run: RouteRun, run_stops: List[RouteStop]) -> RunSummary:
        return RunSummary(
            run=run,
            miles=sum(stop.miles for stop in run_stops),
            service_minutes=sum(stop.service_minutes for stop in run_stops),
            stop_count=len(run_stops),
            duration_hours=DateUtils.hours_between(run.started_at, run.finished_at),
            machines={stop.machine_id for stop in run_stops if stop.machine_id != UNKNOWN},
        )

    def _rank(self, metrics: Dict[str, RunTotals], label: str, top_n: int) -> List[Dict[str, Any]]:
        ranked = [
            {
                label: name,
                "runs": data.runs,
                "revenue": round(data.revenue, 2),
                "miles": round(data.miles, 2),
                "stops": data.stops,
                "duration_hours": round(data.duration_hours, 2),
                "avg_revenue": round(safe_ratio(data.revenue, data.runs), 2),
                "avg_stops": round(safe_ratio(data.stops, data.runs), 2),
                "efficiency": round(data.efficiency, 2),
            }
            for name, data in metrics.items()
        ]
        ranked.sort(key=lambda row: (-row["efficiency"], row[label]))
        return ranked[:top_n]

    def _empty_analytics(self) -> Dict[str, Any]:
        return {
            "total_runs": 0,
            "total_miles": 0,
            "total_revenue": 0,
            "total_stops": 0,
            "total_duration_hours": 0,
            "avg_stops_per_run": 0,
            "avg_miles_per_run": 0,
            "avg_revenue_per_run": 0,
            "avg_service_time_per_stop": 0,
            "efficiency": {"miles_per_hour": 0, "revenue_per_hour": 0, "stops_per_hour": 0},
            "top_routes": [],
            "top_drivers": [],
            "daily_trends": [],
            "attribution": ATTRIBUTION_MACHINE_DAY,
            "double_counted_machine_days": 0,
        }
