"""Tests for route and driver efficiency rollups."""

from datetime import date, datetime

import pytest

from vendops.models.records import RouteRun, RouteStop
from vendops.services.route_service import RouteService
from vendops.utils.date_utils import UTC_TZ


def at(day, hour):
    return datetime(2024, 3, day, hour, 0, tzinfo=UTC_TZ)


@pytest.fixture
def service():
    return RouteService()


@pytest.fixture
def runs():
    return [
        RouteRun(id="r1", route_name="North", driver_name="Ann", started_at=at(10, 8), finished_at=at(10, 12)),
        RouteRun(id="r2", route_name="South", driver_name="Bo", started_at=at(10, 9), finished_at=at(10, 11)),
    ]


@pytest.fixture
def stops():
    return [
        RouteStop(run_id="r1", machine_id="m1", miles=10, service_minutes=15),
        RouteStop(run_id="r1", machine_id="m2", miles=5, service_minutes=15),
        RouteStop(run_id="r2", machine_id="m1", miles=4, service_minutes=10),
    ]


@pytest.fixture
def sales(make_sale):
    return [
        make_sale(machine_id="m1", day=date(2024, 3, 10), price_cents=2000),
        make_sale(machine_id="m2", day=date(2024, 3, 10), price_cents=1000),
        make_sale(machine_id="m1", day=date(2024, 3, 11), price_cents=5000),
    ]


class TestEmptyInput:
    @pytest.mark.parametrize("no_runs", [None, []])
    def test_zero_result(self, service, no_runs):
        result = service.get_route_analytics(no_runs, [], [])

        assert result["total_runs"] == 0
        assert result["total_revenue"] == 0
        assert result["efficiency"] == {"miles_per_hour": 0, "revenue_per_hour": 0, "stops_per_hour": 0}
        assert result["top_routes"] == []
        assert result["top_drivers"] == []
        assert result["daily_trends"] == []


class TestRouteAnalytics:
    def test_totals_and_global_efficiency(self, service, runs, stops, sales):
        result = service.get_route_analytics(runs, stops, sales)

        assert result["total_runs"] == 2
        assert result["total_revenue"] == 50.0
        assert result["total_miles"] == 19.0
        assert result["total_stops"] == 3
        assert result["total_duration_hours"] == 6.0
        assert result["avg_stops_per_run"] == 1.5
        assert result["avg_service_time_per_stop"] == 13.33
        assert result["efficiency"] == {"miles_per_hour": 3.17, "revenue_per_hour": 8.33, "stops_per_hour": 0.5}

    def test_machine_day_revenue_is_shared_across_runs(self, service, runs, stops, sales):
        result = service.get_route_analytics(runs, stops, sales)

        routes = {row["route"]: row for row in result["top_routes"]}
        assert routes["North"]["revenue"] == 30.0
        assert routes["South"]["revenue"] == 20.0
        assert result["attribution"] == "machine_day"
        assert result["double_counted_machine_days"] == 1

    def test_rankings_sorted_by_efficiency(self, service, runs, stops, sales):
        result = service.get_route_analytics(runs, stops, sales)

        assert [row["route"] for row in result["top_routes"]] == ["South", "North"]
        assert result["top_routes"][0]["efficiency"] == 10.0
        assert result["top_routes"][1]["efficiency"] == 7.5
        assert [row["driver"] for row in result["top_drivers"]] == ["Bo", "Ann"]
        assert result["top_drivers"][1]["avg_stops"] == 2.0

    def test_daily_trends(self, service, runs, stops, sales):
        extra = RouteRun(id="r3", route_name="North", driver_name="Ann", started_at=at(9, 8), finished_at=at(9, 9))
        result = service.get_route_analytics([extra] + runs, stops, sales)

        assert result["daily_trends"] == [
            {"date": "2024-03-09", "runs": 1, "revenue": 0.0, "miles": 0.0, "stops": 0},
            {"date": "2024-03-10", "runs": 2, "revenue": 50.0, "miles": 19.0, "stops": 3},
        ]

    def test_missing_finish_time_gives_zero_duration(self, service, stops, sales):
        runs = [RouteRun(id="r1", route_name="North", driver_name="Ann", started_at=at(10, 8), finished_at=None)]
        result = service.get_route_analytics(runs, stops, sales)

        assert result["total_duration_hours"] == 0
        assert result["efficiency"]["revenue_per_hour"] == 0
        assert result["top_routes"][0]["efficiency"] == 0
        assert result["total_revenue"] == 30.0

    def test_unknown_machine_stops_earn_no_revenue(self, service, runs, sales):
        stops = [RouteStop(run_id="r1", machine_id="unknown", miles=3, service_minutes=5)]
        result = service.get_route_analytics(runs[:1], stops, sales)

        assert result["total_revenue"] == 0
        assert result["total_miles"] == 3.0
        assert result["total_stops"] == 1

    def test_top_n(self, service, sales):
        runs = [
            RouteRun(id=f"r{i}", route_name=f"Route {i}", driver_name="Ann", started_at=at(10, 8), finished_at=at(10, 9))
            for i in range(7)
        ]
        result = service.get_route_analytics(runs, [], sales, top_n=5)
        assert len(result["top_routes"]) == 5
        assert len(result["top_drivers"]) == 1
        assert result["top_drivers"][0]["runs"] == 7
