"""Tests for mover analysis, machine summaries and pricing checks."""

from datetime import date, datetime

import pytest

from vendops.services.sales_service import KEY_FUNCTIONS, SalesService, delta_pct, pct_label
from vendops.utils.date_utils import UTC_TZ


@pytest.fixture
def service():
    return SalesService()


class TestPercentLabels:
    @pytest.mark.parametrize("curr, prev, label", [
        (0, 10, "-100.0%"),
        (15, 10, "50.0%"),
        (5, 0, "∞%"),
        (0, 0, "0%"),
        (10, 3, "233.3%"),
    ])
    def test_pct_label(self, curr, prev, label):
        assert pct_label(curr, prev) == label

    def test_delta_pct_is_signed(self):
        assert delta_pct(11.25, 10) == "+12.5%"
        assert delta_pct(5, 10) == "-50.0%"
        assert delta_pct(3, 0) == "∞%"


class TestMovers:
    def test_previous_only_key_is_a_decliner(self, service, make_sale):
        previous = [make_sale(machine_id="m1", price_cents=1000)]
        movers = service.get_movers([], previous, KEY_FUNCTIONS["machine"])

        assert movers["gainers"] == []
        assert movers["decliners"] == [{
            "key": "M1",
            "curr": 0,
            "prev": 10.0,
            "delta": -10.0,
            "pct_label": "-100.0%",
            "tx_curr": 0,
            "tx_prev": 1,
        }]

    def test_gainers_and_decliners_are_disjoint_and_ranked(self, service, make_sale):
        current = [
            make_sale(machine_id="m1", price_cents=500),
            make_sale(machine_id="m2", price_cents=3000),
            make_sale(machine_id="m3", price_cents=100),
            make_sale(machine_id="m4", price_cents=200),
        ]
        previous = [
            make_sale(machine_id="m2", price_cents=1000),
            make_sale(machine_id="m3", price_cents=900),
            make_sale(machine_id="m4", price_cents=200),
        ]
        movers = service.get_movers(current, previous, KEY_FUNCTIONS["machine"])

        gainers = [m["key"] for m in movers["gainers"]]
        decliners = [m["key"] for m in movers["decliners"]]
        assert gainers == ["M2", "M1"]
        assert decliners == ["M3"]
        assert not set(gainers) & set(decliners)
        assert movers["gainers"][1]["pct_label"] == "∞%"

    def test_top_n_limit(self, service, make_sale):
        current = [make_sale(machine_id=f"m{i}", price_cents=100 * (i + 1)) for i in range(8)]
        movers = service.get_movers(current, [], KEY_FUNCTIONS["machine"], limit=3)
        assert [m["key"] for m in movers["gainers"]] == ["M7", "M6", "M5"]

    def test_grouping_by_category(self, service, make_sale):
        current = [make_sale(category="drinks", price_cents=300), make_sale(category="snacks", price_cents=100)]
        previous = [make_sale(category="drinks", price_cents=100)]
        movers = service.get_movers(current, previous, KEY_FUNCTIONS["category"])
        assert [m["key"] for m in movers["gainers"]] == ["drinks", "snacks"]


class TestMachineSummary:
    def test_status_from_last_sale(self, service, make_sale, now):
        current = [
            make_sale(machine_id="m1", day=date(2024, 3, 30), price_cents=500),
            make_sale(machine_id="m2", day=date(2024, 3, 26), price_cents=200, location_name="Gym"),
        ]
        previous = [make_sale(machine_id="m3", day=date(2024, 2, 15), price_cents=700)]

        summary = {row["machine"]: row for row in service.summarize_machines(current, previous, now)}

        assert summary["M1"]["status"] == "online"
        assert summary["M1"]["last_sale"] == "2024-03-30"
        assert summary["M2"]["status"] == "idle"
        assert summary["M2"]["location"] == "Gym"
        assert summary["M3"]["status"] == "offline"
        assert summary["M3"]["last_sale"] is None
        assert summary["M3"]["pct_label"] == "-100.0%"

    def test_sorted_by_current_revenue(self, service, make_sale, now):
        current = [make_sale(machine_id="m1", price_cents=100), make_sale(machine_id="m2", price_cents=900)]
        rows = service.summarize_machines(current, [], now)
        assert [row["machine"] for row in rows] == ["M2", "M1"]


class TestDailyTrend:
    def test_groups_by_utc_day(self, service, make_sale):
        sales = [
            make_sale(day=datetime(2024, 3, 2, 23, 30, tzinfo=UTC_TZ), quantity=2, price_cents=150),
            make_sale(day=date(2024, 3, 1), price_cents=100),
            make_sale(day=date(2024, 3, 2), price_cents=100),
        ]
        trend = service.get_daily_trend(sales)

        assert trend == [
            {"date": "2024-03-01", "revenue": 1.0, "tx": 1, "units": 1},
            {"date": "2024-03-02", "revenue": 4.0, "tx": 2, "units": 3},
        ]

    def test_empty_trend(self, service):
        assert service.get_daily_trend([]) == []


class TestPricing:
    def test_low_margin_warning(self, service):
        check = service.check_pricing(1.00, 0.90)
        assert check["margin"] == 0.1
        assert check["margin_pct"] == 10.0
        assert check["low_margin"]
        assert check["severity"] == "warning"
        assert check["is_valid"]

    def test_below_cost_is_an_error(self, service):
        check = service.check_pricing(0.50, 0.60)
        assert check["below_cost"]
        assert check["margin"] == 0
        assert not check["is_valid"]

    def test_price_below_minimum(self, service):
        check = service.check_pricing(0.0)
        assert check["below_min_price"]
        assert check["severity"] == "error"

    def test_healthy_price(self, service):
        check = service.check_pricing(2.00, 1.00)
        assert check["margin_pct"] == 50.0
        assert check["severity"] == "info"
