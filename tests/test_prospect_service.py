"""Tests for pipeline KPIs."""

import pytest

from vendops.services.normalizer import normalize_prospects
from vendops.services.prospect_service import ProspectService


@pytest.fixture
def service():
    return ProspectService()


def kpis(service, rows, now):
    return service.get_pipeline_kpis(normalize_prospects(rows), now)


class TestConversion:
    def test_three_won_one_lost_is_75_percent(self, service, now):
        rows = [{"id": str(i), "stage": "won"} for i in range(3)] + [{"id": "x", "stage": "lost"}]
        assert kpis(service, rows, now)["conversion_rate"] == 75.0

    def test_no_decided_prospects_is_zero(self, service, now):
        result = kpis(service, [{"id": "a", "stage": "new"}, {"id": "b", "stage": "proposal"}], now)
        assert result["conversion_rate"] == 0
        assert result["qualification_rate"] == 50.0

    def test_empty_input(self, service, now):
        result = service.get_pipeline_kpis([], now)
        assert result["total_prospects"] == 0
        assert result["conversion_rate"] == 0
        assert result["avg_sales_cycle"] is None
        assert set(result["stage_distribution"]) == {"new", "contacted", "qualified", "proposal", "won", "lost"}


class TestSalesCycle:
    def test_ten_day_cycle_and_unresolved_exclusion(self, service, now):
        rows = [
            {"id": "a", "stage": "won", "created_at": "2024-01-01", "won_at": "2024-01-11"},
            {"id": "b", "stage": "won", "created_at": "2024-01-01"},
        ]
        assert kpis(service, rows, now)["avg_sales_cycle"] == 10.0

    def test_updated_at_stands_in_for_won_at(self, service, now):
        rows = [{"id": "a", "stage": "won", "created_at": "2024-01-01", "updated_at": "2024-01-05"}]
        assert kpis(service, rows, now)["avg_sales_cycle"] == 4.0


class TestCohorts:
    def test_monthly_won_counts_and_growth(self, service, now):
        rows = [
            {"id": "a", "stage": "won", "won_at": "2024-03-05T10:00:00Z", "estimated_value": 300},
            {"id": "b", "stage": "won", "won_at": "2024-02-10T10:00:00Z", "estimated_value": 100},
            {"id": "c", "stage": "closed_won", "updated_at": "2024-02-20T10:00:00Z", "estimated_value": 200},
            {"id": "d", "stage": "won", "won_at": "2024-01-31T23:00:00Z"},
        ]
        result = kpis(service, rows, now)

        assert result["won_this_month"] == 1
        assert result["won_last_month"] == 2
        assert result["monthly_growth"] == -50.0
        assert result["sales_velocity"] == 0.03
        assert result["avg_deal_size"] == 150.0

    def test_new_prospect_windows(self, service, now):
        rows = [
            {"id": "a", "created_at": "2024-03-30"},
            {"id": "b", "created_at": "2024-03-10"},
            {"id": "c", "created_at": "2024-01-10"},
            {"id": "d", "created_at": "not a date"},
        ]
        result = kpis(service, rows, now)

        assert result["new_last_7_days"] == 1
        assert result["new_last_30_days"] == 2
        assert result["total_prospects"] == 4


class TestPipelineHealth:
    def test_pipeline_value_and_stalled(self, service, now):
        rows = [
            {"id": "old", "stage": "contacted", "created_at": "2024-02-01T00:00:00Z", "estimated_value": 500},
            {"id": "older", "stage": "proposal", "created_at": "2024-01-01T00:00:00Z", "estimated_value": 250},
            {"id": "fresh", "stage": "new", "created_at": "2024-03-25T00:00:00Z", "estimated_value": 100},
            {"id": "done", "stage": "won", "created_at": "2023-01-01T00:00:00Z", "estimated_value": 900},
        ]
        result = kpis(service, rows, now)

        assert result["active_prospects"] == 3
        assert result["pipeline_value"] == 850.0
        assert result["stalled_prospects"] == 2
        assert [p["id"] for p in result["stalled_list"]] == ["older", "old"]
        assert result["stalled_list"][1]["age_days"] == 59.5

    def test_follow_ups(self, service, now):
        rows = [
            {"id": "a", "next_follow_up_at": "2024-03-30T00:00:00Z"},
            {"id": "b", "next_follow_up_at": "2024-04-15T00:00:00Z"},
            {"id": "c", "next_follow_up_at": "2024-06-01T00:00:00Z"},
        ]
        result = kpis(service, rows, now)

        assert result["overdue_followups"] == 1
        assert result["next_30_days_followups"] == 1

    def test_sources_and_stage_distribution(self, service, now):
        rows = (
            [{"id": f"r{i}", "source": "referral", "stage": "won"} for i in range(2)]
            + [{"id": f"w{i}", "source": "web", "stage": "new"} for i in range(3)]
            + [{"id": "x", "stage": "negotiating"}]
        )
        result = kpis(service, rows, now)

        assert [s["source"] for s in result["top_sources"]] == ["web", "referral", "unknown"]
        referral = result["top_sources"][1]
        assert referral["conversion_rate"] == 100.0
        assert referral["qualification_rate"] == 100.0
        assert result["stage_distribution"]["new"] == 4
        assert result["stage_distribution"]["won"] == 2
        assert result["stage_distribution"]["lost"] == 0
        assert result["unrecognized_stages"] == 1
