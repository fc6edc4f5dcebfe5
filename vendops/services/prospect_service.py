"""
Pipeline KPI Service
Cohort counts, conversion and qualification rates, sales-cycle length and
stalled-prospect detection over normalized prospect records
"""

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from vendops.config.logging import get_logger, log_performance
from vendops.config.thresholds import AnalyticsThresholds, DEFAULT_THRESHOLDS
from vendops.models.records import ProspectRecord, ProspectStage
from vendops.utils.aggregation import percent, safe_ratio
from vendops.utils.date_utils import DateUtils

logger = get_logger(__name__)


def _in_range(value: Optional[datetime], start: datetime, end: datetime) -> bool:
    return value is not None and start <= value < end


def _mean(values: List[float]) -> Optional[float]:
    return round(float(np.mean(values)), 1) if values else None


class ProspectService:
    """KPI calculations for the sales pipeline"""

    def __init__(self, thresholds: Optional[AnalyticsThresholds] = None):
        self.thresholds = thresholds or DEFAULT_THRESHOLDS

    @log_performance("vendops.services.prospect")
    def get_pipeline_kpis(self, prospects: Iterable[ProspectRecord], now: datetime) -> Dict[str, Any]:
        """Full KPI set relative to ``now``.

        Month cohorts use UTC calendar months. Won date is ``won_at`` with
        ``updated_at`` as fallback. Rates are percentages with one decimal.
        """
        prospects = list(prospects)
        now = DateUtils.to_utc(now)
        if not prospects:
            return self._empty_kpis()

        this_month = DateUtils.get_month_start(now)
        last_month = DateUtils.get_month_start(now, -1)
        next_month = DateUtils.get_month_start(now, 1)
        last_7_days = now - timedelta(days=self.thresholds.new_prospect_short_days)
        last_30_days = now - timedelta(days=self.thresholds.new_prospect_long_days)
        followup_horizon = now + timedelta(days=self.thresholds.followup_horizon_days)

        active = [p for p in prospects if not p.stage.is_closed]
        won = [p for p in prospects if p.stage == ProspectStage.WON]
        lost = [p for p in prospects if p.stage == ProspectStage.LOST]
        qualified_count = sum(1 for p in prospects if p.stage != ProspectStage.NEW)

        won_this_month = sum(1 for p in won if _in_range(p.resolved_at, this_month, next_month))
        won_last_month = sum(1 for p in won if _in_range(p.resolved_at, last_month, this_month))
        monthly_growth = (
            (won_this_month - won_last_month) / won_last_month * 100 if won_last_month > 0 else 0
        )

        # Won records without both dates are left out, not counted as zero
        cycle_days = [
            DateUtils.days_between(p.created_at, p.resolved_at)
            for p in won
            if p.created_at is not None and p.resolved_at is not None
        ]

        aged_active = [(p, DateUtils.days_between(p.created_at, now)) for p in active if p.created_at is not None]
        stalled = sorted(
            ((p, age) for p, age in aged_active if age > self.thresholds.stalled_prospect_days),
            key=lambda pair: (-pair[1], pair[0].id),
        )

        stage_distribution = {stage.value: 0 for stage in ProspectStage}
        for p in prospects:
            stage_distribution[p.stage.value] += 1

        unrecognized = sum(1 for p in prospects if not p.stage_recognized)
        logger.debug(f"Pipeline KPIs over {len(prospects)} prospects, {len(stalled)} stalled")

        return {
            "total_prospects": len(prospects),
            "active_prospects": len(active),
            "won_prospects": len(won),
            "lost_prospects": len(lost),
            "new_last_7_days": sum(1 for p in prospects if p.created_at is not None and p.created_at >= last_7_days),
            "new_last_30_days": sum(1 for p in prospects if p.created_at is not None and p.created_at >= last_30_days),
            "won_this_month": won_this_month,
            "won_last_month": won_last_month,
            "monthly_growth": round(monthly_growth, 1),
            "sales_velocity": round(won_this_month / now.day, 2),
            "conversion_rate": percent(len(won), len(won) + len(lost)),
            "qualification_rate": percent(qualified_count, len(prospects)),
            "avg_sales_cycle": _mean(cycle_days),
            "avg_active_age": _mean([age for _, age in aged_active]),
            "pipeline_value": round(sum(p.estimated_value for p in active), 2),
            "avg_deal_size": round(safe_ratio(sum(p.estimated_value for p in won), len(won)), 2),
            "overdue_followups": sum(
                1 for p in prospects if p.next_follow_up_at is not None and p.next_follow_up_at < now
            ),
            "next_30_days_followups": sum(
                1 for p in prospects if p.next_follow_up_at is not None and now <= p.next_follow_up_at <= followup_horizon
            ),
            "top_sources": self._source_stats(prospects),
            "stage_distribution": stage_distribution,
            "stalled_prospects": len(stalled),
            "stalled_list": [
                {
                    "id": p.id,
                    "stage": p.stage.value,
                    "source": p.source,
                    "estimated_value": round(p.estimated_value, 2),
                    "age_days": round(age, 1),
                }
                for p, age in stalled[:self.thresholds.stalled_list_limit]
            ],
            "unrecognized_stages": unrecognized,
        }

    def _source_stats(self, prospects: List[ProspectRecord], limit: int = 5) -> List[Dict[str, Any]]:
        stats = defaultdict(lambda: {"total": 0, "won": 0, "qualified": 0})
        for p in prospects:
            entry = stats[p.source]
            entry["total"] += 1
            if p.stage == ProspectStage.WON:
                entry["won"] += 1
            if p.stage != ProspectStage.NEW:
                entry["qualified"] += 1

        sources = [
            {
                "source": source,
                **entry,
                "conversion_rate": percent(entry["won"], entry["total"]),
                "qualification_rate": percent(entry["qualified"], entry["total"]),
            }
            for source, entry in stats.items()
        ]
        sources.sort(key=lambda row: (-row["total"], row["source"]))
        return sources[:limit]

    def _empty_kpis(self) -> Dict[str, Any]:
        return {
            "total_prospects": 0,
            "active_prospects": 0,
            "won_prospects": 0,
            "lost_prospects": 0,
            "new_last_7_days": 0,
            "new_last_30_days": 0,
            "won_this_month": 0,
            "won_last_month": 0,
            "monthly_growth": 0,
            "sales_velocity": 0,
            "conversion_rate": 0,
            "qualification_rate": 0,
            "avg_sales_cycle": None,
            "avg_active_age": None,
            "pipeline_value": 0,
            "avg_deal_size": 0,
            "overdue_followups": 0,
            "next_30_days_followups": 0,
            "top_sources": [],
            "stage_distribution": {stage.value: 0 for stage in ProspectStage},
            "stalled_prospects": 0,
            "stalled_list": [],
            "unrecognized_stages": 0,
        }
