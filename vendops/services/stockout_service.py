# Stockout candidate detection
# Flags machine x product pairs whose recent transaction series looks like an empty slot


from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from vendops.config.logging import get_logger, log_performance
from vendops.config.thresholds import AnalyticsThresholds, DEFAULT_THRESHOLDS
from vendops.models.records import InventorySnapshot, SaleRecord, Urgency
from vendops.utils.aggregation import Count, LastSeen, group_and_aggregate
from vendops.utils.date_utils import DateUtils

logger = get_logger(__name__)


def trailing_zero_streak(series: Sequence[int]) -> int:
    """Length of the run of zero days at the end of ``series``"""
    streak = 0
    for count in reversed(series):
        if count != 0:
            break
        streak += 1
    return streak


def drop_percentage(curr_tx: int, prev_tx: int) -> int:
    if prev_tx <= 0:
        return 0
    return max(0, int(round(100 * (prev_tx - curr_tx) / prev_tx)))


def _pair_id(sale: SaleRecord) -> str:
    return f"{sale.machine_id}|{sale.product_id}"


class StockoutService:
    """Heuristic stockout detector over current/previous day windows"""

    def __init__(self, thresholds: Optional[AnalyticsThresholds] = None):
        self.thresholds = thresholds or DEFAULT_THRESHOLDS

    def build_series(self, sales: Iterable[SaleRecord], labels: List[date]) -> Dict[str, List[int]]:
        """Per-pair transaction counts indexed by ``labels``; other dates are dropped"""
        index = {day: i for i, day in enumerate(labels)}
        daily = group_and_aggregate(
            sales,
            key_fn=lambda sale: f"{_pair_id(sale)}|{sale.day.isoformat()}",
            aggregators={"tx": Count()},
            predicate=lambda sale: sale.day in index,
        )

        series: Dict[str, List[int]] = {}
        for key, totals in daily.items():
            pair, day = key.rsplit("|", 1)
            row = series.setdefault(pair, [0] * len(labels))
            row[index[date.fromisoformat(day)]] += totals["tx"]
        return series

    def evaluate(self, current: Sequence[int], previous: Sequence[int]) -> Dict[str, Any]:
        """Signals for one pair; ``likely`` tells whether it is a candidate"""
        curr_tx = int(sum(current))
        prev_tx = int(sum(previous))
        streak = trailing_zero_streak(current)
        drop_pct = drop_percentage(curr_tx, prev_tx)

        went_silent = prev_tx >= self.thresholds.stockout_min_prev_tx and curr_tx == 0
        likely = (
            streak >= self.thresholds.stockout_min_streak
            or went_silent
            or drop_pct >= self.thresholds.stockout_min_drop_pct
        )

        if streak >= self.thresholds.stockout_critical_streak or went_silent:
            urgency = Urgency.CRITICAL
        elif streak >= self.thresholds.stockout_high_streak or drop_pct >= self.thresholds.stockout_high_drop_pct:
            urgency = Urgency.HIGH
        else:
            urgency = Urgency.MEDIUM

        return {
            "streak": streak,
            "curr_tx": curr_tx,
            "prev_tx": prev_tx,
            "drop_pct": drop_pct,
            "likely": likely,
            "urgency": urgency.value,
        }

    @log_performance("vendops.services.stockout")
    def find_candidates(
        self,
        current_sales: Iterable[SaleRecord],
        previous_sales: Iterable[SaleRecord],
        days: int,
        end_day: date,
    ) -> List[Dict[str, Any]]:
        """Likely stockouts, strongest signal first.

        The current window is the ``days`` dates ending at ``end_day``; the
        previous window is the ``days`` dates before it. Only pairs with at
        least one sale inside either window are considered.
        """
        if days <= 0:
            return []
        current_sales = list(current_sales)
        previous_sales = list(previous_sales)

        current_labels = DateUtils.day_labels(end_day, days)
        previous_start, previous_end = DateUtils.window_bounds(end_day, days, periods_back=1)
        previous_labels = DateUtils.day_labels(previous_end, days)
        current_series = self.build_series(current_sales, current_labels)
        previous_series = self.build_series(previous_sales, previous_labels)
        names = self._pair_names([
            sale for sale in current_sales + previous_sales
            if sale.day is not None and previous_start <= sale.day <= end_day
        ])

        empty = [0] * days
        candidates = []
        for pair, info in names.items():
            signals = self.evaluate(current_series.get(pair, empty), previous_series.get(pair, empty))
            if not signals.pop("likely"):
                continue
            candidates.append({
                "key": f"{info['machine_name']} · {info['product_name']}",
                "machine_id": info["machine_id"],
                "machine": info["machine_name"],
                "product_id": info["product_id"],
                "product": info["product_name"],
                "location": info["location_name"],
                **signals,
            })

        candidates.sort(key=lambda c: (-c["streak"], -c["drop_pct"], c["curr_tx"], c["key"]))
        logger.debug(f"Flagged {len(candidates)} of {len(names)} machine/product pairs over {days} days")
        return candidates

    def find_never_sold(
        self,
        planogram: Iterable[Any],
        current_sales: Iterable[SaleRecord],
        previous_sales: Iterable[SaleRecord],
        days: int,
        end_day: date,
    ) -> List[Dict[str, str]]:
        """Stocked pairs with no transaction in either window.

        ``planogram`` holds inventory snapshots or ``(machine_id, product_id)``
        tuples. These pairs are reported apart from stockout candidates.
        """
        if days <= 0:
            return []
        first_day, _ = DateUtils.window_bounds(end_day, days, periods_back=1)

        sold = {
            _pair_id(sale)
            for sale in list(current_sales) + list(previous_sales)
            if sale.day is not None and first_day <= sale.day <= end_day
        }

        never_sold = {}
        for entry in planogram:
            machine_id, product_id, machine_name, product_name = self._planogram_entry(entry)
            pair = f"{machine_id}|{product_id}"
            if pair in sold or pair in never_sold:
                continue
            never_sold[pair] = {
                "key": f"{machine_name} · {product_name}",
                "machine_id": machine_id,
                "machine": machine_name,
                "product_id": product_id,
                "product": product_name,
            }
        return sorted(never_sold.values(), key=lambda row: row["key"])

    def _pair_names(self, sales: List[SaleRecord]) -> Dict[str, Dict[str, str]]:
        fields = ("machine_id", "machine_name", "product_id", "product_name", "location_name")
        return group_and_aggregate(
            sales,
            key_fn=_pair_id,
            aggregators={field: LastSeen(field, by="occurred_at") for field in fields},
            predicate=lambda sale: sale.occurred_at is not None,
        )

    @staticmethod
    def _planogram_entry(entry: Any) -> Tuple[str, str, str, str]:
        if isinstance(entry, InventorySnapshot):
            return entry.machine_id, entry.product_id, entry.machine_name, entry.product_name
        machine_id, product_id = entry
        return str(machine_id), str(product_id), str(machine_id), str(product_id)
