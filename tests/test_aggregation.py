"""Tests for the grouping/aggregation core."""

import itertools
from datetime import date

from vendops.utils.aggregation import (
    REDUCERS,
    Count,
    LastSeen,
    Max,
    Sum,
    group_and_aggregate,
    percent,
    safe_ratio,
)


ROWS = [
    {"machine": "m1", "product": "p1", "revenue": 2.5, "day": date(2024, 3, 1), "location": "Lobby"},
    {"machine": "m1", "product": "p2", "revenue": 1.0, "day": date(2024, 3, 3), "location": "Atrium"},
    {"machine": "m2", "product": "p1", "revenue": 4.0, "day": date(2024, 3, 2), "location": "Gym"},
    {"machine": "m1", "product": "p1", "revenue": None, "day": None, "location": "Basement"},
]

AGGREGATORS = {
    "revenue": Sum("revenue"),
    "tx": Count(),
    "last_day": Max("day"),
    "location": LastSeen("location", by="day"),
}


class TestGroupAndAggregate:
    def test_sums_counts_and_maxes_per_key(self):
        result = group_and_aggregate(ROWS, lambda r: r["machine"], AGGREGATORS)

        assert set(result) == {"m1", "m2"}
        assert result["m1"]["revenue"] == 3.5
        assert result["m1"]["tx"] == 3
        assert result["m1"]["last_day"] == date(2024, 3, 3)
        assert result["m2"] == {"revenue": 4.0, "tx": 1, "last_day": date(2024, 3, 2), "location": "Gym"}

    def test_last_seen_skips_records_without_order_value(self):
        result = group_and_aggregate(ROWS, lambda r: r["machine"], AGGREGATORS)
        assert result["m1"]["location"] == "Atrium"

    def test_composite_keys_are_caller_joined(self):
        result = group_and_aggregate(ROWS, lambda r: f"{r['machine']}·{r['product']}", {"tx": Count()})
        assert result == {"m1·p1": {"tx": 2}, "m1·p2": {"tx": 1}, "m2·p1": {"tx": 1}}

    def test_iteration_order_does_not_change_result(self):
        expected = group_and_aggregate(ROWS, lambda r: r["machine"], AGGREGATORS)
        for ordering in itertools.permutations(ROWS):
            assert group_and_aggregate(ordering, lambda r: r["machine"], AGGREGATORS) == expected

    def test_last_seen_ties_are_order_independent(self):
        rows = [
            {"k": "a", "day": date(2024, 1, 1), "name": "alpha"},
            {"k": "a", "day": date(2024, 1, 1), "name": "beta"},
        ]
        forward = group_and_aggregate(rows, lambda r: r["k"], {"name": LastSeen("name", by="day")})
        backward = group_and_aggregate(rows[::-1], lambda r: r["k"], {"name": LastSeen("name", by="day")})
        assert forward == backward == {"a": {"name": "beta"}}

    def test_predicate_filters_records(self):
        result = group_and_aggregate(
            ROWS,
            lambda r: r["machine"],
            {"tx": Count()},
            predicate=lambda r: r["day"] is not None,
        )
        assert result["m1"]["tx"] == 2

    def test_empty_input_gives_empty_mapping(self):
        assert group_and_aggregate([], lambda r: r["machine"], AGGREGATORS) == {}

    def test_reads_attributes_from_objects(self):
        class Row:
            def __init__(self, key, value):
                self.key = key
                self.value = value

        result = group_and_aggregate([Row("x", 2), Row("x", 3)], lambda r: r.key, {"total": Sum("value")})
        assert result == {"x": {"total": 5}}

    def test_reducers_registry_builds_named_reducers(self):
        assert REDUCERS["sum"]("revenue") == Sum("revenue")
        assert REDUCERS["last_seen"]("location", "day") == LastSeen("location", by="day")


class TestRatios:
    def test_safe_ratio_zero_denominator(self):
        assert safe_ratio(5, 0) == 0.0
        assert safe_ratio(5, 0, default=-1) == -1

    def test_safe_ratio_regular_division(self):
        assert safe_ratio(3, 4) == 0.75

    def test_percent_rounds_to_one_decimal(self):
        assert percent(3, 4) == 75.0
        assert percent(1, 3) == 33.3
        assert percent(0, 0) == 0
