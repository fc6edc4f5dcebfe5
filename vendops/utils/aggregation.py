"""
Generic group-by / reduce utility used by every report.

Reducers are associative and commutative, so the input order never changes
the result. Field values are read with ``getattr`` first and fall back to
mapping lookup, which lets the same reducers run over normalized dataclass
records and plain dicts.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Mapping, Optional


def read_field(record: Any, field: str) -> Any:
    """Read ``field`` from a dataclass/object or a mapping."""
    if isinstance(record, Mapping):
        return record.get(field)
    return getattr(record, field, None)


class Reducer:
    """Base reducer: ``initial`` seeds an accumulator, ``step`` folds a record in."""

    def initial(self) -> Any:
        raise NotImplementedError

    def step(self, acc: Any, record: Any) -> Any:
        raise NotImplementedError

    def finalize(self, acc: Any) -> Any:
        return acc


@dataclass(frozen=True)
class Sum(Reducer):
    field: str

    def initial(self) -> float:
        return 0

    def step(self, acc, record):
        value = read_field(record, self.field)
        return acc + (value or 0)


@dataclass(frozen=True)
class Count(Reducer):
    def initial(self) -> int:
        return 0

    def step(self, acc, record):
        return acc + 1


@dataclass(frozen=True)
class Max(Reducer):
    field: str

    def initial(self):
        return None

    def step(self, acc, record):
        value = read_field(record, self.field)
        if value is None:
            return acc
        if acc is None or value > acc:
            return value
        return acc


@dataclass(frozen=True)
class LastSeen(Reducer):
    """Value of ``field`` on the record with the latest ``by`` value.

    Ties on ``by`` resolve to the larger ``str(value)`` so the outcome does
    not depend on iteration order. Records without a ``by`` value are skipped.
    """
    field: str
    by: str

    def initial(self):
        return None

    def step(self, acc, record):
        order = read_field(record, self.by)
        if order is None:
            return acc
        candidate = (order, str(read_field(record, self.field)), read_field(record, self.field))
        if acc is None or candidate[:2] > acc[:2]:
            return candidate
        return acc

    def finalize(self, acc):
        return None if acc is None else acc[2]


REDUCERS: Dict[str, Callable[..., Reducer]] = {
    "sum": Sum,
    "count": Count,
    "max": Max,
    "last_seen": LastSeen,
}


def group_and_aggregate(
    records: Iterable[Any],
    key_fn: Callable[[Any], str],
    aggregators: Mapping[str, Reducer],
    predicate: Optional[Callable[[Any], bool]] = None,
) -> Dict[str, Dict[str, Any]]:
    """Group ``records`` by ``key_fn`` and apply every named reducer per group.

    Returns ``{group_key: {output_name: value}}``. Empty input gives ``{}``.
    """
    accumulators: Dict[str, Dict[str, Any]] = defaultdict(
        lambda: {name: reducer.initial() for name, reducer in aggregators.items()}
    )

    for record in records:
        if predicate is not None and not predicate(record):
            continue
        group = accumulators[key_fn(record)]
        for name, reducer in aggregators.items():
            group[name] = reducer.step(group[name], record)

    return {
        key: {name: aggregators[name].finalize(value) for name, value in group.items()}
        for key, group in accumulators.items()
    }


def safe_ratio(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Division with an explicit zero-denominator branch."""
    if not denominator:
        return default
    return numerator / denominator


def percent(numerator: float, denominator: float, digits: int = 1) -> float:
    """Rounded percentage, 0 when the denominator is 0."""
    return round(safe_ratio(numerator, denominator) * 100, digits)
