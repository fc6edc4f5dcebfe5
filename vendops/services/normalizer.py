"""
Record normalizer.

Coerces raw, loosely typed upstream rows into the typed records in
``models.records``. Nothing here raises on bad data: missing or invalid
numbers become 0, missing strings become ``"unknown"``, unparsable
timestamps become None, and unrecognized fields are carried in ``extras``.
"""

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from vendops.config.thresholds import AnalyticsThresholds, DEFAULT_THRESHOLDS
from vendops.models.records import (
    UNKNOWN,
    InventorySnapshot,
    ProspectRecord,
    ProspectStage,
    RouteRun,
    RouteStop,
    SaleRecord,
)
from vendops.utils.date_utils import DateUtils

# Canonical field -> accepted raw spellings, first present wins
SALE_FIELDS: Dict[str, Tuple[str, ...]] = {
    "machine_id": ("machine_id", "machineId", "machine"),
    "product_id": ("product_id", "productId", "product"),
    "occurred_at": ("occurred_at", "occurredAt", "date"),
    "quantity": ("quantity", "qty", "quantity_sold"),
    "unit_price_cents": ("unit_price_cents", "unitPriceCents"),
    "unit_cost_cents": ("unit_cost_cents", "unitCostCents"),
    "machine_name": ("machine_name", "machine_code"),
    "product_name": ("product_name",),
    "location_name": ("location_name", "location"),
    "category": ("category", "product_category"),
}

INVENTORY_FIELDS: Dict[str, Tuple[str, ...]] = {
    "machine_id": ("machine_id", "machineId"),
    "product_id": ("product_id", "productId"),
    "slot_id": ("slot_id", "slotId", "slot_label"),
    "current_qty": ("current_qty", "currentQty", "qty"),
    "par_level": ("par_level", "parLevel", "par"),
    "reorder_point": ("reorder_point", "reorderPoint", "restock_threshold"),
    "sales_velocity": ("sales_velocity", "salesVelocity", "velocity_per_day"),
    "days_of_supply": ("days_of_supply", "daysOfSupply", "days_supply"),
    "days_to_stockout": ("days_to_stockout", "daysToStockout"),
    "machine_name": ("machine_name", "machine_code"),
    "product_name": ("product_name",),
    "location_name": ("location_name",),
    "category": ("category", "product_category"),
}

RUN_FIELDS: Dict[str, Tuple[str, ...]] = {
    "id": ("id", "run_id"),
    "route_name": ("route_name", "routeName", "name", "route"),
    "driver_name": ("driver_name", "driverName", "driver", "assigned_to"),
    "started_at": ("started_at", "startedAt", "start_at", "started", "created_at"),
    "finished_at": ("finished_at", "finishedAt", "end_at", "finished"),
}

STOP_FIELDS: Dict[str, Tuple[str, ...]] = {
    "run_id": ("run_id", "runId"),
    "machine_id": ("machine_id", "machineId"),
    "miles": ("miles",),
    "service_minutes": ("service_minutes", "serviceMinutes"),
}

PROSPECT_FIELDS: Dict[str, Tuple[str, ...]] = {
    "id": ("id",),
    "stage": ("stage", "status"),
    "created_at": ("created_at", "createdAt"),
    "updated_at": ("updated_at", "updatedAt"),
    "won_at": ("won_at", "wonAt"),
    "lost_at": ("lost_at", "lostAt"),
    "next_follow_up_at": ("next_follow_up_at", "nextFollowUpAt"),
    "estimated_value": ("estimated_value", "estimatedValue"),
    "source": ("source",),
}

STAGE_LOOKUP: Dict[str, ProspectStage] = {
    "new": ProspectStage.NEW,
    "contacted": ProspectStage.CONTACTED,
    "qualifying": ProspectStage.QUALIFIED,
    "qualified": ProspectStage.QUALIFIED,
    "meeting": ProspectStage.QUALIFIED,
    "proposal": ProspectStage.PROPOSAL,
    "won": ProspectStage.WON,
    "closed_won": ProspectStage.WON,
    "lost": ProspectStage.LOST,
    "closed_lost": ProspectStage.LOST,
}


# ---------------------------------------------------------------------------
# Scalar coercion
# ---------------------------------------------------------------------------

def coerce_number(value: Any, default: float = 0.0) -> float:
    """Finite, non-negative float; anything else becomes ``default``."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not np.isfinite(number) or number < 0:
        return default
    return number


def coerce_int(value: Any, default: int = 0) -> int:
    return int(coerce_number(value, default))


def coerce_string(value: Any, default: str = UNKNOWN) -> str:
    if value is None:
        return default
    if isinstance(value, float) and math.isnan(value):
        return default
    text = str(value).strip()
    return text if text else default


def normalize_record(
    raw: Optional[Mapping[str, Any]],
    numeric_fields: Iterable[str] = (),
    string_fields: Iterable[str] = (),
) -> Dict[str, Any]:
    """Copy ``raw`` with declared numeric fields defaulted to 0 and declared
    string fields defaulted to ``"unknown"``. Other fields pass through."""
    record = dict(raw or {})
    for name in numeric_fields:
        record[name] = coerce_number(record.get(name))
    for name in string_fields:
        record[name] = coerce_string(record.get(name))
    return record


def normalize_stage(raw_stage: Any) -> Tuple[ProspectStage, bool]:
    """Map a free-form stage string onto ``ProspectStage``.

    Returns the stage and whether the raw value was recognized; anything
    unrecognized lands in ``ProspectStage.NEW``.
    """
    if raw_stage is None:
        return ProspectStage.NEW, True
    key = str(raw_stage).strip().lower().replace("-", "_").replace(" ", "_")
    if not key:
        return ProspectStage.NEW, True
    stage = STAGE_LOOKUP.get(key)
    if stage is None:
        return ProspectStage.NEW, False
    return stage, True


# ---------------------------------------------------------------------------
# Field lookup helpers
# ---------------------------------------------------------------------------

def _pick(raw: Mapping[str, Any], aliases: Sequence[str]) -> Any:
    for name in aliases:
        if name in raw and raw[name] is not None:
            return raw[name]
    return None


def _extras(raw: Mapping[str, Any], fields: Mapping[str, Sequence[str]]) -> Dict[str, Any]:
    known = {alias for aliases in fields.values() for alias in aliases}
    return {k: v for k, v in raw.items() if k not in known}


def _index(lookup: Any) -> Dict[str, Mapping[str, Any]]:
    """Accept ``{id: row}`` or a list of rows carrying ``id``."""
    if not lookup:
        return {}
    if isinstance(lookup, Mapping):
        return {str(k): (v if isinstance(v, Mapping) else {"name": v}) for k, v in lookup.items()}
    return {str(row["id"]): row for row in lookup if isinstance(row, Mapping) and row.get("id") is not None}


def count_invalid_timestamps(
    raw_records: Iterable[Mapping[str, Any]],
    aliases: Sequence[str],
) -> int:
    """Rows that carry a value for the field that does not parse as a timestamp."""
    count = 0
    for raw in raw_records or ():
        value = _pick(raw or {}, aliases)
        if value is not None and DateUtils.parse_timestamp(value) is None:
            count += 1
    return count


# ---------------------------------------------------------------------------
# Typed normalizers
# ---------------------------------------------------------------------------

class RecordNormalizer:
    """Builds typed records, resolving product/machine/location names from
    caller supplied lookup tables."""

    def __init__(
        self,
        products: Any = None,
        machines: Any = None,
        locations: Any = None,
        thresholds: AnalyticsThresholds = DEFAULT_THRESHOLDS,
    ):
        self.products = _index(products)
        self.machines = _index(machines)
        self.locations = _index(locations)
        self.thresholds = thresholds

    def _names(self, raw: Mapping[str, Any], fields: Mapping[str, Sequence[str]],
               machine_id: str, product_id: str) -> Dict[str, str]:
        product = self.products.get(product_id, {})
        machine = self.machines.get(machine_id, {})
        location_id = machine.get("location_id")
        location = self.locations.get(str(location_id), {}) if location_id is not None else {}

        machine_name = _pick(raw, fields["machine_name"]) or machine.get("name") or machine.get("code")
        product_name = _pick(raw, fields["product_name"]) or product.get("name")
        location_name = (
            _pick(raw, fields["location_name"])
            or machine.get("location_name")
            or location.get("name")
        )
        category = _pick(raw, fields["category"]) or product.get("category")

        return {
            "machine_name": coerce_string(machine_name, machine_id),
            "product_name": coerce_string(product_name, product_id),
            "location_name": coerce_string(location_name),
            "category": coerce_string(category),
        }

    def sale(self, raw: Mapping[str, Any]) -> SaleRecord:
        raw = raw or {}
        machine_id = coerce_string(_pick(raw, SALE_FIELDS["machine_id"]))
        product_id = coerce_string(_pick(raw, SALE_FIELDS["product_id"]))
        return SaleRecord(
            machine_id=machine_id,
            product_id=product_id,
            occurred_at=DateUtils.parse_timestamp(_pick(raw, SALE_FIELDS["occurred_at"])),
            quantity=coerce_int(_pick(raw, SALE_FIELDS["quantity"])),
            unit_price_cents=coerce_number(_pick(raw, SALE_FIELDS["unit_price_cents"])),
            unit_cost_cents=coerce_number(_pick(raw, SALE_FIELDS["unit_cost_cents"])),
            extras=_extras(raw, SALE_FIELDS),
            **self._names(raw, SALE_FIELDS, machine_id, product_id),
        )

    def inventory(self, raw: Mapping[str, Any]) -> InventorySnapshot:
        """Inventory row; missing par/reorder values are flagged, not trusted."""
        raw = raw or {}
        machine_id = coerce_string(_pick(raw, INVENTORY_FIELDS["machine_id"]))
        product_id = coerce_string(_pick(raw, INVENTORY_FIELDS["product_id"]))
        current_qty = coerce_int(_pick(raw, INVENTORY_FIELDS["current_qty"]))
        velocity = coerce_number(_pick(raw, INVENTORY_FIELDS["sales_velocity"]))

        raw_par = _pick(raw, INVENTORY_FIELDS["par_level"])
        raw_reorder = _pick(raw, INVENTORY_FIELDS["reorder_point"])
        has_par = coerce_number(raw_par, default=-1.0) >= 0
        has_reorder = coerce_number(raw_reorder, default=-1.0) >= 0

        raw_days = _pick(raw, INVENTORY_FIELDS["days_of_supply"])
        if coerce_number(raw_days, default=-1.0) >= 0:
            days_of_supply = coerce_number(raw_days)
        elif velocity > 0:
            days_of_supply = current_qty / velocity
        else:
            days_of_supply = self.thresholds.days_of_supply_sentinel

        raw_dts = _pick(raw, INVENTORY_FIELDS["days_to_stockout"])
        days_to_stockout = coerce_number(raw_dts) if coerce_number(raw_dts, default=-1.0) >= 0 else None

        return InventorySnapshot(
            machine_id=machine_id,
            product_id=product_id,
            slot_id=coerce_string(_pick(raw, INVENTORY_FIELDS["slot_id"])),
            current_qty=current_qty,
            par_level=coerce_number(raw_par),
            reorder_point=coerce_number(raw_reorder),
            sales_velocity=velocity,
            days_of_supply=days_of_supply,
            has_par_level=has_par,
            has_reorder_point=has_reorder,
            days_to_stockout=days_to_stockout,
            extras=_extras(raw, INVENTORY_FIELDS),
            **self._names(raw, INVENTORY_FIELDS, machine_id, product_id),
        )

    def sales(self, rows: Optional[Iterable[Mapping[str, Any]]]) -> List[SaleRecord]:
        return [self.sale(row) for row in rows or ()]

    def inventory_levels(self, rows: Optional[Iterable[Mapping[str, Any]]]) -> List[InventorySnapshot]:
        return [self.inventory(row) for row in rows or ()]


def normalize_run(raw: Mapping[str, Any]) -> RouteRun:
    raw = raw or {}
    return RouteRun(
        id=coerce_string(_pick(raw, RUN_FIELDS["id"])),
        route_name=coerce_string(_pick(raw, RUN_FIELDS["route_name"])),
        driver_name=coerce_string(_pick(raw, RUN_FIELDS["driver_name"])),
        started_at=DateUtils.parse_timestamp(_pick(raw, RUN_FIELDS["started_at"])),
        finished_at=DateUtils.parse_timestamp(_pick(raw, RUN_FIELDS["finished_at"])),
        extras=_extras(raw, RUN_FIELDS),
    )


def normalize_stop(raw: Mapping[str, Any]) -> RouteStop:
    raw = raw or {}
    return RouteStop(
        run_id=coerce_string(_pick(raw, STOP_FIELDS["run_id"])),
        machine_id=coerce_string(_pick(raw, STOP_FIELDS["machine_id"])),
        miles=coerce_number(_pick(raw, STOP_FIELDS["miles"])),
        service_minutes=coerce_number(_pick(raw, STOP_FIELDS["service_minutes"])),
        extras=_extras(raw, STOP_FIELDS),
    )


def normalize_prospect(raw: Mapping[str, Any]) -> ProspectRecord:
    raw = raw or {}
    raw_stage = _pick(raw, PROSPECT_FIELDS["stage"])
    stage, recognized = normalize_stage(raw_stage)
    return ProspectRecord(
        id=coerce_string(_pick(raw, PROSPECT_FIELDS["id"])),
        stage=stage,
        raw_stage=coerce_string(raw_stage, ProspectStage.NEW.value),
        stage_recognized=recognized,
        created_at=DateUtils.parse_timestamp(_pick(raw, PROSPECT_FIELDS["created_at"])),
        updated_at=DateUtils.parse_timestamp(_pick(raw, PROSPECT_FIELDS["updated_at"])),
        won_at=DateUtils.parse_timestamp(_pick(raw, PROSPECT_FIELDS["won_at"])),
        lost_at=DateUtils.parse_timestamp(_pick(raw, PROSPECT_FIELDS["lost_at"])),
        next_follow_up_at=DateUtils.parse_timestamp(_pick(raw, PROSPECT_FIELDS["next_follow_up_at"])),
        estimated_value=coerce_number(_pick(raw, PROSPECT_FIELDS["estimated_value"])),
        source=coerce_string(_pick(raw, PROSPECT_FIELDS["source"])),
        extras=_extras(raw, PROSPECT_FIELDS),
    )


def normalize_runs(rows: Optional[Iterable[Mapping[str, Any]]]) -> List[RouteRun]:
    return [normalize_run(row) for row in rows or ()]


def normalize_stops(rows: Optional[Iterable[Mapping[str, Any]]]) -> List[RouteStop]:
    return [normalize_stop(row) for row in rows or ()]


def normalize_prospects(rows: Optional[Iterable[Mapping[str, Any]]]) -> List[ProspectRecord]:
    return [normalize_prospect(row) for row in rows or ()]
