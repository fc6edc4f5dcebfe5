"""Shared fixtures for the analytics engine tests."""

import logging
from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient

from vendops.config.settings import TestingSettings
from vendops.main import create_app
from vendops.models.records import InventorySnapshot, SaleRecord
from vendops.utils.date_utils import UTC_TZ


@pytest.fixture
def now():
    """Fixed reference time: 2024-03-31 12:00 UTC."""
    return datetime(2024, 3, 31, 12, 0, tzinfo=UTC_TZ)


@pytest.fixture
def make_sale():
    """Factory for normalized sales; ``day`` may be a date or datetime."""

    def _make(machine_id="m1", product_id="p1", day=date(2024, 3, 30), quantity=1,
              price_cents=100, cost_cents=0, machine_name=None, product_name=None,
              location_name="Lobby", category="snacks"):
        if isinstance(day, datetime):
            occurred_at = day if day.tzinfo else UTC_TZ.localize(day)
        else:
            occurred_at = UTC_TZ.localize(datetime(day.year, day.month, day.day, 10, 0))
        return SaleRecord(
            machine_id=machine_id,
            product_id=product_id,
            occurred_at=occurred_at,
            quantity=quantity,
            unit_price_cents=price_cents,
            unit_cost_cents=cost_cents,
            machine_name=machine_name or machine_id.upper(),
            product_name=product_name or product_id.upper(),
            location_name=location_name,
            category=category,
        )

    return _make


@pytest.fixture
def make_snapshot():
    """Factory for normalized inventory snapshots."""

    def _make(current_qty=5, par_level=10, reorder_point=3, sales_velocity=0.0,
              days_of_supply=999.0, machine_id="m1", product_id="p1", slot_id="A1",
              has_par_level=True, has_reorder_point=True, days_to_stockout=None):
        return InventorySnapshot(
            machine_id=machine_id,
            product_id=product_id,
            slot_id=slot_id,
            current_qty=current_qty,
            par_level=par_level,
            reorder_point=reorder_point,
            sales_velocity=sales_velocity,
            days_of_supply=days_of_supply,
            has_par_level=has_par_level,
            has_reorder_point=has_reorder_point,
            days_to_stockout=days_to_stockout,
            machine_name=machine_id.upper(),
            product_name=product_id.upper(),
            location_name="Lobby",
            category="snacks",
        )

    return _make


@pytest.fixture
def settings():
    return TestingSettings()


@pytest.fixture
def client(settings):
    """Test client over a freshly built app."""
    app = create_app(settings=settings)
    return TestClient(app)


@pytest.fixture
def quality_logs(caplog, monkeypatch):
    """Data-quality warnings captured once each, however logging was configured."""
    monkeypatch.setattr(logging.getLogger("vendops"), "propagate", True)
    caplog.set_level(logging.WARNING, logger="vendops.data_quality")

    def _messages():
        return [r.getMessage() for r in caplog.records if r.name == "vendops.data_quality"]

    return _messages
