"""Tests for the HTTP surface: health check and stateless pricing endpoints."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from src.api.routes import get_settings_cache
from src.main import app
from src.pricing.settings import SystemSettingsCache
from src.schemas.pricing import SystemSetting

# No context manager: the lifespan (database, event worker) is not started.
client = TestClient(app)


@pytest.fixture(autouse=True)
def _empty_settings_store():
    """Settings come from an in-memory loader instead of PostgreSQL."""
    app.dependency_overrides[get_settings_cache] = lambda: SystemSettingsCache(AsyncMock(return_value=[]))
    yield
    app.dependency_overrides.clear()


LOOKUP = {
    "job_profiles": [{"id": "jp-driver", "job_title": "Driver", "base_cost": "1000"}],
    "cost_components": [
        {"id": "cc-visa", "name": "Visa", "value": "500", "periodicity": "one_time"},
    ],
    "pricing_rules": [
        {
            "id": "r-bulk",
            "name": "Bulk markup",
            "priority": 1,
            "conditions": {"all": [{"fact": "line_item.quantity", "operator": "greater_than", "value": 1}]},
            "actions": [{"type": "apply_markup_percentage", "params": {"value": 10}}],
        },
    ],
}


def _money(value) -> Decimal:
    return Decimal(str(value))


class TestHealth:
    def test_health(self):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert "environment" in body
        assert "currency" in body


class TestCalculateLineItem:
    def test_prices_line_item(self):
        response = client.post("/pricing/line-items/calculate", json={
            "line_item": {"id": "li-1", "job_profile_id": "jp-driver", "quantity": 1},
            "vat_rate": "5",
            "lookup": {"job_profiles": LOOKUP["job_profiles"]},
        })
        assert response.status_code == 200
        body = response.json()
        assert _money(body["subtotal_before_discount"]) == Decimal("12000")
        assert _money(body["line_vat_amount"]) == Decimal("600")
        assert _money(body["line_grand_total"]) == Decimal("12600")
        assert body["cost_breakdown"][0]["is_base_cost"] is True

    def test_default_vat_when_omitted(self):
        response = client.post("/pricing/line-items/calculate", json={
            "line_item": {"id": "li-1", "job_profile_id": "jp-driver", "quantity": 1},
            "lookup": {"job_profiles": LOOKUP["job_profiles"]},
        })
        assert _money(response.json()["line_vat_amount"]) == Decimal("600")

    def test_vat_from_settings_store(self):
        store = SystemSettingsCache(AsyncMock(return_value=[SystemSetting(key="vat_rate", value="7")]))
        app.dependency_overrides[get_settings_cache] = lambda: store
        response = client.post("/pricing/line-items/calculate", json={
            "line_item": {"id": "li-1", "job_profile_id": "jp-driver", "quantity": 1},
            "lookup": {"job_profiles": LOOKUP["job_profiles"]},
        })
        assert _money(response.json()["line_vat_amount"]) == Decimal("840")

    def test_unknown_job_profile_returned_unchanged(self):
        response = client.post("/pricing/line-items/calculate", json={
            "line_item": {"id": "li-1", "job_profile_id": "jp-missing"},
        })
        assert response.status_code == 200
        assert response.json()["cost_breakdown"] == []

    def test_missing_line_item_is_422(self):
        response = client.post("/pricing/line-items/calculate", json={"vat_rate": "5"})
        assert response.status_code == 422


class TestCalculateQuote:
    def test_prices_quote_with_rules(self):
        response = client.post("/pricing/quotes/calculate", json={
            "quote": {
                "id": "q-1",
                "line_items": [{"id": "li-1", "job_profile_id": "jp-driver", "quantity": 2}],
            },
            "vat_rate": "5",
            "lookup": LOOKUP,
            "as_of": "2026-06-15",
        })
        assert response.status_code == 200
        body = response.json()
        item = body["line_items"][0]
        assert [entry["source_id"] for entry in item["applied_rules"]] == ["r-bulk"]
        # 1000 x 1.10 x 2 x 12 months
        assert _money(body["subtotal"]) == Decimal("26400")
        assert _money(body["tax_percentage"]) == Decimal("5")
        assert _money(body["total_amount"]) == Decimal("27720")

    def test_broken_rule_does_not_fail_quote(self):
        lookup = {
            **LOOKUP,
            "pricing_rules": [
                {"id": "r-broken", "conditions": {"all": [{"operator": "equal", "value": 1}]},
                 "actions": [{"type": "apply_markup_percentage", "params": {"value": 50}}]},
                {"id": "r-no-component", "actions": [{"type": "add_cost_component", "params": {}}]},
                *LOOKUP["pricing_rules"],
            ],
        }
        response = client.post("/pricing/quotes/calculate", json={
            "quote": {
                "id": "q-1",
                "line_items": [{"id": "li-1", "job_profile_id": "jp-driver", "quantity": 2}],
            },
            "vat_rate": "5",
            "lookup": lookup,
            "as_of": "2026-06-15",
        })
        assert response.status_code == 200
        body = response.json()
        applied = [entry["source_id"] for entry in body["line_items"][0]["applied_rules"]]
        assert applied == ["r-bulk", "r-no-component"]
        assert _money(body["subtotal"]) == Decimal("26400")
