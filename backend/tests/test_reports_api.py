r"""backend/tests/test_reports_api.py"""

from __future__ import annotations

import sys
from collections import defaultdict, deque
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.api.v1 import analytics as analytics_api  # noqa: E402
from backend.app.api.v1 import reports as reports_api  # noqa: E402
from backend.app.core import observability as obs  # noqa: E402
from backend.app.core.config import AnalyticsThresholds, Settings  # noqa: E402
from backend.app.main import app  # noqa: E402
from backend.app.services.inventory_store import InventoryStore  # noqa: E402
from backend.app.services.reporting_service import ReportingService  # noqa: E402

client = TestClient(app)


@pytest.fixture(autouse=True)
def _open_middleware(monkeypatch):
    monkeypatch.setattr(obs.TokenAndRateLimitMiddleware, "_token", None, raising=False)
    monkeypatch.setattr(obs.TokenAndRateLimitMiddleware, "_buckets", defaultdict(deque), raising=False)


def _use_data(monkeypatch, data_dir: Path) -> ReportingService:
    service = ReportingService(
        store=InventoryStore(data_root=str(data_dir)),
        thresholds=AnalyticsThresholds(),
        settings=Settings(data_dir=str(data_dir), config_dir=str(data_dir)),
    )
    monkeypatch.setattr(reports_api, "_reporting_service", service)
    monkeypatch.setattr(analytics_api, "_reporting_service", service)
    return service


def test_restock_prediction_route(monkeypatch, inventory_dir: Path) -> None:
    _use_data(monkeypatch, inventory_dir)

    response = client.get("/api/v1/reports/restock-prediction/1")

    assert response.status_code == 200
    payload = response.json()
    assert payload["subject"] == {"kind": "sector", "id": 1, "name": "FoodStation"}
    assert [p["product_id"] for p in payload["products"]]
    assert payload["summary"]["total_products"] == 3
    assert payload["currency"] == "BRL"


def test_unknown_sector_returns_404_payload(monkeypatch, inventory_dir: Path) -> None:
    _use_data(monkeypatch, inventory_dir)

    response = client.get("/api/v1/reports/restock-prediction/99")

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "sector_not_found"


def test_missing_tables_return_503(monkeypatch, tmp_path: Path) -> None:
    _use_data(monkeypatch, tmp_path)

    response = client.get("/api/v1/reports/general-inventory")

    assert response.status_code == 503
    assert response.json()["detail"]["error"] == "data_unavailable"


def test_user_consumption_route_with_explicit_range(monkeypatch, inventory_dir: Path) -> None:
    _use_data(monkeypatch, inventory_dir)

    response = client.get(
        "/api/v1/reports/users/10/consumption",
        params={"start": "2024-03-01T00:00:00", "end": "2024-03-31T23:59:59"},
    )

    assert response.status_code == 200
    summary = response.json()["summary"]
    assert summary["consumption_count"] == 15
    assert summary["total_value"] == pytest.approx(60.0)

    reversed_range = client.get(
        "/api/v1/reports/users/10/consumption",
        params={"start": "2024-03-31T00:00:00", "end": "2024-03-01T00:00:00"},
    )
    assert reversed_range.status_code == 400
    assert reversed_range.json()["detail"]["error"] == "invalid_period"

    assert client.get("/api/v1/reports/users/999/consumption").status_code == 404


def test_cleaning_route_for_a_month(monkeypatch, inventory_dir: Path) -> None:
    _use_data(monkeypatch, inventory_dir)

    response = client.get(
        "/api/v1/reports/cleaning",
        params={"month": "2024-03", "cadence": "full_month", "compare_with_previous": "true"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["products"][0]["recommended_purchase"] == 11
    assert payload["comparison"][0]["variance_percent"] == pytest.approx(150.0)


@pytest.mark.parametrize(
    "path, params",
    [
        ("/api/v1/reports/cleaning", {"month": "2024-3"}),
        ("/api/v1/reports/cleaning", {"cadence": "weekly"}),
        ("/api/v1/reports/sectors/1/monthly", {"cadence": "full_month"}),
        ("/api/v1/reports/coffee-machine", {"cadence": "monthly"}),
        ("/api/v1/reports/coffee-machine", {"weeks": 0}),
        ("/api/v1/reports/foodstation/overview", {"days": 10}),
        ("/api/v1/reports/sectors/1/product-management", {"days": 0}),
        ("/api/v1/reports/foodstation/consumptions", {"group_by": "week"}),
        ("/api/v1/analytics/products/101", {"horizon": 0}),
    ],
)
def test_invalid_parameters_are_rejected(monkeypatch, inventory_dir: Path, path: str, params: dict) -> None:
    _use_data(monkeypatch, inventory_dir)

    response = client.get(path, params=params)

    assert response.status_code == 422


def test_remaining_report_routes_respond(monkeypatch, inventory_dir: Path) -> None:
    _use_data(monkeypatch, inventory_dir)

    for path, params in [
        ("/api/v1/reports/sectors/1/monthly", {"cadence": "weekly"}),
        ("/api/v1/reports/sectors/1/product-management", {"days": 30}),
        ("/api/v1/reports/coffee-machine", {"weeks": 4}),
        ("/api/v1/reports/general-inventory", {"keyword": "coffee"}),
        ("/api/v1/reports/foodstation/overview", {"days": 7}),
        ("/api/v1/reports/foodstation/consumptions", {"group_by": "product", "format": "consolidated"}),
        ("/api/v1/reports/consumption-control", {"user_id": 11}),
    ]:
        response = client.get(path, params=params)
        assert response.status_code == 200, path


def test_general_inventory_keyword_filter(monkeypatch, inventory_dir: Path) -> None:
    _use_data(monkeypatch, inventory_dir)

    response = client.get("/api/v1/reports/general-inventory", params={"keyword": "coffee"})

    payload = response.json()
    assert payload["subject"]["kind"] == "global"
    assert {row["product_name"] for row in payload["products"]} == {"Coffee", "Sugar"}


def test_product_analysis_route(monkeypatch, inventory_dir: Path) -> None:
    _use_data(monkeypatch, inventory_dir)

    response = client.get("/api/v1/analytics/products/101", params={"days": 15, "horizon": 15})

    assert response.status_code == 200
    payload = response.json()
    assert payload["product"]["name"] == "Sandwich"
    assert len(payload["analysis"]["daily_consumption"]) == 15

    missing = client.get("/api/v1/analytics/products/4242")
    assert missing.status_code == 404
    assert missing.json()["detail"]["error"] == "product_not_found"


def test_health_reports_data_readiness() -> None:
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert isinstance(response.json()["data_ready"], bool)
