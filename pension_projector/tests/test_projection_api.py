from __future__ import annotations

from decimal import Decimal

from pension_projector.core.parity import POLICY_VERSION
from pension_projector.core.projection import project
from pension_projector.domain.validation import validate_plan
from pension_projector.schemas.projection import ProjectionResult


def test_projection_endpoint_returns_periods(client, plan_payload):
    resp = client.post("/api/projection", json=plan_payload())

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["policy_version"] == POLICY_VERSION
    assert len(body["periods"]) == 120

    # money travels as strings, never as floats
    first = body["periods"][0]
    assert first["opening_balance"] == "10000.00"
    assert first["closing_balance"] == "10233.96"


def test_projection_endpoint_matches_kernel(client, plan_payload):
    payload = plan_payload(withdrawal={"start_period": 60, "mode": "rate", "annual_rate": "0.04"})
    resp = client.post("/api/projection", json=payload)

    assert resp.status_code == 200
    remote = ProjectionResult.model_validate(resp.get_json())
    assert remote == project(validate_plan(payload))


def test_zero_horizon_over_http(client):
    resp = client.post("/api/projection", json={"horizon_periods": 0})
    assert resp.status_code == 200
    assert resp.get_json()["periods"] == []


def test_invalid_payload_returns_422_with_fields(client, plan_payload):
    resp = client.post("/api/projection", json=plan_payload(horizon_periods=-1))

    assert resp.status_code == 422
    detail = resp.get_json()["detail"]
    assert {"field": "horizon_periods"}.items() <= detail[0].items()
    assert detail[0]["constraint"]


def test_non_json_body_returns_422(client):
    resp = client.post("/api/projection", data="not json", content_type="text/plain")
    assert resp.status_code == 422
    assert resp.get_json()["detail"][0]["field"] == "plan"


def test_band_orders_outcomes(client, plan_payload):
    resp = client.post(
        "/api/projection/band",
        json={"plan": plan_payload(), "growthMargin": "0.02", "inflationMargin": "0.01"},
    )
    assert resp.status_code == 200
    body = resp.get_json()
    finals = {band: Decimal(body[band]["periods"][-1]["closing_balance"]) for band in ("min", "avg", "max")}
    assert finals["min"] < finals["avg"] < finals["max"]


def test_band_rejects_negative_margin(client, plan_payload):
    resp = client.post("/api/projection/band", json={"plan": plan_payload(), "growthMargin": "-0.01"})
    assert resp.status_code == 422
