"""HTTP routes for the Flask API."""

from __future__ import annotations

import uuid
from decimal import Decimal, InvalidOperation
from http import HTTPStatus
from typing import Any

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from pension_projector.core.parity import POLICY_VERSION
from pension_projector.core.projection import project, summarize
from pension_projector.domain.scenarios import compare_scenarios, project_band
from pension_projector.domain.validation import validate_plan
from pension_projector.errors import PlanValidationError, ScenarioNotFound
from pension_projector.schemas.health import PingResponse
from pension_projector.schemas.scenario import (
    ScenarioCompareRequest,
    ScenarioCreateRequest,
    ScenarioRecord,
)
from pension_projector.utils.logging import get_logger, set_log_context

api_bp = Blueprint("api", __name__)
logger = get_logger("api")


def _store():
    return current_app.extensions["scenario_store"]


def _json_body() -> Any:
    return request.get_json(force=True, silent=True)


@api_bp.before_request
def _bind_request_id() -> None:
    set_log_context(request_id=request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12], source="server")


@api_bp.errorhandler(PlanValidationError)
def _handle_plan_error(exc: PlanValidationError):
    """Name every offending field and the constraint it broke."""
    return jsonify({"detail": exc.to_detail()}), HTTPStatus.UNPROCESSABLE_ENTITY


@api_bp.errorhandler(ValidationError)
def _handle_validation_error(exc: ValidationError):
    """Convert Pydantic validation errors into JSON responses."""
    return (
        jsonify({"detail": exc.errors(include_url=False, include_context=False, include_input=False)}),
        HTTPStatus.UNPROCESSABLE_ENTITY,
    )


@api_bp.errorhandler(ScenarioNotFound)
def _handle_not_found(exc: ScenarioNotFound):
    return jsonify({"detail": str(exc)}), HTTPStatus.NOT_FOUND


@api_bp.get("/ping")
def ping() -> Any:
    """Health-check endpoint."""
    response = PingResponse(policy_version=POLICY_VERSION)
    return jsonify(response.model_dump())


@api_bp.post("/projection")
def projection() -> Any:
    """Authoritative projection; the local client runs the same kernel as its fallback."""
    plan = validate_plan(_json_body())
    result = project(plan)
    logger.info(f"projection periods={len(result.periods)} depleted_at={result.depleted_at}")
    return jsonify(result.model_dump(mode="json"))


@api_bp.post("/projection/band")
def projection_band() -> Any:
    """min/avg/max projections around one plan."""
    body = _json_body()
    if not isinstance(body, dict):
        raise PlanValidationError([("body", "must be a JSON object")])
    plan = validate_plan(body.get("plan"))
    try:
        growth_margin = Decimal(str(body.get("growthMargin", "0")))
        inflation_margin = Decimal(str(body.get("inflationMargin", "0")))
    except InvalidOperation:
        raise PlanValidationError([("growthMargin", "must be a number")])
    if not (growth_margin.is_finite() and inflation_margin.is_finite()) or growth_margin < 0 or inflation_margin < 0:
        raise PlanValidationError([("growthMargin", "margins must be finite and >= 0")])

    results = project_band(plan, growth_margin, inflation_margin)
    return jsonify({band.value: result.model_dump(mode="json") for band, result in results.items()})


@api_bp.get("/scenarios")
def list_scenarios() -> Any:
    return jsonify([record.model_dump(mode="json") for record in _store().list()])


@api_bp.post("/scenarios")
def create_scenario() -> Any:
    payload = ScenarioCreateRequest.model_validate(_json_body() or {})
    record = ScenarioRecord(name=payload.name, plan=validate_plan(payload.plan), source="remote")
    scenario_id = _store().save(record)
    return jsonify({"id": scenario_id}), HTTPStatus.CREATED


@api_bp.get("/scenarios/<scenario_id>")
def get_scenario(scenario_id: str) -> Any:
    return jsonify(_store().load(scenario_id).model_dump(mode="json"))


@api_bp.post("/scenarios/<scenario_id>/projection")
def project_scenario(scenario_id: str) -> Any:
    """Project a saved plan and store its summary on the record."""
    record = _store().load(scenario_id)
    result = project(record.plan)
    summary = summarize(result, starting_balance=record.plan.starting_balance)
    _store().save_summary(scenario_id, summary)
    return jsonify({"summary": summary.model_dump(mode="json"), "result": result.model_dump(mode="json")})


@api_bp.post("/scenarios/compare")
def compare() -> Any:
    payload = ScenarioCompareRequest.model_validate(_json_body() or {})
    records = [_store().load(scenario_id) for scenario_id in payload.ids]
    return jsonify([row.model_dump(mode="json") for row in compare_scenarios(records)])
