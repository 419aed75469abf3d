"""HTTP client for the server's projection endpoint."""

from __future__ import annotations

from typing import Any, Optional

import requests
from pydantic import ValidationError

from pension_projector.core.parity import POLICY_VERSION, continuity_breaks, to_currency
from pension_projector.errors import MalformedRemoteResponse, TransportFailure
from pension_projector.schemas.projection import PlanInput, ProjectionResult
from pension_projector.utils.logging import get_logger

logger = get_logger("client.remote")

PROJECTION_PATH = "/api/projection"


class RemoteProjectionClient:
    """
    Sends a serialised PlanInput to ``POST /api/projection`` and checks the
    answer before handing it back:
      - body parses as a ProjectionResult
      - policy version matches this client's
      - one period per horizon step, numbered 0..n-1
      - closing[i] == opening[i+1]
    """

    def __init__(self, base_url: str, timeout_seconds: float = 3.0, session: Optional[Any] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout_seconds)
        self.session = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{self.base_url}{PROJECTION_PATH}"

    def project(self, plan: PlanInput) -> ProjectionResult:
        try:
            resp = self.session.post(self.url, json=plan.model_dump(mode="json"), timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportFailure(f"{type(e).__name__}: {e}") from e

        if resp.status_code >= 400:
            raise TransportFailure(f"HTTP {resp.status_code} from {self.url}")

        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedRemoteResponse("response body is not JSON") from e

        return check_remote_result(plan, data)


def check_remote_result(plan: PlanInput, data: Any) -> ProjectionResult:
    try:
        result = ProjectionResult.model_validate(data)
    except ValidationError as e:
        raise MalformedRemoteResponse(f"response shape invalid ({e.error_count()} errors)") from e

    if result.policy_version != POLICY_VERSION:
        raise MalformedRemoteResponse(
            f"policy version {result.policy_version!r} != {POLICY_VERSION!r}"
        )
    if result.periods_per_year != plan.periods_per_year:
        raise MalformedRemoteResponse("periods_per_year does not match the request")
    if len(result.periods) != plan.horizon_periods:
        raise MalformedRemoteResponse(
            f"expected {plan.horizon_periods} periods, got {len(result.periods)}"
        )
    if any(snapshot.period != index for index, snapshot in enumerate(result.periods)):
        raise MalformedRemoteResponse("period indices out of order")
    if result.periods and result.periods[0].opening_balance != to_currency(plan.starting_balance):
        raise MalformedRemoteResponse("opening balance does not match the request")
    breaks = list(continuity_breaks(result.periods))
    if breaks:
        raise MalformedRemoteResponse(f"balance continuity broken at period {breaks[0]}")

    logger.debug(f"remote_result_ok periods={len(result.periods)}")
    return result
