from __future__ import annotations

from typing import Any, List, Mapping, Tuple, Union

from pydantic import ValidationError

from pension_projector.errors import PlanValidationError
from pension_projector.schemas.projection import PlanInput


def _issues_from(exc: ValidationError) -> List[Tuple[str, str]]:
    issues: List[Tuple[str, str]] = []
    for error in exc.errors():
        nested = (error.get("ctx") or {}).get("error")
        if isinstance(nested, PlanValidationError):
            issues.extend(nested.issues)
            continue
        field = ".".join(str(part) for part in error.get("loc", ())) or "plan"
        message = error.get("msg", "invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        issues.append((field, message))
    return issues


def validate_plan(payload: Any) -> PlanInput:
    """Parse ``payload`` into a PlanInput or raise PlanValidationError naming each bad field."""
    if not isinstance(payload, Mapping):
        raise PlanValidationError([("plan", "must be a JSON object")])
    try:
        return PlanInput.model_validate(dict(payload))
    except ValidationError as exc:
        raise PlanValidationError(_issues_from(exc)) from exc


def ensure_plan(plan: Union[PlanInput, Mapping[str, Any]]) -> PlanInput:
    """
    Re-check a plan before it reaches any execution path.

    Instances built with ``model_construct`` skip validation, so they go
    through the validators again.
    """
    if isinstance(plan, PlanInput):
        return validate_plan(plan.model_dump())
    return validate_plan(plan)
