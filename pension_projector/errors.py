"""Exception types shared by the server and the local client."""

from __future__ import annotations

from typing import List, Sequence, Tuple


class PensionProjectorError(Exception):
    pass


class PlanValidationError(PensionProjectorError, ValueError):
    """A plan failed validation. ``issues`` holds ``(field, constraint)`` pairs."""

    def __init__(self, issues: Sequence[Tuple[str, str]]):
        self.issues: List[Tuple[str, str]] = list(issues)
        super().__init__("; ".join(f"{field}: {constraint}" for field, constraint in self.issues))

    def to_detail(self) -> List[dict]:
        return [{"field": field, "constraint": constraint} for field, constraint in self.issues]


class TransportFailure(PensionProjectorError):
    """Remote compute was unreachable, answered with an error status, or timed out."""


class MalformedRemoteResponse(PensionProjectorError):
    """Remote compute answered, but the body is not a valid projection for the request."""


class ParityViolation(PensionProjectorError):
    pass


class ScenarioNotFound(PensionProjectorError, KeyError):
    def __init__(self, scenario_id: str):
        super().__init__(scenario_id)
        self.scenario_id = scenario_id

    def __str__(self) -> str:
        return f"scenario {self.scenario_id!r} not found"
