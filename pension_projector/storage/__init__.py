"""Scenario persistence collaborators."""

from typing import List, Optional, Protocol

from pension_projector.schemas.projection import ProjectionSummary
from pension_projector.schemas.scenario import ScenarioRecord
from pension_projector.storage.local_store import LocalScenarioStore
from pension_projector.storage.sqlite_store import SQLiteScenarioStore


class ScenarioStore(Protocol):
    def save(self, record: ScenarioRecord) -> Optional[str]: ...

    def load(self, scenario_id: str) -> ScenarioRecord: ...

    def list(self) -> List[ScenarioRecord]: ...

    def save_summary(self, scenario_id: str, summary: ProjectionSummary) -> object: ...


__all__ = ["LocalScenarioStore", "SQLiteScenarioStore", "ScenarioStore"]
