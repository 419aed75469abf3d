"""Data contracts for saved scenarios."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from pension_projector.schemas.projection import PlanInput, ProjectionSummary


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScenarioRecord(BaseModel):
    """A named plan. Lifecycle fields belong to the store, never to the engine."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: Optional[str] = None
    name: str = Field(min_length=1, max_length=120)
    plan: PlanInput
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    source: Literal["local", "remote"] = "remote"
    summary: Optional[ProjectionSummary] = None


class ScenarioCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=120)
    plan: dict


class ScenarioCompareRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ids: List[str] = Field(min_length=1)


class ScenarioComparison(BaseModel):
    """One line of a side-by-side comparison, best final balance first."""

    id: str
    name: str
    rank: int = Field(ge=1)
    summary: ProjectionSummary
    delta_vs_best: Decimal
