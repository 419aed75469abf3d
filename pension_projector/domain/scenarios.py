from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Dict, List, Sequence, Tuple

from pension_projector.core.projection import project, summarize
from pension_projector.schemas.projection import PlanInput, ProjectionResult, ProjectionSummary
from pension_projector.schemas.scenario import ScenarioComparison, ScenarioRecord


class Band(str, Enum):
    MIN = "min"
    AVG = "avg"
    MAX = "max"


def band_plans(
    plan: PlanInput,
    growth_margin: Decimal,
    inflation_margin: Decimal = Decimal("0"),
) -> Dict[Band, PlanInput]:
    """
    Map one plan onto min/avg/max worlds, pairing rates as:

      MIN: worst case -> lowest growth, highest inflation
      AVG: the plan as entered
      MAX: best case  -> highest growth, lowest inflation

    Growth-schedule steps shift by the same margin.
    """

    def shifted(growth_delta: Decimal, inflation_delta: Decimal) -> PlanInput:
        data = plan.model_dump()
        data["annual_growth_rate"] = plan.annual_growth_rate + growth_delta
        data["annual_inflation_rate"] = plan.annual_inflation_rate + inflation_delta
        data["growth_schedule"] = [
            {"from_period": step.from_period, "annual_rate": step.annual_rate + growth_delta}
            for step in plan.growth_schedule
        ]
        return PlanInput.model_validate(data)

    return {
        Band.MIN: shifted(-growth_margin, inflation_margin),
        Band.AVG: plan,
        Band.MAX: shifted(growth_margin, -inflation_margin),
    }


def project_band(
    plan: PlanInput,
    growth_margin: Decimal,
    inflation_margin: Decimal = Decimal("0"),
) -> Dict[Band, ProjectionResult]:
    return {band: project(p) for band, p in band_plans(plan, growth_margin, inflation_margin).items()}


def _rank_key(item: Tuple[int, Tuple[ScenarioRecord, ProjectionSummary]]):
    # depleted plans rank below every plan that lasts; later depletion beats earlier
    index, (_, summary) = item
    lasts = summary.depleted_at is None
    return (lasts, summary.depleted_at or 0, summary.final_balance, -index)


def compare_scenarios(records: Sequence[ScenarioRecord]) -> List[ScenarioComparison]:
    """Rank scenarios by final balance; ties keep the order they were given in."""
    scored: List[Tuple[ScenarioRecord, ProjectionSummary]] = []
    for record in records:
        summary = summarize(project(record.plan), starting_balance=record.plan.starting_balance)
        scored.append((record, summary))

    ranked = sorted(enumerate(scored), key=_rank_key, reverse=True)
    if not ranked:
        return []

    best_balance = ranked[0][1][1].final_balance
    return [
        ScenarioComparison(
            id=record.id or "",
            name=record.name,
            rank=position,
            summary=summary,
            delta_vs_best=summary.final_balance - best_balance,
        )
        for position, (_, (record, summary)) in enumerate(ranked, start=1)
    ]
