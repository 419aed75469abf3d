"""Data contracts for plan input and projection output.

Every monetary amount and rate is a ``Decimal``. In JSON mode pydantic
serialises Decimals as strings, so a projection computed on the server
arrives at the client without passing through binary floats.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pension_projector.errors import PlanValidationError

ExecutionSource = Literal["remote", "local"]

# Input bounds. Together with the kernel's range check they keep every
# reported figure inside the 28-digit working precision.
MONEY_LIMIT = Decimal("1e15")
RATE_LIMIT = Decimal("10")
HORIZON_LIMIT = 365 * 150
INFLATION_FLOOR = Decimal("-0.5")


def _finite(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is not None and not value.is_finite():
        raise ValueError("must be a finite number")
    return value


class GrowthStep(BaseModel):
    """From ``from_period`` onward the annual growth rate is ``annual_rate``."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    from_period: int = Field(ge=0)
    annual_rate: Decimal = Field(gt=-1, le=RATE_LIMIT)

    check_finite = field_validator("annual_rate")(_finite)


class WithdrawalRule(BaseModel):
    """
    Drawdown phase:
      - mode="fixed": withdraw ``amount`` every period from ``start_period``,
        optionally grown with inflation
      - mode="rate": withdraw ``annual_rate / periods_per_year`` of the balance
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    start_period: int = Field(ge=0)
    mode: Literal["fixed", "rate"] = "fixed"
    amount: Optional[Decimal] = Field(default=None, ge=0, le=MONEY_LIMIT)
    annual_rate: Optional[Decimal] = Field(default=None, ge=0, le=1)
    index_to_inflation: bool = False

    check_finite = field_validator("amount", "annual_rate")(_finite)


class PlanInput(BaseModel):
    """Immutable plan assumptions. Build a new value for every recompute."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    starting_balance: Decimal = Field(default=Decimal("0"), ge=-MONEY_LIMIT, le=MONEY_LIMIT)
    contribution_amount: Decimal = Field(default=Decimal("0"), ge=0, le=MONEY_LIMIT)
    contributions_per_year: int = Field(default=12, ge=1)
    contribution_start_period: int = Field(default=0, ge=0)
    # None => until withdrawals start, or the end of the horizon
    contribution_end_period: Optional[int] = Field(default=None, ge=0)

    periods_per_year: int = Field(default=12, ge=1, le=365)
    annual_growth_rate: Decimal = Field(default=Decimal("0"), gt=-1, le=RATE_LIMIT)
    growth_schedule: List[GrowthStep] = Field(default_factory=list)
    annual_fee_rate: Decimal = Field(default=Decimal("0"), ge=0, le=1)
    annual_inflation_rate: Decimal = Field(default=Decimal("0"), ge=INFLATION_FLOOR, le=RATE_LIMIT)

    horizon_periods: int = Field(ge=0, le=HORIZON_LIMIT)
    withdrawal: Optional[WithdrawalRule] = None
    adjustments: Dict[int, Decimal] = Field(default_factory=dict)

    balance_floor: Decimal = Field(default=Decimal("0"), ge=-MONEY_LIMIT, le=MONEY_LIMIT)
    allow_negative_balance: bool = False

    check_finite = field_validator(
        "starting_balance",
        "contribution_amount",
        "annual_growth_rate",
        "annual_fee_rate",
        "annual_inflation_rate",
        "balance_floor",
    )(_finite)

    @field_validator("adjustments")
    @classmethod
    def adjustments_finite(cls, value: Dict[int, Decimal]) -> Dict[int, Decimal]:
        for period, amount in value.items():
            if not amount.is_finite():
                raise ValueError(f"adjustment at period {period} must be a finite number")
            if abs(amount) > MONEY_LIMIT:
                raise ValueError(f"adjustment at period {period} must be within +/-{MONEY_LIMIT:E}")
        return value

    @model_validator(mode="after")
    def ensure_validity(self) -> "PlanInput":
        issues = []
        horizon = self.horizon_periods

        if self.periods_per_year % self.contributions_per_year != 0:
            issues.append(
                (
                    "contributions_per_year",
                    f"must divide periods_per_year ({self.periods_per_year}) evenly",
                )
            )
        if self.contribution_start_period > horizon:
            issues.append(("contribution_start_period", f"must be <= horizon_periods ({horizon})"))
        if self.contribution_end_period is not None:
            if self.contribution_end_period < self.contribution_start_period:
                issues.append(("contribution_end_period", "must be >= contribution_start_period"))
            elif self.contribution_end_period > horizon:
                issues.append(("contribution_end_period", f"must be <= horizon_periods ({horizon})"))

        previous = None
        for index, step in enumerate(self.growth_schedule):
            if step.from_period >= max(horizon, 1):
                issues.append((f"growth_schedule.{index}.from_period", "must be < horizon_periods"))
            if previous is not None and step.from_period <= previous:
                issues.append((f"growth_schedule.{index}.from_period", "must be strictly increasing"))
            previous = step.from_period

        for period in sorted(self.adjustments):
            if not 0 <= period < horizon:
                issues.append((f"adjustments.{period}", f"period must be in [0, {horizon})"))

        rule = self.withdrawal
        if rule is not None:
            if rule.start_period > horizon:
                issues.append(("withdrawal.start_period", f"must be <= horizon_periods ({horizon})"))
            if rule.mode == "fixed":
                if rule.amount is None:
                    issues.append(("withdrawal.amount", "required when mode is 'fixed'"))
                if rule.annual_rate is not None:
                    issues.append(("withdrawal.annual_rate", "must not be set when mode is 'fixed'"))
            else:
                if rule.annual_rate is None:
                    issues.append(("withdrawal.annual_rate", "required when mode is 'rate'"))
                if rule.amount is not None:
                    issues.append(("withdrawal.amount", "must not be set when mode is 'rate'"))
                if rule.index_to_inflation:
                    issues.append(("withdrawal.index_to_inflation", "only applies when mode is 'fixed'"))

        if issues:
            raise PlanValidationError(issues)
        return self

    @property
    def contribution_interval(self) -> int:
        """Periods between two contributions."""
        return self.periods_per_year // self.contributions_per_year

    @property
    def effective_contribution_end(self) -> int:
        if self.contribution_end_period is not None:
            return self.contribution_end_period
        if self.withdrawal is not None:
            return self.withdrawal.start_period
        return self.horizon_periods


class PeriodSnapshot(BaseModel):
    """
    One period of a projection, every amount in cents.

    Each component is rounded from its own unrounded value and
    ``closing_balance`` from the unrounded running balance. The components
    of one row can therefore miss ``closing - opening`` by a cent;
    ``closing_balance`` is authoritative and equals the next opening balance.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    period: int = Field(ge=0)
    opening_balance: Decimal
    contribution: Decimal
    adjustment: Decimal
    growth: Decimal
    fees: Decimal
    withdrawal: Decimal
    withdrawal_shortfall: Decimal
    closing_balance: Decimal
    real_closing_balance: Decimal
    cumulative_contributions: Decimal
    cumulative_withdrawals: Decimal
    depleted: bool = False


class ProjectionResult(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    policy_version: str
    periods_per_year: int = Field(ge=1)
    periods: List[PeriodSnapshot] = Field(default_factory=list)
    depleted_at: Optional[int] = None

    @property
    def final_balance(self) -> Optional[Decimal]:
        return self.periods[-1].closing_balance if self.periods else None


class ProjectionSummary(BaseModel):
    """Headline figures written back onto a saved scenario."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    policy_version: str
    period_count: int
    final_balance: Decimal
    final_real_balance: Decimal
    total_contributions: Decimal
    total_withdrawals: Decimal
    total_shortfall: Decimal
    depleted_at: Optional[int] = None


class ExecutionOutcome(BaseModel):
    """A projection plus where it came from."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    result: ProjectionResult
    source: ExecutionSource
    latency_ms: float = Field(ge=0)
    from_cache: bool = False
    fallback_reason: Optional[str] = None
