from __future__ import annotations

from decimal import Decimal, localcontext
from typing import Callable, List, Optional

from pension_projector.core.parity import (
    ONE,
    POLICY_VERSION,
    REPORT_LIMIT,
    ZERO,
    period_rate,
    policy_context,
    reportable,
    to_currency,
)
from pension_projector.errors import PlanValidationError
from pension_projector.schemas.projection import (
    PeriodSnapshot,
    PlanInput,
    ProjectionResult,
    ProjectionSummary,
)


def _growth_rate_lookup(plan: PlanInput) -> Callable[[int], Decimal]:
    """Return period -> per-period growth rate, honouring the growth schedule."""
    ppy = plan.periods_per_year
    base = period_rate(plan.annual_growth_rate, ppy)
    steps = [(step.from_period, period_rate(step.annual_rate, ppy)) for step in plan.growth_schedule]

    def rate_for(period: int) -> Decimal:
        rate = base
        for from_period, step_rate in steps:
            if from_period > period:
                break
            rate = step_rate
        return rate

    return rate_for


def _contributes(plan: PlanInput, period: int, end_period: int) -> bool:
    if not plan.contribution_start_period <= period < end_period:
        return False
    return (period - plan.contribution_start_period) % plan.contribution_interval == 0


def _requested_withdrawal(plan: PlanInput, period: int, balance: Decimal, inflation_rate: Decimal) -> Decimal:
    rule = plan.withdrawal
    if rule is None or period < rule.start_period:
        return ZERO
    if rule.mode == "fixed":
        amount = rule.amount
        if rule.index_to_inflation:
            amount = amount * (ONE + inflation_rate) ** (period - rule.start_period)
        return amount
    if balance <= ZERO:
        return ZERO
    return balance * period_rate(rule.annual_rate, plan.periods_per_year)


def _report(value: Decimal, name: str, period: int) -> Decimal:
    if not reportable(value):
        raise PlanValidationError(
            [("plan", f"{name} at period {period} exceeds {REPORT_LIMIT:E} in magnitude")]
        )
    return to_currency(value)


def project(plan: PlanInput) -> ProjectionResult:
    """
    Build the period-by-period projection for ``plan``.

    Order of operations (per period i):
      1) Opening balance = previous closing (starting balance for i = 0).
      2) Add the scheduled contribution and any one-time adjustment for i.
      3) Apply GROWTH on the post-contribution balance.
      4) Deduct FEES on the post-growth balance (positive balances only).
      5) Take the WITHDRAWAL once i >= withdrawal.start_period.
      6) Clamp to the floor and mark the period depleted, unless negative
         carry is allowed. Depleted plans stay depleted.
      7) Update cumulative totals.

    Intermediate values keep full working precision; each reported figure
    is rounded half-to-even to cents once, at the end of the period.

    Raises PlanValidationError when a reported figure would leave the
    representable range (compounding past REPORT_LIMIT).
    """
    with localcontext(policy_context()):
        periods = _simulate(plan)

    depleted_at = next((snapshot.period for snapshot in periods if snapshot.depleted), None)
    return ProjectionResult(
        policy_version=POLICY_VERSION,
        periods_per_year=plan.periods_per_year,
        periods=periods,
        depleted_at=depleted_at,
    )


def _simulate(plan: PlanInput) -> List[PeriodSnapshot]:
    ppy = plan.periods_per_year
    growth_rate = _growth_rate_lookup(plan)
    fee_rate = period_rate(plan.annual_fee_rate, ppy)
    inflation_rate = period_rate(plan.annual_inflation_rate, ppy)
    contribution_end = plan.effective_contribution_end
    floor = plan.balance_floor

    balance = to_currency(plan.starting_balance)
    price_level = ONE
    total_contributions = ZERO
    total_withdrawals = ZERO
    depleted = False

    rows: List[PeriodSnapshot] = []
    for period in range(plan.horizon_periods):
        price_level *= ONE + inflation_rate
        opening = balance

        if depleted:
            # no recovery: the floor carries forward untouched
            requested = _requested_withdrawal(plan, period, opening, inflation_rate)
            rows.append(
                PeriodSnapshot(
                    period=period,
                    opening_balance=opening,
                    contribution=ZERO,
                    adjustment=ZERO,
                    growth=ZERO,
                    fees=ZERO,
                    withdrawal=ZERO,
                    withdrawal_shortfall=_report(requested, "withdrawal_shortfall", period),
                    closing_balance=opening,
                    real_closing_balance=_report(opening / price_level, "real_closing_balance", period),
                    cumulative_contributions=total_contributions,
                    cumulative_withdrawals=total_withdrawals,
                    depleted=True,
                )
            )
            continue

        # 2) contribution + adjustment
        contribution = plan.contribution_amount if _contributes(plan, period, contribution_end) else ZERO
        adjustment = plan.adjustments.get(period, ZERO)
        running = opening + contribution + adjustment

        # 3) growth, then 4) fees
        growth = running * growth_rate(period)
        running += growth
        fees = running * fee_rate if running > ZERO else ZERO
        running -= fees

        # 5) withdrawal
        requested = _requested_withdrawal(plan, period, running, inflation_rate)
        running -= requested
        paid = requested
        shortfall = ZERO

        # 6) floor
        if not plan.allow_negative_balance and running < floor:
            shortfall = min(floor - running, requested)
            paid = requested - shortfall
            running = floor
            depleted = True

        closing = _report(running, "closing_balance", period)
        paid_contribution = to_currency(contribution)
        paid_withdrawal = _report(paid, "withdrawal", period)
        total_contributions = _report(total_contributions + paid_contribution, "cumulative_contributions", period)
        total_withdrawals = _report(total_withdrawals + paid_withdrawal, "cumulative_withdrawals", period)

        rows.append(
            PeriodSnapshot(
                period=period,
                opening_balance=opening,
                contribution=paid_contribution,
                adjustment=to_currency(adjustment),
                growth=_report(growth, "growth", period),
                fees=_report(fees, "fees", period),
                withdrawal=paid_withdrawal,
                withdrawal_shortfall=_report(shortfall, "withdrawal_shortfall", period),
                closing_balance=closing,
                real_closing_balance=_report(closing / price_level, "real_closing_balance", period),
                cumulative_contributions=total_contributions,
                cumulative_withdrawals=total_withdrawals,
                depleted=depleted,
            )
        )
        balance = closing

    return rows


def summarize(result: ProjectionResult, starting_balance: Optional[Decimal] = None) -> ProjectionSummary:
    """Headline figures of a projection. An empty projection reports the starting balance."""
    if result.periods:
        last = result.periods[-1]
        final_balance = last.closing_balance
        final_real = last.real_closing_balance
        total_contributions = last.cumulative_contributions
        total_withdrawals = last.cumulative_withdrawals
    else:
        final_balance = final_real = to_currency(starting_balance or ZERO)
        total_contributions = total_withdrawals = ZERO

    return ProjectionSummary(
        policy_version=result.policy_version,
        period_count=len(result.periods),
        final_balance=final_balance,
        final_real_balance=final_real,
        total_contributions=total_contributions,
        total_withdrawals=total_withdrawals,
        total_shortfall=sum((row.withdrawal_shortfall for row in result.periods), ZERO),
        depleted_at=result.depleted_at,
    )


__all__ = [
    "project",
    "summarize",
]
