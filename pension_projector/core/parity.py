"""Canonical numeric policy shared by the server and the local client.

Both execution paths run ``core.projection.project`` under this policy:

  1) one Decimal context (28 significant digits, round-half-to-even)
  2) period rate = annual rate / periods per year (nominal convention)
  3) step order per period: contribution + adjustment, growth, fees,
     withdrawal, floor clamp
  4) every reported figure quantised to CURRENCY_PLACES once, at the end
     of the period; the quantised closing balance is the next opening one

Bump POLICY_VERSION whenever any of the above changes. A remote result
stamped with another version is rejected by the client.
"""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Context, Decimal
from typing import Iterable, Optional, Tuple

from pension_projector.errors import ParityViolation
from pension_projector.schemas.projection import PeriodSnapshot, ProjectionResult

POLICY_VERSION = "nominal-hte2-v1"

CURRENCY_PLACES = 2
ROUNDING = ROUND_HALF_EVEN
WORKING_PRECISION = 28

_QUANTUM = Decimal(1).scaleb(-CURRENCY_PLACES)
ZERO = Decimal("0")
ONE = Decimal("1")

# Largest magnitude a reported figure may reach. Quantising to cents needs
# WORKING_PRECISION - CURRENCY_PLACES integer digits at most.
REPORT_LIMIT = Decimal("1e24")


def policy_context() -> Context:
    """Fresh Decimal context for one projection run."""
    return Context(prec=WORKING_PRECISION, rounding=ROUNDING)


def to_currency(value: Decimal) -> Decimal:
    """The single rounding step applied to reported figures."""
    return value.quantize(_QUANTUM, rounding=ROUNDING)


def reportable(value: Decimal) -> bool:
    return value.is_finite() and abs(value) < REPORT_LIMIT


def period_rate(annual_rate: Decimal, periods_per_year: int) -> Decimal:
    return annual_rate / Decimal(periods_per_year)


def continuity_breaks(periods: Iterable[PeriodSnapshot]) -> Iterable[int]:
    """Yield the index of every period whose opening balance differs from the previous closing."""
    previous: Optional[PeriodSnapshot] = None
    for index, snapshot in enumerate(periods):
        if previous is not None and previous.closing_balance != snapshot.opening_balance:
            yield index
        previous = snapshot


def first_difference(
    left: ProjectionResult, right: ProjectionResult
) -> Optional[Tuple[str, Optional[int]]]:
    """Return ``(field, period)`` for the first mismatch, or None when equal."""
    for name in ("policy_version", "periods_per_year", "depleted_at"):
        if getattr(left, name) != getattr(right, name):
            return name, None
    if len(left.periods) != len(right.periods):
        return "periods.length", None
    for index, (a, b) in enumerate(zip(left.periods, right.periods)):
        if a == b:
            continue
        for name in PeriodSnapshot.model_fields:
            if getattr(a, name) != getattr(b, name):
                return name, index
    return None


def results_equal(left: ProjectionResult, right: ProjectionResult) -> bool:
    # exact Decimal comparison, never approximate
    return first_difference(left, right) is None


def assert_parity(left: ProjectionResult, right: ProjectionResult) -> None:
    difference = first_difference(left, right)
    if difference is None:
        return
    field, period = difference
    where = f" at period {period}" if period is not None else ""
    raise ParityViolation(f"projections differ in {field}{where}")
