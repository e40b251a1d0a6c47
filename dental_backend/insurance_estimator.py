"""
Insurance estimator.

Deductible first (the patient pays until it is met), then the coverage
percentage on the remainder, then the annual maximum as a hard cap on the
insurer payout. Pure functions: no DB, no logging side effects beyond DEBUG.
"""
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

logger = logging.getLogger(__name__)

# Pass this when a policy has no annual maximum: larger than any plausible fee.
UNLIMITED_ANNUAL_MAX = float("inf")

DEFAULT_COVERAGE_PERCENTAGE = 80.0

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class EstimatorInput:
    procedure_fee: Any
    coverage_percentage: Any
    deductible_remaining: Any
    annual_max_remaining: Any
    procedure_code: str | None = None


@dataclass(frozen=True)
class EstimatorOutput:
    insurance_estimate: float
    patient_portion: float
    applied_deductible: float
    applied_coverage: float
    capped_by_annual_max: bool

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _as_number(value: Any) -> float:
    # Permissive on purpose: None, NaN, bools and garbage become 0.
    # Candidate for stricter validation once callers send typed input.
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return number


def _non_negative(value: Any) -> float:
    return max(0.0, _as_number(value))


def round_currency(value: float) -> float:
    """Round half-up to the currency minor unit (cents)."""
    if not math.isfinite(value):
        return value
    return float(Decimal(repr(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def estimate(
    fee: Any,
    coverage_pct: Any,
    deductible_remaining: Any,
    annual_max_remaining: Any,
) -> EstimatorOutput:
    """
    Split a procedure fee between insurer and patient.

    Inputs are clamped, never rejected: fee, deductible and annual max to >= 0,
    coverage to [0, 100]. insurance_estimate + patient_portion == fee within a cent.
    """
    procedure_fee = _non_negative(fee)
    pct = min(100.0, _non_negative(coverage_pct)) / 100
    deductible = _non_negative(deductible_remaining)
    annual_max = _non_negative(annual_max_remaining)

    logger.debug(
        "estimate fee=%s pct=%s deductible=%s annual_max=%s", procedure_fee, pct, deductible, annual_max
    )

    applied_deductible = 0.0
    if deductible > 0 and procedure_fee > 0:
        applied_deductible = min(procedure_fee, deductible)

    after_deductible = procedure_fee - applied_deductible
    raw_estimate = after_deductible * pct
    insurance_estimate = min(raw_estimate, annual_max)
    patient_portion = procedure_fee - insurance_estimate

    return EstimatorOutput(
        insurance_estimate=round_currency(insurance_estimate),
        patient_portion=round_currency(patient_portion),
        applied_deductible=applied_deductible,
        applied_coverage=insurance_estimate,
        capped_by_annual_max=raw_estimate > insurance_estimate,
    )


def estimate_insurance(data: EstimatorInput) -> EstimatorOutput:
    return estimate(
        data.procedure_fee,
        data.coverage_percentage,
        data.deductible_remaining,
        data.annual_max_remaining,
    )
