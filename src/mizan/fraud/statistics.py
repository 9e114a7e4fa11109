"""
Statistical primitives for fraud pattern detection.

Provides:
- Benford's Law goodness-of-fit (chi-square, 8 degrees of freedom)
- Round-number classification
- Timing classification (odd hours, weekends, month end)
"""

import calendar
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Sequence, Union

import numpy as np

Number = Union[Decimal, int, float]


# ============================================================================
# BENFORD'S LAW
# ============================================================================
# P(d) = log10(1 + 1/d) for leading digit d in 1..9.
# 15.51 is the chi-square critical value at alpha = 0.05 with df = 8.
# ============================================================================

BENFORD_MIN_SAMPLE = 20
BENFORD_CRITICAL_VALUE = 15.51

_DIGITS = np.arange(1, 10)
BENFORD_PROBABILITIES = np.log10(1 + 1 / _DIGITS)


@dataclass
class BenfordAnalysis:
    """Result of a Benford's Law test."""

    violation: bool
    chi_square: float
    # Expected count per leading digit
    expected_distribution: dict[int, float] = field(default_factory=dict)
    # Observed percentage per leading digit
    actual_distribution: dict[int, float] = field(default_factory=dict)
    sample_size: int = 0


def _to_decimal(amount: Number) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


def leading_digit(amount: Number) -> Optional[int]:
    """First significant digit of |amount|, or None for zero."""
    value = abs(_to_decimal(amount))
    if value == 0:
        return None
    return value.as_tuple().digits[0]


def analyze_benfords_law(amounts: Sequence[Number]) -> BenfordAnalysis:
    """
    Test the leading-digit distribution of amounts against Benford's Law.

    Samples below BENFORD_MIN_SAMPLE are not tested. Zero amounts count
    towards the sample size but contribute no digit.
    """
    n = len(amounts)
    if n < BENFORD_MIN_SAMPLE:
        return BenfordAnalysis(violation=False, chi_square=0.0, sample_size=n)

    observed = np.zeros(9)
    for amount in amounts:
        digit = leading_digit(amount)
        if digit is not None:
            observed[digit - 1] += 1

    expected = n * BENFORD_PROBABILITIES
    chi_square = float(np.sum((observed - expected) ** 2 / expected))

    return BenfordAnalysis(
        violation=chi_square > BENFORD_CRITICAL_VALUE,
        chi_square=chi_square,
        expected_distribution={
            int(d): float(expected[d - 1]) for d in _DIGITS
        },
        actual_distribution={
            int(d): float(observed[d - 1] / n * 100) for d in _DIGITS
        },
        sample_size=n,
    )


# ============================================================================
# ROUND NUMBERS
# ============================================================================

class Roundness(str, Enum):
    """How many trailing zeros an amount's integer part has."""

    HIGH = "high"  # ends in 000
    MEDIUM = "medium"  # ends in 00
    LOW = "low"  # ends in 0


# Minimum |amount| at which each roundness level is suspicious
ROUNDNESS_MINIMUMS = {
    Roundness.HIGH: Decimal("1000"),
    Roundness.MEDIUM: Decimal("100"),
    Roundness.LOW: Decimal("1000"),
}


@dataclass
class RoundNumber:
    """A suspiciously round amount."""

    amount: Decimal
    roundness: Roundness


def classify_roundness(amount: Number) -> Optional[Roundness]:
    """
    Classify the roundness of an amount at cent precision.

    Amounts with cents, or whose integer part does not end in zero,
    are not round.
    """
    try:
        value = abs(_to_decimal(amount)).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
    except InvalidOperation:
        return None

    integer_part, cents = f"{value:f}".split(".")
    if cents != "00":
        return None
    if integer_part.endswith("000"):
        return Roundness.HIGH
    if integer_part.endswith("00"):
        return Roundness.MEDIUM
    if integer_part.endswith("0"):
        return Roundness.LOW
    return None


def detect_round_numbers(amounts: Sequence[Number]) -> list[RoundNumber]:
    """Return the amounts that are round enough, and large enough, to be suspicious."""
    results = []
    for amount in amounts:
        roundness = classify_roundness(amount)
        if roundness is None:
            continue
        value = _to_decimal(amount)
        if abs(value) >= ROUNDNESS_MINIMUMS[roundness]:
            results.append(RoundNumber(amount=value, roundness=roundness))
    return results


# ============================================================================
# TIMING
# ============================================================================

BUSINESS_HOURS_START = 9
BUSINESS_HOURS_END = 18
MONTH_END_DAYS = 3

# Percentage of the dataset above which a category is unusual
TIMING_THRESHOLDS = {
    "odd_hours": 30.0,
    "weekend": 20.0,
    "end_of_month": 40.0,
}


@dataclass
class TimingPattern:
    """An over-represented timing category."""

    kind: str  # odd_hours, weekend, end_of_month
    count: int
    percentage: float


@dataclass
class TimingAnalysis:
    """Result of timing analysis."""

    unusual_timing: bool
    patterns: list[TimingPattern] = field(default_factory=list)


def is_odd_hour(moment: datetime) -> bool:
    """Outside business hours (before 09:00 or from 18:00)."""
    return moment.hour < BUSINESS_HOURS_START or moment.hour >= BUSINESS_HOURS_END


def is_weekend(moment: datetime) -> bool:
    return moment.weekday() >= 5


def is_end_of_month(moment: datetime) -> bool:
    """Within the last three calendar days of its month."""
    days_in_month = calendar.monthrange(moment.year, moment.month)[1]
    return moment.day > days_in_month - MONTH_END_DAYS


def analyze_timing_patterns(dates: Sequence[datetime]) -> TimingAnalysis:
    """
    Find timing categories that exceed their share thresholds.

    Hours and weekdays are read from each timestamp as recorded.
    """
    total = len(dates)
    if total == 0:
        return TimingAnalysis(unusual_timing=False)

    counts = {
        "odd_hours": sum(1 for d in dates if is_odd_hour(d)),
        "weekend": sum(1 for d in dates if is_weekend(d)),
        "end_of_month": sum(1 for d in dates if is_end_of_month(d)),
    }

    patterns = []
    for kind, threshold in TIMING_THRESHOLDS.items():
        percentage = counts[kind] / total * 100
        if percentage > threshold:
            patterns.append(
                TimingPattern(kind=kind, count=counts[kind], percentage=percentage)
            )

    return TimingAnalysis(unusual_timing=bool(patterns), patterns=patterns)
