"""
Statistical Comparator
Pure functions shared by the A/B comparison and deployment impact analysis.

Use: Before/after deltas, conversion-rate significance

Design:
    ✓ Deterministic
    ✓ NO knowledge of time
    ✓ NO I/O
"""

import math
from typing import Optional, Sequence

import numpy as np
from scipy import stats

from .models import ZTestResult, VariantComparison

# Two-sided, 95% confidence
SIGNIFICANCE_LEVEL = 0.05


def percent_change(before: float, after: float) -> float:
    """
    Relative change in percent.

    (after - before) / before * 100, and 0.0 when before == 0
    so a zero baseline never propagates NaN/inf.
    """
    if before == 0:
        return 0.0
    return (after - before) / before * 100


def two_proportion_z_test(
    success1: int,
    total1: int,
    success2: int,
    total2: int
) -> ZTestResult:
    """
    Pooled two-proportion z-test.

    p  = (s1 + s2) / (n1 + n2)
    se = sqrt(p * (1 - p) * (1/n1 + 1/n2))
    z  = (p2 - p1) / se

    A zero standard error yields z=0, p=1 instead of dividing by zero.
    """
    _check_counts(success1, total1)
    _check_counts(success2, total2)

    p1 = success1 / total1
    p2 = success2 / total2
    pooled = (success1 + success2) / (total1 + total2)
    se = math.sqrt(pooled * (1 - pooled) * (1 / total1 + 1 / total2))

    if se == 0:
        return ZTestResult(z=0.0, p_value=1.0, significant=False)

    z = (p2 - p1) / se
    p_value = float(2 * (1 - stats.norm.cdf(abs(z))))

    return ZTestResult(z=float(z), p_value=p_value, significant=p_value < SIGNIFICANCE_LEVEL)


def effect_size(p1: float, p2: float) -> float:
    """Absolute difference between two rates (p2 - p1)."""
    return p2 - p1


def compare_variants(
    success_a: int,
    total_a: int,
    success_b: int,
    total_b: int
) -> VariantComparison:
    """
    Compare variant B against variant A.

    Args:
        success_a: Conversions in A
        total_a: Exposures in A
        success_b: Conversions in B
        total_b: Exposures in B

    Returns:
        VariantComparison with z, p-value, effect size and lift

    Raises:
        ValueError: non-positive totals or success outside [0, total]
    """
    test = two_proportion_z_test(success_a, total_a, success_b, total_b)
    rate_a = success_a / total_a
    rate_b = success_b / total_b

    return VariantComparison(
        rate_a=rate_a,
        rate_b=rate_b,
        z=test.z,
        p_value=test.p_value,
        significant=test.significant,
        effect_size=effect_size(rate_a, rate_b),
        lift_percent=percent_change(rate_a, rate_b),
    )


def mean(values: Sequence[float]) -> Optional[float]:
    """Arithmetic mean, None for an empty window."""
    if len(values) == 0:
        return None
    return float(np.mean(np.asarray(values, dtype=float)))


def _check_counts(success: int, total: int) -> None:
    if total <= 0:
        raise ValueError(f"total must be positive, got {total}")
    if success < 0 or success > total:
        raise ValueError(f"success must be in [0, {total}], got {success}")
