"""
Analytics Module
Statistical comparison and deployment impact analysis.

Structure:
    analytics/
    ├── models.py      → Output types (dataclasses)
    ├── comparator.py  → Pure statistics (percent change, z-test)
    └── impact.py      → DeploymentImpactAnalyzer

Usage:
    from releasewatch.analytics import comparator, DeploymentImpactAnalyzer

    comparator.percent_change(100, 150)          # 50.0
    comparator.compare_variants(120, 1000, 150, 1000)

    report = DeploymentImpactAnalyzer(store, lookup).analyze("deploy-42")

Design Principles:
    ✓ comparator functions are PURE
    ✓ impact analysis only READS the sample store
"""

from . import comparator
from . import impact

from .impact import DeploymentImpactAnalyzer

from .models import (
    ZTestResult,
    VariantComparison,
    MetricImpact,
    SignificantChange,
    ImpactReport,
    RiskLevel,
    MetricCategory,
    ChangeDirection,
)

__all__ = [
    # Modules
    "comparator",
    "impact",
    # Analyzer
    "DeploymentImpactAnalyzer",
    # Types
    "ZTestResult",
    "VariantComparison",
    "MetricImpact",
    "SignificantChange",
    "ImpactReport",
    "RiskLevel",
    "MetricCategory",
    "ChangeDirection",
]
