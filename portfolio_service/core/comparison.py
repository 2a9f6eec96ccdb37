"""
Comparison Engine - Deltas and percent changes between two PeriodMetrics.
"""

from typing import Any

from portfolio_service.models.results import PeriodMetrics, ComparisonResult, Ratio, METRIC_FIELDS
from portfolio_service.utils.constants import UNDEFINED, is_undefined

COUNT_FIELDS = ('customers', 'policies', 'covers', 'claims')


class ComparisonEngine:
    """Compares metrics of two selections: A is the baseline, B the newer one."""

    @staticmethod
    def percent_change(new: Any, old: Any) -> Ratio:
        """(new - old) / old * 100, UNDEFINED when old is zero or either side is UNDEFINED."""
        if is_undefined(new) or is_undefined(old) or old == 0:
            return UNDEFINED
        return (new - old) / old * 100

    @staticmethod
    def delta(new: Any, old: Any) -> Ratio:
        if is_undefined(new) or is_undefined(old):
            return UNDEFINED
        return new - old

    @staticmethod
    def compare(a: PeriodMetrics, b: PeriodMetrics) -> ComparisonResult:
        """
        Compare two metric sets.

        Args:
            a: Baseline metrics (older period or view date)
            b: Metrics to compare against the baseline

        Returns:
            ComparisonResult with delta = b - a and percent_change from a to b
            for every metric and record count
        """
        delta, percent = {}, {}
        for name in METRIC_FIELDS + COUNT_FIELDS:
            old, new = a.value(name), b.value(name)
            delta[name] = ComparisonEngine.delta(new, old)
            percent[name] = ComparisonEngine.percent_change(new, old)
        return ComparisonResult(a=a, b=b, delta=delta, percent_change=percent)
