"""
Result dataclasses returned to callers.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union

from portfolio_service.utils.constants import _Undefined

Ratio = Union[float, _Undefined]

# Numeric fields of PeriodMetrics that comparisons are computed for
METRIC_FIELDS = (
    'total_premium',
    'earned_premium',
    'total_claim_cost',
    'loss_ratio',
    'nature_damage_premium',
    'paid',
    'reserve',
    'regress',
)


@dataclass(frozen=True)
class PeriodMetrics:
    """Premium, claim cost and loss ratio for one record set."""
    total_premium: float
    earned_premium: float
    total_claim_cost: float
    loss_ratio: Ratio
    record_counts: Dict[str, int] = field(default_factory=dict)
    nature_damage_premium: float = 0.0
    paid: float = 0.0
    reserve: float = 0.0
    regress: float = 0.0
    label: str = ""
    diagnostics: Dict[str, int] = field(default_factory=dict)

    def value(self, name: str) -> Any:
        if name in METRIC_FIELDS:
            return getattr(self, name)
        return self.record_counts[name]


@dataclass(frozen=True)
class ComparisonResult:
    """Metrics for two selections with delta (b - a) and percent change from a to b."""
    a: PeriodMetrics
    b: PeriodMetrics
    delta: Dict[str, Any]
    percent_change: Dict[str, Any]


@dataclass(frozen=True)
class RuleTestResult:
    """Outcome of evaluating a rule against an unfiltered population."""
    rule_id: str
    total: int
    matched: int
    percent: Ratio
    status_distribution: List[Dict[str, Any]] = field(default_factory=list)
