"""Data models for the Portfolio Service."""
from portfolio_service.models.rule import StatusRule, CompositeRule, RuleDefinitionError
from portfolio_service.models.portfolio import Period, FlattenedPortfolio, RecordSet, ViewDateSnapshot
from portfolio_service.models.results import PeriodMetrics, ComparisonResult, RuleTestResult

__all__ = [
    'StatusRule',
    'CompositeRule',
    'RuleDefinitionError',
    'Period',
    'FlattenedPortfolio',
    'RecordSet',
    'ViewDateSnapshot',
    'PeriodMetrics',
    'ComparisonResult',
    'RuleTestResult',
]
