"""Core processing components."""

from portfolio_service.core.engine import PortfolioEngine
from portfolio_service.core.data_ingestion import DataIngestion, MalformedSnapshotError
from portfolio_service.core.rule_evaluator import RuleEvaluator
from portfolio_service.core.rule_registry import RuleRegistry, UnknownRuleError
from portfolio_service.core.filter_engine import FilterEngine
from portfolio_service.core.viewdate_processor import ViewDateProcessor
from portfolio_service.core.metrics_calculator import MetricsCalculator
from portfolio_service.core.comparison import ComparisonEngine
from portfolio_service.core.result_cache import ResultCache, snapshot_identity
from portfolio_service.core.output_formatter import OutputFormatter

__all__ = [
    'PortfolioEngine',
    'DataIngestion',
    'MalformedSnapshotError',
    'RuleEvaluator',
    'RuleRegistry',
    'UnknownRuleError',
    'FilterEngine',
    'ViewDateProcessor',
    'MetricsCalculator',
    'ComparisonEngine',
    'ResultCache',
    'snapshot_identity',
    'OutputFormatter',
]
