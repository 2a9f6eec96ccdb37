"""
Portfolio Service

A Polars-based engine that reconstructs insurance portfolios as of historical
view dates and computes premium, claim cost and loss ratio metrics.
"""

from portfolio_service.core.engine import PortfolioEngine
from portfolio_service.core.data_ingestion import DataIngestion, MalformedSnapshotError
from portfolio_service.core.rule_registry import RuleRegistry, UnknownRuleError
from portfolio_service.core.filter_engine import FilterEngine
from portfolio_service.core.viewdate_processor import ViewDateProcessor
from portfolio_service.core.metrics_calculator import MetricsCalculator
from portfolio_service.core.comparison import ComparisonEngine
from portfolio_service.core.result_cache import ResultCache
from portfolio_service.core.output_formatter import OutputFormatter
from portfolio_service.config import EngineConfig, load_config
from portfolio_service.service import PortfolioService
from portfolio_service.utils.constants import UNDEFINED
from portfolio_service.utils.dates import InvalidDateRangeError

__all__ = [
    'PortfolioService',
    'PortfolioEngine',
    'DataIngestion',
    'MalformedSnapshotError',
    'RuleRegistry',
    'UnknownRuleError',
    'FilterEngine',
    'ViewDateProcessor',
    'MetricsCalculator',
    'ComparisonEngine',
    'ResultCache',
    'OutputFormatter',
    'EngineConfig',
    'load_config',
    'UNDEFINED',
    'InvalidDateRangeError',
]
