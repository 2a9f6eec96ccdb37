"""
Portfolio Service - Main API entry point.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from portfolio_service.config import EngineConfig, load_config
from portfolio_service.core.engine import PortfolioEngine
from portfolio_service.core.output_formatter import OutputFormatter
from portfolio_service.core.result_cache import ResultCache
from portfolio_service.core.rule_evaluator import Rule
from portfolio_service.core.rule_registry import RuleRegistry

logger = logging.getLogger(__name__)


class PortfolioService:
    """
    Analysis session: owns the rule registry and the result cache and hands
    out one engine per snapshot.

    Usage:
        service = PortfolioService()
        engine = service.engine(snapshot)
        comparison = engine.compare_view_dates("2024-06-30", "2025-06-30")
        payload = OutputFormatter.format_comparison(comparison)
    """

    def __init__(self,
                 config: Optional[EngineConfig] = None,
                 registry: Optional[RuleRegistry] = None,
                 config_path: Optional[Path] = None):
        """
        Initialize the PortfolioService.

        Args:
            config: Optional EngineConfig. If not provided, loads from env.
            registry: Classification rules, defaults to the built-in vocabulary
            config_path: Path to .env file (used if config not provided)
        """
        self.config = config or load_config(config_path)
        logging.getLogger("portfolio_service").setLevel(self.config.log_level)

        self.registry = registry or RuleRegistry.from_definitions()
        self.cache = ResultCache(self.config.cache_max_entries) if self.config.cache_enabled else None

    def engine(self, snapshot: Dict[str, Any]) -> PortfolioEngine:
        """Engine for a snapshot; loading a different snapshot drops the cached results of the previous one."""
        return PortfolioEngine(snapshot, registry=self.registry, cache=self.cache, config=self.config)

    def overview(self, snapshot: Dict[str, Any]) -> Dict[str, Any]:
        """Camel-cased record counts, period and diagnostics of a snapshot."""
        return OutputFormatter.format_overview(self.engine(snapshot).get_basic_overview())

    def use_rules(self, *rules: Rule) -> RuleRegistry:
        """
        Register additional or replacement rules for engines created from now on.

        Cached results stay valid: cache keys include the rule set fingerprint.
        """
        self.registry = self.registry.with_rules(*rules)
        logger.info(f"Rule set now has {len(self.registry)} rules ({self.registry.fingerprint[:12]})")
        return self.registry

    def clear_cache(self):
        if self.cache is not None:
            self.cache.clear()
