"""
Portfolio Engine - Main orchestrator for the portfolio analysis pipeline.

Implements the flow:
1. Flatten the snapshot (once, cached)
2. Select records: a calendar window over the live view, or a view date reconstruction
3. Classify policies and claims through the rule registry
4. Compute metrics
5. Compare two selections
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Union

import polars as pl

from portfolio_service.config import EngineConfig
from portfolio_service.core.comparison import ComparisonEngine
from portfolio_service.core.data_ingestion import DataIngestion
from portfolio_service.core.filter_engine import FilterEngine
from portfolio_service.core.metrics_calculator import MetricsCalculator
from portfolio_service.core.output_formatter import OutputFormatter
from portfolio_service.core.result_cache import ResultCache, snapshot_identity
from portfolio_service.core.rule_evaluator import Rule
from portfolio_service.core.rule_registry import RuleRegistry
from portfolio_service.core.temporal import window_earned_premium_expr
from portfolio_service.core.viewdate_processor import ViewDateProcessor
from portfolio_service.models.portfolio import FlattenedPortfolio, Period, RecordSet, ViewDateSnapshot
from portfolio_service.models.results import ComparisonResult, PeriodMetrics, RuleTestResult
from portfolio_service.utils.dates import require_date
from portfolio_service.utils.default_rules import EXCLUDED_CLAIM_PRODUCTS

logger = logging.getLogger(__name__)

# Policy rule name that picks the rule from the window length
AUTO_RULE = "auto"

HISTORICAL_COLUMNS = ("historical_status", "historical_status_id")
POPULATIONS = ("policies", "claims")


class PortfolioEngine:
    """Main orchestrator for one portfolio snapshot."""

    def __init__(self,
                 snapshot: Dict[str, Any],
                 registry: Optional[RuleRegistry] = None,
                 cache: Optional[ResultCache] = None,
                 config: Optional[EngineConfig] = None):
        """
        Initialize the PortfolioEngine.

        Args:
            snapshot: Raw snapshot with 'customers' and 'claimData'
            registry: Classification rules, defaults to the built-in vocabulary
            cache: Optional result cache shared across engines of one session
            config: Engine configuration (default rules), defaults to EngineConfig()

        Raises:
            MalformedSnapshotError: If the snapshot lacks 'customers' or 'claimData'
        """
        self.config = config or EngineConfig()
        self.registry = registry or RuleRegistry.from_definitions()
        self.cache = cache
        self.snapshot_id = snapshot_identity(snapshot) if cache is not None else None
        self.flat: FlattenedPortfolio = self._cached("flatten", None, lambda: DataIngestion.flatten(snapshot))

    def _cached(self, operation: str, params: Any, compute: Callable[[], Any]) -> Any:
        if self.cache is None:
            return compute()
        return self.cache.get_or_compute(
            self.snapshot_id, operation, {"params": params, "rules": self.registry.fingerprint}, compute
        )

    # =========================================================================
    # Overview and classification
    # =========================================================================

    def get_basic_overview(self) -> Dict[str, Any]:
        """Counts of customers, policies and claims plus the snapshot period."""
        overview = DataIngestion.overview(self.flat)
        overview["diagnostics"] = dict(self.flat.diagnostics)
        return overview

    def classify(self, records: Union[pl.DataFrame, RecordSet], rule_name: Union[str, Rule]) -> pl.DataFrame:
        """
        Records matching a rule.

        Args:
            records: Policy or claim frame, or a RecordSet (its policies or claims
                are used, depending on what the rule applies to)
            rule_name: Rule id or rule object

        Returns:
            Matching records in input order. Reconstructed policies are
            classified by their historical status.
        """
        rule = self.registry.resolve(rule_name)
        frame = records
        if isinstance(records, RecordSet):
            frame = records.policies if rule.applies_to == 'policy' else records.claims

        if rule.applies_to == 'policy':
            name_column, id_column = self._status_columns(frame)
            return FilterEngine.filter_policies(frame, rule, self.registry, name_column, id_column)
        return FilterEngine.filter_claims(frame, rule, self.registry)

    @staticmethod
    def _status_columns(policies: pl.DataFrame):
        if all(c in policies.columns for c in HISTORICAL_COLUMNS):
            return HISTORICAL_COLUMNS
        return "status_name", "status_id"

    def test_rule(self, rule: Union[str, Rule],
                  population: Union[str, pl.DataFrame] = "policies") -> RuleTestResult:
        """
        Evaluate a rule against the full unfiltered population.

        Args:
            rule: Rule id or rule object (may be unregistered)
            population: 'policies', 'claims' or an explicit frame
        """
        if isinstance(population, str):
            if population not in POPULATIONS:
                raise ValueError(f"population must be one of {POPULATIONS}, got {population!r}")
            population = self.flat.policies if population == "policies" else self.flat.claims
        name_column, id_column = self._status_columns(population)
        return self.registry.test_rule(rule, population, name_column, id_column)

    def classification_gaps(self) -> Dict[str, pl.DataFrame]:
        """Unknown status distributions for policies and claims."""
        return {
            "policy": FilterEngine.classification_gaps(self.flat.policies, self.registry, "policy"),
            "claim": FilterEngine.classification_gaps(self.flat.claims, self.registry, "claim"),
        }

    def suggest_rules(self, population: str = "policies", min_count: int = 10):
        """Status rules proposed for frequent unclassified statuses."""
        if population not in POPULATIONS:
            raise ValueError(f"population must be one of {POPULATIONS}, got {population!r}")
        frame = self.flat.policies if population == "policies" else self.flat.claims
        applies_to = "policy" if population == "policies" else "claim"
        return self.registry.suggest_rules(frame, applies_to, min_count)

    # =========================================================================
    # Record selection
    # =========================================================================

    def live_view(self) -> RecordSet:
        """Latest version of every policy with all covers and claims."""
        return self._cached("live_view", None, lambda: ViewDateProcessor.live_view(self.flat))

    def reconstruct_at(self, view_date: Any) -> ViewDateSnapshot:
        """
        Portfolio state knowable on view_date, with valid claims only.

        Args:
            view_date: Date or ISO string

        Returns:
            ViewDateSnapshot (cached per view date and rule set)
        """
        d = require_date(view_date, "view_date")
        claim_rule = self.config.claim_rule
        return self._cached(
            "reconstruct_at",
            {"view_date": d.isoformat(), "claim_rule": claim_rule},
            lambda: ViewDateProcessor.reconstruct(self.flat, d, claim_rule, self.registry),
        )

    def select_period(self, period: Any,
                      policy_rule: Optional[Union[str, Rule]] = None,
                      claim_rule: Optional[Union[str, Rule]] = None) -> RecordSet:
        """
        Records of a calendar window over the live view.

        Policies must match the policy rule and overlap the window, covers must
        overlap the window, claims must be valid, outside the excluded products
        and have their event date inside the window. Earned premium is the share
        of each cover's premium earned inside the window.

        Args:
            period: Period, (start, end) or {'startDate', 'endDate'}
            policy_rule: Policy rule, 'auto' to pick by window length, defaults to config
            claim_rule: Claim rule, defaults to config

        Returns:
            RecordSet labelled with the period
        """
        period = Period.of(period)
        policy_rule = policy_rule or self.config.policy_rule
        claim_rule = claim_rule or self.config.claim_rule
        if policy_rule == AUTO_RULE:
            policy_rule = self.registry.rule_for_period(period.end, period.start)

        params = {
            "start": period.start.isoformat(),
            "end": period.end.isoformat(),
            "policy_rule": _rule_key(policy_rule),
            "claim_rule": _rule_key(claim_rule),
        }
        return self._cached("select_period", params,
                            lambda: self._select_period(period, policy_rule, claim_rule))

    def _select_period(self, period: Period, policy_rule, claim_rule) -> RecordSet:
        live = self.live_view()
        diagnostics = dict(live.diagnostics)
        diagnostics["unknown_policy_status"] = FilterEngine.count_unclassified(live.policies, self.registry, "policy")
        diagnostics["unknown_claim_status"] = FilterEngine.count_unclassified(live.claims, self.registry, "claim")

        policies = FilterEngine.filter_policies(live.policies, policy_rule, self.registry)
        policies = FilterEngine.filter_by_overlap(policies, period.start, period.end, "inception_date", "end_date")

        covers = FilterEngine.filter_covers_by_period(
            FilterEngine.restrict_to_policies(live.covers, policies), period.start, period.end
        ).with_columns(window_earned_premium_expr(period.start, period.end).alias("earned_premium"))

        claims = FilterEngine.filter_claims(live.claims, claim_rule, self.registry)
        claims = FilterEngine.exclude_products(claims, EXCLUDED_CLAIM_PRODUCTS)
        claims = FilterEngine.filter_by_date_range(claims, period.start, period.end, "event_date")
        bound = FilterEngine.restrict_to_policies(claims, policies)
        diagnostics["unbound_claims"] = claims.height - bound.height

        logger.info(f"Selected {period.label}: policies={policies.height}, covers={covers.height}, "
                    f"claims={bound.height}")
        return RecordSet(policies=policies, covers=covers, claims=bound, label=period.label,
                         as_of=period.end, period=period, diagnostics=diagnostics)

    # =========================================================================
    # Metrics and comparison
    # =========================================================================

    def metrics_for(self, record_set: RecordSet) -> PeriodMetrics:
        return MetricsCalculator.compute_for(record_set)

    def metrics_by_group(self, record_set: RecordSet, dimension: str) -> List[Dict[str, Any]]:
        return MetricsCalculator.compute_by_group(record_set, dimension)

    def compare_periods(self, period_a: Any, period_b: Any,
                        policy_rule: Optional[Union[str, Rule]] = None) -> ComparisonResult:
        """Compare two calendar windows over the live snapshot (a is the baseline)."""
        a = self.metrics_for(self.select_period(period_a, policy_rule))
        b = self.metrics_for(self.select_period(period_b, policy_rule))
        return ComparisonEngine.compare(a, b)

    def compare_view_dates(self, date_a: Any, date_b: Any) -> ComparisonResult:
        """Compare the portfolio as knowable on two view dates (date_a is the baseline)."""
        a = self.metrics_for(self.reconstruct_at(date_a))
        b = self.metrics_for(self.reconstruct_at(date_b))
        return ComparisonEngine.compare(a, b)

    def compare_quarters(self, year_a: int, year_b: int, quarter: int = 1,
                         policy_rule: Optional[Union[str, Rule]] = None) -> ComparisonResult:
        """Compare the same quarter of two years."""
        return self.compare_periods(Period.quarter(year_a, quarter), Period.quarter(year_b, quarter), policy_rule)

    # =========================================================================
    # Export
    # =========================================================================

    def cover_rows(self) -> pl.DataFrame:
        """Per-cover rows in the reference export layout."""
        return self._cached("cover_rows", None, lambda: OutputFormatter.cover_rows(self.flat))


def _rule_key(rule: Union[str, Rule]) -> Any:
    if isinstance(rule, str):
        return rule
    return {"id": rule.id, "definition": rule.to_definition()}
