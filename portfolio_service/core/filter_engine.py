"""
Filter Engine - Applies rule and date predicates to flattened record frames.

Every function returns a new frame in the input row order.
"""

import logging
from typing import Any, Iterable, Union

import polars as pl

from portfolio_service.core.rule_evaluator import Rule
from portfolio_service.core.rule_registry import RuleRegistry
from portfolio_service.utils.dates import validate_range

logger = logging.getLogger(__name__)


class FilterEngine:
    """Pure filters over policy, cover and claim frames."""

    @staticmethod
    def filter_policies(policies: pl.DataFrame,
                        rule: Union[str, Rule],
                        registry: RuleRegistry,
                        name_column: str = "status_name",
                        id_column: str = "status_id") -> pl.DataFrame:
        """
        Keep policies matching a policy rule.

        Args:
            policies: Policy frame (live or reconstructed)
            rule: Rule id or rule object with applies_to='policy'
            registry: Registry the rule is resolved in
            name_column: Status name column, 'historical_status' for reconstructed policies
            id_column: Status id column, 'historical_status_id' for reconstructed policies

        Returns:
            Matching policies; records with unknown statuses never match
        """
        return FilterEngine._filter_by_rule(policies, rule, registry, 'policy', name_column, id_column)

    @staticmethod
    def filter_claims(claims: pl.DataFrame,
                      rule: Union[str, Rule],
                      registry: RuleRegistry,
                      name_column: str = "status_name",
                      id_column: str = "status_id") -> pl.DataFrame:
        """Keep claims matching a claim rule; unknown statuses never match."""
        return FilterEngine._filter_by_rule(claims, rule, registry, 'claim', name_column, id_column)

    @staticmethod
    def _filter_by_rule(frame: pl.DataFrame, rule: Union[str, Rule], registry: RuleRegistry,
                        applies_to: str, name_column: str, id_column: str) -> pl.DataFrame:
        resolved = registry.resolve(rule)
        if resolved.applies_to != applies_to:
            raise ValueError(f"Rule {resolved.id!r} applies to {resolved.applies_to}, not {applies_to}")
        return frame.filter(registry.expression(resolved, name_column, id_column))

    @staticmethod
    def filter_by_date_range(records: pl.DataFrame, start: Any, end: Any, date_field: str) -> pl.DataFrame:
        """
        Keep records whose date_field falls within [start, end], bounds inclusive.

        Raises:
            InvalidDateRangeError: If start is after end
        """
        start, end = validate_range(start, end)
        return records.filter(pl.col(date_field).is_between(start, end, closed="both").fill_null(False))

    @staticmethod
    def filter_by_overlap(records: pl.DataFrame, start: Any, end: Any,
                          start_field: str = "start_date",
                          end_field: str = "end_date") -> pl.DataFrame:
        """Keep records whose [start_field, end_field] interval overlaps [start, end]."""
        start, end = validate_range(start, end)
        overlaps = (pl.col(start_field) <= end) & (pl.col(end_field) >= start)
        return records.filter(overlaps.fill_null(False))

    @staticmethod
    def filter_covers_by_period(covers: pl.DataFrame, start: Any, end: Any) -> pl.DataFrame:
        """Keep covers whose effective interval overlaps the window; partial coverage counts."""
        return FilterEngine.filter_by_overlap(covers, start, end, "start_date", "end_date")

    @staticmethod
    def restrict_to_policies(frame: pl.DataFrame, policies: pl.DataFrame) -> pl.DataFrame:
        """Keep covers or claims whose policy_ref is among the given policies."""
        return frame.filter(pl.col("policy_ref").is_in(policies["policy_ref"].to_list()).fill_null(False))

    @staticmethod
    def exclude_products(frame: pl.DataFrame, product_names: Iterable[str]) -> pl.DataFrame:
        """Drop records whose product_name is in product_names; records without a product are kept."""
        names = list(product_names)
        if not names:
            return frame
        return frame.filter(~pl.col("product_name").is_in(names).fill_null(False))

    @staticmethod
    def classification_gaps(frame: pl.DataFrame,
                            registry: RuleRegistry,
                            applies_to: str,
                            name_column: str = "status_name",
                            id_column: str = "status_id") -> pl.DataFrame:
        """
        Status name/id combinations that no status rule knows, with their record counts.

        Args:
            frame: Policy or claim frame
            registry: Registry to check against
            applies_to: 'policy' or 'claim'

        Returns:
            Frame with status_name, status_id, count; most frequent first
        """
        gaps = (frame
                .filter(~registry.known_status_expr(applies_to, name_column, id_column))
                .group_by([name_column, id_column], maintain_order=True)
                .agg(pl.len().cast(pl.Int64).alias("count"))
                .sort("count", descending=True, maintain_order=True)
                .rename({name_column: "status_name", id_column: "status_id"}))
        if gaps.height:
            logger.warning(f"{int(gaps['count'].sum())} {applies_to} records have statuses outside every rule: "
                           f"{gaps['status_name'].to_list()}")
        return gaps

    @staticmethod
    def count_unclassified(frame: pl.DataFrame, registry: RuleRegistry, applies_to: str,
                           name_column: str = "status_name", id_column: str = "status_id") -> int:
        return int(frame.select((~registry.known_status_expr(applies_to, name_column, id_column)).sum()).item())
