"""
Metrics Calculator - Premium, claim cost and loss ratio over a record set.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

import polars as pl

from portfolio_service.core.filter_engine import FilterEngine
from portfolio_service.core.temporal import earned_premium_expr
from portfolio_service.models.portfolio import RecordSet
from portfolio_service.models.results import PeriodMetrics, Ratio
from portfolio_service.utils.constants import UNDEFINED, is_undefined, LOSS_RATIO_CATEGORIES
from portfolio_service.utils.dates import parse_date

logger = logging.getLogger(__name__)

GROUP_DIMENSIONS = ('uw_year', 'customer_type', 'product_name', 'cover_name')
COVER_DIMENSIONS = ('product_name', 'cover_name')


class MetricsCalculator:
    """Aggregates premium and claim figures. Claims are expected to be pre-filtered for validity."""

    @staticmethod
    def loss_ratio(total_claim_cost: float, earned_premium: float) -> Ratio:
        """Claim cost over earned premium; UNDEFINED when nothing is earned."""
        if earned_premium == 0:
            return UNDEFINED
        return total_claim_cost / earned_premium

    @staticmethod
    def categorize_loss_ratio(loss_ratio: Ratio) -> Optional[str]:
        """
        Band a loss ratio (fraction, 0.5 = 50 %).

        Returns:
            'Utmerket', 'Akseptabel' or 'Problematisk'; None for UNDEFINED
        """
        if is_undefined(loss_ratio):
            return None
        percent = loss_ratio * 100
        for category, upper_bound in LOSS_RATIO_CATEGORIES:
            if percent <= upper_bound:
                return category
        return LOSS_RATIO_CATEGORIES[-1][0]

    @staticmethod
    def compute(policies: pl.DataFrame,
                covers: pl.DataFrame,
                claims: pl.DataFrame,
                as_of: Any = None,
                label: str = "") -> PeriodMetrics:
        """
        Compute PeriodMetrics for a selection of policies.

        Covers and claims are restricted to the given policies. Earned premium is
        read from the covers' earned_premium column when present, else computed
        as of as_of; with neither, written premium counts as earned.

        Args:
            policies: Selected policies
            covers: Covers, any superset of the selection's covers
            claims: Valid claims, any superset of the selection's claims
            as_of: Optional date for earned premium
            label: Label carried into the result

        Returns:
            PeriodMetrics with sums, loss ratio, record counts and diagnostics
        """
        selected_covers = FilterEngine.restrict_to_policies(covers, policies)
        selected_claims = FilterEngine.restrict_to_policies(claims, policies)
        excluded_claims = claims.height - selected_claims.height
        as_of = parse_date(as_of)

        if "earned_premium" in selected_covers.columns:
            earned_expr = pl.col("earned_premium").fill_null(0.0)
        elif as_of is not None:
            earned_expr = earned_premium_expr(as_of)
        else:
            earned_expr = pl.col("premium")

        premium_sums = selected_covers.select(
            pl.col("premium").sum().alias("total_premium"),
            earned_expr.sum().alias("earned_premium"),
            pl.col("nature_damage_premium").sum().alias("nature_damage_premium"),
        ).row(0, named=True)
        claim_sums = selected_claims.select(
            pl.col("amount").sum().alias("total_claim_cost"),
            pl.col("paid").sum(),
            pl.col("reserve").sum(),
            pl.col("regress").sum(),
        ).row(0, named=True)

        total_premium = float(premium_sums["total_premium"] or 0.0)
        earned_premium = float(premium_sums["earned_premium"] or 0.0)
        total_claim_cost = float(claim_sums["total_claim_cost"] or 0.0)

        diagnostics = {}
        if excluded_claims:
            diagnostics['orphaned_claims'] = excluded_claims
            logger.warning(f"{excluded_claims} claims do not belong to the selected policies; excluded")

        return PeriodMetrics(
            total_premium=total_premium,
            earned_premium=earned_premium,
            total_claim_cost=total_claim_cost,
            loss_ratio=MetricsCalculator.loss_ratio(total_claim_cost, earned_premium),
            record_counts={
                'customers': policies['customer_ref'].n_unique() if policies.height else 0,
                'policies': policies.height,
                'covers': selected_covers.height,
                'claims': selected_claims.height,
            },
            nature_damage_premium=float(premium_sums["nature_damage_premium"] or 0.0),
            paid=float(claim_sums["paid"] or 0.0),
            reserve=float(claim_sums["reserve"] or 0.0),
            regress=float(claim_sums["regress"] or 0.0),
            label=label,
            diagnostics=diagnostics,
        )

    @staticmethod
    def compute_for(record_set: RecordSet) -> PeriodMetrics:
        """Compute metrics for a RecordSet, merging its diagnostics into the result."""
        metrics = MetricsCalculator.compute(
            record_set.policies, record_set.covers, record_set.claims,
            as_of=record_set.as_of, label=record_set.label,
        )
        diagnostics = dict(record_set.diagnostics)
        for key, value in metrics.diagnostics.items():
            diagnostics[key] = diagnostics.get(key, 0) + value
        return replace(metrics, diagnostics=diagnostics)

    @staticmethod
    def compute_by_group(record_set: RecordSet, dimension: str) -> List[Dict[str, Any]]:
        """
        Metrics per value of a grouping dimension.

        Args:
            record_set: Selection to split
            dimension: 'uw_year', 'customer_type', 'product_name' or 'cover_name'

        Returns:
            One dict per group value (sorted, nulls last) with the group value,
            its PeriodMetrics and loss ratio category. Claims carry no cover, so a
            cover group counts the claims on its policies' products and one claim
            can appear in several cover groups.
        """
        if dimension not in GROUP_DIMENSIONS:
            raise ValueError(f"Unknown grouping dimension {dimension!r}, expected one of {GROUP_DIMENSIONS}")

        # product_name and cover_name live on covers, the other dimensions on policies
        grouped_frame = record_set.covers if dimension in COVER_DIMENSIONS else record_set.policies
        values = grouped_frame[dimension].unique().sort(nulls_last=True).to_list()

        groups = []
        for value in values:
            match = pl.col(dimension).is_null() if value is None else pl.col(dimension) == value
            if dimension in COVER_DIMENSIONS:
                covers = record_set.covers.filter(match)
                policies = FilterEngine.restrict_to_policies(record_set.policies, covers)
                products = covers['product_name'].drop_nulls().unique().to_list()
                claims = FilterEngine.restrict_to_policies(
                    record_set.claims.filter(pl.col('product_name').is_in(products).fill_null(False)), policies
                )
            else:
                policies = record_set.policies.filter(match)
                covers = FilterEngine.restrict_to_policies(record_set.covers, policies)
                claims = FilterEngine.restrict_to_policies(record_set.claims, policies)

            metrics = MetricsCalculator.compute(policies, covers, claims,
                                                as_of=record_set.as_of, label=str(value))
            groups.append({
                'dimension': dimension,
                'value': value,
                'metrics': metrics,
                'category': MetricsCalculator.categorize_loss_ratio(metrics.loss_ratio),
            })
        return groups
