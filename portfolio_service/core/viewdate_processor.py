"""
ViewDate Processor - Rebuilds the portfolio as it was knowable on a historical date.

The reconstruction runs six steps, each callable on its own:
    1. select_versions     latest version produced on or before the view date
    2. reconstruct_status  historical status from the version's interval
    3. inherit_covers      covers of the selected versions, dropping inactive ones
    4. bind_claims         claims reported by the view date, bound to the selected version
    5. prorate_premium     earned premium per cover and per policy
    6. assemble            immutable ViewDateSnapshot
"""

import logging
from collections import Counter
from datetime import date
from typing import Any, Dict, Optional, Tuple, Union

import polars as pl

from portfolio_service.core.filter_engine import FilterEngine
from portfolio_service.core.rule_evaluator import Rule
from portfolio_service.core.rule_registry import RuleRegistry
from portfolio_service.core.temporal import (
    historical_status_expr, historical_status_id_expr, earned_premium_expr
)
from portfolio_service.models.portfolio import FlattenedPortfolio, RecordSet, ViewDateSnapshot
from portfolio_service.utils.constants import STATUS_ACTIVE, STATUS_CANCELLED
from portfolio_service.utils.dates import require_date

logger = logging.getLogger(__name__)

VERSION_KEY = "_version_key"


def _version_key_expr() -> pl.Expr:
    """Policy number, or a per-row key for versions without one so they never merge."""
    return pl.coalesce(
        pl.col("policy_number"),
        pl.lit("#ref-") + pl.col("policy_ref").cast(pl.Utf8),
    ).alias(VERSION_KEY)


def _latest_per_policy(versions: pl.DataFrame) -> pl.DataFrame:
    """Highest version_number per policy; ties go to the latest produced_date, then input order."""
    return (versions
            .with_columns(_version_key_expr())
            .sort(["version_number", "produced_date", "policy_ref"],
                  descending=[True, True, False], nulls_last=True)
            .unique(subset=VERSION_KEY, keep="first")
            .sort("policy_ref"))


class ViewDateProcessor:
    """Reconstructs policy, cover and claim state as of a view date."""

    @staticmethod
    def reconstruct(flat: FlattenedPortfolio,
                    view_date: Any,
                    claim_rule: Optional[Union[str, Rule]] = None,
                    registry: Optional[RuleRegistry] = None) -> ViewDateSnapshot:
        """
        Run all six reconstruction steps.

        Args:
            flat: Flattened snapshot
            view_date: Date to reconstruct (date or ISO string)
            claim_rule: Optional claim rule applied after binding
            registry: Registry used to resolve claim_rule

        Returns:
            ViewDateSnapshot with historical_status on policies and covers and
            earned_premium as of the view date
        """
        d = require_date(view_date, "view_date")
        diagnostics: Counter = Counter()

        versions, version_diag = ViewDateProcessor.select_versions(flat.policies, d)
        diagnostics.update(version_diag)

        policies = ViewDateProcessor.reconstruct_status(versions, d)
        policies, cancelled = ViewDateProcessor.drop_cancelled(policies)
        diagnostics['cancelled_policies'] += cancelled

        covers = ViewDateProcessor.inherit_covers(flat.covers, policies, d)

        claims, claim_diag = ViewDateProcessor.bind_claims(flat.claims, policies, d)
        diagnostics.update(claim_diag)
        if claim_rule is not None:
            registry = registry or RuleRegistry.from_definitions()
            diagnostics['unknown_claim_status'] += FilterEngine.count_unclassified(claims, registry, 'claim')
            claims = FilterEngine.filter_claims(claims, claim_rule, registry)

        covers, policies = ViewDateProcessor.prorate_premium(covers, policies, d)

        snapshot = ViewDateProcessor.assemble(policies, covers, claims, d, dict(diagnostics))
        logger.info(f"Reconstructed view date {d}: policies={policies.height}, covers={covers.height}, "
                    f"claims={claims.height}, diagnostics={snapshot.diagnostics}")
        return snapshot

    @staticmethod
    def select_versions(policies: pl.DataFrame, view_date: Any) -> Tuple[pl.DataFrame, Dict[str, int]]:
        """
        Step 1: per policy number, the highest version produced on or before view_date.

        Versions without a produced date, or without an inception or end date,
        cannot be placed in time and are counted as undated_versions. The result
        carries has_later_version: another known version has a later inception.

        Returns:
            (selected versions in input order, diagnostics)
        """
        d = require_date(view_date, "view_date")
        undated = (pl.col("produced_date").is_null()
                   | ((pl.col("produced_date") <= d)
                      & (pl.col("inception_date").is_null() | pl.col("end_date").is_null())))
        undated_count = int(policies.select(undated.sum()).item())

        known = policies.filter(
            (pl.col("produced_date") <= d)
            & pl.col("inception_date").is_not_null()
            & pl.col("end_date").is_not_null()
        )

        latest_inception = (known
                            .with_columns(_version_key_expr())
                            .group_by(VERSION_KEY)
                            .agg(pl.col("inception_date").max().alias("_latest_inception")))

        selected = (_latest_per_policy(known)
                    .join(latest_inception, on=VERSION_KEY, how="left")
                    .with_columns(
                        (pl.col("_latest_inception") > pl.col("inception_date")).fill_null(False)
                        .alias("has_later_version"))
                    .drop([VERSION_KEY, "_latest_inception"])
                    .sort("policy_ref"))

        if undated_count:
            logger.warning(f"{undated_count} policy versions lack produced, inception or end dates; excluded")
        return selected, {'undated_versions': undated_count}

    @staticmethod
    def reconstruct_status(versions: pl.DataFrame, view_date: Any) -> pl.DataFrame:
        """
        Step 2: historical_status and historical_status_id from the version interval.

        The live status is kept untouched in status_name. A cancellation dated on
        or before view_date gives Kansellert; a later cancellation is not yet known.
        """
        d = require_date(view_date, "view_date")
        if "has_later_version" not in versions.columns:
            versions = versions.with_columns(pl.lit(False).alias("has_later_version"))

        cancelled = (pl.col("cancellation_date") <= d).fill_null(False)
        return (versions
                .with_columns(
                    pl.when(cancelled).then(pl.lit(STATUS_CANCELLED))
                    .otherwise(historical_status_expr(d))
                    .alias("historical_status"))
                .with_columns(historical_status_id_expr()))

    @staticmethod
    def drop_cancelled(policies: pl.DataFrame) -> Tuple[pl.DataFrame, int]:
        """Remove versions cancelled as of the view date."""
        is_cancelled = pl.col("historical_status") == STATUS_CANCELLED
        count = int(policies.select(is_cancelled.sum()).item())
        return policies.filter(~is_cancelled), count

    @staticmethod
    def inherit_covers(covers: pl.DataFrame, policies: pl.DataFrame, view_date: Any) -> pl.DataFrame:
        """
        Step 3: covers of the reconstructed policies.

        Covers without their own interval take the version's interval. Under an
        Aktiv policy, a cover whose own interval does not contain view_date is
        dropped; covers of expired, renewed and future policies are kept whole.
        """
        d = require_date(view_date, "view_date")
        status = policies.select(
            "policy_ref",
            "historical_status",
            "historical_status_id",
            pl.col("inception_date").alias("_policy_start"),
            pl.col("end_date").alias("_policy_end"),
        )
        joined = (FilterEngine.restrict_to_policies(covers, policies)
                  .join(status, on="policy_ref", how="left")
                  .with_columns(
                      pl.when(pl.col("has_own_interval")).then(pl.col("start_date"))
                      .otherwise(pl.col("_policy_start")).alias("start_date"),
                      pl.when(pl.col("has_own_interval")).then(pl.col("end_date"))
                      .otherwise(pl.col("_policy_end")).alias("end_date"),
                  )
                  .drop(["_policy_start", "_policy_end"]))

        in_force = (pl.col("start_date") <= d) & (pl.col("end_date") >= d)
        keep = (pl.col("historical_status") != STATUS_ACTIVE) | in_force.fill_null(False)
        return joined.filter(keep).sort("cover_ref")

    @staticmethod
    def bind_claims(claims: pl.DataFrame, policies: pl.DataFrame,
                    view_date: Any) -> Tuple[pl.DataFrame, Dict[str, int]]:
        """
        Step 4: bind claims to the selected version by policy number.

        Claims are excluded and counted when orphaned (no such policy number in
        the snapshot), unreported (reported after view_date or undated) or
        unbound (their policy is not in the reconstructed set).

        Returns:
            (bound claims in input order with policy_ref of the selected version, diagnostics)
        """
        d = require_date(view_date, "view_date")
        orphaned = pl.col("is_orphaned").fill_null(True)
        reported = (pl.col("reported_date") <= d).fill_null(False)

        orphaned_count = int(claims.select(orphaned.sum()).item())
        candidates = claims.filter(~orphaned)
        unreported_count = int(candidates.select((~reported).sum()).item())
        candidates = candidates.filter(reported)

        selected = policies.select(
            "policy_number",
            pl.col("policy_ref").alias("_selected_ref"),
            "historical_status",
        )
        bound = (candidates
                 .join(selected, on="policy_number", how="left")
                 .with_columns(pl.col("_selected_ref").alias("policy_ref"))
                 .drop("_selected_ref")
                 .rename({"historical_status": "policy_historical_status"}))
        unbound = pl.col("policy_ref").is_null()
        unbound_count = int(bound.select(unbound.sum()).item())

        diagnostics = {
            'orphaned_claims': orphaned_count,
            'unreported_claims': unreported_count,
            'unbound_claims': unbound_count,
        }
        if unbound_count:
            logger.warning(f"{unbound_count} reported claims belong to policies outside the view date snapshot")
        return bound.filter(~unbound).sort("claim_ref"), diagnostics

    @staticmethod
    def prorate_premium(covers: pl.DataFrame, policies: pl.DataFrame,
                        view_date: Any) -> Tuple[pl.DataFrame, pl.DataFrame]:
        """
        Step 5: earned premium as of view_date.

        Per cover: Aktiv prorated over the cover's interval with actual day
        counts, Utgått and Fornyet the full premium, Fremtidig nothing. The
        policy value is the sum over its remaining covers.
        """
        d = require_date(view_date, "view_date")
        covers = covers.with_columns(
            earned_premium_expr(d, "premium", "historical_status").alias("earned_premium")
        )
        per_policy = covers.group_by("policy_ref").agg(
            pl.col("premium").sum().alias("_in_force_premium"),
            pl.col("earned_premium").sum(),
        )
        policies = (policies
                    .drop([c for c in ("earned_premium",) if c in policies.columns])
                    .join(per_policy, on="policy_ref", how="left")
                    .with_columns(
                        pl.col("earned_premium").fill_null(0.0),
                        pl.col("_in_force_premium").fill_null(0.0).alias("premium"),
                    )
                    .drop("_in_force_premium")
                    .sort("policy_ref"))
        return covers, policies

    @staticmethod
    def assemble(policies: pl.DataFrame, covers: pl.DataFrame, claims: pl.DataFrame,
                 view_date: Any, diagnostics: Optional[Dict[str, int]] = None) -> ViewDateSnapshot:
        """Step 6: combine the reconstructed frames into a ViewDateSnapshot."""
        return ViewDateSnapshot(
            policies=policies,
            covers=covers,
            claims=claims,
            view_date=require_date(view_date, "view_date"),
            diagnostics=dict(diagnostics or {}),
        )

    @staticmethod
    def live_view(flat: FlattenedPortfolio) -> RecordSet:
        """
        The unreconstructed portfolio: latest version per policy number with all
        of its covers, and every non-orphaned claim bound to that version.
        """
        policies = _latest_per_policy(flat.policies).drop(VERSION_KEY)
        covers = FilterEngine.restrict_to_policies(flat.covers, policies)

        orphaned = pl.col("is_orphaned").fill_null(True)
        claims = (flat.claims
                  .filter(~orphaned)
                  .drop("policy_ref")
                  .join(policies.select("policy_number", "policy_ref"), on="policy_number", how="left")
                  .sort("claim_ref"))

        diagnostics = {'orphaned_claims': int(flat.claims.select(orphaned.sum()).item())}
        return RecordSet(policies=policies, covers=covers, claims=claims.select(flat.claims.columns),
                         label="Live", diagnostics=diagnostics)


def latest_produced_date(flat: FlattenedPortfolio) -> Optional[date]:
    """Latest produced_date across all versions, None for an empty snapshot."""
    return flat.policies["produced_date"].max() if flat.policies.height else None
