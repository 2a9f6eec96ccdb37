"""
Tests for premium, claim cost and loss ratio aggregation.
"""

from datetime import date

import pytest

from portfolio_service.core.data_ingestion import DataIngestion
from portfolio_service.core.metrics_calculator import MetricsCalculator
from portfolio_service.core.viewdate_processor import ViewDateProcessor
from portfolio_service.utils.constants import UNDEFINED


@pytest.fixture
def snapshot(flat):
    return ViewDateProcessor.reconstruct(flat, "2024-08-01", "VALID_CLAIM")


# =============================================================================
# LOSS RATIO
# =============================================================================

def test_loss_ratio():
    assert MetricsCalculator.loss_ratio(500.0, 1000.0) == 0.5
    assert MetricsCalculator.loss_ratio(0.0, 1000.0) == 0.0


def test_loss_ratio_undefined_without_earned_premium():
    assert MetricsCalculator.loss_ratio(500.0, 0.0) is UNDEFINED
    assert MetricsCalculator.loss_ratio(0.0, 0.0) is UNDEFINED


def test_undefined_is_not_a_number():
    with pytest.raises(TypeError):
        float(UNDEFINED)


@pytest.mark.parametrize("ratio,category", [
    (0.0, "Utmerket"),
    (0.5, "Utmerket"),
    (0.51, "Akseptabel"),
    (0.75, "Akseptabel"),
    (0.7501, "Problematisk"),
    (3.2, "Problematisk"),
])
def test_categorize_loss_ratio(ratio, category):
    assert MetricsCalculator.categorize_loss_ratio(ratio) == category


def test_categorize_undefined():
    assert MetricsCalculator.categorize_loss_ratio(UNDEFINED) is None


# =============================================================================
# COMPUTE
# =============================================================================

def test_compute_on_flat_portfolio(flat):
    metrics = MetricsCalculator.compute(flat.policies, flat.covers, flat.claims)
    assert metrics.total_premium == 128800.0
    assert metrics.earned_premium == 128800.0
    assert metrics.total_claim_cost == 9399.0
    assert metrics.diagnostics["orphaned_claims"] == 1
    assert metrics.record_counts == {"customers": 2, "policies": 6, "covers": 7, "claims": 5}


def test_compute_with_as_of_prorates(flat):
    metrics = MetricsCalculator.compute(flat.policies, flat.covers, flat.claims, as_of=date(2024, 1, 1))
    assert metrics.total_premium == 128800.0
    assert metrics.earned_premium == 0.0
    assert metrics.loss_ratio is UNDEFINED


def test_compute_on_empty_selection(flat):
    metrics = MetricsCalculator.compute(flat.policies.head(0), flat.covers, flat.claims.head(0))
    assert metrics.total_premium == 0.0
    assert metrics.total_claim_cost == 0.0
    assert metrics.loss_ratio is UNDEFINED
    assert metrics.record_counts == {"customers": 0, "policies": 0, "covers": 0, "claims": 0}


def test_compute_for_snapshot(snapshot):
    metrics = MetricsCalculator.compute_for(snapshot)
    assert metrics.label == "ViewDate 2024-08-01"
    assert metrics.total_premium == 126500.0
    assert metrics.total_claim_cost == 6400.0
    assert 0 < metrics.earned_premium < metrics.total_premium
    assert metrics.loss_ratio == pytest.approx(6400.0 / metrics.earned_premium)
    assert metrics.nature_damage_premium == 100.0
    assert metrics.diagnostics["orphaned_claims"] == 1
    assert metrics.diagnostics["unreported_claims"] == 1
    assert metrics.record_counts == {"customers": 2, "policies": 4, "covers": 5, "claims": 3}


def test_claim_components(snapshot):
    metrics = MetricsCalculator.compute_for(snapshot)
    assert metrics.paid == 300.0 + 5000.0 + 400.0
    assert metrics.reserve == 200.0 + 1000.0
    assert metrics.regress == -500.0
    assert metrics.paid + metrics.reserve + metrics.regress == metrics.total_claim_cost


def test_value_lookup(snapshot):
    metrics = MetricsCalculator.compute_for(snapshot)
    assert metrics.value("total_premium") == 126500.0
    assert metrics.value("policies") == 4


# =============================================================================
# GROUPING
# =============================================================================

def test_group_by_customer_type(snapshot):
    groups = MetricsCalculator.compute_by_group(snapshot, "customer_type")
    assert [g["value"] for g in groups] == ["business", "private"]

    business, private = groups
    assert business["metrics"].total_premium == 124500.0
    assert business["metrics"].total_claim_cost == 5900.0
    assert private["metrics"].total_premium == 2000.0
    assert private["metrics"].total_claim_cost == 500.0
    assert private["category"] is not None


def test_group_totals_add_up(snapshot):
    total = MetricsCalculator.compute_for(snapshot)
    groups = MetricsCalculator.compute_by_group(snapshot, "uw_year")
    assert sum(g["metrics"].total_premium for g in groups) == total.total_premium
    assert sum(g["metrics"].total_claim_cost for g in groups) == total.total_claim_cost
    assert all("orphaned_claims" not in g["metrics"].diagnostics for g in groups)


def test_group_by_product(snapshot):
    groups = {g["value"]: g for g in MetricsCalculator.compute_by_group(snapshot, "product_name")}
    assert sorted(groups) == ["Ansvar", "Bil", "Garanti", "Hytte", "Villa"]
    assert groups["Garanti"]["metrics"].total_premium == 500.0
    assert groups["Garanti"]["metrics"].total_claim_cost == 400.0
    assert groups["Villa"]["metrics"].total_claim_cost == 500.0
    assert groups["Bil"]["metrics"].total_claim_cost == 0.0


def test_group_by_cover(snapshot):
    groups = {g["value"]: g for g in MetricsCalculator.compute_by_group(snapshot, "cover_name")}
    assert sorted(groups) == ["Ansvar", "Brann", "Garanti", "Kasko"]
    assert groups["Brann"]["metrics"].total_premium == 2000.0
    assert groups["Brann"]["metrics"].total_claim_cost == 500.0
    assert groups["Kasko"]["metrics"].total_premium == 4000.0
    assert groups["Kasko"]["metrics"].total_claim_cost == 0.0
    assert groups["Garanti"]["metrics"].total_premium == 500.0
    assert groups["Garanti"]["metrics"].total_claim_cost == 400.0


def test_group_with_undefined_loss_ratio_has_no_category(flat):
    snapshot = ViewDateProcessor.reconstruct(flat, "2023-12-20", "VALID_CLAIM")
    groups = MetricsCalculator.compute_by_group(snapshot, "customer_type")
    assert groups[0]["metrics"].loss_ratio is UNDEFINED
    assert groups[0]["category"] is None


def test_unknown_dimension_raises(snapshot):
    with pytest.raises(ValueError, match="dimension"):
        MetricsCalculator.compute_by_group(snapshot, "insurer_name")


def test_group_by_on_empty_snapshot():
    flat = DataIngestion.flatten({"customers": [], "claimData": {}})
    snapshot = ViewDateProcessor.reconstruct(flat, "2024-01-01")
    assert MetricsCalculator.compute_by_group(snapshot, "uw_year") == []
