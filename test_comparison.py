"""
Tests for comparing two metric sets.
"""

import pytest

from portfolio_service.core.comparison import ComparisonEngine, COUNT_FIELDS
from portfolio_service.models.results import PeriodMetrics, METRIC_FIELDS
from portfolio_service.utils.constants import UNDEFINED


def _metrics(premium, earned, claims, loss_ratio, policies=1, label=""):
    return PeriodMetrics(
        total_premium=premium,
        earned_premium=earned,
        total_claim_cost=claims,
        loss_ratio=loss_ratio,
        record_counts={"customers": 1, "policies": policies, "covers": policies, "claims": 1},
        label=label,
    )


def test_percent_change():
    assert ComparisonEngine.percent_change(110.0, 100.0) == pytest.approx(10.0)
    assert ComparisonEngine.percent_change(50.0, 100.0) == pytest.approx(-50.0)
    assert ComparisonEngine.percent_change(0.0, 100.0) == pytest.approx(-100.0)


def test_percent_change_from_zero_is_undefined():
    assert ComparisonEngine.percent_change(5.0, 0.0) is UNDEFINED
    assert ComparisonEngine.percent_change(0.0, 0.0) is UNDEFINED


def test_undefined_propagates():
    assert ComparisonEngine.percent_change(UNDEFINED, 0.5) is UNDEFINED
    assert ComparisonEngine.percent_change(0.5, UNDEFINED) is UNDEFINED
    assert ComparisonEngine.delta(UNDEFINED, 0.5) is UNDEFINED
    assert ComparisonEngine.delta(0.5, UNDEFINED) is UNDEFINED


def test_compare_is_b_minus_a():
    a = _metrics(1000.0, 800.0, 400.0, 0.5, policies=2, label="2024")
    b = _metrics(1500.0, 1000.0, 300.0, 0.3, policies=3, label="2025")
    result = ComparisonEngine.compare(a, b)

    assert result.a is a
    assert result.b is b
    assert result.delta["total_premium"] == 500.0
    assert result.delta["total_claim_cost"] == -100.0
    assert result.delta["loss_ratio"] == pytest.approx(-0.2)
    assert result.delta["policies"] == 1
    assert result.percent_change["total_premium"] == pytest.approx(50.0)
    assert result.percent_change["policies"] == pytest.approx(50.0)


def test_compare_covers_every_field():
    a = _metrics(1.0, 1.0, 1.0, 1.0)
    result = ComparisonEngine.compare(a, a)
    assert set(result.delta) == set(METRIC_FIELDS) | set(COUNT_FIELDS)
    assert set(result.percent_change) == set(result.delta)
    assert result.percent_change["total_premium"] == 0.0


def test_compare_with_undefined_loss_ratio():
    a = _metrics(0.0, 0.0, 0.0, UNDEFINED)
    b = _metrics(1000.0, 500.0, 100.0, 0.2)
    result = ComparisonEngine.compare(a, b)
    assert result.delta["loss_ratio"] is UNDEFINED
    assert result.percent_change["loss_ratio"] is UNDEFINED
    assert result.percent_change["total_premium"] is UNDEFINED
    assert result.delta["total_premium"] == 1000.0


def _assert_antisymmetric(forward, reverse):
    for name, value in forward.delta.items():
        if value is UNDEFINED:
            assert reverse.delta[name] is UNDEFINED, name
        else:
            assert reverse.delta[name] == -value, name


def test_swapping_sides_negates_delta():
    a = _metrics(1000.0, 800.0, 400.0, 0.5, policies=2, label="2024")
    b = _metrics(1500.0, 1000.0, 300.0, 0.3, policies=3, label="2025")
    forward, reverse = ComparisonEngine.compare(a, b), ComparisonEngine.compare(b, a)

    assert reverse.a is b and reverse.b is a
    _assert_antisymmetric(forward, reverse)
    assert forward.percent_change["total_premium"] == pytest.approx(50.0)
    assert reverse.percent_change["total_premium"] == pytest.approx(-100.0 / 3)


def test_swapping_sides_with_undefined_loss_ratio():
    a = _metrics(0.0, 0.0, 0.0, UNDEFINED)
    b = _metrics(1000.0, 500.0, 100.0, 0.2)
    forward, reverse = ComparisonEngine.compare(a, b), ComparisonEngine.compare(b, a)

    _assert_antisymmetric(forward, reverse)
    for result in (forward, reverse):
        assert result.delta["loss_ratio"] is UNDEFINED
        assert result.percent_change["loss_ratio"] is UNDEFINED
    assert forward.percent_change["total_premium"] is UNDEFINED
    assert reverse.percent_change["total_premium"] == pytest.approx(-100.0)
