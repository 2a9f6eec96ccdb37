"""
Tests for the result cache and its use by the engine.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from portfolio_service.core.engine import PortfolioEngine
from portfolio_service.core.result_cache import ResultCache, canonical_hash, snapshot_identity
from portfolio_service.models.rule import StatusRule


class _Counter:
    def __init__(self, value="result"):
        self.calls = 0
        self.value = value
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
        time.sleep(0.01)
        return self.value


# =============================================================================
# KEYS
# =============================================================================

def test_canonical_hash_ignores_key_order():
    assert canonical_hash({"a": 1, "b": [1, 2]}) == canonical_hash({"b": [1, 2], "a": 1})
    assert canonical_hash({"a": 1}) != canonical_hash({"a": 2})


def test_canonical_hash_handles_dates():
    assert canonical_hash({"d": date(2024, 1, 1)}) == canonical_hash({"d": "2024-01-01"})


def test_snapshot_identity_follows_content(portfolio_snapshot):
    assert snapshot_identity(portfolio_snapshot) == snapshot_identity(dict(portfolio_snapshot))
    changed = dict(portfolio_snapshot, customers=[])
    assert snapshot_identity(changed) != snapshot_identity(portfolio_snapshot)


# =============================================================================
# CACHE
# =============================================================================

def test_get_or_compute_computes_once():
    cache = ResultCache()
    compute = _Counter()
    assert cache.get_or_compute("snap", "op", {"x": 1}, compute) == "result"
    assert cache.get_or_compute("snap", "op", {"x": 1}, compute) == "result"
    assert compute.calls == 1
    assert cache.stats["hits"] == 1
    assert cache.stats["misses"] == 1


def test_different_params_are_different_entries():
    cache = ResultCache()
    compute = _Counter()
    cache.get_or_compute("snap", "op", {"x": 1}, compute)
    cache.get_or_compute("snap", "op", {"x": 2}, compute)
    cache.get_or_compute("snap", "other", {"x": 1}, compute)
    assert compute.calls == 3
    assert len(cache) == 3
    assert ResultCache.make_key("snap", "op", {"x": 1}) in cache


def test_new_snapshot_drops_previous_entries():
    cache = ResultCache()
    cache.get_or_compute("snap-1", "op", None, _Counter("one"))
    assert cache.get_or_compute("snap-2", "op", None, _Counter("two")) == "two"
    assert len(cache) == 1
    assert cache.stats["snapshot_id"] == "snap-2"
    assert ResultCache.make_key("snap-1", "op") not in cache


def test_lru_eviction():
    cache = ResultCache(max_entries=2)
    cache.get_or_compute("snap", "a", None, _Counter())
    cache.get_or_compute("snap", "b", None, _Counter())
    cache.get_or_compute("snap", "a", None, _Counter())
    cache.get_or_compute("snap", "c", None, _Counter())
    assert len(cache) == 2
    assert ResultCache.make_key("snap", "a") in cache
    assert ResultCache.make_key("snap", "b") not in cache
    assert cache.stats["evictions"] == 1


def test_unbounded_cache():
    cache = ResultCache(max_entries=0)
    for i in range(10):
        cache.get_or_compute("snap", "op", {"i": i}, _Counter())
    assert len(cache) == 10


def test_negative_max_entries_raises():
    with pytest.raises(ValueError):
        ResultCache(max_entries=-1)


def test_clear():
    cache = ResultCache()
    cache.get_or_compute("snap", "op", None, _Counter())
    cache.clear()
    assert len(cache) == 0
    assert cache.stats["snapshot_id"] is None


def test_compute_error_is_not_cached():
    cache = ResultCache()

    def failing():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        cache.get_or_compute("snap", "op", None, failing)
    assert len(cache) == 0
    assert cache.get_or_compute("snap", "op", None, _Counter("ok")) == "ok"


def test_concurrent_callers_compute_once():
    cache = ResultCache()
    compute = _Counter()
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: cache.get_or_compute("snap", "op", {"x": 1}, compute), range(32)))
    assert results == ["result"] * 32
    assert compute.calls == 1
    assert cache.stats["hits"] == 31


# =============================================================================
# ENGINE INTEGRATION
# =============================================================================

def test_engine_reuses_cached_reconstruction(portfolio_snapshot, registry):
    cache = ResultCache()
    engine = PortfolioEngine(portfolio_snapshot, registry=registry, cache=cache)
    first = engine.reconstruct_at("2024-08-01")
    second = engine.reconstruct_at(date(2024, 8, 1))
    assert first is second


def test_engines_for_same_snapshot_share_entries(portfolio_snapshot, registry):
    cache = ResultCache()
    first = PortfolioEngine(portfolio_snapshot, registry=registry, cache=cache)
    second = PortfolioEngine(portfolio_snapshot, registry=registry, cache=cache)
    assert first.flat is second.flat
    assert first.select_period(("2024-01-01", "2024-03-31")) is second.select_period(("2024-01-01", "2024-03-31"))


def test_rule_change_misses_cache(portfolio_snapshot, registry):
    cache = ResultCache()
    engine = PortfolioEngine(portfolio_snapshot, registry=registry, cache=cache)
    before = engine.reconstruct_at("2024-08-01")

    extended = registry.with_rules(StatusRule(id="UNKNOWN_POLICY", applies_to="policy", status_names=["Ukjent"]))
    other = PortfolioEngine(portfolio_snapshot, registry=extended, cache=cache)
    assert other.reconstruct_at("2024-08-01") is not before


def test_engine_without_cache_recomputes(portfolio_snapshot, registry):
    engine = PortfolioEngine(portfolio_snapshot, registry=registry)
    assert engine.snapshot_id is None
    assert engine.reconstruct_at("2024-08-01") is not engine.reconstruct_at("2024-08-01")
