"""
Rule Registry - Immutable set of named classification rules.
"""

import hashlib
import json
import logging
import re
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

import polars as pl

from portfolio_service.core.rule_evaluator import RuleEvaluator, Rule
from portfolio_service.models.results import RuleTestResult
from portfolio_service.models.rule import StatusRule, CompositeRule, RuleDefinitionError, APPLIES_TO
from portfolio_service.utils.constants import UNDEFINED, AVERAGE_MONTH_DAYS
from portfolio_service.utils.dates import require_date
from portfolio_service.utils.default_rules import DEFAULT_RULES

logger = logging.getLogger(__name__)

SHORT_WINDOW_RULE = 'PORTFOLIO_POLICY_LAST_12_MONTHS'
LONG_WINDOW_RULE = 'PORTFOLIO_POLICY_HISTORICAL'


class UnknownRuleError(KeyError):
    """Raised when a rule id is not registered."""
    pass


class RuleRegistry:
    """
    Holds classification rules by id. Never mutated after construction:
    with_rules returns a new registry.
    """

    def __init__(self, rules: Iterable[Rule] = ()):
        self._rules: Dict[str, Rule] = {}
        for rule in rules:
            self._rules[rule.id] = rule
        self._validate()
        self._fingerprint = self._compute_fingerprint()

    @classmethod
    def from_definitions(cls, definitions: Optional[Mapping[str, Dict[str, Any]]] = None) -> "RuleRegistry":
        """
        Build a registry from a definitions dict in the DEFAULT_RULES format.

        Args:
            definitions: Rule definitions by id, defaults to DEFAULT_RULES

        Returns:
            New RuleRegistry
        """
        definitions = DEFAULT_RULES if definitions is None else definitions
        return cls(cls.rule_from_definition(rule_id, d) for rule_id, d in definitions.items())

    @staticmethod
    def rule_from_definition(rule_id: str, definition: Mapping[str, Any]) -> Rule:
        if not isinstance(definition, Mapping):
            raise RuleDefinitionError(f"Definition of rule {rule_id!r} must be a dict")
        if 'criteria' in definition:
            return CompositeRule(
                id=rule_id,
                applies_to=definition.get('applies_to'),
                criteria=definition['criteria'],
                description=definition.get('description', ""),
            )
        return StatusRule(
            id=rule_id,
            applies_to=definition.get('applies_to'),
            status_names=definition.get('status_names') or [],
            status_ids=definition.get('status_ids') or [],
            description=definition.get('description', ""),
        )

    def with_rules(self, *rules: Rule) -> "RuleRegistry":
        """Return a new registry with the given rules added or replaced."""
        return RuleRegistry(list(self._rules.values()) + list(rules))

    def _validate(self):
        """Check references resolve, stay within one applies_to and contain no cycles."""
        for rule in self._rules.values():
            if isinstance(rule, CompositeRule):
                self._check_references(rule, ())

    def _check_references(self, rule: CompositeRule, path: tuple):
        if rule.id in path:
            raise RuleDefinitionError(f"Cyclic rule reference: {' -> '.join(path + (rule.id,))}")
        for ref in rule.referenced_rules():
            target = self._rules.get(ref)
            if target is None:
                raise RuleDefinitionError(f"Rule {rule.id!r} references unknown rule {ref!r}")
            if target.applies_to != rule.applies_to:
                raise RuleDefinitionError(
                    f"Rule {rule.id!r} ({rule.applies_to}) references {ref!r} ({target.applies_to})"
                )
            if isinstance(target, CompositeRule):
                self._check_references(target, path + (rule.id,))

    def _compute_fingerprint(self) -> str:
        definitions = {rule_id: rule.to_definition() for rule_id, rule in self._rules.items()}
        canonical = json.dumps(definitions, sort_keys=True, default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    @property
    def fingerprint(self) -> str:
        """Stable hash of every definition, used in cache keys."""
        return self._fingerprint

    def __contains__(self, rule_id: str) -> bool:
        return rule_id in self._rules

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)

    def get(self, rule_id: str) -> Rule:
        try:
            return self._rules[rule_id]
        except KeyError:
            raise UnknownRuleError(rule_id) from None

    def resolve(self, rule: Union[str, Rule]) -> Rule:
        """Accept a rule id or a rule object."""
        return self._scoped(rule)[0]

    def _scoped(self, rule: Union[str, Rule]) -> Tuple[Rule, "RuleRegistry"]:
        """The rule plus the registry it is evaluated in; unregistered rules are validated in a copy."""
        if isinstance(rule, str):
            return self.get(rule), self
        if self._rules.get(rule.id) == rule:
            return rule, self
        return rule, self.with_rules(rule)

    def expression(self, rule: Union[str, Rule],
                   name_column: str = "status_name",
                   id_column: str = "status_id") -> pl.Expr:
        """
        Rule as a Polars expression, guarded so unknown statuses never match.

        Args:
            rule: Rule id or rule object
            name_column: Column holding the status name
            id_column: Column holding the status id

        Returns:
            Boolean expression
        """
        rule, scope = self._scoped(rule)
        return (scope.known_status_expr(rule.applies_to, name_column, id_column)
                & RuleEvaluator.evaluate(rule, scope._rules, name_column, id_column))

    def known_status_expr(self, applies_to: str,
                          name_column: str = "status_name",
                          id_column: str = "status_id") -> pl.Expr:
        """True for records whose status appears in at least one status rule for applies_to."""
        if applies_to not in APPLIES_TO:
            raise RuleDefinitionError(f"applies_to must be one of {APPLIES_TO}, got {applies_to!r}")
        names, ids = self.known_statuses(applies_to)
        known = StatusRule(id=f"KNOWN_{applies_to.upper()}", applies_to=applies_to,
                           status_names=names, status_ids=ids)
        return RuleEvaluator.evaluate(known, self._rules, name_column, id_column)

    def known_statuses(self, applies_to: str):
        names, ids = set(), set()
        for rule in self._rules.values():
            if isinstance(rule, StatusRule) and rule.applies_to == applies_to:
                names |= rule.status_names
                ids |= rule.status_ids
        return frozenset(names), frozenset(ids)

    def matches(self, rule: Union[str, Rule], record: Mapping[str, Any],
                name_key: str = "status_name", id_key: str = "status_id") -> bool:
        """Evaluate a rule against one record; unknown statuses never match."""
        rule, scope = self._scoped(rule)
        names, ids = scope.known_statuses(rule.applies_to)
        known = StatusRule(id="_KNOWN", applies_to=rule.applies_to, status_names=names, status_ids=ids)
        rules = scope._rules
        return (RuleEvaluator.matches(known, record, rules, name_key, id_key)
                and RuleEvaluator.matches(rule, record, rules, name_key, id_key))

    def test_rule(self, rule: Union[str, Rule], population: pl.DataFrame,
                  name_column: str = "status_name",
                  id_column: str = "status_id") -> RuleTestResult:
        """
        Evaluate a rule against an unfiltered population.

        Args:
            rule: Rule id or rule object
            population: Policy or claim frame, unfiltered

        Returns:
            RuleTestResult with totals, percent (UNDEFINED when empty) and the
            status distribution with a matched flag per status
        """
        rule = self.resolve(rule)
        flagged = population.with_columns(
            self.expression(rule, name_column, id_column).alias("_matched")
        )
        total = flagged.height
        matched = int(flagged["_matched"].sum()) if total else 0
        percent = matched / total * 100 if total else UNDEFINED

        distribution = (flagged
                        .group_by([name_column, id_column], maintain_order=True)
                        .agg(pl.len().alias("count"), pl.col("_matched").first().alias("matched"))
                        .sort("count", descending=True, maintain_order=True)
                        .rename({name_column: "status_name", id_column: "status_id"})
                        .to_dicts())

        logger.info(f"Rule {rule.id} matched {matched} of {total} records")
        return RuleTestResult(rule_id=rule.id, total=total, matched=matched,
                              percent=percent, status_distribution=distribution)

    def rule_for_period(self, view_date: Any, period_start: Any) -> Rule:
        """
        Pick the policy rule for a window ending at view_date.

        Windows of at most 12 months leave renewed policies out (a renewal
        and its successor would both be counted); longer windows include them.
        """
        end = require_date(view_date, "view_date")
        start = require_date(period_start, "period_start")
        months = abs((end - start).days) / AVERAGE_MONTH_DAYS
        return self.get(SHORT_WINDOW_RULE if months <= 12 else LONG_WINDOW_RULE)

    def suggest_rules(self, population: pl.DataFrame, applies_to: str = "policy",
                      min_count: int = 10,
                      name_column: str = "status_name",
                      id_column: str = "status_id") -> List[StatusRule]:
        """
        Propose one status rule per frequent status not covered by any rule.

        Args:
            population: Frame to scan
            applies_to: 'policy' or 'claim'
            min_count: Minimum number of records carrying the status

        Returns:
            Suggested StatusRule objects, most frequent first (not registered)
        """
        unknown = (population
                   .filter(~self.known_status_expr(applies_to, name_column, id_column)
                           & pl.col(name_column).is_not_null())
                   .group_by(name_column, maintain_order=True)
                   .agg(pl.len().alias("count"), pl.col(id_column).drop_nulls().unique().alias("ids"))
                   .filter(pl.col("count") >= min_count)
                   .sort("count", descending=True, maintain_order=True))

        suggestions = []
        for row in unknown.iter_rows(named=True):
            name = row[name_column]
            suggestions.append(StatusRule(
                id=f"SUGGESTED_{_rule_id_part(name)}",
                applies_to=applies_to,
                status_names=[name],
                status_ids=row["ids"],
                description=f"Suggested from {row['count']} unclassified records",
            ))
        return suggestions

    def to_definitions(self) -> Dict[str, Dict[str, Any]]:
        return {rule_id: rule.to_definition() for rule_id, rule in self._rules.items()}


def _rule_id_part(status_name: str) -> str:
    return re.sub(r"[^A-Z0-9]+", "_", status_name.upper()).strip("_") or "STATUS"
