"""
Rule Evaluator - Converts classification rules into Polars expressions and record predicates.
"""

from typing import Any, Dict, List, Mapping, Optional, Union

import polars as pl

from portfolio_service.models.rule import StatusRule, CompositeRule, RuleDefinitionError

Rule = Union[StatusRule, CompositeRule]


class RuleEvaluator:
    """Converts rules into Polars expressions for frames and booleans for single records."""

    @classmethod
    def evaluate(cls,
                 rule: Rule,
                 rules: Mapping[str, Rule],
                 name_column: str = "status_name",
                 id_column: str = "status_id",
                 _path: tuple = ()) -> pl.Expr:
        """
        Convert a rule into a Polars expression.

        Args:
            rule: Status or composite rule to evaluate
            rules: Rules by id, used to resolve {'rule': id} references
            name_column: Column holding the status name
            id_column: Column holding the status id

        Returns:
            Boolean expression, never null
        """
        if rule.id in _path:
            raise RuleDefinitionError(f"Cyclic rule reference: {' -> '.join(_path + (rule.id,))}")

        if isinstance(rule, StatusRule):
            return cls._evaluate_status(rule, name_column, id_column)
        return cls._evaluate_criteria(rule.criteria, rules, name_column, id_column, _path + (rule.id,))

    @classmethod
    def _evaluate_criteria(cls, criteria: Dict[str, Any], rules: Mapping[str, Rule],
                           name_column: str, id_column: str, path: tuple) -> pl.Expr:
        if "and" in criteria:
            return cls._evaluate_and(criteria["and"], rules, name_column, id_column, path)
        if "or" in criteria:
            return cls._evaluate_or(criteria["or"], rules, name_column, id_column, path)
        if "not" in criteria:
            return ~cls._evaluate_criteria(criteria["not"], rules, name_column, id_column, path)
        if "rule" in criteria:
            return cls.evaluate(cls._lookup(criteria["rule"], rules), rules, name_column, id_column, path)
        raise RuleDefinitionError(f"Unknown criteria keys: {list(criteria)}")

    @classmethod
    def _evaluate_and(cls, subcriteria: List[Dict], rules: Mapping[str, Rule],
                      name_column: str, id_column: str, path: tuple) -> pl.Expr:
        """Combine multiple criteria with AND logic."""
        if not subcriteria:
            return pl.lit(True)

        expr = cls._evaluate_criteria(subcriteria[0], rules, name_column, id_column, path)
        for crit in subcriteria[1:]:
            expr = expr & cls._evaluate_criteria(crit, rules, name_column, id_column, path)
        return expr

    @classmethod
    def _evaluate_or(cls, subcriteria: List[Dict], rules: Mapping[str, Rule],
                     name_column: str, id_column: str, path: tuple) -> pl.Expr:
        """Combine multiple criteria with OR logic."""
        if not subcriteria:
            return pl.lit(False)

        expr = cls._evaluate_criteria(subcriteria[0], rules, name_column, id_column, path)
        for crit in subcriteria[1:]:
            expr = expr | cls._evaluate_criteria(crit, rules, name_column, id_column, path)
        return expr

    @staticmethod
    def _evaluate_status(rule: StatusRule, name_column: str, id_column: str) -> pl.Expr:
        """Status name OR status id listed; a null status never matches."""
        by_name = (pl.col(name_column).is_in(sorted(rule.status_names)).fill_null(False)
                   if rule.status_names else pl.lit(False))
        by_id = (pl.col(id_column).is_in(sorted(rule.status_ids)).fill_null(False)
                 if rule.status_ids else pl.lit(False))
        return by_name | by_id

    @classmethod
    def matches(cls, rule: Rule, record: Mapping[str, Any], rules: Mapping[str, Rule],
                name_key: str = "status_name", id_key: str = "status_id",
                _path: tuple = ()) -> bool:
        """
        Evaluate a rule against a single record dict.

        Args:
            rule: Status or composite rule
            record: Mapping with the status name and id
            rules: Rules by id, used to resolve references

        Returns:
            True if the record satisfies the rule
        """
        if rule.id in _path:
            raise RuleDefinitionError(f"Cyclic rule reference: {' -> '.join(_path + (rule.id,))}")

        if isinstance(rule, StatusRule):
            name, status_id = record.get(name_key), record.get(id_key)
            return (name is not None and name in rule.status_names) or \
                (status_id is not None and _as_int(status_id) in rule.status_ids)
        return cls._matches_criteria(rule.criteria, record, rules, name_key, id_key, _path + (rule.id,))

    @classmethod
    def _matches_criteria(cls, criteria: Dict[str, Any], record: Mapping[str, Any], rules: Mapping[str, Rule],
                          name_key: str, id_key: str, path: tuple) -> bool:
        if "and" in criteria:
            return all(cls._matches_criteria(c, record, rules, name_key, id_key, path) for c in criteria["and"])
        if "or" in criteria:
            return any(cls._matches_criteria(c, record, rules, name_key, id_key, path) for c in criteria["or"])
        if "not" in criteria:
            return not cls._matches_criteria(criteria["not"], record, rules, name_key, id_key, path)
        if "rule" in criteria:
            return cls.matches(cls._lookup(criteria["rule"], rules), record, rules, name_key, id_key, path)
        raise RuleDefinitionError(f"Unknown criteria keys: {list(criteria)}")

    @staticmethod
    def _lookup(rule_id: str, rules: Mapping[str, Rule]) -> Rule:
        rule = rules.get(rule_id)
        if rule is None:
            raise RuleDefinitionError(f"Composite rule references unknown rule {rule_id!r}")
        return rule


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
