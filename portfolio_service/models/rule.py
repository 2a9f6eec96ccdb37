"""
Rule dataclasses for status classification rules.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable

APPLIES_TO = ('policy', 'claim')


class RuleDefinitionError(ValueError):
    """Raised when a rule definition is invalid."""
    pass


def _check_applies_to(rule_id: str, applies_to: str):
    if applies_to not in APPLIES_TO:
        raise RuleDefinitionError(
            f"Rule {rule_id!r} has applies_to={applies_to!r}, expected one of {APPLIES_TO}"
        )


@dataclass(frozen=True)
class StatusRule:
    """Matches records whose status name OR status id is listed."""
    id: str
    applies_to: str  # 'policy' or 'claim'
    status_names: FrozenSet[str] = frozenset()
    status_ids: FrozenSet[int] = frozenset()
    description: str = ""

    def __post_init__(self):
        _check_applies_to(self.id, self.applies_to)
        # Accept any iterable from callers, store frozensets
        object.__setattr__(self, 'status_names', frozenset(self.status_names))
        object.__setattr__(self, 'status_ids', frozenset(int(i) for i in self.status_ids))

    def to_definition(self) -> Dict[str, Any]:
        return {
            'applies_to': self.applies_to,
            'status_names': sorted(self.status_names),
            'status_ids': sorted(self.status_ids),
            'description': self.description,
        }


@dataclass(frozen=True)
class CompositeRule:
    """Combines other rules with and/or/not criteria, e.g. {'or': [{'rule': 'A'}, {'rule': 'B'}]}."""
    id: str
    applies_to: str
    criteria: Dict[str, Any] = field(default_factory=dict, hash=False)
    description: str = ""

    def __post_init__(self):
        _check_applies_to(self.id, self.applies_to)
        if not self.criteria:
            raise RuleDefinitionError(f"Composite rule {self.id!r} has empty criteria")
        # the rule owns its criteria
        object.__setattr__(self, 'criteria', copy.deepcopy(self.criteria))

    def referenced_rules(self) -> Iterable[str]:
        """Yield the rule ids referenced anywhere in the criteria."""
        stack = [self.criteria]
        while stack:
            node = stack.pop()
            if not isinstance(node, dict):
                raise RuleDefinitionError(f"Composite rule {self.id!r} has malformed criteria: {node!r}")
            if 'rule' in node:
                yield node['rule']
            elif 'and' in node or 'or' in node:
                children = node.get('and', node.get('or'))
                if not children:
                    raise RuleDefinitionError(f"Composite rule {self.id!r} has an empty and/or block")
                stack.extend(children)
            elif 'not' in node:
                stack.append(node['not'])
            else:
                raise RuleDefinitionError(f"Composite rule {self.id!r} has unknown criteria keys: {list(node)}")

    def to_definition(self) -> Dict[str, Any]:
        return {
            'applies_to': self.applies_to,
            'criteria': copy.deepcopy(self.criteria),
            'description': self.description,
        }
