"""
Store-agnostic query predicate
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set, Tuple


@dataclass
class StorePredicate:
    """
    Filter a document store can evaluate natively.

    equals: field -> exact value
    ranges: field -> (lower, upper), both inclusive, either may be None
    members: field -> allowed values; an empty set matches nothing
    """
    equals: Dict[str, Any] = field(default_factory=dict)
    ranges: Dict[str, Tuple[Optional[Any], Optional[Any]]] = field(default_factory=dict)
    members: Dict[str, Set[Any]] = field(default_factory=dict)

    @property
    def matches_nothing(self) -> bool:
        return any(len(values) == 0 for values in self.members.values())

    def matches(self, item: Dict[str, Any]) -> bool:
        """Evaluate against a stored document (camelCase keys)"""
        for name, value in self.equals.items():
            if item.get(name) != value:
                return False
        for name, (lower, upper) in self.ranges.items():
            value = item.get(name)
            if value is None:
                return False
            if lower is not None and value < lower:
                return False
            if upper is not None and value > upper:
                return False
        for name, values in self.members.items():
            if item.get(name) not in values:
                return False
        return True
