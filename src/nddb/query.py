"""Condition chains for collection queries.

A query is a list of conditions, each attached to the one before it with a
connective (``AND`` or ``OR``). ``QueryBuilder.get`` compiles the chain
into a single predicate.

Chains are evaluated right to left: the last condition seeds the result
and every earlier condition is folded into it, so

    a = 1 AND a = 2 OR a = 3

accepts ``{"a": 3}`` because the trailing ``OR a = 3`` holds.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from nddb.comparators import Comparator
from nddb.objects import UNDEFINED, get_nested_value, in_array

Predicate = Callable[[Any], bool]
OperatorFactory = Callable[[str, Any, Comparator], Predicate]

AND = "AND"
OR = "OR"

EXISTS = "E"
RANGE_OPERATORS = ("><", "<>", "in", "!in")
COMPARISON_OPERATORS = (">", "==", ">=", "<", "<=")


@dataclass
class Condition:
    """A single condition in a query chain."""

    field: str
    operator: str  # E, ==, >, >=, <, <=, ><, <>, in, !in, or a custom operator
    value: Any = UNDEFINED
    type: str = AND
    comparator: Comparator | None = None


def _exists(d: str, value: Any, comparator: Comparator) -> Predicate:
    return lambda elem: get_nested_value(d, elem) is not UNDEFINED


def _equals(d: str, value: Any, comparator: Comparator) -> Predicate:
    return lambda elem: comparator(elem, value) == 0


def _greater(d: str, value: Any, comparator: Comparator) -> Predicate:
    return lambda elem: comparator(elem, value) == 1


def _greater_or_equal(d: str, value: Any, comparator: Comparator) -> Predicate:
    return lambda elem: comparator(elem, value) in (0, 1)


def _smaller(d: str, value: Any, comparator: Comparator) -> Predicate:
    return lambda elem: comparator(elem, value) == -1


def _smaller_or_equal(d: str, value: Any, comparator: Comparator) -> Predicate:
    return lambda elem: comparator(elem, value) in (0, -1)


def _between(d: str, value: Any, comparator: Comparator) -> Predicate:
    lower, upper = value[0], value[1]
    return lambda elem: comparator(elem, lower) > 0 and comparator(elem, upper) < 0


def _not_between(d: str, value: Any, comparator: Comparator) -> Predicate:
    lower, upper = value[0], value[1]
    return lambda elem: comparator(elem, lower) < 0 or comparator(elem, upper) > 0


def _in(d: str, value: Any, comparator: Comparator) -> Predicate:
    return lambda elem: in_array(get_nested_value(d, elem), value)


def _not_in(d: str, value: Any, comparator: Comparator) -> Predicate:
    return lambda elem: not in_array(get_nested_value(d, elem), value)


DEFAULT_OPERATORS: dict[str, OperatorFactory] = {
    EXISTS: _exists,
    "==": _equals,
    ">": _greater,
    ">=": _greater_or_equal,
    "<": _smaller,
    "<=": _smaller_or_equal,
    "><": _between,
    "<>": _not_between,
    "in": _in,
    "!in": _not_in,
}


def fold_conditions(predicates: Sequence[Predicate], types: Sequence[str], elem: Any) -> bool:
    """Evaluate a chain of any length against one record.

    Conditions are visited from last to first. A true OR accepts at once,
    a false AND rejects at once, and an AND that follows a false OR
    rejects as well.
    """
    prev_type = OR
    prev_ok = True
    for i in range(len(predicates) - 1, -1, -1):
        kind = types[i]
        ok = predicates[i](elem)
        if kind == OR:
            if ok:
                return True
        elif kind == AND:
            if not ok:
                return False
            if prev_type == OR and not prev_ok:
                return False
        prev_type = kind
        prev_ok = ok if kind == AND else (ok or prev_ok)
    return True


class QueryBuilder:
    """Collects select conditions and compiles them into a predicate."""

    def __init__(self, operators: dict[str, OperatorFactory] | None = None) -> None:
        self.operators: dict[str, OperatorFactory] = dict(DEFAULT_OPERATORS)
        if operators:
            self.operators.update(operators)
        self.conditions: list[Condition] = []

    def register_operator(self, op: str, factory: OperatorFactory) -> None:
        """Register a select operator.

        Args:
            op: The operator token used in ``select(field, op, value)``.
            factory: Called as ``factory(field, value, comparator)``; must
                return a predicate taking one record. Registering an
                existing token replaces it.
        """
        self.operators[op] = factory

    def add_condition(self, type: str, condition: Condition, comparator: Comparator) -> None:
        condition.type = type
        condition.comparator = comparator
        self.conditions.append(condition)

    def reset(self) -> None:
        self.conditions = []

    def __len__(self) -> int:
        return len(self.conditions)

    def _predicate(self, condition: Condition) -> Predicate:
        factory = self.operators[condition.operator]
        return factory(condition.field, condition.value, condition.comparator)  # type: ignore[arg-type]

    def get(self) -> Predicate:
        """Compile the current conditions into one predicate.

        Chains of one, two and three conditions are unrolled; longer chains
        go through ``fold_conditions``. An empty chain accepts everything.
        """
        line = self.conditions
        if not line:
            return lambda elem: True

        if len(line) == 1:
            return self._predicate(line[0])

        if len(line) == 2:
            f1, f2 = self._predicate(line[0]), self._predicate(line[1])
            if line[1].type == OR:
                return lambda elem: f1(elem) or f2(elem)
            return lambda elem: f1(elem) and f2(elem)

        if len(line) == 3:
            f1, f2, f3 = (self._predicate(c) for c in line)
            key = f"{line[1].type}_{line[2].type}"
            if key == "OR_OR":
                return lambda elem: f1(elem) or f2(elem) or f3(elem)
            if key == "OR_AND":
                return lambda elem: f3(elem) and (f2(elem) or f1(elem))
            if key == "AND_OR":
                return lambda elem: f3(elem) or (f2(elem) and f1(elem))
            return lambda elem: f3(elem) and f2(elem) and f1(elem)

        predicates = [self._predicate(c) for c in line]
        types = [c.type for c in line]
        return lambda elem: fold_conditions(predicates, types, elem)

    def copy(self) -> QueryBuilder:
        """Return a builder with the same operators and no conditions."""
        return QueryBuilder(self.operators)
