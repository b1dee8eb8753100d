"""Predicate expression tree.

Immutable, composable boolean expressions over entity property paths. The
tree only describes the filter; evaluation lives in evaluation.py and wire
translation belongs to the remote executor.

Usage:
    p = Predicate.create("freight", ">", 100).and_("customerID", "!=", None)
    p = Predicate.create("companyName", "startsWith", "S") & Predicate.create("city", "contains", "er")
    p = ~Predicate.create("region", "==", None)
    p = Predicate.any_of([None, p1, p2])            # None entries are skipped
    p = Predicate.create("year(hireDate)", ">", 1993)
    p = Predicate.create("lastName", "startsWith", literal("firstName"))
    p = Predicate.create({"city": {"==": "London"}})
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from entitycache.errors import InvalidPredicateError


class FilterOperator(Enum):
    """Comparison operators supported by binary predicates."""

    EQ = "eq"
    NE = "ne"
    LT = "lt"
    LE = "le"
    GT = "gt"
    GE = "ge"
    STARTS_WITH = "startswith"
    ENDS_WITH = "endswith"
    CONTAINS = "contains"
    IN = "in"

    @classmethod
    def parse(cls, raw: str | FilterOperator) -> FilterOperator:
        """Resolve an operator from its enum, symbol or any accepted alias.

        Raises:
            InvalidPredicateError: If the operator is not recognized.
        """
        if isinstance(raw, FilterOperator):
            return raw
        if not isinstance(raw, str):
            raise InvalidPredicateError(f"Operator must be a string, got {raw!r}")
        op = _OPERATOR_ALIASES.get(raw.strip().lower())
        if op is None:
            raise InvalidPredicateError(f"Unknown filter operator: '{raw}'")
        return op

    @property
    def is_string_operator(self) -> bool:
        return self in (FilterOperator.STARTS_WITH, FilterOperator.ENDS_WITH, FilterOperator.CONTAINS)

    @property
    def is_ordering(self) -> bool:
        return self in (FilterOperator.LT, FilterOperator.LE, FilterOperator.GT, FilterOperator.GE)


_OPERATOR_ALIASES: dict[str, FilterOperator] = {
    "==": FilterOperator.EQ,
    "eq": FilterOperator.EQ,
    "equals": FilterOperator.EQ,
    "!=": FilterOperator.NE,
    "<>": FilterOperator.NE,
    "ne": FilterOperator.NE,
    "notequals": FilterOperator.NE,
    "<": FilterOperator.LT,
    "lt": FilterOperator.LT,
    "lessthan": FilterOperator.LT,
    "<=": FilterOperator.LE,
    "le": FilterOperator.LE,
    "lessthanorequal": FilterOperator.LE,
    ">": FilterOperator.GT,
    "gt": FilterOperator.GT,
    "greaterthan": FilterOperator.GT,
    ">=": FilterOperator.GE,
    "ge": FilterOperator.GE,
    "greaterthanorequal": FilterOperator.GE,
    "startswith": FilterOperator.STARTS_WITH,
    "endswith": FilterOperator.ENDS_WITH,
    "contains": FilterOperator.CONTAINS,
    "substringof": FilterOperator.CONTAINS,
    "in": FilterOperator.IN,
}

FUNCTIONS = frozenset(
    {"year", "month", "day", "hour", "minute", "second", "tolower", "toupper", "trim", "length"}
)

_FUNCTION_CALL = re.compile(r"^\s*(\w+)\s*\((.*)\)\s*$")


# --- Expressions ---


@dataclass(frozen=True, slots=True)
class PropertyExpr:
    """Dotted property path, possibly walking navigation properties."""

    path: str

    def __str__(self) -> str:
        return self.path


@dataclass(frozen=True, slots=True)
class FunctionExpr:
    """Unary function applied to a property path (``year(hireDate)``)."""

    name: str
    arg: PropertyExpr | FunctionExpr

    @property
    def path(self) -> str:
        return self.arg.path

    def __str__(self) -> str:
        return f"{self.name}({self.arg})"


@dataclass(frozen=True, slots=True)
class ValueExpr:
    """Right-hand operand of a binary predicate.

    ``is_literal`` is True for a forced literal, False for a forced property
    reference and None when a string value should be treated as a property
    reference only if it names a property of the queried type.
    """

    value: Any
    is_literal: bool | None = None


def literal(value: Any) -> ValueExpr:
    """Mark a value as a literal so it is never resolved as a property path."""
    return ValueExpr(value, is_literal=True)


def parse_expression(text: str) -> PropertyExpr | FunctionExpr:
    """Parse the left side of a predicate: a property path or a function call."""
    if not isinstance(text, str) or not text.strip():
        raise InvalidPredicateError(f"Expected a property path, got {text!r}")
    match = _FUNCTION_CALL.match(text)
    if match is None:
        return PropertyExpr(text.strip())
    name = match.group(1).lower()
    if name not in FUNCTIONS:
        raise InvalidPredicateError(f"Unknown function '{match.group(1)}' in '{text}'")
    return FunctionExpr(name, parse_expression(match.group(2)))


def _to_operand(value: Any, operator: FilterOperator) -> ValueExpr:
    if isinstance(value, ValueExpr):
        operand = value
    elif isinstance(value, PropertyExpr):
        operand = ValueExpr(value.path, is_literal=False)
    elif isinstance(value, dict) and "value" in value:
        flag = value.get("is_literal", value.get("isLiteral"))
        operand = ValueExpr(value["value"], None if flag is None else bool(flag))
    else:
        operand = ValueExpr(value)

    if operator is FilterOperator.IN:
        if not isinstance(operand.value, (list, tuple, set, frozenset)):
            raise InvalidPredicateError(f"'in' requires a list of values, got {operand.value!r}")
        return ValueExpr(tuple(operand.value), is_literal=True)
    return operand


# --- Predicates ---


class Predicate:
    """Base of the predicate tree. Immutable; combinators return new trees."""

    __slots__ = ()

    @classmethod
    def create(cls, *args: Any) -> Predicate:
        """Build a predicate from any accepted argument form.

        Accepted forms:
            create(path, operator, value)
            create(path, operator, value, is_literal)
            create(predicate)                    - returned as is
            create({"city": {"==": "London"}})   - shorthand object
            create([path, operator, value])

        Raises:
            InvalidPredicateError: If the arguments have none of these shapes.
        """
        if len(args) == 1:
            arg = args[0]
            if isinstance(arg, Predicate):
                return arg
            if isinstance(arg, dict):
                # Late import keeps the shorthand parser out of the AST module
                from entitycache.core.query.shorthand import parse_shorthand

                return parse_shorthand(arg)
            if isinstance(arg, (list, tuple)) and len(arg) in (3, 4):
                return cls.create(*arg)
        if len(args) in (3, 4):
            path, raw_op, value = args[:3]
            operator = FilterOperator.parse(raw_op)
            if len(args) == 4:
                value = ValueExpr(value, is_literal=bool(args[3]))
            return BinaryPredicate(parse_expression(path), operator, _to_operand(value, operator))
        raise InvalidPredicateError(f"Cannot build a predicate from arguments {args!r}")

    @classmethod
    def all_of(cls, predicates: Iterable[Predicate | None]) -> Predicate:
        """AND together a list; None entries are skipped, an empty list matches everything."""
        items = tuple(p for p in predicates if p is not None)
        if not items:
            return ConstantPredicate(True)
        if len(items) == 1:
            return items[0]
        return AndOrPredicate("and", items)

    @classmethod
    def any_of(cls, predicates: Iterable[Predicate | None]) -> Predicate:
        """OR together a list; None entries are skipped, an empty list matches nothing."""
        items = tuple(p for p in predicates if p is not None)
        if not items:
            return ConstantPredicate(False)
        if len(items) == 1:
            return items[0]
        return AndOrPredicate("or", items)

    def and_(self, *args: Any) -> Predicate:
        """Combine with another predicate (or predicate arguments) using AND."""
        if len(args) == 1 and args[0] is None:
            return self
        return Predicate.all_of([self, Predicate.create(*args)])

    def or_(self, *args: Any) -> Predicate:
        """Combine with another predicate (or predicate arguments) using OR."""
        if len(args) == 1 and args[0] is None:
            return self
        return Predicate.any_of([self, Predicate.create(*args)])

    def not_(self) -> Predicate:
        return NotPredicate(self)

    def __and__(self, other: Predicate | None) -> Predicate:
        return self.and_(other)

    def __or__(self, other: Predicate | None) -> Predicate:
        return self.or_(other)

    def __invert__(self) -> Predicate:
        return self.not_()

    def property_paths(self) -> list[str]:
        """All property paths referenced on the left side of comparisons."""
        raise NotImplementedError

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the shorthand object form accepted by ``Predicate.create``."""
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class BinaryPredicate(Predicate):
    """Leaf comparison: ``expr operator value``."""

    expr: PropertyExpr | FunctionExpr
    operator: FilterOperator
    value: ValueExpr

    def property_paths(self) -> list[str]:
        return [self.expr.path]

    def to_dict(self) -> dict[str, Any]:
        value: Any = self.value.value
        if self.operator is FilterOperator.IN:
            value = list(value)
        elif self.value.is_literal is not None:
            value = {"value": value, "is_literal": self.value.is_literal}
        return {str(self.expr): {self.operator.value: value}}


@dataclass(frozen=True, slots=True)
class AndOrPredicate(Predicate):
    """AND/OR over two or more predicates."""

    operator: str
    predicates: tuple[Predicate, ...]

    def __post_init__(self) -> None:
        if self.operator not in ("and", "or"):
            raise InvalidPredicateError(f"Unknown combinator '{self.operator}'")

    def property_paths(self) -> list[str]:
        return [path for p in self.predicates for path in p.property_paths()]

    def to_dict(self) -> dict[str, Any]:
        return {self.operator: [p.to_dict() for p in self.predicates]}


@dataclass(frozen=True, slots=True)
class NotPredicate(Predicate):
    """Negation of a predicate."""

    predicate: Predicate

    def property_paths(self) -> list[str]:
        return self.predicate.property_paths()

    def to_dict(self) -> dict[str, Any]:
        return {"not": self.predicate.to_dict()}


@dataclass(frozen=True, slots=True)
class ConstantPredicate(Predicate):
    """Always true (empty AND) or always false (empty OR)."""

    value: bool

    def property_paths(self) -> list[str]:
        return []

    def to_dict(self) -> dict[str, Any]:
        return {} if self.value else {"or": []}
