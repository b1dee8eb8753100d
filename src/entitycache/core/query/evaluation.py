"""In-process evaluation of predicates, orderings and projections.

Every function here is parameterized by a ValueGetter that reads one
property off one node, so the same compiled predicate can run against
cached Entity graphs or against raw rows held by a data service. Paths are
validated against metadata at compile time.

Usage:
    matches = compile_predicate(pred, order_type, store, entity_getter)
    hits = [o for o in orders if matches(o)]
    hits.sort(key=compile_ordering(query.order_by, order_type, store, entity_getter))
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from entitycache.core.metadata import (
    DataProperty,
    DataType,
    EntityType,
    LocalQueryComparisonOptions,
    MetadataStore,
    NavigationProperty,
    Property,
)
from entitycache.core.query.predicate import (
    AndOrPredicate,
    BinaryPredicate,
    ConstantPredicate,
    FilterOperator,
    FunctionExpr,
    NotPredicate,
    Predicate,
    PropertyExpr,
)
from entitycache.errors import InvalidPredicateError

ValueGetter = Callable[[Any, Property], Any]
"""Signature: (node, property) -> value. Navigation values are nodes or lists of nodes."""

_UNRESOLVED = object()
"""Marker for a path that hit a null navigation before its last segment."""


class OrderingItem(Protocol):
    path: str
    descending: bool


@dataclass(frozen=True, slots=True)
class BoundPath:
    """Property path resolved against metadata, with functions to apply."""

    chain: tuple[Property, ...]
    functions: tuple[str, ...] = ()

    @property
    def data_type(self) -> DataType | None:
        if self.functions:
            return _FUNCTION_RESULT_TYPES[self.functions[-1]]
        last = self.chain[-1]
        return last.data_type if isinstance(last, DataProperty) else None

    def resolve(self, node: Any, getter: ValueGetter) -> Any:
        """Walk the path from ``node``; returns _UNRESOLVED on a null intermediate hop."""
        current = node
        for i, prop in enumerate(self.chain):
            current = getter(current, prop)
            if i < len(self.chain) - 1 and current is None:
                return _UNRESOLVED
        for name in self.functions:
            current = _FUNCTIONS[name](current)
        return current


def _date_part(attr: str) -> Callable[[Any], Any]:
    def apply(value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, datetime):
            value = DataType.DATETIME.coerce(value)
        return getattr(value, attr, None)

    return apply


def _string_fn(fn: Callable[[str], Any]) -> Callable[[Any], Any]:
    def apply(value: Any) -> Any:
        return None if value is None else fn(str(value))

    return apply


_FUNCTIONS: dict[str, Callable[[Any], Any]] = {
    "year": _date_part("year"),
    "month": _date_part("month"),
    "day": _date_part("day"),
    "hour": _date_part("hour"),
    "minute": _date_part("minute"),
    "second": _date_part("second"),
    "tolower": _string_fn(str.lower),
    "toupper": _string_fn(str.upper),
    "trim": _string_fn(str.strip),
    "length": _string_fn(len),
}

_FUNCTION_RESULT_TYPES: dict[str, DataType] = {
    "year": DataType.INTEGER,
    "month": DataType.INTEGER,
    "day": DataType.INTEGER,
    "hour": DataType.INTEGER,
    "minute": DataType.INTEGER,
    "second": DataType.INTEGER,
    "tolower": DataType.STRING,
    "toupper": DataType.STRING,
    "trim": DataType.STRING,
    "length": DataType.INTEGER,
}


def bind_path(
    path: str,
    entity_type: EntityType,
    metadata_store: MetadataStore,
    allow_navigation_end: bool = False,
) -> BoundPath:
    """Resolve a dotted path into a BoundPath.

    Raises:
        UnknownPropertyError: If a segment does not resolve.
        InvalidPredicateError: If a collection navigation is walked through.
    """
    chain = metadata_store.resolve_property_path(entity_type, path)
    for prop in chain[:-1]:
        if isinstance(prop, NavigationProperty) and not prop.is_scalar:
            raise InvalidPredicateError(
                f"Path '{path}' walks through collection navigation '{prop.name}'"
            )
    if isinstance(chain[-1], NavigationProperty) and not allow_navigation_end:
        raise InvalidPredicateError(f"Path '{path}' must end on a data property")
    return BoundPath(tuple(chain))


def _bind_expression(
    expr: PropertyExpr | FunctionExpr, entity_type: EntityType, metadata_store: MetadataStore
) -> BoundPath:
    functions: list[str] = []
    while isinstance(expr, FunctionExpr):
        functions.append(expr.name)
        expr = expr.arg
    bound = bind_path(expr.path, entity_type, metadata_store)
    # Innermost function applies first
    return BoundPath(bound.chain, tuple(reversed(functions)))


# --- Value comparison ---


def _fold(value: str, options: LocalQueryComparisonOptions, for_equality: bool = False) -> str:
    if not options.is_case_sensitive:
        value = value.lower()
    if for_equality and options.uses_sql92_compliant_string_comparison:
        value = value.rstrip()
    return value


def _equals(left: Any, right: Any, options: LocalQueryComparisonOptions) -> bool:
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, str) and isinstance(right, str):
        return _fold(left, options, for_equality=True) == _fold(right, options, for_equality=True)
    return bool(left == right)


def compare_values(left: Any, right: Any, options: LocalQueryComparisonOptions) -> int:
    """Three-way compare for sorting. None sorts before any value."""
    if left is _UNRESOLVED:
        left = None
    if right is _UNRESOLVED:
        right = None
    if left is None or right is None:
        return (left is not None) - (right is not None)
    if isinstance(left, str) and isinstance(right, str):
        left, right = _fold(left, options), _fold(right, options)
    try:
        return (left > right) - (left < right)
    except TypeError:
        return (str(left) > str(right)) - (str(left) < str(right))


def _apply_operator(
    operator: FilterOperator, left: Any, right: Any, options: LocalQueryComparisonOptions
) -> bool:
    if operator is FilterOperator.EQ:
        return _equals(left, right, options)
    if operator is FilterOperator.NE:
        return not _equals(left, right, options)
    if operator is FilterOperator.IN:
        return any(_equals(left, item, options) for item in right)
    if left is None or right is None:
        return False
    if operator.is_string_operator:
        text, fragment = _fold(str(left), options), _fold(str(right), options)
        if operator is FilterOperator.STARTS_WITH:
            return text.startswith(fragment)
        if operator is FilterOperator.ENDS_WITH:
            return text.endswith(fragment)
        return fragment in text
    cmp = compare_values(left, right, options)
    if operator is FilterOperator.LT:
        return cmp < 0
    if operator is FilterOperator.LE:
        return cmp <= 0
    if operator is FilterOperator.GT:
        return cmp > 0
    return cmp >= 0


def _coerce_literal(value: Any, data_type: DataType | None, operator: FilterOperator) -> Any:
    if operator.is_string_operator:
        return None if value is None else str(value)
    if data_type is None:
        return value
    if operator is FilterOperator.IN:
        return tuple(data_type.coerce(v) for v in value)
    return data_type.coerce(value)


# --- Compilation ---


def compile_predicate(
    predicate: Predicate | None,
    entity_type: EntityType,
    metadata_store: MetadataStore,
    getter: ValueGetter,
    options: LocalQueryComparisonOptions | None = None,
) -> Callable[[Any], bool]:
    """Compile a predicate into a match function for nodes of ``entity_type``.

    Args:
        predicate: Predicate to compile (None matches everything).
        entity_type: Type of the candidate nodes.
        metadata_store: Store used to resolve property paths.
        getter: Reads one property off a node.
        options: String collation; defaults to the store's global options.

    Returns:
        Function returning True for matching nodes.

    Raises:
        UnknownPropertyError: If the predicate references an unknown path.
        InvalidPredicateError: If the predicate is malformed.
    """
    opts = options or metadata_store.local_query_comparison_options
    if predicate is None:
        return lambda node: True
    return _compile(predicate, entity_type, metadata_store, getter, opts)


def _compile(
    predicate: Predicate,
    entity_type: EntityType,
    store: MetadataStore,
    getter: ValueGetter,
    opts: LocalQueryComparisonOptions,
) -> Callable[[Any], bool]:
    if isinstance(predicate, ConstantPredicate):
        constant = predicate.value
        return lambda node: constant

    if isinstance(predicate, NotPredicate):
        inner = _compile(predicate.predicate, entity_type, store, getter, opts)
        return lambda node: not inner(node)

    if isinstance(predicate, AndOrPredicate):
        parts = [_compile(p, entity_type, store, getter, opts) for p in predicate.predicates]
        if predicate.operator == "and":
            return lambda node: all(part(node) for part in parts)
        return lambda node: any(part(node) for part in parts)

    if isinstance(predicate, BinaryPredicate):
        return _compile_binary(predicate, entity_type, store, getter, opts)

    raise InvalidPredicateError(f"Unsupported predicate node: {type(predicate).__name__}")


def _compile_binary(
    predicate: BinaryPredicate,
    entity_type: EntityType,
    store: MetadataStore,
    getter: ValueGetter,
    opts: LocalQueryComparisonOptions,
) -> Callable[[Any], bool]:
    left = _bind_expression(predicate.expr, entity_type, store)
    operator = predicate.operator
    operand = predicate.value

    is_property_ref = operand.is_literal is False or (
        operand.is_literal is None
        and operator is not FilterOperator.IN
        and isinstance(operand.value, str)
        and store.is_data_property_path(entity_type, operand.value)
    )

    if is_property_ref:
        right = bind_path(operand.value, entity_type, store)

        def match_paths(node: Any) -> bool:
            lhs = left.resolve(node, getter)
            rhs = right.resolve(node, getter)
            if lhs is _UNRESOLVED or rhs is _UNRESOLVED:
                return False
            return _apply_operator(operator, lhs, rhs, opts)

        return match_paths

    value = _coerce_literal(operand.value, left.data_type, operator)

    def match_literal(node: Any) -> bool:
        lhs = left.resolve(node, getter)
        if lhs is _UNRESOLVED:
            return False
        return _apply_operator(operator, lhs, value, opts)

    return match_literal


def compile_ordering(
    order_by: Sequence[OrderingItem],
    entity_type: EntityType,
    metadata_store: MetadataStore,
    getter: ValueGetter,
    options: LocalQueryComparisonOptions | None = None,
) -> Callable[[Any], Any]:
    """Compile ordering clauses into a sort key function (for ``sorted(key=...)``)."""
    opts = options or metadata_store.local_query_comparison_options
    bound = [
        (bind_path(item.path, entity_type, metadata_store), item.descending) for item in order_by
    ]

    def cmp(a: Any, b: Any) -> int:
        for path, descending in bound:
            result = compare_values(path.resolve(a, getter), path.resolve(b, getter), opts)
            if result:
                return -result if descending else result
        return 0

    return functools.cmp_to_key(cmp)


def compile_projection(
    select: Sequence[str],
    entity_type: EntityType,
    metadata_store: MetadataStore,
    getter: ValueGetter,
) -> Callable[[Any], dict[str, Any]]:
    """Compile select paths into a function producing plain records.

    Nested paths become underscore-joined keys ("customer.companyName" ->
    "customer_companyName").
    """
    bound = [
        (
            path.replace(".", "_"),
            bind_path(path, entity_type, metadata_store, allow_navigation_end=True),
        )
        for path in select
    ]

    def project(node: Any) -> dict[str, Any]:
        record: dict[str, Any] = {}
        for name, path in bound:
            value = path.resolve(node, getter)
            record[name] = None if value is _UNRESOLVED else value
        return record

    return project
