"""Shorthand object syntax for predicates.

Translates a constrained JSON shape into canonical predicate nodes, so the
evaluator only ever sees the AST.

Usage:
    parse_shorthand({"city": {"==": "London"}})
    parse_shorthand({"and": [
        {"companyName": {"startswith": "B"}},
        {"not": {"country": {"in": ["Belgium", "Germany"]}}},
    ]})
    parse_shorthand({"lastName": "Davolio", "freight": {">": 100, "<": 200}})
"""

from __future__ import annotations

from typing import Any

from entitycache.core.query.predicate import FilterOperator, Predicate
from entitycache.errors import InvalidPredicateError

_LITERAL_MARKER_KEYS = frozenset({"value", "is_literal", "isLiteral"})


def _is_literal_marker(value: Any) -> bool:
    return isinstance(value, dict) and "value" in value and set(value) <= _LITERAL_MARKER_KEYS


def _parse_property_clause(path: str, clause: Any) -> Predicate:
    if isinstance(clause, dict) and not _is_literal_marker(clause):
        if not clause:
            raise InvalidPredicateError(f"Empty operator object for '{path}'")
        clauses = [
            Predicate.create(path, FilterOperator.parse(op), value) for op, value in clause.items()
        ]
        return Predicate.all_of(clauses)
    # Bare value (or literal marker) means equality
    return Predicate.create(path, FilterOperator.EQ, clause)


def _parse_list(key: str, value: Any) -> list[Predicate | None]:
    if not isinstance(value, (list, tuple)):
        raise InvalidPredicateError(f"'{key}' expects a list of predicates, got {value!r}")
    return [None if item is None else parse_shorthand(item) for item in value]


def parse_shorthand(obj: Any) -> Predicate:
    """Parse a shorthand object (or list of objects, ANDed) into a Predicate.

    Multiple keys in one object are ANDed. ``and``/``or`` take lists,
    ``not`` takes a single object.

    Raises:
        InvalidPredicateError: If the shape is not recognized.
    """
    if isinstance(obj, Predicate):
        return obj
    if isinstance(obj, (list, tuple)):
        return Predicate.all_of(parse_shorthand(item) for item in obj if item is not None)
    if not isinstance(obj, dict):
        raise InvalidPredicateError(f"Cannot parse predicate object {obj!r}")

    clauses: list[Predicate] = []
    for key, value in obj.items():
        lowered = key.lower() if isinstance(key, str) else key
        if lowered == "and":
            clauses.append(Predicate.all_of(_parse_list(key, value)))
        elif lowered == "or":
            clauses.append(Predicate.any_of(_parse_list(key, value)))
        elif lowered == "not":
            clauses.append(parse_shorthand(value).not_())
        elif isinstance(key, str):
            clauses.append(_parse_property_clause(key, value))
        else:
            raise InvalidPredicateError(f"Predicate keys must be strings, got {key!r}")
    return Predicate.all_of(clauses)
