"""Tests for in-process predicate, ordering and projection evaluation.

Critical Invariants:
- A null intermediate navigation hop yields "no match", never an error
- Unknown property paths fail at compile time rather than matching nothing
- String comparison honours the configured collation
"""

from datetime import datetime

import pytest

from entitycache import EntityState, LocalQueryComparisonOptions, Predicate, literal
from entitycache.core.query import (
    OrderByItem,
    compare_values,
    compile_ordering,
    compile_predicate,
    compile_projection,
)
from entitycache.entity import entity_value_getter
from entitycache.errors import InvalidPredicateError, UnknownPropertyError


def row_getter(row, prop):
    return row.get(prop.name)


def matching(predicate, rows, entity_type, store, options=None):
    matches = compile_predicate(predicate, entity_type, store, row_getter, options)
    return [row for row in rows if matches(row)]


@pytest.fixture
def customer_type(catalog):
    return catalog.get_entity_type("Customer")


@pytest.fixture
def customers():
    return [
        {"customerID": "a", "companyName": "Around the Horn", "city": "London", "country": "UK"},
        {"customerID": "b", "companyName": "Berglunds snabbköp", "city": "Luleå", "country": "Sweden"},
        {"customerID": "c", "companyName": "Bottom-Dollar Markets", "city": "Tsawassen",
         "country": "Canada"},
        {"customerID": "d", "companyName": "Seven Seas Imports", "city": "LONDON  ", "country": None},
    ]


def ids_of(rows):
    return [row["customerID"] for row in rows]


# Operators


def test_equality_is_case_insensitive_and_ignores_trailing_blanks(catalog, customer_type, customers):
    p = Predicate.create("city", "==", "london")
    assert ids_of(matching(p, customers, customer_type, catalog)) == ["a", "d"]


def test_case_sensitive_collation(catalog, customer_type, customers):
    options = LocalQueryComparisonOptions(is_case_sensitive=True)
    p = Predicate.create("city", "==", "London")
    assert ids_of(matching(p, customers, customer_type, catalog, options)) == ["a"]


def test_trailing_blanks_matter_without_sql92(catalog, customer_type, customers):
    options = LocalQueryComparisonOptions(uses_sql92_compliant_string_comparison=False)
    p = Predicate.create("city", "==", "london")
    assert ids_of(matching(p, customers, customer_type, catalog, options)) == ["a"]


def test_string_operators(catalog, customer_type, customers):
    starts = Predicate.create("companyName", "startsWith", "b")
    ends = Predicate.create("companyName", "endsWith", "IMPORTS")
    contains = Predicate.create("companyName", "contains", "the")

    assert ids_of(matching(starts, customers, customer_type, catalog)) == ["b", "c"]
    assert ids_of(matching(ends, customers, customer_type, catalog)) == ["d"]
    assert ids_of(matching(contains, customers, customer_type, catalog)) == ["a"]


def test_in_operator(catalog, customer_type, customers):
    p = Predicate.create("country", "in", ["uk", "Canada"])
    assert ids_of(matching(p, customers, customer_type, catalog)) == ["a", "c"]


def test_null_comparisons(catalog, customer_type, customers):
    is_null = Predicate.create("country", "==", None)
    not_null = Predicate.create("country", "!=", None)

    assert ids_of(matching(is_null, customers, customer_type, catalog)) == ["d"]
    assert ids_of(matching(not_null, customers, customer_type, catalog)) == ["a", "b", "c"]
    assert ids_of(matching(is_null.not_(), customers, customer_type, catalog)) == ["a", "b", "c"]


def test_ordering_operators_never_match_null(catalog, customer_type, customers):
    p = Predicate.create("country", ">", "A")
    assert ids_of(matching(p, customers, customer_type, catalog)) == ["a", "b", "c"]


def test_constant_predicates(catalog, customer_type, customers):
    assert len(matching(Predicate.all_of([]), customers, customer_type, catalog)) == 4
    assert matching(Predicate.any_of([]), customers, customer_type, catalog) == []


def test_none_predicate_matches_everything(catalog, customer_type, customers):
    assert len(matching(None, customers, customer_type, catalog)) == 4


def test_literals_are_coerced_to_the_property_type(catalog):
    order_type = catalog.get_entity_type("Order")
    rows = [{"orderID": 1, "freight": 32.5}, {"orderID": 2, "freight": 150.0}]
    p = Predicate.create("freight", ">", "100")
    assert [r["orderID"] for r in matching(p, rows, order_type, catalog)] == [2]


# Right-hand operands


def test_string_naming_a_property_is_a_property_reference(catalog):
    order_type = catalog.get_entity_type("Order")
    rows = [
        {"orderID": 1, "requiredDate": datetime(1996, 8, 1), "shippedDate": datetime(1996, 7, 16)},
        {"orderID": 2, "requiredDate": datetime(1996, 8, 5), "shippedDate": datetime(1996, 8, 12)},
    ]
    p = Predicate.create("requiredDate", "<", "shippedDate")
    assert [r["orderID"] for r in matching(p, rows, order_type, catalog)] == [2]


def test_literal_operand_is_never_resolved_as_a_path(catalog):
    employee_type = catalog.get_entity_type("Employee")
    rows = [
        {"employeeID": 1, "firstName": "Nancy", "lastName": "firstName"},
        {"employeeID": 2, "firstName": "Nancy", "lastName": "Nancy"},
    ]
    as_literal = Predicate.create("lastName", "==", literal("firstName"))
    as_path = Predicate.create("lastName", "==", "firstName")

    assert [r["employeeID"] for r in matching(as_literal, rows, employee_type, catalog)] == [1]
    assert [r["employeeID"] for r in matching(as_path, rows, employee_type, catalog)] == [2]


def test_string_naming_a_navigation_is_a_literal(catalog, customer_type, customers):
    rows = [*customers, {"customerID": "e", "companyName": "orders", "city": None, "country": None}]
    p = Predicate.create("companyName", "==", "orders")
    assert ids_of(matching(p, rows, customer_type, catalog)) == ["e"]
    through_collection = Predicate.create("companyName", "==", "orders.freight")
    assert matching(through_collection, rows, customer_type, catalog) == []


def test_contains_property_reference(catalog):
    employee_type = catalog.get_entity_type("Employee")
    rows = [
        {"employeeID": 1, "firstName": "Nancy", "notes": "Nancy holds a BA."},
        {"employeeID": 2, "firstName": "Andrew", "notes": "Joined as a representative."},
    ]
    p = Predicate.create("notes", "contains", "firstName")
    assert [r["employeeID"] for r in matching(p, rows, employee_type, catalog)] == [1]


# Functions


def test_date_part_functions(catalog):
    employee_type = catalog.get_entity_type("Employee")
    rows = [
        {"employeeID": 1, "hireDate": datetime(1992, 5, 1)},
        {"employeeID": 4, "hireDate": datetime(1993, 10, 17)},
        {"employeeID": 9, "hireDate": None},
    ]
    after_1992 = Predicate.create("year(hireDate)", ">", 1992)
    in_may = Predicate.create("month(hireDate)", "==", 5)

    assert [r["employeeID"] for r in matching(after_1992, rows, employee_type, catalog)] == [4]
    assert [r["employeeID"] for r in matching(in_may, rows, employee_type, catalog)] == [1]


def test_string_functions(catalog, customer_type, customers):
    p = Predicate.create("length(trim(city))", "==", 6)
    assert ids_of(matching(p, customers, customer_type, catalog)) == ["a", "d"]
    upper = Predicate.create("toupper(country)", "==", "UK")
    assert ids_of(matching(upper, customers, customer_type, catalog)) == ["a"]


# Validation


def test_unknown_property_fails_at_compile_time(catalog, customer_type):
    with pytest.raises(UnknownPropertyError) as exc_info:
        compile_predicate(Predicate.create("cty", "==", "London"), customer_type, catalog, row_getter)
    assert exc_info.value.details == {"type_name": "Customer", "property_path": "cty"}


def test_path_through_collection_navigation_is_rejected(catalog, customer_type):
    p = Predicate.create("orders.freight", ">", 10)
    with pytest.raises(InvalidPredicateError, match="collection navigation"):
        compile_predicate(p, customer_type, catalog, row_getter)


def test_path_must_end_on_a_data_property(catalog):
    order_type = catalog.get_entity_type("Order")
    with pytest.raises(InvalidPredicateError, match="data property"):
        compile_predicate(Predicate.create("customer", "==", None), order_type, catalog, row_getter)


# Entity graphs


@pytest.fixture
def order_graph(offline_manager, ids):
    london = offline_manager.create_entity(
        "Customer", {"customerID": ids["AROUT"], "city": "London"}, EntityState.UNCHANGED
    )
    berlin = offline_manager.create_entity(
        "Customer", {"customerID": ids["ALFKI"], "city": "Berlin"}, EntityState.UNCHANGED
    )
    orders = [
        offline_manager.create_entity("Order", values, EntityState.UNCHANGED)
        for values in (
            {"orderID": 1, "customerID": ids["AROUT"], "freight": 20.0},
            {"orderID": 2, "customerID": ids["ALFKI"], "freight": 10.0},
            {"orderID": 3, "customerID": None, "freight": 30.0},
        )
    ]
    return london, berlin, orders


def test_navigation_path_walks_entity_graph(offline_manager, order_graph):
    _, _, orders = order_graph
    order_type = offline_manager.metadata_store.get_entity_type("Order")
    matches = compile_predicate(
        Predicate.create("customer.city", "==", "London"),
        order_type,
        offline_manager.metadata_store,
        entity_value_getter,
    )
    assert [o.orderID for o in orders if matches(o)] == [1]


def test_null_navigation_hop_is_no_match(offline_manager, order_graph):
    _, _, orders = order_graph
    order_type = offline_manager.metadata_store.get_entity_type("Order")
    store = offline_manager.metadata_store

    is_null = compile_predicate(
        Predicate.create("customer.city", "==", None), order_type, store, entity_value_getter
    )
    not_london = compile_predicate(
        Predicate.create("customer.city", "!=", "London"), order_type, store, entity_value_getter
    )

    assert [o.orderID for o in orders if is_null(o)] == []
    assert [o.orderID for o in orders if not_london(o)] == [2]


def test_ordering_by_navigation_path(offline_manager, order_graph):
    _, _, orders = order_graph
    store = offline_manager.metadata_store
    order_type = store.get_entity_type("Order")
    key = compile_ordering(
        [OrderByItem("customer.city"), OrderByItem("freight", descending=True)],
        order_type,
        store,
        entity_value_getter,
    )
    assert [o.orderID for o in sorted(orders, key=key)] == [3, 2, 1]


def test_projection_flattens_nested_paths(offline_manager, order_graph):
    london, _, orders = order_graph
    store = offline_manager.metadata_store
    order_type = store.get_entity_type("Order")
    project = compile_projection(
        ["orderID", "customer.city", "customer"], order_type, store, entity_value_getter
    )

    assert project(orders[0]) == {"orderID": 1, "customer_city": "London", "customer": london}
    assert project(orders[2]) == {"orderID": 3, "customer_city": None, "customer": None}


def test_compare_values_sorts_none_first():
    options = LocalQueryComparisonOptions()
    assert compare_values(None, "a", options) < 0
    assert compare_values("B", "a", options) > 0
    assert compare_values(None, None, options) == 0
