"""Tests for merging remote results into the cache.

Critical Invariants:
- Re-executing a query returns the same instances for the same keys
- PRESERVE_CHANGES keeps pending local changes, OVERWRITE_CHANGES discards them
- SKIP_MERGE leaves every cached entity untouched
- Expansion never marks the owner or the manager as changed
"""

from datetime import datetime

import pytest

from entitycache import (
    DataType,
    EntityAction,
    EntityManager,
    EntityQuery,
    EntityState,
    InMemoryDataService,
    MergeStrategy,
)

LONDON = EntityQuery.from_("Customers").where("city", "==", "London").order_by("companyName")


# Identity


@pytest.mark.asyncio
async def test_new_rows_become_unchanged_entities(manager):
    result = await LONDON.using(manager).execute()

    names = [c.companyName for c in result.results]
    assert names == ["Around the Horn", "B's Beverages", "Seven Seas Imports"]
    assert all(c.entity_aspect.entity_state is EntityState.UNCHANGED for c in result)
    assert all(c.entity_aspect.entity_manager is manager for c in result)
    assert not manager.has_changes()
    assert result.from_cache is False


@pytest.mark.asyncio
async def test_requery_returns_same_instances(manager):
    first = await LONDON.using(manager).execute()
    second = await LONDON.using(manager).execute()

    assert len(first) == len(second) == 3
    assert all(a is b for a, b in zip(first.results, second.results, strict=True))


@pytest.mark.asyncio
async def test_unchanged_entities_are_refreshed(manager, service, ids):
    first = await LONDON.using(manager).execute()
    service.update_row("Customer", [ids["AROUT"]], {"contactName": "T. Hardy"})

    await LONDON.using(manager).execute()

    assert first.results[0].contactName == "T. Hardy"
    assert first.results[0].entity_aspect.entity_state is EntityState.UNCHANGED


# Merge strategies


@pytest.mark.asyncio
async def test_preserve_changes_keeps_local_values(manager):
    customer = (await LONDON.using(manager).execute()).results[0]
    customer.contactName = "Local edit"

    await LONDON.using(manager).execute()

    assert customer.contactName == "Local edit"
    assert customer.entity_aspect.entity_state is EntityState.MODIFIED
    assert customer.entity_aspect.original_values == {"contactName": "Thomas Hardy"}


@pytest.mark.asyncio
async def test_overwrite_changes_discards_local_values(manager):
    customer = (await LONDON.using(manager).execute()).results[0]
    customer.contactName = "Local edit"

    await LONDON.using(manager, MergeStrategy.OVERWRITE_CHANGES).execute()

    assert customer.contactName == "Thomas Hardy"
    assert customer.entity_aspect.entity_state is EntityState.UNCHANGED
    assert customer.entity_aspect.original_values == {}
    assert not manager.has_changes()


@pytest.mark.asyncio
async def test_skip_merge_leaves_cache_untouched(manager, service, ids):
    customer = (await LONDON.using(manager).execute()).results[0]
    service.update_row("Customer", [ids["AROUT"]], {"contactName": "T. Hardy"})

    result = await LONDON.using(manager, MergeStrategy.SKIP_MERGE).execute()

    assert result.results[0] is customer
    assert customer.contactName == "Thomas Hardy"


@pytest.mark.asyncio
async def test_deleted_entities_are_omitted_under_preserve(manager):
    customer = (await LONDON.using(manager).execute()).results[0]
    customer.entity_aspect.set_deleted()

    result = await LONDON.using(manager).execute()

    assert customer not in result.results
    assert customer in result.retrieved_entities
    assert customer.entity_aspect.entity_state is EntityState.DELETED


@pytest.mark.asyncio
async def test_overwrite_undeletes(manager):
    customer = (await LONDON.using(manager).execute()).results[0]
    customer.entity_aspect.set_deleted()

    result = await LONDON.using(manager, MergeStrategy.OVERWRITE_CHANGES).execute()

    assert result.results[0] is customer
    assert customer.entity_aspect.entity_state is EntityState.UNCHANGED
    assert not manager.has_changes()


@pytest.mark.asyncio
async def test_added_entity_with_server_key_is_preserved(manager, ids):
    local = manager.create_entity("Customer", {"customerID": ids["SEVES"], "companyName": "Mine"})

    result = await LONDON.using(manager).execute()

    assert local in result.results
    assert local.companyName == "Mine"
    assert local.entity_aspect.entity_state is EntityState.ADDED


@pytest.mark.asyncio
async def test_entity_changed_reports_merges(manager):
    customer = (await LONDON.using(manager).execute()).results[0]
    events = []
    manager.entity_changed.subscribe(events.append)

    await LONDON.using(manager).execute()

    merged = [e.entity for e in events if e.action is EntityAction.MERGE_ON_QUERY]
    assert customer in merged


# Expansion


@pytest.mark.asyncio
async def test_expand_populates_navigations(manager):
    query = EntityQuery.from_("Orders").where("orderID", "==", 10248).expand(
        "customer, orderDetails.product"
    )

    result = await query.using(manager).execute()

    order = result.results[0]
    assert order.customer.companyName == "Alfreds Futterkiste"
    assert order.orderDetails.is_loaded
    assert order.entity_aspect.is_navigation_property_loaded("customer")
    assert sorted(d.product.productName for d in order.orderDetails) == ["Aniseed Syrup", "Chai"]
    assert len(result.retrieved_entities) == 6
    assert not manager.has_changes()
    assert all(e.entity_aspect.entity_state is EntityState.UNCHANGED for e in result.retrieved_entities)


@pytest.mark.asyncio
async def test_expand_through_null_scalar_navigation(manager):
    query = EntityQuery.from_("Orders").where("orderID", "==", 10253).expand("customer")

    result = await query.using(manager).execute()

    order = result.results[0]
    assert order.customer is None
    assert order.entity_aspect.is_navigation_property_loaded("customer")
    assert result.retrieved_entities == [order]


@pytest.mark.asyncio
async def test_nested_expand_fires_one_array_event(manager):
    customer = (
        await EntityQuery.from_("Customers").where("companyName", "startsWith", "Alfreds").using(
            manager
        ).execute()
    ).results[0]
    events = []
    customer.orders.array_changed.subscribe(events.append)

    await EntityQuery.from_("Customers").where("companyName", "startsWith", "Alfreds").expand(
        "orders.orderDetails"
    ).using(manager).execute()

    assert len(events) == 1
    assert len(events[0].added) == 2
    assert customer.orders.is_loaded


# Projection


@pytest.mark.asyncio
async def test_projection_returns_plain_records(manager):
    query = EntityQuery.from_("Orders").where("orderID", "==", 10248).select(
        "orderID, customer.companyName"
    )

    result = await query.using(manager).execute()

    assert result.results == [{"orderID": 10248, "customer_companyName": "Alfreds Futterkiste"}]
    assert result.retrieved_entities == []
    assert len(manager.get_entities()) == 0


@pytest.mark.asyncio
async def test_projected_navigation_is_merged(manager, ids):
    query = EntityQuery.from_("Orders").where("orderID", "==", 10248).select("orderID, customer")

    record = (await query.using(manager).execute()).results[0]

    customer = record["customer"]
    assert customer is manager.get_entity_by_key("Customer", ids["ALFKI"])
    assert customer.entity_aspect.entity_state is EntityState.UNCHANGED


@pytest.mark.asyncio
async def test_projected_dates_depend_on_backend():
    """Some backends return projected dates as strings; both forms are accepted."""
    from conftest import build_catalog, seed

    query = EntityQuery.from_("Orders").where("orderID", "==", 10248).select("orderDate")
    for materialize in (True, False):
        service = seed(InMemoryDataService(build_catalog(), materialize_projected_dates=materialize))
        manager = EntityManager(build_catalog(), executor=service)

        value = (await query.using(manager).execute()).results[0]["orderDate"]

        if isinstance(value, str):
            assert not materialize
            value = DataType.parse_date_from_server(value)
        assert value == datetime(1996, 7, 4)
